"""
Auth endpoints — code-verified signup, login, password reset and profile.
"""

import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import (get_current_active_user, get_db, get_mailer,
                             get_pending_store)
from app.core.exceptions import (AccountInactive, EmailNotVerified,
                                 InvalidCredentials)
from app.core.rate_limit import limiter
from app.core.security import create_access_token
from app.models.user import User
from app.schemas.common import MessageResponse
from app.schemas.coupon import CouponRead
from app.schemas.user import (AuthResponse, ForgotPasswordRequest,
                              ForgotPasswordResponse, LoginRequest,
                              ProfileResponse, ResendCodeRequest,
                              ResetPasswordRequest, SignupRequest,
                              SignupStarted, UserRead, VerifySignupRequest)
from app.services import coupons as ledger
from app.services import credentials, verification
from app.services.mailer import Mailer
from app.services.pending_registrations import PendingStore

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


async def build_user_read(db: AsyncSession, user: User) -> UserRead:
    """User payload with the account's active coupons, oldest first."""
    coupons = await ledger.list_user_coupons(db, user.id)
    return UserRead(
        id=user.id,
        name=user.name,
        email=user.email,
        is_email_verified=user.is_email_verified,
        created_at=user.created_at,
        coupons=[CouponRead.model_validate(c) for c in coupons],
    )


# ── Signup ──────────────────────────────────────────────────────────
@router.post("/send-signup-otp", response_model=SignupStarted)
@limiter.limit("5/minute")
async def send_signup_otp(
    request: Request,
    body: SignupRequest,
    db: AsyncSession = Depends(get_db),
    store: PendingStore = Depends(get_pending_store),
    mailer: Mailer = Depends(get_mailer),
) -> SignupStarted:
    """Hold the signup and email a 6-digit code. No account exists yet."""
    pending_id = await verification.start_signup(
        db, store, mailer, body.name, body.email, body.password
    )
    return SignupStarted(temp_user_id=pending_id)


@router.post("/resend-signup-otp", response_model=MessageResponse)
@limiter.limit("3/minute")
async def resend_signup_otp(
    request: Request,
    body: ResendCodeRequest,
    store: PendingStore = Depends(get_pending_store),
    mailer: Mailer = Depends(get_mailer),
) -> MessageResponse:
    await verification.resend_signup_code(store, mailer, body.temp_user_id)
    return MessageResponse(message="A new verification code has been sent to your email.")


@router.post(
    "/verify-signup-otp", response_model=AuthResponse, status_code=status.HTTP_201_CREATED
)
async def verify_signup_otp(
    body: VerifySignupRequest,
    db: AsyncSession = Depends(get_db),
    store: PendingStore = Depends(get_pending_store),
    mailer: Mailer = Depends(get_mailer),
) -> AuthResponse:
    """Confirm the code and create the verified account."""
    user = await verification.complete_signup(db, store, mailer, body.temp_user_id, body.otp)
    return AuthResponse(
        message="Email verified successfully! Account created.",
        token=create_access_token(user.id),
        user=await build_user_read(db, user),
    )


# ── Login ───────────────────────────────────────────────────────────
@router.post("/login", response_model=AuthResponse)
@limiter.limit("5/minute")
async def login(
    request: Request,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    user = await credentials.verify_identity(db, body.email, body.password)
    if user is None:
        raise InvalidCredentials()
    if not user.is_active:
        raise AccountInactive()
    if not user.is_email_verified:
        raise EmailNotVerified()

    logger.info("User id=%s logged in", user.id)
    return AuthResponse(
        message="Login successful",
        token=create_access_token(user.id),
        user=await build_user_read(db, user),
    )


# ── Password reset ──────────────────────────────────────────────────
@router.post("/forgot-password", response_model=ForgotPasswordResponse)
@limiter.limit("5/minute")
async def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
) -> ForgotPasswordResponse:
    user = await verification.request_password_reset(db, mailer, body.email)
    return ForgotPasswordResponse(reset_user_id=user.id)


@router.post("/reset-password/{token}", response_model=MessageResponse)
async def reset_password(
    token: str,
    body: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    await verification.reset_password(db, token, body.new_password)
    return MessageResponse(
        message="Password reset successfully. You can now login with your new password."
    )


# ── Profile ─────────────────────────────────────────────────────────
@router.get("/profile", response_model=ProfileResponse)
async def read_profile(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> ProfileResponse:
    """Return the caller's profile with their active coupons."""
    return ProfileResponse(user=await build_user_read(db, current_user))
