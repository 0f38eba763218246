"""
Verification codes for signup and tokens for password reset.

Signup: a 6-digit code is emailed and held with the pending registration for
``SIGNUP_CODE_TTL_MINUTES``. Only a correct code before expiry promotes the
candidate to a durable, verified user.

Password reset: a 256-bit random token is emailed as a link; its SHA-256
digest and expiry live on the user row for ``RESET_TOKEN_TTL_MINUTES``.

If an email cannot be dispatched, whatever this attempt created is rolled
back so the user can simply try again.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (AccountNotFound, CodeExpired, CodeMismatch,
                                 DuplicateIdentity, InvalidOrExpiredToken,
                                 MessageDispatchFailed,
                                 PendingRegistrationNotFound, ValidationFailed)
from app.core.security import (codes_match, generate_numeric_code,
                               generate_reset_token, get_password_hash)
from app.core.timeutils import utcnow
from app.models.user import User
from app.services import credentials
from app.services.mailer import Mailer
from app.services.pending_registrations import (PendingRegistration,
                                                PendingStore, code_expiry,
                                                new_pending_id)

logger = logging.getLogger(__name__)

SIGNUP_CODE_LENGTH = 6


# ── Signup ──────────────────────────────────────────────────────────
async def start_signup(
    db: AsyncSession,
    store: PendingStore,
    mailer: Mailer,
    name: str,
    email: str,
    password: str,
    now: datetime | None = None,
) -> str:
    """Hold a candidate account and email its code. Returns the pending id."""
    email = credentials.normalise_email(email)
    if await credentials.find_by_email(db, email) is not None:
        raise DuplicateIdentity()

    entry = PendingRegistration(
        id=new_pending_id(),
        name=name.strip(),
        email=email,
        password_hash=get_password_hash(password),
        code=generate_numeric_code(SIGNUP_CODE_LENGTH),
        code_expires_at=code_expiry(now),
    )
    await store.put(entry)

    if not await mailer.send_signup_code(entry.email, entry.name, entry.code):
        await store.remove(entry.id)
        raise MessageDispatchFailed("Failed to send verification email. Please try again.")

    logger.info("Signup code issued for %s", entry.email)
    return entry.id


async def resend_signup_code(
    store: PendingStore,
    mailer: Mailer,
    pending_id: str,
    now: datetime | None = None,
) -> None:
    """Replace the outstanding code; the previous one stops working at once."""
    entry = await store.get(pending_id, now)
    if entry is None:
        raise PendingRegistrationNotFound()

    previous_code, previous_expiry = entry.code, entry.code_expires_at
    entry.code = generate_numeric_code(SIGNUP_CODE_LENGTH)
    entry.code_expires_at = code_expiry(now)
    entry.failed_attempts = 0
    await store.put(entry)

    if not await mailer.send_signup_code(entry.email, entry.name, entry.code):
        entry.code, entry.code_expires_at = previous_code, previous_expiry
        await store.put(entry)
        raise MessageDispatchFailed("Failed to send verification email. Please try again.")

    logger.info("Signup code re-issued for %s", entry.email)


async def verify_signup_code(
    store: PendingStore,
    pending_id: str,
    submitted_code: str,
    now: datetime | None = None,
) -> PendingRegistration:
    """Check *submitted_code*; on success the entry is consumed and returned."""
    entry = await store.peek(pending_id)
    if entry is None:
        raise PendingRegistrationNotFound()

    if entry.is_expired(now):
        await store.remove(pending_id)
        raise CodeExpired()

    if not codes_match(entry.code, submitted_code.strip()):
        entry.failed_attempts += 1
        if entry.failed_attempts >= settings.SIGNUP_CODE_MAX_ATTEMPTS:
            await store.remove(pending_id)
            logger.warning("Pending signup for %s evicted after %d bad codes",
                           entry.email, entry.failed_attempts)
        else:
            await store.put(entry)
        raise CodeMismatch()

    await store.remove(pending_id)
    return entry


async def complete_signup(
    db: AsyncSession,
    store: PendingStore,
    mailer: Mailer,
    pending_id: str,
    submitted_code: str,
    now: datetime | None = None,
) -> User:
    """Verify the code and create the durable, verified user."""
    entry = await verify_signup_code(store, pending_id, submitted_code, now)
    user = await credentials.create_user(
        db, entry.name, entry.email, entry.password_hash, email_verified=True
    )

    if not await mailer.send_welcome(user.email, user.name):
        logger.warning("Welcome email to %s failed (non-critical)", user.email)
    return user


# ── Password reset ──────────────────────────────────────────────────
def reset_url(token: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/reset-password/{token}"


async def request_password_reset(
    db: AsyncSession,
    mailer: Mailer,
    email: str,
    now: datetime | None = None,
) -> User:
    user = await credentials.find_by_email(db, email)
    if user is None:
        raise AccountNotFound()
    if not user.is_email_verified:
        raise ValidationFailed("Please verify your email first")

    token = generate_reset_token()
    expires_at = (now or utcnow()) + timedelta(minutes=settings.RESET_TOKEN_TTL_MINUTES)
    await credentials.set_password_reset_token(db, user, token, expires_at)

    if not await mailer.send_password_reset_link(user.email, user.name, reset_url(token)):
        await credentials.clear_password_reset_token(db, user)
        raise MessageDispatchFailed("Failed to send reset email. Please try again.")

    logger.info("Password reset link issued for user id=%s", user.id)
    return user


async def verify_reset_token(
    db: AsyncSession, token: str, now: datetime | None = None
) -> User:
    user = await credentials.find_by_reset_token(db, token, now)
    if user is None:
        raise InvalidOrExpiredToken()
    return user


async def reset_password(
    db: AsyncSession, token: str, new_password: str, now: datetime | None = None
) -> User:
    user = await verify_reset_token(db, token, now)
    return await credentials.update_secret(db, user, get_password_hash(new_password))
