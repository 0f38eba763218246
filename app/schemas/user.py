"""Pydantic schemas for signup, login, password reset and profiles."""

from __future__ import annotations

from datetime import datetime

from pydantic import field_validator

from app.schemas.common import CamelModel
from app.schemas.coupon import CouponRead

MIN_PASSWORD_LENGTH = 6


def _normalise_email(v: str) -> str:
    v = v.strip().lower()
    if "@" not in v or v.startswith("@") or v.endswith("@"):
        raise ValueError("Invalid email address")
    if len(v) > 320:
        raise ValueError("Email must not exceed 320 characters")
    return v


def _check_password(v: str) -> str:
    if len(v) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")
    if len(v) > 128:
        raise ValueError("Password must not exceed 128 characters")
    return v


# ── Signup ──────────────────────────────────────────────────────────
class SignupRequest(CamelModel):
    name: str
    email: str
    password: str

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name must not be empty")
        if len(v) > 200:
            raise ValueError("Name must not exceed 200 characters")
        return v

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _normalise_email(v)

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        return _check_password(v)


class SignupStarted(CamelModel):
    success: bool = True
    message: str = "Verification code sent to your email. Please check your inbox."
    temp_user_id: str


class ResendCodeRequest(CamelModel):
    temp_user_id: str


class VerifySignupRequest(CamelModel):
    temp_user_id: str
    otp: str

    @field_validator("otp")
    @classmethod
    def _otp(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("OTP must not be empty")
        return v


# ── Login / reset ───────────────────────────────────────────────────
class LoginRequest(CamelModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return v.strip().lower()


class ForgotPasswordRequest(CamelModel):
    email: str

    @field_validator("email")
    @classmethod
    def _email(cls, v: str) -> str:
        return _normalise_email(v)


class ForgotPasswordResponse(CamelModel):
    success: bool = True
    message: str = "Password reset link sent to your email. Please check your inbox."
    reset_user_id: int


class ResetPasswordRequest(CamelModel):
    new_password: str

    @field_validator("new_password")
    @classmethod
    def _password(cls, v: str) -> str:
        return _check_password(v)


# ── Profile ─────────────────────────────────────────────────────────
class UserRead(CamelModel):
    id: int
    name: str
    email: str
    is_email_verified: bool
    created_at: datetime | None = None
    coupons: list[CouponRead] = []


class AuthResponse(CamelModel):
    success: bool = True
    message: str
    token: str
    user: UserRead


class ProfileResponse(CamelModel):
    success: bool = True
    user: UserRead
