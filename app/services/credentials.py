"""
Credential store — durable user records.

Every mutation commits immediately. Emails are matched case-insensitively by
normalising to lower case before they reach the database.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import DuplicateIdentity
from app.core.security import dummy_verify, hash_reset_token, verify_password
from app.core.timeutils import ensure_utc, utcnow
from app.models.user import User

logger = logging.getLogger(__name__)


def normalise_email(email: str) -> str:
    return email.strip().lower()


async def find_by_email(db: AsyncSession, email: str) -> User | None:
    result = await db.execute(select(User).where(User.email == normalise_email(email)))
    return result.scalar_one_or_none()


async def find_by_id(db: AsyncSession, user_id: int) -> User | None:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def create_user(
    db: AsyncSession,
    name: str,
    email: str,
    password_hash: str,
    *,
    email_verified: bool = False,
) -> User:
    email = normalise_email(email)
    if await find_by_email(db, email) is not None:
        raise DuplicateIdentity()

    user = User(
        name=name.strip(),
        email=email,
        hashed_password=password_hash,
        is_email_verified=email_verified,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent signup for the same address.
        await db.rollback()
        raise DuplicateIdentity()
    await db.refresh(user)
    logger.info("Created user %s (id=%s)", user.email, user.id)
    return user


async def verify_identity(db: AsyncSession, email: str, password: str) -> User | None:
    """Return the user when *password* matches, else ``None``."""
    user = await find_by_email(db, email)
    if user is None:
        dummy_verify()
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


async def set_email_verified(db: AsyncSession, user: User) -> User:
    user.is_email_verified = True
    await db.commit()
    return user


async def set_password_reset_token(
    db: AsyncSession, user: User, token: str, expires_at: datetime
) -> User:
    user.password_reset_token_hash = hash_reset_token(token)
    user.password_reset_expires = expires_at
    await db.commit()
    return user


async def clear_password_reset_token(db: AsyncSession, user: User) -> User:
    user.password_reset_token_hash = None
    user.password_reset_expires = None
    await db.commit()
    return user


async def update_secret(db: AsyncSession, user: User, password_hash: str) -> User:
    """Replace the password hash and consume any outstanding reset token."""
    user.hashed_password = password_hash
    user.password_reset_token_hash = None
    user.password_reset_expires = None
    await db.commit()
    logger.info("Password updated for user id=%s", user.id)
    return user


async def find_by_reset_token(
    db: AsyncSession, token: str, now: datetime | None = None
) -> User | None:
    if not token:
        return None
    result = await db.execute(
        select(User).where(User.password_reset_token_hash == hash_reset_token(token))
    )
    user = result.scalar_one_or_none()
    if user is None or user.password_reset_expires is None:
        return None
    if ensure_utc(user.password_reset_expires) <= (now or utcnow()):
        return None
    return user
