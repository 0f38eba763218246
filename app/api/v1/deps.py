"""
FastAPI dependencies — auth guard, database session and external collaborators.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Unauthorized
from app.core.security import decode_access_token
from app.db.session import async_session_factory
from app.models.user import User
from app.schemas.token import TokenPayload
from app.services import credentials
from app.services.mailer import Mailer
from app.services.pending_registrations import PendingStore
from app.services.sheets import SheetsMirror

# auto_error=False so a missing header is reported through our own 401
bearer_scheme = HTTPBearer(auto_error=False)


# ── Database session ────────────────────────────────────────────────
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


# ── Collaborators (owned by the app instance, see main.create_app) ──
def get_pending_store(request: Request) -> PendingStore:
    return request.app.state.pending_store


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def get_sheets_mirror(request: Request) -> SheetsMirror:
    return request.app.state.sheets_mirror


# ── Auth dependencies ───────────────────────────────────────────────
async def get_current_user(
    credentials_: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Decode the bearer JWT and resolve it to a live account."""
    if credentials_ is None or credentials_.scheme.lower() != "bearer":
        raise Unauthorized("Not authorized, no token")

    payload = decode_access_token(credentials_.credentials)
    if payload is None:
        raise Unauthorized("Not authorized, token failed")

    user_id = TokenPayload.model_validate(payload).sub
    if user_id is None or not user_id.isdigit():
        raise Unauthorized("Not authorized, token failed")

    user = await credentials.find_by_id(db, int(user_id))
    if user is None:
        raise Unauthorized("Not authorized, user not found")
    return user


async def get_current_active_user(
    current_user: User = Depends(get_current_user),
) -> User:
    """Reject deactivated accounts."""
    if not current_user.is_active:
        raise Unauthorized("Account is deactivated")
    return current_user
