"""
Coupon ledger — listing, redemption and staff verification of issued coupons.

A coupon is valid for use iff it is unused, active and not past its expiry.
Redemption is the only mutation after issuance and happens at most once.
"""

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import AlreadyUsedOrExpired, CouponNotFound
from app.core.timeutils import utcnow
from app.models.coupon import Coupon
from app.models.user import User
from app.services.sheets import SheetsMirror, best_effort

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_coupon_code() -> str:
    suffix = "".join(
        secrets.choice(CODE_ALPHABET) for _ in range(settings.COUPON_CODE_SUFFIX_LENGTH)
    )
    return f"{settings.COUPON_CODE_PREFIX}{suffix}".upper()


async def list_user_coupons(
    db: AsyncSession, user_id: int, *, active_only: bool = True
) -> list[Coupon]:
    """Coupons owned by *user_id*, oldest first."""
    query = select(Coupon).where(Coupon.user_id == user_id)
    if active_only:
        query = query.where(Coupon.is_active.is_(True))
    result = await db.execute(query.order_by(Coupon.created_at.asc(), Coupon.id.asc()))
    return list(result.scalars().all())


def split_by_validity(
    coupons: list[Coupon], now: datetime | None = None
) -> tuple[list[Coupon], list[Coupon]]:
    """Partition into (valid for use, used or expired)."""
    now = now or utcnow()
    usable = [c for c in coupons if c.valid_at(now)]
    spent = [c for c in coupons if not c.valid_at(now)]
    return usable, spent


async def redeem(
    db: AsyncSession,
    coupon_id: int,
    user_id: int,
    mirror: SheetsMirror | None = None,
    now: datetime | None = None,
) -> Coupon:
    """Mark the caller's own coupon as used.

    Coupons that do not exist, are inactive, or belong to someone else are all
    reported as ``CouponNotFound``.
    """
    now = now or utcnow()
    result = await db.execute(
        select(Coupon).where(
            Coupon.id == coupon_id,
            Coupon.user_id == user_id,
            Coupon.is_active.is_(True),
        )
    )
    coupon = result.scalar_one_or_none()
    if coupon is None:
        raise CouponNotFound()
    if not coupon.valid_at(now):
        raise AlreadyUsedOrExpired()

    # Guarded update: a concurrent redemption that got there first leaves
    # nothing to match, so used_at is written exactly once.
    outcome = await db.execute(
        update(Coupon)
        .where(Coupon.id == coupon.id, Coupon.is_used.is_(False))
        .values(is_used=True, used_at=now)
        .execution_options(synchronize_session=False)
    )
    if outcome.rowcount != 1:
        await db.rollback()
        raise AlreadyUsedOrExpired()
    await db.commit()
    await db.refresh(coupon)
    logger.info("Coupon %s redeemed by user id=%s", coupon.code, user_id)

    if mirror is not None:
        await best_effort(mirror.update_status(coupon.code, "Used"), f"status {coupon.code}")
    return coupon


async def verify_by_code(
    db: AsyncSession, code: str, now: datetime | None = None
) -> tuple[Coupon, User]:
    """Staff lookup by printed code. Read-only: viewing is not redeeming."""
    result = await db.execute(
        select(Coupon, User)
        .join(User, User.id == Coupon.user_id)
        .where(Coupon.code == code.strip().upper(), Coupon.is_active.is_(True))
    )
    row = result.first()
    if row is None:
        raise CouponNotFound("Invalid coupon code")
    coupon, owner = row
    if not coupon.valid_at(now or utcnow()):
        raise AlreadyUsedOrExpired()
    return coupon, owner
