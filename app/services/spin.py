"""
Spin allocator — mints at most one coupon per user per local calendar day.

The daily limit is enforced twice:

1. a per-user ``asyncio.Lock`` serialises check-and-mint inside one worker;
2. the ``(user_id, spin_day)`` unique constraint turns a second commit from
   another worker into an ``IntegrityError``, reported as ``DailyLimitReached``.

Coupon codes are unique as well, so an ``IntegrityError`` while no coupon
exists for today is a code collision: generate a new code and retry.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import weakref
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (DailyLimitReached, PersistenceFailure,
                                 ServiceUnavailable)
from app.core.timeutils import coupon_expiry, local_day, utcnow
from app.db.session import is_storage_ready
from app.models.coupon import Coupon
from app.models.user import User
from app.services import coupons as ledger
from app.services.offers import OFFERS, Offer, get_offer
from app.services.sheets import CouponOwner, SheetsMirror, best_effort

logger = logging.getLogger(__name__)

_user_locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()


def _lock_for(user_id: int) -> asyncio.Lock:
    lock = _user_locks.get(user_id)
    if lock is None:
        lock = asyncio.Lock()
        _user_locks[user_id] = lock
    return lock


async def count_spins_on(db: AsyncSession, user_id: int, day: str) -> int:
    result = await db.execute(
        select(func.count(Coupon.id)).where(Coupon.user_id == user_id, Coupon.spin_day == day)
    )
    return result.scalar() or 0


def select_offer(
    index: int | None, catalog: tuple[Offer, ...] | None = None
) -> tuple[int, Offer]:
    catalog = OFFERS if catalog is None else catalog
    if index is None:
        index = secrets.randbelow(len(catalog))
    return index, get_offer(index, catalog)


async def spin(
    db: AsyncSession,
    user: User,
    selected_offer_index: int | None = None,
    mirror: SheetsMirror | None = None,
    now: datetime | None = None,
) -> Coupon:
    """Mint today's coupon for *user* or raise the reason it was refused."""
    # Rollbacks below expire ORM state, so keep plain copies of the owner.
    owner = CouponOwner(id=user.id, name=user.name, email=user.email)

    if not await is_storage_ready(db):
        raise ServiceUnavailable()

    async with _lock_for(owner.id):
        now = now or utcnow()
        day = local_day(now)

        if await count_spins_on(db, owner.id, day) >= 1:
            logger.info("Daily limit reached for user id=%s (%s)", owner.id, day)
            raise DailyLimitReached()

        index, offer = select_offer(selected_offer_index)
        coupon = await _mint(db, owner.id, offer, day, now)

    logger.info(
        "Coupon %s (%s, index %d) issued to user id=%s",
        coupon.code, offer.type.value, index, owner.id,
    )

    if mirror is not None:
        await best_effort(mirror.append_coupon(coupon, owner), f"append {coupon.code}")
    return coupon


async def _mint(db: AsyncSession, user_id: int, offer: Offer, day: str, now: datetime) -> Coupon:
    for attempt in range(1, settings.COUPON_CODE_MAX_ATTEMPTS + 1):
        coupon = Coupon(
            code=ledger.generate_coupon_code(),
            offer_type=offer.type,
            offer_description=offer.description,
            user_id=user_id,
            is_used=False,
            is_active=True,
            expires_at=coupon_expiry(now),
            min_bill_amount=offer.conditions.min_bill_amount,
            time_restriction=offer.conditions.time_restriction,
            applicable_section=offer.conditions.applicable_section,
            spin_day=day,
            created_at=now,
        )
        db.add(coupon)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            if await count_spins_on(db, user_id, day) >= 1:
                logger.info("Concurrent spin for user id=%s lost the race", user_id)
                raise DailyLimitReached()
            logger.warning("Coupon code collision on attempt %d, regenerating", attempt)
            continue
        await db.refresh(coupon)
        return coupon

    raise PersistenceFailure(
        f"Could not allocate a unique coupon code after {settings.COUPON_CODE_MAX_ATTEMPTS} attempts"
    )
