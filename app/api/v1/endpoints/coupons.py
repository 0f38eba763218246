"""
Coupon endpoints — spin, list, redeem, staff verification and catalog.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_current_active_user, get_db, get_sheets_mirror
from app.core.exceptions import MirrorNotConfigured
from app.models.user import User
from app.schemas.coupon import (ConditionsRead, CouponOwnerRead, CouponRead,
                                MyCouponsResponse, OfferRead, OffersResponse,
                                RedeemResponse, SheetsUrlResponse, SpinRequest,
                                SpinResponse, VerifiedCouponRead,
                                VerifyCouponResponse)
from app.services import coupons as ledger
from app.services import spin as allocator
from app.services.offers import OFFERS
from app.services.sheets import SheetsMirror

router = APIRouter(prefix="/coupons", tags=["coupons"])
logger = logging.getLogger(__name__)


# ── Spin ────────────────────────────────────────────────────────────
@router.post("/spin", response_model=SpinResponse, status_code=status.HTTP_201_CREATED)
async def spin_wheel(
    body: SpinRequest | None = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    mirror: SheetsMirror = Depends(get_sheets_mirror),
) -> SpinResponse:
    """Allocate today's coupon. Omit ``selectedOfferIndex`` for a random offer."""
    index = body.selected_offer_index if body is not None else None
    coupon = await allocator.spin(db, current_user, index, mirror)
    return SpinResponse(coupon=CouponRead.model_validate(coupon))


# ── Listing ─────────────────────────────────────────────────────────
@router.get("/my-coupons", response_model=MyCouponsResponse)
async def my_coupons(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> MyCouponsResponse:
    coupons = await ledger.list_user_coupons(db, current_user.id)
    coupons.reverse()  # newest first
    usable, spent = ledger.split_by_validity(coupons)
    return MyCouponsResponse(
        active_coupons=[CouponRead.model_validate(c) for c in usable],
        used_expired_coupons=[CouponRead.model_validate(c) for c in spent],
        total_coupons=len(coupons),
    )


@router.get("/offers", response_model=OffersResponse)
async def list_offers() -> OffersResponse:
    """The wheel's segments in stable index order."""
    return OffersResponse(
        offers=[
            OfferRead(
                index=i,
                type=offer.type,
                description=offer.description,
                conditions=ConditionsRead.model_validate(offer.conditions),
            )
            for i, offer in enumerate(OFFERS)
        ]
    )


@router.get("/sheets-url", response_model=SheetsUrlResponse)
async def sheets_url(
    mirror: SheetsMirror = Depends(get_sheets_mirror),
) -> SheetsUrlResponse:
    url = mirror.sheet_url
    if url is None:
        raise MirrorNotConfigured()
    return SheetsUrlResponse(url=url)


# ── Redemption ──────────────────────────────────────────────────────
@router.put("/{coupon_id}/use", response_model=RedeemResponse)
async def use_coupon(
    coupon_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    mirror: SheetsMirror = Depends(get_sheets_mirror),
) -> RedeemResponse:
    coupon = await ledger.redeem(db, coupon_id, current_user.id, mirror)
    return RedeemResponse(coupon=CouponRead.model_validate(coupon))


@router.get("/verify/{code}", response_model=VerifyCouponResponse)
async def verify_coupon(
    code: str,
    db: AsyncSession = Depends(get_db),
) -> VerifyCouponResponse:
    """Public staff check of a printed code. Does not redeem."""
    coupon, owner = await ledger.verify_by_code(db, code)
    payload = CouponRead.model_validate(coupon).model_dump()
    return VerifyCouponResponse(
        coupon=VerifiedCouponRead(**payload, user=CouponOwnerRead.model_validate(owner))
    )
