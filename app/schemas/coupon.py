"""Pydantic schemas for spins, coupons and the offer catalog."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field, field_serializer

from app.core.timeutils import ensure_utc
from app.models.coupon import MenuSection, OfferType, TimeRestriction
from app.schemas.common import CamelModel


class SpinRequest(CamelModel):
    # Range is checked against the catalog by the allocator, not here.
    selected_offer_index: int | None = Field(default=None, strict=True)


class ConditionsRead(CamelModel):
    min_bill_amount: int | None = None
    time_restriction: TimeRestriction = TimeRestriction.ALL_DAY
    applicable_section: MenuSection = MenuSection.ALL


class CouponRead(CamelModel):
    id: int
    code: str
    offer_type: OfferType
    offer_description: str
    conditions: ConditionsRead
    is_used: bool
    used_at: datetime | None = None
    expires_at: datetime
    is_active: bool
    created_at: datetime | None = None
    is_expired: bool
    is_valid_for_use: bool

    @field_serializer("used_at", "expires_at", "created_at")
    def _utc(self, dt: datetime | None) -> str | None:
        dt = ensure_utc(dt)
        return dt.isoformat() if dt else None


class CouponOwnerRead(CamelModel):
    name: str
    email: str


class VerifiedCouponRead(CouponRead):
    user: CouponOwnerRead


class SpinResponse(CamelModel):
    success: bool = True
    message: str = "Congratulations! You won a coupon!"
    coupon: CouponRead


class RedeemResponse(CamelModel):
    success: bool = True
    message: str = "Coupon used successfully!"
    coupon: CouponRead


class VerifyCouponResponse(CamelModel):
    success: bool = True
    coupon: VerifiedCouponRead


class MyCouponsResponse(CamelModel):
    success: bool = True
    active_coupons: list[CouponRead]
    used_expired_coupons: list[CouponRead]
    total_coupons: int


class OfferRead(CamelModel):
    index: int
    type: OfferType
    description: str
    conditions: ConditionsRead


class OffersResponse(CamelModel):
    success: bool = True
    offers: list[OfferRead]


class SheetsUrlResponse(CamelModel):
    success: bool = True
    message: str = "Google Sheets URL for coupon management"
    url: str
