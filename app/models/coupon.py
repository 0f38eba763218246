"""
Coupon model — one row per successful spin.

Offer text and conditions are copied from the catalog at issuance, so later
catalog edits never touch coupons already handed out.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import (Boolean, Column, DateTime, Enum, ForeignKey, Index,
                        Integer, String, Text, UniqueConstraint)
from sqlalchemy.orm import relationship

from app.core.timeutils import ensure_utc, utcnow
from app.db.base import Base


class OfferType(str, enum.Enum):
    FREE_BEVERAGE_BREAKFAST = "FREE_BEVERAGE_BREAKFAST"
    NONVEG_10_PERCENT_OFF = "NONVEG_10_PERCENT_OFF"
    TANDOOR_10_PERCENT_OFF = "TANDOOR_10_PERCENT_OFF"
    BOWL_FREE_ADDON = "BOWL_FREE_ADDON"
    CHINESE_HONEY_CHILI_POTATO = "CHINESE_HONEY_CHILI_POTATO"
    CHINESE_MEAL_HONEY_CHILI = "CHINESE_MEAL_HONEY_CHILI"
    FLAT_20_PERCENT_OFF_2000 = "FLAT_20_PERCENT_OFF_2000"
    FREE_MOCKTAIL_BIRYANI = "FREE_MOCKTAIL_BIRYANI"


class TimeRestriction(str, enum.Enum):
    BREAKFAST = "BREAKFAST"
    EVENING = "EVENING"
    ALL_DAY = "ALL_DAY"


class MenuSection(str, enum.Enum):
    BREAKFAST = "BREAKFAST"
    NONVEG = "NONVEG"
    TANDOOR = "TANDOOR"
    BOWL = "BOWL"
    CHINESE = "CHINESE"
    ALL = "ALL"


@dataclass(frozen=True)
class OfferConditions:
    min_bill_amount: int | None = None
    time_restriction: TimeRestriction = TimeRestriction.ALL_DAY
    applicable_section: MenuSection = MenuSection.ALL


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        # At most one coupon per user per local calendar day, even under
        # concurrent spins from several workers.
        UniqueConstraint("user_id", "spin_day", name="uq_coupon_user_spin_day"),
        Index("ix_coupon_user_created", "user_id", "created_at"),
    )

    id: int = Column(Integer, primary_key=True, index=True)  # type: ignore[assignment]
    code: str = Column(String(16), unique=True, nullable=False, index=True)  # type: ignore[assignment]
    offer_type: OfferType = Column(  # type: ignore[assignment]
        Enum(OfferType, native_enum=False, length=40), nullable=False
    )
    offer_description: str = Column(Text, nullable=False)  # type: ignore[assignment]
    user_id: int = Column(Integer, ForeignKey("users.id"), nullable=False)  # type: ignore[assignment]
    is_used: bool = Column(Boolean, nullable=False, default=False, server_default="false")  # type: ignore[assignment]
    used_at: datetime | None = Column(DateTime(timezone=True), nullable=True)  # type: ignore[assignment]
    expires_at: datetime = Column(DateTime(timezone=True), nullable=False)  # type: ignore[assignment]
    is_active: bool = Column(Boolean, nullable=False, default=True, server_default="true")  # type: ignore[assignment]

    min_bill_amount: int | None = Column(Integer, nullable=True)  # type: ignore[assignment]
    time_restriction: TimeRestriction = Column(  # type: ignore[assignment]
        Enum(TimeRestriction, native_enum=False, length=20),
        nullable=False,
        default=TimeRestriction.ALL_DAY,
    )
    applicable_section: MenuSection = Column(  # type: ignore[assignment]
        Enum(MenuSection, native_enum=False, length=20),
        nullable=False,
        default=MenuSection.ALL,
    )

    spin_day: str = Column(String(10), nullable=False)  # type: ignore[assignment]  # YYYY-MM-DD, local
    created_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )
    updated_at: datetime = Column(  # type: ignore[assignment]
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    user = relationship("User", back_populates="coupons")

    # ── Validity (computed on every access, never stored) ───────────
    def expired_at(self, now: datetime) -> bool:
        return ensure_utc(now) > ensure_utc(self.expires_at)

    def valid_at(self, now: datetime) -> bool:
        return not self.is_used and self.is_active and not self.expired_at(now)

    @property
    def is_expired(self) -> bool:
        return self.expired_at(utcnow())

    @property
    def is_valid_for_use(self) -> bool:
        return self.valid_at(utcnow())

    @property
    def conditions(self) -> OfferConditions:
        return OfferConditions(
            min_bill_amount=self.min_bill_amount,
            time_restriction=self.time_restriction,
            applicable_section=self.applicable_section,
        )
