"""
The fixed, ordered list of wheel rewards.

Wheel clients address offers by index, so the order below is part of the
public contract for a deployment. Append new offers; never reorder.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.core.exceptions import InvalidOfferIndex
from app.models.coupon import MenuSection, OfferConditions, OfferType, TimeRestriction


@dataclass(frozen=True)
class Offer:
    type: OfferType
    description: str
    conditions: OfferConditions = OfferConditions()


OFFERS: tuple[Offer, ...] = (
    Offer(
        OfferType.FREE_BEVERAGE_BREAKFAST,
        "Order anything from our breakfast section and get a hot beverage free of your choice.",
        OfferConditions(
            time_restriction=TimeRestriction.BREAKFAST,
            applicable_section=MenuSection.BREAKFAST,
        ),
    ),
    Offer(
        OfferType.NONVEG_10_PERCENT_OFF,
        "Order any item from our non-veg section and get a 10% off.",
        OfferConditions(applicable_section=MenuSection.NONVEG),
    ),
    Offer(
        OfferType.TANDOOR_10_PERCENT_OFF,
        "Flat 10% off on any one item from our tandoor section. (Active in evening).",
        OfferConditions(
            time_restriction=TimeRestriction.EVENING,
            applicable_section=MenuSection.TANDOOR,
        ),
    ),
    Offer(
        OfferType.BOWL_FREE_ADDON,
        "Order from our 'Bowl' section and get average add on the house.",
        OfferConditions(applicable_section=MenuSection.BOWL),
    ),
    Offer(
        OfferType.CHINESE_HONEY_CHILI_POTATO,
        "Order one full course Chinese meal and get honey chili potato from us.",
        OfferConditions(applicable_section=MenuSection.CHINESE),
    ),
    Offer(
        OfferType.CHINESE_MEAL_HONEY_CHILI,
        "Have a full course Chinese meal and get honey chili potato from us.",
        OfferConditions(applicable_section=MenuSection.CHINESE),
    ),
    Offer(
        OfferType.FLAT_20_PERCENT_OFF_2000,
        "Wow! A flat 20% off on your total bill. Minimum bill value should be Rupees 2000.",
        OfferConditions(min_bill_amount=2000),
    ),
    Offer(
        OfferType.FREE_MOCKTAIL_BIRYANI,
        "A mocktail free to quench your thirst after having our delicious Hyderabad Biryani!",
        OfferConditions(applicable_section=MenuSection.ALL),
    ),
)


def get_offer(index: int, catalog: tuple[Offer, ...] | None = None) -> Offer:
    """Return the offer at *index*; out-of-range indexes are rejected, never wrapped."""
    catalog = OFFERS if catalog is None else catalog
    if isinstance(index, bool) or not 0 <= index < len(catalog):
        raise InvalidOfferIndex(
            f"Offer index {index} is out of range (0-{len(catalog) - 1})"
        )
    return catalog[index]

