"""
Clock helpers.

Timestamps are stored in UTC. Calendar days (the one-spin-per-day rule) are
counted in the single fixed deployment timezone, ``settings.TIMEZONE``.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from app.core.config import settings

LOCAL_TZ = ZoneInfo(settings.TIMEZONE)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def local_day(dt: datetime | None = None) -> str:
    """Calendar date (YYYY-MM-DD) of *dt* in the deployment timezone."""
    moment = ensure_utc(dt) or utcnow()
    return moment.astimezone(LOCAL_TZ).strftime("%Y-%m-%d")


def coupon_expiry(issued_at: datetime) -> datetime:
    return issued_at + timedelta(days=settings.COUPON_VALIDITY_DAYS)
