"""
Google Sheets mirror — a best-effort copy of issued coupons for restaurant staff.

Nothing here is on the critical path: every public coroutine returns ``True``
or ``False`` and logs failures instead of raising. The Google client is
blocking, so calls run in a worker thread under ``MIRROR_TIMEOUT_SECONDS``.
Its HTTP transport is not thread-safe, so those calls are serialised by a
per-mirror lock; a call abandoned on timeout still holds the lock until it ends.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from app.core.config import settings
from app.core.timeutils import LOCAL_TZ, ensure_utc, utcnow

if TYPE_CHECKING:
    from datetime import datetime

    from app.models.coupon import Coupon

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

HEADERS = [
    "Coupon Code",
    "User Name",
    "Email",
    "Offer Description",
    "Created At",
    "Expires At",
    "Status",
    "Used At",
    "User ID",
]


def _fmt(dt: datetime | None) -> str:
    if dt is None:
        return ""
    return ensure_utc(dt).astimezone(LOCAL_TZ).strftime("%d/%m/%Y, %H:%M:%S")


@dataclass(frozen=True)
class CouponOwner:
    id: int
    name: str
    email: str


def coupon_row(coupon: Coupon, user: CouponOwner) -> list[Any]:
    return [
        coupon.code,
        user.name,
        user.email,
        coupon.offer_description,
        _fmt(coupon.created_at),
        _fmt(coupon.expires_at),
        "Used" if coupon.is_used else "Active",
        _fmt(coupon.used_at),
        str(user.id),
    ]


class SheetsMirror:
    def __init__(
        self,
        spreadsheet_id: str | None = None,
        service_account_key: str | None = None,
        tab: str | None = None,
    ) -> None:
        self.spreadsheet_id = settings.GOOGLE_SHEETS_ID if spreadsheet_id is None else spreadsheet_id
        self._key = (
            settings.GOOGLE_SERVICE_ACCOUNT_KEY if service_account_key is None else service_account_key
        )
        self.tab = tab or settings.GOOGLE_SHEETS_TAB
        self._service = None
        self._headers_ready = False
        self._lock = threading.Lock()

    @property
    def configured(self) -> bool:
        return bool(self.spreadsheet_id and self._key)

    @property
    def sheet_url(self) -> str | None:
        if not self.spreadsheet_id:
            return None
        return f"https://docs.google.com/spreadsheets/d/{self.spreadsheet_id}/edit#gid=0"

    # ── Blocking helpers (run in a worker thread) ──────────────────
    def _values(self):
        if self._service is None:
            from google.oauth2 import service_account
            from googleapiclient.discovery import build

            credentials = service_account.Credentials.from_service_account_info(
                json.loads(self._key), scopes=SCOPES
            )
            self._service = build("sheets", "v4", credentials=credentials, cache_discovery=False)
        return self._service.spreadsheets().values()

    def _ensure_headers(self) -> None:
        if self._headers_ready:
            return
        values = self._values()
        existing = (
            values.get(spreadsheetId=self.spreadsheet_id, range=f"{self.tab}!A1:I1")
            .execute()
            .get("values")
        )
        if not existing:
            values.update(
                spreadsheetId=self.spreadsheet_id,
                range=f"{self.tab}!A1:I1",
                valueInputOption="RAW",
                body={"values": [HEADERS]},
            ).execute()
        self._headers_ready = True

    def _append_sync(self, row: list[Any]) -> None:
        self._ensure_headers()
        self._values().append(
            spreadsheetId=self.spreadsheet_id,
            range=f"{self.tab}!A:I",
            valueInputOption="RAW",
            body={"values": [row]},
        ).execute()

    def _update_status_sync(self, code: str, status: str, used_at: str) -> bool:
        values = self._values()
        rows = (
            values.get(spreadsheetId=self.spreadsheet_id, range=f"{self.tab}!A:I")
            .execute()
            .get("values", [])
        )
        for i, row in enumerate(rows[1:], start=2):  # row 1 is the header
            if row and row[0] == code:
                values.update(
                    spreadsheetId=self.spreadsheet_id,
                    range=f"{self.tab}!G{i}:H{i}",
                    valueInputOption="RAW",
                    body={"values": [[status, used_at]]},
                ).execute()
                return True
        logger.warning("Coupon %s not found in Google Sheets", code)
        return False

    # ── Public, never raises ────────────────────────────────────────
    async def _run(self, what: str, func, *args) -> bool:
        if not self.configured:
            logger.debug("Google Sheets not configured, skipping %s", what)
            return False
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(self._call_locked, func, *args),
                timeout=settings.MIRROR_TIMEOUT_SECONDS,
            )
        except Exception as e:
            logger.warning("⚠️ Google Sheets %s failed (non-critical): %s", what, e)
            return False
        return result is not False

    async def append_coupon(self, coupon: Coupon, user: CouponOwner) -> bool:
        ok = await self._run(f"append {coupon.code}", self._append_sync, coupon_row(coupon, user))
        if ok:
            logger.info("Coupon %s mirrored to Google Sheets", coupon.code)
        return ok

    async def update_status(self, code: str, status: str = "Used") -> bool:
        return await self._run(
            f"status update {code}", self._update_status_sync, code, status, _fmt(utcnow())
        )


async def best_effort(call, what: str) -> bool:
    """Await a mirror call; any failure is logged and reported as ``False``."""
    try:
        return bool(await call)
    except Exception as e:
        logger.warning("⚠️ Mirror %s failed (non-critical): %s", what, e)
        return False
