"""
Outbound collaborators: SMTP mailer, Google Sheets mirror and the health check.
"""

import asyncio
import json
import threading
import time
from datetime import datetime, timezone

import aiosmtplib
import pytest
from httpx import AsyncClient

from app.core.config import settings
from app.models.coupon import Coupon
from app.services import mailer as mailer_module
from app.services.mailer import Mailer
from app.services.sheets import (HEADERS, CouponOwner, SheetsMirror, best_effort,
                                 coupon_row)

OWNER = CouponOwner(id=7, name="Ada", email="ada@example.com")


def _coupon(**overrides) -> Coupon:
    fields = dict(
        code="CASABC1234",
        offer_description="A mocktail free",
        is_used=False,
        used_at=None,
        created_at=datetime(2026, 3, 1, 6, 30, tzinfo=timezone.utc),
        expires_at=datetime(2026, 3, 8, 6, 30, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return Coupon(**fields)


# ── Mailer ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_mailer_without_smtp_is_a_logged_noop(monkeypatch):
    monkeypatch.setattr(settings, "SMTP_HOST", "")

    async def _never(*_a, **_kw):
        raise AssertionError("SMTP must not be contacted")

    monkeypatch.setattr(mailer_module.aiosmtplib, "send", _never)
    assert await Mailer().send_welcome("ada@example.com", "Ada") is True


@pytest.mark.asyncio
async def test_mailer_reports_smtp_failure(monkeypatch):
    monkeypatch.setattr(settings, "SMTP_HOST", "smtp.example.com")

    async def _refuse(*_a, **_kw):
        raise aiosmtplib.SMTPException("relay denied")

    monkeypatch.setattr(mailer_module.aiosmtplib, "send", _refuse)
    assert await Mailer().send_signup_code("ada@example.com", "Ada", "123456") is False


@pytest.mark.asyncio
async def test_mailer_builds_message(monkeypatch):
    monkeypatch.setattr(settings, "SMTP_HOST", "smtp.example.com")
    captured = {}

    async def _accept(message, **kwargs):
        captured["message"] = message
        captured["kwargs"] = kwargs

    monkeypatch.setattr(mailer_module.aiosmtplib, "send", _accept)
    ok = await Mailer().send_password_reset_link(
        "ada@example.com", "Ada", "http://localhost:3000/reset-password/abc"
    )
    assert ok is True
    message = captured["message"]
    assert message["To"] == "ada@example.com"
    assert "reset-password/abc" in message.get_content()
    assert captured["kwargs"]["hostname"] == "smtp.example.com"
    assert captured["kwargs"]["timeout"] == settings.SMTP_TIMEOUT_SECONDS


# ── Sheets mirror ───────────────────────────────────────────────────
class _Request:
    def __init__(self, result=None):
        self._result = result or {}

    def execute(self):
        return self._result


class FakeValues:
    """In-memory stand-in for ``spreadsheets().values()``."""

    def __init__(self, rows=None):
        self.rows = rows if rows is not None else []
        self.updates = []

    def get(self, spreadsheetId, range):
        if range.endswith("A1:I1"):
            return _Request({"values": self.rows[:1]} if self.rows else {})
        return _Request({"values": self.rows})

    def update(self, spreadsheetId, range, valueInputOption, body):
        self.updates.append((range, body["values"]))
        if range.endswith("A1:I1"):
            self.rows[:1] = body["values"]
        return _Request()

    def append(self, spreadsheetId, range, valueInputOption, body):
        self.rows.extend(body["values"])
        return _Request()


def _mirror_with(values: FakeValues) -> SheetsMirror:
    mirror = SheetsMirror(spreadsheet_id="sheet-1", service_account_key=json.dumps({}))
    mirror._values = lambda: values
    return mirror


def test_coupon_row_uses_local_time():
    row = coupon_row(_coupon(), OWNER)
    assert len(row) == len(HEADERS)
    assert row[0] == "CASABC1234"
    # 06:30 UTC is 12:00 in Asia/Kolkata
    assert row[4] == "01/03/2026, 12:00:00"
    assert row[6] == "Active"
    assert row[7] == ""
    assert row[8] == "7"


@pytest.mark.asyncio
async def test_unconfigured_mirror_is_skipped():
    mirror = SheetsMirror(spreadsheet_id="", service_account_key="")
    assert mirror.configured is False
    assert mirror.sheet_url is None
    assert await mirror.append_coupon(_coupon(), OWNER) is False
    assert await mirror.update_status("CASABC1234") is False


@pytest.mark.asyncio
async def test_append_writes_header_once():
    values = FakeValues()
    mirror = _mirror_with(values)

    assert await mirror.append_coupon(_coupon(), OWNER) is True
    assert await mirror.append_coupon(_coupon(code="CASXYZ9876"), OWNER) is True
    assert values.rows[0] == HEADERS
    assert [r[0] for r in values.rows[1:]] == ["CASABC1234", "CASXYZ9876"]
    assert mirror.sheet_url == "https://docs.google.com/spreadsheets/d/sheet-1/edit#gid=0"


@pytest.mark.asyncio
async def test_update_status_finds_row_by_code():
    values = FakeValues([HEADERS, ["CASAAA0000"], ["CASABC1234"]])
    mirror = _mirror_with(values)

    assert await mirror.update_status("CASABC1234") is True
    rng, written = values.updates[-1]
    assert rng.endswith("!G3:H3")
    assert written[0][0] == "Used"

    assert await mirror.update_status("CASMISSING") is False


@pytest.mark.asyncio
async def test_mirror_errors_and_timeouts_never_raise(monkeypatch):
    mirror = _mirror_with(FakeValues())

    def _boom():
        raise RuntimeError("quota exceeded")

    mirror._values = _boom
    assert await mirror.append_coupon(_coupon(), OWNER) is False

    monkeypatch.setattr(settings, "MIRROR_TIMEOUT_SECONDS", 0.01)
    slow = _mirror_with(FakeValues())

    def _slow_append(row):
        time.sleep(0.2)

    slow._append_sync = _slow_append
    assert await slow.append_coupon(_coupon(), OWNER) is False


@pytest.mark.asyncio
async def test_concurrent_mirror_calls_do_not_overlap():
    active = 0
    peak = 0
    guard = threading.Lock()

    class _SlowRequest(_Request):
        def execute(self):
            nonlocal active, peak
            with guard:
                active += 1
                peak = max(peak, active)
            time.sleep(0.02)
            with guard:
                active -= 1
            return super().execute()

    class _SlowValues(FakeValues):
        def append(self, spreadsheetId, range, valueInputOption, body):
            super().append(spreadsheetId, range, valueInputOption, body)
            return _SlowRequest()

    values = _SlowValues([HEADERS])
    mirror = _mirror_with(values)

    results = await asyncio.gather(
        *(mirror.append_coupon(_coupon(code=f"CASCONC00{i}"), OWNER) for i in range(5))
    )
    assert all(results)
    assert peak == 1
    assert len(values.rows) == 6


@pytest.mark.asyncio
async def test_best_effort_swallows_errors():
    async def _fails():
        raise ConnectionError("offline")

    async def _works():
        return True

    assert await best_effort(_fails(), "append") is False
    assert await best_effort(_works(), "append") is True


# ── Health ──────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_health(async_client: AsyncClient):
    resp = await async_client.get("/api/v1/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["db"] is True
    assert body["pendingStore"] == "memory"


@pytest.mark.asyncio
async def test_health_reports_database_outage(async_client: AsyncClient, monkeypatch):
    from app.api.v1.endpoints import health as health_module

    async def _down(_db) -> bool:
        await asyncio.sleep(0)
        return False

    monkeypatch.setattr(health_module, "is_storage_ready", _down)
    body = (await async_client.get("/api/v1/health")).json()
    assert body["status"] == "degraded"
    assert body["db"] is False
