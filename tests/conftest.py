"""
Shared test fixtures for the spin-rewards test suite.

Each test gets its own in-memory aiosqlite database (StaticPool, so every
session sees the same connection) and fresh fakes for the mail dispatcher,
the Google Sheets mirror and the pending-registration store.
"""

import os
import sys
from typing import AsyncGenerator

import pytest

# Ensure project root is importable
ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

# Override environment BEFORE importing application modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
# CORS fix (JSON format)
os.environ["CORS_ORIGINS"] = '["*"]'
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["PENDING_STORE_BACKEND"] = "memory"
os.environ["SMTP_HOST"] = ""
os.environ["GOOGLE_SHEETS_ID"] = ""
os.environ["GOOGLE_SERVICE_ACCOUNT_KEY"] = ""

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.api.v1.deps import get_db, get_mailer, get_pending_store, get_sheets_mirror
from app.core.security import create_access_token, get_password_hash
from app.db.base import Base
from app.main import app
from app.models.user import User
from app.services.mailer import Mailer
from app.services.pending_registrations import InMemoryPendingStore

# ── Fakes ───────────────────────────────────────────────────────────
class FakeMailer(Mailer):
    """Records every message instead of talking to SMTP."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str, str]] = []
        self.fail = False

    async def send(self, to: str, subject: str, body: str) -> bool:
        if self.fail:
            return False
        self.sent.append((to, subject, body))
        return True

    def subjects(self) -> list[str]:
        return [subject for _, subject, _ in self.sent]


class FakeMirror:
    """Stands in for SheetsMirror; can be told to blow up."""

    def __init__(self, url: str | None = None) -> None:
        self.sheet_url = url
        self.configured = url is not None
        self.appended: list[tuple[str, str]] = []
        self.status_updates: list[tuple[str, str]] = []
        self.explode = False

    async def append_coupon(self, coupon, user) -> bool:
        if self.explode:
            raise RuntimeError("sheets down")
        self.appended.append((coupon.code, user.email))
        return True

    async def update_status(self, code: str, status: str = "Used") -> bool:
        if self.explode:
            raise RuntimeError("sheets down")
        self.status_updates.append((code, status))
        return True


# ── Database ────────────────────────────────────────────────────────
@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Return a raw database session for direct queries in tests."""
    async with session_factory() as session:
        yield session


# ── Collaborators ───────────────────────────────────────────────────
@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def mirror() -> FakeMirror:
    return FakeMirror()


@pytest.fixture
def pending_store() -> InMemoryPendingStore:
    return InMemoryPendingStore()


@pytest.fixture
async def async_client(
    session_factory, mailer, mirror, pending_store
) -> AsyncGenerator[AsyncClient, None]:
    """Return a httpx AsyncClient wired to the app."""

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    app.dependency_overrides[get_sheets_mirror] = lambda: mirror
    app.dependency_overrides[get_pending_store] = lambda: pending_store

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Users ───────────────────────────────────────────────────────────
@pytest.fixture
def make_user(db_session: AsyncSession):
    async def _make(
        email: str = "ada@example.com",
        password: str = "secret123",
        name: str = "Ada",
        verified: bool = True,
        active: bool = True,
    ) -> User:
        user = User(
            name=name,
            email=email,
            hashed_password=get_password_hash(password),
            is_email_verified=verified,
            is_active=active,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make


@pytest.fixture
async def user(make_user) -> User:
    return await make_user()


def _auth_headers(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


@pytest.fixture
def headers(user: User) -> dict[str, str]:
    return _auth_headers(user.id)


@pytest.fixture
def auth_for():
    """Bearer headers for an arbitrary user id."""
    return _auth_headers


@pytest.fixture
async def file_sessions(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Session factory over a file-backed database: one connection per session."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'caspian.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()
