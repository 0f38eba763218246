"""
Public health check: database reachability and pending-store backend.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.deps import get_db, get_pending_store
from app.db.session import is_storage_ready
from app.schemas.common import HealthResponse
from app.services.pending_registrations import PendingStore

router = APIRouter(tags=["health"])
logger = logging.getLogger(__name__)


@router.get("/health", response_model=HealthResponse)
async def health(
    db: AsyncSession = Depends(get_db),
    store: PendingStore = Depends(get_pending_store),
) -> HealthResponse:
    db_ok = await is_storage_ready(db)
    store_ok = await store.ping()
    if not (db_ok and store_ok):
        logger.warning("Health check degraded: db=%s pending_store=%s", db_ok, store_ok)
    return HealthResponse(
        status="ok" if db_ok and store_ok else "degraded",
        db=db_ok,
        pending_store=store.backend,
        pending_store_ok=store_ok,
    )
