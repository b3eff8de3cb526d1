"""Internal operations endpoints: outbox processing and degraded-state metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.auth.session import SessionUser
from app.core.dependencies import get_db_session, get_internal_session
from app.services.outbox_service import OutboxService

router = APIRouter(prefix="/internal", tags=["internal"])


@router.post("/outbox/process")
def process_outbox(
    limit: int = Query(default=50, ge=1, le=500),
    session: SessionUser = Depends(get_internal_session),
    db: Session = Depends(get_db_session),
) -> dict:
    return OutboxService(db=db).process_pending(limit=limit)


@router.get("/outbox/metrics")
def outbox_metrics(
    session: SessionUser = Depends(get_internal_session),
    db: Session = Depends(get_db_session),
) -> dict:
    return OutboxService(db=db).metrics()
