"""Transactional outbox for best-effort side effects."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import requests
from sqlalchemy import func

from app.core.enums import BenchmarkType, OutboxStatus, UserType
from app.core.exceptions import ConfigurationError
from app.models import OutboxEvent
from app.services.base_service import BaseService, utcnow
from app.services.benchmark_service import BenchmarkService

logger = logging.getLogger(__name__)

NOTIFICATION_PREFIX = "notification."
WORKFLOW_CREATE = "workflow.create"
BENCHMARK_RETRY = "benchmark.retry"


class OutboxService(BaseService):
    """Records side-effect intents with the business change and delivers them later.

    ``record`` only adds the row to the current session, so the intent commits
    or rolls back together with the caller's transaction.
    """

    def record(self, event_type: str, payload: dict[str, Any]) -> OutboxEvent:
        event = OutboxEvent(
            event_type=event_type,
            payload=dict(payload),
            status=OutboxStatus.PENDING.value,
            attempts=0,
        )
        self.db.add(event)
        self.db.flush()
        logger.debug("outbox.recorded", extra={"event": "outbox.recorded", "order_id": payload.get("orderId")})
        return event

    def _handler_for(self, event_type: str) -> Callable[[dict[str, Any]], None]:
        if event_type.startswith(NOTIFICATION_PREFIX):
            return lambda payload: self._send_notification(event_type, payload)
        if event_type == WORKFLOW_CREATE:
            return self._create_workflow
        if event_type == BENCHMARK_RETRY:
            return self._retry_benchmark
        raise ConfigurationError(f"No outbox handler for event type: {event_type}")

    def _post(self, url: str, body: dict[str, Any]) -> None:
        response = requests.post(url, json=body, timeout=(2, self.config.EXTERNAL_TIMEOUT_SECONDS))
        response.raise_for_status()

    def _send_notification(self, event_type: str, payload: dict[str, Any]) -> None:
        url = self.config.NOTIFICATION_WEBHOOK_URL
        if not url:
            logger.info(
                "outbox.notification.no_sink",
                extra={"event": "outbox.notification.no_sink", "order_id": payload.get("orderId")},
            )
            return
        self._post(url, {"type": event_type, "payload": payload})

    def _create_workflow(self, payload: dict[str, Any]) -> None:
        url = self.config.WORKFLOW_SERVICE_URL
        if not url:
            raise ConfigurationError("WORKFLOW_SERVICE_URL is not configured.")
        self._post(f"{url.rstrip('/')}/workflows", payload)

    def _retry_benchmark(self, payload: dict[str, Any]) -> None:
        BenchmarkService(db=self.db, config=self.config).create_benchmark(
            order_id=int(payload["orderId"]),
            captured_by_user_id=int(payload["capturedBy"]),
            benchmark_type=payload.get("benchmarkType", BenchmarkType.MANUAL.value),
            actor_type=payload.get("actorType", UserType.INTERNAL.value),
            notes=payload.get("notes"),
        )

    def process_pending(self, limit: int = 50) -> dict[str, int]:
        """Deliver pending events in id order; each event settles in its own commit."""
        events = (
            self.db.query(OutboxEvent)
            .filter(OutboxEvent.status == OutboxStatus.PENDING.value)
            .order_by(OutboxEvent.id)
            .limit(limit)
            .all()
        )
        summary = {"processed": 0, "retried": 0, "failed": 0}
        for event in events:
            event_id = event.id
            try:
                self._handler_for(event.event_type)(dict(event.payload or {}))
            except Exception as exc:
                # Handlers may leave the session dirty; settle the event on a clean one.
                self.db.rollback()
                event = self.db.get(OutboxEvent, event_id)
                event.attempts = (event.attempts or 0) + 1
                event.last_error = f"{type(exc).__name__}: {exc}"[:2000]
                if event.attempts >= self.config.OUTBOX_MAX_ATTEMPTS:
                    event.status = OutboxStatus.FAILED.value
                    summary["failed"] += 1
                else:
                    summary["retried"] += 1
                self.commit()
                logger.warning(
                    "outbox.delivery.failed",
                    extra={"event": "outbox.delivery.failed", "error": event.last_error},
                )
                continue

            event = self.db.get(OutboxEvent, event_id)
            event.status = OutboxStatus.PROCESSED.value
            event.attempts = (event.attempts or 0) + 1
            event.processed_at = utcnow()
            self.commit()
            summary["processed"] += 1

        logger.info("outbox.processed", extra={"event": "outbox.processed"})
        return summary

    def metrics(self) -> dict[str, Any]:
        rows = (
            self.db.query(OutboxEvent.status, OutboxEvent.event_type, func.count(OutboxEvent.id))
            .group_by(OutboxEvent.status, OutboxEvent.event_type)
            .all()
        )
        by_status = {status.value: 0 for status in OutboxStatus}
        by_event_type: dict[str, dict[str, int]] = {}
        for status, event_type, count in rows:
            by_status[status] = by_status.get(status, 0) + count
            by_event_type.setdefault(event_type, {})[status] = count
        return {
            "byStatus": by_status,
            "byEventType": by_event_type,
            "degraded": by_status.get(OutboxStatus.FAILED.value, 0) > 0,
        }
