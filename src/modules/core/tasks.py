"""Asynchronous tasks for the core module: outbox relay."""

from __future__ import annotations

import structlog
from celery import shared_task
from django.conf import settings
from django.db import connection, transaction

from modules.core.models import OutboxEvent
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)


def _claim(row_id, max_retries: int) -> OutboxEvent | None:
    """Lock *row_id* if it is still deliverable and no other relay holds it.

    Must run inside a transaction.  Backends without row locking (SQLite)
    run a single relay, so the plain re-read is enough there.
    """
    queryset = OutboxEvent.objects.deliverable(max_retries).filter(pk=row_id)
    if connection.features.has_select_for_update_skip_locked:
        queryset = queryset.select_for_update(skip_locked=True)
    return queryset.first()


@shared_task(name="core.publish_outbox_events")
def publish_outbox_events(batch_size: int | None = None) -> dict:
    """Relay deliverable outbox rows to the in-process event bus.

    Each row is claimed and handled in its own transaction, so concurrent
    relays skip rows another worker is delivering.  A handler error marks
    the row as failed (it is retried on the next run until
    ``OUTBOX_MAX_RETRIES`` is reached) without blocking the rest of the batch.
    """
    batch_size = batch_size or settings.OUTBOX_BATCH_SIZE
    max_retries = settings.OUTBOX_MAX_RETRIES
    row_ids = list(
        OutboxEvent.objects.deliverable(max_retries).values_list("id", flat=True)[:batch_size]
    )

    published = failed = 0
    for row_id in row_ids:
        log = logger.bind(outbox_id=str(row_id))
        with transaction.atomic():
            row = _claim(row_id, max_retries)
            if row is None:
                log.debug("outbox.skipped")
                continue

            log = log.bind(event_type=row.event_type)
            try:
                with transaction.atomic():
                    event = DomainEvent.from_payload(row.payload)
                    event_bus.publish(event)
                    row.mark_as_published()
            except Exception as exc:
                log.exception("outbox.publish_failed")
                row.refresh_from_db()
                row.mark_as_failed(f"{exc.__class__.__name__}: {exc}")
                failed += 1
            else:
                log.info("outbox.published")
                published += 1

    return {"published": published, "failed": failed}
