"""
Alumni Background Jobs

Delivers approval and rejection notices parked in the notification outbox:
notices whose inline send failed, and every notice from a bulk approval.

- Idempotent: an entry is marked delivered in the same session that sent it
- Each entry is processed independently; one failure never stops the run
- Entries are dropped when the record was deleted or the decision changed
  since the notice was queued
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession

from alumni_api.core.config import settings
from alumni_api.core.database import async_session_maker
from alumni_api.core.scheduler import register_job
from alumni_api.modules.alumni import repository
from alumni_api.modules.alumni.models import (
    ApprovalStatus,
    NotificationEvent,
    NotificationOutbox,
    OutboxStatus,
)
from alumni_api.modules.alumni.notifications import (
    OUTBOX_FIRST_RETRY_MINUTES,
    Notification,
    dispatch,
)

logger = logging.getLogger(__name__)

JOB_ID_RETRY_NOTIFICATIONS = "alumni_retry_notifications"

MAX_OUTBOX_ATTEMPTS = 5
BATCH_SIZE = 100

_EXPECTED_STATUS = {
    NotificationEvent.APPROVED: ApprovalStatus.APPROVED,
    NotificationEvent.REJECTED: ApprovalStatus.REJECTED,
}


async def _process_entry(db: AsyncSession, entry: NotificationOutbox) -> str:
    expected_status = _EXPECTED_STATUS.get(entry.event)
    if expected_status is None:
        await repository.abandon_notification(db, entry, f"{entry.event.value} is not retryable")
        return "abandoned"

    alumnus = await repository.get_by_id(db, entry.alumni_id)
    if alumnus is None:
        await repository.abandon_notification(db, entry, "alumni record deleted")
        return "abandoned"

    if alumnus.approval_status != expected_status:
        await repository.abandon_notification(db, entry, "superseded by a later decision")
        return "abandoned"

    if await dispatch(Notification.for_alumnus(entry.event, alumnus)):
        await repository.mark_notification_delivered(db, entry)
        return "delivered"

    if entry.attempts + 1 >= MAX_OUTBOX_ATTEMPTS:
        await repository.abandon_notification(
            db, entry, f"delivery failed after {MAX_OUTBOX_ATTEMPTS} scheduled attempts"
        )
        logger.error(
            f"Abandoned {entry.event.value} notification for alumni {entry.alumni_id} "
            f"after {MAX_OUTBOX_ATTEMPTS} scheduled attempts"
        )
        return "abandoned"

    delay = timedelta(minutes=OUTBOX_FIRST_RETRY_MINUTES * 2 ** (entry.attempts + 1))
    await repository.reschedule_notification(
        db, entry, next_attempt_at=datetime.now(UTC) + delay, error="delivery failed"
    )
    return "rescheduled"


async def retry_pending_notifications() -> dict[str, Any]:
    """
    Deliver due outbox entries, each in its own session.

    Returns:
        Counts per outcome: delivered, rescheduled, abandoned, errors
    """
    results: dict[str, Any] = {
        "processed": 0,
        "delivered": 0,
        "rescheduled": 0,
        "abandoned": 0,
        "errors": 0,
    }

    async with async_session_maker() as db:
        due = await repository.get_due_notifications(db, limit=BATCH_SIZE)
        entry_ids = [entry.id for entry in due]

    if not entry_ids:
        logger.debug("No queued alumni notifications due")
        return results

    logger.info(f"Retrying {len(entry_ids)} queued alumni notification(s)")

    for entry_id in entry_ids:
        results["processed"] += 1
        try:
            async with async_session_maker() as db:
                entry = await repository.get_notification(db, entry_id)
                if entry is None or entry.status != OutboxStatus.PENDING:
                    continue
                outcome = await _process_entry(db, entry)
            results[outcome] += 1
        except Exception as e:
            results["errors"] += 1
            logger.error(f"Error retrying queued notification {entry_id}: {e}", exc_info=True)

    logger.info(
        f"Notification retry complete: delivered={results['delivered']}, "
        f"rescheduled={results['rescheduled']}, abandoned={results['abandoned']}, "
        f"errors={results['errors']}"
    )
    return results


def register_alumni_jobs() -> None:
    """Register alumni background jobs. Call before the scheduler starts."""
    interval = settings.notification_retry_interval_minutes

    register_job(
        job_id=JOB_ID_RETRY_NOTIFICATIONS,
        func=retry_pending_notifications,
        trigger=IntervalTrigger(minutes=interval),
    )
    logger.info(f"Registered job: {JOB_ID_RETRY_NOTIFICATIONS} (interval: {interval} minutes)")
