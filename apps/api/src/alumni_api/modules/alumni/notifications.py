"""
Alumni Notification Dispatcher

Delivers workflow emails after the triggering change has been committed.
Nothing here raises into the caller and nothing waits between attempts:
a request makes at most one send. Approval and rejection notices that do
not go out are parked in the outbox for the retry job; verification links
are reported back to the caller instead, since their plain token is never
persisted.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from alumni_api.core.email import (
    send_alumni_approved,
    send_alumni_rejected,
    send_alumni_verification,
)
from alumni_api.modules.alumni import repository
from alumni_api.modules.alumni.helpers import mask_email
from alumni_api.modules.alumni.models import Alumni, NotificationEvent

logger = logging.getLogger(__name__)

OUTBOX_FIRST_RETRY_MINUTES = 5


@dataclass(frozen=True)
class Notification:
    event: NotificationEvent
    alumni_id: UUID
    to_email: str
    name: str
    slug: str
    token: str | None = None
    reason: str | None = None

    @classmethod
    def for_alumnus(
        cls,
        event: NotificationEvent,
        alumnus: Alumni,
        token: str | None = None,
    ) -> "Notification":
        return cls(
            event=event,
            alumni_id=alumnus.id,
            to_email=alumnus.email,
            name=alumnus.name,
            slug=alumnus.slug,
            token=token,
            reason=alumnus.rejection_reason,
        )


async def _send_once(notification: Notification) -> bool:
    if notification.event == NotificationEvent.VERIFICATION_REQUESTED:
        if not notification.token:
            raise ValueError("verification notification without a token")
        return await send_alumni_verification(
            to_email=notification.to_email,
            name=notification.name,
            token=notification.token,
        )

    if notification.event == NotificationEvent.APPROVED:
        return await send_alumni_approved(
            to_email=notification.to_email,
            name=notification.name,
            slug=notification.slug,
        )

    return await send_alumni_rejected(
        to_email=notification.to_email,
        name=notification.name,
        reason=notification.reason,
    )


async def dispatch(notification: Notification) -> bool:
    """
    Make one delivery attempt. Never raises and never sleeps.

    Retries are left to the outbox job so a slow provider costs a request
    at most one send.
    """
    try:
        if await _send_once(notification):
            return True
        error = "provider rejected the message"
    except Exception as e:
        error = str(e)

    logger.warning(
        f"Delivery of {notification.event.value} for alumni {notification.alumni_id} "
        f"({mask_email(notification.to_email)}) failed: {error}"
    )
    return False


async def queue(db: AsyncSession, notification: Notification, delay: timedelta) -> bool:
    """
    Park an approval or rejection notice in the outbox for the retry job.

    A failed insert is logged and rolled back so ``db`` stays usable for
    the caller's next record.

    Returns:
        Whether the entry was stored
    """
    try:
        await repository.enqueue_notification(
            db,
            alumni_id=notification.alumni_id,
            event=notification.event,
            next_attempt_at=datetime.now(UTC) + delay,
        )
    except Exception as e:
        await db.rollback()
        logger.error(
            f"Failed to queue {notification.event.value} notification for alumni "
            f"{notification.alumni_id}: {e}",
            exc_info=True,
        )
        return False

    logger.info(
        f"Queued {notification.event.value} notification for alumni {notification.alumni_id}"
    )
    return True


async def notify(db: AsyncSession, notification: Notification) -> bool:
    """
    Dispatch a post-commit notification with a single inline attempt.

    Approval and rejection notices that fail go to the outbox. Returns
    whether the email went out now.
    """
    if await dispatch(notification):
        return True

    if notification.event != NotificationEvent.VERIFICATION_REQUESTED:
        await queue(db, notification, timedelta(minutes=OUTBOX_FIRST_RETRY_MINUTES))
    return False
