"""
Tests for the alumni notification dispatcher.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from alumni_api.modules.alumni.models import NotificationEvent
from alumni_api.modules.alumni.notifications import (
    Notification,
    dispatch,
    notify,
    queue,
)

NOTIFICATIONS = "alumni_api.modules.alumni.notifications"


class TestNotificationForAlumnus:
    def test_carries_record_fields(self, verified_alumnus):
        verified_alumnus.rejection_reason = "Duplicate profile"

        notification = Notification.for_alumnus(NotificationEvent.REJECTED, verified_alumnus)

        assert notification.alumni_id == verified_alumnus.id
        assert notification.to_email == "amit.sharma@example.com"
        assert notification.slug == "amit-sharma"
        assert notification.reason == "Duplicate profile"
        assert notification.token is None


class TestDispatch:
    """Tests for the single delivery attempt."""

    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self, verified_alumnus):
        with patch(f"{NOTIFICATIONS}.send_alumni_approved", new=AsyncMock(return_value=True)) as m:
            result = await dispatch(
                Notification.for_alumnus(NotificationEvent.APPROVED, verified_alumnus)
            )

        assert result is True
        m.assert_called_once_with(
            to_email="amit.sharma@example.com", name="Amit Sharma", slug="amit-sharma"
        )

    @pytest.mark.asyncio
    async def test_failure_is_not_retried_inline(self, verified_alumnus):
        sender = AsyncMock(return_value=False)

        with patch(f"{NOTIFICATIONS}.send_alumni_rejected", new=sender):
            result = await dispatch(
                Notification.for_alumnus(NotificationEvent.REJECTED, verified_alumnus)
            )

        assert result is False
        sender.assert_called_once()

    @pytest.mark.asyncio
    async def test_provider_exception_is_swallowed(self, verified_alumnus):
        sender = AsyncMock(side_effect=RuntimeError("SMTP down"))

        with patch(f"{NOTIFICATIONS}.send_alumni_approved", new=sender):
            result = await dispatch(
                Notification.for_alumnus(NotificationEvent.APPROVED, verified_alumnus)
            )

        assert result is False
        sender.assert_called_once()

    @pytest.mark.asyncio
    async def test_verification_sends_plain_token(self, unverified_alumnus):
        sender = AsyncMock(return_value=True)

        with patch(f"{NOTIFICATIONS}.send_alumni_verification", new=sender):
            await dispatch(
                Notification.for_alumnus(
                    NotificationEvent.VERIFICATION_REQUESTED, unverified_alumnus, token="tok123"
                )
            )

        assert sender.call_args.kwargs["token"] == "tok123"

    @pytest.mark.asyncio
    async def test_verification_without_token_never_sends(self, unverified_alumnus):
        sender = AsyncMock(return_value=True)

        with patch(f"{NOTIFICATIONS}.send_alumni_verification", new=sender):
            result = await dispatch(
                Notification.for_alumnus(
                    NotificationEvent.VERIFICATION_REQUESTED, unverified_alumnus
                )
            )

        assert result is False
        sender.assert_not_called()


class TestNotify:
    """Tests for post-commit notification with outbox fallback."""

    @pytest.mark.asyncio
    async def test_delivered_is_not_queued(self, mock_db, verified_alumnus):
        with (
            patch(f"{NOTIFICATIONS}.dispatch", new=AsyncMock(return_value=True)),
            patch(f"{NOTIFICATIONS}.repository") as mock_repo,
        ):
            mock_repo.enqueue_notification = AsyncMock()

            result = await notify(
                mock_db, Notification.for_alumnus(NotificationEvent.APPROVED, verified_alumnus)
            )

        assert result is True
        mock_repo.enqueue_notification.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_decision_notice_is_queued(self, mock_db, verified_alumnus):
        with (
            patch(f"{NOTIFICATIONS}.dispatch", new=AsyncMock(return_value=False)),
            patch(f"{NOTIFICATIONS}.repository") as mock_repo,
        ):
            mock_repo.enqueue_notification = AsyncMock()

            result = await notify(
                mock_db, Notification.for_alumnus(NotificationEvent.REJECTED, verified_alumnus)
            )

        assert result is False
        kwargs = mock_repo.enqueue_notification.call_args.kwargs
        assert kwargs["alumni_id"] == verified_alumnus.id
        assert kwargs["event"] == NotificationEvent.REJECTED

    @pytest.mark.asyncio
    async def test_failed_verification_is_not_queued(self, mock_db, unverified_alumnus):
        with (
            patch(f"{NOTIFICATIONS}.dispatch", new=AsyncMock(return_value=False)),
            patch(f"{NOTIFICATIONS}.repository") as mock_repo,
        ):
            mock_repo.enqueue_notification = AsyncMock()

            result = await notify(
                mock_db,
                Notification.for_alumnus(
                    NotificationEvent.VERIFICATION_REQUESTED, unverified_alumnus, token="t"
                ),
            )

        assert result is False
        mock_repo.enqueue_notification.assert_not_called()

    @pytest.mark.asyncio
    async def test_queue_failure_does_not_raise(self, mock_db, verified_alumnus):
        with (
            patch(f"{NOTIFICATIONS}.dispatch", new=AsyncMock(return_value=False)),
            patch(f"{NOTIFICATIONS}.repository") as mock_repo,
        ):
            mock_repo.enqueue_notification = AsyncMock(side_effect=RuntimeError("db gone"))

            result = await notify(
                mock_db, Notification.for_alumnus(NotificationEvent.APPROVED, verified_alumnus)
            )

        assert result is False
        mock_db.rollback.assert_awaited_once()


class TestQueue:
    """Tests for parking notices in the outbox."""

    @pytest.mark.asyncio
    async def test_stores_entry_due_after_delay(self, mock_db, verified_alumnus):
        before = datetime.now(UTC)

        with patch(f"{NOTIFICATIONS}.repository") as mock_repo:
            mock_repo.enqueue_notification = AsyncMock()

            stored = await queue(
                mock_db,
                Notification.for_alumnus(NotificationEvent.APPROVED, verified_alumnus),
                delay=timedelta(0),
            )

        assert stored is True
        kwargs = mock_repo.enqueue_notification.call_args.kwargs
        assert kwargs["event"] == NotificationEvent.APPROVED
        assert before <= kwargs["next_attempt_at"] <= datetime.now(UTC)
        mock_db.rollback.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_insert_rolls_back(self, mock_db, verified_alumnus):
        with patch(f"{NOTIFICATIONS}.repository") as mock_repo:
            mock_repo.enqueue_notification = AsyncMock(side_effect=RuntimeError("commit failed"))

            stored = await queue(
                mock_db,
                Notification.for_alumnus(NotificationEvent.REJECTED, verified_alumnus),
                delay=timedelta(minutes=5),
            )

        assert stored is False
        mock_db.rollback.assert_awaited_once()
