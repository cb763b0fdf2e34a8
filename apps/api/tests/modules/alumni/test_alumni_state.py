"""
Tests for the alumni moderation state machine.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from alumni_api.modules.alumni import state
from alumni_api.modules.alumni.models import Alumni, ApprovalStatus

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
VERIFIED_AT = NOW - timedelta(days=2)


def _record(**columns):
    alumnus = MagicMock(spec=Alumni)
    alumnus.id = uuid4()
    alumnus.approval_status = ApprovalStatus.PENDING
    alumnus.email_verified_at = None
    alumnus.approved_at = None
    alumnus.approved_by = None
    alumnus.rejection_reason = None
    for name, value in columns.items():
        setattr(alumnus, name, value)
    return alumnus


class TestStateOf:
    """Tests for reading a state from record columns."""

    def test_fresh_record_is_unverified(self):
        assert state.state_of(_record()) == state.Unverified()

    def test_verified_pending_record(self):
        result = state.state_of(_record(email_verified_at=VERIFIED_AT))
        assert result == state.PendingApproval(verified_at=VERIFIED_AT)

    def test_approved_record(self):
        admin = uuid4()
        result = state.state_of(
            _record(
                approval_status=ApprovalStatus.APPROVED,
                email_verified_at=VERIFIED_AT,
                approved_at=NOW,
                approved_by=admin,
            )
        )
        assert result == state.Approved(verified_at=VERIFIED_AT, approved_at=NOW, approved_by=admin)

    def test_rejected_record_without_reason_reads_empty_reason(self):
        admin = uuid4()
        result = state.state_of(
            _record(
                approval_status=ApprovalStatus.REJECTED,
                email_verified_at=VERIFIED_AT,
                approved_at=NOW,
                approved_by=admin,
            )
        )
        assert isinstance(result, state.Rejected)
        assert result.reason == ""
        assert result.rejected_by == admin

    def test_approved_without_approver_is_inconsistent(self):
        with pytest.raises(state.InconsistentStateError):
            state.state_of(
                _record(
                    approval_status=ApprovalStatus.APPROVED,
                    email_verified_at=VERIFIED_AT,
                    approved_at=NOW,
                )
            )

    def test_approved_but_unverified_is_inconsistent(self):
        with pytest.raises(state.InconsistentStateError):
            state.state_of(
                _record(
                    approval_status=ApprovalStatus.APPROVED,
                    approved_at=NOW,
                    approved_by=uuid4(),
                )
            )

    def test_pending_with_decision_stamp_is_inconsistent(self):
        with pytest.raises(state.InconsistentStateError):
            state.state_of(_record(email_verified_at=VERIFIED_AT, approved_by=uuid4()))


class TestTransitions:
    """Tests for verify / approve / reject."""

    def test_verify_unverified(self):
        assert state.verify(state.Unverified(), NOW) == state.PendingApproval(verified_at=NOW)

    def test_verify_keeps_original_timestamp(self):
        current = state.PendingApproval(verified_at=VERIFIED_AT)
        assert state.verify(current, NOW) is current

    def test_verify_does_not_touch_decision(self):
        current = state.Approved(verified_at=VERIFIED_AT, approved_at=NOW, approved_by=uuid4())
        assert state.verify(current, NOW + timedelta(hours=1)) is current

    def test_approve_unverified_raises(self):
        with pytest.raises(state.VerificationRequiredError):
            state.approve(state.Unverified(), uuid4(), NOW)

    def test_reject_unverified_raises(self):
        with pytest.raises(state.VerificationRequiredError):
            state.reject(state.Unverified(), uuid4(), NOW, "No record")

    def test_approve_pending(self):
        admin = uuid4()
        result = state.approve(state.PendingApproval(verified_at=VERIFIED_AT), admin, NOW)
        assert result == state.Approved(verified_at=VERIFIED_AT, approved_at=NOW, approved_by=admin)

    def test_reapprove_restamps(self):
        first_admin, second_admin = uuid4(), uuid4()
        approved = state.approve(state.PendingApproval(verified_at=VERIFIED_AT), first_admin, NOW)
        later = NOW + timedelta(hours=3)

        result = state.approve(approved, second_admin, later)

        assert result.approved_by == second_admin
        assert result.approved_at == later
        assert result.verified_at == VERIFIED_AT

    def test_reject_without_reason_stores_empty_string(self):
        result = state.reject(state.PendingApproval(verified_at=VERIFIED_AT), uuid4(), NOW)
        assert result.reason == ""

    def test_reject_approved_record(self):
        admin = uuid4()
        approved = state.approve(state.PendingApproval(verified_at=VERIFIED_AT), uuid4(), NOW)

        result = state.reject(approved, admin, NOW, "Duplicate profile")

        assert result.rejected_by == admin
        assert result.reason == "Duplicate profile"


class TestApplyState:
    """Tests for writing a state back to the record."""

    def test_approve_after_reject_clears_reason(self):
        alumnus = _record(email_verified_at=VERIFIED_AT)
        admin = uuid4()

        state.apply_state(
            alumnus, state.reject(state.state_of(alumnus), admin, NOW, "Could not confirm batch")
        )
        assert alumnus.approval_status == ApprovalStatus.REJECTED
        assert alumnus.rejection_reason == "Could not confirm batch"

        state.apply_state(alumnus, state.approve(state.state_of(alumnus), admin, NOW))

        assert alumnus.approval_status == ApprovalStatus.APPROVED
        assert alumnus.rejection_reason is None
        assert alumnus.approved_by == admin
        assert alumnus.email_verified_at == VERIFIED_AT

    def test_pending_state_clears_decision_columns(self):
        alumnus = _record(
            approval_status=ApprovalStatus.APPROVED,
            email_verified_at=VERIFIED_AT,
            approved_at=NOW,
            approved_by=uuid4(),
        )

        state.apply_state(alumnus, state.PendingApproval(verified_at=VERIFIED_AT))

        assert alumnus.approval_status == ApprovalStatus.PENDING
        assert alumnus.approved_at is None
        assert alumnus.approved_by is None

    def test_round_trip_through_columns(self):
        admin = uuid4()
        rejected = state.Rejected(
            verified_at=VERIFIED_AT, rejected_at=NOW, rejected_by=admin, reason="Spam"
        )
        alumnus = _record()

        state.apply_state(alumnus, rejected)

        assert state.state_of(alumnus) == rejected
