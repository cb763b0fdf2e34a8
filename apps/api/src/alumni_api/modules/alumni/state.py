"""
Moderation state of an alumni record.

The record's moderation columns are read into one of four states and
written back in a single step, so a state can only ever carry the fields
that belong to it:

    Unverified ──verify──▶ PendingApproval ──approve──▶ Approved
                                  │                      ▲   │
                                  └──reject──▶ Rejected ─┘   │
                                                   ▲─────────┘

Approving or rejecting an ``Unverified`` record raises
``VerificationRequiredError``. Re-approving and re-rejecting are allowed and
re-stamp the decision.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from .models import Alumni, ApprovalStatus


class VerificationRequiredError(Exception):
    """Approve/reject attempted before the email was verified."""


class InconsistentStateError(ValueError):
    """Stored moderation columns do not describe any valid state."""


@dataclass(frozen=True)
class Unverified:
    pass


@dataclass(frozen=True)
class PendingApproval:
    verified_at: datetime


@dataclass(frozen=True)
class Approved:
    verified_at: datetime
    approved_at: datetime
    approved_by: UUID


@dataclass(frozen=True)
class Rejected:
    verified_at: datetime
    rejected_at: datetime
    rejected_by: UUID
    reason: str


ModerationState = Unverified | PendingApproval | Approved | Rejected


def state_of(alumnus: Alumni) -> ModerationState:
    """
    Read the moderation state from a record's columns.

    Raises:
        InconsistentStateError: If the columns violate the state rules
            (e.g. approved without an approver, or approved but unverified)
    """
    verified_at = alumnus.email_verified_at
    status = alumnus.approval_status

    if status == ApprovalStatus.PENDING:
        if alumnus.approved_at or alumnus.approved_by or alumnus.rejection_reason:
            raise InconsistentStateError(f"Pending record {alumnus.id} carries a decision")
        if verified_at is None:
            return Unverified()
        return PendingApproval(verified_at=verified_at)

    if verified_at is None or alumnus.approved_at is None or alumnus.approved_by is None:
        raise InconsistentStateError(
            f"Record {alumnus.id} is {status.value} without verification or decision stamp"
        )

    if status == ApprovalStatus.APPROVED:
        return Approved(
            verified_at=verified_at,
            approved_at=alumnus.approved_at,
            approved_by=alumnus.approved_by,
        )

    return Rejected(
        verified_at=verified_at,
        rejected_at=alumnus.approved_at,
        rejected_by=alumnus.approved_by,
        reason=alumnus.rejection_reason or "",
    )


def apply_state(alumnus: Alumni, state: ModerationState) -> None:
    """Write every moderation column of ``alumnus`` from ``state``."""
    alumnus.email_verified_at = None if isinstance(state, Unverified) else state.verified_at
    alumnus.approved_at = None
    alumnus.approved_by = None
    alumnus.rejection_reason = None

    if isinstance(state, Approved):
        alumnus.approval_status = ApprovalStatus.APPROVED
        alumnus.approved_at = state.approved_at
        alumnus.approved_by = state.approved_by
    elif isinstance(state, Rejected):
        alumnus.approval_status = ApprovalStatus.REJECTED
        alumnus.approved_at = state.rejected_at
        alumnus.approved_by = state.rejected_by
        alumnus.rejection_reason = state.reason
    else:
        alumnus.approval_status = ApprovalStatus.PENDING


def verify(state: ModerationState, now: datetime) -> ModerationState:
    """Mark the email verified. A no-op for anything already verified."""
    if isinstance(state, Unverified):
        return PendingApproval(verified_at=now)
    return state


def approve(state: ModerationState, admin_id: UUID, now: datetime) -> Approved:
    if isinstance(state, Unverified):
        raise VerificationRequiredError("Cannot approve: email is not verified yet.")
    return Approved(verified_at=state.verified_at, approved_at=now, approved_by=admin_id)


def reject(
    state: ModerationState, admin_id: UUID, now: datetime, reason: str | None = None
) -> Rejected:
    if isinstance(state, Unverified):
        raise VerificationRequiredError("Cannot reject: email is not verified yet.")
    return Rejected(
        verified_at=state.verified_at,
        rejected_at=now,
        rejected_by=admin_id,
        reason=reason or "",
    )
