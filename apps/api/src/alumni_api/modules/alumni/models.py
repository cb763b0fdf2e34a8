"""
Alumni Models

Alumni profiles with their moderation/verification columns, the permanent
slug reservation ledger and the notification outbox.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from alumni_api.core.database import Base


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class AlumniCategory(str, enum.Enum):
    """Career category shown in the directory."""

    DEFENSE = "defense"
    CIVIL_SERVICES = "civil_services"
    MEDICAL = "medical"
    ENGINEERING = "engineering"
    BUSINESS = "business"
    ARTS = "arts"
    SPORTS = "sports"
    OTHER = "other"

    @property
    def label(self) -> str:
        return CATEGORY_LABELS[self]


CATEGORY_LABELS: dict[AlumniCategory, str] = {
    AlumniCategory.DEFENSE: "Defense Services",
    AlumniCategory.CIVIL_SERVICES: "Civil Services",
    AlumniCategory.MEDICAL: "Medical",
    AlumniCategory.ENGINEERING: "Engineering & Technology",
    AlumniCategory.BUSINESS: "Business & Entrepreneurship",
    AlumniCategory.ARTS: "Arts & Entertainment",
    AlumniCategory.SPORTS: "Sports",
    AlumniCategory.OTHER: "Other",
}


class ApprovalStatus(str, enum.Enum):
    """Moderation decision stored on the record."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class NotificationEvent(str, enum.Enum):
    """Events the notification dispatcher knows how to deliver."""

    VERIFICATION_REQUESTED = "verification_requested"
    APPROVED = "approved"
    REJECTED = "rejected"


class OutboxStatus(str, enum.Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    ABANDONED = "abandoned"


class Alumni(Base):
    """
    A registered alumnus.

    Moderation columns (approval_status, approved_at, approved_by,
    rejection_reason, email_verified_at) are only ever written together
    through ``state.apply_state``.
    """

    __tablename__ = "alumni"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    # Profile
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    batch_year: Mapped[int] = mapped_column(Integer, nullable=False)
    class_section: Mapped[str | None] = mapped_column(String(50), nullable=True)
    house: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(20), nullable=True)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    photo: Mapped[str | None] = mapped_column(String(500), nullable=True)
    current_designation: Mapped[str | None] = mapped_column(String(255), nullable=True)
    organization: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category: Mapped[AlumniCategory] = mapped_column(
        Enum(AlumniCategory, name="alumni_category", values_callable=_enum_values),
        nullable=False,
    )
    linkedin_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    achievement: Mapped[str | None] = mapped_column(Text, nullable=True)
    story: Mapped[str | None] = mapped_column(Text, nullable=True)
    school_memories: Mapped[str | None] = mapped_column(Text, nullable=True)
    message_to_juniors: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Visibility
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Moderation
    approval_status: Mapped[ApprovalStatus] = mapped_column(
        Enum(ApprovalStatus, name="alumni_approval_status", values_callable=_enum_values),
        nullable=False,
        default=ApprovalStatus.PENDING,
    )
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Admin accounts live in the surrounding site, so no FK here
    approved_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    # Verification (token column holds a SHA-256 hex digest, never the token)
    email_verified_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    verification_token: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_alumni_approval_status", "approval_status"),
        Index("ix_alumni_email", "email"),
        Index("ix_alumni_category", "category"),
        Index("ix_alumni_batch_year", "batch_year"),
        Index("ix_alumni_public_listing", "approval_status", "is_active", "batch_year"),
    )

    @property
    def is_email_verified(self) -> bool:
        return self.email_verified_at is not None

    @property
    def linkedin_link(self) -> str | None:
        """LinkedIn URL, expanding a bare handle to a profile URL."""
        if not self.linkedin_url:
            return None
        if self.linkedin_url.startswith(("http://", "https://")):
            return self.linkedin_url
        return f"https://linkedin.com/in/{self.linkedin_url}"

    def __repr__(self) -> str:
        return f"<Alumni {self.slug} ({self.approval_status.value})>"


class AlumniSlug(Base):
    """
    Slug reservation ledger.

    One row per slug ever handed out. Rows outlive the alumni record so a
    deleted profile's slug is never reassigned.
    """

    __tablename__ = "alumni_slugs"

    slug: Mapped[str] = mapped_column(String(255), primary_key=True)
    alumni_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    reserved_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class NotificationOutbox(Base):
    """
    Approval/rejection notices waiting for delivery by the retry job.

    Drained by the ``alumni_retry_notifications`` job.
    """

    __tablename__ = "alumni_notification_outbox"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # Not a FK: the alumni row may be deleted while a notice is queued
    alumni_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    event: Mapped[NotificationEvent] = mapped_column(
        Enum(NotificationEvent, name="alumni_notification_event", values_callable=_enum_values),
        nullable=False,
    )
    status: Mapped[OutboxStatus] = mapped_column(
        Enum(OutboxStatus, name="alumni_outbox_status", values_callable=_enum_values),
        nullable=False,
        default=OutboxStatus.PENDING,
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    next_attempt_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("ix_alumni_notification_outbox_due", "status", "next_attempt_at"),
    )
