"""create alumni, slug reservation and notification outbox tables

Revision ID: b7e4c2a91d30
Revises:
Create Date: 2026-10-19 09:00:00.000000

- alumni: profiles with moderation and verification columns
- alumni_slugs: permanent slug reservations (rows are never deleted)
- alumni_notification_outbox: approval/rejection emails awaiting retry
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "b7e4c2a91d30"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

alumni_category = postgresql.ENUM(
    "defense",
    "civil_services",
    "medical",
    "engineering",
    "business",
    "arts",
    "sports",
    "other",
    name="alumni_category",
    create_type=False,
)
approval_status = postgresql.ENUM(
    "pending", "approved", "rejected", name="alumni_approval_status", create_type=False
)
notification_event = postgresql.ENUM(
    "verification_requested",
    "approved",
    "rejected",
    name="alumni_notification_event",
    create_type=False,
)
outbox_status = postgresql.ENUM(
    "pending", "delivered", "abandoned", name="alumni_outbox_status", create_type=False
)

_ENUMS = (alumni_category, approval_status, notification_event, outbox_status)


def upgrade() -> None:
    """Create alumni tables."""
    bind = op.get_bind()
    for enum_type in _ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "alumni",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("slug", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("batch_year", sa.Integer(), nullable=False),
        sa.Column("class_section", sa.String(50), nullable=True),
        sa.Column("house", sa.String(50), nullable=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("photo", sa.String(500), nullable=True),
        sa.Column("current_designation", sa.String(255), nullable=True),
        sa.Column("organization", sa.String(255), nullable=True),
        sa.Column("category", alumni_category, nullable=False),
        sa.Column("linkedin_url", sa.String(255), nullable=True),
        sa.Column("achievement", sa.Text(), nullable=True),
        sa.Column("story", sa.Text(), nullable=True),
        sa.Column("school_memories", sa.Text(), nullable=True),
        sa.Column("message_to_juniors", sa.Text(), nullable=True),
        sa.Column("is_featured", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("approval_status", approval_status, nullable=False, server_default="pending"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("email_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verification_token", sa.String(64), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.UniqueConstraint("slug", name="uq_alumni_slug"),
        sa.UniqueConstraint("verification_token", name="uq_alumni_verification_token"),
    )
    op.create_index("ix_alumni_approval_status", "alumni", ["approval_status"])
    op.create_index("ix_alumni_email", "alumni", ["email"])
    op.create_index("ix_alumni_category", "alumni", ["category"])
    op.create_index("ix_alumni_batch_year", "alumni", ["batch_year"])
    op.create_index(
        "ix_alumni_public_listing", "alumni", ["approval_status", "is_active", "batch_year"]
    )

    op.create_table(
        "alumni_slugs",
        sa.Column("slug", sa.String(255), primary_key=True),
        sa.Column("alumni_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "reserved_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )

    op.create_table(
        "alumni_notification_outbox",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("alumni_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event", notification_event, nullable=False),
        sa.Column("status", outbox_status, nullable=False, server_default="pending"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )
    op.create_index(
        "ix_alumni_notification_outbox_due",
        "alumni_notification_outbox",
        ["status", "next_attempt_at"],
    )


def downgrade() -> None:
    """Drop alumni tables."""
    op.drop_index("ix_alumni_notification_outbox_due", table_name="alumni_notification_outbox")
    op.drop_table("alumni_notification_outbox")
    op.drop_table("alumni_slugs")
    for index in (
        "ix_alumni_public_listing",
        "ix_alumni_batch_year",
        "ix_alumni_category",
        "ix_alumni_email",
        "ix_alumni_approval_status",
    ):
        op.drop_index(index, table_name="alumni")
    op.drop_table("alumni")

    bind = op.get_bind()
    for enum_type in reversed(_ENUMS):
        enum_type.drop(bind, checkfirst=True)
