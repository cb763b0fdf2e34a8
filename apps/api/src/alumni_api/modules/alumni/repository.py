"""
Alumni Repository

Database operations for alumni records, slug reservations and the
notification outbox. Data access only: moderation rules live in
``state.py`` and ``service.py``.

- All queries are parameterized
- Every mutating call commits its own unit of work
- Datetimes are timezone-aware UTC
"""

import uuid
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    Alumni,
    AlumniCategory,
    AlumniSlug,
    ApprovalStatus,
    NotificationEvent,
    NotificationOutbox,
    OutboxStatus,
)


LIKE_ESCAPE = "\\"


def _contains_pattern(term: str) -> str:
    """LIKE pattern matching ``term`` literally, wildcards included."""
    for char in (LIKE_ESCAPE, "%", "_"):
        term = term.replace(char, LIKE_ESCAPE + char)
    return f"%{term}%"


class DuplicateSlugError(ValueError):
    """The slug was reserved by another record between lookup and insert."""

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"Slug already reserved: {slug}")


# ============================================
# Records
# ============================================


async def find_taken_slugs(db: AsyncSession, base: str) -> set[str]:
    """
    Reserved slugs that could collide with ``base`` or its numbered variants.

    Reads the reservation ledger, not the alumni table, so slugs of deleted
    records still count as taken.
    """
    result = await db.execute(
        select(AlumniSlug.slug).where(
            or_(AlumniSlug.slug == base, AlumniSlug.slug.like(f"{base}-%"))
        )
    )
    return set(result.scalars().all())


async def create(
    db: AsyncSession,
    data: dict[str, Any],
    slug: str,
    token_hash: str | None = None,
) -> Alumni:
    """
    Insert a new pending record and reserve its slug in one transaction.

    Raises:
        DuplicateSlugError: If ``slug`` was reserved concurrently
    """
    alumni_id = uuid.uuid4()
    alumnus = Alumni(
        id=alumni_id,
        slug=slug,
        approval_status=ApprovalStatus.PENDING,
        is_active=True,
        is_featured=False,
        verification_token=token_hash,
        **data,
    )

    db.add(AlumniSlug(slug=slug, alumni_id=alumni_id))
    db.add(alumnus)

    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise DuplicateSlugError(slug) from e

    await db.refresh(alumnus)
    return alumnus


async def get_by_id(db: AsyncSession, alumni_id: UUID) -> Alumni | None:
    """Get alumnus by ID."""
    return await db.get(Alumni, alumni_id)


async def get_by_token_hash(db: AsyncSession, token_hash: str) -> Alumni | None:
    result = await db.execute(select(Alumni).where(Alumni.verification_token == token_hash))
    return result.scalar_one_or_none()


async def get_unverified_by_email(db: AsyncSession, email: str) -> list[Alumni]:
    """Unverified records registered under ``email`` (case-insensitive)."""
    result = await db.execute(
        select(Alumni)
        .where(
            and_(
                func.lower(Alumni.email) == email.lower(),
                Alumni.email_verified_at.is_(None),
            )
        )
        .order_by(Alumni.created_at.desc())
    )
    return list(result.scalars().all())


async def save(db: AsyncSession, alumnus: Alumni) -> Alumni:
    """Commit pending changes on ``alumnus`` and reload server-side columns."""
    db.add(alumnus)
    await db.commit()
    await db.refresh(alumnus)
    return alumnus


async def delete(db: AsyncSession, alumnus: Alumni) -> None:
    """Hard delete. The slug reservation row is left in place."""
    await db.delete(alumnus)
    await db.commit()


# ============================================
# Admin directory
# ============================================


async def get_alumni_for_admin(
    db: AsyncSession,
    *,
    status: ApprovalStatus | None = None,
    verified: bool | None = None,
    category: AlumniCategory | None = None,
    batch_year: int | None = None,
    search: str | None = None,
    skip: int = 0,
    limit: int = 15,
) -> tuple[list[Alumni], int]:
    """
    Filtered, paginated admin listing, newest first.

    Args:
        status: Approval status filter; None means all
        verified: True for verified only, False for unverified only, None for both
        search: Case-insensitive substring of name or email

    Returns:
        Tuple of (records on this page, total matching the filters)
    """
    query = select(Alumni)

    if status:
        query = query.where(Alumni.approval_status == status)

    if verified is True:
        query = query.where(Alumni.email_verified_at.is_not(None))
    elif verified is False:
        query = query.where(Alumni.email_verified_at.is_(None))

    if category:
        query = query.where(Alumni.category == category)

    if batch_year is not None:
        query = query.where(Alumni.batch_year == batch_year)

    if search:
        search_pattern = _contains_pattern(search)
        query = query.where(
            or_(
                Alumni.name.ilike(search_pattern, escape=LIKE_ESCAPE),
                Alumni.email.ilike(search_pattern, escape=LIKE_ESCAPE),
            )
        )

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar() or 0

    query = query.order_by(Alumni.created_at.desc(), Alumni.id).offset(skip).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all()), total


async def get_admin_stats(db: AsyncSession) -> dict[str, int]:
    """
    Moderation counts over every record, ignoring listing filters.
    """
    stats_query = select(
        func.count(Alumni.id).label("total_count"),
        func.count(case((Alumni.approval_status == ApprovalStatus.PENDING, 1))).label(
            "pending_count"
        ),
        func.count(case((Alumni.approval_status == ApprovalStatus.APPROVED, 1))).label(
            "approved_count"
        ),
        func.count(case((Alumni.approval_status == ApprovalStatus.REJECTED, 1))).label(
            "rejected_count"
        ),
        func.count(case((Alumni.email_verified_at.is_(None), 1))).label("unverified_count"),
    )

    row = (await db.execute(stats_query)).one()

    return {
        "total_count": row.total_count,
        "pending_count": row.pending_count,
        "approved_count": row.approved_count,
        "rejected_count": row.rejected_count,
        "unverified_count": row.unverified_count,
    }


async def get_batch_years(db: AsyncSession, *, public_only: bool = False) -> list[int]:
    """Distinct batch years, most recent first."""
    query = select(Alumni.batch_year).distinct()
    if public_only:
        query = query.where(_publicly_visible())
    result = await db.execute(query.order_by(Alumni.batch_year.desc()))
    return list(result.scalars().all())


# ============================================
# Public directory
# ============================================


def _publicly_visible():
    return and_(
        Alumni.approval_status == ApprovalStatus.APPROVED,
        Alumni.is_active.is_(True),
        Alumni.email_verified_at.is_not(None),
    )


async def get_public_alumni(
    db: AsyncSession,
    *,
    category: AlumniCategory | None = None,
    batch_year: int | None = None,
    search: str | None = None,
    skip: int = 0,
    limit: int = 12,
) -> tuple[list[Alumni], int]:
    """
    Approved and active alumni for the public directory.

    Ordered by batch year (latest first), featured first within a batch,
    then newest registration.
    """
    query = select(Alumni).where(_publicly_visible())

    if category:
        query = query.where(Alumni.category == category)

    if batch_year is not None:
        query = query.where(Alumni.batch_year == batch_year)

    if search:
        search_pattern = _contains_pattern(search)
        query = query.where(
            or_(
                Alumni.name.ilike(search_pattern, escape=LIKE_ESCAPE),
                Alumni.organization.ilike(search_pattern, escape=LIKE_ESCAPE),
                Alumni.current_designation.ilike(search_pattern, escape=LIKE_ESCAPE),
            )
        )

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar() or 0

    query = (
        query.order_by(
            Alumni.batch_year.desc(),
            Alumni.is_featured.desc(),
            Alumni.created_at.desc(),
            Alumni.id,
        )
        .offset(skip)
        .limit(limit)
    )

    result = await db.execute(query)
    return list(result.scalars().all()), total


async def get_public_by_slug(db: AsyncSession, slug: str) -> Alumni | None:
    result = await db.execute(select(Alumni).where(and_(Alumni.slug == slug, _publicly_visible())))
    return result.scalar_one_or_none()


async def get_related_public(db: AsyncSession, alumnus: Alumni, limit: int = 4) -> list[Alumni]:
    """Other public alumni sharing the category or the batch year of ``alumnus``."""
    result = await db.execute(
        select(Alumni)
        .where(
            and_(
                _publicly_visible(),
                Alumni.id != alumnus.id,
                or_(
                    Alumni.category == alumnus.category,
                    Alumni.batch_year == alumnus.batch_year,
                ),
            )
        )
        .order_by(Alumni.is_featured.desc(), Alumni.created_at.desc(), Alumni.id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_featured_public(db: AsyncSession, limit: int = 4) -> list[Alumni]:
    result = await db.execute(
        select(Alumni)
        .where(and_(_publicly_visible(), Alumni.is_featured.is_(True)))
        .order_by(Alumni.batch_year.desc(), Alumni.created_at.desc(), Alumni.id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_public_category_counts(db: AsyncSession) -> dict[AlumniCategory, int]:
    result = await db.execute(
        select(Alumni.category, func.count(Alumni.id))
        .where(_publicly_visible())
        .group_by(Alumni.category)
    )
    return {category: count for category, count in result.all()}


# ============================================
# Notification outbox
# ============================================


async def enqueue_notification(
    db: AsyncSession,
    *,
    alumni_id: UUID,
    event: NotificationEvent,
    next_attempt_at: datetime,
    last_error: str | None = None,
) -> NotificationOutbox:
    entry = NotificationOutbox(
        alumni_id=alumni_id,
        event=event,
        status=OutboxStatus.PENDING,
        attempts=0,
        last_error=last_error,
        next_attempt_at=next_attempt_at,
    )
    db.add(entry)
    await db.commit()
    await db.refresh(entry)
    return entry


async def get_due_notifications(
    db: AsyncSession,
    now: datetime | None = None,
    limit: int = 100,
) -> list[NotificationOutbox]:
    """Pending outbox entries whose next attempt time has passed, oldest first."""
    now = now or datetime.now(UTC)
    result = await db.execute(
        select(NotificationOutbox)
        .where(
            and_(
                NotificationOutbox.status == OutboxStatus.PENDING,
                NotificationOutbox.next_attempt_at <= now,
            )
        )
        .order_by(NotificationOutbox.created_at, NotificationOutbox.id)
        .limit(limit)
    )
    return list(result.scalars().all())


async def mark_notification_delivered(db: AsyncSession, entry: NotificationOutbox) -> None:
    entry.status = OutboxStatus.DELIVERED
    entry.attempts += 1
    entry.delivered_at = datetime.now(UTC)
    entry.last_error = None
    await db.commit()


async def reschedule_notification(
    db: AsyncSession,
    entry: NotificationOutbox,
    next_attempt_at: datetime,
    error: str,
) -> None:
    entry.attempts += 1
    entry.next_attempt_at = next_attempt_at
    entry.last_error = error
    await db.commit()


async def abandon_notification(db: AsyncSession, entry: NotificationOutbox, reason: str) -> None:
    entry.status = OutboxStatus.ABANDONED
    entry.last_error = reason
    await db.commit()


async def get_notification(db: AsyncSession, entry_id: UUID) -> NotificationOutbox | None:
    return await db.get(NotificationOutbox, entry_id)
