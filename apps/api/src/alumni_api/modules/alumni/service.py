"""
Alumni Service

Business logic for the alumni workflow:

- Registration and the email verification gate
- Moderation (approve, reject, bulk approve, featured/active toggles,
  admin edits and deletion)
- Admin and public directory queries

Every record mutation is a single commit. Notifications are dispatched
only after that commit and never undo it. Concurrent decisions on the
same record are last-write-wins: approval is idempotent-ish, not
exclusive.
"""

import logging
from datetime import UTC, datetime, timedelta
from uuid import UUID

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from alumni_api.core.scheduler import run_job_soon
from alumni_api.modules.alumni import repository, state
from alumni_api.modules.alumni.helpers import (
    generate_token,
    hash_token,
    mask_email,
    normalize_email,
    pick_available_slug,
    slugify,
)
from alumni_api.modules.alumni.jobs import JOB_ID_RETRY_NOTIFICATIONS
from alumni_api.modules.alumni.models import (
    CATEGORY_LABELS,
    Alumni,
    AlumniCategory,
    ApprovalStatus,
    NotificationEvent,
)
from alumni_api.modules.alumni.notifications import Notification, notify, queue
from alumni_api.modules.alumni.schemas import (
    AdminAlumniListResponse,
    AdminStats,
    AlumniAdminListItem,
    AlumniProfileUpdate,
    AlumniPublicProfile,
    AlumniPublicProfileDetail,
    AlumniRegistrationCreate,
    AlumniRegistrationResponse,
    BulkApproved,
    BulkApproveResponse,
    BulkSkipped,
    BulkSkipReason,
    CategoryFacet,
    PublicAlumniListResponse,
    PublicDirectoryFacets,
    StatusFilter,
    VerificationIssuedResponse,
    VerifiedFilter,
)

logger = logging.getLogger(__name__)

# Attempts at picking a free slug before giving up on concurrent inserts
SLUG_RESERVATION_ATTEMPTS = 5

# Public resend limit, per email address
RESEND_RATE_LIMIT_MAX_REQUESTS = 3
RESEND_RATE_LIMIT_WINDOW_SECONDS = 3600

RELATED_ALUMNI_LIMIT = 4
FEATURED_SHOWCASE_LIMIT = 4

INVALID_TOKEN_MESSAGE = "Invalid or expired verification link."
VERIFICATION_NOT_SENT_WARNING = (
    "The record was saved but the verification email could not be delivered. "
    "Use resend verification to try again."
)


class AlumniServiceError(Exception):
    """Base exception for alumni service errors."""

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)


class AlumniNotFoundError(AlumniServiceError):
    def __init__(self, identifier: UUID | str | None = None):
        message = f"Alumni {identifier} not found" if identifier else "Alumni not found"
        super().__init__(message=message, error_code="NOT_FOUND", status_code=404)


class InvalidTokenError(AlumniServiceError):
    """
    The verification token matches no record.

    One message for every cause (never issued, already used, superseded,
    record deleted) so the response reveals nothing about which.
    """

    def __init__(self):
        super().__init__(message=INVALID_TOKEN_MESSAGE, error_code="INVALID_TOKEN", status_code=400)


class EmailNotVerifiedError(AlumniServiceError):
    def __init__(self, action: str = "approve"):
        super().__init__(
            message=f"Cannot {action}: email is not verified yet. Verify the email first.",
            error_code="EMAIL_NOT_VERIFIED",
            status_code=409,
        )


class RateLimitExceededError(AlumniServiceError):
    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        minutes = max(1, retry_after_seconds // 60)
        super().__init__(
            message=f"Too many resend requests. Please try again in {minutes} minute(s).",
            error_code="RATE_LIMIT_EXCEEDED",
            status_code=429,
        )


def _now() -> datetime:
    return datetime.now(UTC)


async def _get_or_404(db: AsyncSession, alumni_id: UUID) -> Alumni:
    alumnus = await repository.get_by_id(db, alumni_id)
    if not alumnus:
        logger.warning(f"Alumni not found: {alumni_id}")
        raise AlumniNotFoundError(alumni_id)
    return alumnus


# ============================================
# Registration & verification gate
# ============================================


async def _create_with_unique_slug(
    db: AsyncSession,
    data: dict,
    base_slug: str,
    token_hash: str,
) -> Alumni:
    for attempt in range(1, SLUG_RESERVATION_ATTEMPTS + 1):
        taken = await repository.find_taken_slugs(db, base_slug)
        slug = pick_available_slug(base_slug, taken)
        try:
            return await repository.create(db, data, slug=slug, token_hash=token_hash)
        except repository.DuplicateSlugError:
            logger.info(f"Slug {slug} taken concurrently, retrying (attempt {attempt})")

    raise AlumniServiceError(
        message="Could not reserve a profile URL. Please try again.",
        error_code="SLUG_CONFLICT",
        status_code=503,
    )


async def register_alumnus(
    db: AsyncSession,
    data: AlumniRegistrationCreate,
) -> AlumniRegistrationResponse:
    """
    Public self-registration.

    Creates an unverified, pending record with a unique slug and a fresh
    verification token, then emails the verification link. A failed email
    does not undo the registration.
    """
    token = generate_token()
    alumnus = await _create_with_unique_slug(
        db,
        data.model_dump(),
        base_slug=slugify(data.name),
        token_hash=hash_token(token),
    )
    logger.info(
        f"Registered alumni {alumnus.id} ({mask_email(alumnus.email)}) as {alumnus.slug}"
    )

    sent = await notify(
        db,
        Notification.for_alumnus(NotificationEvent.VERIFICATION_REQUESTED, alumnus, token=token),
    )

    return AlumniRegistrationResponse(
        id=alumnus.id,
        slug=alumnus.slug,
        email=alumnus.email,
        approval_status=alumnus.approval_status,
        verification_email_sent=sent,
    )


async def request_verification(db: AsyncSession, alumni_id: UUID) -> VerificationIssuedResponse:
    """
    Issue a new verification token, replacing any outstanding one, and email it.

    Raises:
        AlumniNotFoundError: If the record does not exist
    """
    alumnus = await _get_or_404(db, alumni_id)

    token = generate_token()
    alumnus.verification_token = hash_token(token)
    alumnus = await repository.save(db, alumnus)
    logger.info(f"Issued new verification token for alumni {alumni_id}")

    sent = await notify(
        db,
        Notification.for_alumnus(NotificationEvent.VERIFICATION_REQUESTED, alumnus, token=token),
    )

    if not sent:
        return VerificationIssuedResponse(
            id=alumnus.id,
            email_sent=False,
            warning=VERIFICATION_NOT_SENT_WARNING,
            message="Verification token issued.",
        )
    return VerificationIssuedResponse(id=alumnus.id, email_sent=True)


async def confirm_verification(db: AsyncSession, token: str) -> Alumni:
    """
    Consume a verification token.

    Sets email_verified_at (kept if already set) and clears the token so it
    cannot be used again.

    Raises:
        InvalidTokenError: If no record holds this token
    """
    alumnus = await repository.get_by_token_hash(db, hash_token(token))
    if not alumnus:
        logger.warning("Verification attempted with an unknown token")
        raise InvalidTokenError()

    state.apply_state(alumnus, state.verify(state.state_of(alumnus), _now()))
    alumnus.verification_token = None
    alumnus = await repository.save(db, alumnus)

    logger.info(f"Email verified for alumni {alumnus.id}")
    return alumnus


async def manually_verify(db: AsyncSession, alumni_id: UUID, admin_id: UUID) -> Alumni:
    """
    Admin override of the email check. Idempotent: an already verified
    record keeps its original verification time.
    """
    alumnus = await _get_or_404(db, alumni_id)

    current = state.state_of(alumnus)
    if not isinstance(current, state.Unverified) and alumnus.verification_token is None:
        logger.info(f"Alumni {alumni_id} already verified, nothing to do")
        return alumnus

    state.apply_state(alumnus, state.verify(current, _now()))
    alumnus.verification_token = None
    alumnus = await repository.save(db, alumnus)

    logger.info(f"Email manually verified for alumni {alumni_id} by admin {admin_id}")
    return alumnus


async def _check_resend_rate_limit(redis_client: Redis, email: str) -> None:
    """Fixed-window counter per email address."""
    key = f"alumni_resend_verification:{hash_token(email)}"

    current_count = await redis_client.get(key)
    if current_count is not None and int(current_count) >= RESEND_RATE_LIMIT_MAX_REQUESTS:
        ttl = await redis_client.ttl(key)
        logger.warning(f"Resend rate limit exceeded for {mask_email(email)}")
        raise RateLimitExceededError(retry_after_seconds=max(ttl, 60))

    pipe = redis_client.pipeline()
    pipe.incr(key)
    pipe.expire(key, RESEND_RATE_LIMIT_WINDOW_SECONDS)
    await pipe.execute()


async def resend_verification_by_email(
    db: AsyncSession,
    email: str,
    redis_client: Redis | None = None,
) -> int:
    """
    Public "resend my link". Re-issues tokens for every unverified record
    registered under ``email``.

    The caller must answer identically whether or not anything matched.

    Returns:
        How many verification emails were issued

    Raises:
        RateLimitExceededError: Over 3 requests per hour for this address
        AlumniServiceError: If Redis is unavailable (fails closed)
    """
    email = normalize_email(email)

    # Without the limiter this endpoint becomes an email cannon
    if redis_client is None:
        logger.error("Redis unavailable for rate limiting - failing request")
        raise AlumniServiceError(
            message="Service temporarily unavailable. Please try again later.",
            error_code="SERVICE_UNAVAILABLE",
            status_code=503,
        )
    await _check_resend_rate_limit(redis_client, email)

    records = await repository.get_unverified_by_email(db, email)
    for alumnus in records:
        await request_verification(db, alumnus.id)

    logger.info(f"Resend verification for {mask_email(email)}: {len(records)} record(s)")
    return len(records)


# ============================================
# Moderation
# ============================================


async def get_alumnus(db: AsyncSession, alumni_id: UUID) -> Alumni:
    """Admin view of a single record."""
    return await _get_or_404(db, alumni_id)


async def _decide(
    db: AsyncSession,
    alumnus: Alumni,
    decision: state.ModerationState,
) -> Alumni:
    state.apply_state(alumnus, decision)
    return await repository.save(db, alumnus)


async def _notify_decision(db: AsyncSession, alumnus: Alumni, event: NotificationEvent) -> bool:
    sent = await notify(db, Notification.for_alumnus(event, alumnus))
    if not sent:
        # the outbox write may have rolled the session back
        await db.refresh(alumnus)
    return sent


async def _approve_record(db: AsyncSession, alumni_id: UUID, admin_id: UUID) -> Alumni:
    alumnus = await _get_or_404(db, alumni_id)

    try:
        decision = state.approve(state.state_of(alumnus), admin_id, _now())
    except state.VerificationRequiredError as e:
        logger.warning(f"Refused to approve unverified alumni {alumni_id} (admin {admin_id})")
        raise EmailNotVerifiedError("approve") from e

    alumnus = await _decide(db, alumnus, decision)
    logger.info(f"Alumni {alumni_id} approved by admin {admin_id}")
    return alumnus


async def approve(db: AsyncSession, alumni_id: UUID, admin_id: UUID) -> tuple[Alumni, bool]:
    """
    Approve a verified record and notify the alumnus.

    Re-approving re-stamps approved_at/approved_by; approving a rejected
    record clears the rejection reason.

    Returns:
        (record, whether the approval email went out immediately)

    Raises:
        AlumniNotFoundError: Unknown id
        EmailNotVerifiedError: Email not verified yet
    """
    alumnus = await _approve_record(db, alumni_id, admin_id)
    sent = await _notify_decision(db, alumnus, NotificationEvent.APPROVED)
    return alumnus, sent


async def reject(
    db: AsyncSession,
    alumni_id: UUID,
    admin_id: UUID,
    reason: str | None = None,
) -> tuple[Alumni, bool]:
    """
    Reject a verified record. A missing reason is stored as an empty string.

    Raises:
        AlumniNotFoundError: Unknown id
        EmailNotVerifiedError: Email not verified yet
    """
    alumnus = await _get_or_404(db, alumni_id)

    try:
        decision = state.reject(state.state_of(alumnus), admin_id, _now(), reason)
    except state.VerificationRequiredError as e:
        logger.warning(f"Refused to reject unverified alumni {alumni_id} (admin {admin_id})")
        raise EmailNotVerifiedError("reject") from e

    alumnus = await _decide(db, alumnus, decision)
    logger.info(f"Alumni {alumni_id} rejected by admin {admin_id}")

    sent = await _notify_decision(db, alumnus, NotificationEvent.REJECTED)
    return alumnus, sent


async def bulk_approve(
    db: AsyncSession,
    alumni_ids: list[UUID],
    admin_id: UUID,
) -> BulkApproveResponse:
    """
    Approve each id independently. One record failing never affects another
    and there is no all-or-nothing guarantee across the batch.

    Approval notices are not sent inline: each one goes to the outbox and
    the retry job is woken to deliver them after the response.
    """
    results: list[BulkApproved | BulkSkipped] = []
    queued = 0

    for alumni_id in dict.fromkeys(alumni_ids):
        try:
            alumnus = await _approve_record(db, alumni_id, admin_id)
            notification = Notification.for_alumnus(NotificationEvent.APPROVED, alumnus)
            if await queue(db, notification, delay=timedelta(0)):
                queued += 1
        except AlumniNotFoundError:
            results.append(BulkSkipped(id=alumni_id, reason=BulkSkipReason.NOT_FOUND))
        except EmailNotVerifiedError:
            results.append(BulkSkipped(id=alumni_id, reason=BulkSkipReason.EMAIL_NOT_VERIFIED))
        else:
            results.append(BulkApproved(id=alumni_id))

    approved_count = sum(1 for r in results if isinstance(r, BulkApproved))
    unverified = sum(
        1
        for r in results
        if isinstance(r, BulkSkipped) and r.reason == BulkSkipReason.EMAIL_NOT_VERIFIED
    )
    missing = len(results) - approved_count - unverified

    message = f"{approved_count} alumni approved."
    if unverified:
        message += f" {unverified} skipped (email not verified)."
    if missing:
        message += f" {missing} skipped (not found)."

    logger.info(f"Bulk approval by admin {admin_id}: {message}")

    if queued:
        run_job_soon(JOB_ID_RETRY_NOTIFICATIONS)

    return BulkApproveResponse(
        results=results,
        approved_count=approved_count,
        skipped_count=len(results) - approved_count,
        message=message,
    )


async def toggle_featured(db: AsyncSession, alumni_id: UUID) -> Alumni:
    alumnus = await _get_or_404(db, alumni_id)
    alumnus.is_featured = not alumnus.is_featured
    alumnus = await repository.save(db, alumnus)
    logger.info(f"Alumni {alumni_id} featured={alumnus.is_featured}")
    return alumnus


async def set_active(db: AsyncSession, alumni_id: UUID, is_active: bool) -> Alumni:
    alumnus = await _get_or_404(db, alumni_id)
    alumnus.is_active = is_active
    alumnus = await repository.save(db, alumnus)
    logger.info(f"Alumni {alumni_id} active={is_active}")
    return alumnus


async def update_profile(
    db: AsyncSession,
    alumni_id: UUID,
    data: AlumniProfileUpdate,
) -> Alumni:
    """
    Admin edit of profile and visibility fields.

    The slug stays as issued even when the name changes; moderation and
    verification fields are not editable here.
    """
    alumnus = await _get_or_404(db, alumni_id)

    changes = data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(alumnus, field, value)

    alumnus = await repository.save(db, alumnus)
    logger.info(f"Alumni {alumni_id} profile updated: {sorted(changes)}")
    return alumnus


async def delete_alumnus(db: AsyncSession, alumni_id: UUID) -> None:
    """Hard delete. The slug remains reserved and is never reissued."""
    alumnus = await _get_or_404(db, alumni_id)
    await repository.delete(db, alumnus)
    logger.info(f"Alumni {alumni_id} ({alumnus.slug}) deleted")


# ============================================
# Directory queries
# ============================================


async def admin_get_stats(db: AsyncSession) -> AdminStats:
    return AdminStats(**await repository.get_admin_stats(db))


async def admin_list_alumni(
    db: AsyncSession,
    *,
    status: StatusFilter = StatusFilter.ALL,
    verified: VerifiedFilter = VerifiedFilter.ALL,
    category: AlumniCategory | None = None,
    batch_year: int | None = None,
    search: str | None = None,
    page: int = 1,
    page_size: int = 15,
) -> AdminAlumniListResponse:
    """
    Admin listing in every moderation state, newest first, with the
    dashboard counters and batch years alongside.
    """
    status_filter = None if status == StatusFilter.ALL else ApprovalStatus(status.value)
    verified_filter = {VerifiedFilter.YES: True, VerifiedFilter.NO: False}.get(verified)
    search = search.strip() if search else None

    items, total = await repository.get_alumni_for_admin(
        db,
        status=status_filter,
        verified=verified_filter,
        category=category,
        batch_year=batch_year,
        search=search or None,
        skip=(page - 1) * page_size,
        limit=page_size,
    )

    return AdminAlumniListResponse(
        items=[AlumniAdminListItem.model_validate(item) for item in items],
        page=page,
        page_size=page_size,
        total=total,
        stats=await admin_get_stats(db),
        batch_years=await repository.get_batch_years(db),
    )


async def public_list_alumni(
    db: AsyncSession,
    *,
    category: AlumniCategory | None = None,
    batch_year: int | None = None,
    search: str | None = None,
    page: int = 1,
    page_size: int = 12,
) -> PublicAlumniListResponse:
    """Approved, active, verified alumni only."""
    search = search.strip() if search else None

    items, total = await repository.get_public_alumni(
        db,
        category=category,
        batch_year=batch_year,
        search=search or None,
        skip=(page - 1) * page_size,
        limit=page_size,
    )

    return PublicAlumniListResponse(
        items=[AlumniPublicProfile.model_validate(item) for item in items],
        page=page,
        page_size=page_size,
        total=total,
    )


async def public_get_alumnus(db: AsyncSession, slug: str) -> Alumni:
    """
    Raises:
        AlumniNotFoundError: If no publicly visible record has this slug
    """
    alumnus = await repository.get_public_by_slug(db, slug)
    if not alumnus:
        raise AlumniNotFoundError(slug)
    return alumnus


async def public_profile(db: AsyncSession, slug: str) -> AlumniPublicProfileDetail:
    """
    Public profile page with up to RELATED_ALUMNI_LIMIT alumni from the same
    category or batch.

    Raises:
        AlumniNotFoundError: If no publicly visible record has this slug
    """
    alumnus = await public_get_alumnus(db, slug)
    related = await repository.get_related_public(db, alumnus, limit=RELATED_ALUMNI_LIMIT)

    return AlumniPublicProfileDetail(
        **AlumniPublicProfile.model_validate(alumnus).model_dump(),
        related=[AlumniPublicProfile.model_validate(item) for item in related],
    )


async def public_directory_facets(db: AsyncSession) -> PublicDirectoryFacets:
    counts = await repository.get_public_category_counts(db)
    featured = await repository.get_featured_public(db, limit=FEATURED_SHOWCASE_LIMIT)

    return PublicDirectoryFacets(
        total=sum(counts.values()),
        batch_years=await repository.get_batch_years(db, public_only=True),
        categories=[
            CategoryFacet(value=category, label=label, count=counts.get(category, 0))
            for category, label in CATEGORY_LABELS.items()
        ],
        featured=[AlumniPublicProfile.model_validate(item) for item in featured],
    )
