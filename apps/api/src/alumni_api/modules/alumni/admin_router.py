"""
Alumni Admin Router

Moderation and directory endpoints for school administrators.
All endpoints require an authenticated admin.

Endpoints:
- GET    /admin/alumni                           - List with filters, pagination and counts
- GET    /admin/alumni/stats                     - Moderation counters
- POST   /admin/alumni/bulk-approve              - Approve many records
- GET    /admin/alumni/{id}                      - Full record
- PATCH  /admin/alumni/{id}                      - Edit profile / visibility
- DELETE /admin/alumni/{id}                      - Delete (slug stays reserved)
- POST   /admin/alumni/{id}/approve              - Approve
- POST   /admin/alumni/{id}/reject               - Reject with optional reason
- POST   /admin/alumni/{id}/toggle-featured      - Flip featured flag
- POST   /admin/alumni/{id}/active               - Set active flag
- POST   /admin/alumni/{id}/verify-email         - Mark email verified by hand
- POST   /admin/alumni/{id}/resend-verification  - Issue a new verification link

Security:
- Bearer token with an admin role (see core.auth)
- Per-admin rate limits on moderation actions
- Every action is logged with the acting admin's id
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from alumni_api.core.auth import AdminUser, get_current_admin_user
from alumni_api.core.database import get_db
from alumni_api.core.rate_limit import enforce_rate_limit
from alumni_api.modules.alumni import service
from alumni_api.modules.alumni.models import Alumni, AlumniCategory
from alumni_api.modules.alumni.schemas import (
    AdminAlumniListResponse,
    AdminStats,
    AlumniAdminDetail,
    AlumniProfileUpdate,
    BulkApproveRequest,
    BulkApproveResponse,
    ModerationResponse,
    RejectRequest,
    SetActiveRequest,
    StatusFilter,
    VerificationIssuedResponse,
    VerifiedFilter,
    VisibilityResponse,
)
from alumni_api.modules.alumni.service import AlumniServiceError

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================
# Rate Limiting Configuration
# ============================================

RATE_LIMIT_APPROVE = (30, 60)
RATE_LIMIT_REJECT = (30, 60)
RATE_LIMIT_BULK_APPROVE = (5, 60)
RATE_LIMIT_VERIFY = (30, 60)
RATE_LIMIT_RESEND = (10, 60)


async def _check_admin_rate_limit(
    admin: AdminUser,
    action: str,
    limit: int,
    window_seconds: int,
) -> None:
    """
    Raises:
        RateLimitExceeded: If the admin is over the limit for ``action``
    """
    await enforce_rate_limit(f"admin:alumni:{action}:{admin.id}", limit, window_seconds)


# ============================================
# Helper Functions
# ============================================


def _service_error(e: AlumniServiceError) -> HTTPException:
    """Convert service errors to HTTPExceptions."""
    return HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
    )


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )


def _moderation_response(alumnus: Alumni, sent: bool, message: str) -> ModerationResponse:
    return ModerationResponse(
        id=alumnus.id,
        approval_status=alumnus.approval_status,
        approved_at=alumnus.approved_at,
        approved_by=alumnus.approved_by,
        rejection_reason=alumnus.rejection_reason,
        notification_sent=sent,
        message=message,
    )


def _visibility_response(alumnus: Alumni, message: str) -> VisibilityResponse:
    return VisibilityResponse(
        id=alumnus.id,
        is_featured=alumnus.is_featured,
        is_active=alumnus.is_active,
        message=message,
    )


_AUTH_RESPONSES = {
    401: {"description": "Unauthorized - invalid or missing token"},
    403: {"description": "Forbidden - not an administrator"},
}


# ============================================
# Listing & Stats
# ============================================


@router.get(
    "",
    response_model=AdminAlumniListResponse,
    summary="List Alumni",
    description="""
Paginated list of alumni in every moderation state, newest first.

**Filters:**
- `status`: pending, approved, rejected or all (default)
- `verified`: yes, no or all (default)
- `category`, `batch_year`
- `search`: case-insensitive match on name or email

The response also carries the moderation counters (over all records,
not just the filtered ones) and the distinct batch years.
""",
    responses=_AUTH_RESPONSES,
)
async def list_alumni(
    status_filter: StatusFilter = Query(StatusFilter.ALL, alias="status"),
    verified: VerifiedFilter = Query(VerifiedFilter.ALL),
    category: AlumniCategory | None = Query(None),
    batch_year: int | None = Query(None, ge=1900, le=2100),
    search: str | None = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(15, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin_user),
) -> AdminAlumniListResponse:
    try:
        result = await service.admin_list_alumni(
            db,
            status=status_filter,
            verified=verified,
            category=category,
            batch_year=batch_year,
            search=search,
            page=page,
            page_size=page_size,
        )
        logger.info(
            f"Admin {admin.id} listed alumni: total={result.total}, returned={len(result.items)}"
        )
        return result
    except AlumniServiceError as e:
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Error listing alumni: {e}")
        raise _internal_error() from e


@router.get(
    "/stats",
    response_model=AdminStats,
    summary="Moderation Counters",
    description="Total, pending, approved, rejected and unverified counts over all records.",
    responses=_AUTH_RESPONSES,
)
async def get_stats(
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin_user),
) -> AdminStats:
    try:
        return await service.admin_get_stats(db)
    except Exception as e:
        logger.exception(f"Error computing alumni stats for admin {admin.id}: {e}")
        raise _internal_error() from e


# ============================================
# Bulk Approval
# ============================================


@router.post(
    "/bulk-approve",
    response_model=BulkApproveResponse,
    summary="Bulk Approve",
    description="""
Approve each listed record independently.

Records that do not exist or whose email is not verified are skipped and
reported with `NOT_FOUND` / `EMAIL_NOT_VERIFIED`; they are left untouched.
There is no all-or-nothing guarantee across the batch.

Approval emails are queued and sent by the background job after the response.
""",
    responses=_AUTH_RESPONSES,
)
async def bulk_approve(
    request: BulkApproveRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin_user),
) -> BulkApproveResponse:
    await _check_admin_rate_limit(admin, "bulk_approve", *RATE_LIMIT_BULK_APPROVE)

    try:
        return await service.bulk_approve(db, request.ids, admin.id)
    except AlumniServiceError as e:
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Error in bulk approval by admin {admin.id}: {e}")
        raise _internal_error() from e


# ============================================
# Single Record
# ============================================


@router.get(
    "/{alumni_id}",
    response_model=AlumniAdminDetail,
    summary="Get Alumni Record",
    responses={**_AUTH_RESPONSES, 404: {"description": "Alumni not found"}},
)
async def get_alumnus(
    alumni_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin_user),
) -> AlumniAdminDetail:
    try:
        alumnus = await service.get_alumnus(db, alumni_id)
        return AlumniAdminDetail.model_validate(alumnus)
    except AlumniServiceError as e:
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Error loading alumni {alumni_id}: {e}")
        raise _internal_error() from e


@router.patch(
    "/{alumni_id}",
    response_model=AlumniAdminDetail,
    summary="Edit Alumni Profile",
    description="""
Update profile and visibility fields. Omitted fields are unchanged.

The slug is never changed, even if the name is. Moderation and
verification fields are managed by the dedicated action endpoints.
""",
    responses={**_AUTH_RESPONSES, 404: {"description": "Alumni not found"}},
)
async def update_alumnus(
    alumni_id: UUID,
    request: AlumniProfileUpdate,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin_user),
) -> AlumniAdminDetail:
    try:
        alumnus = await service.update_profile(db, alumni_id, request)
        logger.info(f"Admin {admin.id} edited alumni {alumni_id}")
        return AlumniAdminDetail.model_validate(alumnus)
    except AlumniServiceError as e:
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Error updating alumni {alumni_id}: {e}")
        raise _internal_error() from e


@router.delete(
    "/{alumni_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Alumni Record",
    description="Permanently delete the record. Its slug is never reissued.",
    responses={**_AUTH_RESPONSES, 404: {"description": "Alumni not found"}},
)
async def delete_alumnus(
    alumni_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin_user),
) -> Response:
    try:
        await service.delete_alumnus(db, alumni_id)
        logger.info(f"Admin {admin.id} deleted alumni {alumni_id}")
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except AlumniServiceError as e:
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Error deleting alumni {alumni_id}: {e}")
        raise _internal_error() from e


# ============================================
# Moderation Actions
# ============================================


@router.post(
    "/{alumni_id}/approve",
    response_model=ModerationResponse,
    summary="Approve Alumni",
    description="""
Approve a record whose email is verified and notify the alumnus.
The email gets one immediate attempt; if it fails it is queued for retry
and `notification_sent` is false.

Re-approving an approved record re-stamps the approver and time.
Approving a rejected record clears the rejection reason.
""",
    responses={
        **_AUTH_RESPONSES,
        404: {"description": "Alumni not found"},
        409: {"description": "Email not verified"},
    },
)
async def approve_alumnus(
    alumni_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin_user),
) -> ModerationResponse:
    await _check_admin_rate_limit(admin, "approve", *RATE_LIMIT_APPROVE)

    try:
        alumnus, sent = await service.approve(db, alumni_id, admin.id)
        return _moderation_response(alumnus, sent, "Alumni approved successfully.")
    except AlumniServiceError as e:
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Error approving alumni {alumni_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{alumni_id}/reject",
    response_model=ModerationResponse,
    summary="Reject Alumni",
    description="Reject a record whose email is verified. The reason is optional.",
    responses={
        **_AUTH_RESPONSES,
        404: {"description": "Alumni not found"},
        409: {"description": "Email not verified"},
    },
)
async def reject_alumnus(
    alumni_id: UUID,
    request: RejectRequest | None = None,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin_user),
) -> ModerationResponse:
    await _check_admin_rate_limit(admin, "reject", *RATE_LIMIT_REJECT)

    reason = request.reason if request else None
    try:
        alumnus, sent = await service.reject(db, alumni_id, admin.id, reason)
        return _moderation_response(alumnus, sent, "Alumni rejected.")
    except AlumniServiceError as e:
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Error rejecting alumni {alumni_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{alumni_id}/toggle-featured",
    response_model=VisibilityResponse,
    summary="Toggle Featured",
    responses={**_AUTH_RESPONSES, 404: {"description": "Alumni not found"}},
)
async def toggle_featured(
    alumni_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin_user),
) -> VisibilityResponse:
    try:
        alumnus = await service.toggle_featured(db, alumni_id)
        logger.info(f"Admin {admin.id} set featured={alumnus.is_featured} on {alumni_id}")
        message = "Alumni featured." if alumnus.is_featured else "Alumni unfeatured."
        return _visibility_response(alumnus, message)
    except AlumniServiceError as e:
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Error toggling featured on {alumni_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{alumni_id}/active",
    response_model=VisibilityResponse,
    summary="Set Active",
    description="Inactive records stay in the admin listing but leave the public directory.",
    responses={**_AUTH_RESPONSES, 404: {"description": "Alumni not found"}},
)
async def set_active(
    alumni_id: UUID,
    request: SetActiveRequest,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin_user),
) -> VisibilityResponse:
    try:
        alumnus = await service.set_active(db, alumni_id, request.is_active)
        logger.info(f"Admin {admin.id} set active={alumnus.is_active} on {alumni_id}")
        message = "Alumni activated." if alumnus.is_active else "Alumni deactivated."
        return _visibility_response(alumnus, message)
    except AlumniServiceError as e:
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Error setting active on {alumni_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{alumni_id}/verify-email",
    response_model=AlumniAdminDetail,
    summary="Verify Email Manually",
    description="Mark the email verified without a token. Safe to repeat.",
    responses={**_AUTH_RESPONSES, 404: {"description": "Alumni not found"}},
)
async def verify_email(
    alumni_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin_user),
) -> AlumniAdminDetail:
    await _check_admin_rate_limit(admin, "verify", *RATE_LIMIT_VERIFY)

    try:
        alumnus = await service.manually_verify(db, alumni_id, admin.id)
        return AlumniAdminDetail.model_validate(alumnus)
    except AlumniServiceError as e:
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Error verifying alumni {alumni_id}: {e}")
        raise _internal_error() from e


@router.post(
    "/{alumni_id}/resend-verification",
    response_model=VerificationIssuedResponse,
    summary="Resend Verification Email",
    description="""
Issue a new verification link, invalidating any previous one.

If the email cannot be delivered the new token is still stored and the
response carries a `warning`.
""",
    responses={**_AUTH_RESPONSES, 404: {"description": "Alumni not found"}},
)
async def resend_verification(
    alumni_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin: AdminUser = Depends(get_current_admin_user),
) -> VerificationIssuedResponse:
    await _check_admin_rate_limit(admin, "resend", *RATE_LIMIT_RESEND)

    try:
        result = await service.request_verification(db, alumni_id)
        logger.info(f"Admin {admin.id} reissued verification for {alumni_id}")
        return result
    except AlumniServiceError as e:
        raise _service_error(e) from e
    except Exception as e:
        logger.exception(f"Error reissuing verification for {alumni_id}: {e}")
        raise _internal_error() from e
