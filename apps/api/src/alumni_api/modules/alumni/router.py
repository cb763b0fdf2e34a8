"""
Alumni Public Router

Endpoints for the public alumni directory and self-registration. No
authentication: anyone may register, verify with the emailed link, and
browse approved profiles.

Endpoints:
- GET  /alumni                      - Public directory (approved and active only)
- GET  /alumni/facets               - Filter options and the featured showcase
- GET  /alumni/{slug}               - Public profile with related alumni
- POST /alumni/register             - Self-registration
- POST /alumni/verify               - Confirm email with the emailed token
- POST /alumni/resend-verification  - Request a new verification link

Security:
- Verification tokens are single use and stored only as SHA-256 digests
- Resend is rate limited per email and answers identically whether or
  not the address is registered
- Contact, moderation and audit fields never appear in public responses
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from alumni_api.core.database import get_db
from alumni_api.core.redis import get_redis
from alumni_api.modules.alumni import service
from alumni_api.modules.alumni.models import AlumniCategory
from alumni_api.modules.alumni.schemas import (
    AlumniPublicProfileDetail,
    AlumniRegistrationCreate,
    AlumniRegistrationResponse,
    PublicAlumniListResponse,
    PublicDirectoryFacets,
    ResendVerificationRequest,
    ResendVerificationResponse,
    VerifyEmailRequest,
    VerifyEmailResponse,
)
from alumni_api.modules.alumni.service import (
    AlumniNotFoundError,
    AlumniServiceError,
    RateLimitExceededError,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _error(e: AlumniServiceError, headers: dict[str, str] | None = None) -> HTTPException:
    return HTTPException(
        status_code=e.status_code,
        detail={
            "error": e.error_code,
            "message": e.message,
        },
        headers=headers,
    )


def _internal_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


# ============================================
# Directory
# ============================================


@router.get(
    "",
    response_model=PublicAlumniListResponse,
    summary="Alumni Directory",
    description="""
Approved and active alumni, latest batch first, featured profiles first
within a batch.

**Filters:** `category`, `batch_year`, and `search` (name, organization
or designation).
""",
)
async def list_alumni(
    category: AlumniCategory | None = Query(None),
    batch_year: int | None = Query(None, ge=1900, le=2100),
    search: str | None = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    page_size: int = Query(12, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> PublicAlumniListResponse:
    try:
        return await service.public_list_alumni(
            db,
            category=category,
            batch_year=batch_year,
            search=search,
            page=page,
            page_size=page_size,
        )
    except Exception as e:
        logger.exception(f"Error listing public alumni: {e}")
        raise _internal_error() from e


@router.get(
    "/facets",
    response_model=PublicDirectoryFacets,
    summary="Directory Filters",
    description="Distinct batch years, per-category counts and up to 4 featured profiles.",
)
async def get_facets(db: AsyncSession = Depends(get_db)) -> PublicDirectoryFacets:
    try:
        return await service.public_directory_facets(db)
    except Exception as e:
        logger.exception(f"Error computing directory facets: {e}")
        raise _internal_error() from e


# ============================================
# Registration & Verification
# ============================================


@router.post(
    "/register",
    response_model=AlumniRegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register as Alumni",
    description="""
Submit a profile for the alumni directory.

The profile starts unverified and pending. A verification link is emailed
to the given address; once verified, the profile waits for an
administrator's approval before it appears publicly.

If the email could not be sent, the registration is still kept and
`verification_email_sent` is false.
""",
    responses={
        201: {"description": "Registration stored"},
        422: {"description": "Validation error with field details"},
    },
)
async def register(
    data: AlumniRegistrationCreate,
    db: AsyncSession = Depends(get_db),
) -> AlumniRegistrationResponse:
    try:
        return await service.register_alumnus(db, data)
    except AlumniServiceError as e:
        raise _error(e) from e
    except Exception as e:
        logger.exception(f"Unexpected error registering alumni: {e}")
        raise _internal_error() from e


@router.post(
    "/verify",
    response_model=VerifyEmailResponse,
    summary="Verify Email",
    description="Consume the emailed verification token. Each token works once.",
    responses={
        400: {
            "description": "Unknown, used or superseded token",
            "content": {
                "application/json": {
                    "example": {
                        "error": "INVALID_TOKEN",
                        "message": "Invalid or expired verification link.",
                    }
                }
            },
        },
    },
)
async def verify_email(
    data: VerifyEmailRequest,
    db: AsyncSession = Depends(get_db),
) -> VerifyEmailResponse:
    try:
        alumnus = await service.confirm_verification(db, data.token)
        return VerifyEmailResponse.model_validate(alumnus)
    except AlumniServiceError as e:
        raise _error(e) from e
    except Exception as e:
        logger.exception(f"Unexpected error verifying email: {e}")
        raise _internal_error() from e


@router.post(
    "/resend-verification",
    response_model=ResendVerificationResponse,
    summary="Resend Verification Link",
    description="""
Send a fresh verification link to every unverified registration under
this email. The response is the same whether or not any exist.

Limited to 3 requests per hour per address.
""",
    responses={
        429: {"description": "Rate limit exceeded"},
        503: {"description": "Rate limiter unavailable"},
    },
)
async def resend_verification(
    data: ResendVerificationRequest,
    db: AsyncSession = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
) -> ResendVerificationResponse:
    try:
        await service.resend_verification_by_email(db, data.email, redis_client=redis)
        return ResendVerificationResponse()
    except RateLimitExceededError as e:
        raise _error(e, headers={"Retry-After": str(e.retry_after_seconds)}) from e
    except AlumniServiceError as e:
        raise _error(e) from e
    except Exception as e:
        logger.exception(f"Unexpected error resending verification: {e}")
        raise _internal_error() from e


# ============================================
# Profile
# ============================================


@router.get(
    "/{slug}",
    response_model=AlumniPublicProfileDetail,
    summary="Alumni Profile",
    description="A public profile and up to 4 related alumni (same category or batch).",
    responses={404: {"description": "No public profile with this slug"}},
)
async def get_profile(
    slug: str,
    db: AsyncSession = Depends(get_db),
) -> AlumniPublicProfileDetail:
    try:
        return await service.public_profile(db, slug)
    except AlumniNotFoundError as e:
        raise _error(e) from e
    except Exception as e:
        logger.exception(f"Error loading profile {slug}: {e}")
        raise _internal_error() from e
