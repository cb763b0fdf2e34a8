"""
Alumni Schemas

Pydantic schemas for request validation and response serialization.
"""

import enum
from datetime import datetime
from typing import Annotated, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from alumni_api.modules.alumni.models import AlumniCategory, ApprovalStatus

EARLIEST_BATCH_YEAR = 1900


class StatusFilter(str, enum.Enum):
    """Approval status filter for the admin listing."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ALL = "all"


class VerifiedFilter(str, enum.Enum):
    """Email verification filter for the admin listing."""

    YES = "yes"
    NO = "no"
    ALL = "all"


class BulkSkipReason(str, enum.Enum):
    NOT_FOUND = "NOT_FOUND"
    EMAIL_NOT_VERIFIED = "EMAIL_NOT_VERIFIED"


# ============================================
# Registration & verification
# ============================================


def _check_linkedin_url(value: str | None) -> None:
    if value and not value.startswith(("http://", "https://")):
        raise ValueError("linkedin_url must be a full http(s) URL")


def _check_batch_year(value: int | None) -> None:
    current_year = datetime.now().year
    if value is not None and value > current_year:
        raise ValueError(f"batch_year cannot be in the future (max: {current_year})")


class AlumniRegistrationCreate(BaseModel):
    """Request body for POST /alumni/register."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    phone: str | None = Field(None, max_length=20)
    batch_year: int = Field(..., ge=EARLIEST_BATCH_YEAR)
    class_section: str | None = Field(None, max_length=50)
    house: str | None = Field(None, max_length=50)
    category: AlumniCategory
    current_designation: str | None = Field(None, max_length=255)
    organization: str | None = Field(None, max_length=255)
    location: str | None = Field(None, max_length=255)
    photo: str | None = Field(None, max_length=500, description="Stored photo path")
    linkedin_url: str | None = Field(None, max_length=255)
    achievement: str | None = Field(None, max_length=1000)
    story: str | None = Field(None, max_length=5000)
    school_memories: str | None = Field(None, max_length=2000)
    message_to_juniors: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def validate_registration(self) -> "AlumniRegistrationCreate":
        _check_batch_year(self.batch_year)
        _check_linkedin_url(self.linkedin_url)
        return self


class AlumniRegistrationResponse(BaseModel):
    """Response after a successful registration."""

    id: UUID
    slug: str
    email: str
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    verification_email_sent: bool = Field(
        ..., description="False when the verification email could not be delivered"
    )
    message: str = (
        "Registration received. Please check your email to verify your address; "
        "your profile will be reviewed once verified."
    )


class VerifyEmailRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=128)


class VerifyEmailResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    slug: str
    email_verified_at: datetime
    message: str = "Email verified. Your profile is now awaiting review."


class ResendVerificationRequest(BaseModel):
    email: EmailStr


class ResendVerificationResponse(BaseModel):
    message: str = (
        "If an unverified registration exists for this email, a new verification link "
        "has been sent."
    )


# ============================================
# Public directory
# ============================================


class AlumniPublicProfile(BaseModel):
    """Public directory card / profile. Contact and moderation fields are omitted."""

    model_config = ConfigDict(from_attributes=True)

    slug: str
    name: str
    batch_year: int
    class_section: str | None = None
    house: str | None = None
    location: str | None = None
    photo: str | None = None
    current_designation: str | None = None
    organization: str | None = None
    category: AlumniCategory
    linkedin_link: str | None = None
    achievement: str | None = None
    story: str | None = None
    school_memories: str | None = None
    message_to_juniors: str | None = None
    is_featured: bool


class AlumniPublicProfileDetail(AlumniPublicProfile):
    """Profile page: the card plus a few alumni from the same field or batch."""

    related: list[AlumniPublicProfile] = Field(default_factory=list)


class PublicAlumniListResponse(BaseModel):
    items: list[AlumniPublicProfile]
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1, le=100)
    total: int = Field(..., ge=0)


class CategoryFacet(BaseModel):
    value: AlumniCategory
    label: str
    count: int = Field(..., ge=0)


class PublicDirectoryFacets(BaseModel):
    """Filter options for the public directory."""

    total: int = Field(..., ge=0, description="Publicly visible alumni")
    batch_years: list[int] = Field(..., description="Distinct batch years, latest first")
    categories: list[CategoryFacet]
    featured: list[AlumniPublicProfile] = Field(..., description="Featured showcase, at most 4")


# ============================================
# Admin directory
# ============================================


class AlumniAdminListItem(BaseModel):
    """Row in the admin alumni table."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    slug: str
    name: str
    email: str
    batch_year: int
    category: AlumniCategory
    organization: str | None = None
    approval_status: ApprovalStatus
    email_verified_at: datetime | None = None
    is_email_verified: bool
    is_featured: bool
    is_active: bool
    created_at: datetime


class AlumniAdminDetail(AlumniAdminListItem):
    """Full record for the admin detail screen. Never includes the token digest."""

    phone: str | None = None
    class_section: str | None = None
    house: str | None = None
    location: str | None = None
    photo: str | None = None
    current_designation: str | None = None
    linkedin_url: str | None = None
    achievement: str | None = None
    story: str | None = None
    school_memories: str | None = None
    message_to_juniors: str | None = None
    rejection_reason: str | None = None
    approved_at: datetime | None = Field(None, description="When the last decision was made")
    approved_by: UUID | None = Field(None, description="Admin who made the last decision")
    updated_at: datetime


class AdminStats(BaseModel):
    """Counts over every record, independent of listing filters."""

    total_count: int = Field(..., ge=0)
    pending_count: int = Field(..., ge=0)
    approved_count: int = Field(..., ge=0)
    rejected_count: int = Field(..., ge=0)
    unverified_count: int = Field(..., ge=0)


class AdminAlumniListResponse(BaseModel):
    items: list[AlumniAdminListItem]
    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1, le=100)
    total: int = Field(..., ge=0, description="Records matching the filters")
    stats: AdminStats
    batch_years: list[int] = Field(..., description="Distinct batch years for the filter menu")


class AlumniProfileUpdate(BaseModel):
    """Admin edit of profile and visibility fields. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str | None = Field(None, min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(None, max_length=20)
    batch_year: int | None = Field(None, ge=EARLIEST_BATCH_YEAR)
    class_section: str | None = Field(None, max_length=50)
    house: str | None = Field(None, max_length=50)
    category: AlumniCategory | None = None
    current_designation: str | None = Field(None, max_length=255)
    organization: str | None = Field(None, max_length=255)
    location: str | None = Field(None, max_length=255)
    photo: str | None = Field(None, max_length=500)
    linkedin_url: str | None = Field(None, max_length=255)
    achievement: str | None = Field(None, max_length=1000)
    story: str | None = Field(None, max_length=5000)
    school_memories: str | None = Field(None, max_length=2000)
    message_to_juniors: str | None = Field(None, max_length=1000)
    is_featured: bool | None = None
    is_active: bool | None = None

    @model_validator(mode="after")
    def validate_update(self) -> "AlumniProfileUpdate":
        _check_batch_year(self.batch_year)
        _check_linkedin_url(self.linkedin_url)

        # Required columns cannot be cleared
        for field in ("name", "email", "batch_year", "category", "is_featured", "is_active"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


# ============================================
# Admin actions
# ============================================


class RejectRequest(BaseModel):
    reason: str | None = Field(
        None,
        max_length=500,
        description="Optional reason shown to the alumnus",
        json_schema_extra={"example": "Batch year could not be matched with school records."},
    )


class SetActiveRequest(BaseModel):
    is_active: bool


class BulkApproveRequest(BaseModel):
    ids: list[UUID] = Field(..., min_length=1, max_length=500)


class BulkApproved(BaseModel):
    outcome: Literal["approved"] = "approved"
    id: UUID


class BulkSkipped(BaseModel):
    outcome: Literal["skipped"] = "skipped"
    id: UUID
    reason: BulkSkipReason


BulkApproveOutcome = Annotated[BulkApproved | BulkSkipped, Field(discriminator="outcome")]


class BulkApproveResponse(BaseModel):
    results: list[BulkApproveOutcome]
    approved_count: int = Field(..., ge=0)
    skipped_count: int = Field(..., ge=0)
    message: str


class ModerationResponse(BaseModel):
    """Result of approve / reject."""

    id: UUID
    approval_status: ApprovalStatus
    approved_at: datetime | None
    approved_by: UUID | None
    rejection_reason: str | None = None
    notification_sent: bool = Field(
        ..., description="False when the email failed and was queued for retry"
    )
    message: str


class VerificationIssuedResponse(BaseModel):
    """Result of issuing a new verification token."""

    id: UUID
    email_sent: bool
    warning: str | None = None
    message: str = "Verification email sent."


class VisibilityResponse(BaseModel):
    id: UUID
    is_featured: bool
    is_active: bool
    message: str
