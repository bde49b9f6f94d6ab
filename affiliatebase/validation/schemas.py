"""Request and response models for the public and admin API."""

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from affiliatebase.core.models import Program
from affiliatebase.core.time import isoformat, utc_now, normalize_timezone
from affiliatebase.ranking.score import ranking_score
from affiliatebase.validation.urls import clean_and_validate_url

CATEGORIES = (
    "Artificial Intelligence",
    "Marketing",
    "E-commerce",
    "Design Tools",
    "Developer Tools",
    "Fintech",
    "Productivity",
    "No-Code",
    "Analytics",
    "SaaS",
    "Hosting & Web",
    "Utilities",
)

VALID_COUNTRIES = (
    "US", "GB", "DE", "FR", "ES", "IT", "NL", "BE", "AT", "CH",
    "SE", "NO", "DK", "FI", "PL", "CZ", "PT", "IE", "RU", "UA",
    "CA", "MX", "BR", "AR", "CO", "CL", "AU", "NZ", "JP", "KR",
    "CN", "HK", "SG", "IN", "ID", "TH", "VN", "MY", "PH", "AE",
    "SA", "IL", "TR", "EG", "ZA", "NG", "KE", "Other",
)

DEFAULT_TAGLINE = "No tagline provided."
DEFAULT_DESCRIPTION = "No description provided."

Category = Literal[CATEGORIES]

# Request body key -> Program column
PROGRAM_FIELD_MAP = {
    "programName": "name",
    "tagline": "tagline",
    "description": "description",
    "category": "category",
    "websiteUrl": "website_url",
    "affiliateUrl": "affiliate_url",
    "logoUrl": "logo_url",
    "commissionType": "commission_type",
    "commissionRate": "commission_rate",
    "commissionDuration": "commission_duration",
    "cookieDuration": "cookie_duration",
    "payoutMethod": "payout_method",
    "minPayoutValue": "min_payout_value",
    "avgOrderValue": "avg_order_value",
    "targetAudience": "target_audience",
    "additionalInfo": "additional_info",
    "affiliatesCountRange": "affiliates_count_range",
    "payoutsTotalRange": "payouts_total_range",
    "foundingDate": "founding_date",
    "approvalTimeRange": "approval_time_range",
    "country": "country",
    "email": "email",
    "xHandle": "x_handle",
    "manualScoreBoost": "manual_score_boost",
    "approvalStatus": "approval_status",
    "isFeatured": "is_featured",
    "featuredExpiresAt": "featured_expires_at",
}


class _ProgramFields(BaseModel):
    """Shared field rules for program create and update bodies."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    @field_validator(
        "logoUrl", "commissionDuration", "payoutMethod", "targetAudience", "additionalInfo",
        "affiliatesCountRange", "payoutsTotalRange", "approvalTimeRange", "email", "xHandle",
        mode="before", check_fields=False,
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("websiteUrl", "affiliateUrl", mode="after", check_fields=False)
    @classmethod
    def _clean_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        return clean_and_validate_url(value)

    @field_validator("country", mode="before", check_fields=False)
    @classmethod
    def _known_country(cls, value: Any) -> Any:
        if value is None:
            return value
        value = str(value).strip()
        return value if value in VALID_COUNTRIES else "Other"

    def to_columns(self) -> Dict[str, Any]:
        """Map the fields that were actually sent onto Program column names."""
        data = self.model_dump(exclude_unset=True)
        return {PROGRAM_FIELD_MAP[key]: value for key, value in data.items() if key in PROGRAM_FIELD_MAP}


class ProgramCreate(_ProgramFields):
    """Public submission form."""
    programName: str = Field(min_length=2, max_length=30)
    tagline: str = Field(default=DEFAULT_TAGLINE, min_length=5, max_length=50)
    description: str = Field(default=DEFAULT_DESCRIPTION, max_length=2000)
    category: Category
    websiteUrl: str
    affiliateUrl: str
    logoUrl: Optional[str] = None
    commissionType: Literal["PERCENTAGE", "FIXED"] = "PERCENTAGE"
    commissionRate: float = Field(ge=0)
    commissionDuration: Optional[Literal["One-time", "Recurring"]] = None
    cookieDuration: Optional[int] = Field(default=None, ge=0)
    payoutMethod: Optional[str] = None
    minPayoutValue: Optional[float] = Field(default=None, ge=0)
    avgOrderValue: Optional[float] = Field(default=None, ge=0)
    targetAudience: Optional[str] = Field(default=None, max_length=80)
    additionalInfo: Optional[str] = None
    affiliatesCountRange: Optional[str] = None
    payoutsTotalRange: Optional[str] = None
    foundingDate: Optional[datetime] = None
    approvalTimeRange: Optional[str] = None
    country: str = "Other"
    email: Optional[EmailStr] = None
    xHandle: Optional[str] = None

    @field_validator("tagline", mode="before")
    @classmethod
    def _default_tagline(cls, value: Any) -> Any:
        return value if isinstance(value, str) and value.strip() else DEFAULT_TAGLINE

    @field_validator("description", mode="before")
    @classmethod
    def _default_description(cls, value: Any) -> Any:
        return value if isinstance(value, str) and value.strip() else DEFAULT_DESCRIPTION

    def to_columns(self) -> Dict[str, Any]:
        # Defaults count as sent for creation
        data = self.model_dump()
        return {PROGRAM_FIELD_MAP[key]: value for key, value in data.items()}


class ProgramUpdate(_ProgramFields):
    """Admin edit; only listed fields may change."""
    programName: Optional[str] = Field(default=None, min_length=2, max_length=30)
    tagline: Optional[str] = Field(default=None, min_length=5, max_length=50)
    description: Optional[str] = Field(default=None, max_length=2000)
    category: Optional[Category] = None
    websiteUrl: Optional[str] = None
    affiliateUrl: Optional[str] = None
    logoUrl: Optional[str] = None
    commissionType: Optional[Literal["PERCENTAGE", "FIXED"]] = None
    commissionRate: Optional[float] = Field(default=None, ge=0)
    commissionDuration: Optional[Literal["One-time", "Recurring"]] = None
    cookieDuration: Optional[int] = Field(default=None, ge=0)
    payoutMethod: Optional[str] = None
    minPayoutValue: Optional[float] = Field(default=None, ge=0)
    avgOrderValue: Optional[float] = Field(default=None, ge=0)
    targetAudience: Optional[str] = Field(default=None, max_length=80)
    additionalInfo: Optional[str] = None
    affiliatesCountRange: Optional[str] = None
    payoutsTotalRange: Optional[str] = None
    foundingDate: Optional[datetime] = None
    approvalTimeRange: Optional[str] = None
    country: Optional[str] = None
    email: Optional[EmailStr] = None
    xHandle: Optional[str] = None
    manualScoreBoost: Optional[float] = None
    approvalStatus: Optional[bool] = None
    isFeatured: Optional[bool] = None
    featuredExpiresAt: Optional[datetime] = None

    def to_columns(self) -> Dict[str, Any]:
        columns = super().to_columns()
        # Required columns cannot be cleared
        for required in ("name", "tagline", "description", "category", "website_url",
                         "affiliate_url", "commission_type", "commission_rate", "country",
                         "manual_score_boost", "approval_status", "is_featured"):
            if columns.get(required, "") is None:
                columns.pop(required)
        return columns


class ReportCreate(BaseModel):
    """Public edit suggestion or abuse report."""
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    type: Literal["EDIT", "REPORT"]
    message: str = Field(min_length=1, max_length=5000)
    reason: Optional[str] = Field(default=None, max_length=200)
    email: Optional[EmailStr] = None
    isFounder: bool = False

    @field_validator("email", "reason", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class FingerprintRequest(BaseModel):
    fingerprint: str = Field(min_length=1, max_length=128)


class TrackRequest(BaseModel):
    """Client analytics beacon."""
    programId: Optional[str] = None
    type: Literal["VIEW", "CLICK"] = "VIEW"
    fingerprint: Optional[str] = Field(default=None, max_length=128)
    path: Optional[str] = Field(default=None, max_length=1000)


class SearchTrackRequest(BaseModel):
    query: str = Field(min_length=1, max_length=200)
    resultsCount: int = Field(default=0, ge=0)


class ValidateUrlRequest(BaseModel):
    url: str = ""
    context: Literal["Website", "Affiliate Link"] = "Website"


class LoginRequest(BaseModel):
    password: str = ""


class BoostUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")
    manualScoreBoost: float


class ApprovalUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")
    approved: bool


class ReportStatusUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")
    status: Literal["PENDING", "RESOLVED", "DISMISSED"]


class CheckoutRequest(BaseModel):
    """Either an existing program id or a draft submission to create once paid."""
    model_config = ConfigDict(extra="forbid")
    programId: Optional[str] = None
    programData: Optional[ProgramCreate] = None


def is_feature_active(program: Program, now: Optional[datetime] = None) -> bool:
    """Featured flag is only trusted while its expiry is in the future."""
    if not program.is_featured or program.featured_expires_at is None:
        return False
    return normalize_timezone(program.featured_expires_at) > (now or utc_now())


def serialize_program(program: Program, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Public JSON shape of a program."""
    now = now or utc_now()
    return {
        "id": program.id,
        "programName": program.name,
        "slug": program.slug,
        "tagline": program.tagline,
        "description": program.description,
        "category": program.category,
        "websiteUrl": program.website_url,
        "affiliateUrl": program.affiliate_url,
        "logoUrl": program.logo_url,
        "country": program.country,
        "email": program.email,
        "xHandle": program.x_handle,
        "commissionType": program.commission_type,
        "commissionRate": program.commission_rate,
        "commissionDuration": program.commission_duration,
        "cookieDuration": program.cookie_duration,
        "payoutMethod": program.payout_method,
        "minPayoutValue": program.min_payout_value,
        "avgOrderValue": program.avg_order_value,
        "targetAudience": program.target_audience,
        "additionalInfo": program.additional_info,
        "affiliatesCountRange": program.affiliates_count_range,
        "payoutsTotalRange": program.payouts_total_range,
        "foundingDate": isoformat(program.founding_date),
        "approvalTimeRange": program.approval_time_range,
        "manualScoreBoost": program.manual_score_boost,
        "trendingScore": program.trending_score,
        "rankingScore": ranking_score(program.trending_score, program.created_at, now),
        "isFeatured": is_feature_active(program, now),
        "featuredExpiresAt": isoformat(program.featured_expires_at),
        "totalViews": program.total_views,
        "clicks": program.clicks,
        "approvalStatus": program.approval_status,
        "reviewedAt": isoformat(program.reviewed_at),
        "createdAt": isoformat(program.created_at),
        "updatedAt": isoformat(program.updated_at),
    }
