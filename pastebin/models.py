"""
Pydantic models for request/response validation.

Fields are snake_case in Python and camelCase on the wire.
"""
import re
from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

MAX_CONTENT_BYTES = 500 * 1024
MAX_EXPIRES_IN_MINUTES = 365 * 24 * 60
MAX_VIEWS_LIMIT = 1_000_000
PASTE_ID_PATTERN = r"^[A-Za-z0-9]{1,20}$"

_PASTE_ID_RE = re.compile(PASTE_ID_PATTERN)

DataT = TypeVar("DataT")


def is_valid_paste_id(paste_id: str) -> bool:
    return bool(_PASTE_ID_RE.fullmatch(paste_id))


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PasteCreate(CamelModel):
    """Schema for creating a new paste."""
    content: str = Field(..., description="Text content (required, non-blank, at most 500KB)")
    language: Optional[str] = Field(None, description="Optional language tag, stored lower-cased")
    expires_in: Optional[int] = Field(
        None,
        ge=0,
        le=MAX_EXPIRES_IN_MINUTES,
        strict=True,
        description="Minutes until expiry (0 or absent: never)",
    )
    max_views: Optional[int] = Field(
        None,
        ge=1,
        le=MAX_VIEWS_LIMIT,
        strict=True,
        description="Optional view limit",
    )

    @field_validator("content")
    @classmethod
    def check_content(cls, value: str) -> str:
        if not value.strip():
            raise PydanticCustomError("content_empty", "Content is required")
        if len(value.encode("utf-8")) > MAX_CONTENT_BYTES:
            raise PydanticCustomError(
                "content_too_large",
                "Content must not exceed {limit}KB",
                {"limit": MAX_CONTENT_BYTES // 1024},
            )
        return value

    @field_validator("language")
    @classmethod
    def normalize_language(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return value.lower().strip() or None


class PasteCreated(CamelModel):
    """Schema for paste creation response."""
    id: str = Field(..., description="Unique paste ID")
    url: str = Field(..., description="URL to fetch the paste")
    expires_at: Optional[datetime] = None
    max_views: Optional[int] = None
    created_at: datetime


class PasteView(CamelModel):
    """Schema for viewing/fetching a paste."""
    id: str
    content: str = Field(..., description="Paste text content")
    language: Optional[str] = None
    created_at: datetime
    expires_at: Optional[datetime] = Field(None, description="Expiry timestamp (null if no time limit)")
    view_count: int
    max_views: Optional[int] = None
    remaining_views: Optional[int] = Field(None, description="Views left (null if unlimited)")
    is_expired: bool


class ApiResponse(BaseModel, Generic[DataT]):
    """Success envelope."""
    success: bool = True
    data: DataT


class HealthStatus(BaseModel):
    status: str
    timestamp: datetime
    uptime: float = Field(..., description="Seconds since the process started")


class DatabaseHealth(BaseModel):
    status: str
    database: str
    timestamp: datetime


class CleanedCounts(CamelModel):
    time_expired: int
    view_expired: int
    total: int


class CleanupStatistics(CamelModel):
    total_expired: int
    total_active: int
    oldest_active_date: Optional[datetime] = None


class CleanupReport(CamelModel):
    timestamp: datetime
    duration: str
    cleaned: CleanedCounts
    statistics: CleanupStatistics


class PurgeReport(CamelModel):
    timestamp: datetime
    duration: str
    retention_days: int
    cutoff_date: datetime
    purged: int


class StatsTotals(CamelModel):
    pastes: int
    active: int
    expired: int
    total_views: int


class ExpirationTypes(CamelModel):
    with_time_expiry: int
    with_view_limit: int
    no_expiry: int


class LanguageCount(BaseModel):
    language: str
    count: int


class StatsReport(CamelModel):
    timestamp: datetime
    totals: StatsTotals
    expiration_types: ExpirationTypes
    top_languages: List[LanguageCount]
