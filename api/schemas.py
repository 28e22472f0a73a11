"""
Pydantic schemas for API request/response validation.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from models.schemas import (
    BUSINESS_CATEGORIES,
    CustomerSentiment,
    MarketingStrategy,
    Report,
    ReportStatus,
    Swot,
    TargetAudience,
)


def _check_category(value: str) -> str:
    value = value.strip().lower()
    if value not in BUSINESS_CATEGORIES:
        raise ValueError(f"category must be one of: {', '.join(BUSINESS_CATEGORIES)}")
    return value


# ─── Request Schemas ─────────────────────────────────────────────────────────

class CreateBusinessRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    category: str
    address: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    location_status: Literal["validated", "pending"] = "validated"

    @field_validator("category")
    @classmethod
    def check_category(cls, value: str) -> str:
        return _check_category(value)


class RunReportRequest(BaseModel):
    language: Optional[str] = None
    radius: Optional[int] = Field(None, ge=100, description="Search radius in meters")


class AnalyzeAddressRequest(BaseModel):
    """Free-text address or explicit coordinates."""
    address: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    name: Optional[str] = None
    category: str
    radius: Optional[int] = Field(None, ge=100, description="Search radius in meters")
    language: Optional[str] = None

    @field_validator("category")
    @classmethod
    def check_category(cls, value: str) -> str:
        return _check_category(value)

    @model_validator(mode="after")
    def check_location(self):
        has_coords = self.latitude is not None and self.longitude is not None
        if not has_coords and not (self.address and self.address.strip()):
            raise ValueError("Provide an address or both latitude and longitude")
        return self


# ─── Response Schemas ────────────────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: datetime
    store: str


class BusinessResponse(BaseModel):
    id: str
    name: str
    category: str
    address: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]
    location_status: str
    owner_id: Optional[str]
    rating: Optional[float]
    rating_count: Optional[int]
    created_at: datetime


class ReviewResponse(BaseModel):
    text: str
    author: str
    rating: Optional[float]
    date: Optional[str]


class CompetitorResponse(BaseModel):
    name: str
    address: str
    rating: Optional[float]
    rating_count: Optional[int]
    price_level: Optional[str]
    distance: Optional[str]
    reviews: List[ReviewResponse]
    latitude: Optional[float]
    longitude: Optional[float]


class ReportResponse(BaseModel):
    id: str
    status: ReportStatus
    business_id: Optional[str]
    business_name: str
    user_id: Optional[str]
    competitors: List[CompetitorResponse]
    ai_analysis: str
    executive_summary: Optional[str]
    swot: Optional[Swot]
    market_trends: Optional[List[str]]
    target_audience: Optional[TargetAudience]
    marketing_strategy: Optional[MarketingStrategy]
    customer_sentiment: Optional[CustomerSentiment]
    radius: Optional[int]
    generated_at: Optional[datetime]
    scheduled: bool = False

    @classmethod
    def from_report(cls, report: Report, now: datetime, stale_after_seconds: int) -> "ReportResponse":
        return cls(status=report.status_at(now, stale_after_seconds), **report.to_dict())


class BusinessRunResultResponse(BaseModel):
    business_id: str
    business_name: str
    success: bool
    error: Optional[str]
    report_id: Optional[str]


class RunAllResponse(BaseModel):
    success_count: int
    failed_count: int
    results: List[BusinessRunResultResponse]
    started_at: Optional[datetime]
    finished_at: Optional[datetime]


class SchedulerStatusResponse(BaseModel):
    running: bool
    next_run: Optional[str]
    schedule: str


class AcceptedResponse(BaseModel):
    message: str
    detail: Dict[str, Any] = {}
