"""
Core data models / schemas for Local Competitor Watch.

Entities (Business, User, Report) and embedded value types (Competitor,
Review) are plain dataclasses. The language-model output (AnalysisResult) is
a pydantic model so that raw model JSON can be validated in one call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


BUSINESS_CATEGORIES = (
    "restaurant",
    "cafe",
    "retail",
    "gym",
    "salon",
    "pharmacy",
    "hotel",
    "bar",
    "bakery",
    "supermarket",
    "clinic",
    "dentist",
    "bank",
    "gas_station",
    "car_repair",
    "other",
)

# Values of Report.ai_analysis that pollers read as the row's state
REPORT_PLACEHOLDER = "Generating..."
REPORT_COMPLETED = "Structured Analysis"
REPORT_ERROR_PREFIX = "Error: "


def utcnow() -> datetime:
    """Naive UTC timestamp (what SQL backends hand back)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).replace(tzinfo=None)
    except ValueError:
        return None


class LocationStatus(str, Enum):
    VALIDATED = "validated"
    PENDING = "pending"


class ReportStatus(str, Enum):
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"
    STALE = "stale"


# ---------------------------------------------------------------------------
# Accounts & businesses
# ---------------------------------------------------------------------------

@dataclass
class User:
    id: str
    email: str
    plan: str = "free"
    first_name: Optional[str] = None
    language: str = "en"
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Business:
    id: str
    name: str
    category: str                       # one of BUSINESS_CATEGORIES
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    location_status: LocationStatus = LocationStatus.VALIDATED
    owner_id: Optional[str] = None
    rating: Optional[float] = None      # refreshed opportunistically
    rating_count: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def has_valid_location(self) -> bool:
        return (
            self.location_status == LocationStatus.VALIDATED
            and self.latitude is not None
            and self.longitude is not None
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "address": self.address,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "location_status": LocationStatus(self.location_status).value,
            "owner_id": self.owner_id,
            "rating": self.rating,
            "rating_count": self.rating_count,
            "created_at": self.created_at,
        }


# ---------------------------------------------------------------------------
# Places data (embedded in reports)
# ---------------------------------------------------------------------------

@dataclass
class Review:
    text: str
    author: str = "Anonymous"
    rating: Optional[float] = None
    date: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "author": self.author,
            "rating": self.rating,
            "date": self.date.isoformat() if self.date else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Review":
        return cls(
            text=data.get("text", ""),
            author=data.get("author") or "Anonymous",
            rating=data.get("rating"),
            date=_parse_datetime(data.get("date")),
        )


@dataclass
class Competitor:
    name: str
    address: str
    rating: Optional[float] = None
    rating_count: Optional[int] = None
    price_level: Optional[str] = None   # "Free", "$" .. "$$$$"
    distance: Optional[str] = None      # "850m", "2.3km"
    reviews: List[Review] = field(default_factory=list)
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "address": self.address,
            "rating": self.rating,
            "rating_count": self.rating_count,
            "price_level": self.price_level,
            "distance": self.distance,
            "reviews": [r.to_dict() for r in self.reviews],
            "latitude": self.latitude,
            "longitude": self.longitude,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Competitor":
        return cls(
            name=data.get("name", "Unknown"),
            address=data.get("address", ""),
            rating=data.get("rating"),
            rating_count=data.get("rating_count"),
            price_level=data.get("price_level"),
            distance=data.get("distance"),
            reviews=[Review.from_dict(r) for r in data.get("reviews") or []],
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
        )


@dataclass
class PlaceMatch:
    """One hit from a free-text address search."""
    name: str
    address: str
    latitude: float
    longitude: float
    place_id: str = ""
    rating: Optional[float] = None
    rating_count: Optional[int] = None


# ---------------------------------------------------------------------------
# Language-model analysis
# ---------------------------------------------------------------------------

class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Swot(_Frozen):
    strengths: List[str]
    weaknesses: List[str]
    opportunities: List[str]
    threats: List[str]


class TargetAudience(_Frozen):
    demographics: str
    psychographics: str
    pain_points: str


class MarketingStrategy(_Frozen):
    primary_channels: str
    content_ideas: str
    promotional_tactics: str


class CustomerSentiment(_Frozen):
    common_praises: List[str]
    recurring_complaints: List[str]
    unmet_needs: List[str]


class AnalysisResult(_Frozen):
    executive_summary: str = Field(min_length=1)
    swot: Swot
    market_trends: List[str]
    target_audience: TargetAudience
    marketing_strategy: MarketingStrategy
    customer_sentiment: CustomerSentiment


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

@dataclass
class Report:
    id: Optional[str]                   # None until the store assigns one
    business_name: str
    business_id: Optional[str] = None   # None for ad-hoc address analysis
    user_id: Optional[str] = None
    competitors: List[Competitor] = field(default_factory=list)
    ai_analysis: str = REPORT_PLACEHOLDER
    executive_summary: Optional[str] = None
    swot: Optional[Swot] = None
    market_trends: Optional[List[str]] = None
    target_audience: Optional[TargetAudience] = None
    marketing_strategy: Optional[MarketingStrategy] = None
    customer_sentiment: Optional[CustomerSentiment] = None
    radius: Optional[int] = None
    generated_at: Optional[datetime] = None
    scheduled: bool = False              # produced by a batch run, not a user request

    @property
    def is_generating(self) -> bool:
        return self.ai_analysis == REPORT_PLACEHOLDER

    def status_at(self, now: datetime, stale_after_seconds: int) -> ReportStatus:
        """
        Reader-side view of the row. A placeholder that outlived the window is
        reported as stale since its writer may have died without a terminal write.
        """
        if self.ai_analysis.startswith(REPORT_ERROR_PREFIX):
            return ReportStatus.FAILED
        if not self.is_generating:
            return ReportStatus.COMPLETED
        if self.generated_at and (now - self.generated_at).total_seconds() > stale_after_seconds:
            return ReportStatus.STALE
        return ReportStatus.GENERATING

    def counts_toward_quota(self, now: datetime, stale_after_seconds: int) -> bool:
        """User-requested rows that completed or are still legitimately in flight."""
        if self.scheduled:
            return False
        return self.status_at(now, stale_after_seconds) in (ReportStatus.COMPLETED, ReportStatus.GENERATING)

    @staticmethod
    def analysis_fields(analysis: AnalysisResult) -> Dict[str, Any]:
        """Flatten an AnalysisResult into Report field values."""
        return {
            "ai_analysis": REPORT_COMPLETED,
            "executive_summary": analysis.executive_summary,
            "swot": analysis.swot,
            "market_trends": list(analysis.market_trends),
            "target_audience": analysis.target_audience,
            "marketing_strategy": analysis.marketing_strategy,
            "customer_sentiment": analysis.customer_sentiment,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "business_name": self.business_name,
            "user_id": self.user_id,
            "competitors": [c.to_dict() for c in self.competitors],
            "ai_analysis": self.ai_analysis,
            "executive_summary": self.executive_summary,
            "swot": self.swot.model_dump() if self.swot else None,
            "market_trends": self.market_trends,
            "target_audience": self.target_audience.model_dump() if self.target_audience else None,
            "marketing_strategy": self.marketing_strategy.model_dump() if self.marketing_strategy else None,
            "customer_sentiment": self.customer_sentiment.model_dump() if self.customer_sentiment else None,
            "radius": self.radius,
            "generated_at": self.generated_at,
            "scheduled": self.scheduled,
        }


@dataclass(frozen=True)
class PlanLimits:
    max_businesses: int
    max_monthly_reports: int
    max_radius: int          # meters
    max_competitors: int
