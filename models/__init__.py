"""
Core data models for Local Competitor Watch.
"""

from .errors import (
    LimitExceeded,
    NotFound,
    PendingLocation,
    ProviderUnavailable,
    ReportAlreadyFinalized,
    ReportError,
)
from .schemas import (
    BUSINESS_CATEGORIES,
    REPORT_COMPLETED,
    REPORT_ERROR_PREFIX,
    REPORT_PLACEHOLDER,
    AnalysisResult,
    Business,
    Competitor,
    CustomerSentiment,
    LocationStatus,
    MarketingStrategy,
    PlaceMatch,
    PlanLimits,
    Report,
    ReportStatus,
    Review,
    Swot,
    TargetAudience,
    User,
    utcnow,
)

__all__ = [
    "BUSINESS_CATEGORIES",
    "REPORT_COMPLETED",
    "REPORT_ERROR_PREFIX",
    "REPORT_PLACEHOLDER",
    "AnalysisResult",
    "Business",
    "Competitor",
    "CustomerSentiment",
    "LocationStatus",
    "MarketingStrategy",
    "PlaceMatch",
    "PlanLimits",
    "Report",
    "ReportStatus",
    "Review",
    "Swot",
    "TargetAudience",
    "User",
    "utcnow",
    "LimitExceeded",
    "NotFound",
    "PendingLocation",
    "ProviderUnavailable",
    "ReportAlreadyFinalized",
    "ReportError",
]
