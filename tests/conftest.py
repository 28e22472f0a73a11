"""
Shared fakes and fixtures.
Run with: python -m pytest tests/ -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from typing import List, Optional

import pytest

from db.store import InMemoryReportStore
from models.errors import ProviderUnavailable
from models.schemas import (
    AnalysisResult,
    Business,
    Competitor,
    CustomerSentiment,
    MarketingStrategy,
    PlaceMatch,
    Review,
    Swot,
    TargetAudience,
    User,
)
from pipeline.report import ReportPipeline
from pipeline.scheduler import SchedulerOrchestrator


# ─── Builders ────────────────────────────────────────────────────────────────

def make_user(id: str = "u1", plan: str = "free", **overrides) -> User:
    fields = dict(id=id, email=f"{id}@example.com", plan=plan, first_name="Rita")
    fields.update(overrides)
    return User(**fields)


def make_business(id: str = "b1", owner_id: Optional[str] = "u1", **overrides) -> Business:
    fields = dict(
        id=id,
        name="Tasca do Bairro",
        category="restaurant",
        address="Rua das Flores 12, Lisboa",
        latitude=38.7,
        longitude=-9.1,
        owner_id=owner_id,
    )
    fields.update(overrides)
    return Business(**fields)


def make_competitors(n: int = 3) -> List[Competitor]:
    return [
        Competitor(
            name=f"Rival {i}",
            address=f"{i} Rua Augusta, Lisboa",
            rating=round(3.9 + i * 0.2, 1),
            rating_count=20 * i,
            price_level="$$",
            distance=f"{150 * i}m",
            reviews=[Review(text="Good food, slow service", author="Joana", rating=4.0)],
        )
        for i in range(1, n + 1)
    ]


def make_analysis(summary: str = "Three established rivals nearby.") -> AnalysisResult:
    return AnalysisResult(
        executive_summary=summary,
        swot=Swot(
            strengths=["Loyal regulars"],
            weaknesses=["Small dining room"],
            opportunities=["Lunch menu for office workers"],
            threats=["New chain opening nearby"],
        ),
        market_trends=["Delivery growth"],
        target_audience=TargetAudience(
            demographics="Office workers 25-45",
            psychographics="Value quick, honest food",
            pain_points="Long lunch queues",
        ),
        marketing_strategy=MarketingStrategy(
            primary_channels="Instagram and Google Business Profile",
            content_ideas="Daily specials",
            promotional_tactics="Lunch loyalty card",
        ),
        customer_sentiment=CustomerSentiment(
            common_praises=["Portions"],
            recurring_complaints=["Wait times"],
            unmet_needs=["Online booking"],
        ),
    )


# ─── Fakes ───────────────────────────────────────────────────────────────────

class FakePlaces:
    """Returns canned competitors; raises ProviderUnavailable for latitudes in `fail_latitudes`."""

    def __init__(self, competitors=None, fail_latitudes=(), matches=None, address_error=None):
        self.competitors = make_competitors() if competitors is None else competitors
        self.fail_latitudes = set(fail_latitudes)
        self.matches = matches or []
        self.address_error = address_error
        self.nearby_calls = []
        self.address_calls = []

    async def search_nearby(self, lat, lng, category, radius_meters, include_reviews=True,
                            language="en", max_results=10):
        self.nearby_calls.append(dict(
            lat=lat, lng=lng, category=category, radius_meters=radius_meters,
            include_reviews=include_reviews, language=language, max_results=max_results,
        ))
        if lat in self.fail_latitudes:
            raise ProviderUnavailable("Places provider unreachable: connection refused")
        return list(self.competitors[:max_results])

    async def search_by_address(self, query) -> List[PlaceMatch]:
        self.address_calls.append(query)
        if self.address_error:
            raise self.address_error
        return list(self.matches)


class FakeAnalysis:

    def __init__(self, result: Optional[AnalysisResult] = None):
        self.result = result or make_analysis()
        self.calls = []

    async def analyze(self, business, competitors, language="en", plan=None):
        self.calls.append(dict(business=business, competitors=competitors, language=language, plan=plan))
        return self.result


class FakeNotifier:

    def __init__(self, result: bool = True, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls = []

    async def send_batch_report(self, user, reports):
        self.calls.append((user, list(reports)))
        if self.error:
            raise self.error
        return self.result


class CountingStore(InMemoryReportStore):
    """In-memory store that counts report writes."""

    def __init__(self):
        super().__init__()
        self.create_report_calls = 0
        self.update_report_calls = 0

    async def create_report(self, report):
        self.create_report_calls += 1
        return await super().create_report(report)

    async def update_report(self, report_id, patch, *, only_if_generating=False):
        self.update_report_calls += 1
        return await super().update_report(report_id, patch, only_if_generating=only_if_generating)


# ─── Fixtures ────────────────────────────────────────────────────────────────

@pytest.fixture
def store():
    return CountingStore()


@pytest.fixture
def places():
    return FakePlaces()


@pytest.fixture
def analysis():
    return FakeAnalysis()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def pipeline(store, places, analysis):
    return ReportPipeline(store, places, analysis, default_radius=1500)


@pytest.fixture
def orchestrator(store, pipeline, notifier):
    return SchedulerOrchestrator(store, pipeline, notifier, default_radius=1500)
