"""
ReportPipeline: the per-invocation state machine and background completion.
Run with: python -m pytest tests/ -v
"""

import asyncio
from datetime import timedelta

import pytest

from conftest import FakePlaces, make_business, make_user
from models.errors import NotFound, PendingLocation, ProviderUnavailable, ReportAlreadyFinalized
from models.schemas import (
    REPORT_COMPLETED,
    REPORT_PLACEHOLDER,
    LocationStatus,
    PlaceMatch,
    Report,
    ReportStatus,
    utcnow,
)
from pipeline.base import PipelineRun, PipelineStage
from pipeline.report import ReportPipeline


def _seed(store, *items):
    async def seed():
        for item in items:
            if hasattr(item, "email"):
                await store.create_user(item)
            else:
                await store.create_business(item)
    asyncio.run(seed())


# ─── Preconditions ───────────────────────────────────────────────────────────

class TestPreconditions:
    @pytest.mark.parametrize("overrides", [
        {"location_status": LocationStatus.PENDING},
        {"latitude": None},
        {"longitude": None},
    ])
    def test_invalid_location_fails_before_gateways(self, store, places, analysis, pipeline, overrides):
        _seed(store, make_user(), make_business(**overrides))
        with pytest.raises(PendingLocation):
            asyncio.run(pipeline.generate("b1", language="en", owner_id="u1"))
        assert places.nearby_calls == []
        assert analysis.calls == []
        assert store.create_report_calls == 0

    def test_inline_pending_business_rejected(self, places, pipeline):
        business = make_business(location_status=LocationStatus.PENDING)
        with pytest.raises(PendingLocation):
            asyncio.run(pipeline.generate(business=business))
        assert places.nearby_calls == []

    def test_unknown_business_not_found(self, pipeline, places):
        with pytest.raises(NotFound):
            asyncio.run(pipeline.generate("missing"))
        assert places.nearby_calls == []


# ─── Generation ──────────────────────────────────────────────────────────────

class TestGenerate:
    def test_scenario_walkthrough(self, store, places, analysis, pipeline):
        _seed(store, make_user(plan="free"), make_business())
        report = asyncio.run(pipeline.generate("b1", language="en", owner_id="u1", radius=2000))

        assert len(report.competitors) == 3
        assert report.business_id == "b1"
        assert report.radius == 2000
        assert report.user_id == "u1"
        assert report.ai_analysis == REPORT_COMPLETED
        assert report.executive_summary == analysis.result.executive_summary
        assert report.generated_at is not None
        assert store.create_report_calls == 1
        assert places.nearby_calls[0]["max_results"] == 10
        assert asyncio.run(store.get_report(report.id)) is not None

    def test_pro_plan_raises_competitor_cap(self, store, places, pipeline):
        _seed(store, make_user(plan="pro"), make_business())
        asyncio.run(pipeline.generate("b1", owner_id="u1"))
        assert places.nearby_calls[0]["max_results"] == 100

    def test_no_owner_uses_free_limits_and_default_radius(self, store, places, analysis, pipeline):
        _seed(store, make_business(owner_id=None))
        report = asyncio.run(pipeline.generate("b1"))
        assert places.nearby_calls[0]["max_results"] == 10
        assert report.radius == 1500
        assert analysis.calls[0]["plan"] is None

    def test_language_and_plan_reach_gateways(self, store, places, analysis, pipeline):
        _seed(store, make_user(plan="pro"), make_business())
        asyncio.run(pipeline.generate("b1", language="pt", owner_id="u1"))
        assert places.nearby_calls[0]["language"] == "pt"
        assert analysis.calls[0]["language"] == "pt"
        assert analysis.calls[0]["plan"] == "pro"

    def test_provider_failure_is_fatal(self, store, analysis):
        places = FakePlaces(fail_latitudes={38.7})
        pipeline = ReportPipeline(store, places, analysis)
        _seed(store, make_business())
        with pytest.raises(ProviderUnavailable):
            asyncio.run(pipeline.generate("b1"))
        assert analysis.calls == []
        assert store.create_report_calls == 0

    def test_ephemeral_business_is_never_stored(self, store, pipeline):
        business = make_business(id="temp-123", owner_id=None)
        report = asyncio.run(pipeline.generate(business=business, language="en", radius=1000))

        assert report.id.startswith("temp-")
        assert report.business_id is None
        assert report.business_name == business.name
        assert report.generated_at is not None
        assert store.create_report_calls == 0
        assert store.update_report_calls == 0

    def test_ephemeral_business_skips_rating_refresh(self, places, pipeline):
        asyncio.run(pipeline.generate(business=make_business()))
        assert places.address_calls == []

    def test_existing_row_updated_in_place(self, store, pipeline):
        _seed(store, make_user(), make_business())

        async def run():
            placeholder = await pipeline.create_placeholder("Tasca do Bairro", "u1", business_id="b1")
            report = await pipeline.generate("b1", owner_id="u1", existing_report_id=placeholder.id)
            return placeholder, report

        placeholder, report = asyncio.run(run())
        assert placeholder.ai_analysis == REPORT_PLACEHOLDER
        assert report.id == placeholder.id
        assert report.ai_analysis == REPORT_COMPLETED
        assert len(report.competitors) == 3
        assert store.create_report_calls == 1      # the placeholder only
        assert len(asyncio.run(store.get_reports_by_business_id("b1"))) == 1


# ─── Self-rating refresh ─────────────────────────────────────────────────────

class TestRatingRefresh:
    def test_matching_place_updates_business(self, store, analysis):
        places = FakePlaces(matches=[
            PlaceMatch(name="Tasca do Bairro", address="Rua das Flores 12", latitude=38.7001,
                       longitude=-9.1, rating=4.7, rating_count=312),
        ])
        pipeline = ReportPipeline(store, places, analysis)
        _seed(store, make_business())
        asyncio.run(pipeline.generate("b1"))

        business = asyncio.run(store.get_business("b1"))
        assert business.rating == 4.7
        assert business.rating_count == 312
        assert places.address_calls == ["Tasca do Bairro, Rua das Flores 12, Lisboa"]

    def test_no_match_leaves_business_alone(self, store, analysis):
        places = FakePlaces(matches=[
            PlaceMatch(name="Somewhere Else Entirely", address="x", latitude=38.7, longitude=-9.1, rating=2.0),
        ])
        _seed(store, make_business())
        asyncio.run(ReportPipeline(store, places, analysis).generate("b1"))
        assert asyncio.run(store.get_business("b1")).rating is None

    def test_refresh_failure_is_swallowed(self, store, analysis):
        places = FakePlaces(address_error=RuntimeError("quota exceeded"))
        _seed(store, make_business())
        report = asyncio.run(ReportPipeline(store, places, analysis).generate("b1"))
        assert report.ai_analysis == REPORT_COMPLETED


# ─── Background completion ───────────────────────────────────────────────────

class TestBackgroundCompletion:
    def test_success_finalizes_placeholder(self, store, pipeline):
        _seed(store, make_user(), make_business())

        async def run():
            placeholder = await pipeline.create_placeholder("Tasca do Bairro", "u1", business_id="b1")
            await pipeline.complete_in_background(placeholder.id, "b1", owner_id="u1")
            return await store.get_report(placeholder.id)

        report = asyncio.run(run())
        assert report.status_at(utcnow(), 300) == ReportStatus.COMPLETED

    def test_failure_writes_error_string(self, store, analysis):
        pipeline = ReportPipeline(store, FakePlaces(fail_latitudes={38.7}), analysis)
        _seed(store, make_user(), make_business())

        async def run():
            placeholder = await pipeline.create_placeholder("Tasca do Bairro", "u1", business_id="b1")
            result = await pipeline.complete_in_background(placeholder.id, "b1", owner_id="u1")
            return result, await store.get_report(placeholder.id)

        result, report = asyncio.run(run())
        assert result is None
        assert report.ai_analysis.startswith("Error: Places provider unreachable")
        assert report.status_at(utcnow(), 300) == ReportStatus.FAILED

    def test_pending_business_error_is_recorded(self, store, pipeline):
        _seed(store, make_user(), make_business(location_status=LocationStatus.PENDING))

        async def run():
            placeholder = await pipeline.create_placeholder("Tasca do Bairro", "u1", business_id="b1")
            await pipeline.complete_in_background(placeholder.id, "b1", owner_id="u1")
            return await store.get_report(placeholder.id)

        assert "pending verification" in asyncio.run(run()).ai_analysis

    def test_only_one_terminal_write(self, store, pipeline):
        _seed(store, make_user(), make_business())

        async def run():
            placeholder = await pipeline.create_placeholder("Tasca do Bairro", "u1", business_id="b1")
            await pipeline.complete_in_background(placeholder.id, "b1", owner_id="u1")
            with pytest.raises(ReportAlreadyFinalized):
                await store.update_report(placeholder.id, {"ai_analysis": "Error: late"}, only_if_generating=True)
            # a second background completion leaves the finished row untouched
            await pipeline.complete_in_background(placeholder.id, "b1", owner_id="u1")
            return await store.get_report(placeholder.id)

        assert asyncio.run(run()).ai_analysis == REPORT_COMPLETED

    def test_finalized_row_skips_gateways(self, store, places, analysis, pipeline):
        _seed(store, make_user(), make_business())

        async def run():
            placeholder = await pipeline.create_placeholder("Tasca do Bairro", "u1", business_id="b1")
            await store.update_report(placeholder.id, {"ai_analysis": "Error: cancelled"})
            result = await pipeline.complete_in_background(placeholder.id, "b1", owner_id="u1")
            return result, await store.get_report(placeholder.id)

        result, report = asyncio.run(run())
        assert result is None
        assert report.ai_analysis == "Error: cancelled"
        assert places.nearby_calls == []
        assert places.address_calls == []
        assert analysis.calls == []

    def test_missing_row_skips_gateways(self, store, places, pipeline):
        _seed(store, make_user(), make_business())
        assert asyncio.run(pipeline.complete_in_background("gone", "b1", owner_id="u1")) is None
        assert places.nearby_calls == []


# ─── Report status ───────────────────────────────────────────────────────────

class TestReportStatus:
    def test_old_placeholder_reads_as_stale(self):
        now = utcnow()
        report = Report(id="r1", business_name="X", generated_at=now - timedelta(minutes=6))
        assert report.status_at(now, 300) == ReportStatus.STALE

    def test_fresh_placeholder_is_generating(self):
        now = utcnow()
        report = Report(id="r1", business_name="X", generated_at=now - timedelta(seconds=30))
        assert report.status_at(now, 300) == ReportStatus.GENERATING

    @pytest.mark.parametrize("overrides, counted", [
        ({"ai_analysis": REPORT_COMPLETED}, True),
        ({"ai_analysis": REPORT_PLACEHOLDER}, True),
        ({"ai_analysis": REPORT_PLACEHOLDER, "age": timedelta(minutes=6)}, False),
        ({"ai_analysis": "Error: Places provider unreachable"}, False),
        ({"ai_analysis": REPORT_COMPLETED, "scheduled": True}, False),
    ])
    def test_quota_charges_only_live_user_requests(self, overrides, counted):
        now = utcnow()
        overrides = dict(overrides)
        age = overrides.pop("age", timedelta(seconds=30))
        report = Report(id="r1", business_name="X", generated_at=now - age, **overrides)
        assert report.counts_toward_quota(now, 300) is counted


# ─── Stage tracking ──────────────────────────────────────────────────────────

class TestPipelineRun:
    def test_stages_recorded(self):
        run = PipelineRun(label="test")
        with run.stage(PipelineStage.VALIDATING):
            pass
        with run.stage(PipelineStage.ANALYZING):
            pass
        run.finish()
        assert run.state == PipelineStage.DONE
        assert [r.stage for r in run.history] == [PipelineStage.VALIDATING, PipelineStage.ANALYZING]
        assert "analyzing" in run.summary()

    def test_failure_marks_run_failed(self):
        run = PipelineRun(label="test")
        with pytest.raises(PendingLocation):
            with run.stage(PipelineStage.VALIDATING):
                raise PendingLocation("pending")
        assert run.failed
        assert run.history[-1].success is False
        assert run.error == "pending"
