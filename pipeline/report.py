"""
Report Pipeline
---------------
One report generation for a saved business or an inline (ad-hoc) one:

  1. resolve the business           (NotFound)
  2. validate its location          (PendingLocation, before any gateway call)
  3. resolve the owner's plan limits
  4. fetch competitors              (ProviderUnavailable is fatal)
  5. analyze                        (never fails, see AnalysisGateway)
  6. refresh the business's own rating, best effort, saved businesses only
  7. persist: update the pre-created row, insert a new row, or return an
     ephemeral `temp-` report without touching the store

The interactive path inserts a "Generating..." placeholder first and finishes
it with complete_in_background(), whose terminal write is the only write to
that row after the insert.
"""

import logging
import uuid
from typing import Optional

from config.settings import settings
from db.store import ReportStore
from models.errors import NotFound, PendingLocation, ReportAlreadyFinalized, ReportError
from models.schemas import REPORT_ERROR_PREFIX, REPORT_PLACEHOLDER, Business, Report, utcnow
from pipeline.base import PipelineRun, PipelineStage
from services.analysis import AnalysisGateway
from services.limits import limits_for
from services.places import PlacesGateway
from utils.matching import best_match

logger = logging.getLogger(__name__)

PENDING_LOCATION_MESSAGE = (
    "Business location is pending verification. "
    "Please confirm the address before generating reports."
)


def ephemeral_report_id() -> str:
    return f"temp-{uuid.uuid4().hex[:12]}"


class ReportPipeline:

    def __init__(
        self,
        store: ReportStore,
        places: PlacesGateway,
        analysis: AnalysisGateway,
        default_radius: int = settings.DEFAULT_RADIUS,
        min_similarity: float = settings.SELF_MATCH_MIN_SIMILARITY,
        max_match_distance: float = settings.SELF_MATCH_MAX_DISTANCE_METERS,
    ):
        self.store = store
        self.places = places
        self.analysis = analysis
        self.default_radius = default_radius
        self.min_similarity = min_similarity
        self.max_match_distance = max_match_distance

    async def generate(
        self,
        business_id: Optional[str] = None,
        *,
        business: Optional[Business] = None,
        language: str = "en",
        owner_id: Optional[str] = None,
        radius: Optional[int] = None,
        existing_report_id: Optional[str] = None,
        scheduled: bool = False,
    ) -> Report:
        ephemeral = business is not None
        radius = radius or self.default_radius
        run = PipelineRun(label=business.name if ephemeral else f"business {business_id}")

        with run.stage(PipelineStage.VALIDATING):
            if business is None:
                business = await self.store.get_business(business_id) if business_id else None
                if business is None:
                    raise NotFound(f"Business {business_id} not found")
            if not business.has_valid_location:
                raise PendingLocation(PENDING_LOCATION_MESSAGE)

            user = await self.store.get_user(owner_id) if owner_id else None
            plan = user.plan if user else None
            limits = limits_for(plan)

        with run.stage(PipelineStage.FETCHING_COMPETITORS):
            competitors = await self.places.search_nearby(
                business.latitude,
                business.longitude,
                business.category,
                radius,
                include_reviews=True,
                language=language,
                max_results=limits.max_competitors,
            )

        with run.stage(PipelineStage.ANALYZING):
            analysis = await self.analysis.analyze(business, competitors, language, plan)

        if not ephemeral:
            await self.refresh_own_rating(business)

        with run.stage(PipelineStage.PERSISTING):
            fields = {"competitors": competitors, "radius": radius, **Report.analysis_fields(analysis)}

            if existing_report_id:
                report = await self.store.update_report(existing_report_id, fields, only_if_generating=True)
            elif not ephemeral:
                report = await self.store.create_report(Report(
                    id=None,
                    business_id=business.id,
                    business_name=business.name,
                    user_id=owner_id,
                    scheduled=scheduled,
                    **fields,
                ))
            else:
                report = Report(
                    id=ephemeral_report_id(),
                    business_id=None,
                    business_name=business.name,
                    user_id=owner_id,
                    generated_at=utcnow(),
                    **fields,
                )

        run.finish()
        return report

    async def refresh_own_rating(self, business: Business) -> None:
        """Best-effort lookup of the business's own rating. Never raises."""
        query = f"{business.name}, {business.address}" if business.address else business.name
        try:
            matches = await self.places.search_by_address(query)
            match = best_match(business, matches, self.min_similarity, self.max_match_distance)
            if match is None or match.rating is None:
                logger.info(f"No rating match for '{business.name}'")
                return
            await self.store.update_business(
                business.id, {"rating": match.rating, "rating_count": match.rating_count}
            )
            logger.info(f"Refreshed rating for '{business.name}': {match.rating} ({match.rating_count})")
        except Exception as e:
            logger.warning(f"Rating refresh failed for '{business.name}': {e}")

    # ─── Placeholder / background completion ─────────────────────────────────

    async def create_placeholder(
        self,
        business_name: str,
        user_id: Optional[str],
        business_id: Optional[str] = None,
        radius: Optional[int] = None,
    ) -> Report:
        return await self.store.create_report(Report(
            id=None,
            business_id=business_id,
            business_name=business_name,
            user_id=user_id,
            ai_analysis=REPORT_PLACEHOLDER,
            radius=radius or self.default_radius,
        ))

    async def complete_in_background(
        self,
        report_id: str,
        business_id: Optional[str] = None,
        *,
        business: Optional[Business] = None,
        language: str = "en",
        owner_id: Optional[str] = None,
        radius: Optional[int] = None,
    ) -> Optional[Report]:
        """
        Finish a placeholder row. Detached: never raises, a failure becomes
        the row's "Error: <message>" content.
        """
        existing = await self.store.get_report(report_id)
        if existing is None or not existing.is_generating:
            logger.warning(f"Report {report_id} is missing or already final, skipping generation")
            return None

        try:
            return await self.generate(
                business_id,
                business=business,
                language=language,
                owner_id=owner_id,
                radius=radius,
                existing_report_id=report_id,
            )
        except ReportAlreadyFinalized as e:
            logger.warning(f"Report {report_id}: {e}")
            return None
        except Exception as e:
            message = e.message if isinstance(e, ReportError) else (str(e) or type(e).__name__)
            if not isinstance(e, ReportError):
                logger.exception(f"❌ Report {report_id} crashed")

        try:
            await self.store.update_report(
                report_id, {"ai_analysis": f"{REPORT_ERROR_PREFIX}{message}"}, only_if_generating=True
            )
        except ReportError as write_error:
            logger.warning(f"Could not record failure on report {report_id}: {write_error}")
        return None
