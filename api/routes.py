"""
FastAPI Route Handlers
Local Competitor Watch

Caller identity arrives in the X-User-Id header (authentication is handled
upstream). Collaborators live on app.state, wired by api.main.create_app().
"""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Request, Response
from slowapi import Limiter
from slowapi.util import get_remote_address

from api.schemas import (
    AcceptedResponse,
    AnalyzeAddressRequest,
    BusinessResponse,
    CreateBusinessRequest,
    HealthResponse,
    ReportResponse,
    RunAllResponse,
    RunReportRequest,
    SchedulerStatusResponse,
)
from config.settings import settings
from db.store import InMemoryReportStore, ReportStore
from models.errors import NotFound, PendingLocation
from models.schemas import Business, LocationStatus, Report, User, utcnow
from pipeline.report import PENDING_LOCATION_MESSAGE, ReportPipeline
from pipeline.scheduler import SchedulerHandle, SchedulerOrchestrator
from services.limits import check_business_quota, check_radius, check_report_quota, limits_for
from services.places import PlacesGateway

logger = logging.getLogger(__name__)

router = APIRouter()

# Fixed-window limit per client address for anonymous previews
limiter = Limiter(key_func=get_remote_address)


# ─── Dependencies ────────────────────────────────────────────────────────────

def get_store(request: Request) -> ReportStore:
    return request.app.state.store


def get_pipeline(request: Request) -> ReportPipeline:
    return request.app.state.pipeline


def get_places(request: Request) -> PlacesGateway:
    return request.app.state.places


def get_orchestrator(request: Request) -> SchedulerOrchestrator:
    return request.app.state.orchestrator


def get_scheduler(request: Request) -> SchedulerHandle:
    return request.app.state.scheduler


async def current_user(
    x_user_id: Optional[str] = Header(None),
    store: ReportStore = Depends(get_store),
) -> User:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Authentication required")
    user = await store.get_user(x_user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def _report_response(report: Report) -> ReportResponse:
    return ReportResponse.from_report(report, utcnow(), settings.REPORT_STALE_AFTER_SECONDS)


async def _check_report_limits(store: ReportStore, user: User, radius: int) -> None:
    limits = limits_for(user.plan)
    check_radius(limits, radius)
    used = await store.count_reports_current_month(
        user.id, stale_after_seconds=settings.REPORT_STALE_AFTER_SECONDS
    )
    check_report_quota(limits, used)


async def _resolve_adhoc_business(
    payload: AnalyzeAddressRequest,
    places: PlacesGateway,
    owner_id: Optional[str],
) -> Business:
    """Temporary, never-persisted business for an address or coordinate pair."""
    if payload.latitude is not None and payload.longitude is not None:
        lat, lng, address = payload.latitude, payload.longitude, payload.address
    else:
        matches = await places.search_by_address(payload.address)
        if not matches:
            raise NotFound(f"Could not find a location for '{payload.address}'")
        lat, lng, address = matches[0].latitude, matches[0].longitude, matches[0].address or payload.address

    name = payload.name or (payload.address or "").split(",")[0].strip() or "Ad-hoc analysis"
    return Business(
        id=f"temp-{uuid.uuid4().hex[:12]}",
        name=name,
        category=payload.category,
        address=address,
        latitude=lat,
        longitude=lng,
        location_status=LocationStatus.VALIDATED,
        owner_id=owner_id,
    )


# ─── Health ──────────────────────────────────────────────────────────────────

@router.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check(store: ReportStore = Depends(get_store)):
    return HealthResponse(
        status="ok",
        version=settings.APP_VERSION,
        timestamp=utcnow(),
        store="memory" if isinstance(store, InMemoryReportStore) else "sql",
    )


# ─── Businesses ──────────────────────────────────────────────────────────────

@router.post("/businesses", response_model=BusinessResponse, status_code=201, tags=["Businesses"])
async def create_business(
    payload: CreateBusinessRequest,
    user: User = Depends(current_user),
    store: ReportStore = Depends(get_store),
):
    check_business_quota(limits_for(user.plan), await store.count_businesses_for_user(user.id))

    has_coords = payload.latitude is not None and payload.longitude is not None
    business = await store.create_business(Business(
        id=str(uuid.uuid4()),
        name=payload.name,
        category=payload.category,
        address=payload.address,
        latitude=payload.latitude,
        longitude=payload.longitude,
        location_status=LocationStatus(payload.location_status) if has_coords else LocationStatus.PENDING,
        owner_id=user.id,
    ))
    logger.info(f"Business '{business.name}' created for user {user.id}")
    return BusinessResponse(**business.to_dict())


@router.get("/businesses", response_model=List[BusinessResponse], tags=["Businesses"])
async def list_businesses(user: User = Depends(current_user), store: ReportStore = Depends(get_store)):
    businesses = await store.list_all_businesses()
    return [BusinessResponse(**b.to_dict()) for b in businesses if b.owner_id == user.id]


async def _owned_business(store: ReportStore, business_id: str, user: User) -> Business:
    business = await store.get_business(business_id)
    if business is None:
        raise NotFound("Business not found")
    if business.owner_id != user.id:
        raise HTTPException(status_code=403, detail="You do not have access to this business")
    return business


@router.get("/businesses/{business_id}/reports", response_model=List[ReportResponse], tags=["Reports"])
async def business_reports(
    business_id: str,
    user: User = Depends(current_user),
    store: ReportStore = Depends(get_store),
):
    await _owned_business(store, business_id, user)
    return [_report_response(r) for r in await store.get_reports_by_business_id(business_id)]


@router.post(
    "/businesses/{business_id}/reports",
    response_model=ReportResponse,
    status_code=202,
    tags=["Reports"],
)
async def run_report_now(
    business_id: str,
    background_tasks: BackgroundTasks,
    payload: Optional[RunReportRequest] = None,
    user: User = Depends(current_user),
    store: ReportStore = Depends(get_store),
    pipeline: ReportPipeline = Depends(get_pipeline),
):
    """
    Run-now: checks happen synchronously, then a placeholder row is returned
    and completed in the background. Poll GET /reports/{id} for the result.
    """
    payload = payload or RunReportRequest()
    business = await _owned_business(store, business_id, user)
    if not business.has_valid_location:
        raise PendingLocation(PENDING_LOCATION_MESSAGE)

    radius = payload.radius or settings.DEFAULT_RADIUS
    await _check_report_limits(store, user, radius)

    placeholder = await pipeline.create_placeholder(business.name, user.id, business_id=business.id, radius=radius)
    background_tasks.add_task(
        pipeline.complete_in_background,
        placeholder.id,
        business.id,
        language=payload.language or user.language,
        owner_id=user.id,
        radius=radius,
    )
    return _report_response(placeholder)


# ─── Ad-hoc analysis ─────────────────────────────────────────────────────────

@router.post("/reports/analyze-address", response_model=ReportResponse, status_code=202, tags=["Reports"])
async def analyze_address(
    payload: AnalyzeAddressRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(current_user),
    store: ReportStore = Depends(get_store),
    pipeline: ReportPipeline = Depends(get_pipeline),
    places: PlacesGateway = Depends(get_places),
):
    radius = payload.radius or settings.DEFAULT_RADIUS
    await _check_report_limits(store, user, radius)
    business = await _resolve_adhoc_business(payload, places, user.id)

    placeholder = await pipeline.create_placeholder(business.name, user.id, radius=radius)
    background_tasks.add_task(
        pipeline.complete_in_background,
        placeholder.id,
        business=business,
        language=payload.language or user.language,
        owner_id=user.id,
        radius=radius,
    )
    return _report_response(placeholder)


@router.post("/reports/preview", response_model=ReportResponse, tags=["Reports"])
@limiter.limit(settings.ANONYMOUS_RATE_LIMIT)
async def preview_report(
    request: Request,
    payload: AnalyzeAddressRequest,
    pipeline: ReportPipeline = Depends(get_pipeline),
    places: PlacesGateway = Depends(get_places),
):
    """Anonymous ad-hoc report. Runs inline and is never stored."""
    radius = payload.radius or settings.DEFAULT_RADIUS
    check_radius(limits_for(None), radius)
    business = await _resolve_adhoc_business(payload, places, owner_id=None)
    report = await pipeline.generate(
        business=business,
        language=payload.language or settings.DEFAULT_LANGUAGE,
        radius=radius,
    )
    return _report_response(report)


# ─── Reports ─────────────────────────────────────────────────────────────────

@router.get("/reports", response_model=List[ReportResponse], tags=["Reports"])
async def list_reports(user: User = Depends(current_user), store: ReportStore = Depends(get_store)):
    return [_report_response(r) for r in await store.get_reports_by_user_id(user.id)]


async def _owned_report(store: ReportStore, report_id: str, user: User) -> Report:
    report = await store.get_report(report_id)
    if report is None:
        raise NotFound("Report not found")
    if report.user_id != user.id:
        raise HTTPException(status_code=403, detail="You do not have access to this report")
    return report


@router.get("/reports/{report_id}", response_model=ReportResponse, tags=["Reports"])
async def get_report(report_id: str, user: User = Depends(current_user), store: ReportStore = Depends(get_store)):
    return _report_response(await _owned_report(store, report_id, user))


@router.delete("/reports/{report_id}", status_code=204, tags=["Reports"])
async def delete_report(report_id: str, user: User = Depends(current_user), store: ReportStore = Depends(get_store)):
    await _owned_report(store, report_id, user)
    await store.delete_report(report_id)
    return Response(status_code=204)


# ─── Scheduler ───────────────────────────────────────────────────────────────

@router.post("/scheduler/run-all", response_model=RunAllResponse, tags=["Scheduler"])
async def run_all(
    user: User = Depends(current_user),
    orchestrator: SchedulerOrchestrator = Depends(get_orchestrator),
):
    logger.info(f"Run-all requested by user {user.id}")
    summary = await orchestrator.run_all()
    return RunAllResponse(**summary.to_dict())


@router.get("/scheduler/status", response_model=SchedulerStatusResponse, tags=["Scheduler"])
async def scheduler_status(
    user: User = Depends(current_user),
    scheduler: SchedulerHandle = Depends(get_scheduler),
):
    return SchedulerStatusResponse(**scheduler.status())


@router.post("/cron/trigger-reports", response_model=AcceptedResponse, status_code=202, tags=["Scheduler"])
async def cron_trigger(
    background_tasks: BackgroundTasks,
    x_cron_secret: Optional[str] = Header(None),
    orchestrator: SchedulerOrchestrator = Depends(get_orchestrator),
):
    if not settings.CRON_SECRET or x_cron_secret != settings.CRON_SECRET:
        raise HTTPException(status_code=401, detail="Unauthorized")

    logger.info("⏰ Cron trigger received, running scheduled reports in background")
    background_tasks.add_task(orchestrator.run_all)
    return AcceptedResponse(message="Scheduled reports triggered (processing in background)")
