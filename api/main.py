"""
FastAPI Application Entry Point
Local Competitor Watch
"""

import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Optional

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from api.routes import limiter, router
from config.settings import settings
from db.store import ReportStore, create_store
from models.errors import ReportError
from pipeline.report import ReportPipeline
from pipeline.scheduler import SchedulerHandle, SchedulerOrchestrator
from services.analysis import AnalysisGateway
from services.notifications import NotificationGateway, create_notifier
from services.places import PlacesGateway

# ─── Logging ─────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


# ─── App factory ─────────────────────────────────────────────────────────────

def create_app(
    store: Optional[ReportStore] = None,
    places: Optional[PlacesGateway] = None,
    analysis: Optional[AnalysisGateway] = None,
    notifier: Optional[NotificationGateway] = None,
    start_scheduler: bool = settings.SCHEDULER_ENABLED,
) -> FastAPI:
    """
    Wire collaborators once and hang them on app.state. Anything not passed
    in is built from settings.
    """
    store = store or create_store(settings)
    places = places or PlacesGateway(api_key=settings.GOOGLE_API_KEY)
    analysis = analysis or AnalysisGateway(api_key=settings.ANTHROPIC_API_KEY)
    notifier = notifier or create_notifier(settings)

    pipeline = ReportPipeline(store, places, analysis)
    orchestrator = SchedulerOrchestrator(store, pipeline, notifier)
    scheduler = SchedulerHandle(orchestrator)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"🚀 Starting {settings.APP_NAME} API...")
        await store.init()
        if start_scheduler:
            scheduler.start()
        yield
        await scheduler.stop()
        await store.close()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=(
            "Local competitor analysis reports for small businesses. Finds nearby "
            "competitors, analyzes them with a language model, and delivers "
            "weekly report batches."
        ),
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.store = store
    app.state.places = places
    app.state.analysis = analysis
    app.state.pipeline = pipeline
    app.state.orchestrator = orchestrator
    app.state.scheduler = scheduler

    # ─── Rate limiting ───────────────────────────────────────────────────────
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # ─── CORS ────────────────────────────────────────────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Tighten in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ─── Errors ──────────────────────────────────────────────────────────────
    @app.exception_handler(ReportError)
    async def report_error_handler(request: Request, exc: ReportError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.error, "message": exc.message},
        )

    # ─── Routes ──────────────────────────────────────────────────────────────
    app.include_router(router, prefix="/api/v1")

    @app.get("/", tags=["System"])
    async def root():
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "docs": "/docs",
            "status": "running",
        }

    return app


app = create_app()


# ─── Run ─────────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
    )
