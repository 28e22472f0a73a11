"""
Scheduler Orchestrator
----------------------
Bulk/periodic report generation across every business.

Pass 1 - eligibility and grouping:
  pending / no coordinates         -> failed, pipeline not invoked
  inferred owner != declared owner -> skipped, not counted
  no resolvable user               -> failed, pipeline not invoked
  otherwise grouped by user id
Pass 2 - per user, businesses run sequentially with per-business isolation,
then one consolidated notification if anything succeeded.

SchedulerHandle owns the weekly asyncio timer that calls run_all().
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from config.settings import settings
from db.store import ReportStore
from models.errors import ReportError
from models.schemas import Business, Report, User, utcnow
from pipeline.report import ReportPipeline
from services.notifications import NotificationGateway

logger = logging.getLogger(__name__)

PENDING_REASON = "Pending location verification"
NO_USER_REASON = "No associated user"

WEEKDAYS = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


# ─── Results ─────────────────────────────────────────────────────────────────


@dataclass
class BusinessRunResult:
    business_id: str
    business_name: str
    success: bool
    error: Optional[str] = None
    report_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "business_id": self.business_id,
            "business_name": self.business_name,
            "success": self.success,
            "error": self.error,
            "report_id": self.report_id,
        }


@dataclass
class RunAllSummary:
    results: List[BusinessRunResult] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def success_count(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success_count": self.success_count,
            "failed_count": self.failed_count,
            "results": [r.to_dict() for r in self.results],
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


# ─── Orchestrator ────────────────────────────────────────────────────────────


class SchedulerOrchestrator:

    def __init__(
        self,
        store: ReportStore,
        pipeline: ReportPipeline,
        notifier: NotificationGateway,
        default_radius: int = settings.DEFAULT_RADIUS,
        default_language: str = settings.DEFAULT_LANGUAGE,
        max_concurrent_users: int = settings.SCHEDULER_MAX_CONCURRENT_USERS,
    ):
        self.store = store
        self.pipeline = pipeline
        self.notifier = notifier
        self.default_radius = default_radius
        self.default_language = default_language
        self.max_concurrent_users = max(1, max_concurrent_users)

    async def infer_owner(self, business_id: str) -> Optional[str]:
        """user_id of the most recent report for the business that carries one."""
        for report in await self.store.get_reports_by_business_id(business_id):
            if report.user_id:
                return report.user_id
        return None

    async def run_all(self) -> RunAllSummary:
        summary = RunAllSummary(started_at=utcnow())
        businesses = await self.store.list_all_businesses()
        logger.info(f"🚀 Scheduled run starting for {len(businesses)} businesses")

        # One slot per business so results keep enumeration order
        slots: List[Optional[BusinessRunResult]] = [None] * len(businesses)
        groups: Dict[str, List[Tuple[int, Business]]] = {}
        users: Dict[str, User] = {}

        for index, business in enumerate(businesses):
            if not business.has_valid_location:
                slots[index] = BusinessRunResult(business.id, business.name, False, PENDING_REASON)
                continue

            inferred = await self.infer_owner(business.id)
            if business.owner_id and inferred and inferred != business.owner_id:
                logger.warning(
                    f"Skipping '{business.name}' ({business.id}): reports point to user {inferred} "
                    f"but the business belongs to {business.owner_id}"
                )
                continue

            user_id = business.owner_id or inferred
            user = users.get(user_id) if user_id else None
            if user is None and user_id:
                user = await self.store.get_user(user_id)
            if user is None:
                slots[index] = BusinessRunResult(business.id, business.name, False, NO_USER_REASON)
                continue

            users[user.id] = user
            groups.setdefault(user.id, []).append((index, business))

        semaphore = asyncio.Semaphore(self.max_concurrent_users)

        async def run_group(user: User, entries: List[Tuple[int, Business]]) -> None:
            async with semaphore:
                await self._run_user_group(user, entries, slots)

        await asyncio.gather(*(run_group(users[uid], entries) for uid, entries in groups.items()))

        summary.results = [r for r in slots if r is not None]
        summary.finished_at = utcnow()
        logger.info(
            f"✅ Scheduled run complete: {summary.success_count} succeeded, "
            f"{summary.failed_count} failed in {summary.duration_seconds:.2f}s"
        )
        return summary

    async def _run_user_group(
        self,
        user: User,
        entries: List[Tuple[int, Business]],
        slots: List[Optional[BusinessRunResult]],
    ) -> None:
        reports: List[Report] = []

        for index, business in entries:
            try:
                report = await self.pipeline.generate(
                    business.id,
                    language=user.language or self.default_language,
                    owner_id=user.id,
                    radius=self.default_radius,
                    scheduled=True,
                )
            except Exception as e:
                message = e.message if isinstance(e, ReportError) else (str(e) or type(e).__name__)
                logger.error(f"❌ Report for '{business.name}' failed: {message}")
                slots[index] = BusinessRunResult(business.id, business.name, False, message)
                continue
            reports.append(report)
            slots[index] = BusinessRunResult(business.id, business.name, True, report_id=report.id)

        if not reports:
            return

        try:
            sent = await self.notifier.send_batch_report(user, reports)
        except Exception as e:
            logger.error(f"❌ Notification to {user.email} raised: {e}")
            return
        if sent:
            logger.info(f"📧 Notified {user.email} about {len(reports)} report(s)")
        else:
            logger.warning(f"Notification to {user.email} was not delivered")


# ─── Weekly timer ────────────────────────────────────────────────────────────


def next_weekly_run(now: datetime, weekday: int, hour: int, minute: int) -> datetime:
    """First datetime strictly after `now` falling on weekday/hour/minute (Monday=0)."""
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    candidate += timedelta(days=(weekday - now.weekday()) % 7)
    if candidate <= now:
        candidate += timedelta(days=7)
    return candidate


class SchedulerHandle:
    """
    Explicit handle for the weekly run-all timer. Created once at wiring time;
    start() is idempotent and must be called from a running event loop.
    """

    def __init__(
        self,
        orchestrator: SchedulerOrchestrator,
        weekday: int = settings.SCHEDULE_WEEKDAY,
        hour: int = settings.SCHEDULE_HOUR,
        minute: int = settings.SCHEDULE_MINUTE,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.orchestrator = orchestrator
        self.weekday = weekday
        self.hour = hour
        self.minute = minute
        self.clock = clock
        self.next_run: Optional[datetime] = None
        self.last_summary: Optional[RunAllSummary] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def schedule(self) -> str:
        """Cron expression for the timer (cron counts Sunday as 0)."""
        return f"{self.minute} {self.hour} * * {(self.weekday + 1) % 7}"

    def start(self) -> "SchedulerHandle":
        if self.running:
            logger.info("Weekly scheduler already running")
            return self
        self.next_run = next_weekly_run(self.clock(), self.weekday, self.hour, self.minute)
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info(
            f"⏰ Weekly scheduler started: {WEEKDAYS[self.weekday]}s at "
            f"{self.hour:02d}:{self.minute:02d} UTC, next run {self.next_run.isoformat()}"
        )
        return self

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        self.next_run = None
        logger.info("Weekly scheduler stopped")

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.running,
            "next_run": self.next_run.isoformat() if self.running and self.next_run else None,
            "schedule": self.schedule,
        }

    async def _loop(self) -> None:
        # next_run is set by start(); sleeping is monotonic, so the wall clock
        # may still read just before the slot once the run is over
        while True:
            await asyncio.sleep(max((self.next_run - self.clock()).total_seconds(), 0))
            try:
                self.last_summary = await self.orchestrator.run_all()
            except Exception:
                logger.exception("❌ Scheduled run failed")
            self.next_run = next_weekly_run(
                max(self.clock(), self.next_run), self.weekday, self.hour, self.minute
            )
