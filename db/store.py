"""
ReportStore
-----------
Persistence boundary for users, businesses and reports.

Two implementations, picked once at startup by create_store():
  InMemoryReportStore  - DATABASE_URL unset (development, tests)
  SqlReportStore       - any SQLAlchemy async URL

Writers of a placeholder report use update_report(..., only_if_generating=True)
so the first terminal write wins and any later one raises ReportAlreadyFinalized.
"""

import copy
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, delete, func, or_, select, update

from config.settings import Settings, settings
from db.database import build_engine, build_sessionmaker, init_db, session_scope
from db.models import BusinessRow, ReportRow, UserRow
from models.errors import NotFound, ReportAlreadyFinalized
from models.schemas import (
    REPORT_COMPLETED,
    REPORT_PLACEHOLDER,
    Business,
    Competitor,
    CustomerSentiment,
    LocationStatus,
    MarketingStrategy,
    Report,
    Swot,
    TargetAudience,
    User,
    utcnow,
)

logger = logging.getLogger(__name__)


def month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _new_id() -> str:
    return str(uuid.uuid4())


class ReportStore(ABC):

    async def init(self) -> None:
        pass

    async def close(self) -> None:
        pass

    # ─── Users ───────────────────────────────────────────────────────────────

    @abstractmethod
    async def create_user(self, user: User) -> User: ...

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    async def delete_user(self, user_id: str) -> bool:
        """Deletes the user with their businesses and reports."""

    # ─── Businesses ──────────────────────────────────────────────────────────

    @abstractmethod
    async def create_business(self, business: Business) -> Business: ...

    @abstractmethod
    async def get_business(self, business_id: str) -> Optional[Business]: ...

    @abstractmethod
    async def list_all_businesses(self) -> List[Business]: ...

    @abstractmethod
    async def update_business(self, business_id: str, patch: Dict[str, Any]) -> Business: ...

    @abstractmethod
    async def delete_business(self, business_id: str) -> bool:
        """Deletes the business and its reports."""

    @abstractmethod
    async def count_businesses_for_user(self, user_id: str) -> int: ...

    # ─── Reports ─────────────────────────────────────────────────────────────

    @abstractmethod
    async def create_report(self, report: Report) -> Report:
        """Inserts a report, assigning `id` and `generated_at` when missing."""

    @abstractmethod
    async def update_report(
        self, report_id: str, patch: Dict[str, Any], *, only_if_generating: bool = False
    ) -> Report: ...

    @abstractmethod
    async def get_report(self, report_id: str) -> Optional[Report]: ...

    @abstractmethod
    async def get_reports_by_business_id(self, business_id: str) -> List[Report]:
        """Newest first."""

    @abstractmethod
    async def get_reports_by_user_id(self, user_id: str) -> List[Report]:
        """Newest first."""

    @abstractmethod
    async def delete_report(self, report_id: str) -> bool: ...

    @abstractmethod
    async def count_reports_current_month(
        self,
        user_id: str,
        now: Optional[datetime] = None,
        stale_after_seconds: int = settings.REPORT_STALE_AFTER_SECONDS,
    ) -> int:
        """
        Reports charged to the user this calendar month: user-requested rows
        that completed or are still generating inside the stale window.
        Failed, stale and scheduled rows are free.
        """


# ─── In-memory ───────────────────────────────────────────────────────────────


class InMemoryReportStore(ReportStore):
    """Dict-backed store. Returns copies so callers never alias stored state."""

    def __init__(self):
        self._users: Dict[str, User] = {}
        self._businesses: Dict[str, Business] = {}
        self._reports: Dict[str, Report] = {}

    async def create_user(self, user: User) -> User:
        user = copy.deepcopy(user)
        user.id = user.id or _new_id()
        self._users[user.id] = user
        return copy.deepcopy(user)

    async def get_user(self, user_id: str) -> Optional[User]:
        user = self._users.get(user_id)
        return copy.deepcopy(user) if user else None

    async def delete_user(self, user_id: str) -> bool:
        if self._users.pop(user_id, None) is None:
            return False
        for business_id in [b.id for b in self._businesses.values() if b.owner_id == user_id]:
            await self.delete_business(business_id)
        for report_id in [r.id for r in self._reports.values() if r.user_id == user_id]:
            del self._reports[report_id]
        return True

    async def create_business(self, business: Business) -> Business:
        business = copy.deepcopy(business)
        business.id = business.id or _new_id()
        self._businesses[business.id] = business
        return copy.deepcopy(business)

    async def get_business(self, business_id: str) -> Optional[Business]:
        business = self._businesses.get(business_id)
        return copy.deepcopy(business) if business else None

    async def list_all_businesses(self) -> List[Business]:
        return [copy.deepcopy(b) for b in self._businesses.values()]

    async def update_business(self, business_id: str, patch: Dict[str, Any]) -> Business:
        business = self._businesses.get(business_id)
        if business is None:
            raise NotFound(f"Business {business_id} not found")
        for key, value in patch.items():
            setattr(business, key, value)
        return copy.deepcopy(business)

    async def delete_business(self, business_id: str) -> bool:
        if self._businesses.pop(business_id, None) is None:
            return False
        for report_id in [r.id for r in self._reports.values() if r.business_id == business_id]:
            del self._reports[report_id]
        return True

    async def count_businesses_for_user(self, user_id: str) -> int:
        return sum(1 for b in self._businesses.values() if b.owner_id == user_id)

    async def create_report(self, report: Report) -> Report:
        report = copy.deepcopy(report)
        report.id = report.id or _new_id()
        report.generated_at = report.generated_at or utcnow()
        self._reports[report.id] = report
        return copy.deepcopy(report)

    async def update_report(
        self, report_id: str, patch: Dict[str, Any], *, only_if_generating: bool = False
    ) -> Report:
        report = self._reports.get(report_id)
        if report is None:
            raise NotFound(f"Report {report_id} not found")
        if only_if_generating and not report.is_generating:
            raise ReportAlreadyFinalized(f"Report {report_id} already has a final state")
        for key, value in copy.deepcopy(patch).items():
            setattr(report, key, value)
        return copy.deepcopy(report)

    async def get_report(self, report_id: str) -> Optional[Report]:
        report = self._reports.get(report_id)
        return copy.deepcopy(report) if report else None

    def _newest_first(self, reports: List[Report]) -> List[Report]:
        # reversed() first so that later inserts win ties on generated_at
        ordered = sorted(reversed(reports), key=lambda r: r.generated_at, reverse=True)
        return [copy.deepcopy(r) for r in ordered]

    async def get_reports_by_business_id(self, business_id: str) -> List[Report]:
        return self._newest_first([r for r in self._reports.values() if r.business_id == business_id])

    async def get_reports_by_user_id(self, user_id: str) -> List[Report]:
        return self._newest_first([r for r in self._reports.values() if r.user_id == user_id])

    async def delete_report(self, report_id: str) -> bool:
        return self._reports.pop(report_id, None) is not None

    async def count_reports_current_month(
        self,
        user_id: str,
        now: Optional[datetime] = None,
        stale_after_seconds: int = settings.REPORT_STALE_AFTER_SECONDS,
    ) -> int:
        now = now or utcnow()
        since = month_start(now)
        return sum(
            1 for r in self._reports.values()
            if r.user_id == user_id and r.generated_at and r.generated_at >= since
            and r.counts_toward_quota(now, stale_after_seconds)
        )


# ─── SQL ─────────────────────────────────────────────────────────────────────

_NESTED = {
    "swot": Swot,
    "target_audience": TargetAudience,
    "marketing_strategy": MarketingStrategy,
    "customer_sentiment": CustomerSentiment,
}

_BUSINESS_COLUMNS = {
    "owner_id", "name", "category", "address", "latitude", "longitude",
    "location_status", "rating", "rating_count",
}


def _report_values(patch: Dict[str, Any]) -> Dict[str, Any]:
    """Report field values -> ReportRow column values."""
    values = {}
    for key, value in patch.items():
        if key == "competitors":
            value = [c.to_dict() for c in value or []]
        elif key in _NESTED and value is not None:
            value = value.model_dump()
        elif key == "market_trends" and value is not None:
            value = list(value)
        values[key] = value
    return values


def _to_report(row: ReportRow) -> Report:
    nested = {
        key: model.model_validate(getattr(row, key)) if getattr(row, key) is not None else None
        for key, model in _NESTED.items()
    }
    return Report(
        id=row.id,
        business_id=row.business_id,
        business_name=row.business_name,
        user_id=row.user_id,
        competitors=[Competitor.from_dict(c) for c in row.competitors or []],
        ai_analysis=row.ai_analysis or REPORT_PLACEHOLDER,
        executive_summary=row.executive_summary,
        market_trends=row.market_trends,
        radius=row.radius,
        generated_at=row.generated_at,
        scheduled=bool(row.scheduled),
        **nested,
    )


def _to_business(row: BusinessRow) -> Business:
    return Business(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        category=row.category,
        address=row.address,
        latitude=row.latitude,
        longitude=row.longitude,
        location_status=LocationStatus(row.location_status or LocationStatus.VALIDATED.value),
        rating=row.rating,
        rating_count=row.rating_count,
        created_at=row.created_at,
    )


def _to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        email=row.email,
        first_name=row.first_name,
        plan=row.plan or "free",
        language=row.language or "en",
        created_at=row.created_at,
    )


def _business_values(patch: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(patch) - _BUSINESS_COLUMNS
    if unknown:
        raise ValueError(f"Unknown business fields: {sorted(unknown)}")
    values = dict(patch)
    if "location_status" in values:
        values["location_status"] = LocationStatus(values["location_status"]).value
    return values


class SqlReportStore(ReportStore):
    """SQLAlchemy asyncio store. Cascades are explicit deletes, so they do not depend on driver FK support."""

    def __init__(self, database_url: str, echo: bool = False):
        self.engine = build_engine(database_url, echo=echo)
        self.session_factory = build_sessionmaker(self.engine)

    async def init(self) -> None:
        await init_db(self.engine)

    async def close(self) -> None:
        await self.engine.dispose()

    # ─── Users ───────────────────────────────────────────────────────────────

    async def create_user(self, user: User) -> User:
        row = UserRow(
            id=user.id or _new_id(),
            email=user.email,
            first_name=user.first_name,
            plan=user.plan,
            language=user.language,
            created_at=user.created_at,
        )
        async with session_scope(self.session_factory) as session:
            session.add(row)
        return _to_user(row)

    async def get_user(self, user_id: str) -> Optional[User]:
        async with session_scope(self.session_factory) as session:
            row = await session.get(UserRow, user_id)
            return _to_user(row) if row else None

    async def delete_user(self, user_id: str) -> bool:
        async with session_scope(self.session_factory) as session:
            owned = select(BusinessRow.id).where(BusinessRow.owner_id == user_id)
            await session.execute(delete(ReportRow).where(ReportRow.business_id.in_(owned)))
            await session.execute(delete(ReportRow).where(ReportRow.user_id == user_id))
            await session.execute(delete(BusinessRow).where(BusinessRow.owner_id == user_id))
            result = await session.execute(delete(UserRow).where(UserRow.id == user_id))
            return result.rowcount > 0

    # ─── Businesses ──────────────────────────────────────────────────────────

    async def create_business(self, business: Business) -> Business:
        row = BusinessRow(
            id=business.id or _new_id(),
            created_at=business.created_at,
            **_business_values({
                "owner_id": business.owner_id,
                "name": business.name,
                "category": business.category,
                "address": business.address,
                "latitude": business.latitude,
                "longitude": business.longitude,
                "location_status": business.location_status,
                "rating": business.rating,
                "rating_count": business.rating_count,
            }),
        )
        async with session_scope(self.session_factory) as session:
            session.add(row)
        return _to_business(row)

    async def get_business(self, business_id: str) -> Optional[Business]:
        async with session_scope(self.session_factory) as session:
            row = await session.get(BusinessRow, business_id)
            return _to_business(row) if row else None

    async def list_all_businesses(self) -> List[Business]:
        async with session_scope(self.session_factory) as session:
            rows = (await session.execute(
                select(BusinessRow).order_by(BusinessRow.created_at, BusinessRow.id)
            )).scalars().all()
            return [_to_business(r) for r in rows]

    async def update_business(self, business_id: str, patch: Dict[str, Any]) -> Business:
        async with session_scope(self.session_factory) as session:
            row = await session.get(BusinessRow, business_id)
            if row is None:
                raise NotFound(f"Business {business_id} not found")
            for key, value in _business_values(patch).items():
                setattr(row, key, value)
            await session.flush()
            return _to_business(row)

    async def delete_business(self, business_id: str) -> bool:
        async with session_scope(self.session_factory) as session:
            await session.execute(delete(ReportRow).where(ReportRow.business_id == business_id))
            result = await session.execute(delete(BusinessRow).where(BusinessRow.id == business_id))
            return result.rowcount > 0

    async def count_businesses_for_user(self, user_id: str) -> int:
        async with session_scope(self.session_factory) as session:
            return await session.scalar(
                select(func.count()).select_from(BusinessRow).where(BusinessRow.owner_id == user_id)
            )

    # ─── Reports ─────────────────────────────────────────────────────────────

    async def create_report(self, report: Report) -> Report:
        values = _report_values({
            "business_id": report.business_id,
            "business_name": report.business_name,
            "user_id": report.user_id,
            "competitors": report.competitors,
            "ai_analysis": report.ai_analysis,
            "executive_summary": report.executive_summary,
            "swot": report.swot,
            "market_trends": report.market_trends,
            "target_audience": report.target_audience,
            "marketing_strategy": report.marketing_strategy,
            "customer_sentiment": report.customer_sentiment,
            "radius": report.radius,
        })
        row = ReportRow(
            id=report.id or _new_id(),
            generated_at=report.generated_at or utcnow(),
            scheduled=report.scheduled,
            **values,
        )
        async with session_scope(self.session_factory) as session:
            session.add(row)
        return _to_report(row)

    async def update_report(
        self, report_id: str, patch: Dict[str, Any], *, only_if_generating: bool = False
    ) -> Report:
        stmt = update(ReportRow).where(ReportRow.id == report_id).values(**_report_values(patch))
        if only_if_generating:
            stmt = stmt.where(ReportRow.ai_analysis == REPORT_PLACEHOLDER)

        async with session_scope(self.session_factory) as session:
            result = await session.execute(stmt)
            row = await session.get(ReportRow, report_id, populate_existing=True)
            if row is None:
                raise NotFound(f"Report {report_id} not found")
            if result.rowcount == 0:
                raise ReportAlreadyFinalized(f"Report {report_id} already has a final state")
            return _to_report(row)

    async def get_report(self, report_id: str) -> Optional[Report]:
        async with session_scope(self.session_factory) as session:
            row = await session.get(ReportRow, report_id)
            return _to_report(row) if row else None

    async def _newest_first(self, *criteria) -> List[Report]:
        async with session_scope(self.session_factory) as session:
            rows = (await session.execute(
                select(ReportRow).where(*criteria).order_by(ReportRow.generated_at.desc())
            )).scalars().all()
            return [_to_report(r) for r in rows]

    async def get_reports_by_business_id(self, business_id: str) -> List[Report]:
        return await self._newest_first(ReportRow.business_id == business_id)

    async def get_reports_by_user_id(self, user_id: str) -> List[Report]:
        return await self._newest_first(ReportRow.user_id == user_id)

    async def delete_report(self, report_id: str) -> bool:
        async with session_scope(self.session_factory) as session:
            result = await session.execute(delete(ReportRow).where(ReportRow.id == report_id))
            return result.rowcount > 0

    async def count_reports_current_month(
        self,
        user_id: str,
        now: Optional[datetime] = None,
        stale_after_seconds: int = settings.REPORT_STALE_AFTER_SECONDS,
    ) -> int:
        now = now or utcnow()
        in_flight_since = now - timedelta(seconds=stale_after_seconds)
        async with session_scope(self.session_factory) as session:
            return await session.scalar(
                select(func.count()).select_from(ReportRow).where(
                    ReportRow.user_id == user_id,
                    ReportRow.generated_at >= month_start(now),
                    ReportRow.scheduled.is_(False),
                    or_(
                        ReportRow.ai_analysis == REPORT_COMPLETED,
                        and_(
                            ReportRow.ai_analysis == REPORT_PLACEHOLDER,
                            ReportRow.generated_at >= in_flight_since,
                        ),
                    ),
                )
            )


def create_store(config: Settings) -> ReportStore:
    if config.DATABASE_URL:
        logger.info("Using SQL report store")
        return SqlReportStore(config.DATABASE_URL, echo=config.DEBUG)
    logger.info("DATABASE_URL not set, using in-memory report store")
    return InMemoryReportStore()
