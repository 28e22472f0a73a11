from .database import build_engine, build_sessionmaker, init_db, session_scope
from .models import Base, UserRow, BusinessRow, ReportRow
from .store import ReportStore, InMemoryReportStore, SqlReportStore, create_store

__all__ = [
    "build_engine", "build_sessionmaker", "init_db", "session_scope",
    "Base", "UserRow", "BusinessRow", "ReportRow",
    "ReportStore", "InMemoryReportStore", "SqlReportStore", "create_store",
]
