"""
SQLAlchemy ORM Models
Local Competitor Watch
"""

from sqlalchemy import (
    Boolean, Column, Integer, Float, String, Text, DateTime, ForeignKey, JSON, Index
)
from sqlalchemy.orm import declarative_base

from models.schemas import utcnow

Base = declarative_base()


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=False, unique=True)
    first_name = Column(String(255))
    plan = Column(String(50), default="free")
    language = Column(String(10), default="en")
    created_at = Column(DateTime, default=utcnow)


class BusinessRow(Base):
    __tablename__ = "businesses"

    id = Column(String(64), primary_key=True)
    owner_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"))
    name = Column(String(255), nullable=False)
    category = Column(String(50), nullable=False)
    address = Column(Text)
    latitude = Column(Float)
    longitude = Column(Float)
    location_status = Column(String(20), default="validated")  # validated, pending
    rating = Column(Float)
    rating_count = Column(Integer)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (Index("ix_business_owner", "owner_id"),)


class ReportRow(Base):
    __tablename__ = "reports"

    id = Column(String(64), primary_key=True)
    business_id = Column(String(64), ForeignKey("businesses.id", ondelete="CASCADE"))
    business_name = Column(String(255), nullable=False)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"))
    competitors = Column(JSON, default=list)
    ai_analysis = Column(Text)          # "Generating...", "Structured Analysis" or "Error: ..."
    executive_summary = Column(Text)
    swot = Column(JSON)
    market_trends = Column(JSON)
    target_audience = Column(JSON)
    marketing_strategy = Column(JSON)
    customer_sentiment = Column(JSON)
    radius = Column(Integer)
    generated_at = Column(DateTime, nullable=False, default=utcnow)
    scheduled = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_report_business", "business_id"),
        Index("ix_report_user_generated", "user_id", "generated_at"),
    )
