"""Database models for AffiliateBase."""
import uuid

from sqlalchemy import (
    String, DateTime, Boolean, Text, Integer, Float,
    ForeignKey, Index, UniqueConstraint,
)
from sqlalchemy.orm import mapped_column
from sqlalchemy.sql import func

from .db import Base
from .time import utc_now

EVENT_VIEW = "VIEW"
EVENT_CLICK = "CLICK"
EVENT_TYPES = (EVENT_VIEW, EVENT_CLICK)

REPORT_EDIT = "EDIT"
REPORT_REPORT = "REPORT"

REPORT_PENDING = "PENDING"
REPORT_RESOLVED = "RESOLVED"
REPORT_DISMISSED = "DISMISSED"
REPORT_STATUSES = (REPORT_PENDING, REPORT_RESOLVED, REPORT_DISMISSED)


def _new_id() -> str:
    return str(uuid.uuid4())


class Program(Base):
    """Affiliate program listings."""
    __tablename__ = "programs"

    id = mapped_column(String(36), primary_key=True, default=_new_id)
    name = mapped_column(String(100), nullable=False, index=True)
    slug = mapped_column(String(120), unique=True, nullable=False)
    tagline = mapped_column(String(200), nullable=False, default="No tagline provided.")
    description = mapped_column(Text, nullable=False, default="No description provided.")
    category = mapped_column(String(64), nullable=False, index=True)
    website_url = mapped_column(String(1000), nullable=False)
    affiliate_url = mapped_column(String(1000), nullable=False)
    logo_url = mapped_column(String(1000), nullable=True)
    country = mapped_column(String(16), nullable=False, default="Other")
    email = mapped_column(String(320), nullable=True)
    x_handle = mapped_column(String(100), nullable=True)

    # Commission terms
    commission_type = mapped_column(String(16), nullable=False, default="PERCENTAGE")  # PERCENTAGE | FIXED
    commission_rate = mapped_column(Float, nullable=False, default=0.0)
    commission_duration = mapped_column(String(16), nullable=True)  # One-time | Recurring
    cookie_duration = mapped_column(Integer, nullable=True)  # days
    payout_method = mapped_column(String(100), nullable=True)
    min_payout_value = mapped_column(Float, nullable=True)
    avg_order_value = mapped_column(Float, nullable=True)
    target_audience = mapped_column(String(80), nullable=True)
    additional_info = mapped_column(Text, nullable=True)
    affiliates_count_range = mapped_column(String(32), nullable=True)
    payouts_total_range = mapped_column(String(32), nullable=True)
    founding_date = mapped_column(DateTime(timezone=True), nullable=True)
    approval_time_range = mapped_column(String(32), nullable=True)

    # Ranking
    manual_score_boost = mapped_column(Float, nullable=False, default=0.0)
    trending_score = mapped_column(Float, nullable=False, default=0.0, index=True)
    random_weight = mapped_column(Float, nullable=False, default=0.0)

    # Featuring
    is_featured = mapped_column(Boolean, nullable=False, default=False)
    featured_expires_at = mapped_column(DateTime(timezone=True), nullable=True)
    featured_checkout_id = mapped_column(String(255), unique=True, nullable=True)

    # Lifetime counters
    total_views = mapped_column(Integer, nullable=False, default=0)
    clicks = mapped_column(Integer, nullable=False, default=0)

    approval_status = mapped_column(Boolean, nullable=False, default=True)
    reviewed_at = mapped_column(DateTime(timezone=True), nullable=True)
    created_at = mapped_column(DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False)
    updated_at = mapped_column(DateTime(timezone=True), default=utc_now, server_default=func.now(), onupdate=utc_now)

    __table_args__ = (
        Index("ix_programs_ranking", "is_featured", "trending_score", "random_weight"),
    )


class ProgramEvent(Base):
    """One VIEW or CLICK per program, visitor and day."""
    __tablename__ = "program_events"

    id = mapped_column(Integer, primary_key=True, autoincrement=True)
    program_id = mapped_column(
        ForeignKey("programs.id", ondelete="CASCADE"), index=True, nullable=False
    )
    type = mapped_column(String(8), nullable=False)  # VIEW | CLICK
    visitor_id = mapped_column(String(128), nullable=False)
    date_key = mapped_column(String(10), nullable=False)  # YYYY-MM-DD (UTC)
    created_at = mapped_column(DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("program_id", "visitor_id", "date_key", "type", name="uq_program_event_daily"),
    )


class TrafficLog(Base):
    """Raw page visits."""
    __tablename__ = "traffic_logs"

    id = mapped_column(Integer, primary_key=True, autoincrement=True)
    program_id = mapped_column(
        ForeignKey("programs.id", ondelete="SET NULL"), index=True, nullable=True
    )
    path = mapped_column(String(1000), nullable=True)
    referrer = mapped_column(String(1000), nullable=True)
    user_agent = mapped_column(String(512), nullable=True)
    country = mapped_column(String(8), nullable=True)
    visitor_id = mapped_column(String(128), nullable=True, index=True)
    ip_hash = mapped_column(String(32), nullable=True)
    event_type = mapped_column(String(8), nullable=True)
    created_at = mapped_column(DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False, index=True)


class SearchLog(Base):
    """Search queries typed by visitors."""
    __tablename__ = "search_logs"

    id = mapped_column(Integer, primary_key=True, autoincrement=True)
    query = mapped_column(String(200), nullable=False)
    results_count = mapped_column(Integer, nullable=False, default=0)
    created_at = mapped_column(DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False, index=True)


class ProgramReport(Base):
    """Moderation tickets filed against a program."""
    __tablename__ = "program_reports"

    id = mapped_column(String(36), primary_key=True, default=_new_id)
    program_id = mapped_column(
        ForeignKey("programs.id", ondelete="CASCADE"), index=True, nullable=False
    )
    type = mapped_column(String(8), nullable=False)  # EDIT | REPORT
    reason = mapped_column(String(200), nullable=True)
    message = mapped_column(Text, nullable=False)
    email = mapped_column(String(320), nullable=True)
    is_founder = mapped_column(Boolean, nullable=False, default=False)
    status = mapped_column(String(16), nullable=False, default=REPORT_PENDING, index=True)
    created_at = mapped_column(DateTime(timezone=True), default=utc_now, server_default=func.now(), nullable=False)
    resolved_at = mapped_column(DateTime(timezone=True), nullable=True)
