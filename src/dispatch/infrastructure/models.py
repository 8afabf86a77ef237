"""
Dispatch Infrastructure Models
===============================

SQLAlchemy ORM models for jobs, technicians and work order outreach.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.config import JobStatus, OutreachStatus
from src.core import utcnow
from src.infrastructure.database import Base


def _uuid() -> str:
    return str(uuid4())


class JobModel(Base):
    """
    Database model for Job entity.

    Maps to the 'jobs' table.
    """
    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)

    job_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    trade_needed: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)

    address_text: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    scheduled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    duration: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    urgency: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    priority: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    budget_min: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    budget_max: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    pay_rate: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    contact_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    job_status: Mapped[str] = mapped_column(String(20), nullable=False, default=JobStatus.PENDING, index=True)
    assigned_tech_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    sla_config: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    sla_breached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    arrived_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class TechnicianModel(Base):
    """
    Database model for Technician entity.

    Maps to the 'technicians' table.
    """
    __tablename__ = "technicians"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    business_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    trade: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    signed_up: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_technicians_trade_state", "trade", "state"),
    )


class JobCandidateModel(Base):
    """A technician matched to a job."""
    __tablename__ = "job_candidates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    job_id: Mapped[str] = mapped_column(ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    technician_id: Mapped[str] = mapped_column(ForeignKey("technicians.id", ondelete="CASCADE"), nullable=False)
    distance_m: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("job_id", "technician_id", name="uq_job_candidates_job_tech"),
    )


class WorkOrderOutreachModel(Base):
    """
    One dispatch event for a job.

    Sent counters are recomputed from the recipient rows. Open counters are
    bumped once per recipient by the tracking pixel.
    """
    __tablename__ = "work_order_outreach"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    job_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    total_recipients: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    warm_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cold_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emails_sent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    warm_opened: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cold_opened: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emails_opened: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=OutreachStatus.IN_PROGRESS)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class WorkOrderRecipientModel(Base):
    """One technician contacted in an outreach."""
    __tablename__ = "work_order_recipients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    outreach_id: Mapped[str] = mapped_column(
        ForeignKey("work_order_outreach.id", ondelete="CASCADE"), nullable=False, index=True
    )
    technician_id: Mapped[str] = mapped_column(String(64), nullable=False)
    dispatch_method: Mapped[str] = mapped_column(String(20), nullable=False)  # sendgrid_warm or instantly_cold
    email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    email_opened: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_opened_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
