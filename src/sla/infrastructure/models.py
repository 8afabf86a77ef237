"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the SLA module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.config import SLAStage, AlertType
from src.core import utcnow
from src.infrastructure.database import Base


def _uuid() -> str:
    return str(uuid4())


class SLATimerModel(Base):
    """
    Database model for SLATimer entity.

    Maps to the 'sla_timers' table.
    """
    __tablename__ = "sla_timers"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    job_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    stage: Mapped[SLAStage] = mapped_column(String(20), nullable=False)
    target_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    breached: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    breach_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_sla_timers_job_stage", "job_id", "stage"),
    )


class SLAAlertModel(Base):
    """
    Database model for SLAAlert entity.

    Maps to the 'sla_alerts' table.
    """
    __tablename__ = "sla_alerts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    job_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    timer_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)

    alert_type: Mapped[AlertType] = mapped_column(String(20), nullable=False)  # warning or breach
    stage: Mapped[SLAStage] = mapped_column(String(20), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    sent_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    acknowledged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class SLAJobConfigModel(Base):
    """
    Stage budgets fixed for a job when its SLA clock starts.

    Later stages read their budget from here when they start.
    """
    __tablename__ = "sla_job_configs"

    job_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    dispatch_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    assignment_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    arrival_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    completion_minutes: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
