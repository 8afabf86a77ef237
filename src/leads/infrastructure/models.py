"""
Leads Infrastructure Models
============================

SQLAlchemy ORM models for staged license records, cold leads, outreach
targets with their enrichment queue, and the reply queue.
"""

from datetime import date, datetime
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from src.config import EnrichmentStatus, ReplyStatus
from src.core import utcnow
from src.infrastructure.database import Base


def _uuid() -> str:
    return str(uuid4())


class LicenseRecordModel(Base):
    """
    Database model for staged license-board contractors.

    Maps to the 'license_records' table. A license number is unique per
    board, which makes re-imports idempotent.
    """
    __tablename__ = "license_records"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    source: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    license_number: Mapped[str] = mapped_column(String(50), nullable=False)
    license_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    license_classification: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    license_expiration: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    business_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)
    job_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    zip: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    trade_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)

    ai_selected: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_verification_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    hunter_confidence: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    moved_to_cold_leads: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("source", "license_number", name="uq_license_records_source_number"),
    )


class ColdLeadModel(Base):
    """
    Database model for cold leads.

    Maps to the 'cold_leads' table. Emails are unique; imported leads start
    with no email or a placeholder one.
    """
    __tablename__ = "cold_leads"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, unique=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(150), nullable=True)
    company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    trade_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    lead_source: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    linkedin_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    supersearch_query: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    enriched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    enrichment_source: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    first_dispatched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_dispatched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    dispatch_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class OutreachTargetModel(Base):
    """A scraped business waiting for a contact email."""
    __tablename__ = "outreach_targets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    business_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    website: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(2), nullable=True)
    trade_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email_found: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    contact_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email_source: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class EmailEnrichmentQueueModel(Base):
    """One enrichment attempt per outreach target."""
    __tablename__ = "email_enrichment_queue"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    target_id: Mapped[str] = mapped_column(
        ForeignKey("outreach_targets.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    domain: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=EnrichmentStatus.PENDING)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    emails_found: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_attempt_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class ReplyQueueModel(Base):
    """Generated replies to inbound email, reviewed before sending."""
    __tablename__ = "reply_queue"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    cold_lead_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    original_from: Mapped[str] = mapped_column(String(255), nullable=False)
    original_subject: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    generated_subject: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    generated_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    edited_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ReplyStatus.PENDING, index=True)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sendgrid_message_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
