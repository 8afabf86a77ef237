"""
Dispatch Domain Entities
=========================

Pure Python domain entities for work orders and the technicians they are
dispatched to.

A job moves pending -> matching -> dispatched -> assigned -> completed.
Lifecycle methods enforce the allowed transitions; the application layer
pairs each transition with the matching SLA stage.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from src.config import JobStatus
from src.core import InvalidStateException, as_utc


@dataclass
class Technician:
    """
    A tradesperson a job can be sent to.

    Warm technicians have signed up on the platform; everyone else is cold
    and is reached through campaign tooling.
    """
    id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    business_name: Optional[str] = None
    trade: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    signed_up: Optional[bool] = None

    @property
    def is_warm(self) -> bool:
        return self.signed_up is True

    @property
    def first_name(self) -> str:
        return (self.full_name or "").split(" ")[0] or "there"

    @property
    def last_name(self) -> str:
        return " ".join((self.full_name or "").split(" ")[1:])


@dataclass
class Candidate:
    """A technician matched to a job, with the distance at match time."""
    technician: Technician
    distance_m: Optional[float] = None


@dataclass
class Job:
    """Work order entity."""

    id: str
    job_title: Optional[str] = None
    description: Optional[str] = None
    trade_needed: Optional[str] = None

    # Location
    address_text: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None

    # Scheduling and money
    scheduled_at: Optional[datetime] = None
    duration: Optional[str] = None
    urgency: Optional[str] = None
    priority: Optional[str] = None
    budget_min: Optional[float] = None
    budget_max: Optional[float] = None
    pay_rate: Optional[str] = None

    # Requester
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None

    # Lifecycle
    job_status: str = JobStatus.PENDING
    assigned_tech_id: Optional[str] = None
    sla_config: Optional[dict] = None
    sla_breached: bool = False
    created_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    extra: dict = field(default_factory=dict)

    def __post_init__(self):
        self.scheduled_at = as_utc(self.scheduled_at)
        self.created_at = as_utc(self.created_at)

    @property
    def has_location(self) -> bool:
        return self.lat is not None and self.lng is not None

    def _require(self, allowed: tuple, action: str) -> None:
        if self.job_status not in allowed:
            raise InvalidStateException(
                f"Cannot {action} job in status '{self.job_status}'",
                {"job_id": self.id, "job_status": self.job_status}
            )

    def mark_dispatched(self) -> None:
        # A job that is already assigned keeps its status on re-dispatch
        if self.job_status in (JobStatus.PENDING, JobStatus.MATCHING):
            self.job_status = JobStatus.DISPATCHED

    def assign(self, technician_id: str) -> None:
        self._require((JobStatus.MATCHING, JobStatus.DISPATCHED), "assign")
        self.assigned_tech_id = technician_id
        self.job_status = JobStatus.ASSIGNED

    def arrive(self, now: datetime) -> None:
        self._require((JobStatus.ASSIGNED,), "record arrival for")
        self.arrived_at = now

    def complete(self, now: datetime) -> None:
        self._require((JobStatus.ASSIGNED,), "complete")
        self.job_status = JobStatus.COMPLETED
        self.completed_at = now

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_title": self.job_title,
            "description": self.description,
            "trade_needed": self.trade_needed,
            "address_text": self.address_text,
            "city": self.city,
            "state": self.state,
            "lat": self.lat,
            "lng": self.lng,
            "scheduled_at": self.scheduled_at.isoformat() if self.scheduled_at else None,
            "duration": self.duration,
            "urgency": self.urgency,
            "priority": self.priority,
            "budget_min": self.budget_min,
            "budget_max": self.budget_max,
            "pay_rate": self.pay_rate,
            "contact_name": self.contact_name,
            "contact_phone": self.contact_phone,
            "contact_email": self.contact_email,
            "job_status": self.job_status,
            "assigned_tech_id": self.assigned_tech_id,
            "sla_config": self.sla_config,
            "sla_breached": self.sla_breached,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "arrived_at": self.arrived_at.isoformat() if self.arrived_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
