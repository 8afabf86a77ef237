"""
SLA Domain Entities
====================

Pure Python domain entities for SLA tracking.

A job moves through four sequential stages (dispatch, assignment, arrival,
completion). Each stage gets one timer with its own budget; alerts are
raised against a timer when it nears or passes its budget.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from src.config import SLA_STAGES
from src.core import as_utc, minutes_between, utcnow


@dataclass
class SLATimer:
    """
    One stage budget for one job.

    A timer is active until it is either completed or marked breached.
    """

    id: str
    job_id: str
    stage: str
    target_minutes: int
    started_at: datetime

    completed_at: Optional[datetime] = None
    breached: bool = False
    breach_time: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.stage not in SLA_STAGES:
            raise ValueError(f"Unknown SLA stage: {self.stage}")
        if self.target_minutes < 0:
            raise ValueError("target_minutes cannot be negative")
        self.started_at = as_utc(self.started_at)
        self.completed_at = as_utc(self.completed_at)
        self.breach_time = as_utc(self.breach_time)
        self.created_at = as_utc(self.created_at) or self.started_at

    @property
    def is_active(self) -> bool:
        return self.completed_at is None and not self.breached

    def elapsed_minutes(self, now: Optional[datetime] = None) -> float:
        """Minutes since the stage started, frozen at completion."""
        end = self.completed_at or now or utcnow()
        return max(0.0, minutes_between(self.started_at, end))

    def remaining_minutes(self, now: Optional[datetime] = None) -> float:
        """Budget left; negative once overdue."""
        return self.target_minutes - self.elapsed_minutes(now)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "stage": self.stage,
            "target_minutes": self.target_minutes,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "breached": self.breached,
            "breach_time": self.breach_time.isoformat() if self.breach_time else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class SLAAlert:
    """
    Warning or breach notice for a job stage.

    Alerts are append-only apart from the acknowledged flag.
    """

    id: Optional[str]
    job_id: str
    alert_type: str
    stage: str
    message: str

    timer_id: Optional[str] = None
    sent_at: datetime = field(default_factory=utcnow)
    acknowledged: bool = False

    def __post_init__(self):
        self.sent_at = as_utc(self.sent_at)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_id": self.job_id,
            "timer_id": self.timer_id,
            "alert_type": self.alert_type,
            "stage": self.stage,
            "message": self.message,
            "sent_at": self.sent_at.isoformat(),
            "acknowledged": self.acknowledged,
        }
