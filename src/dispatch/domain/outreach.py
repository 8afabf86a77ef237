"""
Outreach Value Objects
=======================

Per-recipient send results and the payloads sent to the two outreach
channels. Warm technicians get a SendGrid dynamic-template email; cold
technicians are added to an Instantly campaign with job variables.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from src.config import DispatchMethod
from src.dispatch.domain.entities import Candidate, Job, Technician


@dataclass
class SendOutcome:
    """Result of contacting one technician."""
    technician_id: str
    method: str
    recipient_id: Optional[str] = None
    sent: bool = False
    error: Optional[str] = None


@dataclass
class DispatchSummary:
    """Aggregate of every send made for one outreach."""
    outreach_id: str
    total_recipients: int
    outcomes: List[SendOutcome] = field(default_factory=list)

    def _sent(self, method: str) -> int:
        return sum(1 for o in self.outcomes if o.sent and o.method == method)

    @property
    def warm_sent(self) -> int:
        return self._sent(DispatchMethod.SENDGRID_WARM)

    @property
    def cold_sent(self) -> int:
        return self._sent(DispatchMethod.INSTANTLY_COLD)

    @property
    def total_sent(self) -> int:
        return self.warm_sent + self.cold_sent

    @property
    def failed(self) -> List[SendOutcome]:
        return [o for o in self.outcomes if not o.sent]

    def to_response(self) -> dict:
        return {
            "success": True,
            "outreach_id": self.outreach_id,
            "total_recipients": self.total_recipients,
            "warm_sent": self.warm_sent,
            "cold_sent": self.cold_sent,
            "total_sent": self.total_sent,
        }


def partition_candidates(
    candidates: Iterable[Candidate]
) -> Tuple[List[Technician], List[Technician]]:
    """
    Split reachable technicians into (warm, cold).

    Only technicians with an email are reachable.
    """
    reachable = [c.technician for c in candidates if c.technician.email]
    warm = [t for t in reachable if t.is_warm]
    cold = [t for t in reachable if not t.is_warm]
    return warm, cold


def format_short_date(value: Optional[datetime]) -> Optional[str]:
    """``M/D/YYYY`` as shown in invitation emails."""
    if value is None:
        return None
    return f"{value.month}/{value.day}/{value.year}"


def accept_url(app_url: str, job_id: str, technician_id: str) -> str:
    return f"{app_url.rstrip('/')}/jobs/{job_id}/accept?tech={technician_id}"


def _format_budget(amount: Optional[float]) -> str:
    if not amount:
        return "TBD"
    return f"${int(amount)}" if float(amount).is_integer() else f"${amount}"


def warm_template_data(
    job: Job,
    tech: Technician,
    outreach_id: str,
    app_url: str,
    tracking_base_url: str
) -> Dict[str, str]:
    """Dynamic template data for a warm invitation."""
    return {
        "tech_name": tech.first_name,
        "job_type": job.trade_needed or "Service",
        "location": job.address_text or "See details",
        "urgency": job.priority or "Standard",
        "description": job.description or "See full job details",
        "budget": _format_budget(job.budget_max),
        "scheduled": format_short_date(job.scheduled_at) or "ASAP",
        "accept_url": accept_url(app_url, job.id, tech.id),
        "work_order_id": job.id,
        "tech_email": tech.email,
        "tracking_pixel": (
            f"{tracking_base_url.rstrip('/')}/track-email-open"
            f"?outreach={outreach_id}&tech={tech.id}"
        ),
    }


def cold_lead_variables(
    job: Job,
    tech: Technician,
    outreach_id: str,
    app_url: str
) -> Dict[str, str]:
    """Campaign variables attached to a cold lead."""
    return {
        "job_type": job.trade_needed,
        "location": job.address_text or "",
        "urgency": job.priority or "Standard",
        "work_order_id": job.id,
        "accept_url": accept_url(app_url, job.id, tech.id),
        "job_title": job.job_title or "New Job",
        "job_description": job.description or "",
        "job_scheduled": format_short_date(job.scheduled_at) or "TBD",
        "tracking_id": f"{outreach_id}/{tech.id}",
    }
