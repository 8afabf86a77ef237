"""
Dispatch Infrastructure Layer
==============================

Database models and repository implementations for jobs, technicians
and work order outreach.
"""

from src.dispatch.infrastructure.models import (
    JobCandidateModel,
    JobModel,
    TechnicianModel,
    WorkOrderOutreachModel,
    WorkOrderRecipientModel,
)
from src.dispatch.infrastructure.repositories import (
    SQLAlchemyJobRepository,
    SQLAlchemyOutreachRepository,
    SQLAlchemyTechnicianRepository,
)

__all__ = [
    "JobModel",
    "TechnicianModel",
    "JobCandidateModel",
    "WorkOrderOutreachModel",
    "WorkOrderRecipientModel",
    "SQLAlchemyJobRepository",
    "SQLAlchemyTechnicianRepository",
    "SQLAlchemyOutreachRepository",
]
