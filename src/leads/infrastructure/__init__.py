"""
Leads Infrastructure Layer
===========================

Database models and repository implementations for license records, cold
leads, outreach targets and the reply queue.
"""

from src.leads.infrastructure.models import (
    ColdLeadModel,
    EmailEnrichmentQueueModel,
    LicenseRecordModel,
    OutreachTargetModel,
    ReplyQueueModel,
)
from src.leads.infrastructure.repositories import (
    SQLAlchemyColdLeadRepository,
    SQLAlchemyLicenseRecordRepository,
    SQLAlchemyOutreachTargetRepository,
    SQLAlchemyReplyRepository,
)

__all__ = [
    "LicenseRecordModel",
    "ColdLeadModel",
    "OutreachTargetModel",
    "EmailEnrichmentQueueModel",
    "ReplyQueueModel",
    "SQLAlchemyLicenseRecordRepository",
    "SQLAlchemyColdLeadRepository",
    "SQLAlchemyOutreachTargetRepository",
    "SQLAlchemyReplyRepository",
]
