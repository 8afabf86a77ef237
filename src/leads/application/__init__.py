"""
Leads Application Layer
========================

Application layer for the lead pipeline.

Contains:
- Services: import, enrichment, verification, outreach enrichment, replies
- DTOs: Data transfer objects for API serialization
"""

from src.leads.application.dto import (
    EmailEnrichRequest,
    EmailEnrichResponse,
    LeadEnrichRequest,
    LeadEnrichResponse,
    LeadImportRequest,
    LeadImportResponse,
    LeadVerifyRequest,
    LeadVerifyResponse,
    ReplyRejectResponse,
    ReplySendRequest,
    ReplySendResponse,
)
from src.leads.application.services import (
    EmailEnrichmentService,
    IColdLeadRepository,
    ILicenseRecordRepository,
    IOutreachTargetRepository,
    IReplyRepository,
    LeadEnrichmentService,
    LeadImportService,
    LeadVerificationService,
    MockLeadVerificationService,
    ReplyService,
)

__all__ = [
    # DTOs
    "EmailEnrichRequest",
    "EmailEnrichResponse",
    "LeadEnrichRequest",
    "LeadEnrichResponse",
    "LeadImportRequest",
    "LeadImportResponse",
    "LeadVerifyRequest",
    "LeadVerifyResponse",
    "ReplyRejectResponse",
    "ReplySendRequest",
    "ReplySendResponse",
    # Services
    "EmailEnrichmentService",
    "LeadEnrichmentService",
    "LeadImportService",
    "LeadVerificationService",
    "MockLeadVerificationService",
    "ReplyService",
    # Interfaces
    "IColdLeadRepository",
    "ILicenseRecordRepository",
    "IOutreachTargetRepository",
    "IReplyRepository",
]
