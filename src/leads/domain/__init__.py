"""
Leads Domain Layer
==================

Pure business logic for license-board imports and email enrichment.
No framework or database dependencies.
"""

from src.leads.domain.boards import (
    BoardConfig,
    CaliforniaBoard,
    ClassificationTables,
    FloridaBoard,
    LicenseBoard,
    build_boards,
    load_classification_tables,
)
from src.leads.domain.enrichment import (
    ENRICHMENT_SOURCE_FOUND,
    ENRICHMENT_SOURCE_GUESS,
    ENRICHMENT_SOURCE_NOT_FOUND,
    VERIFIED_SCORE,
    EnrichmentTally,
    FoundEmail,
    ImportTally,
    generate_email_guess,
    is_placeholder_email,
    needs_email,
    pick_domain_email,
    split_name,
)
from src.leads.domain.entities import (
    ColdLead,
    LicenseRecord,
    OutreachTarget,
    QueuedReply,
)

__all__ = [
    "BoardConfig",
    "CaliforniaBoard",
    "ClassificationTables",
    "FloridaBoard",
    "LicenseBoard",
    "build_boards",
    "load_classification_tables",
    "ENRICHMENT_SOURCE_FOUND",
    "ENRICHMENT_SOURCE_GUESS",
    "ENRICHMENT_SOURCE_NOT_FOUND",
    "VERIFIED_SCORE",
    "EnrichmentTally",
    "FoundEmail",
    "ImportTally",
    "generate_email_guess",
    "is_placeholder_email",
    "needs_email",
    "pick_domain_email",
    "split_name",
    "ColdLead",
    "LicenseRecord",
    "OutreachTarget",
    "QueuedReply",
]
