"""
Leads Application DTOs
=======================

Data Transfer Objects for the lead import, enrichment, verification,
outreach enrichment and reply endpoints.

The wire format of these endpoints is camelCase; fields keep snake_case
names and map through aliases.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ========== Request DTOs ==========

class LeadImportRequest(_CamelModel):
    """Rows of a license-board export, already parsed from CSV."""
    records: Optional[List[Dict[str, Any]]] = Field(None, description="Raw export rows keyed by column name")
    limit: Optional[int] = Field(None, ge=1, description="Max filtered rows to process")
    trade_filter: Optional[List[str]] = Field(
        None, alias="tradeFilter", description="Trades to keep (default HVAC, Plumbing, Electrical, General)"
    )


class LeadEnrichRequest(_CamelModel):
    lead_ids: Optional[List[str]] = Field(None, alias="leadIds")
    source: Optional[str] = Field(None, description="Restrict to one lead source, e.g. cslb")
    limit: Optional[int] = Field(None, ge=1, le=500, description="Default 50")
    dry_run: bool = Field(False, alias="dryRun", description="Search without writing results")


class LeadVerifyRequest(_CamelModel):
    ids: Optional[List[str]] = Field(None, description="Records to verify; default all unverified without email")
    limit: int = Field(10, ge=1, le=500)
    min_confidence: int = Field(70, ge=0, le=100, alias="minConfidence")


class EmailEnrichRequest(BaseModel):
    target_id: Optional[str] = None


class ReplySendRequest(_CamelModel):
    edited_body: Optional[str] = Field(None, alias="editedBody")
    edited_subject: Optional[str] = Field(None, alias="editedSubject")


# ========== Response DTOs ==========

class ImportResults(BaseModel):
    total: int = 0
    filtered: int = 0
    imported: int = 0
    skipped: int = 0
    duplicates: int = 0
    errors: List[str] = Field(default_factory=list)


class LeadImportResponse(BaseModel):
    success: bool = True
    results: ImportResults
    message: str


class EnrichmentResults(_CamelModel):
    processed: int = 0
    enriched: int = 0
    not_found: int = Field(0, alias="notFound")
    errors: int = 0
    error_details: List[str] = Field(default_factory=list, alias="errorDetails")


class LeadEnrichResponse(_CamelModel):
    success: bool = True
    results: EnrichmentResults
    dry_run: Optional[bool] = Field(None, alias="dryRun")
    message: str


class VerificationItem(_CamelModel):
    id: str
    business_name: Optional[str] = Field(None, alias="businessName")
    email: Optional[str] = None
    confidence: int = 0
    status: str
    error: Optional[str] = None


class AccountInfo(_CamelModel):
    searches_remaining: int = Field(..., alias="searchesRemaining")


class LeadVerifyResponse(_CamelModel):
    success: bool = True
    verified: int = 0
    failed: int = 0
    results: List[VerificationItem] = Field(default_factory=list)
    message: str
    account_info: Optional[AccountInfo] = Field(None, alias="accountInfo")
    mock: Optional[bool] = None


class EmailEnrichResponse(BaseModel):
    success: bool = True
    target_id: str
    email_found: Optional[bool] = None
    email: Optional[str] = None
    email_verified: Optional[bool] = None
    message: Optional[str] = None


class ReplySendResponse(_CamelModel):
    success: bool = True
    message_id: Optional[str] = Field(None, alias="messageId")
    sent_to: str = Field(..., alias="sentTo")


class ReplyRejectResponse(BaseModel):
    success: bool = True
