"""
Leads Domain Entities
=====================

Pure Python entities for the lead pipeline: licensed contractors staged from
state boards, cold leads awaiting an email, scraped outreach targets and
queued replies to inbound mail.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from src.config import ReplyStatus
from src.leads.domain.enrichment import split_name


@dataclass
class LicenseRecord:
    """A contractor staged from a license-board export."""
    id: str
    source: str
    license_number: str
    business_name: Optional[str] = None
    full_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    trade_type: Optional[str] = None
    email: Optional[str] = None
    email_verified: bool = False
    hunter_confidence: Optional[int] = None

    def finder_name(self):
        """First and last name for an email search."""
        if self.first_name:
            return self.first_name, self.last_name
        return split_name(self.full_name)


@dataclass
class ColdLead:
    """A prospect that has not signed up; reached through campaigns."""
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None
    website: Optional[str] = None
    lead_source: Optional[str] = None

    def search_name(self):
        if self.first_name or self.last_name:
            return self.first_name, self.last_name
        return split_name(self.full_name)


@dataclass
class OutreachTarget:
    """A business scraped from maps listings, waiting for a contact email."""
    id: str
    business_name: Optional[str] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    trade_type: Optional[str] = None
    email: Optional[str] = None
    email_verified: bool = False
    contact_name: Optional[str] = None
    status: Optional[str] = None


@dataclass
class QueuedReply:
    """A generated answer to an inbound email, pending human review."""
    id: str
    original_from: str
    generated_subject: Optional[str] = None
    generated_body: Optional[str] = None
    edited_body: Optional[str] = None
    status: str = ReplyStatus.PENDING
    sent_at: Optional[datetime] = None
    sendgrid_message_id: Optional[str] = None

    @property
    def is_sent(self) -> bool:
        return self.status == ReplyStatus.SENT
