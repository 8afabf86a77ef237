"""
Lead Enrichment Rules
=====================

Pure helpers shared by the enrichment and verification flows: which leads
still need an email, how domain-search results are ranked and how an
address is guessed when nothing was found.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from src.config import PLACEHOLDER_EMAIL_DOMAINS
from src.infrastructure.providers import HunterEmail

# Confidence at or above which a found address counts as verified
VERIFIED_SCORE = 80

ENRICHMENT_SOURCE_FOUND = "hunter.io"
ENRICHMENT_SOURCE_GUESS = "hunter.io-guess"
ENRICHMENT_SOURCE_NOT_FOUND = "hunter.io-not-found"

# Longest alternatives first so "company" is not eaten as "co" + "mpany"
COMPANY_NOISE_RE = re.compile(
    r"(contractors|electrical|plumbing|services|company|corp|hvac|llc|inc|co)"
)


def is_placeholder_email(email: Optional[str]) -> bool:
    return bool(email) and any(email.endswith(domain) for domain in PLACEHOLDER_EMAIL_DOMAINS)


def needs_email(email: Optional[str]) -> bool:
    """A lead has no usable address yet."""
    return not email or is_placeholder_email(email)


def split_name(full_name: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    parts = (full_name or "").strip().split(" ")
    first = parts[0] or None
    last = " ".join(parts[1:]) or None
    return first, last


def pick_domain_email(
    emails: List[HunterEmail],
    first_name: Optional[str] = None,
    last_name: Optional[str] = None
) -> Optional[HunterEmail]:
    """
    The address of the named person when listed, else the most confident one.
    """
    if not emails:
        return None
    if first_name and last_name:
        for candidate in emails:
            if (
                (candidate.first_name or "").lower() == first_name.lower()
                and (candidate.last_name or "").lower() == last_name.lower()
            ):
                return candidate
    return max(emails, key=lambda e: e.confidence)


def generate_email_guess(first_name: str, last_name: str, company: str) -> Optional[str]:
    """``first.last@<company>.com`` with trade and legal-form words removed."""
    cleaned = COMPANY_NOISE_RE.sub("", re.sub(r"[^a-z0-9]", "", company.lower()))
    if len(cleaned) < 3:
        return None
    first = re.sub(r"[^a-z]", "", first_name.lower())
    last = re.sub(r"[^a-z]", "", last_name.lower())
    if not first or not last:
        return None
    return f"{first}.{last}@{cleaned}.com"


@dataclass
class FoundEmail:
    """Outcome of the enrichment cascade for one lead."""
    email: str
    verified: bool
    source: str = ENRICHMENT_SOURCE_FOUND
    linkedin_url: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class EnrichmentTally:
    processed: int = 0
    enriched: int = 0
    not_found: int = 0
    errors: int = 0
    error_details: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "enriched": self.enriched,
            "notFound": self.not_found,
            "errors": self.errors,
            "errorDetails": self.error_details,
        }


@dataclass
class ImportTally:
    total: int = 0
    filtered: int = 0
    imported: int = 0
    skipped: int = 0
    duplicates: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "filtered": self.filtered,
            "imported": self.imported,
            "skipped": self.skipped,
            "duplicates": self.duplicates,
            "errors": self.errors,
        }
