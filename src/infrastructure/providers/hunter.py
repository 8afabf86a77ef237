"""
Hunter.io Client
================

Email discovery and verification:
- domain search (all known addresses at a domain)
- email finder (one person at a company or domain)
- email verifier
- account credit check
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional

import httpx

from src.config import settings
from src.core import ConfigurationException, ExternalServiceException
from src.infrastructure.providers.base import HTTPProviderClient

HUNTER_BASE_URL = "https://api.hunter.io/v2"

# Verifier statuses that count as a deliverable address
DELIVERABLE_STATUSES = ("valid", "accept_all")


@dataclass
class HunterEmail:
    """One address returned by a domain search."""
    value: str
    confidence: int = 0
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    position: Optional[str] = None


@dataclass
class EmailFinderResult:
    email: str
    score: int = 0
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    position: Optional[str] = None
    linkedin_url: Optional[str] = None
    phone_number: Optional[str] = None


@dataclass
class EmailVerification:
    email: str
    status: str
    score: Optional[int] = None

    @property
    def is_deliverable(self) -> bool:
        return self.status in DELIVERABLE_STATUSES


@dataclass
class HunterAccount:
    searches_used: int = 0
    searches_available: int = 0
    verifications_used: int = 0
    verifications_available: int = 0
    extra: dict = field(default_factory=dict)


def extract_domain(website: Optional[str]) -> Optional[str]:
    """Hostname of a website URL without a leading ``www.``."""
    if not website or not website.strip():
        return None
    candidate = website.strip()
    if not candidate.startswith("http"):
        candidate = f"https://{candidate}"
    try:
        host = httpx.URL(candidate).host
    except (httpx.InvalidURL, ValueError):
        return None
    if not host:
        return None
    return host[4:] if host.startswith("www.") else host


def company_domain_guess(company: Optional[str]) -> Optional[str]:
    """``acmeheating.com`` style guess used when no website is known."""
    if not company:
        return None
    cleaned = re.sub(r"[^a-z0-9]", "", company.lower())[:30]
    return f"{cleaned}.com" if cleaned else None


class IHunterClient(ABC):
    """Interface for the email discovery provider."""

    @property
    @abstractmethod
    def configured(self) -> bool:
        """Whether calls can be made at all."""

    @abstractmethod
    async def domain_search(self, domain: str, limit: int = 10) -> List[HunterEmail]:
        """List known addresses at a domain."""

    @abstractmethod
    async def email_finder(
        self,
        first_name: str,
        last_name: Optional[str] = None,
        company: Optional[str] = None,
        domain: Optional[str] = None
    ) -> Optional[EmailFinderResult]:
        """Find one person's address. None when nothing was found."""

    @abstractmethod
    async def verify_email(self, email: str) -> EmailVerification:
        """Check deliverability of an address."""

    @abstractmethod
    async def account_info(self) -> HunterAccount:
        """Remaining search and verification credits."""

    async def close(self) -> None:
        """Release resources."""


class HunterClient(HTTPProviderClient, IHunterClient):
    """Hunter.io v2 REST client."""

    service_name = "Hunter.io"

    def __init__(
        self,
        api_key: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = HUNTER_BASE_URL
    ):
        super().__init__(http_client)
        self._api_key = api_key if api_key is not None else settings.hunter_api_key
        self._base_url = base_url

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def _get(self, path: str, params: dict) -> dict:
        if not self._api_key:
            raise ConfigurationException("HUNTER_API_KEY not configured")

        response = await self._request(
            "GET",
            f"{self._base_url}/{path}",
            params={**params, "api_key": self._api_key}
        )
        if response.status_code == 401:
            raise ExternalServiceException(self.service_name, "Invalid Hunter.io API key")
        if response.status_code == 429:
            raise ExternalServiceException(self.service_name, "Hunter.io rate limit exceeded")
        self._raise_for_status(response)
        return response.json().get("data") or {}

    async def domain_search(self, domain: str, limit: int = 10) -> List[HunterEmail]:
        data = await self._get("domain-search", {"domain": domain, "limit": limit})
        return [
            HunterEmail(
                value=item["value"],
                confidence=item.get("confidence") or 0,
                first_name=item.get("first_name"),
                last_name=item.get("last_name"),
                position=item.get("position"),
            )
            for item in data.get("emails") or []
            if item.get("value")
        ]

    async def email_finder(
        self,
        first_name: str,
        last_name: Optional[str] = None,
        company: Optional[str] = None,
        domain: Optional[str] = None
    ) -> Optional[EmailFinderResult]:
        params = {"first_name": first_name}
        if last_name:
            params["last_name"] = last_name
        if domain:
            params["domain"] = domain
        elif company:
            params["company"] = company
        else:
            raise ValueError("Either domain or company is required")

        data = await self._get("email-finder", params)
        if not data.get("email"):
            return None
        return EmailFinderResult(
            email=data["email"],
            score=data.get("score") or 0,
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            position=data.get("position"),
            linkedin_url=data.get("linkedin_url") or data.get("linkedin"),
            phone_number=data.get("phone_number"),
        )

    async def verify_email(self, email: str) -> EmailVerification:
        data = await self._get("email-verifier", {"email": email})
        return EmailVerification(
            email=email,
            status=data.get("status") or "unknown",
            score=data.get("score"),
        )

    async def account_info(self) -> HunterAccount:
        data = await self._get("account", {})
        requests = data.get("requests") or {}
        searches = requests.get("searches") or {}
        verifications = requests.get("verifications") or {}
        return HunterAccount(
            searches_used=searches.get("used") or 0,
            searches_available=searches.get("available") or 0,
            verifications_used=verifications.get("used") or 0,
            verifications_available=verifications.get("available") or 0,
        )


class MockHunterClient(IHunterClient):
    """
    Deterministic stand-in used in mock mode.

    Every domain has exactly one ``contact@<domain>`` address at confidence
    50, which the verifier cannot confirm.
    """

    MOCK_CONFIDENCE = 50

    @property
    def configured(self) -> bool:
        return True

    async def domain_search(self, domain: str, limit: int = 10) -> List[HunterEmail]:
        return [HunterEmail(value=f"contact@{domain}", confidence=self.MOCK_CONFIDENCE)]

    async def email_finder(
        self,
        first_name: str,
        last_name: Optional[str] = None,
        company: Optional[str] = None,
        domain: Optional[str] = None
    ) -> Optional[EmailFinderResult]:
        target = domain or company_domain_guess(company)
        if not target:
            return None
        local = ".".join(part.lower() for part in (first_name, last_name) if part)
        return EmailFinderResult(email=f"{local}@{target}", score=self.MOCK_CONFIDENCE)

    async def verify_email(self, email: str) -> EmailVerification:
        return EmailVerification(email=email, status="unknown")

    async def account_info(self) -> HunterAccount:
        return HunterAccount(
            searches_used=50,
            searches_available=450,
            verifications_used=20,
            verifications_available=480,
        )
