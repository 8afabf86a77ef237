"""
Instantly Client
================

Cold outreach: leads are added to an Instantly campaign, which then runs
the email sequence. Dispatch uses the v1 lead endpoint with per-job
variables; target enrichment uses the v2 leads endpoint.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from src.config import settings
from src.core import ConfigurationException
from src.infrastructure.providers.base import HTTPProviderClient

INSTANTLY_V1_LEAD_URL = "https://api.instantly.ai/api/v1/lead/add"
INSTANTLY_V2_LEADS_URL = "https://api.instantly.ai/api/v2/leads"


class ICampaignClient(ABC):
    """Interface for the cold outreach provider."""

    @property
    @abstractmethod
    def configured(self) -> bool:
        """Whether the API key is present."""

    @abstractmethod
    async def add_lead_v1(
        self,
        campaign_id: str,
        email: str,
        first_name: str,
        last_name: str = "",
        company_name: str = "",
        variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Add one lead with job variables to a campaign."""

    @abstractmethod
    async def add_lead_v2(self, campaign_id: str, lead: Dict[str, Any]) -> Dict[str, Any]:
        """Add one lead through the v2 API."""

    async def close(self) -> None:
        """Release resources."""


class InstantlyClient(HTTPProviderClient, ICampaignClient):

    service_name = "Instantly"

    def __init__(
        self,
        api_key: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(http_client)
        self._api_key = api_key if api_key is not None else settings.instantly_api_key

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    def _require_key(self) -> str:
        if not self._api_key:
            raise ConfigurationException("INSTANTLY_API_KEY not configured")
        return self._api_key

    async def add_lead_v1(
        self,
        campaign_id: str,
        email: str,
        first_name: str,
        last_name: str = "",
        company_name: str = "",
        variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        api_key = self._require_key()
        response = await self._request(
            "POST",
            INSTANTLY_V1_LEAD_URL,
            json={
                "api_key": api_key,
                "campaign_id": campaign_id,
                "email": email,
                "first_name": first_name,
                "last_name": last_name,
                "company_name": company_name,
                "variables": variables or {},
            }
        )
        self._raise_for_status(response)
        return response.json() if response.content else {}

    async def add_lead_v2(self, campaign_id: str, lead: Dict[str, Any]) -> Dict[str, Any]:
        api_key = self._require_key()
        response = await self._request(
            "POST",
            INSTANTLY_V2_LEADS_URL,
            json={"campaign": campaign_id, **lead},
            headers={"Authorization": f"Bearer {api_key}"}
        )
        self._raise_for_status(response)
        return response.json() if response.content else {}


class MockCampaignClient(ICampaignClient):
    """Accepts every lead and remembers it."""

    def __init__(self):
        self.leads: list = []

    @property
    def configured(self) -> bool:
        return True

    async def add_lead_v1(
        self,
        campaign_id: str,
        email: str,
        first_name: str,
        last_name: str = "",
        company_name: str = "",
        variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        self.leads.append({"campaign_id": campaign_id, "email": email, "variables": variables or {}})
        return {"status": "success"}

    async def add_lead_v2(self, campaign_id: str, lead: Dict[str, Any]) -> Dict[str, Any]:
        self.leads.append({"campaign_id": campaign_id, **lead})
        return {"status": "success"}
