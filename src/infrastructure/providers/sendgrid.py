"""
SendGrid Client
===============

Transactional email: dynamic-template sends for warm technicians and plain
text sends for operator-approved replies.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional
import uuid

import httpx

from src.config import settings
from src.core import ConfigurationException
from src.infrastructure.providers.base import HTTPProviderClient

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


@dataclass
class SendResult:
    """Accepted send. ``message_id`` comes from the X-Message-Id header."""
    status_code: int
    message_id: Optional[str] = None


class IEmailSender(ABC):
    """Interface for the transactional email provider."""

    @property
    @abstractmethod
    def configured(self) -> bool:
        """Whether the API key is present."""

    @property
    def template_configured(self) -> bool:
        """Whether templated (warm) sends can be made."""
        return self.configured

    @abstractmethod
    async def send_template(
        self,
        to_email: str,
        template_data: Dict[str, Any],
        template_id: Optional[str] = None
    ) -> SendResult:
        """Send a dynamic-template email."""

    @abstractmethod
    async def send_plain(
        self,
        to_email: str,
        subject: str,
        body: str,
        reply_to: Optional[str] = None
    ) -> SendResult:
        """Send a plain text email from the reply identity."""

    async def close(self) -> None:
        """Release resources."""


class SendGridClient(HTTPProviderClient, IEmailSender):
    """SendGrid v3 mail/send client."""

    service_name = "SendGrid"

    def __init__(
        self,
        api_key: Optional[str] = None,
        template_id: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(http_client)
        self._api_key = api_key if api_key is not None else settings.sendgrid_api_key
        self._template_id = template_id if template_id is not None else settings.sendgrid_template_id

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    @property
    def template_configured(self) -> bool:
        return bool(self._api_key and self._template_id)

    async def _send(self, payload: Dict[str, Any]) -> SendResult:
        if not self._api_key:
            raise ConfigurationException("SENDGRID_API_KEY not configured")

        response = await self._request(
            "POST",
            SENDGRID_SEND_URL,
            json=payload,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            }
        )
        self._raise_for_status(response)
        return SendResult(
            status_code=response.status_code,
            message_id=response.headers.get("X-Message-Id"),
        )

    async def send_template(
        self,
        to_email: str,
        template_data: Dict[str, Any],
        template_id: Optional[str] = None
    ) -> SendResult:
        template = template_id or self._template_id
        if not template:
            raise ConfigurationException("SENDGRID_TEMPLATE_ID not configured")

        return await self._send({
            "personalizations": [{
                "to": [{"email": to_email}],
                "dynamic_template_data": template_data,
            }],
            "from": {
                "email": settings.sendgrid_from_email,
                "name": settings.sendgrid_from_name,
            },
            "template_id": template,
        })

    async def send_plain(
        self,
        to_email: str,
        subject: str,
        body: str,
        reply_to: Optional[str] = None
    ) -> SendResult:
        return await self._send({
            "personalizations": [{"to": [{"email": to_email}]}],
            "from": {
                "email": settings.reply_from_email,
                "name": settings.reply_from_name,
            },
            "reply_to": {"email": reply_to or settings.reply_to_email},
            "subject": subject,
            "content": [{"type": "text/plain", "value": body}],
            "tracking_settings": {
                "click_tracking": {"enable": True},
                "open_tracking": {"enable": True},
            },
        })


class MockEmailSender(IEmailSender):
    """Accepts every send and remembers it."""

    def __init__(self):
        self.sent: list = []

    @property
    def configured(self) -> bool:
        return True

    async def send_template(
        self,
        to_email: str,
        template_data: Dict[str, Any],
        template_id: Optional[str] = None
    ) -> SendResult:
        self.sent.append({"to": to_email, "template_data": template_data})
        return SendResult(status_code=202, message_id=f"mock-{uuid.uuid4().hex[:12]}")

    async def send_plain(
        self,
        to_email: str,
        subject: str,
        body: str,
        reply_to: Optional[str] = None
    ) -> SendResult:
        self.sent.append({"to": to_email, "subject": subject, "body": body})
        return SendResult(status_code=202, message_id=f"mock-{uuid.uuid4().hex[:12]}")
