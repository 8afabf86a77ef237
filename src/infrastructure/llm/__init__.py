"""
LLM Client Infrastructure
==========================

Work order parsing backed by an LLM, with the rule-based parser as the
fallback.

The application layer depends on IWorkOrderParser only; which
implementation is bound is decided when the container is built.
"""

import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from openai import AsyncOpenAI, OpenAIError

from src.config import settings
from src.core import ConfigurationException
from src.dispatch.domain.parsing import heuristic_parse
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ParseResult:
    """Parsed work order fields and which parser produced them."""
    data: dict
    source: str  # "openai" or "heuristic"
    latency_ms: int = 0


class IWorkOrderParser(ABC):
    """Interface for turning raw work order text into job fields."""

    @abstractmethod
    async def parse(self, raw_text: str) -> ParseResult:
        """Extract job fields from raw text."""

    async def close(self) -> None:
        """Release resources."""


class HeuristicWorkOrderParser(IWorkOrderParser):
    """Regex-based parser. Never calls out of process."""

    async def parse(self, raw_text: str) -> ParseResult:
        return ParseResult(data=heuristic_parse(raw_text), source="heuristic")


class WorkOrderPromptBuilder:
    """Builds the extraction prompt; dates are anchored to today."""

    SYSTEM_PROMPT = (
        "You are a work order parsing assistant with technical expertise. "
        "Output only valid JSON, no markdown. Today is {today}. ALL dates must be "
        "today or in the future. If a date is mentioned without a year, use its next "
        "occurrence. If no date is mentioned, suggest tomorrow at 9 AM."
    )

    USER_PROMPT = """Extract fields from this work order text. If unknown, infer sensible defaults.

For the description field, provide a detailed text analysis (as a single string) with these sections:
**Symptoms:** [what was observed]
**Diagnosis:** [likely cause]
**Solution:** [recommended work]
**Safety:** [any safety concerns]

Return ONLY JSON with fields: job_title, description, trade_needed (HVAC|Plumbing|Electrical|Handyman|Facilities Tech|Other), address_text, scheduled_start_ts (ISO format, required), urgency (emergency|same_day|next_day|within_week|flexible), duration, budget_min (number), budget_max (number), pay_rate, contact_name, contact_phone, contact_email.

RAW:
{raw_text}"""

    @classmethod
    def build(cls, raw_text: str, today: Optional[date] = None) -> list:
        today = today or datetime.now().date()
        return [
            {"role": "system", "content": cls.SYSTEM_PROMPT.format(today=today.isoformat())},
            {"role": "user", "content": cls.USER_PROMPT.format(raw_text=raw_text)},
        ]


def _flatten_description(parsed: dict) -> dict:
    """Some completions return the description as an object; render it as text."""
    desc = parsed.get("description")
    if isinstance(desc, dict):
        parsed["description"] = (
            f"**Symptoms:** {desc.get('symptoms_observed') or 'Not specified'}\n"
            f"**Diagnosis:** {desc.get('likely_cause') or 'Not specified'}\n"
            f"**Solution:** {desc.get('recommended_solution') or 'Not specified'}\n"
            f"**Safety:** {desc.get('safety_concerns') or 'None'}"
        )
    return parsed


class OpenAIWorkOrderParser(IWorkOrderParser):
    """
    OpenAI chat completion in JSON mode.

    Any API error or non-JSON answer falls back to the heuristic parser, so
    parsing itself never fails.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
        fallback: Optional[IWorkOrderParser] = None
    ):
        self._api_key = api_key or settings.openai_api_key
        if not self._api_key and client is None:
            raise ConfigurationException("OpenAI API key not configured")

        self._client = client or AsyncOpenAI(
            api_key=self._api_key,
            timeout=settings.provider_timeout_seconds * 3
        )
        self._model = model or settings.llm_model
        self._fallback = fallback or HeuristicWorkOrderParser()

    async def parse(self, raw_text: str) -> ParseResult:
        start_time = time.perf_counter()

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=WorkOrderPromptBuilder.build(raw_text),
                temperature=settings.llm_temperature,
                response_format={"type": "json_object"}
            )
            content = response.choices[0].message.content or ""
        except OpenAIError as e:
            logger.warning(
                "OpenAI parse failed, using heuristic parser",
                extra={"model": self._model, "error": str(e)}
            )
            return await self._fallback.parse(raw_text)

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        try:
            parsed = json.loads(content)
        except json.JSONDecodeError:
            parsed = None

        if not isinstance(parsed, dict):
            logger.warning(
                "OpenAI returned invalid JSON, using heuristic parser",
                extra={"model": self._model, "content_length": len(content)}
            )
            return await self._fallback.parse(raw_text)

        logger.info(
            "Work order parsed",
            extra={"model": self._model, "latency_ms": latency_ms, "source": "openai"}
        )
        return ParseResult(data=_flatten_description(parsed), source="openai", latency_ms=latency_ms)

    async def close(self) -> None:
        await self._client.close()


def build_parser() -> IWorkOrderParser:
    """OpenAI parser when a key is configured, heuristic otherwise."""
    if settings.openai_api_key:
        return OpenAIWorkOrderParser()
    logger.info("OpenAI not configured - using heuristic work order parser")
    return HeuristicWorkOrderParser()


__all__ = [
    "ParseResult",
    "IWorkOrderParser",
    "HeuristicWorkOrderParser",
    "OpenAIWorkOrderParser",
    "WorkOrderPromptBuilder",
    "build_parser",
]
