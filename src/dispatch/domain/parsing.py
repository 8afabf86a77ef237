"""
Work Order Text Parsing
========================

Rule-based extraction of job fields from free-form work order text. Used
directly when no LLM is configured and as the fallback when the LLM call
fails or returns something that is not JSON.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from src.config import Trade, Urgency

PARSED_FIELDS = (
    "job_title",
    "description",
    "trade_needed",
    "address_text",
    "scheduled_start_ts",
    "urgency",
    "duration",
    "budget_min",
    "budget_max",
    "pay_rate",
    "contact_name",
    "contact_phone",
    "contact_email",
)

EMAIL_RE = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
PHONE_RE = re.compile(r"(\+?1?\s*)?(\(?\d{3}\)?[\s.-]?)(\d{3}[\s.-]?)(\d{4})")
TRADE_RE = re.compile(r"hvac|air\s*conditioning|plumb|electr|handyman|facility|facilities", re.IGNORECASE)
ADDRESS_RE = re.compile(r"\d+\s+[^,\n]+,?\s*[^,\n]+,?\s*[A-Z]{2}\s*(?:\d{5})?")

DATE_MDY_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{2,4})")
DATE_ISO_RE = re.compile(r"(\d{4})-(\d{1,2})-(\d{1,2})")
DATE_NAMED_RE = re.compile(
    r"(Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|Jun(?:e)?|Jul(?:y)?|Aug(?:ust)?"
    r"|Sep(?:tember)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)\s+(\d{1,2}),?\s+(\d{4})",
    re.IGNORECASE
)
TIME_RE = re.compile(r"(\d{1,2}):(\d{2})?\s*(am|pm)?", re.IGNORECASE)

DURATION_RANGE_RE = re.compile(r"(\d+)\s*-\s*(\d+)\s*(hours|hrs|h)\b", re.IGNORECASE)
DURATION_SINGLE_RE = re.compile(r"\b(\d+)\s*(hours|hrs|h)\b", re.IGNORECASE)
DOLLAR_RE = re.compile(r"\$\s*([0-9][0-9,]*(?:\.\d{2})?)")
COMMA_NUMBER_RE = re.compile(r"([0-9]{1,3}(?:,[0-9]{3})+(?:\.\d{2})?)")
PAY_RATE_RE = re.compile(r"\$\s*[0-9][0-9,]*\s*/?\s*(hr|hour|flat)", re.IGNORECASE)
CONTACT_RE = re.compile(r"(?:Contact|Attn|Attention)[:\s]+([A-Za-z ]{3,40})", re.IGNORECASE)

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}


def _normalize_phone(text: str) -> str:
    match = PHONE_RE.search(text)
    if not match or not (match.group(2) and match.group(3) and match.group(4)):
        return ""
    area = re.sub(r"\D", "", match.group(2))
    prefix = re.sub(r"\D", "", match.group(3))
    line = re.sub(r"\D", "", match.group(4))
    return f"({area}) {prefix}-{line}"


def _trade(text: str) -> str:
    match = TRADE_RE.search(text)
    raw = match.group(0).lower() if match else ""
    if "electr" in raw:
        return Trade.ELECTRICAL
    if "plumb" in raw:
        return Trade.PLUMBING
    if "handyman" in raw:
        return Trade.HANDYMAN
    if raw.startswith("facilit"):
        return Trade.FACILITIES_TECH
    return Trade.HVAC


def _time_of_day(text: str) -> tuple:
    match = TIME_RE.search(text)
    if not match:
        return 9, 0
    hour = int(match.group(1))
    minute = int(match.group(2)) if match.group(2) else 0
    meridiem = (match.group(3) or "").lower()
    if meridiem == "pm" and hour < 12:
        hour += 12
    if meridiem == "am" and hour == 12:
        hour = 0
    return hour, minute


def _scheduled_start(text: str, now: datetime) -> str:
    """Local ``YYYY-MM-DDTHH:MM``; tomorrow at 09:00 when no date is found."""
    date = None
    mdy = DATE_MDY_RE.search(text)
    iso = DATE_ISO_RE.search(text)
    named = DATE_NAMED_RE.search(text)
    if mdy:
        year = int(mdy.group(3))
        date = (2000 + year if year < 100 else year, int(mdy.group(1)), int(mdy.group(2)))
    elif iso:
        date = (int(iso.group(1)), int(iso.group(2)), int(iso.group(3)))
    elif named:
        date = (int(named.group(3)), MONTHS[named.group(1)[:3].lower()], int(named.group(2)))

    if date is not None:
        hour, minute = _time_of_day(text)
        try:
            start = datetime(date[0], date[1], date[2], min(hour, 23), min(minute, 59))
        except ValueError:
            start = None
        if start is not None:
            return start.strftime("%Y-%m-%dT%H:%M")

    tomorrow = (now + timedelta(days=1)).replace(hour=9, minute=0, second=0, microsecond=0)
    return tomorrow.strftime("%Y-%m-%dT%H:%M")


def _urgency(text: str) -> str:
    if re.search(r"emergency|critical|asap|immediately", text, re.IGNORECASE):
        return Urgency.EMERGENCY
    if re.search(r"today|same\s*day", text, re.IGNORECASE):
        return Urgency.SAME_DAY
    if re.search(r"tomorrow|next\s*day", text, re.IGNORECASE):
        return Urgency.NEXT_DAY
    return Urgency.WITHIN_WEEK


def _duration(text: str) -> str:
    span = DURATION_RANGE_RE.search(text)
    if span:
        return f"{span.group(1)}-{span.group(2)} hours"
    single = DURATION_SINGLE_RE.search(text)
    if single:
        return f"{single.group(1)} hours"
    return ""


def _amounts(text: str) -> list:
    values = [m.group(1) for m in DOLLAR_RE.finditer(text)]
    values += [m.group(1) for m in COMMA_NUMBER_RE.finditer(text)]
    return [float(v.replace(",", "")) for v in values]


def heuristic_parse(text: str, now: Optional[datetime] = None) -> dict:
    """
    Extract work order fields from raw text.

    Args:
        text: Raw work order text (email body, SMS, portal export)
        now: Local reference time for the default schedule

    Returns:
        Dict with every key in PARSED_FIELDS
    """
    clean = text.replace("\u2013", "-").replace("\u2014", "-")
    now = now or datetime.now()

    email_match = EMAIL_RE.search(clean)
    address_match = ADDRESS_RE.search(clean)
    pay_match = PAY_RATE_RE.search(clean)
    contact_match = CONTACT_RE.search(clean)
    amounts = _amounts(clean)

    return {
        "job_title": re.sub(r"\s+", " ", clean[:100]).strip() or "Work Order",
        "description": text,
        "trade_needed": _trade(clean),
        "address_text": address_match.group(0).strip() if address_match else "",
        "scheduled_start_ts": _scheduled_start(clean, now),
        "urgency": _urgency(clean),
        "duration": _duration(clean),
        "budget_min": min(amounts) if amounts else 0,
        "budget_max": max(amounts) if amounts else 0,
        "pay_rate": pay_match.group(0) if pay_match else "",
        "contact_name": contact_match.group(1) if contact_match else "",
        "contact_phone": _normalize_phone(clean),
        "contact_email": email_match.group(0) if email_match else "",
    }


def to_number(value: Any) -> float:
    """Coerce ``"$1,200"`` style values to a number; unparseable gives 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    digits = re.sub(r"[^0-9.]", "", str(value if value is not None else ""))
    try:
        return float(digits) if digits else 0
    except ValueError:
        return 0


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 text to an aware datetime. Naive values are taken as UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
