"""
License Boards
==============

Strategies that turn raw rows of a state license-board export into
staging records. The classification tables come from
``lead_classifications.yaml``; the strategies only know which columns of
their board's export to read.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

import yaml
from pydantic import BaseModel, Field

from src.config import Trade, settings


class BoardConfig(BaseModel):
    """Classification table of one license board."""
    source: str
    state: str
    label: str
    # Ordered: the first code contained in the classification text wins
    codes: Dict[str, str] = Field(default_factory=dict)
    inactive_statuses: List[str] = Field(default_factory=list)
    inactive_markers: List[str] = Field(default_factory=list)


class ClassificationTables(BaseModel):
    california: BoardConfig
    florida: BoardConfig
    default_trade_filter: List[str] = Field(
        default_factory=lambda: [Trade.HVAC, Trade.PLUMBING, Trade.ELECTRICAL, Trade.GENERAL]
    )


def _text(record: Mapping, key: str) -> str:
    value = record.get(key)
    return str(value).strip() if value is not None else ""


def _parse_date(value: str) -> Optional[date]:
    if not value:
        return None
    for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y"):
        try:
            return datetime.strptime(value[:10], fmt).date()
        except ValueError:
            continue
    return None


class LicenseBoard(ABC):
    """One state's license board export format."""

    def __init__(self, config: BoardConfig):
        self.config = config

    @property
    def source(self) -> str:
        return self.config.source

    @property
    def state(self) -> str:
        return self.config.state

    @abstractmethod
    def classification_texts(self, record: Mapping) -> List[str]:
        """Upper-cased texts searched when filtering by trade."""

    @abstractmethod
    def primary_text(self, record: Mapping) -> str:
        """Upper-cased text the trade type is taken from."""

    @abstractmethod
    def to_staging(self, record: Mapping) -> dict:
        """Staging row for ``license_records``."""

    def license_number(self, record: Mapping) -> str:
        return _text(record, "LICENSE_NUMBER")

    def matches(self, record: Mapping, trade_filter: Iterable[str]) -> bool:
        wanted = set(trade_filter)
        texts = self.classification_texts(record)
        return any(
            trade in wanted and any(code in text for text in texts)
            for code, trade in self.config.codes.items()
        )

    def trade_type(self, record: Mapping) -> str:
        text = self.primary_text(record)
        for code, trade in self.config.codes.items():
            if code in text:
                return trade
        return Trade.GENERAL

    def is_inactive(self, record: Mapping) -> bool:
        """Only an explicit inactive status skips a row; blank means active."""
        status = _text(record, "LICENSE_STATUS").upper()
        if not status:
            return False
        if status in self.config.inactive_statuses:
            return True
        return any(marker in status for marker in self.config.inactive_markers)

    def _status(self, record: Mapping) -> str:
        return _text(record, "LICENSE_STATUS").lower() or "active"


class CaliforniaBoard(LicenseBoard):
    """CSLB export: classification codes such as ``C-20`` or ``C20``."""

    def classification_texts(self, record: Mapping) -> List[str]:
        return [
            _text(record, "PRIMARY_CLASSIFICATION").upper(),
            _text(record, "ALL_CLASSIFICATIONS").upper(),
        ]

    def primary_text(self, record: Mapping) -> str:
        return _text(record, "PRIMARY_CLASSIFICATION").upper()

    def to_staging(self, record: Mapping) -> dict:
        personnel = _text(record, "PERSONNEL_NAME")
        business = _text(record, "BUSINESS_NAME")
        parts = personnel.split(" ") if personnel else []
        address = ", ".join(
            part for part in (
                _text(record, "ADDRESS"),
                _text(record, "ADDRESS2"),
                _text(record, "CITY"),
                _text(record, "STATE"),
                _text(record, "ZIP"),
            ) if part
        )
        return {
            "source": self.source,
            "license_number": self.license_number(record),
            "license_status": self._status(record),
            "license_classification": _text(record, "PRIMARY_CLASSIFICATION") or None,
            "license_expiration": _parse_date(_text(record, "EXPIRE_DATE")),
            "business_name": business or None,
            "full_name": personnel or business or None,
            "first_name": parts[0] if parts else None,
            "last_name": " ".join(parts[1:]) or None,
            "job_title": _text(record, "PERSONNEL_TITLE") or "Contractor",
            "phone": _text(record, "PHONE") or None,
            "address": address,
            "city": _text(record, "CITY") or None,
            "state": self.state,
            "zip": _text(record, "ZIP") or None,
            "trade_type": self.trade_type(record),
        }


class FloridaBoard(LicenseBoard):
    """DBPR export: free-text occupation such as ``Certified AC``."""

    def classification_texts(self, record: Mapping) -> List[str]:
        return [self.primary_text(record)]

    def primary_text(self, record: Mapping) -> str:
        return _text(record, "OCCUPATION_CODE").upper()

    def to_staging(self, record: Mapping) -> dict:
        first = _text(record, "FIRST_NAME") or None
        last = _text(record, "LAST_NAME") or None
        full_name = " ".join(
            part for part in (first, _text(record, "MIDDLE_NAME"), last) if part
        )
        address = ", ".join(
            part for part in (
                _text(record, "ADDRESS_1"),
                _text(record, "ADDRESS_2"),
                _text(record, "CITY"),
                _text(record, "STATE") or self.state,
                _text(record, "ZIP"),
            ) if part
        )
        occupation = _text(record, "OCCUPATION_CODE")
        return {
            "source": self.source,
            "license_number": self.license_number(record),
            "license_status": self._status(record),
            "license_classification": occupation or None,
            "license_expiration": None,
            # Individual contractors: the person is the business
            "business_name": full_name or None,
            "full_name": full_name or None,
            "first_name": first,
            "last_name": last,
            "job_title": occupation or "Contractor",
            "phone": _text(record, "PHONE") or None,
            "address": address,
            "city": _text(record, "CITY") or None,
            "state": self.state,
            "zip": _text(record, "ZIP") or None,
            "trade_type": self.trade_type(record),
        }


def load_classification_tables(path: Optional[Path] = None) -> ClassificationTables:
    path = Path(path) if path else settings.lead_classifications_path
    with open(path, "r") as f:
        return ClassificationTables(**(yaml.safe_load(f) or {}))


def build_boards(tables: ClassificationTables) -> Dict[str, LicenseBoard]:
    """Boards keyed by their URL name."""
    return {
        "california": CaliforniaBoard(tables.california),
        "florida": FloridaBoard(tables.florida),
    }
