"""
SLA Value Objects
==================

Immutable value objects and pure functions for the SLA domain:

- SLAConfig: the four stage budgets of a job
- SLAPresetTable: (trade, urgency) -> SLAConfig lookup loaded from YAML
- resolve: total lookup with a fixed fallback
- SLAStatusProjector: timer + clock -> display state
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.config import SLAStatus, SLA_STAGES, settings
from src.sla.domain.entities import SLATimer


class SLAConfig(BaseModel):
    """
    Per-stage budgets in minutes.

    This is a value object - immutable and defined by its attributes.
    """
    model_config = ConfigDict(frozen=True)

    dispatch: int = Field(gt=0, description="Minutes to send the work order out")
    assignment: int = Field(gt=0, description="Minutes to get a technician assigned")
    arrival: int = Field(gt=0, description="Minutes for the technician to arrive on site")
    completion: int = Field(gt=0, description="Minutes to finish the work")

    def for_stage(self, stage: str) -> int:
        if stage not in SLA_STAGES:
            raise ValueError(f"Unknown SLA stage: {stage}")
        return getattr(self, stage)

    @property
    def total_minutes(self) -> int:
        return self.dispatch + self.assignment + self.arrival + self.completion

    def with_overrides(self, **overrides: Optional[int]) -> "SLAConfig":
        """Copy with the given stages replaced; None values are ignored."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        unknown = set(changes) - set(SLA_STAGES)
        if unknown:
            raise ValueError(f"Unknown SLA stages: {sorted(unknown)}")
        return SLAConfig(**{**self.model_dump(), **changes})

    def as_dict(self) -> Dict[str, int]:
        return self.model_dump()


FALLBACK_SLA = SLAConfig(dispatch=60, assignment=120, arrival=240, completion=480)


class SLAPresetTable(BaseModel):
    """
    Static lookup table of stage budgets.

    YAML layout::

        fallback: {dispatch: 60, ...}
        presets:
          HVAC:
            emergency: {dispatch: 15, ...}
    """
    fallback: SLAConfig = FALLBACK_SLA
    presets: Dict[str, Dict[str, SLAConfig]] = Field(default_factory=dict)

    @staticmethod
    def key(trade: str, urgency: str) -> str:
        return f"{trade}-{urgency}"

    def flattened(self) -> Dict[str, SLAConfig]:
        """Presets keyed ``"{trade}-{urgency}"``."""
        return {
            self.key(trade, urgency): config
            for trade, by_urgency in self.presets.items()
            for urgency, config in by_urgency.items()
        }

    def get(self, trade: Optional[str], urgency: Optional[str]) -> Optional[SLAConfig]:
        if not trade or not urgency:
            return None
        return self.presets.get(trade, {}).get(urgency)


def resolve(
    trade: Optional[str],
    urgency: Optional[str],
    presets: SLAPresetTable
) -> SLAConfig:
    """
    Stage budgets for a trade and urgency.

    Exact match on both keys; anything else gets the table's fallback.
    """
    return presets.get(trade, urgency) or presets.fallback


class SLAStatusProjector:
    """
    Maps a timer and the current time to a display state.

    Overdue timers that the breach monitor has not marked yet read as
    ``warning``; only the monitor turns a timer ``breached``.
    """

    def __init__(self, warning_fraction: Optional[float] = None):
        self.warning_fraction = (
            settings.sla_warning_fraction if warning_fraction is None else warning_fraction
        )

    def status(self, timer: SLATimer, now: datetime) -> str:
        if timer.completed_at is not None:
            return SLAStatus.COMPLETED
        if timer.breached:
            return SLAStatus.BREACHED
        if timer.remaining_minutes(now) < self.warning_fraction * timer.target_minutes:
            return SLAStatus.WARNING
        return SLAStatus.ON_TIME

    def time_remaining(self, timer: SLATimer, now: datetime) -> float:
        if not timer.is_active:
            return 0.0
        return max(0.0, timer.remaining_minutes(now))

    def progress_percent(self, timer: SLATimer, now: datetime) -> float:
        if timer.target_minutes <= 0:
            return 100.0
        percent = 100.0 * timer.elapsed_minutes(now) / timer.target_minutes
        return min(100.0, max(0.0, percent))

    def overall_status(self, timers: Iterable[SLATimer], now: datetime) -> str:
        """Single badge state for a whole job."""
        timers = list(timers)
        if not timers:
            return SLAStatus.NO_SLA
        if any(t.breached and t.completed_at is None for t in timers):
            return SLAStatus.BREACHED
        if all(t.completed_at is not None for t in timers):
            return SLAStatus.COMPLETED

        current = active_timer(timers)
        if current is None:
            return SLAStatus.ON_TIME
        return self.status(current, now)

    def project(self, timer: SLATimer, now: datetime) -> dict:
        """Timer fields plus the projected display values."""
        return {
            **timer.to_dict(),
            "status": self.status(timer, now),
            "time_remaining": round(self.time_remaining(timer, now), 2),
            "progress_percent": round(self.progress_percent(timer, now), 2),
        }


def active_timer(timers: Iterable[SLATimer]) -> Optional[SLATimer]:
    """First timer still running, in creation order."""
    return next((t for t in timers if t.is_active), None)


def next_stage(stage: str) -> Optional[str]:
    """Stage that follows ``stage``, or None after completion."""
    index = SLA_STAGES.index(stage)
    return SLA_STAGES[index + 1] if index + 1 < len(SLA_STAGES) else None


def earlier_stages(stage: str) -> List[str]:
    return SLA_STAGES[:SLA_STAGES.index(stage)]


def format_minutes(minutes: float) -> str:
    """``45m``, ``2h`` or ``2h 5m``."""
    if minutes < 60:
        return f"{round(minutes)}m"
    hours = int(minutes // 60)
    mins = round(minutes % 60)
    if mins == 60:
        hours, mins = hours + 1, 0
    return f"{hours}h {mins}m" if mins > 0 else f"{hours}h"


__all__ = [
    "SLAConfig",
    "FALLBACK_SLA",
    "SLAPresetTable",
    "resolve",
    "SLAStatusProjector",
    "active_timer",
    "next_stage",
    "earlier_stages",
    "format_minutes",
]
