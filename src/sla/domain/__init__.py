"""
SLA Domain Layer
================

Domain layer for SLA tracking.

Contains:
- Entities: SLATimer, SLAAlert
- Value Objects: SLAConfig, SLAPresetTable
- Domain Services: resolve, SLAStatusProjector and the stage helpers

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from src.sla.domain.entities import SLATimer, SLAAlert
from src.sla.domain.value_objects import (
    FALLBACK_SLA,
    SLAConfig,
    SLAPresetTable,
    SLAStatusProjector,
    active_timer,
    earlier_stages,
    format_minutes,
    next_stage,
    resolve,
)

__all__ = [
    # Entities
    "SLATimer",
    "SLAAlert",
    # Value Objects & Services
    "FALLBACK_SLA",
    "SLAConfig",
    "SLAPresetTable",
    "SLAStatusProjector",
    "active_timer",
    "earlier_stages",
    "format_minutes",
    "next_stage",
    "resolve",
]
