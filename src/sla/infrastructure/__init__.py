"""
SLA Infrastructure Layer
=========================

Infrastructure layer for the SLA module.

Contains:
- Models: SQLAlchemy ORM models
- Repositories: Concrete implementations of repository interfaces
- External: preset hot-reload, scheduler and change feed
"""

from src.sla.infrastructure.models import SLAAlertModel, SLAJobConfigModel, SLATimerModel
from src.sla.infrastructure.repositories import (
    SQLAlchemySLAAlertRepository,
    SQLAlchemySLATimerRepository,
)
from src.sla.infrastructure.external import (
    SLAChangeFeed,
    SLAPresetManager,
    SLAScheduler,
    track_change,
)

__all__ = [
    "SLATimerModel",
    "SLAAlertModel",
    "SLAJobConfigModel",
    "SQLAlchemySLATimerRepository",
    "SQLAlchemySLAAlertRepository",
    "SLAChangeFeed",
    "SLAPresetManager",
    "SLAScheduler",
    "track_change",
]
