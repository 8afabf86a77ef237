"""
SLA Application Layer
======================

Application layer for SLA tracking.

Contains:
- Services: Orchestrate business logic and coordinate with repositories
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from src.sla.application.dto import (
    AlertAcknowledgeResponse,
    EvaluationResponse,
    JobSLAResponse,
    SLAAlertResponse,
    SLAConfigResponse,
    SLAInitializeRequest,
    SLAInitializeResponse,
    SLAOverrides,
    SLATimerResponse,
    StageCompleteResponse,
)
from src.sla.application.services import (
    ISLAAlertRepository,
    ISLAPresetProvider,
    ISLATimerRepository,
    SLAMonitorService,
    SLAService,
)

__all__ = [
    # DTOs
    "AlertAcknowledgeResponse",
    "EvaluationResponse",
    "JobSLAResponse",
    "SLAAlertResponse",
    "SLAConfigResponse",
    "SLAInitializeRequest",
    "SLAInitializeResponse",
    "SLAOverrides",
    "SLATimerResponse",
    "StageCompleteResponse",
    # Services
    "SLAService",
    "SLAMonitorService",
    # Repository Interfaces
    "ISLATimerRepository",
    "ISLAAlertRepository",
    "ISLAPresetProvider",
]
