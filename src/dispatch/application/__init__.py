"""
Dispatch Application Layer
===========================

Application layer for jobs and work order dispatch.

Contains:
- Services: job lifecycle, work order parsing, dispatch orchestration
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from src.dispatch.application.dto import (
    AssignRequest,
    CandidateResponse,
    DispatchResponse,
    GeoData,
    JobCreateRequest,
    JobCreateResponse,
    JobResponse,
    JobTransitionResponse,
    ParseRequest,
    ParseResponse,
    WorkOrderDispatchRequest,
)
from src.dispatch.application.services import (
    DispatchService,
    IJobRepository,
    IOutreachRepository,
    ITechnicianRepository,
    JobService,
    MockWorkOrderParseService,
    WorkOrderParseService,
)

__all__ = [
    # DTOs
    "AssignRequest",
    "CandidateResponse",
    "DispatchResponse",
    "GeoData",
    "JobCreateRequest",
    "JobCreateResponse",
    "JobResponse",
    "JobTransitionResponse",
    "ParseRequest",
    "ParseResponse",
    "WorkOrderDispatchRequest",
    # Services
    "JobService",
    "WorkOrderParseService",
    "MockWorkOrderParseService",
    "DispatchService",
    # Repository Interfaces
    "IJobRepository",
    "ITechnicianRepository",
    "IOutreachRepository",
]
