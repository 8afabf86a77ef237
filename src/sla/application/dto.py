"""
SLA Application DTOs
=====================

Data Transfer Objects for the SLA API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field


# ========== Type Aliases for Literals ==========
SLAStageStr = Literal["dispatch", "assignment", "arrival", "completion"]
SLAStatusStr = Literal["on-time", "warning", "breached", "completed", "no-sla"]
AlertTypeStr = Literal["warning", "breach"]


# ========== Request DTOs ==========

class SLAOverrides(BaseModel):
    """Per-job replacement budgets in minutes."""
    dispatch: Optional[int] = Field(None, gt=0)
    assignment: Optional[int] = Field(None, gt=0)
    arrival: Optional[int] = Field(None, gt=0)
    completion: Optional[int] = Field(None, gt=0)


class SLAInitializeRequest(BaseModel):
    """Request model for starting a job's SLA timers."""
    trade: Optional[str] = Field(None, description="Trade used for the preset lookup")
    urgency: Optional[str] = Field(None, description="Urgency used for the preset lookup")
    overrides: Optional[SLAOverrides] = Field(None, description="Budgets that replace the preset")


# ========== Response DTOs ==========

class SLAConfigResponse(BaseModel):
    trade: Optional[str]
    urgency: Optional[str]
    config: Dict[str, int]
    total_minutes: int
    is_default: bool = Field(..., description="True when no preset matched")


class SLATimerResponse(BaseModel):
    """A timer with its projected display values."""
    id: str
    job_id: str
    stage: SLAStageStr
    target_minutes: int
    started_at: datetime
    completed_at: Optional[datetime] = None
    breached: bool
    breach_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    status: SLAStatusStr
    time_remaining: float = Field(..., description="Minutes left; 0 once completed or breached")
    progress_percent: float


class SLAAlertResponse(BaseModel):
    id: str
    job_id: str
    timer_id: Optional[str] = None
    alert_type: AlertTypeStr
    stage: SLAStageStr
    message: str
    sent_at: datetime
    acknowledged: bool


class JobSLAResponse(BaseModel):
    """Snapshot of a job's SLA state. Also the WebSocket message shape."""
    job_id: str
    overall_status: SLAStatusStr
    active_stage: Optional[SLAStageStr] = None
    timers: List[SLATimerResponse] = Field(default_factory=list)
    alerts: List[SLAAlertResponse] = Field(default_factory=list)


class SLAInitializeResponse(BaseModel):
    success: bool = True
    job_id: str
    config: Dict[str, int]
    timers: List[SLATimerResponse]


class StageCompleteResponse(BaseModel):
    success: bool = True
    job_id: str
    stage: SLAStageStr
    completed: bool = Field(..., description="False when the stage had no running timer")
    next_stage: Optional[SLAStageStr] = None


class AlertAcknowledgeResponse(BaseModel):
    success: bool = True
    alert: SLAAlertResponse


class EvaluationDetail(BaseModel):
    job_id: str
    stage: SLAStageStr
    type: AlertTypeStr
    elapsed_minutes: Optional[float] = None
    remaining_minutes: Optional[float] = None


class EvaluationResponse(BaseModel):
    success: bool
    checked: int
    alerts: int
    breaches: int
    details: List[EvaluationDetail] = Field(default_factory=list)
