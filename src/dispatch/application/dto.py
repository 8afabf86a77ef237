"""
Dispatch Application DTOs
==========================

Data Transfer Objects for the jobs and dispatch API.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from src.sla.application.dto import SLAOverrides


# ========== Request DTOs ==========

class JobCreateRequest(BaseModel):
    """Request model for creating a job."""
    id: Optional[str] = Field(None, max_length=64, description="Client supplied ID; generated when omitted")
    job_title: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    trade_needed: Optional[str] = Field(None, description="HVAC, Plumbing, Electrical, Handyman, Facilities Tech")
    address_text: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = Field(None, max_length=2)
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
    scheduled_at: Optional[datetime] = None
    duration: Optional[str] = None
    urgency: Optional[str] = Field(None, description="emergency, same_day, next_day, within_week, flexible")
    priority: Optional[str] = None
    budget_min: Optional[float] = Field(None, ge=0)
    budget_max: Optional[float] = Field(None, ge=0)
    pay_rate: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    sla_config: Optional[SLAOverrides] = Field(None, description="Budgets that replace the resolved preset")


class ParseRequest(BaseModel):
    raw_text: Optional[str] = Field(None, description="Free-form work order text")


class AssignRequest(BaseModel):
    technician_id: str = Field(..., min_length=1)


class WorkOrderDispatchRequest(BaseModel):
    """Body of the legacy dispatch endpoint."""
    job_id: Optional[str] = None


# ========== Response DTOs ==========

class JobResponse(BaseModel):
    id: str
    job_title: Optional[str] = None
    description: Optional[str] = None
    trade_needed: Optional[str] = None
    address_text: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    scheduled_at: Optional[datetime] = None
    duration: Optional[str] = None
    urgency: Optional[str] = None
    priority: Optional[str] = None
    budget_min: Optional[float] = None
    budget_max: Optional[float] = None
    pay_rate: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: Optional[str] = None
    contact_email: Optional[str] = None
    job_status: str
    assigned_tech_id: Optional[str] = None
    sla_config: Optional[Dict[str, int]] = None
    sla_breached: bool = False
    created_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class CandidateResponse(BaseModel):
    technician_id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    signed_up: Optional[bool] = None
    distance_m: Optional[float] = None


class JobCreateResponse(BaseModel):
    success: bool = True
    job: JobResponse
    candidates: List[CandidateResponse] = Field(default_factory=list)


class JobTransitionResponse(BaseModel):
    success: bool = True
    job: JobResponse


class GeoData(BaseModel):
    lat: float = 0
    lng: float = 0
    city: Optional[str] = None
    state: Optional[str] = None


class ParseResponse(BaseModel):
    success: bool = True
    job_id: str
    parsed_data: Dict[str, Any]
    geo_data: GeoData
    message: str
    mock: Optional[bool] = None


class DispatchResponse(BaseModel):
    """Counts of one dispatch. ``total_recipients`` counts reachable technicians."""
    success: bool = True
    outreach_id: str
    total_recipients: int
    warm_sent: int
    cold_sent: int
    total_sent: int
