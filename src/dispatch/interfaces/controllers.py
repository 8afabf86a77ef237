"""
Dispatch Controllers (API Routes)
==================================

FastAPI routes for jobs, work order parsing and dispatch.

Controllers are thin - they delegate to application services.
"""

import base64
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from src.core import ApplicationException, ValidationException
from src.dispatch.application import (
    AssignRequest,
    CandidateResponse,
    DispatchResponse,
    DispatchService,
    JobCreateRequest,
    JobCreateResponse,
    JobResponse,
    JobService,
    JobTransitionResponse,
    ParseRequest,
    ParseResponse,
    WorkOrderDispatchRequest,
    WorkOrderParseService,
)
from src.dispatch.domain import Candidate, Job
from src.infrastructure.container import Container, get_container
from src.infrastructure.database import get_session
from src.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)
router = APIRouter(tags=["Jobs & Dispatch"])


# ========== Example payloads for Swagger ==========

JOB_CREATE_EXAMPLE = {
    "job_title": "Rooftop AC not cooling",
    "trade_needed": "HVAC",
    "urgency": "same_day",
    "address_text": "500 Congress Ave, Austin, TX 78701",
    "state": "TX",
    "lat": 30.2676,
    "lng": -97.7429,
    "budget_max": 450,
    "sla_config": {"dispatch": 20}
}

PARSE_RESPONSE_EXAMPLE = {
    "success": True,
    "job_id": "6f1c1e9e-3f0a-4d4b-9a57-0c7a1a4f2b10",
    "parsed_data": {
        "job_title": "HVAC Service Request",
        "trade_needed": "HVAC",
        "address_text": "500 Congress Ave, Austin, TX 78701",
        "urgency": "same_day",
        "contact_phone": "(512) 555-0142"
    },
    "geo_data": {"lat": 30.2676, "lng": -97.7429, "city": "Austin", "state": "TX"},
    "message": "Job updated with parsed data"
}

DISPATCH_RESPONSE_EXAMPLE = {
    "success": True,
    "outreach_id": "0d5f2b8e-41a7-4c55-8f0e-6b2d7c1e9a33",
    "total_recipients": 5,
    "warm_sent": 2,
    "cold_sent": 3,
    "total_sent": 5
}


# ========== Dependencies ==========

async def get_job_service(
    session: AsyncSession = Depends(get_session),
    container: Container = Depends(get_container)
) -> JobService:
    """Get job service instance."""
    return container.job_service(session)


async def get_parse_service(
    session: AsyncSession = Depends(get_session),
    container: Container = Depends(get_container)
) -> WorkOrderParseService:
    """Get work order parse service instance."""
    return container.parse_service(session)


async def get_dispatch_service(
    session: AsyncSession = Depends(get_session),
    container: Container = Depends(get_container)
) -> DispatchService:
    """Get dispatch service instance."""
    return container.dispatch_service(session)


def _job_response(job: Job) -> JobResponse:
    return JobResponse(**job.to_dict())


def _candidate_response(candidate: Candidate) -> CandidateResponse:
    tech = candidate.technician
    return CandidateResponse(
        technician_id=tech.id,
        full_name=tech.full_name,
        email=tech.email,
        signed_up=tech.signed_up,
        distance_m=candidate.distance_m
    )


# ========== Route Handlers ==========

@router.post(
    "/jobs",
    response_model=JobCreateResponse,
    status_code=201,
    summary="Create a job",
    description="""
    Create a work order in `matching` state.

    SLA budgets are resolved from `(trade_needed, urgency)`; `sla_config`
    replaces individual stage budgets. The dispatch timer starts immediately.

    When `lat`/`lng` are given, technicians of the same trade and state within
    40 km are stored as candidates.
    """,
    responses={
        201: {"description": "Job created"},
        400: {"description": "Invalid SLA override"}
    }
)
async def create_job(
    request: JobCreateRequest,
    session: AsyncSession = Depends(get_session),
    service: JobService = Depends(get_job_service)
):
    overrides = request.sla_config.model_dump() if request.sla_config else None
    fields = request.model_dump(exclude={"sla_config"})

    job, candidates = await service.create_job(fields, overrides)
    await session.commit()

    return JobCreateResponse(
        job=_job_response(job),
        candidates=[_candidate_response(c) for c in candidates]
    )


@router.get(
    "/jobs/{job_id}",
    response_model=JobResponse,
    summary="Get a job",
    responses={404: {"description": "Job not found"}}
)
async def get_job(
    job_id: str,
    service: JobService = Depends(get_job_service)
):
    return _job_response(await service.get_job(job_id))


@router.post(
    "/jobs/{job_id}/parse",
    response_model=ParseResponse,
    response_model_exclude_unset=True,
    summary="Parse raw work order text into a job",
    description="""
    Extract job fields from free-form text, geocode the address and update
    the job. The job moves to `matching` and nearby technicians (10 km) are
    matched on a best-effort basis.

    Parsing uses OpenAI when configured and the rule-based parser otherwise.
    Geocoding tries Nominatim, then Google, then Mapbox.
    """,
    responses={
        200: {
            "description": "Job updated",
            "content": {"application/json": {"example": PARSE_RESPONSE_EXAMPLE}}
        },
        400: {"description": "raw_text is required"},
        404: {"description": "Job not found"}
    }
)
async def parse_job(
    job_id: str,
    request: ParseRequest,
    session: AsyncSession = Depends(get_session),
    service: WorkOrderParseService = Depends(get_parse_service)
):
    result = await service.parse(job_id, request.raw_text)
    await session.commit()
    return result


async def _dispatch(job_id: str, session: AsyncSession, service: DispatchService) -> DispatchResponse:
    with log_latency(logger, "dispatch_work_order", job_id=job_id):
        summary = await service.dispatch(job_id)
    await session.commit()
    return DispatchResponse(**summary.to_response())


@router.post(
    "/jobs/{job_id}/dispatch",
    response_model=DispatchResponse,
    summary="Dispatch a job to its candidates",
    description="""
    Invite every candidate technician with an email.

    **Warm** technicians (signed up) get a SendGrid template email.
    **Cold** technicians are added to the Instantly campaign for the trade
    (falling back to the HVAC campaign).

    Individual send failures never fail the request; the counts report what
    was actually sent. The `dispatch` SLA stage is completed afterwards.
    """,
    responses={
        200: {
            "description": "Dispatch finished",
            "content": {"application/json": {"example": DISPATCH_RESPONSE_EXAMPLE}}
        },
        404: {"description": "Job not found"},
        500: {"description": "Failed to create outreach"}
    }
)
async def dispatch_job(
    job_id: str,
    session: AsyncSession = Depends(get_session),
    service: DispatchService = Depends(get_dispatch_service)
):
    return await _dispatch(job_id, session, service)


@router.post(
    "/dispatch/work-order",
    response_model=DispatchResponse,
    summary="Dispatch a job (legacy body shape)",
    description="Same as `POST /jobs/{job_id}/dispatch` with the job id in the body.",
    responses={400: {"description": "job_id is required"}, 404: {"description": "Job not found"}}
)
async def dispatch_work_order(
    request: WorkOrderDispatchRequest,
    session: AsyncSession = Depends(get_session),
    service: DispatchService = Depends(get_dispatch_service)
):
    if not request.job_id:
        raise ValidationException("job_id is required")
    return await _dispatch(request.job_id, session, service)


@router.post(
    "/jobs/{job_id}/assign",
    response_model=JobTransitionResponse,
    summary="Assign a technician",
    description="Allowed from `matching` or `dispatched`. Completes the `assignment` SLA stage.",
    responses={400: {"description": "Wrong job status"}, 404: {"description": "Job or technician not found"}}
)
async def assign_job(
    job_id: str,
    request: AssignRequest,
    session: AsyncSession = Depends(get_session),
    service: JobService = Depends(get_job_service)
):
    job = await service.assign(job_id, request.technician_id)
    await session.commit()
    return JobTransitionResponse(job=_job_response(job))


@router.post(
    "/jobs/{job_id}/arrive",
    response_model=JobTransitionResponse,
    summary="Record technician arrival",
    description="Allowed from `assigned`. Completes the `arrival` SLA stage.",
    responses={400: {"description": "Wrong job status"}, 404: {"description": "Job not found"}}
)
async def arrive_job(
    job_id: str,
    session: AsyncSession = Depends(get_session),
    service: JobService = Depends(get_job_service)
):
    job = await service.arrive(job_id)
    await session.commit()
    return JobTransitionResponse(job=_job_response(job))


@router.post(
    "/jobs/{job_id}/complete",
    response_model=JobTransitionResponse,
    summary="Complete a job",
    description="Allowed from `assigned`. Completes the `completion` SLA stage.",
    responses={400: {"description": "Wrong job status"}, 404: {"description": "Job not found"}}
)
async def complete_job(
    job_id: str,
    session: AsyncSession = Depends(get_session),
    service: JobService = Depends(get_job_service)
):
    job = await service.complete(job_id)
    await session.commit()
    return JobTransitionResponse(job=_job_response(job))


# 1x1 transparent GIF
TRACKING_PIXEL = base64.b64decode("R0lGODlhAQABAIAAAAAAAP///yH5BAEAAAAALAAAAAABAAEAAAIBRAA7")

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0"
}


@router.get(
    "/track-email-open",
    summary="Email open tracking pixel",
    description="""
    Embedded in warm dispatch emails. Marks the recipient's email as opened
    (first open only) and bumps the outreach open counters.

    Takes `outreach` and `tech`, or the older `id=outreach/tech` form.
    Always answers with a 1x1 GIF, even when the recipient is unknown.
    """,
    response_class=Response,
    responses={200: {"content": {"image/gif": {}}, "description": "Tracking pixel"}}
)
async def track_email_open(
    outreach: Optional[str] = Query(None, description="Outreach ID"),
    tech: Optional[str] = Query(None, description="Technician ID"),
    tracking_id: Optional[str] = Query(None, alias="id", description="Legacy `outreach/tech` tracking ID"),
    session: AsyncSession = Depends(get_session),
    service: DispatchService = Depends(get_dispatch_service)
):
    if tracking_id and "/" in tracking_id:
        outreach, tech = tracking_id.split("/", 1)

    try:
        await service.record_open(outreach, tech)
        await session.commit()
    except ApplicationException as e:
        logger.error(
            "Email tracking failed",
            extra={"outreach_id": outreach, "technician_id": tech, "error": e.message}
        )

    return Response(content=TRACKING_PIXEL, media_type="image/gif", headers=NO_CACHE_HEADERS)


# Export router
dispatch_router = router
