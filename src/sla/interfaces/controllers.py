"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA timers, alerts and the breach monitor, plus the
WebSocket that pushes a job's SLA state to subscribers.

Controllers are thin - they delegate to application services.
"""

import asyncio
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import SLA_STAGES
from src.core import ValidationException
from src.infrastructure.container import Container, get_container
from src.infrastructure.database import get_session, get_session_context
from src.shared.infrastructure.logging import get_logger
from src.sla.application import (
    AlertAcknowledgeResponse,
    EvaluationResponse,
    JobSLAResponse,
    SLAAlertResponse,
    SLAConfigResponse,
    SLAInitializeRequest,
    SLAInitializeResponse,
    SLAMonitorService,
    SLAService,
    StageCompleteResponse,
)
from src.sla.domain import next_stage, resolve

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA Monitoring"])


# ========== Example payloads for Swagger ==========

SLA_CONFIG_EXAMPLE = {
    "trade": "HVAC",
    "urgency": "emergency",
    "config": {"dispatch": 15, "assignment": 30, "arrival": 120, "completion": 240},
    "total_minutes": 405,
    "is_default": False
}

JOB_SLA_EXAMPLE = {
    "job_id": "6f1c1e9e-3f0a-4d4b-9a57-0c7a1a4f2b10",
    "overall_status": "warning",
    "active_stage": "dispatch",
    "timers": [
        {
            "id": "c2b7f1d4-2a51-4f7e-a0b4-5d7c0f3e9a12",
            "job_id": "6f1c1e9e-3f0a-4d4b-9a57-0c7a1a4f2b10",
            "stage": "dispatch",
            "target_minutes": 15,
            "started_at": "2024-01-15T10:00:00Z",
            "completed_at": None,
            "breached": False,
            "breach_time": None,
            "created_at": "2024-01-15T10:00:00Z",
            "status": "warning",
            "time_remaining": 2.5,
            "progress_percent": 83.33
        }
    ],
    "alerts": []
}

EVALUATION_EXAMPLE = {
    "success": True,
    "checked": 12,
    "alerts": 2,
    "breaches": 1,
    "details": [
        {"job_id": "6f1c1e9e-3f0a-4d4b-9a57-0c7a1a4f2b10", "stage": "dispatch",
         "type": "breach", "elapsed_minutes": 16.2}
    ]
}


# ========== Dependencies ==========

async def get_sla_service(
    session: AsyncSession = Depends(get_session),
    container: Container = Depends(get_container)
) -> SLAService:
    """Get SLA service instance."""
    return container.sla_service(session)


async def get_monitor_service(
    session: AsyncSession = Depends(get_session),
    container: Container = Depends(get_container)
) -> SLAMonitorService:
    """Get SLA breach monitor instance."""
    return container.sla_monitor(session)


# ========== Route Handlers ==========

@router.get(
    "/config",
    response_model=SLAConfigResponse,
    summary="Resolve SLA budgets",
    description="""
    Stage budgets (minutes) for a trade and urgency.

    Unknown combinations fall back to
    `{dispatch: 60, assignment: 120, arrival: 240, completion: 480}`
    and report `is_default: true`.
    """,
    responses={
        200: {
            "description": "Resolved budgets",
            "content": {"application/json": {"example": SLA_CONFIG_EXAMPLE}}
        }
    }
)
async def get_sla_config(
    trade: Optional[str] = Query(None, description="HVAC, Plumbing, Electrical, Handyman, Facilities Tech"),
    urgency: Optional[str] = Query(None, description="emergency, same_day, next_day, within_week, flexible"),
    container: Container = Depends(get_container)
):
    presets = container.preset_manager.get_presets()
    config = resolve(trade, urgency, presets)
    return SLAConfigResponse(
        trade=trade,
        urgency=urgency,
        config=config.as_dict(),
        total_minutes=config.total_minutes,
        is_default=presets.get(trade, urgency) is None
    )


@router.get(
    "/jobs/{job_id}/timers",
    response_model=JobSLAResponse,
    summary="Get a job's SLA timers",
    description="""
    Timers in creation order, each with its projected `status`,
    `time_remaining` (minutes) and `progress_percent`, plus the job-level
    `overall_status`.

    A storage failure yields an empty timer list rather than an error.
    """,
    responses={
        200: {
            "description": "SLA snapshot",
            "content": {"application/json": {"example": JOB_SLA_EXAMPLE}}
        }
    }
)
async def get_job_timers(
    job_id: str,
    service: SLAService = Depends(get_sla_service)
):
    return await service.job_snapshot(job_id)


@router.post(
    "/jobs/{job_id}/timers",
    response_model=SLAInitializeResponse,
    status_code=201,
    summary="Start a job's SLA timers",
    description="""
    Resolve budgets from `(trade, urgency)`, apply `overrides`, store them
    for the job and start the `dispatch` timer.

    **Idempotent**: a job that already has timers keeps them.
    """
)
async def initialize_job_timers(
    job_id: str,
    request: SLAInitializeRequest,
    session: AsyncSession = Depends(get_session),
    service: SLAService = Depends(get_sla_service)
):
    overrides = request.overrides.model_dump() if request.overrides else None
    if overrides:
        overrides = {k: v for k, v in overrides.items() if v is not None}

    config, _ = await service.initialize_timers(
        job_id, request.trade, request.urgency, overrides
    )
    await session.commit()

    snapshot = await service.job_snapshot(job_id)
    return SLAInitializeResponse(
        job_id=job_id,
        config=config.as_dict(),
        timers=snapshot["timers"]
    )


@router.get(
    "/jobs/{job_id}/alerts",
    response_model=List[SLAAlertResponse],
    summary="List a job's SLA alerts",
    description="Most recent first."
)
async def get_job_alerts(
    job_id: str,
    service: SLAService = Depends(get_sla_service)
):
    return [alert.to_dict() for alert in await service.load_alerts(job_id)]


@router.post(
    "/jobs/{job_id}/stages/{stage}/complete",
    response_model=StageCompleteResponse,
    summary="Complete an SLA stage",
    description="""
    Complete the running timer of `stage` and start the next stage's timer
    with the job's stored budget.

    `completed` is false when the stage had no running timer.
    """,
    responses={400: {"description": "Unknown stage"}}
)
async def complete_job_stage(
    job_id: str,
    stage: str,
    session: AsyncSession = Depends(get_session),
    service: SLAService = Depends(get_sla_service)
):
    if stage not in SLA_STAGES:
        raise ValidationException(
            f"Invalid stage '{stage}'. Must be one of: {', '.join(SLA_STAGES)}"
        )

    timer = await service.complete_stage(job_id, stage)
    await session.commit()

    return StageCompleteResponse(
        job_id=job_id,
        stage=stage,
        completed=timer is not None,
        next_stage=next_stage(stage) if timer is not None else None
    )


@router.post(
    "/alerts/{alert_id}/acknowledge",
    response_model=AlertAcknowledgeResponse,
    summary="Acknowledge an SLA alert",
    responses={404: {"description": "Alert not found"}}
)
async def acknowledge_alert(
    alert_id: str,
    session: AsyncSession = Depends(get_session),
    service: SLAService = Depends(get_sla_service)
):
    alert = await service.acknowledge_alert(alert_id)
    await session.commit()
    return AlertAcknowledgeResponse(alert=alert.to_dict())


@router.post(
    "/evaluate",
    response_model=EvaluationResponse,
    summary="Run the breach monitor now",
    description="""
    Check every running timer once:

    - **breach**: elapsed time reached the target; the timer and the job are
      flagged and a breach alert is raised
    - **warning**: less than 25% of the budget left; raised once per timer
    """,
    responses={
        200: {
            "description": "Evaluation summary",
            "content": {"application/json": {"example": EVALUATION_EXAMPLE}}
        }
    }
)
async def evaluate_sla(
    session: AsyncSession = Depends(get_session),
    monitor: SLAMonitorService = Depends(get_monitor_service)
):
    result = await monitor.evaluate()
    await session.commit()
    return result


# ========== WebSocket ==========

async def _send_snapshot(websocket: WebSocket, container: Container, job_id: str) -> None:
    async with get_session_context() as session:
        snapshot = await container.sla_service(session).job_snapshot(job_id)
    await websocket.send_json(JobSLAResponse(**snapshot).model_dump(mode="json"))


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    # Clients never send anything meaningful; reading only detects the close
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        return


@router.websocket("/jobs/{job_id}/stream")
async def stream_job_sla(websocket: WebSocket, job_id: str):
    """
    Push the full SLA snapshot of a job on connect and after every committed
    timer or alert change. Snapshots are re-read, never patched.
    """
    container: Container = websocket.app.state.container
    await websocket.accept()

    queue = container.change_feed.subscribe(job_id)
    closed = asyncio.create_task(_wait_for_disconnect(websocket))
    logger.info("SLA stream opened", extra={"job_id": job_id})

    try:
        await _send_snapshot(websocket, container, job_id)
        while True:
            changed = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait({changed, closed}, return_when=asyncio.FIRST_COMPLETED)
            if closed in done:
                changed.cancel()
                break
            await _send_snapshot(websocket, container, job_id)
    except WebSocketDisconnect:
        pass
    finally:
        closed.cancel()
        container.change_feed.unsubscribe(job_id, queue)
        logger.info("SLA stream closed", extra={"job_id": job_id})


# Export router
sla_router = router
