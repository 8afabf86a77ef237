"""
Leads Controllers (API Routes)
===============================

FastAPI routes for license-board imports, lead enrichment and
verification, outreach target enrichment and the reply queue.

Controllers are thin - they delegate to application services.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.core import ConfigurationException, ExternalServiceException
from src.infrastructure.container import Container, get_container
from src.infrastructure.database import get_session
from src.leads.application import (
    EmailEnrichmentService,
    EmailEnrichRequest,
    EmailEnrichResponse,
    LeadEnrichmentService,
    LeadEnrichRequest,
    LeadEnrichResponse,
    LeadImportRequest,
    LeadImportResponse,
    LeadImportService,
    LeadVerificationService,
    LeadVerifyRequest,
    LeadVerifyResponse,
    ReplyRejectResponse,
    ReplySendRequest,
    ReplySendResponse,
    ReplyService,
)
from src.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)
router = APIRouter(tags=["Leads & Outreach"])


# ========== Example payloads for Swagger ==========

IMPORT_EXAMPLE = {
    "records": [
        {
            "LICENSE_NUMBER": "1045521",
            "BUSINESS_NAME": "Sierra Air Mechanical",
            "PERSONNEL_NAME": "Dana Ortiz",
            "PRIMARY_CLASSIFICATION": "C-20",
            "LICENSE_STATUS": "Active",
            "CITY": "Fresno",
            "ZIP": "93721",
            "EXPIRE_DATE": "2026-04-30"
        }
    ],
    "tradeFilter": ["HVAC"]
}

IMPORT_RESPONSE_EXAMPLE = {
    "success": True,
    "results": {"total": 1, "filtered": 1, "imported": 1, "skipped": 0, "duplicates": 0, "errors": []},
    "message": "Imported 1 CA contractors to staging table (0 duplicates skipped)"
}

ENRICH_RESPONSE_EXAMPLE = {
    "success": True,
    "results": {"processed": 50, "enriched": 31, "notFound": 19, "errors": 0, "errorDetails": []},
    "dryRun": False,
    "message": "Enriched 31/50 leads"
}


# ========== Dependencies ==========

async def get_import_service(
    session: AsyncSession = Depends(get_session),
    container: Container = Depends(get_container)
) -> LeadImportService:
    """Get license import service instance."""
    return container.lead_import_service(session)


async def get_enrichment_service(
    session: AsyncSession = Depends(get_session),
    container: Container = Depends(get_container)
) -> LeadEnrichmentService:
    """Get lead enrichment service instance."""
    return container.lead_enrichment_service(session)


async def get_verification_service(
    session: AsyncSession = Depends(get_session),
    container: Container = Depends(get_container)
) -> LeadVerificationService:
    """Get lead verification service instance."""
    return container.lead_verification_service(session)


async def get_email_enrichment_service(
    session: AsyncSession = Depends(get_session),
    container: Container = Depends(get_container)
) -> EmailEnrichmentService:
    """Get outreach email enrichment service instance."""
    return container.email_enrichment_service(session)


async def get_reply_service(
    session: AsyncSession = Depends(get_session),
    container: Container = Depends(get_container)
) -> ReplyService:
    """Get reply queue service instance."""
    return container.reply_service(session)


# ========== License Imports ==========

@router.post(
    "/leads/import/{board}",
    response_model=LeadImportResponse,
    summary="Import a license-board export",
    description="""
    Stage contractors from a state license board (`california` or `florida`)
    into `license_records`.

    Rows are kept when their classification maps to a trade in
    `tradeFilter`. Known license numbers and repeats inside the upload are
    counted as `duplicates`; inactive licenses are `skipped`. Rows are
    inserted in batches of 100 and a failing batch is listed in `errors`.
    """,
    responses={
        200: {
            "description": "Import summary",
            "content": {"application/json": {"example": IMPORT_RESPONSE_EXAMPLE}}
        },
        400: {"description": "records array is required"},
        404: {"description": "Unknown board"}
    },
    openapi_extra={"requestBody": {"content": {"application/json": {"example": IMPORT_EXAMPLE}}}}
)
async def import_license_records(
    board: str,
    request: LeadImportRequest,
    session: AsyncSession = Depends(get_session),
    service: LeadImportService = Depends(get_import_service)
):
    with log_latency(logger, "import_license_records", board=board):
        result = await service.import_records(
            board, request.records, request.limit, request.trade_filter
        )
    await session.commit()
    return result


@router.get(
    "/leads/import/{board}",
    response_model=Dict[str, Any],
    summary="Staging counts for a license board",
    responses={404: {"description": "Unknown board"}}
)
async def get_import_stats(
    board: str,
    service: LeadImportService = Depends(get_import_service)
):
    return await service.stats(board)


# ========== Lead Enrichment ==========

@router.post(
    "/leads/enrich",
    response_model=LeadEnrichResponse,
    response_model_exclude_none=True,
    summary="Find emails for cold leads",
    description="""
    For each lead without a usable email (none, or a board placeholder) that
    was never attempted:

    1. **Email finder** by name and company
    2. **Domain search** on the lead's website
    3. **Guess** `first.last@company.com` and verify it

    Scores of 80 or more count as verified. Leads with nothing found are
    marked attempted. `dryRun` searches without writing.
    """,
    responses={
        200: {
            "description": "Enrichment summary",
            "content": {"application/json": {"example": ENRICH_RESPONSE_EXAMPLE}}
        },
        500: {"description": "HUNTER_API_KEY not configured"}
    }
)
async def enrich_leads(
    request: LeadEnrichRequest,
    session: AsyncSession = Depends(get_session),
    service: LeadEnrichmentService = Depends(get_enrichment_service)
):
    with log_latency(logger, "enrich_leads"):
        result = await service.enrich(
            request.lead_ids, request.source, request.limit, request.dry_run
        )
    await session.commit()
    return result


@router.get(
    "/leads/enrich",
    response_model=Dict[str, Any],
    summary="Enrichment progress and quota usage"
)
async def get_enrichment_stats(
    service: LeadEnrichmentService = Depends(get_enrichment_service)
):
    return await service.stats()


# ========== Lead Verification ==========

@router.post(
    "/leads/verify",
    response_model=LeadVerifyResponse,
    response_model_exclude_none=True,
    summary="Verify emails of staged license records",
    description="""
    Run the Hunter.io email finder for unverified records (`ids`, or every
    record still without an email) and store the result. Records at or above
    `minConfidence` are marked verified.

    Account credits are checked first; with none left the request fails
    with 429.
    """,
    responses={
        429: {"description": "No Hunter.io credits available"},
        500: {"description": "Failed to check Hunter.io account status"}
    }
)
async def verify_leads(
    request: LeadVerifyRequest,
    session: AsyncSession = Depends(get_session),
    service: LeadVerificationService = Depends(get_verification_service)
):
    result = await service.verify(request.ids, request.limit, request.min_confidence)
    await session.commit()
    return result


@router.get(
    "/leads/verify",
    response_model=Dict[str, Any],
    summary="Verification counts and Hunter.io account usage"
)
async def get_verification_stats(
    service: LeadVerificationService = Depends(get_verification_service)
):
    return await service.stats()


# ========== Outreach Targets ==========

@router.post(
    "/outreach/enrich-emails",
    response_model=EmailEnrichResponse,
    response_model_exclude_none=True,
    summary="Discover and verify a target's email",
    description="""
    Domain search on the target's website, verify the most confident
    address and store it on the target.

    A verified address is copied to `cold_leads` and pushed to the
    Instantly campaign for the target's trade. Provider failures mark the
    enrichment queue row `failed`.
    """,
    responses={
        400: {"description": "target_id is required"},
        404: {"description": "Target not found"},
        500: {"description": "Provider failure"}
    }
)
async def enrich_target_emails(
    request: EmailEnrichRequest,
    session: AsyncSession = Depends(get_session),
    service: EmailEnrichmentService = Depends(get_email_enrichment_service)
):
    try:
        result = await service.enrich(request.target_id)
    except (ExternalServiceException, ConfigurationException):
        # Keep the failed queue row
        await session.commit()
        raise
    await session.commit()
    return result


# ========== Reply Queue ==========

@router.post(
    "/replies/{reply_id}/send",
    response_model=ReplySendResponse,
    summary="Send a queued reply",
    description="""
    Send the generated (or edited) reply to the original sender as plain
    text through SendGrid, with reply-to and open/click tracking.
    """,
    responses={
        400: {"description": "Reply already sent"},
        404: {"description": "Reply not found"},
        500: {"description": "Failed to send email"}
    }
)
async def send_reply(
    reply_id: str,
    request: Optional[ReplySendRequest] = None,
    session: AsyncSession = Depends(get_session),
    service: ReplyService = Depends(get_reply_service)
):
    request = request or ReplySendRequest()
    result = await service.send(reply_id, request.edited_body, request.edited_subject)
    await session.commit()
    return result


@router.delete(
    "/replies/{reply_id}/send",
    response_model=ReplyRejectResponse,
    summary="Reject a queued reply",
    responses={404: {"description": "Reply not found"}}
)
async def reject_reply(
    reply_id: str,
    session: AsyncSession = Depends(get_session),
    service: ReplyService = Depends(get_reply_service)
):
    result = await service.reject(reply_id)
    await session.commit()
    return result


# Export router
leads_router = router
