"""
Mock Mode Fixtures
==================

Demo rows loaded into the in-memory database when the service runs without
a configured database: technicians around downtown Austin, one open job
with running SLA timers, staged license records, cold leads, an outreach
target and a queued reply.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.config import LeadSource, ReplyStatus, Trade, Urgency
from src.core import utcnow
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

DEMO_JOB_ID = "demo-job-1"
DEMO_TARGET_ID = "demo-target-1"
DEMO_REPLY_ID = "demo-reply-1"

TECHNICIANS = [
    {
        "id": "tech-warm-1",
        "full_name": "Maria Gonzalez",
        "email": "maria@gonzalezhvac.com",
        "business_name": "Gonzalez HVAC",
        "trade": Trade.HVAC,
        "city": "Austin",
        "state": "TX",
        "lat": 30.2849,
        "lng": -97.7341,
        "signed_up": True,
    },
    {
        "id": "tech-cold-1",
        "full_name": "Derek Olsen",
        "email": "derek@olsenair.com",
        "business_name": "Olsen Air",
        "trade": Trade.HVAC,
        "city": "Round Rock",
        "state": "TX",
        "lat": 30.5083,
        "lng": -97.6789,
        "signed_up": False,
    },
    {
        "id": "tech-cold-2",
        "full_name": "Priya Raman",
        "email": "priya@ramanplumbing.com",
        "business_name": "Raman Plumbing",
        "trade": Trade.PLUMBING,
        "city": "Austin",
        "state": "TX",
        "lat": 30.2500,
        "lng": -97.7500,
        "signed_up": None,
    },
]

DEMO_JOB = {
    "id": DEMO_JOB_ID,
    "job_title": "Rooftop AC not cooling",
    "description": "Two rooftop units blowing warm air, store opens at 9am.",
    "trade_needed": Trade.HVAC,
    "urgency": Urgency.SAME_DAY,
    "address_text": "500 Congress Ave, Austin, TX 78701",
    "city": "Austin",
    "state": "TX",
    "lat": 30.2672,
    "lng": -97.7431,
    "budget_max": 450,
    "contact_name": "Sam Patel",
    "contact_phone": "(512) 555-0142",
}


async def seed_mock_data(container, session: AsyncSession) -> None:
    """Insert the demo rows. Expects empty tables."""
    from src.dispatch.infrastructure.models import TechnicianModel
    from src.leads.infrastructure.models import (
        ColdLeadModel,
        EmailEnrichmentQueueModel,
        LicenseRecordModel,
        OutreachTargetModel,
        ReplyQueueModel,
    )

    now = utcnow()
    for tech in TECHNICIANS:
        session.add(TechnicianModel(created_at=now, **tech))

    session.add_all([
        LicenseRecordModel(
            id="license-1",
            source=LeadSource.CSLB,
            license_number="1045521",
            license_status="active",
            license_classification="C-20",
            business_name="Sierra Air Mechanical",
            full_name="Dana Ortiz",
            first_name="Dana",
            last_name="Ortiz",
            city="Fresno",
            state="CA",
            trade_type=Trade.HVAC,
            ai_selected=True,
            created_at=now,
            updated_at=now,
        ),
        LicenseRecordModel(
            id="license-2",
            source=LeadSource.DBPR,
            license_number="CAC1819283",
            license_status="current",
            license_classification="Certified Air Conditioning Contractor",
            business_name="Luis Ferrer",
            full_name="Luis Ferrer",
            first_name="Luis",
            last_name="Ferrer",
            city="Tampa",
            state="FL",
            trade_type=Trade.HVAC,
            created_at=now,
            updated_at=now,
        ),
        ColdLeadModel(
            id="cold-lead-1",
            email="1045521@placeholder.cslb",
            full_name="Dana Ortiz",
            first_name="Dana",
            last_name="Ortiz",
            company_name="Sierra Air Mechanical",
            website="https://www.sierraairmech.com",
            city="Fresno",
            state="CA",
            trade_type=Trade.HVAC,
            lead_source=LeadSource.CSLB,
            created_at=now,
            updated_at=now,
        ),
        OutreachTargetModel(
            id=DEMO_TARGET_ID,
            business_name="Lone Star Plumbing Co",
            website="https://lonestarplumbing.com",
            phone="(512) 555-0199",
            city="Austin",
            state="TX",
            trade_type=Trade.PLUMBING,
            created_at=now,
        ),
        ReplyQueueModel(
            id=DEMO_REPLY_ID,
            cold_lead_id="cold-lead-1",
            original_from="dana@sierraairmech.com",
            original_subject="Re: HVAC jobs in Fresno",
            generated_subject="Re: HVAC jobs in Fresno",
            generated_body="Hi Dana,\n\nThanks for getting back to us. Jobs near Fresno are posted daily.",
            status=ReplyStatus.PENDING,
            created_at=now,
            updated_at=now,
        ),
    ])
    await session.flush()

    session.add(EmailEnrichmentQueueModel(
        id="demo-queue-1",
        target_id=DEMO_TARGET_ID,
        domain="lonestarplumbing.com",
        created_at=now,
    ))
    await session.flush()

    await container.job_service(session).create_job(dict(DEMO_JOB), now=now)
    logger.info("Mock data seeded", extra={"technicians": len(TECHNICIANS), "job_id": DEMO_JOB_ID})
