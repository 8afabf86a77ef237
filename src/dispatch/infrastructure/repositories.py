"""
Dispatch Infrastructure Repositories
======================================

Concrete implementations of repository interfaces using SQLAlchemy.
"""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import uuid4

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import DispatchMethod, OutreachStatus
from src.core import OutreachCreationException, RepositoryException, utcnow
from src.dispatch.application.services import (
    IJobRepository,
    IOutreachRepository,
    ITechnicianRepository,
)
from src.dispatch.domain import Candidate, Job, Technician, match_technicians
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Columns written back on save; id and created_at never change
JOB_COLUMNS = (
    "job_title", "description", "trade_needed", "address_text", "city", "state",
    "lat", "lng", "scheduled_at", "duration", "urgency", "priority",
    "budget_min", "budget_max", "pay_rate", "contact_name", "contact_phone",
    "contact_email", "job_status", "assigned_tech_id", "sla_config",
    "sla_breached", "arrived_at", "completed_at",
)


def _to_job(model) -> Job:
    values = {column: getattr(model, column) for column in JOB_COLUMNS}
    return Job(id=model.id, created_at=model.created_at, **values)


def _to_technician(model) -> Technician:
    return Technician(
        id=model.id,
        full_name=model.full_name,
        email=model.email,
        business_name=model.business_name,
        trade=model.trade,
        city=model.city,
        state=model.state,
        lat=model.lat,
        lng=model.lng,
        signed_up=model.signed_up,
    )


class SQLAlchemyJobRepository(IJobRepository):
    """SQLAlchemy implementation of job repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, job_id: str) -> Optional[Job]:
        from src.dispatch.infrastructure.models import JobModel

        try:
            model = await self._session.get(JobModel, job_id)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load job: {e}")
        return _to_job(model) if model else None

    async def add(self, job: Job) -> Job:
        from src.dispatch.infrastructure.models import JobModel

        model = JobModel(
            id=job.id,
            created_at=job.created_at or utcnow(),
            **{column: getattr(job, column) for column in JOB_COLUMNS}
        )
        self._session.add(model)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to create job: {e}")
        return _to_job(model)

    async def save(self, job: Job) -> Job:
        from src.dispatch.infrastructure.models import JobModel

        model = await self._session.get(JobModel, job.id)
        if model is None:
            raise RepositoryException(f"Job {job.id} vanished before save")

        for column in JOB_COLUMNS:
            setattr(model, column, getattr(job, column))
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to update job: {e}")
        return job


class SQLAlchemyTechnicianRepository(ITechnicianRepository):
    """
    SQLAlchemy implementation of technician repository.

    Matching narrows by trade and state in SQL and measures distance in
    Python; the stored candidate list is replaced on every match.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, technician_id: str) -> Optional[Technician]:
        from src.dispatch.infrastructure.models import TechnicianModel

        model = await self._session.get(TechnicianModel, technician_id)
        return _to_technician(model) if model else None

    async def find_matching(
        self,
        job_id: str,
        lat: float,
        lng: float,
        trade: Optional[str],
        state: Optional[str],
        max_distance_m: float
    ) -> List[Candidate]:
        from src.dispatch.infrastructure.models import JobCandidateModel, TechnicianModel

        stmt = select(TechnicianModel).where(
            TechnicianModel.lat.is_not(None),
            TechnicianModel.lng.is_not(None),
        )
        if trade:
            stmt = stmt.where(func.lower(TechnicianModel.trade) == trade.strip().lower())
        if state:
            stmt = stmt.where(func.lower(TechnicianModel.state) == state.strip().lower())

        try:
            result = await self._session.execute(stmt)
            technicians = [_to_technician(m) for m in result.scalars().all()]
            candidates = match_technicians(technicians, lat, lng, trade, state, max_distance_m)

            await self._session.execute(
                delete(JobCandidateModel).where(JobCandidateModel.job_id == job_id)
            )
            for candidate in candidates:
                self._session.add(JobCandidateModel(
                    id=str(uuid4()),
                    job_id=job_id,
                    technician_id=candidate.technician.id,
                    distance_m=candidate.distance_m,
                ))
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to match technicians: {e}")

        logger.info(
            "Technicians matched",
            extra={"job_id": job_id, "matched": len(candidates), "radius_m": max_distance_m}
        )
        return candidates

    async def list_candidates(self, job_id: str) -> List[Candidate]:
        from src.dispatch.infrastructure.models import JobCandidateModel, TechnicianModel

        stmt = (
            select(JobCandidateModel, TechnicianModel)
            .join(TechnicianModel, TechnicianModel.id == JobCandidateModel.technician_id)
            .where(JobCandidateModel.job_id == job_id)
            .order_by(JobCandidateModel.distance_m)
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load candidates: {e}")
        return [
            Candidate(technician=_to_technician(tech), distance_m=candidate.distance_m)
            for candidate, tech in result.all()
        ]


class SQLAlchemyOutreachRepository(IOutreachRepository):
    """SQLAlchemy implementation of work order outreach repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def create_outreach(self, job_id: str, total_recipients: int) -> str:
        from src.dispatch.infrastructure.models import WorkOrderOutreachModel

        model = WorkOrderOutreachModel(
            id=str(uuid4()),
            job_id=job_id,
            total_recipients=total_recipients,
            warm_opened=0,
            cold_opened=0,
            emails_opened=0,
            status=OutreachStatus.IN_PROGRESS,
            created_at=utcnow(),
        )
        self._session.add(model)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            logger.error("Failed to create outreach", extra={"job_id": job_id, "error": str(e)})
            raise OutreachCreationException(job_id)
        return model.id

    async def add_recipient(self, outreach_id: str, technician_id: str, method: str) -> str:
        from src.dispatch.infrastructure.models import WorkOrderRecipientModel

        model = WorkOrderRecipientModel(
            id=str(uuid4()),
            outreach_id=outreach_id,
            technician_id=technician_id,
            dispatch_method=method,
            email_sent=False,
            email_opened=False,
            created_at=utcnow(),
        )
        self._session.add(model)
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to create recipient: {e}")
        return model.id

    async def _recipient(self, recipient_id: str):
        from src.dispatch.infrastructure.models import WorkOrderRecipientModel

        model = await self._session.get(WorkOrderRecipientModel, recipient_id)
        if model is None:
            raise RepositoryException(f"Recipient {recipient_id} not found")
        return model

    async def mark_sent(self, recipient_id: str, now: datetime) -> None:
        model = await self._recipient(recipient_id)
        model.email_sent = True
        model.email_sent_at = now
        model.error_message = None
        await self._session.flush()

    async def record_failure(self, recipient_id: str, error: str) -> None:
        model = await self._recipient(recipient_id)
        model.error_message = error[:1000]
        await self._session.flush()

    async def update_stats(self, outreach_id: str) -> Dict[str, int]:
        from src.dispatch.infrastructure.models import (
            WorkOrderOutreachModel,
            WorkOrderRecipientModel,
        )

        stmt = (
            select(WorkOrderRecipientModel.dispatch_method, func.count())
            .where(
                WorkOrderRecipientModel.outreach_id == outreach_id,
                WorkOrderRecipientModel.email_sent.is_(True),
            )
            .group_by(WorkOrderRecipientModel.dispatch_method)
        )
        result = await self._session.execute(stmt)
        counts = {method: count for method, count in result.all()}

        stats = {
            "warm_sent": counts.get(DispatchMethod.SENDGRID_WARM, 0),
            "cold_sent": counts.get(DispatchMethod.INSTANTLY_COLD, 0),
        }
        stats["emails_sent"] = stats["warm_sent"] + stats["cold_sent"]

        model = await self._session.get(WorkOrderOutreachModel, outreach_id)
        if model is not None:
            model.warm_sent = stats["warm_sent"]
            model.cold_sent = stats["cold_sent"]
            model.emails_sent = stats["emails_sent"]
            await self._session.flush()
        return stats

    async def finish(self, outreach_id: str, status: str, now: datetime) -> None:
        from src.dispatch.infrastructure.models import WorkOrderOutreachModel

        model = await self._session.get(WorkOrderOutreachModel, outreach_id)
        if model is None:
            raise RepositoryException(f"Outreach {outreach_id} not found")
        model.status = status
        model.completed_at = now
        await self._session.flush()

    async def mark_opened(self, outreach_id: str, technician_id: str, now: datetime) -> Optional[str]:
        from src.dispatch.infrastructure.models import (
            WorkOrderOutreachModel,
            WorkOrderRecipientModel,
        )

        stmt = select(WorkOrderRecipientModel).where(
            WorkOrderRecipientModel.outreach_id == outreach_id,
            WorkOrderRecipientModel.technician_id == technician_id,
        )
        try:
            result = await self._session.execute(stmt)
            recipient = result.scalars().first()
            if recipient is None or recipient.email_opened:
                return None

            recipient.email_opened = True
            recipient.email_opened_at = now

            outreach = await self._session.get(WorkOrderOutreachModel, outreach_id)
            if outreach is not None:
                if recipient.dispatch_method == DispatchMethod.SENDGRID_WARM:
                    outreach.warm_opened += 1
                elif recipient.dispatch_method == DispatchMethod.INSTANTLY_COLD:
                    outreach.cold_opened += 1
                outreach.emails_opened += 1
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to record email open: {e}")
        return recipient.dispatch_method
