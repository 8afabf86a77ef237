"""
Leads Infrastructure Repositories
==================================

Concrete implementations of repository interfaces using SQLAlchemy.
"""

from datetime import datetime
from typing import List, Optional, Sequence, Set
from uuid import uuid4

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import (
    PLACEHOLDER_EMAIL_DOMAINS,
    EnrichmentStatus,
    ReplyStatus,
    Trade,
)
from src.core import RepositoryException, utcnow
from src.leads.application.services import (
    IColdLeadRepository,
    ILicenseRecordRepository,
    IOutreachTargetRepository,
    IReplyRepository,
)
from src.leads.domain import (
    ENRICHMENT_SOURCE_FOUND,
    ENRICHMENT_SOURCE_NOT_FOUND,
    ColdLead,
    FoundEmail,
    LicenseRecord,
    OutreachTarget,
    QueuedReply,
)
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

STATS_TRADES = [Trade.HVAC, Trade.PLUMBING, Trade.ELECTRICAL, Trade.GENERAL]
# Boards whose verified emails count in the enrichment stats
LICENSE_LEAD_SOURCES = ["cslb", "dbpr", "wa_lni"]


def _insert_ignoring_conflicts(session: AsyncSession, model, rows: List[dict], index_elements: List[str]):
    """``INSERT .. ON CONFLICT DO NOTHING`` for the session's dialect."""
    if session.get_bind().dialect.name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert
    return insert(model).values(rows).on_conflict_do_nothing(index_elements=index_elements)


class SQLAlchemyLicenseRecordRepository(ILicenseRecordRepository):
    """SQLAlchemy implementation of the license-board staging repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def existing_license_numbers(self, source: str, numbers: Sequence[str]) -> Set[str]:
        from src.leads.infrastructure.models import LicenseRecordModel

        if not numbers:
            return set()
        stmt = select(LicenseRecordModel.license_number).where(
            LicenseRecordModel.source == source,
            LicenseRecordModel.license_number.in_(list(numbers)),
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load license numbers: {e}")
        return set(result.scalars().all())

    async def insert_batch(self, rows: List[dict]) -> None:
        from src.leads.infrastructure.models import LicenseRecordModel

        if not rows:
            return
        now = utcnow()
        values = [
            {
                "id": str(uuid4()),
                "ai_selected": False,
                "email": None,
                "email_verified": False,
                "hunter_confidence": None,
                "moved_to_cold_leads": False,
                "created_at": now,
                "updated_at": now,
                **row,
            }
            for row in rows
        ]
        stmt = _insert_ignoring_conflicts(
            self._session, LicenseRecordModel, values, ["source", "license_number"]
        )
        try:
            async with self._session.begin_nested():
                await self._session.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("License batch insert failed", extra={"rows": len(rows), "error": str(e)})
            raise RepositoryException(str(e.orig) if getattr(e, "orig", None) else str(e))

    async def _count(self, *conditions) -> int:
        from src.leads.infrastructure.models import LicenseRecordModel

        stmt = select(func.count()).select_from(LicenseRecordModel).where(*conditions)
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def import_stats(self, source: str) -> dict:
        from src.leads.infrastructure.models import LicenseRecordModel as M

        by_source = M.source == source
        try:
            by_trade = {}
            for trade in STATS_TRADES:
                count = await self._count(by_source, M.trade_type == trade)
                if count:
                    by_trade[trade] = count

            return {
                "total": await self._count(by_source),
                "byTrade": by_trade,
                "aiSelected": await self._count(by_source, M.ai_selected.is_(True)),
                "verified": await self._count(by_source, M.email_verified.is_(True)),
                "movedToColdLeads": await self._count(by_source, M.moved_to_cold_leads.is_(True)),
                "pendingSelection": await self._count(by_source, M.ai_selected.is_(False)),
            }
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load import stats: {e}")

    async def list_for_verification(self, ids: Optional[List[str]], limit: int) -> List[LicenseRecord]:
        from src.leads.infrastructure.models import LicenseRecordModel as M

        stmt = select(M).where(M.email_verified.is_(False))
        if ids:
            stmt = stmt.where(M.id.in_(ids))
        else:
            stmt = stmt.where(M.email.is_(None))
        stmt = stmt.order_by(M.created_at).limit(limit)

        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to fetch records: {e}")
        return [
            LicenseRecord(
                id=m.id,
                source=m.source,
                license_number=m.license_number,
                business_name=m.business_name,
                full_name=m.full_name,
                first_name=m.first_name,
                last_name=m.last_name,
                trade_type=m.trade_type,
                email=m.email,
                email_verified=m.email_verified,
                hunter_confidence=m.hunter_confidence,
            )
            for m in result.scalars().all()
        ]

    async def record_verification(
        self,
        record_id: str,
        email: Optional[str],
        verified: bool,
        confidence: int,
        now: datetime
    ) -> None:
        from src.leads.infrastructure.models import LicenseRecordModel

        model = await self._session.get(LicenseRecordModel, record_id)
        if model is None:
            raise RepositoryException(f"License record {record_id} not found")

        if email or verified:
            model.email = email
        model.email_verified = verified
        model.email_verification_date = now
        model.hunter_confidence = confidence
        model.updated_at = now
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to update record: {e}")

    async def verification_stats(self) -> dict:
        from src.leads.infrastructure.models import LicenseRecordModel as M

        try:
            avg = await self._session.execute(
                select(func.avg(M.hunter_confidence)).where(
                    M.email_verified.is_(True), M.hunter_confidence.is_not(None)
                )
            )
            average = avg.scalar_one_or_none()
            return {
                "pendingVerification": await self._count(
                    M.ai_selected.is_(True), M.email_verified.is_(False), M.email.is_(None)
                ),
                "verified": await self._count(M.email_verified.is_(True)),
                "attempted": await self._count(
                    M.ai_selected.is_(True), M.email_verification_date.is_not(None)
                ),
                "lowConfidence": await self._count(
                    M.ai_selected.is_(True), M.email_verified.is_(False), M.email.is_not(None)
                ),
                "averageConfidence": round(float(average)) if average is not None else 0,
            }
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load verification stats: {e}")


class SQLAlchemyColdLeadRepository(IColdLeadRepository):
    """SQLAlchemy implementation of cold lead repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _needs_email_clause():
        from src.leads.infrastructure.models import ColdLeadModel

        return or_(
            ColdLeadModel.email.is_(None),
            *[ColdLeadModel.email.like(f"%{domain}") for domain in PLACEHOLDER_EMAIL_DOMAINS]
        )

    async def list_needing_enrichment(
        self,
        lead_ids: Optional[List[str]],
        source: Optional[str],
        limit: int
    ) -> List[ColdLead]:
        from src.leads.infrastructure.models import ColdLeadModel

        stmt = select(ColdLeadModel).where(
            self._needs_email_clause(),
            ColdLeadModel.enriched_at.is_(None),
        )
        if lead_ids:
            stmt = stmt.where(ColdLeadModel.id.in_(lead_ids))
        if source:
            stmt = stmt.where(ColdLeadModel.lead_source == source)
        stmt = stmt.order_by(ColdLeadModel.created_at).limit(limit)

        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to fetch leads: {e}")
        return [
            ColdLead(
                id=m.id,
                email=m.email,
                full_name=m.full_name,
                first_name=m.first_name,
                last_name=m.last_name,
                company_name=m.company_name,
                website=m.website,
                lead_source=m.lead_source,
            )
            for m in result.scalars().all()
        ]

    async def _lead(self, lead_id: str):
        from src.leads.infrastructure.models import ColdLeadModel

        model = await self._session.get(ColdLeadModel, lead_id)
        if model is None:
            raise RepositoryException(f"Cold lead {lead_id} not found")
        return model

    async def apply_enrichment(self, lead_id: str, found: FoundEmail, now: datetime) -> None:
        model = await self._lead(lead_id)
        model.email = found.email
        model.email_verified = found.verified
        model.enriched_at = now
        model.enrichment_source = found.source
        if found.linkedin_url:
            model.linkedin_url = found.linkedin_url
        if found.phone and not model.phone:
            model.phone = found.phone
        model.updated_at = now
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to store email for lead {lead_id}: {e}")

    async def mark_not_found(self, lead_id: str, now: datetime) -> None:
        model = await self._lead(lead_id)
        model.enriched_at = now
        model.enrichment_source = ENRICHMENT_SOURCE_NOT_FOUND
        model.updated_at = now
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to mark lead {lead_id}: {e}")

    async def _by_source(self, *conditions) -> dict:
        from src.leads.infrastructure.models import ColdLeadModel

        stmt = (
            select(ColdLeadModel.lead_source, func.count())
            .where(*conditions)
            .group_by(ColdLeadModel.lead_source)
        )
        result = await self._session.execute(stmt)
        counts = {}
        for source, count in result.all():
            key = source or "unknown"
            counts[key] = counts.get(key, 0) + count
        return counts

    async def enrichment_stats(self, month_start: datetime) -> dict:
        from src.leads.infrastructure.models import ColdLeadModel as M

        try:
            needs = await self._by_source(self._needs_email_clause(), M.enriched_at.is_(None))
            enriched = await self._by_source(M.enriched_at.is_not(None))
            this_month = await self._session.execute(
                select(func.count()).select_from(M).where(
                    M.enriched_at >= month_start,
                    M.enrichment_source == ENRICHMENT_SOURCE_FOUND,
                )
            )
            verified = await self._session.execute(
                select(func.count()).select_from(M).where(
                    M.email_verified.is_(True),
                    M.lead_source.in_(LICENSE_LEAD_SOURCES),
                )
            )
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load enrichment stats: {e}")

        return {
            "needsEnrichment": needs,
            "enriched": enriched,
            "enrichedThisMonth": this_month.scalar_one(),
            "verifiedEmails": verified.scalar_one(),
        }

    async def upsert_by_email(self, fields: dict, now: datetime) -> None:
        from src.leads.infrastructure.models import ColdLeadModel

        try:
            result = await self._session.execute(
                select(ColdLeadModel).where(ColdLeadModel.email == fields["email"])
            )
            model = result.scalar_one_or_none()
            if model is None:
                model = ColdLeadModel(id=str(uuid4()), created_at=now, dispatch_count=0)
                self._session.add(model)
            for key, value in fields.items():
                setattr(model, key, value)
            model.updated_at = now
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to upsert cold lead: {e}")

    async def mark_dispatched(self, email: str, now: datetime) -> None:
        from src.leads.infrastructure.models import ColdLeadModel

        await self._session.execute(
            update(ColdLeadModel)
            .where(ColdLeadModel.email == email)
            .values(first_dispatched_at=now, last_dispatched_at=now, dispatch_count=1, updated_at=now)
        )


class SQLAlchemyOutreachTargetRepository(IOutreachTargetRepository):
    """SQLAlchemy implementation of outreach target and enrichment queue repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, target_id: str) -> Optional[OutreachTarget]:
        from src.leads.infrastructure.models import OutreachTargetModel

        try:
            model = await self._session.get(OutreachTargetModel, target_id)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load target: {e}")
        if model is None:
            return None
        return OutreachTarget(
            id=model.id,
            business_name=model.business_name,
            website=model.website,
            phone=model.phone,
            city=model.city,
            state=model.state,
            trade_type=model.trade_type,
            email=model.email,
            email_verified=model.email_verified,
            contact_name=model.contact_name,
            status=model.status,
        )

    async def _queue_row(self, target_id: str):
        from src.leads.infrastructure.models import EmailEnrichmentQueueModel

        result = await self._session.execute(
            select(EmailEnrichmentQueueModel).where(EmailEnrichmentQueueModel.target_id == target_id)
        )
        return result.scalar_one_or_none()

    async def queued_domain(self, target_id: str) -> Optional[str]:
        row = await self._queue_row(target_id)
        return row.domain if row else None

    async def update_target(self, target_id: str, **fields) -> None:
        from src.leads.infrastructure.models import OutreachTargetModel

        model = await self._session.get(OutreachTargetModel, target_id)
        if model is None:
            raise RepositoryException(f"Outreach target {target_id} not found")
        for key, value in fields.items():
            setattr(model, key, value)
        await self._session.flush()

    async def update_queue(self, target_id: str, **fields) -> None:
        from src.leads.infrastructure.models import EmailEnrichmentQueueModel

        row = await self._queue_row(target_id)
        if row is None:
            row = EmailEnrichmentQueueModel(
                id=str(uuid4()),
                target_id=target_id,
                status=EnrichmentStatus.PENDING,
                attempts=0,
            )
            self._session.add(row)
        for key, value in fields.items():
            setattr(row, key, value)
        await self._session.flush()

    async def record_queue_failure(self, target_id: str, error: str, now: datetime) -> None:
        row = await self._queue_row(target_id)
        if row is None:
            logger.warning("No queue row to mark failed", extra={"target_id": target_id})
            return
        row.status = EnrichmentStatus.FAILED
        row.attempts = (row.attempts or 0) + 1
        row.last_attempt_at = now
        row.error_message = error[:1000]
        await self._session.flush()


class SQLAlchemyReplyRepository(IReplyRepository):
    """SQLAlchemy implementation of reply queue repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, reply_id: str) -> Optional[QueuedReply]:
        from src.leads.infrastructure.models import ReplyQueueModel

        try:
            model = await self._session.get(ReplyQueueModel, reply_id)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load reply: {e}")
        if model is None:
            return None
        return QueuedReply(
            id=model.id,
            original_from=model.original_from,
            generated_subject=model.generated_subject,
            generated_body=model.generated_body,
            edited_body=model.edited_body,
            status=model.status,
            sent_at=model.sent_at,
            sendgrid_message_id=model.sendgrid_message_id,
        )

    async def mark_sent(
        self,
        reply_id: str,
        edited_body: Optional[str],
        message_id: Optional[str],
        now: datetime
    ) -> None:
        from src.leads.infrastructure.models import ReplyQueueModel

        model = await self._session.get(ReplyQueueModel, reply_id)
        if model is None:
            raise RepositoryException(f"Reply {reply_id} not found")
        model.status = ReplyStatus.SENT
        model.sent_at = now
        model.edited_body = edited_body or None
        model.sendgrid_message_id = message_id
        model.updated_at = now
        try:
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to update reply: {e}")

    async def mark_rejected(self, reply_id: str, now: datetime) -> bool:
        from src.leads.infrastructure.models import ReplyQueueModel

        model = await self._session.get(ReplyQueueModel, reply_id)
        if model is None:
            return False
        model.status = ReplyStatus.REJECTED
        model.updated_at = now
        await self._session.flush()
        return True
