"""
Leads Application Services
===========================

Application services for the lead pipeline:

- LeadImportService: license-board exports -> ``license_records`` staging
- LeadEnrichmentService: find emails for cold leads (finder, domain, guess)
- LeadVerificationService: confirm emails of staged license records
- EmailEnrichmentService: discover, verify and push one outreach target
- ReplyService: send or reject queued replies
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set

from src.config import EnrichmentStatus, ReplyStatus, settings
from src.core import (
    ConfigurationException,
    ExternalServiceException,
    ProviderRateLimitException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
    utcnow,
)
from src.infrastructure.providers import (
    ICampaignClient,
    IEmailSender,
    IHunterClient,
    company_domain_guess,
    extract_domain,
)
from src.leads.domain import (
    ENRICHMENT_SOURCE_GUESS,
    VERIFIED_SCORE,
    ColdLead,
    EnrichmentTally,
    FoundEmail,
    ImportTally,
    LicenseBoard,
    LicenseRecord,
    OutreachTarget,
    QueuedReply,
    generate_email_guess,
    pick_domain_email,
    split_name,
)
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

IMPORT_BATCH_SIZE = 100
DEFAULT_ENRICH_LIMIT = 50
DEFAULT_VERIFY_LIMIT = 10
DEFAULT_MIN_CONFIDENCE = 70

# Provider failures a single lead can survive
PROVIDER_ERRORS = (ExternalServiceException, ConfigurationException)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ILicenseRecordRepository(ABC):
    """Interface for the license-board staging table."""

    @abstractmethod
    async def existing_license_numbers(self, source: str, numbers: Sequence[str]) -> Set[str]:
        """License numbers of ``numbers`` already staged for the board."""

    @abstractmethod
    async def insert_batch(self, rows: List[dict]) -> None:
        """Insert rows, ignoring conflicts on (source, license_number)."""

    @abstractmethod
    async def import_stats(self, source: str) -> dict:
        """Counts by trade and pipeline flag for one board."""

    @abstractmethod
    async def list_for_verification(self, ids: Optional[List[str]], limit: int) -> List[LicenseRecord]:
        """Unverified records, by id or all those still without an email."""

    @abstractmethod
    async def record_verification(
        self,
        record_id: str,
        email: Optional[str],
        verified: bool,
        confidence: int,
        now: datetime
    ) -> None:
        """Store the outcome of an email lookup."""

    @abstractmethod
    async def verification_stats(self) -> dict:
        """Counts of pending, verified and low-confidence records."""


class IColdLeadRepository(ABC):
    """Interface for cold lead data access."""

    @abstractmethod
    async def list_needing_enrichment(
        self,
        lead_ids: Optional[List[str]],
        source: Optional[str],
        limit: int
    ) -> List[ColdLead]:
        """Leads with no usable email that were never attempted."""

    @abstractmethod
    async def apply_enrichment(self, lead_id: str, found: FoundEmail, now: datetime) -> None:
        """Store a found email on a lead."""

    @abstractmethod
    async def mark_not_found(self, lead_id: str, now: datetime) -> None:
        """Flag a lead as attempted so it is not retried."""

    @abstractmethod
    async def enrichment_stats(self, month_start: datetime) -> dict:
        """Needs-enrichment and enriched counts by source."""

    @abstractmethod
    async def upsert_by_email(self, fields: dict, now: datetime) -> None:
        """Insert or update the cold lead with ``fields['email']``."""

    @abstractmethod
    async def mark_dispatched(self, email: str, now: datetime) -> None:
        """Stamp the campaign push on a lead."""


class IOutreachTargetRepository(ABC):
    """Interface for outreach targets and their enrichment queue."""

    @abstractmethod
    async def get(self, target_id: str) -> Optional[OutreachTarget]:
        """Get target by ID."""

    @abstractmethod
    async def queued_domain(self, target_id: str) -> Optional[str]:
        """Domain stored on the target's queue row, if any."""

    @abstractmethod
    async def update_target(self, target_id: str, **fields) -> None:
        """Write target columns."""

    @abstractmethod
    async def update_queue(self, target_id: str, **fields) -> None:
        """Write queue columns, creating the row when missing."""

    @abstractmethod
    async def record_queue_failure(self, target_id: str, error: str, now: datetime) -> None:
        """Mark the queue row failed and count the attempt."""


class IReplyRepository(ABC):
    """Interface for the reply queue."""

    @abstractmethod
    async def get(self, reply_id: str) -> Optional[QueuedReply]:
        """Get reply by ID."""

    @abstractmethod
    async def mark_sent(
        self,
        reply_id: str,
        edited_body: Optional[str],
        message_id: Optional[str],
        now: datetime
    ) -> None:
        """Flag a reply as sent."""

    @abstractmethod
    async def mark_rejected(self, reply_id: str, now: datetime) -> bool:
        """Flag a reply as rejected. False when it does not exist."""


# ========== Application Services ==========

class LeadImportService:
    """
    Stages license-board exports.

    Rows are filtered by trade, de-duplicated against the staging table and
    within the upload, stripped of inactive licenses and inserted in batches.
    A failing batch is reported and the import moves on.
    """

    def __init__(
        self,
        record_repo: ILicenseRecordRepository,
        boards: Dict[str, LicenseBoard],
        default_trade_filter: Sequence[str]
    ):
        self._records = record_repo
        self._boards = boards
        self._default_trade_filter = list(default_trade_filter)

    def board(self, name: str) -> LicenseBoard:
        board = self._boards.get(name)
        if board is None:
            raise ResourceNotFoundException("License board", name)
        return board

    async def import_records(
        self,
        board_name: str,
        records: Optional[List[dict]],
        limit: Optional[int] = None,
        trade_filter: Optional[List[str]] = None
    ) -> dict:
        if records is None:
            raise ValidationException("records array is required")

        board = self.board(board_name)
        trades = trade_filter or self._default_trade_filter
        tally = ImportTally(total=len(records))

        filtered = [record for record in records if board.matches(record, trades)]
        tally.filtered = len(filtered)
        to_process = filtered[:limit] if limit else filtered

        existing = await self._records.existing_license_numbers(
            board.source,
            [board.license_number(r) for r in to_process if board.license_number(r)]
        )

        rows = []
        seen = set()
        for record in to_process:
            number = board.license_number(record)
            if number in existing or number in seen:
                tally.duplicates += 1
                continue
            seen.add(number)

            if board.is_inactive(record):
                tally.skipped += 1
                continue
            rows.append(board.to_staging(record))

        for start in range(0, len(rows), IMPORT_BATCH_SIZE):
            batch = rows[start:start + IMPORT_BATCH_SIZE]
            try:
                await self._records.insert_batch(batch)
            except RepositoryException as e:
                tally.errors.append(f"Batch {start // IMPORT_BATCH_SIZE}: {e.message}")
                continue
            tally.imported += len(batch)

        logger.info(
            "License records imported",
            extra={"board": board_name, **tally.to_dict(), "errors": len(tally.errors)}
        )
        return {
            "success": True,
            "results": tally.to_dict(),
            "message": (
                f"Imported {tally.imported} {board.state} contractors to staging table "
                f"({tally.duplicates} duplicates skipped)"
            ),
        }

    async def stats(self, board_name: str) -> dict:
        board = self.board(board_name)
        stats = await self._records.import_stats(board.source)
        stats["source"] = board.config.label
        stats["table"] = "license_records (staging)"
        return {"success": True, "stats": stats}


class LeadEnrichmentService:
    """
    Finds emails for cold leads with a three-step cascade:

    1. email finder by name and company
    2. domain search on the lead's website
    3. a ``first.last@company.com`` guess checked by the verifier

    A provider failure inside a step counts as a miss for that step.
    """

    def __init__(
        self,
        cold_lead_repo: IColdLeadRepository,
        hunter: IHunterClient,
        monthly_limit: int = 500
    ):
        self._leads = cold_lead_repo
        self._hunter = hunter
        self._monthly_limit = monthly_limit

    async def _by_finder(self, first: str, last: str, company: str) -> Optional[FoundEmail]:
        try:
            result = await self._hunter.email_finder(first, last, company=company)
        except PROVIDER_ERRORS as e:
            logger.warning("Email finder failed", extra={"company": company, "error": str(e)})
            return None
        if result is None or not result.email:
            return None
        return FoundEmail(
            email=result.email,
            verified=result.score >= VERIFIED_SCORE,
            linkedin_url=result.linkedin_url,
            phone=result.phone_number,
        )

    async def _by_domain(self, website: str, first: Optional[str], last: Optional[str]) -> Optional[FoundEmail]:
        domain = extract_domain(website)
        if not domain:
            return None
        try:
            emails = await self._hunter.domain_search(domain)
        except PROVIDER_ERRORS as e:
            logger.warning("Domain search failed", extra={"domain": domain, "error": str(e)})
            return None
        best = pick_domain_email(emails, first, last)
        if best is None:
            return None
        return FoundEmail(email=best.value, verified=best.confidence >= VERIFIED_SCORE)

    async def _by_guess(self, first: str, last: str, company: str) -> Optional[FoundEmail]:
        guess = generate_email_guess(first, last, company)
        if not guess:
            return None
        try:
            verification = await self._hunter.verify_email(guess)
        except PROVIDER_ERRORS as e:
            logger.warning("Guess verification failed", extra={"email": guess, "error": str(e)})
            return None
        if not verification.is_deliverable:
            return None
        return FoundEmail(
            email=guess,
            verified=verification.status == "valid",
            source=ENRICHMENT_SOURCE_GUESS,
        )

    async def discover(self, lead: ColdLead) -> Optional[FoundEmail]:
        first, last = lead.search_name()
        company = lead.company_name

        if first and last and company:
            found = await self._by_finder(first, last, company)
            if found:
                return found

        if lead.website:
            found = await self._by_domain(lead.website, first, last)
            if found:
                return found

        if first and last and company:
            return await self._by_guess(first, last, company)
        return None

    async def enrich(
        self,
        lead_ids: Optional[List[str]] = None,
        source: Optional[str] = None,
        limit: Optional[int] = None,
        dry_run: bool = False,
        now: Optional[datetime] = None
    ) -> dict:
        if not self._hunter.configured:
            raise ConfigurationException("HUNTER_API_KEY not configured")
        now = now or utcnow()

        leads = await self._leads.list_needing_enrichment(
            lead_ids, source, limit or DEFAULT_ENRICH_LIMIT
        )
        tally = EnrichmentTally()
        if not leads:
            return {
                "success": True,
                "results": tally.to_dict(),
                "message": "No leads needing enrichment found",
            }

        for lead in leads:
            tally.processed += 1
            try:
                found = await self.discover(lead)
                if found is None:
                    tally.not_found += 1
                    if not dry_run:
                        await self._leads.mark_not_found(lead.id, now)
                    continue

                tally.enriched += 1
                if not dry_run:
                    await self._leads.apply_enrichment(lead.id, found, now)
                logger.info(
                    "Lead enriched",
                    extra={"lead_id": lead.id, "source": found.source, "verified": found.verified}
                )
            except RepositoryException as e:
                tally.errors += 1
                tally.error_details.append(f"{lead.id}: {e.message}")

        return {
            "success": True,
            "results": tally.to_dict(),
            "dryRun": dry_run,
            "message": f"Enriched {tally.enriched}/{tally.processed} leads",
        }

    async def stats(self, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        stats = await self._leads.enrichment_stats(month_start)
        stats["hunterMonthlyLimit"] = self._monthly_limit
        return {"success": True, "stats": stats}


class LeadVerificationService:
    """
    Looks up emails for staged license records and keeps those above a
    confidence threshold as verified. Credits are checked before any search.
    """

    def __init__(self, record_repo: ILicenseRecordRepository, hunter: IHunterClient):
        self._records = record_repo
        self._hunter = hunter

    async def _lookup(self, record: LicenseRecord) -> dict:
        first, last = record.finder_name()
        if not first:
            return {"error": "First name is required"}

        domain = company_domain_guess(record.business_name)
        if not domain and not record.business_name:
            return {"error": "Either domain or company is required"}

        try:
            result = await self._hunter.email_finder(
                first, last, company=record.business_name, domain=domain
            )
        except PROVIDER_ERRORS as e:
            return {"error": e.message}
        if result is None or not result.email:
            return {"error": "No email found"}
        return {"email": result.email, "confidence": result.score}

    async def verify(
        self,
        ids: Optional[List[str]] = None,
        limit: int = DEFAULT_VERIFY_LIMIT,
        min_confidence: int = DEFAULT_MIN_CONFIDENCE,
        now: Optional[datetime] = None
    ) -> dict:
        now = now or utcnow()

        account = await self._hunter.account_info()
        available = account.searches_available
        if available <= 0:
            raise ProviderRateLimitException(
                "Hunter.io", "No Hunter.io credits available",
                {"searchesUsed": account.searches_used, "searchesAvailable": available}
            )
        if available < limit:
            logger.warning(
                "Fewer Hunter.io credits than requested",
                extra={"requested": limit, "available": available}
            )

        records = await self._records.list_for_verification(ids, min(limit, available))
        if not records:
            return {
                "success": True,
                "verified": 0,
                "failed": 0,
                "results": [],
                "message": "No records need verification",
            }

        verified = 0
        failed = 0
        results = []
        for record in records:
            lookup = await self._lookup(record)
            email = lookup.get("email")
            confidence = lookup.get("confidence") or 0
            is_verified = bool(email) and confidence >= min_confidence

            try:
                await self._records.record_verification(record.id, email, is_verified, confidence, now)
            except RepositoryException as e:
                logger.error("Failed to store verification", extra={"record_id": record.id, "error": e.message})

            if is_verified:
                verified += 1
            else:
                failed += 1
            results.append({
                "id": record.id,
                "businessName": record.business_name,
                "email": email,
                "confidence": confidence,
                "status": "found" if email else "not_found",
                "error": lookup.get("error"),
            })

        logger.info("License records verified", extra={"verified": verified, "failed": failed})
        return {
            "success": True,
            "verified": verified,
            "failed": failed,
            "results": results,
            "message": f"Verified {verified} emails, {failed} failed",
            "accountInfo": {"searchesRemaining": available - len(records)},
        }

    async def stats(self) -> dict:
        stats = await self._records.verification_stats()
        try:
            account = await self._hunter.account_info()
        except PROVIDER_ERRORS as e:
            return {"success": True, "stats": stats, "hunterAccount": None, "error": e.message}
        return {
            "success": True,
            "stats": stats,
            "hunterAccount": {
                "searchesUsed": account.searches_used,
                "searchesAvailable": account.searches_available,
                "verificationsUsed": account.verifications_used,
                "verificationsAvailable": account.verifications_available,
            },
        }


class MockLeadVerificationService(LeadVerificationService):
    """Fixed answers when no database or Hunter.io account is available."""

    async def verify(
        self,
        ids: Optional[List[str]] = None,
        limit: int = DEFAULT_VERIFY_LIMIT,
        min_confidence: int = DEFAULT_MIN_CONFIDENCE,
        now: Optional[datetime] = None
    ) -> dict:
        logger.info("Mock mode: skipping email verification")
        return {
            "success": True,
            "verified": 0,
            "failed": 0,
            "results": [],
            "message": "Mock mode - no actual verification performed",
            "mock": True,
        }

    async def stats(self) -> dict:
        return {
            "success": True,
            "stats": {
                "pendingVerification": 25,
                "verified": 10,
                "attempted": 35,
                "lowConfidence": 5,
                "averageConfidence": 82,
            },
            "hunterAccount": {
                "searchesUsed": 50,
                "searchesAvailable": 450,
                "verificationsUsed": 20,
                "verificationsAvailable": 480,
            },
            "mock": True,
        }


class EmailEnrichmentService:
    """
    Enriches one scraped outreach target:
    domain search -> best address -> verify -> store -> push to Instantly.

    The queue row records progress. A provider failure marks it failed and
    propagates; nothing retries automatically.
    """

    def __init__(
        self,
        target_repo: IOutreachTargetRepository,
        cold_lead_repo: IColdLeadRepository,
        hunter: IHunterClient,
        campaign_client: ICampaignClient,
        campaign_by_trade: Optional[Dict[str, Optional[str]]] = None,
        cold_campaign_id: Optional[str] = None
    ):
        self._targets = target_repo
        self._leads = cold_lead_repo
        self._hunter = hunter
        self._campaigns = campaign_client
        # Trade names are matched case-insensitively
        self._campaign_by_trade = {
            trade.upper(): campaign
            for trade, campaign in (campaign_by_trade or settings.campaign_by_trade).items()
        }
        self._cold_campaign_id = cold_campaign_id or settings.instantly_campaign_id_cold

    def resolve_campaign(self, trade: Optional[str]) -> Optional[str]:
        return self._campaign_by_trade.get((trade or "").upper()) or self._cold_campaign_id

    async def enrich(self, target_id: Optional[str], now: Optional[datetime] = None) -> dict:
        if not target_id:
            raise ValidationException("target_id is required")
        now = now or utcnow()

        target = await self._targets.get(target_id)
        if target is None:
            raise ResourceNotFoundException("Outreach target", target_id)

        domain = await self._targets.queued_domain(target_id) or extract_domain(target.website)
        if not domain:
            await self._targets.update_target(
                target_id, email_found=False, email_verified=False, status="pending"
            )
            await self._targets.update_queue(
                target_id, status=EnrichmentStatus.COMPLETED, completed_at=now
            )
            logger.info("No domain for outreach target", extra={"target_id": target_id})
            return {
                "success": True,
                "target_id": target_id,
                "message": "No domain available for email discovery",
            }

        if not self._hunter.configured:
            raise ConfigurationException("HUNTER_API_KEY not configured")

        await self._targets.update_queue(
            target_id, domain=domain, status=EnrichmentStatus.PROCESSING, last_attempt_at=now
        )

        try:
            emails = await self._hunter.domain_search(domain)
            best = pick_domain_email(emails)
            is_verified = False
            if best is not None:
                verification = await self._hunter.verify_email(best.value)
                is_verified = verification.is_deliverable
        except PROVIDER_ERRORS as e:
            logger.error("Email enrichment failed", extra={"target_id": target_id, "error": str(e)})
            await self._targets.record_queue_failure(target_id, e.message, now)
            raise

        await self._targets.update_queue(
            target_id,
            emails_found=[
                {"value": e.value, "confidence": e.confidence,
                 "first_name": e.first_name, "last_name": e.last_name, "position": e.position}
                for e in emails
            ]
        )

        updates = {
            "email_found": best is not None,
            "email_verified": is_verified,
            "status": "enriched" if best is not None else "pending",
        }
        if best is not None:
            name = f"{best.first_name or ''} {best.last_name or ''}".strip()
            updates.update(email=best.value, contact_name=name or None, email_source="hunter_domain_search")
        await self._targets.update_target(target_id, **updates)
        await self._targets.update_queue(target_id, status=EnrichmentStatus.COMPLETED, completed_at=now)

        logger.info(
            "Outreach target enriched",
            extra={"target_id": target_id, "email_found": best is not None, "verified": is_verified}
        )

        email = best.value if best is not None else target.email
        if email and (is_verified or target.email_verified):
            await self._push_cold_lead(target, email, best, now)

        return {
            "success": True,
            "target_id": target_id,
            "email_found": best is not None,
            "email": best.value if best is not None else None,
            "email_verified": is_verified,
        }

    async def _push_cold_lead(self, target: OutreachTarget, email: str, best, now: datetime) -> None:
        if best is not None and (best.first_name or best.last_name):
            first, last = best.first_name or "", best.last_name or ""
        else:
            contact_first, contact_last = split_name(target.contact_name)
            first, last = contact_first or "", contact_last or ""
        full_name = f"{first} {last}".strip() or None

        try:
            await self._leads.upsert_by_email({
                "email": email,
                "full_name": full_name,
                "company_name": target.business_name,
                "phone": target.phone,
                "website": target.website,
                "city": target.city,
                "state": target.state,
                "trade_type": target.trade_type,
                "email_verified": True,
                "supersearch_query": "google_maps_scrape",
            }, now)
        except RepositoryException as e:
            logger.error("Failed to copy target to cold leads", extra={"email": email, "error": e.message})

        campaign_id = self.resolve_campaign(target.trade_type)
        if not campaign_id or not self._campaigns.configured:
            logger.warning(
                "No campaign for trade or Instantly not configured",
                extra={"trade": target.trade_type}
            )
            return

        try:
            await self._campaigns.add_lead_v2(campaign_id, {
                "email": email,
                "first_name": first,
                "last_name": last,
                "company_name": target.business_name or "",
                "phone": target.phone or "",
                "website": target.website or "",
                "skip_if_in_campaign": True,
                "custom_variables": {
                    "trade": target.trade_type or "",
                    "city": target.city or "",
                    "state": target.state or "",
                },
            })
        except PROVIDER_ERRORS as e:
            logger.error("Failed to push lead to Instantly", extra={"email": email, "error": str(e)})
            return

        await self._leads.mark_dispatched(email, now)
        logger.info("Lead pushed to Instantly", extra={"email": email, "campaign_id": campaign_id})


class ReplyService:
    """Sends or rejects replies waiting in the review queue."""

    def __init__(self, reply_repo: IReplyRepository, email_sender: IEmailSender):
        self._replies = reply_repo
        self._sender = email_sender

    async def send(
        self,
        reply_id: str,
        edited_body: Optional[str] = None,
        edited_subject: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> dict:
        now = now or utcnow()

        reply = await self._replies.get(reply_id)
        if reply is None:
            raise ResourceNotFoundException("Reply", reply_id)
        if reply.is_sent:
            raise ValidationException("Reply already sent")

        subject = edited_subject or reply.generated_subject or ""
        body = edited_body or reply.generated_body or ""

        try:
            result = await self._sender.send_plain(reply.original_from, subject, body)
        except ExternalServiceException as e:
            logger.error("Reply send failed", extra={"reply_id": reply_id, "error": e.message})
            raise ExternalServiceException("SendGrid", "Failed to send email", e.details) from e

        try:
            await self._replies.mark_sent(reply_id, edited_body, result.message_id, now)
        except RepositoryException as e:
            logger.error("Failed to mark reply sent", extra={"reply_id": reply_id, "error": e.message})

        logger.info("Reply sent", extra={"reply_id": reply_id, "to": reply.original_from})
        return {"success": True, "messageId": result.message_id, "sentTo": reply.original_from}

    async def reject(self, reply_id: str, now: Optional[datetime] = None) -> dict:
        if not await self._replies.mark_rejected(reply_id, now or utcnow()):
            raise ResourceNotFoundException("Reply", reply_id)
        logger.info("Reply rejected", extra={"reply_id": reply_id, "status": ReplyStatus.REJECTED})
        return {"success": True}
