"""
Dispatch Application Services
==============================

Application services orchestrate business logic and coordinate between
domain entities, repositories and provider clients.

- JobService: job creation and lifecycle transitions
- WorkOrderParseService: raw text -> job fields + geocode
- DispatchService: warm/cold fan-out of job invitations
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from src.config import (
    DispatchMethod,
    JobStatus,
    OutreachStatus,
    SLAStage,
    Trade,
    settings,
)
from src.core import (
    ApplicationException,
    ConfigurationException,
    ExternalServiceException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
    utcnow,
)
from src.dispatch.domain import (
    CREATE_MATCH_RADIUS_M,
    PARSE_MATCH_RADIUS_M,
    Candidate,
    DispatchSummary,
    Job,
    SendOutcome,
    Technician,
    cold_lead_variables,
    parse_timestamp,
    partition_candidates,
    to_number,
    warm_template_data,
)
from src.infrastructure.llm import IWorkOrderParser
from src.infrastructure.providers import ICampaignClient, IEmailSender, IGeocoder
from src.shared.infrastructure.logging import get_logger, log_latency
from src.sla.application.services import SLAService

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IJobRepository(ABC):
    """Interface for job data access."""

    @abstractmethod
    async def get(self, job_id: str) -> Optional[Job]:
        """Get job by ID."""

    @abstractmethod
    async def add(self, job: Job) -> Job:
        """Insert a new job."""

    @abstractmethod
    async def save(self, job: Job) -> Job:
        """Write back every mutable field of an existing job."""


class ITechnicianRepository(ABC):
    """Interface for technician and candidate data access."""

    @abstractmethod
    async def get(self, technician_id: str) -> Optional[Technician]:
        """Get technician by ID."""

    @abstractmethod
    async def find_matching(
        self,
        job_id: str,
        lat: float,
        lng: float,
        trade: Optional[str],
        state: Optional[str],
        max_distance_m: float
    ) -> List[Candidate]:
        """Match technicians to a job and store them as its candidates."""

    @abstractmethod
    async def list_candidates(self, job_id: str) -> List[Candidate]:
        """Candidates stored for a job."""


class IOutreachRepository(ABC):
    """Interface for work order outreach records."""

    @abstractmethod
    async def create_outreach(self, job_id: str, total_recipients: int) -> str:
        """Create an in-progress outreach. Raises OutreachCreationException."""

    @abstractmethod
    async def add_recipient(self, outreach_id: str, technician_id: str, method: str) -> str:
        """Create a recipient row and return its ID."""

    @abstractmethod
    async def mark_sent(self, recipient_id: str, now: datetime) -> None:
        """Flag a recipient as emailed."""

    @abstractmethod
    async def record_failure(self, recipient_id: str, error: str) -> None:
        """Keep the provider error on the recipient row."""

    @abstractmethod
    async def update_stats(self, outreach_id: str) -> Dict[str, int]:
        """Recompute sent counters from the recipient rows."""

    @abstractmethod
    async def finish(self, outreach_id: str, status: str, now: datetime) -> None:
        """Set the final status and completion time."""

    @abstractmethod
    async def mark_opened(self, outreach_id: str, technician_id: str, now: datetime) -> Optional[str]:
        """
        Flag the recipient's email as opened and bump the outreach counters.

        Returns the recipient's dispatch method, or None when the recipient
        is unknown or was already marked.
        """


# ========== Application Services ==========

JOB_FIELDS = (
    "job_title", "description", "trade_needed", "address_text", "city", "state",
    "lat", "lng", "scheduled_at", "duration", "urgency", "priority",
    "budget_min", "budget_max", "pay_rate", "contact_name", "contact_phone",
    "contact_email",
)


class JobService:
    """
    Service for job creation and lifecycle transitions.

    Each transition completes the SLA stage it ends.
    """

    def __init__(
        self,
        job_repository: IJobRepository,
        technician_repository: ITechnicianRepository,
        sla_service: SLAService
    ):
        self._job_repo = job_repository
        self._tech_repo = technician_repository
        self._sla = sla_service

    async def _require_job(self, job_id: str) -> Job:
        job = await self._job_repo.get(job_id)
        if job is None:
            raise ResourceNotFoundException("Job", job_id)
        return job

    async def get_job(self, job_id: str) -> Job:
        return await self._require_job(job_id)

    async def create_job(
        self,
        fields: dict,
        sla_overrides: Optional[Dict[str, Optional[int]]] = None,
        now: Optional[datetime] = None
    ) -> Tuple[Job, List[Candidate]]:
        """
        Create a job in matching state and start its SLA clock.

        Technicians are matched immediately when coordinates are known.
        """
        now = now or utcnow()
        values = {key: fields.get(key) for key in JOB_FIELDS}
        values["scheduled_at"] = parse_timestamp(values["scheduled_at"])

        job = Job(
            id=fields.get("id") or str(uuid4()),
            job_status=JobStatus.MATCHING,
            created_at=now,
            **values
        )

        overrides = {k: v for k, v in (sla_overrides or {}).items() if v is not None}
        config, _ = await self._sla.initialize_timers(
            job.id, job.trade_needed, job.urgency, overrides, now
        )
        job.sla_config = config.as_dict()
        job = await self._job_repo.add(job)

        candidates: List[Candidate] = []
        if job.has_location:
            candidates = await self._tech_repo.find_matching(
                job.id, job.lat, job.lng, job.trade_needed, job.state, CREATE_MATCH_RADIUS_M
            )

        logger.info(
            "Job created",
            extra={"job_id": job.id, "trade": job.trade_needed, "candidates": len(candidates)}
        )
        return job, candidates

    async def assign(self, job_id: str, technician_id: str, now: Optional[datetime] = None) -> Job:
        job = await self._require_job(job_id)
        technician = await self._tech_repo.get(technician_id)
        if technician is None:
            raise ResourceNotFoundException("Technician", technician_id)

        job.assign(technician.id)
        await self._job_repo.save(job)
        await self._sla.complete_stage(job.id, SLAStage.ASSIGNMENT, now)

        logger.info("Job assigned", extra={"job_id": job.id, "technician_id": technician.id})
        return job

    async def arrive(self, job_id: str, now: Optional[datetime] = None) -> Job:
        now = now or utcnow()
        job = await self._require_job(job_id)
        job.arrive(now)
        await self._job_repo.save(job)
        await self._sla.complete_stage(job.id, SLAStage.ARRIVAL, now)
        return job

    async def complete(self, job_id: str, now: Optional[datetime] = None) -> Job:
        now = now or utcnow()
        job = await self._require_job(job_id)
        job.complete(now)
        await self._job_repo.save(job)
        await self._sla.complete_stage(job.id, SLAStage.COMPLETION, now)

        logger.info("Job completed", extra={"job_id": job.id})
        return job


class WorkOrderParseService:
    """
    Fill a job from raw work order text.

    The parser never fails (it degrades to the heuristic parser); geocoding
    degrades to empty coordinates; matching is best-effort.
    """

    def __init__(
        self,
        job_repository: IJobRepository,
        technician_repository: ITechnicianRepository,
        parser: IWorkOrderParser,
        geocoder: IGeocoder
    ):
        self._job_repo = job_repository
        self._tech_repo = technician_repository
        self._parser = parser
        self._geocoder = geocoder

    @staticmethod
    def _require_text(raw_text: Optional[str]) -> str:
        if not raw_text or not raw_text.strip():
            raise ValidationException("raw_text is required")
        return raw_text

    async def _geocode(self, address: Optional[str]) -> dict:
        geo_data = {"lat": 0, "lng": 0, "city": None, "state": None}
        if not address:
            return geo_data
        result = await self._geocoder.geocode(address)
        if result is not None:
            geo_data = {"lat": result.lat, "lng": result.lng, "city": result.city, "state": result.state}
        return geo_data

    async def parse(self, job_id: str, raw_text: Optional[str]) -> dict:
        raw_text = self._require_text(raw_text)
        job = await self._job_repo.get(job_id)
        if job is None:
            raise ResourceNotFoundException("Job", job_id)

        with log_latency(logger, "work_order_parse", job_id=job_id):
            result = await self._parser.parse(raw_text)
        parsed = result.data
        geo_data = await self._geocode(parsed.get("address_text"))

        job.job_title = parsed.get("job_title")
        job.description = parsed.get("description")
        job.trade_needed = parsed.get("trade_needed")
        job.address_text = parsed.get("address_text")
        job.city = geo_data["city"]
        job.state = geo_data["state"]
        job.lat = geo_data["lat"]
        job.lng = geo_data["lng"]
        job.scheduled_at = parse_timestamp(parsed.get("scheduled_start_ts"))
        job.duration = str(parsed["duration"]) if parsed.get("duration") else None
        job.urgency = parsed.get("urgency")
        job.budget_min = to_number(parsed.get("budget_min"))
        job.budget_max = to_number(parsed.get("budget_max"))
        job.pay_rate = parsed.get("pay_rate")
        job.contact_name = parsed.get("contact_name")
        job.contact_phone = parsed.get("contact_phone")
        job.contact_email = parsed.get("contact_email")
        job.job_status = JobStatus.MATCHING
        await self._job_repo.save(job)

        if geo_data["lat"] or geo_data["lng"]:
            try:
                await self._tech_repo.find_matching(
                    job.id, geo_data["lat"], geo_data["lng"],
                    job.trade_needed, geo_data["state"], PARSE_MATCH_RADIUS_M
                )
            except RepositoryException as e:
                logger.error("Technician matching failed", extra={"job_id": job.id, "error": e.message})

        logger.info(
            "Job updated with parsed data",
            extra={"job_id": job.id, "source": result.source, "geocoded": bool(geo_data["city"])}
        )
        return {
            "success": True,
            "job_id": job.id,
            "parsed_data": parsed,
            "geo_data": geo_data,
            "message": "Job updated with parsed data",
        }


MOCK_PARSED_DATA = {
    "job_title": "Mock Work Order",
    "trade_needed": Trade.GENERAL,
    "address_text": "123 Main St, Austin, TX 78701",
    "duration": 120,
    "urgency": "normal",
    "budget_min": 100,
    "budget_max": 500,
    "pay_rate": None,
    "contact_name": "John Doe",
    "contact_phone": "555-123-4567",
    "contact_email": "john@example.com",
}

MOCK_GEO_DATA = {"lat": 30.2672, "lng": -97.7431, "city": "Austin", "state": "TX"}


class MockWorkOrderParseService(WorkOrderParseService):
    """
    Parse flow bound in mock mode.

    Demo job ids (``mock-job-*``) and unknown ids get a synthetic response
    without touching the store; seeded jobs go through the normal flow.
    """

    async def parse(self, job_id: str, raw_text: Optional[str]) -> dict:
        raw_text = self._require_text(raw_text)

        if job_id.startswith("mock-job-") or await self._job_repo.get(job_id) is None:
            result = await self._parser.parse(raw_text)
            parsed = {**MOCK_PARSED_DATA, "description": raw_text[:200], **result.data}
            return {
                "success": True,
                "job_id": job_id,
                "parsed_data": parsed,
                "geo_data": dict(MOCK_GEO_DATA),
                "message": "Mock job parsed successfully",
                "mock": True,
            }

        response = await super().parse(job_id, raw_text)
        response["mock"] = True
        return response


class DispatchService:
    """
    Dispatch orchestrator.

    Sends are sequential and each one is absorbed on failure; only a missing
    job or a failed outreach insert fails the whole dispatch.
    """

    def __init__(
        self,
        job_repository: IJobRepository,
        technician_repository: ITechnicianRepository,
        outreach_repository: IOutreachRepository,
        email_sender: IEmailSender,
        campaign_client: ICampaignClient,
        sla_service: SLAService,
        app_url: Optional[str] = None,
        tracking_base_url: Optional[str] = None,
        campaign_by_trade: Optional[Dict[str, Optional[str]]] = None
    ):
        self._job_repo = job_repository
        self._tech_repo = technician_repository
        self._outreach_repo = outreach_repository
        self._email_sender = email_sender
        self._campaign_client = campaign_client
        self._sla = sla_service
        self._app_url = app_url or settings.app_url
        self._tracking_base_url = tracking_base_url or settings.tracking_base_url
        self._campaign_by_trade = (
            settings.campaign_by_trade if campaign_by_trade is None else campaign_by_trade
        )

    def resolve_campaign(self, trade: Optional[str]) -> Optional[str]:
        return self._campaign_by_trade.get(trade) or self._campaign_by_trade.get(Trade.HVAC)

    async def _new_recipient(self, outreach_id: str, tech: Technician, method: str) -> SendOutcome:
        outcome = SendOutcome(technician_id=tech.id, method=method)
        try:
            outcome.recipient_id = await self._outreach_repo.add_recipient(outreach_id, tech.id, method)
        except RepositoryException as e:
            outcome.error = e.message
            logger.error(
                "Failed to create recipient",
                extra={"outreach_id": outreach_id, "technician_id": tech.id, "error": e.message}
            )
        return outcome

    async def _record(self, outcome: SendOutcome, error: Optional[str], now: datetime) -> SendOutcome:
        """Store the send result. A bookkeeping failure never aborts the dispatch."""
        try:
            if error is None:
                # The provider accepted it, so it counts as sent either way
                outcome.sent = True
                await self._outreach_repo.mark_sent(outcome.recipient_id, now)
            else:
                outcome.error = error
                await self._outreach_repo.record_failure(outcome.recipient_id, error)
        except RepositoryException as e:
            logger.error(
                "Failed to record send result",
                extra={
                    "recipient_id": outcome.recipient_id,
                    "technician_id": outcome.technician_id,
                    "error": e.message,
                }
            )
        return outcome

    async def record_open(
        self,
        outreach_id: Optional[str],
        technician_id: Optional[str],
        now: Optional[datetime] = None
    ) -> bool:
        """
        Mark a recipient's email as opened.

        Only the first open counts. Returns whether this call recorded it.
        """
        if not outreach_id or not technician_id:
            return False

        method = await self._outreach_repo.mark_opened(outreach_id, technician_id, now or utcnow())
        if method is None:
            logger.info(
                "Email open ignored",
                extra={"outreach_id": outreach_id, "technician_id": technician_id}
            )
            return False

        logger.info(
            "Email opened",
            extra={"outreach_id": outreach_id, "technician_id": technician_id, "method": method}
        )
        return True

    async def _send_warm(
        self,
        job: Job,
        technicians: List[Technician],
        outreach_id: str,
        now: datetime
    ) -> List[SendOutcome]:
        if not technicians:
            return []
        if not self._email_sender.template_configured:
            logger.warning(
                "Warm technicians found but SendGrid not configured",
                extra={"job_id": job.id, "warm": len(technicians)}
            )
            return []

        outcomes = []
        for tech in technicians:
            outcome = await self._new_recipient(outreach_id, tech, DispatchMethod.SENDGRID_WARM)
            if outcome.recipient_id is None:
                outcomes.append(outcome)
                continue

            error = None
            try:
                await self._email_sender.send_template(
                    tech.email,
                    warm_template_data(job, tech, outreach_id, self._app_url, self._tracking_base_url)
                )
            except (ExternalServiceException, ConfigurationException) as e:
                error = e.message
                logger.error(
                    "Warm send failed",
                    extra={"job_id": job.id, "technician_id": tech.id, "error": e.message}
                )
            outcomes.append(await self._record(outcome, error, now))
        return outcomes

    async def _send_cold(
        self,
        job: Job,
        technicians: List[Technician],
        outreach_id: str,
        now: datetime
    ) -> List[SendOutcome]:
        if not technicians:
            return []
        if not self._campaign_client.configured:
            logger.warning(
                "Cold technicians found but Instantly not configured",
                extra={"job_id": job.id, "cold": len(technicians)}
            )
            return []

        campaign_id = self.resolve_campaign(job.trade_needed)
        if not campaign_id:
            logger.warning(
                "No Instantly campaign for trade, skipping cold sends",
                extra={"job_id": job.id, "trade": job.trade_needed, "cold": len(technicians)}
            )
            return []

        outcomes = []
        for tech in technicians:
            outcome = await self._new_recipient(outreach_id, tech, DispatchMethod.INSTANTLY_COLD)
            if outcome.recipient_id is None:
                outcomes.append(outcome)
                continue

            error = None
            try:
                await self._campaign_client.add_lead_v1(
                    campaign_id,
                    tech.email,
                    first_name=tech.first_name,
                    last_name=tech.last_name,
                    company_name=tech.business_name or "",
                    variables=cold_lead_variables(job, tech, outreach_id, self._app_url)
                )
            except (ExternalServiceException, ConfigurationException) as e:
                error = e.message
                logger.error(
                    "Cold send failed",
                    extra={"job_id": job.id, "technician_id": tech.id, "error": e.message}
                )
            outcomes.append(await self._record(outcome, error, now))
        return outcomes

    async def dispatch(self, job_id: str, now: Optional[datetime] = None) -> DispatchSummary:
        now = now or utcnow()

        job = await self._job_repo.get(job_id)
        if job is None:
            raise ResourceNotFoundException("Job", job_id)

        candidates = await self._tech_repo.list_candidates(job_id)
        warm, cold = partition_candidates(candidates)
        logger.info(
            "Dispatching work order",
            extra={"job_id": job_id, "warm": len(warm), "cold": len(cold), "trade": job.trade_needed}
        )

        outreach_id = await self._outreach_repo.create_outreach(job_id, len(warm) + len(cold))
        summary = DispatchSummary(outreach_id=outreach_id, total_recipients=len(warm) + len(cold))
        summary.outcomes.extend(await self._send_warm(job, warm, outreach_id, now))
        summary.outcomes.extend(await self._send_cold(job, cold, outreach_id, now))

        await self._outreach_repo.update_stats(outreach_id)
        status = OutreachStatus.COMPLETED if summary.total_sent > 0 else OutreachStatus.FAILED
        await self._outreach_repo.finish(outreach_id, status, now)

        if summary.total_sent > 0:
            job.mark_dispatched()
            await self._job_repo.save(job)

        try:
            await self._sla.complete_stage(job_id, SLAStage.DISPATCH, now)
        except ApplicationException as e:
            logger.error("Failed to complete dispatch SLA stage", extra={"job_id": job_id, "error": e.message})

        logger.info(
            "Dispatch complete",
            extra={
                "job_id": job_id,
                "outreach_id": outreach_id,
                "warm_sent": summary.warm_sent,
                "cold_sent": summary.cold_sent,
                "failed": len(summary.failed),
                "status": status,
            }
        )
        return summary
