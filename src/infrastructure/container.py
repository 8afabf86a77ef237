"""
Service Container
=================

Builds the long-lived pieces of the service once per process (provider
clients, the SLA preset table, the change feed and the scheduler) and
hands out request-scoped application services bound to a database session.

Mock mode swaps every provider for its in-process mock and runs on a seeded
in-memory SQLite database.
"""

from typing import Optional

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings, settings
from src.dispatch.application.services import (
    DispatchService,
    JobService,
    MockWorkOrderParseService,
    WorkOrderParseService,
)
from src.dispatch.infrastructure.repositories import (
    SQLAlchemyJobRepository,
    SQLAlchemyOutreachRepository,
    SQLAlchemyTechnicianRepository,
)
from src.infrastructure.database import (
    IN_MEMORY_URL,
    close_database,
    create_tables,
    get_session_context,
    init_database,
)
from src.infrastructure.llm import HeuristicWorkOrderParser, IWorkOrderParser, build_parser
from src.infrastructure.providers import (
    HunterClient,
    ICampaignClient,
    IEmailSender,
    IGeocoder,
    IHunterClient,
    InstantlyClient,
    MockCampaignClient,
    MockEmailSender,
    MockGeocoder,
    MockHunterClient,
    SendGridClient,
    build_geocoder,
)
from src.leads.application.services import (
    EmailEnrichmentService,
    LeadEnrichmentService,
    LeadImportService,
    LeadVerificationService,
    MockLeadVerificationService,
    ReplyService,
)
from src.leads.domain import build_boards, load_classification_tables
from src.leads.infrastructure.repositories import (
    SQLAlchemyColdLeadRepository,
    SQLAlchemyLicenseRecordRepository,
    SQLAlchemyOutreachTargetRepository,
    SQLAlchemyReplyRepository,
)
from src.shared.infrastructure.logging import get_logger
from src.sla.application.services import SLAMonitorService, SLAService
from src.sla.infrastructure import (
    SLAChangeFeed,
    SLAPresetManager,
    SLAScheduler,
    SQLAlchemySLAAlertRepository,
    SQLAlchemySLATimerRepository,
)

logger = get_logger(__name__)


class Container:
    """Process-wide service registry."""

    def __init__(
        self,
        app_settings: Optional[Settings] = None,
        hunter: Optional[IHunterClient] = None,
        email_sender: Optional[IEmailSender] = None,
        campaign_client: Optional[ICampaignClient] = None,
        geocoder: Optional[IGeocoder] = None,
        parser: Optional[IWorkOrderParser] = None
    ):
        self.settings = app_settings or settings
        self.mock_mode = self.settings.use_mock_mode

        self.preset_manager = SLAPresetManager(self.settings.sla_presets_path)
        self.change_feed = SLAChangeFeed()
        self.scheduler: Optional[SLAScheduler] = None

        tables = load_classification_tables(self.settings.lead_classifications_path)
        self.boards = build_boards(tables)
        self.default_trade_filter = tables.default_trade_filter

        if self.mock_mode:
            self.hunter = hunter or MockHunterClient()
            self.email_sender = email_sender or MockEmailSender()
            self.campaign_client = campaign_client or MockCampaignClient()
            self.geocoder = geocoder or MockGeocoder()
            self.parser = parser or HeuristicWorkOrderParser()
        else:
            self.hunter = hunter or HunterClient(self.settings.hunter_api_key)
            self.email_sender = email_sender or SendGridClient(
                self.settings.sendgrid_api_key, self.settings.sendgrid_template_id
            )
            self.campaign_client = campaign_client or InstantlyClient(self.settings.instantly_api_key)
            self.geocoder = geocoder or build_geocoder()
            self.parser = parser or build_parser()

    # ========== Lifecycle ==========

    async def startup(self) -> None:
        logger.info("Initializing database", extra={"mock_mode": self.mock_mode})
        init_database(IN_MEMORY_URL if self.mock_mode else self.settings.database_url)

        # Use migrations in production; create_all keeps local runs self-contained
        try:
            await create_tables()
        except (SQLAlchemyError, OSError) as e:
            logger.warning("Database not available - running in degraded mode", extra={"error": str(e)})

        logger.info("Loading SLA presets", extra={"path": str(self.preset_manager.path)})
        self.preset_manager.load()
        self.preset_manager.start_watching()

        if self.mock_mode:
            from src.infrastructure.seed import seed_mock_data

            async with get_session_context() as session:
                await seed_mock_data(self, session)

        interval = self.settings.sla_evaluation_interval
        if interval > 0:
            self.scheduler = SLAScheduler(interval_seconds=interval)
            await self.scheduler.start(self.run_sla_monitor)
        else:
            logger.info("SLA scheduler disabled")

    async def shutdown(self) -> None:
        if self.scheduler is not None:
            await self.scheduler.stop()
        self.preset_manager.stop_watching()

        for client in (self.hunter, self.email_sender, self.campaign_client, self.geocoder, self.parser):
            await client.close()

        await close_database()

    async def run_sla_monitor(self) -> dict:
        """One breach-monitor pass in its own session."""
        async with get_session_context() as session:
            return await self.sla_monitor(session).evaluate()

    # ========== SLA ==========

    def sla_service(self, session: AsyncSession) -> SLAService:
        return SLAService(
            SQLAlchemySLATimerRepository(session),
            SQLAlchemySLAAlertRepository(session),
            self.preset_manager
        )

    def sla_monitor(self, session: AsyncSession) -> SLAMonitorService:
        return SLAMonitorService(
            SQLAlchemySLATimerRepository(session),
            SQLAlchemySLAAlertRepository(session),
            self.settings.sla_warning_fraction
        )

    # ========== Dispatch ==========

    def job_service(self, session: AsyncSession) -> JobService:
        return JobService(
            SQLAlchemyJobRepository(session),
            SQLAlchemyTechnicianRepository(session),
            self.sla_service(session)
        )

    def parse_service(self, session: AsyncSession) -> WorkOrderParseService:
        service_class = MockWorkOrderParseService if self.mock_mode else WorkOrderParseService
        return service_class(
            SQLAlchemyJobRepository(session),
            SQLAlchemyTechnicianRepository(session),
            self.parser,
            self.geocoder
        )

    def dispatch_service(self, session: AsyncSession) -> DispatchService:
        return DispatchService(
            SQLAlchemyJobRepository(session),
            SQLAlchemyTechnicianRepository(session),
            SQLAlchemyOutreachRepository(session),
            self.email_sender,
            self.campaign_client,
            self.sla_service(session),
            app_url=self.settings.app_url,
            tracking_base_url=self.settings.tracking_base_url,
            campaign_by_trade=self.settings.campaign_by_trade
        )

    # ========== Leads ==========

    def lead_import_service(self, session: AsyncSession) -> LeadImportService:
        return LeadImportService(
            SQLAlchemyLicenseRecordRepository(session),
            self.boards,
            self.default_trade_filter
        )

    def lead_enrichment_service(self, session: AsyncSession) -> LeadEnrichmentService:
        return LeadEnrichmentService(
            SQLAlchemyColdLeadRepository(session),
            self.hunter,
            self.settings.hunter_monthly_limit
        )

    def lead_verification_service(self, session: AsyncSession) -> LeadVerificationService:
        service_class = MockLeadVerificationService if self.mock_mode else LeadVerificationService
        return service_class(SQLAlchemyLicenseRecordRepository(session), self.hunter)

    def email_enrichment_service(self, session: AsyncSession) -> EmailEnrichmentService:
        return EmailEnrichmentService(
            SQLAlchemyOutreachTargetRepository(session),
            SQLAlchemyColdLeadRepository(session),
            self.hunter,
            self.campaign_client,
            campaign_by_trade=self.settings.campaign_by_trade,
            cold_campaign_id=self.settings.instantly_campaign_id_cold
        )

    def reply_service(self, session: AsyncSession) -> ReplyService:
        return ReplyService(SQLAlchemyReplyRepository(session), self.email_sender)


def build_container(app_settings: Optional[Settings] = None) -> Container:
    return Container(app_settings or settings)


def get_container(request: Request) -> Container:
    """FastAPI dependency: the container stored on the application."""
    return request.app.state.container
