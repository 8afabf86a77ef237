"""
Raven Dispatch - Main Application
==================================

Work-order dispatch service for trade technicians.

Modules:
- SLA Monitoring: per-stage timers, breach alerts and live SLA streams
- Dispatch: jobs, work order parsing, technician matching and outreach
- Leads: license-board imports, email enrichment and the reply queue

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, providers, LLM parser
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.config import settings
from src.core import ApplicationException
from src.dispatch.interfaces import dispatch_router
from src.infrastructure.container import Container, build_container
from src.leads.interfaces import leads_router
from src.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    MetricsMiddleware,
    application_exception_handler,
    global_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from src.shared.infrastructure.logging import get_logger, setup_logging
from src.sla.interfaces import sla_router

logger = get_logger(__name__)


def create_app(container: Optional[Container] = None) -> FastAPI:
    """
    Build the application around a service container.

    Tests pass their own container (mock providers, scheduler off).
    """
    container = container or build_container()
    app_settings = container.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """
        STARTUP: logging, database (seeded in mock mode), SLA presets and
        their file watch, breach monitor scheduler.

        SHUTDOWN: scheduler, file watch, provider clients, database.
        """
        setup_logging(app_settings.log_level, app_settings.environment)
        logger.info("Starting dispatch service", extra={
            "version": app_settings.app_version,
            "environment": app_settings.environment,
            "mock_mode": container.mock_mode
        })

        await container.startup()
        logger.info("Dispatch service started successfully")

        yield  # Application runs here

        logger.info("Shutting down dispatch service")
        await container.shutdown()
        logger.info("Dispatch service shutdown complete")

    app = FastAPI(
        title="Raven Dispatch API",
        description="""
    ## Work Order Dispatch for Trade Technicians

    ---

    ### SLA Monitoring

    - `GET /sla/config` - Resolve stage budgets for a trade and urgency
    - `GET /sla/jobs/{id}/timers` - Timers with live status and progress
    - `POST /sla/evaluate` - Run the breach monitor now
    - `WS /sla/jobs/{id}/stream` - Push SLA snapshots on every change

    Each job runs four sequential stages (dispatch, assignment, arrival,
    completion). A timer is in **warning** with under 25% of its budget
    left and **breached** once the budget is spent.

    ---

    ### Jobs & Dispatch

    - `POST /jobs` - Create a job and match nearby technicians
    - `POST /jobs/{id}/parse` - Fill a job from raw work order text
    - `POST /jobs/{id}/dispatch` - Invite warm (SendGrid) and cold (Instantly) technicians
    - `POST /jobs/{id}/assign`, `/arrive`, `/complete` - Lifecycle transitions

    ---

    ### Leads & Outreach

    - `POST /leads/import/{california|florida}` - Stage license-board exports
    - `POST /leads/enrich` - Find emails for cold leads (Hunter.io)
    - `POST /leads/verify` - Verify emails of staged license records
    - `POST /outreach/enrich-emails` - Enrich one scraped business
    - `POST /replies/{id}/send` - Send a reviewed reply

    ---
    """,
        version=app_settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.settings = app_settings
    app.state.container = container

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    app.add_middleware(CorrelationIDMiddleware)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(LoggingMiddleware)

    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    app.include_router(sla_router)
    app.include_router(dispatch_router)
    app.include_router(leads_router)

    # === Health Check Endpoint ===

    @app.get("/health", tags=["Health"], responses={
        200: {
            "description": "Service is healthy",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "version": "1.0.0",
                        "environment": "development",
                        "checks": {
                            "mode": "mock",
                            "sla_presets": "loaded (25 presets)",
                            "sla_scheduler": "running",
                            "work_order_parser": "HeuristicWorkOrderParser",
                            "hunter": "configured"
                        }
                    }
                }
            }
        }
    })
    async def health_check(request: Request):
        """
        Health check endpoint for load balancers and orchestrators.

        Reports the provider mode, preset table, scheduler state and which
        providers are configured.
        """
        current: Container = request.app.state.container
        scheduler = current.scheduler
        checks = {
            "mode": "mock" if current.mock_mode else "live",
            "sla_presets": f"loaded ({len(current.preset_manager.get_presets().flattened())} presets)",
            "sla_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
            "work_order_parser": type(current.parser).__name__,
            "hunter": "configured" if current.hunter.configured else "not_configured",
            "sendgrid": "configured" if current.email_sender.configured else "not_configured",
            "instantly": "configured" if current.campaign_client.configured else "not_configured",
        }
        return {
            "status": "healthy",
            "version": app_settings.app_version,
            "environment": app_settings.environment,
            "checks": checks
        }

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": "Raven Dispatch",
            "version": app_settings.app_version,
            "architecture": "Clean Architecture / Modular Monolith",
            "docs": "/docs",
            "health": "/health",
            "modules": {
                "sla": {"prefix": "/sla"},
                "dispatch": {"prefix": "/jobs, /dispatch"},
                "leads": {"prefix": "/leads, /outreach, /replies"}
            }
        }

    return app


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
