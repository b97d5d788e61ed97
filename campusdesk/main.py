"""
CampusDesk - Main Application
=============================

Ticket lifecycle engine for the campus helpdesk.

Modules:
- Tickets: status state machine, TAT calculator, activity log
- Escalation: SLA breach scanner and escalation rules
- Notifications: transactional outbox and its dispatcher

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: State machine, TAT arithmetic, rules
- Infrastructure: Database, Slack/email senders, SLA config file
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from campusdesk.bootstrap import ServiceContainer, build_container, schedule_jobs
from campusdesk.config import Settings, get_settings
from campusdesk.core import ApplicationException
from campusdesk.escalation.interfaces import escalation_cron_router
from campusdesk.notifications.interfaces import outbox_cron_router, outbox_router
from campusdesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from campusdesk.shared.infrastructure.logging import get_logger, setup_logging
from campusdesk.tickets.interfaces import tickets_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Build services (database, SLA config, notifiers)
    3. Create database tables
    4. Watch the SLA config file
    5. Start the escalation/outbox scheduler

    SHUTDOWN:
    1. Stop the scheduler and the config watcher
    2. Close notifier HTTP clients
    3. Close database connections
    """
    settings: Settings = app.state.settings

    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment, settings.app_name)
    logger.info("Starting CampusDesk", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    container: Optional[ServiceContainer] = getattr(app.state, "container", None)
    if container is None:
        container = build_container(settings)
        app.state.container = container

    # Create tables (for development - use migrations in production)
    logger.info("Creating database tables")
    try:
        await container.database.create_tables()
    except OSError as e:
        logger.warning(f"Database not available - running in degraded mode: {e}")

    if settings.sla_config_watch:
        container.sla_config.start_watching()

    schedule_jobs(container)
    await container.scheduler.start()

    logger.info("CampusDesk started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down CampusDesk")
    await container.close()
    logger.info("CampusDesk shutdown complete")


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """Build the FastAPI application; tests inject their own container."""
    settings = settings or get_settings()

    app = FastAPI(
        title="CampusDesk Ticket Lifecycle API",
        description="""
    ## Campus Helpdesk Ticket Lifecycle Engine

    Status transitions, SLA (TAT) deadlines, automatic escalation and
    reliable notifications for helpdesk tickets.

    **Identity**: every ticket call carries `X-Actor-Id` and `X-Actor-Role`
    (`student`, `committee`, `admin`, `snr_admin`, `super_admin`).

    **Cron**: `/cron/escalate-tickets` and `/cron/process-outbox` are meant
    for an external scheduler and require `Authorization: Bearer <CRON_SECRET>`
    when a secret is configured.

    **Errors**: 422 validation, 409 invalid transition, 403 forbidden,
    404 not found.
    """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.container = container

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # === Custom Middleware (from shared) ===
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    app.include_router(tickets_router)
    app.include_router(escalation_cron_router)
    app.include_router(outbox_cron_router)
    app.include_router(outbox_router)

    @app.get("/health", tags=["Health"])
    async def health_check(request: Request):
        """
        Health check endpoint for load balancers and orchestrators.

        Reports database connectivity, SLA config and scheduler state.
        """
        checks = {"database": "not_initialized", "sla_config": "not_loaded", "scheduler": "stopped"}
        current: Optional[ServiceContainer] = getattr(request.app.state, "container", None)
        healthy = True

        if current is not None:
            try:
                async with current.database.engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
                checks["database"] = "connected"
            except Exception as e:
                logger.warning("Health check database query failed", extra={"error": str(e)})
                checks["database"] = "unavailable"
                healthy = False
            checks["sla_config"] = "loaded"
            checks["scheduler"] = "running" if current.scheduler.is_running else "stopped"

        return {
            "status": "healthy" if healthy else "degraded",
            "version": settings.app_version,
            "environment": settings.environment,
            "checks": checks
        }

    @app.get("/", tags=["Root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
            "health": "/health",
        }

    return app


app = create_app()
