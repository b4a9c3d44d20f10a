"""
Ticket Desk SLA Engine - Main Application
==========================================

Wires the SLA and escalation engine together and runs the breach sweep
until interrupted.

Clean Architecture Layers:
- Application: Ticket, escalation and sweep services
- Domain: Entities, state machine, calendar and value objects
- Infrastructure: Database, config watcher, notifiers, scheduler
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

# Configuration and Core
from ticketdesk.config import Settings, get_settings
from ticketdesk.core import ApplicationException

# Infrastructure
from ticketdesk.infrastructure.database import (
    close_database, create_tables, get_session_maker, init_database
)

# SLA Module
from ticketdesk.sla.application import (
    EscalationService,
    ITicketRepository,
    SLABreachSweeper,
    SweepThresholds,
    TicketLockRegistry,
    TicketNumberSequence,
    TicketService,
)
from ticketdesk.sla.infrastructure import (
    InMemoryTicketRepository,
    KeywordClassifier,
    LoggingNotifier,
    NotificationDispatcher,
    SlackNotifier,
    SLAConfigManager,
    SLAScheduler,
    SQLAlchemyTicketRepository,
)

# Logging
from ticketdesk.shared.infrastructure.logging import setup_logging, get_logger

logger = get_logger(__name__)


@dataclass
class Application:
    """Running object graph; handed to whatever drives the services."""
    settings: Settings
    config_manager: SLAConfigManager
    repository: ITicketRepository
    dispatcher: NotificationDispatcher
    locks: TicketLockRegistry
    ticket_service: TicketService
    escalation_service: EscalationService
    sweeper: SLABreachSweeper
    scheduler: SLAScheduler


async def _build_repository(settings: Settings) -> ITicketRepository:
    if settings.use_in_memory_repository:
        logger.info("Using in-memory ticket repository")
        return InMemoryTicketRepository()

    logger.info("Initializing database")
    init_database(settings)
    # Development convenience; production schemas come from migrations
    await create_tables()
    return SQLAlchemyTicketRepository(get_session_maker())


@asynccontextmanager
async def lifespan(settings: Optional[Settings] = None) -> AsyncGenerator[Application, None]:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize the ticket store
    3. Load SLA configuration and start watching it
    4. Build services
    5. Start the breach sweep scheduler

    SHUTDOWN:
    1. Stop the scheduler (in-flight sweep finishes its current ticket)
    2. Drain pending notifications
    3. Stop watching config, close the Slack client and the database
    """
    settings = settings or get_settings()

    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting SLA engine", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    repository = await _build_repository(settings)

    logger.info("Loading SLA configuration", extra={"path": str(settings.sla_config_path)})
    config_manager = SLAConfigManager()
    config_manager.load(settings.sla_config_path)
    config_manager.start_watching()

    if settings.slack_webhook_url:
        channel_notifier = SlackNotifier(
            settings.slack_webhook_url,
            channel=settings.slack_channel,
            timeout_seconds=settings.slack_timeout_seconds,
        )
    else:
        logger.info("Slack webhook not configured, notifications go to the log")
        channel_notifier = LoggingNotifier()
    dispatcher = NotificationDispatcher(channel_notifier)

    locks = TicketLockRegistry()
    sequence = await TicketNumberSequence.from_repository(repository)
    escalation_service = EscalationService(repository, config_manager, dispatcher, locks=locks)
    ticket_service = TicketService(
        repository, config_manager, sequence, classifier=KeywordClassifier(), locks=locks
    )
    sweeper = SLABreachSweeper(
        repository,
        escalation_service,
        dispatcher,
        thresholds=SweepThresholds.from_settings(settings),
    )
    scheduler = SLAScheduler(sweeper, settings.sla_sweep_interval_seconds)
    await scheduler.start(run_immediately=True)

    app = Application(
        settings=settings,
        config_manager=config_manager,
        repository=repository,
        dispatcher=dispatcher,
        locks=locks,
        ticket_service=ticket_service,
        escalation_service=escalation_service,
        sweeper=sweeper,
        scheduler=scheduler,
    )

    logger.info("SLA engine started successfully")

    try:
        yield app
    finally:
        # === SHUTDOWN ===
        logger.info("Shutting down SLA engine")

        await scheduler.stop()
        await dispatcher.drain(timeout=settings.slack_timeout_seconds * 2)
        config_manager.stop_watching()
        if isinstance(channel_notifier, SlackNotifier):
            await channel_notifier.close()
        if not settings.use_in_memory_repository:
            await close_database()

        logger.info("SLA engine shutdown complete")


async def run(settings: Optional[Settings] = None) -> None:
    """Run until SIGINT or SIGTERM."""
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    async with lifespan(settings):
        await stop.wait()


def main() -> None:
    """Console entry point."""
    try:
        asyncio.run(run())
    except ApplicationException as e:
        logger.critical(
            "SLA engine failed to start",
            extra={"error": e.message, "code": e.code, "details": e.details}
        )
        raise SystemExit(1)
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
