"""
SLA External Service Integrations
==================================

External services for SLA monitoring:
- YAML config file watcher (hot reload)
- Slack webhook notifications
- Background notification dispatch
- APScheduler for the periodic breach sweep
"""

import asyncio
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import httpx
import yaml
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ticketdesk.config import SLAType
from ticketdesk.core import ConfigurationException, NotificationDispatchException
from ticketdesk.shared.infrastructure.logging import get_logger, log_latency
from ticketdesk.sla.application import INotifier, ISLAConfigProvider, SLABreachSweeper, SweepReport
from ticketdesk.sla.domain import SLAConfig, Ticket

logger = get_logger(__name__)


# ========== Configuration hot reload ==========

class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for SLA config file changes."""

    def __init__(self, config_manager: "SLAConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        """Handle file modification event."""
        self._maybe_reload(event)

    def on_created(self, event):
        # Editors that save by rename show up as a create
        self._maybe_reload(event)

    def _maybe_reload(self, event) -> None:
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("SLA config file changed", extra={"path": str(event.src_path)})
            self.config_manager.reload()


class SLAConfigManager(ISLAConfigProvider):
    """
    Thread-safe SLA configuration manager with hot-reload support.

    Uses watchdog to monitor file changes and reload configuration
    without restarting the service. A reload that fails validation keeps
    the previous configuration. Tickets already created keep the policy
    snapshot they were created with.
    """

    def __init__(self):
        self._config: Optional[SLAConfig] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> SLAConfig:
        """
        Initial configuration load.

        Raises:
            ConfigurationException: file exists but is not a valid SLA config.
        """
        self._path = Path(path)
        try:
            config = self._load_from_file(self._path)
        except (yaml.YAMLError, ValidationError, ConfigurationException) as e:
            raise ConfigurationException(
                f"Invalid SLA config file: {self._path}", {"error": str(e)}
            ) from e
        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> SLAConfig:
        """Load and parse YAML config file."""
        if not path.exists():
            logger.warning("SLA config file not found, using defaults", extra={"path": str(path)})
            return SLAConfig()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return SLAConfig(**data)

    def reload(self) -> bool:
        """Reload configuration from file."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except (yaml.YAMLError, ValidationError, ConfigurationException, OSError) as e:
            logger.error(
                "Failed to reload SLA config, keeping previous",
                extra={"path": str(self._path), "error": str(e)}
            )
            return False

        with self._lock:
            self._config = new_config
        logger.info(
            "SLA configuration reloaded",
            extra={
                "departments": sorted(new_config.policies),
                "ladders": sorted(new_config.escalation_ladders),
            }
        )
        return True

    def start_watching(self) -> None:
        """
        Start watching configuration file for changes.

        Skips watching if the file doesn't exist or the platform has no
        usable file notification API.
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(
                "Config file doesn't exist, skipping file watch",
                extra={"path": str(self._path)}
            )
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info("Started watching SLA config file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning(
                "File watching not available, using static config",
                extra={"error": str(e)}
            )
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching configuration file (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def config(self) -> SLAConfig:
        """Get current configuration."""
        with self._lock:
            if self._config is None:
                raise RuntimeError("SLA configuration not loaded")
            return self._config

    def get_config(self) -> SLAConfig:
        return self.config


# ========== Slack notifications ==========

class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if time.monotonic() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = time.monotonic()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class SlackNotifier(INotifier):
    """
    Slack webhook notifier with circuit breaker and retry logic.

    Sends Block Kit messages for escalations and SLA warnings. Delivery
    problems surface as NotificationDispatchException once retries are
    used up; callers decide whether that matters.
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        channel: str = "#guest-escalations",
        timeout_seconds: float = 5.0,
        http_client: Optional[httpx.AsyncClient] = None,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        self._webhook_url = webhook_url
        self._channel = channel
        self._timeout = timeout_seconds
        self._http_client = http_client
        self._owns_client = http_client is None
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def notify_escalation(
        self,
        ticket: Ticket,
        level: int,
        reason: str,
        recipients: List[str]
    ) -> None:
        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"\U0001F6A8 Ticket {ticket.ticket_number} escalated to level {level}",
                    "emoji": True
                }
            },
            self._ticket_fields(ticket),
            {
                "type": "section",
                "fields": [
                    {"type": "mrkdwn", "text": f"*Escalated to:*\n{', '.join(recipients)}"},
                    {"type": "mrkdwn", "text": f"*Reason:*\n{reason}"},
                ]
            },
        ]
        await self._send(ticket, "escalation", blocks)

    async def notify_sla_warning(self, ticket: Ticket, kind: str) -> None:
        what = "first response" if kind == SLAType.RESPONSE else "resolution"
        blocks = [
            {
                "type": "header",
                "text": {
                    "type": "plain_text",
                    "text": f"⚠️ SLA warning: {what} due soon on {ticket.ticket_number}",
                    "emoji": True
                }
            },
            self._ticket_fields(ticket),
            {
                "type": "context",
                "elements": [
                    {"type": "mrkdwn", "text": f"Created: {ticket.created_at.isoformat()} | SLA: {kind}"}
                ]
            },
        ]
        await self._send(ticket, f"sla_warning_{kind}", blocks)

    @staticmethod
    def _ticket_fields(ticket: Ticket) -> Dict[str, Any]:
        return {
            "type": "section",
            "fields": [
                {"type": "mrkdwn", "text": f"*Ticket:*\n{ticket.ticket_number}"},
                {"type": "mrkdwn", "text": f"*Title:*\n{ticket.title}"},
                {"type": "mrkdwn", "text": f"*Department:*\n{ticket.department}"},
                {"type": "mrkdwn", "text": f"*Priority:*\n{ticket.priority.title()}"},
                {"type": "mrkdwn", "text": f"*Status:*\n{ticket.status}"},
                {"type": "mrkdwn", "text": f"*Assigned to:*\n{ticket.assigned_to or 'unassigned'}"},
            ]
        }

    async def _send(self, ticket: Ticket, event: str, blocks: List[Dict[str, Any]]) -> None:
        if not self._webhook_url:
            logger.debug("Slack webhook URL not configured, skipping notification")
            return

        if not self._circuit_breaker.allow_request():
            raise NotificationDispatchException(
                "slack", "circuit breaker open", {"ticket_id": ticket.id, "event": event}
            )

        message = {"channel": self._channel, "blocks": blocks}
        last_error = None

        for attempt in range(self._max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._webhook_url, json=message)

                if response.status_code == 200:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Slack notification sent",
                        extra={"ticket_id": ticket.id, "event": event}
                    )
                    return

                last_error = f"HTTP {response.status_code}"
                logger.warning(
                    "Slack webhook returned non-200",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
            except httpx.HTTPError as e:
                last_error = str(e)
                logger.warning(
                    "Slack notification attempt failed",
                    extra={"error": str(e), "attempt": attempt + 1, "ticket_id": ticket.id}
                )

            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._retry_base_delay * 2 ** attempt)

        self._circuit_breaker.record_failure()
        raise NotificationDispatchException(
            "slack",
            f"giving up after {self._max_retries} attempts",
            {"ticket_id": ticket.id, "event": event, "error": last_error}
        )

    async def close(self) -> None:
        """Close HTTP client if this notifier created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None


class LoggingNotifier(INotifier):
    """Writes notifications to the log; used when no Slack webhook is set."""

    async def notify_escalation(
        self,
        ticket: Ticket,
        level: int,
        reason: str,
        recipients: List[str]
    ) -> None:
        logger.warning(
            "Escalation notification",
            extra={
                "ticket_id": ticket.id,
                "ticket_number": ticket.ticket_number,
                "level": level,
                "reason": reason,
                "recipients": recipients,
            }
        )

    async def notify_sla_warning(self, ticket: Ticket, kind: str) -> None:
        logger.warning(
            "SLA warning notification",
            extra={"ticket_id": ticket.id, "ticket_number": ticket.ticket_number, "sla_type": kind}
        )


class NotificationDispatcher(INotifier):
    """
    Fire-and-forget wrapper around another notifier.

    Each notification runs as a background task, so the caller returns as
    soon as it is scheduled. Failures are logged, never raised.
    """

    def __init__(self, notifier: INotifier):
        self._notifier = notifier
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def notify_escalation(
        self,
        ticket: Ticket,
        level: int,
        reason: str,
        recipients: List[str]
    ) -> None:
        self._spawn(
            self._notifier.notify_escalation(ticket, level, reason, list(recipients)),
            {"ticket_id": ticket.id, "event": "escalation", "level": level},
        )

    async def notify_sla_warning(self, ticket: Ticket, kind: str) -> None:
        self._spawn(
            self._notifier.notify_sla_warning(ticket, kind),
            {"ticket_id": ticket.id, "event": "sla_warning", "sla_type": kind},
        )

    def _spawn(self, coro, context: Dict[str, Any]) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(lambda t: self._finished(t, context))

    def _finished(self, task: asyncio.Task, context: Dict[str, Any]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning("Notification cancelled", extra=context)
            return
        error = task.exception()
        if error is not None:
            logger.error(
                "Notification dispatch failed",
                extra={**context, "error": str(error), "error_type": type(error).__name__}
            )

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for notifications still in flight; cancel what is left after ``timeout``."""
        if not self._pending:
            return
        _, pending = await asyncio.wait(set(self._pending), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("Notifications abandoned at shutdown", extra={"count": len(pending)})


# ========== Scheduling ==========

class SLAScheduler:
    """
    Wrapper for APScheduler running the breach sweep on an interval.

    Manages the lifecycle of the scheduler and the sweep job. Only one
    sweep runs at a time in this process.
    """

    def __init__(self, sweeper: SLABreachSweeper, interval_seconds: int = 900):
        self.interval_seconds = interval_seconds
        self._sweeper = sweeper
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._stopping = False
        self._in_flight = asyncio.Lock()
        self.last_report: Optional[SweepReport] = None

    async def start(self, run_immediately: bool = False) -> None:
        """Start the scheduler."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)

        job_kwargs = {}
        if run_immediately:
            job_kwargs["next_run_time"] = datetime.now(timezone.utc)

        self._scheduler.add_job(
            self.run_once,
            "interval",
            seconds=self.interval_seconds,
            id="sla_sweep",
            name="SLA Breach Sweep",
            misfire_grace_time=60,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
            **job_kwargs
        )

        self._scheduler.start()
        self._running = True
        self._stopping = False

        logger.info(
            "SLA scheduler started",
            extra={"interval_seconds": self.interval_seconds}
        )

    async def run_once(self) -> Optional[SweepReport]:
        """Run one sweep now; returns None once stopping."""
        if self._stopping:
            return None

        async with self._in_flight:
            if self._stopping:
                return None
            with log_latency(logger, "sla_sweep"):
                report = await self._sweeper.sweep()
            self.last_report = report
            return report

    async def stop(self) -> None:
        """
        Stop the scheduler gracefully.

        No new sweep starts; a sweep in progress finishes the ticket it is
        on and skips the rest.
        """
        if not self._running:
            return

        self._stopping = True
        self._sweeper.request_stop()

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        # Wait for the in-flight sweep, if any
        async with self._in_flight:
            pass

        self._running = False
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._running
