from __future__ import annotations

import asyncio
import json
import logging

import httpx
import pytest

from ticketdesk.core import NotificationDispatchException
from ticketdesk.sla.application import EscalationService
from ticketdesk.sla.infrastructure import (
    CircuitBreaker,
    LoggingNotifier,
    NotificationDispatcher,
    SlackNotifier,
)

WEBHOOK = "https://hooks.slack.test/services/T000/B000/XXX"


def slack(handler, **kwargs) -> SlackNotifier:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SlackNotifier(WEBHOOK, channel="#ops", http_client=client, retry_base_delay=0, **kwargs)


@pytest.mark.asyncio
async def test_escalation_posts_block_kit_message(make_ticket):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, text="ok")

    notifier = slack(handler)
    ticket = make_ticket(ticket_number="TKT-1042")

    await notifier.notify_escalation(ticket, 1, "breach risk", ["manager", "#maintenance"])

    assert len(requests) == 1
    assert str(requests[0].url) == WEBHOOK
    payload = json.loads(requests[0].content)
    assert payload["channel"] == "#ops"
    assert "TKT-1042" in payload["blocks"][0]["text"]["text"]
    texts = json.dumps(payload["blocks"])
    assert "manager, #maintenance" in texts
    assert "breach risk" in texts


@pytest.mark.asyncio
async def test_sla_warning_names_the_clock(make_ticket):
    payloads = []

    def handler(request: httpx.Request) -> httpx.Response:
        payloads.append(json.loads(request.content))
        return httpx.Response(200)

    await slack(handler).notify_sla_warning(make_ticket(), "response")

    assert "first response" in payloads[0]["blocks"][0]["text"]["text"]


@pytest.mark.asyncio
async def test_retries_then_raises(make_ticket):
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(500)

    notifier = slack(handler, max_retries=3)

    with pytest.raises(NotificationDispatchException) as exc_info:
        await notifier.notify_sla_warning(make_ticket(), "resolution")

    assert len(attempts) == 3
    assert exc_info.value.code == "notification_dispatch_failed"
    assert exc_info.value.details["error"] == "HTTP 500"


@pytest.mark.asyncio
async def test_transport_errors_are_retried(make_ticket):
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200)

    await slack(handler).notify_sla_warning(make_ticket(), "resolution")

    assert calls["count"] == 2


@pytest.mark.asyncio
async def test_open_circuit_short_circuits(make_ticket):
    attempts = []

    def handler(request: httpx.Request) -> httpx.Response:
        attempts.append(request)
        return httpx.Response(503)

    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
    notifier = slack(handler, max_retries=1, circuit_breaker=breaker)

    with pytest.raises(NotificationDispatchException):
        await notifier.notify_sla_warning(make_ticket(), "response")
    with pytest.raises(NotificationDispatchException):
        await notifier.notify_sla_warning(make_ticket(), "response")

    assert len(attempts) == 1
    assert breaker.state == "open"


@pytest.mark.asyncio
async def test_no_webhook_means_no_request(make_ticket):
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("should not be called")

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    notifier = SlackNotifier(None, http_client=client)

    await notifier.notify_escalation(make_ticket(), 1, "breach risk", ["manager"])


@pytest.mark.asyncio
async def test_dispatcher_returns_before_delivery_and_logs_failures(make_ticket, caplog):
    release = asyncio.Event()

    class SlowFailingNotifier(LoggingNotifier):
        async def notify_escalation(self, ticket, level, reason, recipients):
            await release.wait()
            raise NotificationDispatchException("slack", "webhook down")

    dispatcher = NotificationDispatcher(SlowFailingNotifier())

    await dispatcher.notify_escalation(make_ticket(), 1, "breach risk", ["manager"])
    assert dispatcher.pending == 1

    release.set()
    with caplog.at_level(logging.ERROR):
        await dispatcher.drain()

    assert dispatcher.pending == 0
    assert any(r.getMessage() == "Notification dispatch failed" for r in caplog.records)


@pytest.mark.asyncio
async def test_drain_timeout_cancels_stragglers(make_ticket):
    class HangingNotifier(LoggingNotifier):
        async def notify_sla_warning(self, ticket, kind):
            await asyncio.Event().wait()

    dispatcher = NotificationDispatcher(HangingNotifier())
    await dispatcher.notify_sla_warning(make_ticket(), "response")

    await dispatcher.drain(timeout=0.01)

    assert dispatcher.pending == 0


@pytest.mark.asyncio
async def test_escalation_survives_failing_slack(create_ticket, repository, config_provider, locks, clock):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    dispatcher = NotificationDispatcher(slack(handler, max_retries=2))
    service = EscalationService(repository, config_provider, dispatcher, locks=locks, clock=clock)
    ticket = await create_ticket()

    escalated = await service.escalate(ticket.id, "agent-7", "guest furious")
    await dispatcher.drain()

    assert escalated.escalation_level == 1
    assert (await repository.get(ticket.id)).escalation_level == 1
