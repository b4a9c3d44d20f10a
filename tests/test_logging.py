from __future__ import annotations

import json
import logging

from ticketdesk.shared.infrastructure.logging import CustomJsonFormatter, get_logger, log_latency


def format_record(**extra) -> dict:
    formatter = CustomJsonFormatter("%(name)s %(levelname)s %(message)s", environment="test")
    record = logging.LogRecord("ticketdesk.test", logging.INFO, __file__, 1, "Ticket created", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return json.loads(formatter.format(record))


def test_formatter_adds_context_fields():
    data = format_record(ticket_id="t-1")
    assert data["message"] == "Ticket created"
    assert data["environment"] == "test"
    assert data["ticket_id"] == "t-1"
    assert "timestamp" in data


def test_guest_contact_details_are_redacted():
    data = format_record(guest_email="guest@example.com", guest_phone="+49 30 1234", slack_webhook_url="https://hooks")
    assert data["guest_email"] == "***REDACTED***"
    assert data["guest_phone"] == "***REDACTED***"
    assert data["slack_webhook_url"] == "***REDACTED***"


def test_log_latency_reports_operation(caplog):
    logger = get_logger("ticketdesk.test")
    with caplog.at_level(logging.INFO, logger="ticketdesk.test"):
        with log_latency(logger, "sla_sweep", tickets=3):
            pass

    record = caplog.records[-1]
    assert record.getMessage() == "sla_sweep completed"
    assert record.operation == "sla_sweep"
    assert record.tickets == 3
    assert record.latency_ms >= 0
