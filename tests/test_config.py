from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import pytest
from pydantic import ValidationError
from watchdog.events import FileModifiedEvent

from ticketdesk.config import Settings
from ticketdesk.core import ConfigurationException
from ticketdesk.sla.application import SweepThresholds, TicketCreateDTO, TicketNumberSequence, TicketService
from ticketdesk.sla.domain import SLAConfig
from ticketdesk.sla.infrastructure import SLAConfigManager
from ticketdesk.sla.infrastructure.external import ConfigFileHandler

SAMPLE_CONFIG = Path(__file__).resolve().parents[1] / "sla_config.yaml"

BASIC_YAML = """
policies:
  default:
    response_time_hours: 2
    resolution_time_hours: 24
  Front Desk:
    response_time_hours: 1
    resolution_time_hours: 4
escalation_ladders:
  Front Desk:
    - level: 2
      escalate_to: duty-manager
    - level: 1
      escalate_to: front-office-manager
"""


def write(path: Path, text: str) -> Path:
    path.write_text(text)
    return path


def test_sample_config_loads():
    manager = SLAConfigManager()
    config = manager.load(SAMPLE_CONFIG)

    assert manager.policy_for("Front Desk").response_time == timedelta(minutes=30)
    housekeeping = manager.policy_for("Housekeeping")
    assert housekeeping.calendar.timezone == "Europe/Berlin"
    assert not housekeeping.calendar.is_naive
    assert len(manager.ladder_for("Front Desk")) == 3
    assert manager.department_for("complaint") == "Front Desk"
    assert manager.department_for("housekeeping") == "Housekeeping"
    assert manager.default_agent_for("Housekeeping") == "housekeeping-supervisor"
    assert config.warning_threshold_percent == 15


def test_ladder_lookup_order(tmp_path):
    manager = SLAConfigManager()
    manager.load(write(tmp_path / "sla.yaml", BASIC_YAML))

    front_desk = manager.ladder_for("Front Desk")
    assert [step.escalate_to for step in front_desk.steps] == ["front-office-manager", "duty-manager"]
    # no department or default ladder configured: built-in manager/admin
    fallback = manager.ladder_for("Spa")
    assert [step.escalate_to for step in fallback.steps] == ["manager", "admin"]
    assert fallback.next_step(2) is None


def test_missing_file_uses_defaults(tmp_path):
    manager = SLAConfigManager()
    config = manager.load(tmp_path / "absent.yaml")

    assert config.policies == {}
    policy = manager.policy_for("Front Desk")
    assert policy.response_time == timedelta(hours=2)
    assert policy.resolution_time == timedelta(hours=24)
    manager.start_watching()
    manager.stop_watching()


def test_invalid_initial_file_raises(tmp_path):
    path = write(tmp_path / "sla.yaml", """
policies:
  Bad:
    response_time_hours: -1
    resolution_time_hours: 2
""")
    with pytest.raises(ConfigurationException):
        SLAConfigManager().load(path)


def test_non_contiguous_ladder_rejected():
    with pytest.raises(ValidationError):
        SLAConfig(escalation_ladders={
            "Front Desk": [
                {"level": 1, "escalate_to": "manager"},
                {"level": 3, "escalate_to": "gm"},
            ]
        })


def test_reload_swaps_config_and_keeps_old_on_error(tmp_path):
    path = write(tmp_path / "sla.yaml", BASIC_YAML)
    manager = SLAConfigManager()
    manager.load(path)

    write(path, BASIC_YAML.replace("response_time_hours: 1", "response_time_hours: 0.25"))
    assert manager.reload()
    assert manager.policy_for("Front Desk").response_time == timedelta(minutes=15)

    write(path, "policies: [this, is, not, a, mapping]")
    assert not manager.reload()
    assert manager.policy_for("Front Desk").response_time == timedelta(minutes=15)


def test_file_event_triggers_reload(tmp_path):
    path = write(tmp_path / "sla.yaml", BASIC_YAML)
    manager = SLAConfigManager()
    manager.load(path)
    handler = ConfigFileHandler(manager, path)

    write(path, BASIC_YAML.replace("resolution_time_hours: 4", "resolution_time_hours: 6"))
    handler.on_modified(FileModifiedEvent(str(tmp_path / "other.yaml")))
    assert manager.policy_for("Front Desk").resolution_time == timedelta(hours=4)

    handler.on_modified(FileModifiedEvent(str(path)))
    assert manager.policy_for("Front Desk").resolution_time == timedelta(hours=6)


@pytest.mark.asyncio
async def test_existing_tickets_keep_their_policy_snapshot(tmp_path, repository, clock):
    path = write(tmp_path / "sla.yaml", BASIC_YAML)
    manager = SLAConfigManager()
    manager.load(path)
    service = TicketService(repository, manager, TicketNumberSequence(), clock=clock)
    dto = TicketCreateDTO(
        title="Late check-in", description="Key card not working", department="Front Desk",
        category="front_desk", priority="medium",
    )

    before = await service.create_ticket(dto)
    write(path, BASIC_YAML.replace("resolution_time_hours: 4", "resolution_time_hours: 8"))
    manager.reload()
    after = await service.create_ticket(dto)

    assert (await repository.get(before.id)).sla_policy.resolution_time == timedelta(hours=4)
    assert after.sla_policy.resolution_time == timedelta(hours=8)


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("SLA_SWEEP_INTERVAL_SECONDS", "60")
    monkeypatch.setenv("SLA_ESCALATION_THRESHOLD_MINUTES", "90")
    monkeypatch.setenv("ENVIRONMENT", "test")

    settings = Settings()
    thresholds = SweepThresholds.from_settings(settings)

    assert settings.sla_sweep_interval_seconds == 60
    assert thresholds.escalation == timedelta(minutes=90)
    assert thresholds.response_warning == timedelta(minutes=30)
    assert thresholds.resolution_warning == timedelta(hours=2)


def test_settings_reject_unknown_environment(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "moon")
    with pytest.raises(ValidationError):
        Settings()
