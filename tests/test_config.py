from __future__ import annotations

from pathlib import Path

import allure
import pytest

from agent_fleet.config import MonitorSettings, RecoverySettings, Settings

pytestmark = [
    allure.epic("Fleet Run"),
    allure.feature("Configuration"),
]


def test_from_env_defaults_match_the_phase_run() -> None:
    settings = Settings.from_env()

    assert settings.channel.root == Path("communication")
    assert settings.channel.roster_path is None
    assert settings.launch.externally_managed is False
    assert settings.monitor.tick_interval_seconds == 5.0
    assert settings.monitor.max_ticks == 360
    assert settings.monitor.report_every_ticks == 12
    assert settings.verification.audit_command == "./phase2-infrastructure-audit.sh"
    assert settings.verification.test_command == "npm test"
    assert settings.verification.run_name == "phase2"
    assert settings.recovery.service_template == "{agent_id}"
    assert settings.recovery.tail_lines == 10
    settings.validate()


def test_from_env_reads_prefixed_variables(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AGENT_FLEET_COMMUNICATION_ROOT", str(tmp_path / "comm"))
    monkeypatch.setenv("AGENT_FLEET_MAX_TICKS", "7")
    monkeypatch.setenv("AGENT_FLEET_TICK_INTERVAL_SECONDS", "0.5")
    monkeypatch.setenv("AGENT_FLEET_COMPOSE_COMMAND", "podman-compose")
    monkeypatch.setenv("AGENT_FLEET_SERVICE_TEMPLATE", "fleet-{agent_id}")
    monkeypatch.setenv("AGENT_FLEET_LOG_LEVEL", "debug")

    settings = Settings.from_env()

    assert settings.channel.root == tmp_path / "comm"
    assert settings.monitor.max_ticks == 7
    assert settings.monitor.tick_interval_seconds == 0.5
    assert settings.recovery.compose_command == "podman-compose"
    assert settings.recovery.service_template == "fleet-{agent_id}"
    assert settings.log_level == "DEBUG"


def test_explicit_communication_root_wins_over_env(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AGENT_FLEET_COMMUNICATION_ROOT", str(tmp_path / "from-env"))

    settings = Settings.from_env(communication_root=tmp_path / "explicit")

    assert settings.channel.root == tmp_path / "explicit"


@pytest.mark.parametrize(
    ("name", "value", "expected"),
    [
        ("AGENT_FLEET_DOCKER_ENV", "true", True),
        ("AGENT_FLEET_DOCKER_ENV", "0", False),
        ("DOCKER_ENV", "yes", True),
        ("DOCKER_ENV", "", False),
    ],
)
def test_docker_flag_selects_launch_mode(monkeypatch, name: str, value: str, expected: bool):
    monkeypatch.setenv(name, value)

    assert Settings.from_env().launch.externally_managed is expected


def test_prefixed_docker_flag_overrides_legacy_one(monkeypatch) -> None:
    monkeypatch.setenv("DOCKER_ENV", "true")
    monkeypatch.setenv("AGENT_FLEET_DOCKER_ENV", "false")

    assert Settings.from_env().launch.externally_managed is False


def test_invalid_boolean_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("AGENT_FLEET_DOCKER_ENV", "maybe")

    with pytest.raises(ValueError, match="Invalid boolean value for AGENT_FLEET_DOCKER_ENV"):
        Settings.from_env()


def test_validate_rejects_non_positive_tick_cap() -> None:
    settings = Settings(monitor=MonitorSettings(max_ticks=0))

    with pytest.raises(ValueError, match="AGENT_FLEET_MAX_TICKS"):
        settings.validate()


def test_validate_rejects_non_positive_report_cadence() -> None:
    settings = Settings(monitor=MonitorSettings(report_every_ticks=0))

    with pytest.raises(ValueError, match="AGENT_FLEET_REPORT_EVERY_TICKS"):
        settings.validate()


def test_validate_rejects_service_template_without_placeholder() -> None:
    settings = Settings(recovery=RecoverySettings(service_template="fleet"))

    with pytest.raises(ValueError, match="AGENT_FLEET_SERVICE_TEMPLATE"):
        settings.validate()


def test_validate_rejects_unknown_log_level() -> None:
    settings = Settings(log_level="LOUD")

    with pytest.raises(ValueError, match="AGENT_FLEET_LOG_LEVEL"):
        settings.validate()


def test_validate_rejects_negative_tick_interval_but_allows_zero() -> None:
    Settings(monitor=MonitorSettings(tick_interval_seconds=0)).validate()

    with pytest.raises(ValueError, match="AGENT_FLEET_TICK_INTERVAL_SECONDS"):
        Settings(monitor=MonitorSettings(tick_interval_seconds=-1)).validate()
