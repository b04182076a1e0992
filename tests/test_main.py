import pytest

from parking_agent import main
from parking_agent.models import Outcome


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("EMAIL", "PASSWORD"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def captured_runs(monkeypatch):
    runs = []

    async def fake_run(settings, request):
        runs.append((settings, request))
        return Outcome.BOOKED

    monkeypatch.setattr(main, "run", fake_run)
    return runs


def test_no_date_prints_usage_and_exits_zero(capsys, captured_runs):
    assert main.cli([]) == 0
    assert main.cli(["run"]) == 0
    assert "No date provided" in capsys.readouterr().out
    assert captured_runs == []


def test_invalid_date_format_exits_one(captured_runs):
    assert main.cli(["run", "2025-2-17", "me@example.com", "secret"]) == 1
    assert captured_runs == []


def test_impossible_calendar_date_exits_one(captured_runs):
    assert main.cli(["run", "2025-13-99", "me@example.com", "secret"]) == 1
    assert captured_runs == []


def test_missing_credentials_exit_one(captured_runs):
    assert main.cli(["run", "2025-02-17"]) == 1
    assert main.cli(["run", "2025-02-17", "me@example.com"]) == 1
    assert captured_runs == []


def test_credentials_fall_back_to_environment(monkeypatch, captured_runs):
    monkeypatch.setenv("EMAIL", "env@example.com")
    monkeypatch.setenv("PASSWORD", "from-env")

    assert main.cli(["run", "2025-02-17"]) == 0
    _, request = captured_runs[0]
    assert request.username == "env@example.com"
    assert request.password.get_secret_value() == "from-env"


def test_run_builds_request(captured_runs):
    code = main.cli(
        [
            "run",
            "2025-02-17",
            "me@example.com",
            "secret",
            "PASS-123",
            "--sms-code",
            "654321",
            "--check-only",
            "--base-url",
            "https://reserve.solitudeparking.com",
        ]
    )

    assert code == 0
    settings, request = captured_runs[0]
    assert request.target.iso == "2025-02-17"
    assert request.parking_code == "PASS-123"
    assert request.sms_code == "654321"
    assert settings.make_reservation is False
    assert settings.resort_base_url == "https://reserve.solitudeparking.com"


def test_fatal_error_exits_one(monkeypatch):
    async def failing_run(settings, request):
        raise RuntimeError("browser crashed")

    monkeypatch.setattr(main, "run", failing_run)

    assert main.cli(["run", "2025-02-17", "me@example.com", "secret"]) == 1


def test_invalid_settings_exit_one(monkeypatch, captured_runs):
    monkeypatch.setenv("PARKING_AGENT_POLL_INTERVAL_SECONDS", "-1")

    assert main.cli(["run", "2025-02-17", "me@example.com", "secret"]) == 1
    assert captured_runs == []
