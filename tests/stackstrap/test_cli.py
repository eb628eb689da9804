# -*- coding: utf-8 -*-
import pytest
from click.testing import CliRunner

from stackstrap.cli import cli
from stackstrap.models import (
    RunLedger,
    ServiceOutcome,
    ServiceResult,
    StepOutcome,
    StepResult,
)


@pytest.fixture(autouse=True)
def no_logging_setup(mocker):
    return mocker.patch("stackstrap.cli.setup_logging")


@pytest.fixture
def stack_file(tmp_path):
    path = tmp_path / "stack.yaml"
    path.write_text(
        "name: demo\n"
        "requirements:\n"
        "  - {resource: cpu_cores, minimum: 2}\n"
        "  - {resource: command, name: mongod, minimum: 6}\n"
        "steps:\n"
        "  - {id: hello, action: {kind: command, command: 'true'}}\n",
        encoding="utf-8",
    )
    return path


def _ledger(step_outcome=StepOutcome.SUCCEEDED, service_outcome=ServiceOutcome.HEALTHY):
    ledger = RunLedger(name="demo")
    ledger.record_step(StepResult(step_id="hello", outcome=step_outcome))
    ledger.record_service(
        ServiceResult(service="api", outcome=service_outcome, attempts_used=1)
    )
    return ledger


def test_cli_help():
    """Test the CLI help output."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "Idempotent bootstrap" in result.output
    for command in ("bootstrap", "check", "view-config"):
        assert command in result.output


def test_bootstrap_success(mocker, stack_file):
    """A healthy run prints the summary and exits 0."""
    mock_run_stack = mocker.patch(
        "stackstrap.cli.run_stack", return_value=_ledger()
    )
    runner = CliRunner()
    result = runner.invoke(cli, ["bootstrap", "--stack", str(stack_file)])
    assert result.exit_code == 0
    assert "=== Bootstrap summary: demo ===" in result.output
    assert "Overall outcome: SUCCESS (exit code 0)" in result.output
    definition = mock_run_stack.call_args.args[0]
    assert [s.id for s in definition.steps] == ["hello"]
    assert mock_run_stack.call_args.kwargs["cancel_token"] is not None


def test_bootstrap_failure_exit_code(mocker, stack_file):
    """A service that never became healthy makes the command exit 1."""
    mocker.patch(
        "stackstrap.cli.run_stack",
        return_value=_ledger(service_outcome=ServiceOutcome.TIMED_OUT),
    )
    runner = CliRunner()
    result = runner.invoke(cli, ["bootstrap", "--stack", str(stack_file)])
    assert result.exit_code == 1
    assert "[TIMED OUT] api" in result.output


def test_bootstrap_cancelled_exit_code(mocker, stack_file):
    mocker.patch("stackstrap.cli.run_stack", return_value=RunLedger(cancelled=True))
    runner = CliRunner()
    result = runner.invoke(cli, ["bootstrap", "--stack", str(stack_file)])
    assert result.exit_code == 130


def test_bootstrap_writes_metrics_file(mocker, stack_file, tmp_path):
    mocker.patch("stackstrap.cli.run_stack", return_value=_ledger())
    metrics_file = tmp_path / "stackstrap.prom"
    runner = CliRunner()
    result = runner.invoke(
        cli,
        ["bootstrap", "--stack", str(stack_file), "--metrics-file", str(metrics_file)],
    )
    assert result.exit_code == 0
    assert "stackstrap_build_info" in metrics_file.read_text(encoding="utf-8")


def test_bootstrap_invalid_stack(mocker, tmp_path):
    """Definition errors are usage errors and nothing is run."""
    mock_run_stack = mocker.patch("stackstrap.cli.run_stack")
    bad = tmp_path / "stack.yaml"
    bad.write_text("steps: [{id: a}]\n", encoding="utf-8")
    runner = CliRunner()
    result = runner.invoke(cli, ["bootstrap", "--stack", str(bad)])
    assert result.exit_code == 2
    assert "invalid stack definition" in result.output
    mock_run_stack.assert_not_called()


def test_check_command(mocker, stack_file):
    """Requirement shortfalls are reported but do not fail the command."""
    mocker.patch(
        "stackstrap.cli.read_host_resource",
        side_effect=lambda requirement, app_settings: {
            "cpu_cores": 1.0,
            "command:mongod": 7.0,
        }[requirement.label],
    )
    runner = CliRunner()
    result = runner.invoke(cli, ["check", "--stack", str(stack_file)])
    assert result.exit_code == 0
    assert "[WARN] cpu_cores: 1 < 2" in result.output
    assert "[OK] command:mongod: 7 >= 6" in result.output


def test_view_config_uses_cli_overrides(no_logging_setup):
    runner = CliRunner()
    result = runner.invoke(cli, ["--log-level", "DEBUG", "view-config"])
    assert result.exit_code == 0
    assert "log_level: DEBUG" in result.output
    assert "symbols" not in result.output
    assert no_logging_setup.call_args.kwargs["log_level"] == "DEBUG"


def test_bootstrap_missing_secret_is_usage_error(mocker, tmp_path, monkeypatch):
    """A template needing an unset secret stops the run before any step."""
    monkeypatch.delenv("DEMO_API_TOKEN", raising=False)
    mock_run_command = mocker.patch("stackstrap.actions.run_command")
    stack = tmp_path / "stack.yaml"
    stack.write_text(
        "name: demo\n"
        "secrets: {api_token: DEMO_API_TOKEN}\n"
        "steps:\n"
        "  - {id: prepare, action: {kind: command, command: 'true'}}\n"
        "  - id: write-env\n"
        "    action: {kind: write_file, path: app.env, content: 'TOKEN=$api_token'}\n",
        encoding="utf-8",
    )
    runner = CliRunner()
    result = runner.invoke(cli, ["bootstrap", "--stack", str(stack)])
    assert result.exit_code == 2
    assert "DEMO_API_TOKEN" in result.output
    mock_run_command.assert_not_called()
    assert not (tmp_path / "app.env").exists()
