# stackstrap/cli.py
# -*- coding: utf-8 -*-
"""
Command-line interface for the stack bootstrapper.
"""

import functools
import logging
import signal
from contextlib import contextmanager

import click

from common.logging_config import setup_logging
from common.metrics import BootstrapMetrics
from common.system_utils import read_host_resource
from stackstrap.config import (
    DEFAULT_CONFIG_FILE,
    DEFAULT_STACK_FILE,
    SCRIPT_VERSION,
)
from stackstrap.config_loader import load_app_settings, load_stack_definition
from stackstrap.config_models import AppSettings
from stackstrap.models import CheckStatus, StackDefinitionError
from stackstrap.reporter import render
from stackstrap.requirement_checker import RequirementChecker
from stackstrap.runner import run_stack
from stackstrap.service_verifier import CancellationToken

module_logger = logging.getLogger(__name__)


@contextmanager
def cancel_on_signals(token: CancellationToken):
    """Turns SIGINT/SIGTERM into a cancellation request for the duration of the block."""

    def _handler(signum, frame):
        module_logger.warning(
            f"Received signal {signum}; cancelling after the current step or probe attempt."
        )
        token.cancel()

    previous = {
        sig: signal.signal(sig, _handler)
        for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        yield token
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def _load_settings(ctx: click.Context) -> AppSettings:
    params = ctx.obj or {}
    settings = load_app_settings(
        cli_overrides=params.get("overrides"),
        config_file_path=params.get("config"),
    )
    setup_logging(
        log_level=settings.log_level,
        log_file=settings.log_file,
        log_prefix=settings.log_prefix,
        json_console=settings.json_logs,
        symbols=settings.symbols,
    )
    return settings


@click.group()
@click.version_option(SCRIPT_VERSION, prog_name="stackstrap")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    default=DEFAULT_CONFIG_FILE,
    show_default=True,
    help="YAML file with engine settings.",
)
@click.option("--log-level", default=None, help="Logging level, e.g. DEBUG.")
@click.option(
    "--json-logs", is_flag=True, default=False, help="Emit JSON log lines."
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Also write JSON logs to this file.",
)
@click.pass_context
def cli(ctx, config_path, log_level, json_logs, log_file):
    """
    Idempotent bootstrap and health verification of multi-service stacks.

    Settings are resolved with precedence CLI > config file > environment
    (STACKSTRAP_*) > defaults.
    """
    ctx.ensure_object(dict)
    ctx.obj["config"] = config_path
    ctx.obj["overrides"] = {
        "log_level": log_level,
        "json_logs": json_logs or None,
        "log_file": log_file,
    }


@cli.command(name="bootstrap")
@click.option(
    "--stack",
    "stack_path",
    type=click.Path(dir_okay=False),
    default=DEFAULT_STACK_FILE,
    show_default=True,
    help="Stack definition file (requirements, steps, probes, endpoints).",
)
@click.option(
    "--metrics-file",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write Prometheus metrics for this run to a textfile.",
)
@click.pass_context
def bootstrap_command(ctx, stack_path, metrics_file):
    """
    Checks requirements, runs the stack's steps in order, verifies its
    services and prints a summary.

    Exits non-zero unless every required step succeeded (or was already
    satisfied) and every service became healthy. Safe to re-run.
    """
    if metrics_file:
        ctx.obj.setdefault("overrides", {})["metrics_textfile"] = metrics_file
    settings = _load_settings(ctx)
    try:
        definition = load_stack_definition(stack_path)
    except StackDefinitionError as e:
        raise click.UsageError(str(e)) from e

    metrics = BootstrapMetrics()
    with cancel_on_signals(CancellationToken()) as token:
        try:
            ledger = run_stack(
                definition, settings, cancel_token=token, metrics=metrics
            )
        except StackDefinitionError as e:
            raise click.UsageError(str(e)) from e

    report = render(ledger)
    click.echo(report.to_text())

    if settings.metrics_textfile:
        metrics.write_textfile(settings.metrics_textfile)

    ctx.exit(report.exit_code)


@cli.command(name="check")
@click.option(
    "--stack",
    "stack_path",
    type=click.Path(dir_okay=False),
    default=DEFAULT_STACK_FILE,
    show_default=True,
    help="Stack definition file.",
)
@click.pass_context
def check_command(ctx, stack_path):
    """Checks host requirements only. Always exits 0; shortfalls are warnings."""
    settings = _load_settings(ctx)
    try:
        definition = load_stack_definition(stack_path)
    except StackDefinitionError as e:
        raise click.UsageError(str(e)) from e

    checker = RequirementChecker(
        functools.partial(read_host_resource, app_settings=settings),
        app_settings=settings,
    )
    for result in checker.check(definition.requirements):
        status = "OK" if result.status == CheckStatus.OK else "WARN"
        click.echo(f"[{status}] {result.requirement.label}: {result.detail}")


@cli.command(name="view-config")
@click.pass_context
def view_config_command(ctx):
    """Shows the effective engine settings."""
    settings = _load_settings(ctx)
    click.echo(
        "Current effective configuration (CLI > YAML > ENV > Defaults):"
    )
    for key, value in settings.model_dump(exclude={"symbols"}).items():
        click.echo(f"  {key}: {value}")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
