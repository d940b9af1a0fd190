"""Fleet operations command-line interface implemented with Typer."""

from __future__ import annotations

import asyncio
import dataclasses
import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable

import typer

from api import run_server
from config import settings
from digest.job import DigestJob, DigestOutcome
from digest.run_log import DigestRunRepository
from errors import FleetOpsError
from logging_setup import configure_logging
from maintenance.board import build_pm_board, filter_pm_board
from models import DigestRunResponse
from services.database import get_sync_session, run_migrations_sync
from services.email import ResendEmailTransport
from telemetry import TelemetryReader
from trends.authority import require_digest_trigger

SUCCESS_EXIT_CODE = 0
FAILURE_EXIT_CODE = 1
DOMAIN_ERROR_EXIT_CODE = 3


def _serialize(value: Any) -> Any:
    """Convert result objects to JSON-serializable structures."""

    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Enum):
        return _serialize(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if dataclasses.is_dataclass(value):
        return _serialize(dataclasses.asdict(value))
    if isinstance(value, dict):
        return {str(key): _serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_serialize(item) for item in value]
    if hasattr(value, "model_dump"):
        return _serialize(value.model_dump(mode="python"))
    return str(value)


def _emit_output(result: Any) -> None:
    typer.echo(json.dumps(_serialize(result), sort_keys=True, separators=(",", ":")))


def _emit_error(exc: Exception) -> None:
    typer.echo(json.dumps({"error": str(exc)}), err=True)


def _run_command(invoke: Callable[[], Any]) -> None:
    """Execute one command, mapping domain errors to exit codes."""
    try:
        result = invoke()
    except (FleetOpsError, ValueError) as exc:
        _emit_error(exc)
        raise typer.Exit(code=DOMAIN_ERROR_EXIT_CODE) from exc
    _emit_output(result)
    raise typer.Exit(code=SUCCESS_EXIT_CODE)


app = typer.Typer(no_args_is_help=True, help="Fleet operations trend and PM tooling")
digest_app = typer.Typer(help="Trend action digest commands")
app.add_typer(digest_app, name="digest")


@app.callback()
def main(
    log_level: str = typer.Option(settings.log_level, help="Root log level"),
    plain_logs: bool = typer.Option(False, "--plain-logs", help="Emit human-readable logs"),
) -> None:
    """Configure logging for every command."""
    configure_logging(level=log_level, json_output=settings.log_json and not plain_logs)


@digest_app.command("run")
def digest_run(
    manual: bool = typer.Option(False, "--manual", help="Bypass the time gate, apply cooldown"),
    user: str | None = typer.Option(None, "--user", help="Profile id starting a manual run"),
) -> None:
    """Run the digest once and print the outcome."""
    if manual:
        role = TelemetryReader(get_sync_session).get_role(user) if user else None
        try:
            require_digest_trigger(role)
        except FleetOpsError as exc:
            _emit_error(exc)
            raise typer.Exit(code=DOMAIN_ERROR_EXIT_CODE) from exc

    job = DigestJob(get_sync_session, ResendEmailTransport())
    result = asyncio.run(
        job.run("manual" if manual else "cron", initiated_by=user if manual else None)
    )
    _emit_output(result.to_payload())
    if result.outcome is DigestOutcome.FAILED:
        raise typer.Exit(code=FAILURE_EXIT_CODE)
    if result.outcome is DigestOutcome.COOLDOWN:
        raise typer.Exit(code=DOMAIN_ERROR_EXIT_CODE)
    raise typer.Exit(code=SUCCESS_EXIT_CODE)


@digest_app.command("runs")
def digest_runs(
    limit: int = typer.Option(20, min=1, help="Number of runs to show"),
) -> None:
    """Show the most recent digest runs."""
    _run_command(
        lambda: [
            DigestRunResponse.model_validate(run)
            for run in DigestRunRepository(get_sync_session).list_recent(limit=limit)
        ]
    )


@app.command("pm-board")
def pm_board(
    status: str = typer.Option("All", help="All, Due Soon, or Overdue"),
    asset_type: str = typer.Option("All", "--asset-type", help="All, Vehicles, or Equipment"),
    search: str = typer.Option("", help="Match name, id, or type"),
) -> None:
    """Print the sorted PM board."""
    _run_command(
        lambda: [
            row.as_payload()
            for row in filter_pm_board(
                build_pm_board(TelemetryReader(get_sync_session)),
                status=status,
                asset_type=asset_type,
                search=search,
            )
        ]
    )


@app.command("migrate")
def migrate() -> None:
    """Apply database migrations."""
    run_migrations_sync()
    _emit_output({"ok": True})


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address"),
    port: int = typer.Option(8000, help="Bind port"),
) -> None:
    """Run the HTTP API."""
    run_server(host=host, port=port)


if __name__ == "__main__":
    app()
