"""HTTP entry points for trend actions, digests, and the PM board."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Any, Callable

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from digest.details import build_digest_details
from digest.job import DigestJob, DigestOutcome
from digest.run_log import DigestRunRepository
from errors import FleetOpsError
from maintenance.board import build_pm_board, filter_pm_board
from models import DigestRunResponse, TrendActionResponse
from services.database import check_connection, get_sync_session
from services.email import EmailTransport, ResendEmailTransport
from telemetry import TelemetryReader
from trends.authority import require_digest_trigger, require_trend_operator
from trends.decline import coerce_points
from trends.evaluation import evaluate_trends
from trends.repository import TrendActionRepository

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-Id"
ASSET_TYPES = ("vehicle", "equipment")


class UnauthenticatedError(FleetOpsError):
    """Request carries no caller identity or a bad cron secret."""

    status_code = 401


@dataclass(frozen=True)
class Caller:
    """Authenticated caller resolved from the upstream identity header."""

    user_id: str
    role: str | None


class TrendEvaluationRequest(BaseModel):
    """Body of POST /api/trend-actions; raw points are coerced leniently."""

    assetType: str | None = None
    assetId: Any = None
    healthPoints: list[Any] | None = None
    mechanicPoints: list[Any] | None = None


class StatusUpdateRequest(BaseModel):
    """Body of PATCH /api/trend-actions."""

    actionId: Any = None
    status: str | None = None


def create_app(
    *,
    session_factory: Callable[[], Session] | None = None,
    transport: EmailTransport | None = None,
    now_provider: Callable[[], datetime] | None = None,
) -> FastAPI:
    """Create the API app; dependencies default to the shared database and Resend."""
    app = FastAPI(title="fleetops", version="0.1.0")
    app.state.session_factory = session_factory or get_sync_session
    app.state.transport = transport or ResendEmailTransport()
    app.state.now_provider = now_provider

    @app.exception_handler(FleetOpsError)
    async def _domain_error(_request: Request, exc: FleetOpsError) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    @app.exception_handler(ValueError)
    async def _value_error(_request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(SQLAlchemyError)
    async def _store_error(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
        logger.error(f"Store error: {exc}")
        return JSONResponse({"error": "Database error"}, status_code=500)

    app.include_router(_build_router())
    return app


def _session_factory(request: Request) -> Callable[[], Session]:
    return request.app.state.session_factory


def _now(request: Request) -> datetime | None:
    provider = request.app.state.now_provider
    return provider() if provider else None


def _caller(request: Request) -> Caller:
    user_id = (request.headers.get(USER_ID_HEADER) or "").strip()
    if not user_id:
        raise UnauthenticatedError("Not authenticated")
    role = TelemetryReader(_session_factory(request)).get_role(user_id)
    return Caller(user_id=user_id, role=role)


def _digest_job(request: Request) -> DigestJob:
    return DigestJob(
        _session_factory(request),
        request.app.state.transport,
        now_provider=request.app.state.now_provider,
    )


def _digest_response(result) -> JSONResponse:
    if result.outcome is DigestOutcome.FAILED:
        return JSONResponse({"error": result.error}, status_code=500)
    if result.outcome is DigestOutcome.COOLDOWN:
        return JSONResponse(
            result.to_payload(),
            status_code=429,
            headers={"Retry-After": str(result.retry_after_seconds)},
        )
    return JSONResponse(result.to_payload())


def _build_router():
    router = APIRouter(prefix="/api")

    @router.get("/health")
    def health(request: Request) -> JSONResponse:
        database_ok = check_connection(_session_factory(request))
        return JSONResponse(
            {"ok": database_ok, "database": "ok" if database_ok else "unavailable"},
            status_code=200 if database_ok else 503,
        )

    @router.get("/trend-actions/digest")
    async def run_cron_digest(request: Request) -> JSONResponse:
        expected = settings.digest.cron_secret
        if expected:
            if request.headers.get("authorization", "") != f"Bearer {expected}":
                raise UnauthenticatedError("Unauthorized")
        result = await _digest_job(request).run("cron")
        return _digest_response(result)

    @router.post("/trend-actions/digest")
    async def run_manual_digest(
        request: Request,
        caller: Caller = Depends(_caller),
    ) -> JSONResponse:
        require_digest_trigger(caller.role)
        result = await _digest_job(request).run("manual", initiated_by=caller.user_id)
        return _digest_response(result)

    @router.get("/trend-actions/digest/runs")
    def list_digest_runs(request: Request, caller: Caller = Depends(_caller)) -> dict:
        require_trend_operator(caller.role)
        runs = DigestRunRepository(_session_factory(request)).list_recent()
        return {
            "runs": [DigestRunResponse.model_validate(run).model_dump(mode="json") for run in runs]
        }

    @router.get("/trend-actions/digest/{date_key}")
    def get_digest_details(
        date_key: str,
        request: Request,
        caller: Caller = Depends(_caller),
    ) -> dict:
        require_trend_operator(caller.role)
        factory = _session_factory(request)
        details = build_digest_details(
            date_key,
            actions=TrendActionRepository(factory),
            reader=TelemetryReader(factory),
            now=_now(request),
        )
        return {
            "dateKey": details.date_key,
            "actions": [_action_payload(action) for action in details.actions],
            "assetLabels": details.asset_labels,
            "metrics": details.metrics,
        }

    @router.get("/trend-actions")
    def list_trend_actions(
        request: Request,
        assetType: str | None = Query(default=None),
        assetId: str | None = Query(default=None),
        caller: Caller = Depends(_caller),
    ) -> dict:
        require_trend_operator(caller.role)
        asset_type, asset_id = _asset_identity(assetType, assetId)
        actions = TrendActionRepository(_session_factory(request)).list_recent_actions(
            asset_type, asset_id
        )
        return {"actions": [_action_payload(action) for action in actions]}

    @router.post("/trend-actions")
    def evaluate_trend_actions(
        body: TrendEvaluationRequest,
        request: Request,
        caller: Caller = Depends(_caller),
    ) -> dict:
        require_trend_operator(caller.role)
        asset_type, asset_id = _asset_identity(body.assetType, body.assetId)
        factory = _session_factory(request)
        health_points = coerce_points(body.healthPoints)
        mechanic_points = coerce_points(body.mechanicPoints)
        if body.healthPoints is None and body.mechanicPoints is None:
            signals = TelemetryReader(factory).recent_signals(asset_type, asset_id)
            health_points = signals.health_points
            mechanic_points = signals.mechanic_points
        created = evaluate_trends(
            TrendActionRepository(factory),
            asset_type=asset_type,
            asset_id=asset_id,
            health_points=health_points,
            mechanic_points=mechanic_points,
            actor_id=caller.user_id,
            now=_now(request),
        )
        return {"created": created}

    @router.patch("/trend-actions")
    def update_trend_action(
        body: StatusUpdateRequest,
        request: Request,
        caller: Caller = Depends(_caller),
    ) -> dict:
        require_trend_operator(caller.role)
        try:
            action_id = int(str(body.actionId).strip())
        except (TypeError, ValueError):
            raise ValueError("actionId and valid status are required") from None
        TrendActionRepository(_session_factory(request)).set_status(
            action_id,
            body.status or "",
            caller.user_id,
            now=_now(request),
        )
        return {"ok": True}

    @router.get("/pm-board", dependencies=[Depends(_caller)])
    def get_pm_board(
        request: Request,
        status: str | None = Query(default=None),
        assetType: str | None = Query(default=None),
        q: str | None = Query(default=None),
    ) -> dict:
        rows = build_pm_board(TelemetryReader(_session_factory(request)))
        filtered = filter_pm_board(rows, status=status, asset_type=assetType, search=q)
        return {"rows": [row.as_payload() for row in filtered]}

    return router


def _asset_identity(asset_type: str | None, asset_id: object) -> tuple[str, str]:
    normalized_id = str(asset_id or "").strip()
    if asset_type not in ASSET_TYPES or not normalized_id:
        raise ValueError("assetType and assetId are required")
    return asset_type, normalized_id


def _action_payload(action) -> dict:
    return TrendActionResponse.model_validate(action).model_dump(mode="json")


def run_server(*, host: str = "127.0.0.1", port: int = 8000) -> None:
    """Run the API through uvicorn, keeping the process logging configuration."""
    uvicorn.run(
        create_app(),
        host=host,
        port=port,
        log_config=None,
        log_level=settings.log_level.lower(),
    )


__all__ = ["create_app", "run_server"]
