"""FastAPI application exposing the safety engine on loopback."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Lock
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from journal.errors import OperationNotFoundError
from protection.types import Tier
from workflow.confirm import StaticConfirmer
from workflow.service import SafetyService

from . import __version__
from .auth import APIKeyAuth
from .models import (
    BatchResultResponse,
    HealthResponse,
    OperationModel,
    OperationsResponse,
    RetentionResponse,
    RuleModel,
    RulesResponse,
    UndoResponse,
    WorkflowRequest,
)

LOGGER = logging.getLogger("fub.api")

MAX_LIST_LIMIT = 1000


@dataclass(slots=True)
class APIServerConfig:
    """Runtime configuration for the FastAPI application."""

    service: SafetyService
    api_key: Optional[str]
    app_version: str = __version__
    lan_only: bool = True


_LOCAL_CLIENT_SENTINELS = {
    "127.0.0.1",
    "::1",
    "localhost",
    "testclient",
}


def _is_loopback_host(host: Optional[str]) -> bool:
    if host is None:
        return True
    value = host.strip().lower()
    if value.startswith("::ffff:"):
        value = value[len("::ffff:"):]
    if value.startswith("[") and value.endswith("]"):
        value = value[1:-1]
    if "%" in value:  # IPv6 scope id
        value = value.split("%", 1)[0]
    return not value or value in _LOCAL_CLIENT_SENTINELS or value.startswith("127.")


class SafetyAPI:
    """Routes under ``/v1/safety``; every one requires the API key."""

    def __init__(self, service: SafetyService, auth: APIKeyAuth) -> None:
        self._service = service
        self._auth = auth
        self._run_lock = Lock()

    def router(self) -> APIRouter:
        router = APIRouter(prefix="/v1/safety", tags=["safety"], dependencies=[Depends(self._auth)])

        @router.post("/workflow", response_model=BatchResultResponse)
        def run_workflow(body: WorkflowRequest) -> BatchResultResponse:
            if not body.targets:
                raise HTTPException(status_code=422, detail="targets must not be empty")
            with self._run_lock:
                result = self._service.run_workflow(
                    body.op_type,
                    body.targets,
                    body.description,
                    body.safety_level,
                    dry_run=body.dry_run,
                    content=body.content,
                    level_overrides=body.level_overrides,
                    confirmer=StaticConfirmer(body.confirm),
                )
            return BatchResultResponse(**result.to_dict())

        @router.get("/operations", response_model=OperationsResponse)
        def list_operations(limit: int = Query(20, ge=1, le=MAX_LIST_LIMIT)) -> OperationsResponse:
            operations = self._service.list_operations(limit)
            return OperationsResponse(
                limit=limit,
                operations=[OperationModel(**op.to_dict()) for op in operations],
            )

        @router.get("/operations/{operation_id}", response_model=OperationModel)
        def get_operation(operation_id: str) -> OperationModel:
            return OperationModel(**self._service.get_operation(operation_id).to_dict())

        @router.post("/operations/{operation_id}/undo", response_model=UndoResponse)
        def undo(operation_id: str, response: Response) -> UndoResponse:
            with self._run_lock:
                outcome = self._service.undo(operation_id)
            if not outcome.ok:
                response.status_code = status.HTTP_409_CONFLICT
            return UndoResponse(**outcome.to_dict())

        @router.post("/retention", response_model=RetentionResponse)
        def retention() -> RetentionResponse:
            with self._run_lock:
                summary = self._service.cleanup()
            return RetentionResponse(**summary)

        @router.get("/rules", response_model=RulesResponse)
        def rules(tier: Optional[str] = None) -> RulesResponse:
            selected = Tier(tier.lower()) if tier else None
            return RulesResponse(
                rules=[
                    RuleModel(**rule.to_dict(), tier=rule.tier.value)
                    for rule in self._service.list_rules(selected)
                ],
                problems=self._service.rule_problems(),
            )

        return router


def create_app(config: APIServerConfig) -> FastAPI:
    """Create a FastAPI application bound to the given configuration."""

    app = FastAPI(
        title="FUB Safety API",
        version=config.app_version,
        docs_url="/docs",
        openapi_url="/openapi.json",
    )
    service = config.service
    auth_dependency = APIKeyAuth(config.api_key)
    lan_only = bool(config.lan_only)

    @app.on_event("shutdown")
    def _shutdown() -> None:
        service.close()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):  # type: ignore[override]
        start = time.perf_counter()
        response: Optional[Response] = None
        client_host = request.client.host if request.client else None
        try:
            if lan_only and not _is_loopback_host(client_host):
                LOGGER.warning("Rejected non-local HTTP request from %s", client_host or "<unknown>")
                response = JSONResponse(status_code=status.HTTP_403_FORBIDDEN, content={"error": "LAN access disabled"})
            else:
                response = await call_next(request)
            return response
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            status_code = response.status_code if response is not None else 500
            LOGGER.info(
                "%s %s -> %s (%.1f ms) ip=%s",
                request.method,
                request.url.path,
                status_code,
                duration_ms,
                client_host or "-",
            )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(_request: Request, exc: HTTPException):
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"error": detail})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "invalid parameters", "details": exc.errors()},
        )

    @app.exception_handler(OperationNotFoundError)
    async def not_found_handler(_request: Request, exc: OperationNotFoundError):
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "operation not found", "operation_id": exc.operation_id},
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(_request: Request, exc: ValueError):
        return JSONResponse(status_code=422, content={"error": str(exc)})

    @app.get("/v1/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        return HealthResponse(
            ok=True,
            version=config.app_version,
            time_utc=datetime.now(timezone.utc).isoformat(),
            safety_level=service.safety_level().name,
            pending_operations=len(service.pending_operations()),
        )

    app.include_router(SafetyAPI(service, auth_dependency).router())
    return app


__all__ = [
    "APIServerConfig",
    "SafetyAPI",
    "create_app",
]
