"""FastAPI app entrypoint for process-tracker."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from process_tracker.config.logging_config import configure_logging
from process_tracker.config.settings import Settings, get_settings
from process_tracker.lifecycle.deadlines import Clock, epoch_seconds, utc_now
from process_tracker.lifecycle.errors import (
    ProcessAlreadyCompletedError,
    ProcessAlreadyExistsError,
    ProcessNotFoundError,
    ProcessTrackerError,
    ProcessValidationError,
    StoreUnavailableError,
)
from process_tracker.lifecycle.filtering import (
    Pageable,
    ProcessFilter,
    parse_sort_param,
    parse_tags_param,
)
from process_tracker.lifecycle.models import (
    CompleteProcessRequest,
    DeadlineStatus,
    ErrorResponse,
    NewProcessRequest,
    PagedResult,
    ProcessResponse,
    ProcessStatus,
    StatusSnapshot,
    ValidationDetail,
)
from process_tracker.lifecycle.service import ProcessService
from process_tracker.lifecycle.stats import StatusSnapshotRefresher, collect_status_snapshot
from process_tracker.storage.base import ProcessStore
from process_tracker.storage.memory import InMemoryProcessStore
from process_tracker.storage.postgres import PostgresProcessStore

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[ProcessTrackerError], int] = {
    ProcessValidationError: 400,
    ProcessAlreadyExistsError: 409,
    ProcessNotFoundError: 404,
    ProcessAlreadyCompletedError: 409,
    StoreUnavailableError: 503,
}


def _build_storage(settings: Settings) -> ProcessStore:
    if settings.storage_backend == "memory":
        return InMemoryProcessStore()
    database_url = settings.resolved_database_url()
    if not database_url:
        raise RuntimeError(
            "Missing database URL. Set PROCESS_TRACKER_DATABASE_URL "
            "or DATABASE_URL before starting the app."
        )
    return PostgresProcessStore(database_url)


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    clock: Clock,
    storage_override: ProcessStore | None,
) -> None:
    if not hasattr(app.state, "storage"):
        app.state.storage = storage_override or _build_storage(settings)
        app.state.storage.migrate()

    if not hasattr(app.state, "settings"):
        app.state.settings = settings

    if not hasattr(app.state, "service"):
        app.state.service = ProcessService(
            app.state.storage,
            clock=clock,
            deadline_skew_s=settings.deadline_skew_tolerance_s,
        )


def _error_body(
    request: Request, code: str, message: str, *, clock: Clock = utc_now, **extra: Any
) -> dict[str, Any]:
    return ErrorResponse(
        error=code,
        message=message,
        timestamp=epoch_seconds(clock()),
        path=request.url.path,
        **extra,
    ).model_dump(mode="json", exclude_none=True)


def _status_code_for(exc: ProcessTrackerError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_type]
    return 500


def create_app(
    *,
    storage: ProcessStore | None = None,
    settings_override: Settings | None = None,
    clock: Clock = utc_now,
) -> FastAPI:
    settings = settings_override or get_settings()
    configure_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure_runtime_state(app, settings=settings, clock=clock, storage_override=storage)
        refresher: StatusSnapshotRefresher | None = None
        if settings.snapshot_interval_s > 0:
            refresher = StatusSnapshotRefresher(
                app.state.storage,
                interval_s=settings.snapshot_interval_s,
                clock=clock,
            )
            refresher.start()
        app.state.refresher = refresher
        yield
        if refresher is not None:
            await refresher.stop()

    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    # Keep test paths reliable when lifespan is not executed by the client.
    if storage is not None:
        _ensure_runtime_state(app, settings=settings, clock=clock, storage_override=storage)

    def _get_service(request: Request) -> ProcessService:
        if not hasattr(request.app.state, "service"):
            _ensure_runtime_state(
                request.app,
                settings=settings,
                clock=clock,
                storage_override=storage,
            )
        return request.app.state.service

    @app.exception_handler(ProcessTrackerError)
    async def handle_process_error(request: Request, exc: ProcessTrackerError) -> JSONResponse:
        status_code = _status_code_for(exc)
        if status_code >= 500:
            logger.error("request_failed path=%s error=%s", request.url.path, exc)
        else:
            logger.warning(
                "request_rejected path=%s code=%s error=%s", request.url.path, exc.code, exc
            )
        return JSONResponse(
            status_code=status_code,
            content=_error_body(request, exc.code, str(exc), clock=clock),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = [
            ValidationDetail(
                field=".".join(str(part) for part in error.get("loc", ())),
                message=error.get("msg", "invalid value"),
                rejected_value=error.get("input"),
            )
            for error in exc.errors()
        ]
        logger.warning("request_rejected path=%s code=VALIDATION_ERROR", request.url.path)
        return JSONResponse(
            status_code=400,
            content=_error_body(
                request,
                "VALIDATION_ERROR",
                "Request validation failed",
                clock=clock,
                details=details,
            ),
        )

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    @app.get("/health/ready")
    def ready(request: Request) -> JSONResponse:
        service = _get_service(request)
        try:
            service.store.ping()
        except StoreUnavailableError as exc:
            logger.warning("readiness event=store_down error=%s", exc)
            return JSONResponse(status_code=503, content={"status": "DOWN", "store": str(exc)})
        return JSONResponse(status_code=200, content={"status": "UP", "store": "UP"})

    @app.get(
        "/processes",
        response_model=PagedResult[ProcessResponse],
        response_model_exclude_none=True,
    )
    def list_processes(
        request: Request,
        name: str | None = None,
        process_id: str | None = Query(default=None, alias="id"),
        status: ProcessStatus | None = None,
        deadline_status: DeadlineStatus | None = None,
        deadline_before: int | None = None,
        deadline_after: int | None = None,
        running_duration_min: int | None = None,
        sort_by: str | None = None,
        tags: str | None = None,
        limit: int | None = Query(default=None),
        offset: int | None = Query(default=None),
    ) -> PagedResult[ProcessResponse]:
        sort_field, sort_direction = parse_sort_param(sort_by)
        process_filter = ProcessFilter(
            name=name,
            process_id=process_id,
            status=status,
            deadline_status=deadline_status,
            deadline_before=deadline_before,
            deadline_after=deadline_after,
            running_duration_min=running_duration_min,
            tags=parse_tags_param(tags),
            sort_by=sort_field,
            sort_direction=sort_direction,
        )
        pageable = Pageable(limit=limit, offset=offset)
        return _get_service(request).list_processes(process_filter, pageable)

    @app.get("/processes/stats", response_model=StatusSnapshot)
    def process_stats(request: Request) -> StatusSnapshot:
        service = _get_service(request)
        return collect_status_snapshot(service.store, service.clock)

    @app.post(
        "/processes/{name}",
        response_model=ProcessResponse,
        response_model_exclude_none=True,
        status_code=201,
    )
    def create_process(
        name: str, payload: NewProcessRequest, request: Request
    ) -> ProcessResponse:
        return _get_service(request).create_process(name, payload)

    @app.get(
        "/processes/{name}/{process_id}",
        response_model=ProcessResponse,
        response_model_exclude_none=True,
    )
    def get_process(name: str, process_id: str, request: Request) -> ProcessResponse:
        return _get_service(request).get_process(name, process_id)

    @app.put(
        "/processes/{name}/{process_id}/complete",
        response_model=ProcessResponse,
        response_model_exclude_none=True,
    )
    def complete_process(
        name: str,
        process_id: str,
        request: Request,
        payload: CompleteProcessRequest | None = Body(default=None),
    ) -> ProcessResponse:
        # A missing body means a plain successful completion.
        target = payload.status if payload is not None else "COMPLETED"
        return _get_service(request).complete_process(name, process_id, target)

    return app


app = create_app()
