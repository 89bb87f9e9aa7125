"""HTTP surface of one application instance.

Every response body, including 404 and 500 envelopes, carries the serving
instance's identity so callers behind the balancer can attribute it.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable

import uvicorn
from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .accounting import AccountingService
from .api_models import (
    ErrorResponse,
    GlobalCounts,
    HealthResponse,
    LoadTestResponse,
    ResetResponse,
    StatsResponse,
    VisitCounts,
    VisitResponse,
)
from .counters import CounterStore, RedisCounterStore
from .runtime import InstanceIdentity, utc_now
from .settings import Settings, settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

StoreFactory = Callable[[Settings], Awaitable["CounterStore | None"]]


async def redis_store_factory(cfg: Settings) -> CounterStore | None:
    if not cfg.redis_url:
        logger.warning("REDIS_URL is empty; counting is disabled")
        return None
    return await RedisCounterStore.connect(cfg.redis_url, cfg.store_timeout_s)


def get_accounting(request: Request) -> AccountingService:
    return request.app.state.accounting


router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health(accounting: AccountingService = Depends(get_accounting)) -> HealthResponse:
    return HealthResponse(instance=accounting.instance_id, timestamp=utc_now())


@router.get("/", response_model=VisitResponse, response_model_exclude_none=True)
async def visit(request: Request, accounting: AccountingService = Depends(get_accounting)) -> VisitResponse:
    result = await accounting.record_visit()
    ident = accounting.identity
    stats = None
    if result.stats is not None:
        stats = VisitCounts(total_visits=result.stats.total_visits, instance_visits=result.stats.instance_visits)
    return VisitResponse(
        message=f"Hello from Web App Instance {ident.instance_id}!",
        instance_id=ident.instance_id,
        session_id=ident.session_id,
        request_number=result.request_number,
        timestamp=utc_now(),
        hostname=request.url.hostname,
        user_agent=request.headers.get("user-agent"),
        stats=stats,
        redis_error=result.store_error,
    )


@router.get("/api/stats", response_model=StatsResponse, response_model_exclude_none=True)
async def stats(accounting: AccountingService = Depends(get_accounting)) -> StatsResponse:
    result = await accounting.get_stats()
    global_counts = None
    if result.global_stats is not None:
        global_counts = GlobalCounts(
            total_visits=result.global_stats.total_visits,
            instance_visits=result.global_stats.instance_visits,
        )
    return StatsResponse(
        instance_id=accounting.instance_id,
        session_id=accounting.identity.session_id,
        local_requests=result.local_requests,
        timestamp=utc_now(),
        global_=global_counts,
        redis_error=result.store_error,
    )


@router.get("/api/load-test", response_model=LoadTestResponse)
def load_test(request: Request, accounting: AccountingService = Depends(get_accounting)) -> LoadTestResponse:
    sample = accounting.record_synthetic_load(request.app.state.settings.load_test_iterations)
    return LoadTestResponse(
        instance_id=accounting.instance_id,
        processing_time=sample.processing_time_ms,
        result=sample.result,
        timestamp=utc_now(),
    )


@router.post("/api/reset", response_model=ResetResponse, response_model_exclude_none=True)
async def reset(accounting: AccountingService = Depends(get_accounting)) -> ResetResponse:
    result = await accounting.reset()
    message = "Stats reset successfully" if result.store_reset else "Local stats reset"
    return ResetResponse(message=message, instance_id=accounting.instance_id, redis_error=result.store_error)


def _error(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True, exclude_none=True))


def create_app(cfg: Settings | None = None, store_factory: StoreFactory | None = None) -> FastAPI:
    """Build the app for one instance.

    The counter store is acquired when the app starts and released when it
    stops, whatever the reason for stopping.
    """
    cfg = cfg or settings
    factory = store_factory or redis_store_factory
    identity = InstanceIdentity(instance_id=cfg.instance_id)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        store = await factory(cfg)
        app.state.accounting = AccountingService(identity, store, known_instances=cfg.known_instances)
        logger.info("Web App Instance %s running on port %s", identity.instance_id, cfg.port)
        logger.info("Session ID: %s", identity.session_id)
        logger.info("Redis URL: %s", cfg.redis_url)
        try:
            yield
        finally:
            logger.info("Instance %s shutting down", identity.instance_id)
            if store is not None:
                await store.close()

    app = FastAPI(title=f"Web App Instance {identity.instance_id}", lifespan=lifespan)
    app.state.settings = cfg
    app.state.identity = identity
    app.include_router(router)

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code in {404, 405}:
            logger.debug("Route not found: %s %s", request.method, request.url.path)
            return _error(
                404,
                ErrorResponse(error="Route not found", instance_id=identity.instance_id, requested_path=request.url.path),
            )
        return _error(exc.status_code, ErrorResponse(error=str(exc.detail), instance_id=identity.instance_id))

    @app.exception_handler(Exception)
    async def internal_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return _error(500, ErrorResponse(error="Something went wrong!", instance_id=identity.instance_id))

    return app


def main() -> None:
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)
    uvicorn.run(create_app(), host="0.0.0.0", port=settings.port, log_level=settings.log_level.lower())
