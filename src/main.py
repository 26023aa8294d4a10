"""FastAPI application entry point.

Run with: uvicorn src.main:app --reload --port 8000
"""

# ruff: noqa: E402  -- uvloop.install() must run before other imports

import uvloop

uvloop.install()

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config.settings import settings
from src.bootstrap import build_services
from src.sc_common.database import async_session_factory, engine, ping_database
from src.sc_common.errors import AppError
from src.sc_common.redis_client import close_redis, get_redis
from src.sc_common.response import error_response
from src.sc_gateway.middleware.request_log import RequestLogMiddleware
from src.sc_group.api.router import router as group_router
from src.sc_session.api.router import router as session_router
from src.sc_session.application.provider import set_session_service
from src.sc_settlement.api.router import router as settlement_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: verify DB + Redis, wire services, re-arm timers. Shutdown: dispose."""
    # Startup
    await ping_database()
    redis = await get_redis()
    services = build_services(settings, redis, async_session_factory)
    set_session_service(services.sessions)
    await services.sessions.recover_timers()
    yield
    # Shutdown
    await services.aclose()
    set_session_service(None)
    await engine.dispose()
    await close_redis()


app = FastAPI(
    title=settings.APP_NAME,
    version="0.1.0",
    lifespan=lifespan,
)


app.add_middleware(RequestLogMiddleware)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    resp = error_response(exc.code, exc.message, request)
    return JSONResponse(
        status_code=exc.http_status,
        content=resp.model_dump(),
    )


app.include_router(session_router, prefix="/api/v1")
app.include_router(group_router, prefix="/api/v1")
app.include_router(settlement_router, prefix="/api/v1")


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "version": "0.1.0"}
