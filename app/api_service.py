from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.dependencies import Services, build_services
from config.settings import settings
from ops.structured_logger import setup_logging
from utils.errors import AppError
from utils.request_context import clear_request_id, new_request_id, set_request_id

from app.routers.calculate import router as calculate_router
from app.routers.drugs import router as drugs_router
from app.routers.health import router as health_router

log = logging.getLogger("rxfill.api")


def _get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get("x-request-id") or ""


def _error_body(request: Request, payload: dict) -> dict:
    payload["request_id"] = _get_request_id(request)
    payload["revision"] = os.getenv("K_REVISION") or ""
    return payload


def create_app(services_factory: Optional[Callable[[], Services]] = None) -> FastAPI:
    """services_factory lets tests hand in fakes; production wires from settings."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        services = services_factory() if services_factory else build_services(settings)
        app.state.services = services
        services.cache.start_sweeper()
        log.info("startup", extra={"extra": {"event": "startup", "environment": services.settings.ENVIRONMENT}})
        try:
            yield
        finally:
            await services.aclose()
            log.info("shutdown", extra={"extra": {"event": "shutdown"}})

    app = FastAPI(title="rxfill API", version="1.0.0", lifespan=lifespan)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        rid = new_request_id(request.headers.get("x-request-id"))
        request.state.request_id = rid
        set_request_id(rid)
        try:
            response = await call_next(request)
        finally:
            clear_request_id()
        response.headers["X-Request-Id"] = rid
        return response

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        log.log(
            level,
            "app_error",
            extra={
                "extra": {
                    "event": "app_error",
                    "code": exc.code,
                    "status_code": exc.status_code,
                    "path": request.url.path,
                    "method": request.method,
                }
            },
        )
        return JSONResponse(status_code=exc.status_code, content=_error_body(request, exc.to_dict()))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        log.warning(
            "validation_error",
            extra={"extra": {"event": "validation_error", "path": request.url.path, "method": request.method}},
        )
        details = {"errors": [{"loc": list(e.get("loc", [])), "msg": e.get("msg", "")} for e in exc.errors()]}
        body = {"error": {"code": "invalid_input", "message": "Request validation failed", "details": details}}
        return JSONResponse(status_code=400, content=_error_body(request, body))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        log.error(
            "internal_unhandled_exception",
            extra={
                "extra": {
                    "event": "internal_unhandled_exception",
                    "error_type": type(exc).__name__,
                    "path": request.url.path,
                    "method": request.method,
                }
            },
            exc_info=True,
        )
        body = {"error": {"code": "internal_error", "message": "Internal server error"}}
        return JSONResponse(status_code=500, content=_error_body(request, body))

    app.include_router(health_router, tags=["health"])
    app.include_router(calculate_router, prefix="/api/v1", tags=["calculate"])
    app.include_router(drugs_router, prefix="/api/v1", tags=["drugs"])
    return app


setup_logging(settings.LOG_LEVEL)

app = create_app()
