# app/main.py
from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response as StarletteResponse

from api.routers.news import router as news_router
from app.config import Settings, get_settings
from app.core.logging import configure_logging, get_logger
from app.core.request_id import clear_request_id, set_request_id
from app.runtime import IngestRuntime


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        logger = request.app.state.logger
        req_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        set_request_id(req_id)

        logger.info("request_started", method=request.method, path=str(request.url.path))
        try:
            response: StarletteResponse = await call_next(request)
        except Exception as exc:
            logger.error("request_exception", error=str(exc.__class__.__name__))
            clear_request_id()
            raise
        logger.info("request_ended", status_code=response.status_code)
        response.headers["X-Request-Id"] = req_id
        clear_request_id()
        return response


def create_app(
    settings: Optional[Settings] = None,
    *,
    runtime: Optional[IngestRuntime] = None,
    run_scheduler: bool = True,
) -> FastAPI:
    """
    Build the API. Without an explicit runtime, the lifespan builds one from
    settings and runs the ingest scheduler for as long as the app is up.
    """
    settings = settings or get_settings()
    logger = get_logger("api")

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = app.state.runtime is None
        if owned:
            app.state.runtime = await IngestRuntime.build(settings, logger=logger)
        if run_scheduler:
            app.state.runtime.scheduler.start()
        try:
            yield
        finally:
            if owned:
                await app.state.runtime.aclose()
            else:
                await app.state.runtime.scheduler.stop()

    app = FastAPI(
        title="News Feed Ingest",
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.runtime = runtime
    app.state.logger = logger

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
    )
    app.add_middleware(RequestIdMiddleware)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled_exception", exc_info=True)
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})

    @app.head("/")
    async def root_head():
        return Response(status_code=200)

    @app.get("/")
    async def root():
        return {"ok": True, "app": "News Feed Ingest"}

    app.include_router(news_router)
    return app


def _create_default_app() -> FastAPI:
    settings = get_settings()
    configure_logging(service_name="api", level=settings.LOG_LEVEL, fmt=settings.LOG_FORMAT)
    return create_app(settings)


app = _create_default_app()


def serve() -> None:
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.HTTP_HOST, port=settings.HTTP_PORT, log_config=None)


if __name__ == "__main__":
    serve()
