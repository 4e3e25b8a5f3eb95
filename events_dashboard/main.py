import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.cors import CORSMiddleware

from events_dashboard.core.database_manager import StoreHandle
from events_dashboard.core.errors import EventsError, SchemaDriftError, ValidationError
from events_dashboard.core.logging_config import configure_logging
from events_dashboard.core.schema_check import create_schema, verify_schema
from events_dashboard.core.settings import Settings, get_settings
from events_dashboard.middleware.monitoring import MonitoringMiddleware, metrics
from events_dashboard.schemas.envelope import error_response

from .api.api import api_router
from .api.endpoints import system

logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Prepare the store on startup and release the pool on shutdown"""
    settings: Settings = app.state.settings
    store: StoreHandle = app.state.store
    logger.info("Starting %s %s", settings.PROJECT_NAME, settings.VERSION)

    try:
        try:
            if settings.database.DB_AUTO_CREATE:
                await create_schema(store)
            if settings.database.DB_VERIFY_SCHEMA:
                await verify_schema(store)
        except SchemaDriftError as e:
            logger.error("Schema verification failed: %s", e.message)
            raise
        except EventsError as e:
            # The store may come up later; requests surface the error meanwhile
            logger.warning("Database not ready at startup: %s", e.message)

        yield

    finally:
        await store.close()
        logger.info("Application shutdown completed")


def _request_error_details(exc: RequestValidationError) -> Dict[str, str]:
    details: Dict[str, str] = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ())]
        if loc and loc[0] in ("body", "query", "path", "header"):
            loc = loc[1:]
        path = ".".join(loc) or "body"
        details.setdefault(path, str(error.get("msg", "Invalid value")))
    return details


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(EventsError)  # type: ignore[misc]
    async def events_error_handler(request: Request, exc: EventsError) -> JSONResponse:
        if exc.status_code >= 500:
            metrics.observe_store_error(exc.code)
            logger.error(
                "Request %s %s failed: [%s] %s",
                request.method,
                request.url.path,
                exc.code,
                exc.message,
            )
        details = exc.fields if isinstance(exc, ValidationError) else None
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(exc.code, exc.message, details),
        )

    @app.exception_handler(RequestValidationError)  # type: ignore[misc]
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        details = _request_error_details(exc)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=error_response("VALIDATION_ERROR", "Invalid request", details),
        )

    @app.exception_handler(StarletteHTTPException)  # type: ignore[misc]
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_response(code, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)  # type: ignore[misc]
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception occurred: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_response("INTERNAL_ERROR", "An unexpected error occurred"),
        )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Event management dashboard API: create, list, filter, "
        "update and delete events with ticketing stats, teams and tags.",
        version=settings.VERSION,
        openapi_url=f"{settings.API_PREFIX}/openapi.json",
        docs_url=f"{settings.API_PREFIX}/docs",
        redoc_url=f"{settings.API_PREFIX}/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    # One store handle per process; the engine is created on first use
    app.state.store = StoreHandle(settings)

    app.add_middleware(
        MonitoringMiddleware, enable_metrics=settings.monitoring.ENABLE_PROMETHEUS
    )
    if settings.BACKEND_CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(system.router)
    app.include_router(api_router, prefix=settings.API_PREFIX)
    register_exception_handlers(app)
    return app


app = create_app()
