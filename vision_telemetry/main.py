import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from vision_telemetry.config import APP_VERSION, Settings, get_settings
from vision_telemetry.routes.dashboard import router as dashboard_router
from vision_telemetry.routes.logs import router as logs_router
from vision_telemetry.routes.sessions import router as sessions_router
from vision_telemetry.schemas.telemetry import ErrorResponse
from vision_telemetry.services.telemetry_service import TelemetryService

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _error(status_code: int, message: str, headers: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=message).model_dump(by_alias=True),
        headers=headers,
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return _error(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"Invalid request: {where} {first.get('msg', '')}".strip()
    return _error(400, message)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    telemetry = getattr(request.app.state, "telemetry", None)
    if telemetry is not None:
        telemetry.log_server_error(
            exc,
            path=request.url.path,
            method=request.method,
            ip=request.client.host if request.client else None,
        )
    return _error(500, "Internal server error")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper(), format=LOG_FORMAT)

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        telemetry = TelemetryService(settings)
        application.state.telemetry = telemetry
        logger.info("Telemetry API ready, event logs in %s", telemetry.event_log.root)
        try:
            yield
        finally:
            telemetry.shutdown()

    application = FastAPI(
        title="Vision Telemetry API",
        version=APP_VERSION,
        description="Session, detection and interaction telemetry with a file-backed event trail.",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    application.include_router(sessions_router)
    application.include_router(dashboard_router)
    application.include_router(logs_router)

    application.add_exception_handler(StarletteHTTPException, http_error_handler)
    application.add_exception_handler(RequestValidationError, validation_error_handler)
    application.add_exception_handler(Exception, unhandled_error_handler)

    return application


app = create_app()
