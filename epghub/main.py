from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from epghub.config import setup_logging
from epghub.database import close_db, init_db
from epghub.exceptions import EpgError, FeedDownloadError, FeedParseError, UnrecognizedFeedError
from epghub.schemas import ErrorDetail, StandardErrorResponse
from epghub.services.notifications import Notification
from epghub.services.provider_service import ProviderService
from epghub.services.scheduler_service import EPGScheduler

from epghub.routers import main_router


setup_logging()
logger = logging.getLogger(__name__)


def _log_notification(notification: Notification) -> None:
    if notification.message:
        logger.info("[%s] %s", notification.provider_id or "-", notification.message)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events"""
    logger.info("Starting EPG Hub...")

    try:
        logger.info("Initializing database...")
        await init_db()

        provider_service = ProviderService()
        provider_service.notifier.subscribe(_log_notification)
        app.state.provider_service = provider_service

        logger.info("Starting scheduler...")
        scheduler = EPGScheduler(provider_service)
        scheduler.start()
        app.state.scheduler = scheduler

        logger.info("EPG Hub started successfully")
    except Exception as e:
        logger.error(f"Failed to start EPG Hub: {e}", exc_info=True)
        raise

    yield

    logger.info("Shutting down EPG Hub...")

    try:
        app.state.scheduler.shutdown()
        logger.info("Scheduler stopped")
    except Exception as e:
        logger.error(f"Error during scheduler shutdown: {e}", exc_info=True)

    await close_db()
    logger.info("EPG Hub stopped")


app = FastAPI(
    title="EPG Hub",
    version="0.1.0",
    lifespan=lifespan
)

app.include_router(main_router)


_ERROR_STATUS: dict[type[EpgError], tuple[int, str]] = {
    FeedDownloadError: (502, "DOWNLOAD_FAILED"),
    UnrecognizedFeedError: (422, "NOT_XMLTV"),
    FeedParseError: (422, "PARSE_FAILED"),
}


@app.exception_handler(EpgError)
async def epg_error_handler(request: Request, exc: EpgError):
    """Map pipeline errors to a standard error body"""
    status_code, code = _ERROR_STATUS.get(type(exc), (500, "EPG_ERROR"))
    logger.error(f"{code} for {request.method} {request.url.path}: {exc}")

    context = None
    if isinstance(exc, FeedDownloadError):
        context = {"kind": exc.kind.value, "status_code": exc.status_code}

    body = StandardErrorResponse(
        timestamp=datetime.now(timezone.utc).isoformat(),
        error=ErrorDetail(code=code, message=str(exc), context=context),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Log validation errors with details"""
    logger.error(f"Validation error for {request.method} {request.url.path}")
    logger.error(f"Validation details: {exc.errors()}")

    errors = []
    for error in exc.errors():
        error_dict = {
            "type": error.get("type"),
            "loc": error.get("loc"),
            "msg": error.get("msg"),
            "input": str(error.get("input", ""))[:100]
        }
        errors.append(error_dict)

    return JSONResponse(
        status_code=422,
        content={
            "detail": errors
        }
    )
