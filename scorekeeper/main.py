import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException

from scorekeeper.core.config import settings, validate_config
from scorekeeper.core.logging import configure_logging
from scorekeeper.core.middleware.request_id import RequestIdMiddleware
from scorekeeper.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from scorekeeper.api import activity, health, progress, season, streaks

configure_logging(settings.ENV)
validate_config(strict=getattr(settings, "CONFIG_STRICT", False))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("scorekeeper")
    logger.info("Starting scorekeeper...")
    app.state.startup_time = time.time()
    try:
        yield
    finally:
        logging.getLogger("scorekeeper").info("Stopping scorekeeper...")


app = FastAPI(title="Scorekeeper - streak & season scoring", lifespan=lifespan)

app.add_middleware(RequestIdMiddleware)

app.add_exception_handler(AppError, app_error_handler)
app.add_exception_handler(HTTPException, http_error_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

app.include_router(health.router)
app.include_router(streaks.router, tags=["streaks"])
app.include_router(activity.router, tags=["activity"])
app.include_router(season.router, tags=["season"])
app.include_router(progress.router, tags=["progress"])
