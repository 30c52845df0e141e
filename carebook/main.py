# carebook/main.py
import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import InterfaceError, OperationalError
from starlette import status

from carebook.core.config import settings
from carebook.core.errors import BookingError
from carebook.core.logging_setup import setup_logging
from carebook.db.sql import init_db
from carebook.jobs.reminders import run_reminder_worker
from carebook.notifications import LoggingNotificationSink
from carebook.routers import appointments, health, schedules

logger = logging.getLogger(__name__)


# Define lifespan event
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: logging, tables, optional reminder worker.
    Shutdown: stop the worker.
    """
    setup_logging()
    await init_db()

    reminder_task = None
    if settings.REMINDERS_ENABLED:
        reminder_task = asyncio.create_task(run_reminder_worker(app.state.notification_sink))
    yield
    if reminder_task is not None:
        reminder_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await reminder_task


app = FastAPI(
    title="CareBook Scheduling API",
    lifespan=lifespan,
)
app.state.notification_sink = LoggingNotificationSink()


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.code, "message": exc.message},
    )


@app.exception_handler(OperationalError)
@app.exception_handler(InterfaceError)
async def database_unavailable_handler(request: Request, exc: Exception):
    logger.error("Database unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "database_unavailable"},
    )


# Routing
app.include_router(health.router, prefix=settings.API_PREFIX, tags=["health"])
app.include_router(schedules.router, prefix=settings.API_PREFIX, tags=["schedules"])
app.include_router(appointments.router, prefix=settings.API_PREFIX, tags=["appointments"])

@app.get("/")
def root():
    return {"message": "CareBook scheduling API running successfully"}
