"""
FastAPI app entrypoint.

Theft reports with geospatial alert fan-out, alert inbox, realtime stream, push delivery job.
"""
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from apscheduler.schedulers.background import BackgroundScheduler
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Load .env from backend/ before any app code
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

from theftwatch.api.routes import admin, notifications, push, realtime, reports, storage, users
from theftwatch.config import settings
from theftwatch.core.constants import PUSH_INTERVAL_SECONDS, PUSH_JOB_ID
from theftwatch.core.errors import TheftWatchError, theftwatch_error_handler
from theftwatch.scheduler.push_job import run_push_pending_alerts_job
from theftwatch.services.realtime import registry

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Scheduler: deliver pending alerts by push every minute
_scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app: FastAPI):
    _scheduler.add_job(
        run_push_pending_alerts_job,
        "interval",
        seconds=PUSH_INTERVAL_SECONDS,
        id=PUSH_JOB_ID,
        replace_existing=True,
    )
    _scheduler.start()
    app.state.scheduler = _scheduler
    app.state.realtime = registry
    logger.info("Backend ready; push job every %ss", PUSH_INTERVAL_SECONDS)
    yield
    _scheduler.shutdown(wait=False)
    registry.clear()


app = FastAPI(title="TheftWatch", version="0.1.0", lifespan=lifespan)

# CORS: dev origins + optional CORS_ORIGINS env (comma-separated) for production frontend
_cors_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:8080",
    "http://127.0.0.1:8080",
]
_cors_extra = settings.cors_origins or os.getenv("CORS_ORIGINS", "")
if _cors_extra:
    _cors_origins.extend(o.strip() for o in _cors_extra.split(",") if o.strip())
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(TheftWatchError, theftwatch_error_handler)

app.include_router(reports.router, tags=["reports"])
app.include_router(users.router, tags=["users"])
app.include_router(notifications.router, tags=["notifications"])
app.include_router(push.router, tags=["push"])
app.include_router(realtime.router, tags=["realtime"])
app.include_router(storage.router, tags=["storage"])
app.include_router(admin.router, tags=["admin"])


@app.get("/", include_in_schema=False)
def root():
    """Root: point to API docs and health."""
    return {"message": "TheftWatch API", "docs": "/docs", "health": "/health"}


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
