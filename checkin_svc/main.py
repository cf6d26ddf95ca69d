from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .db import init_db
from .core.config import get_settings
from .core.logging import setup_logging
from .core.nats import ensure_nats_connected, nats_close
from .core.redis import ping_redis, close_redis
from .routers import attendees, imports, scans, stats
from .services.stats import refresh_stats_in_background

setup_logging()
logger = logging.getLogger(__name__)
settings = get_settings()

@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info("Database ready")

    # best-effort connect to infra; service still runs if these fail
    if settings.nats_enabled:
        await ensure_nats_connected()
    if settings.rl_enabled:
        await ping_redis()

    scheduler = AsyncIOScheduler()
    if settings.stats_scheduler_enabled:
        # periodic rebuild of the stats projection (scans also trigger one)
        scheduler.add_job(refresh_stats_in_background, "interval", seconds=settings.stats_refresh_interval_sec)
    if settings.nats_enabled:
        scheduler.add_job(ensure_nats_connected, "interval", seconds=settings.nats_retry_interval_sec)
    if scheduler.get_jobs():
        scheduler.start()

    yield

    if scheduler.running:
        scheduler.shutdown(wait=False)
    await nats_close()
    await close_redis()
    logger.info("Shut down")

app = FastAPI(title="event-checkin-svc", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(RequestValidationError)
async def request_validation_error(request: Request, exc: RequestValidationError):
    # same {code, message} shape as the service-raised ValidationError
    errors = exc.errors()
    first = errors[0] if errors else {}
    where = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
    msg = first.get("msg", "Invalid request")
    message = f"{where}: {msg}" if where else msg
    return JSONResponse(status_code=422, content={"detail": {"code": "validation_error", "message": message}})

app.include_router(scans.router)
app.include_router(imports.router)
app.include_router(attendees.router)
app.include_router(stats.router)

@app.get("/health")
async def health():
    return {"status": "ok", "service": "event-checkin-svc"}

Instrumentator().instrument(app).expose(app)
