from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from problem_api import __version__
from problem_api.config.settings import get_settings
from problem_api.database.connection import close_db
from problem_api.middleware.error_handler import setup_error_handlers
from problem_api.middleware.request_id import RequestIDMiddleware
from problem_api.routers import maintenance_router, problems_router
from problem_api.services.backfill_service import BackfillService
from problem_api.services.outbox_service import OutboxWorker

logger = logging.getLogger("problem_api.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the background workers and release resources on shutdown."""
    settings = get_settings()
    workers = []

    if settings.background_workers_enabled:
        workers = [OutboxWorker.get_instance(), BackfillService.get_instance()]
        for worker in workers:
            await worker.start()
    else:
        logger.info("Background workers disabled")

    yield

    for worker in workers:
        await worker.stop()
    await close_db()


app = FastAPI(
    title="Problem Service",
    description="Problem reporting and technician assignment API",
    version=__version__,
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request with its status and duration."""
    start_time = time.time()
    path = request.url.path
    method = request.method

    # Health checks are too frequent to log
    skip_logging = method == "GET" and path == "/health"

    if not skip_logging:
        logger.info(f"🔔 {method} {path}")

    try:
        response = await call_next(request)

        process_time = time.time() - start_time
        status_code = response.status_code

        if status_code < 400:
            status_str = f"✅ {status_code}"
        elif status_code < 500:
            status_str = f"⚠️ {status_code}"
        else:
            status_str = f"❌ {status_code}"

        if not skip_logging:
            logger.info(f"🏁 {method} {path} - {status_str} - {process_time:.3f}s")
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.error(f"💥 {method} {path} - Exception: {str(e)} - Time: {process_time:.4f}s")
        raise


# Wraps log_requests so its lines carry the request id
app.add_middleware(RequestIDMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_error_handlers(app)

app.include_router(problems_router.router)
app.include_router(maintenance_router.router)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}
