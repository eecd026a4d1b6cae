import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, status

from shopilent.api.v1.orders import router as orders_router
from shopilent.api.v1.outbox import router as outbox_router
from shopilent.api.v1.payments import router as payments_router
from shopilent.consumers.outbox_poller import build_event_bus, run_outbox_processor
from shopilent.core.config import OUTBOX_ENABLED, PROJECT_NAME, VERSION
from shopilent.core.db import close_db, init_db
from shopilent.core.exception_handlers import setup_exception_handlers
from shopilent.core.log_config import setup_logging

log = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT_SECONDS = 10


async def stop_outbox_processor(drain_task: asyncio.Task, stop_event: asyncio.Event, timeout: float = SHUTDOWN_TIMEOUT_SECONDS):
    """Asks the drain loop to finish its batch; cancels it if it overruns the timeout."""
    stop_event.set()
    try:
        await asyncio.wait_for(asyncio.shield(drain_task), timeout=timeout)
    except asyncio.TimeoutError:
        log.warning("Outbox processor did not stop in time; cancelling.")
        drain_task.cancel()
        with suppress(asyncio.CancelledError):
            await drain_task


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles startup and shutdown events."""
    setup_logging()
    log.info("Starting %s v%s...", PROJECT_NAME, VERSION)
    await init_db()  # Connect to DB and generate schemas

    stop_event = asyncio.Event()
    drain_task = None
    if OUTBOX_ENABLED:
        drain_task = asyncio.create_task(run_outbox_processor(build_event_bus(), stop_event))

    yield

    if drain_task is not None:
        await stop_outbox_processor(drain_task, stop_event)
    await close_db()
    log.info("%s stopped.", PROJECT_NAME)


app = FastAPI(
    title=PROJECT_NAME,
    version=VERSION,
    lifespan=lifespan,
    # Configure API documentation and paths
    docs_url="/docs",
    redoc_url="/redoc"
)

# Include routers for modular API structure
app.include_router(orders_router, prefix="/api/v1/orders", tags=["Orders"])
app.include_router(payments_router, prefix="/api/v1/payments", tags=["Payments"])
app.include_router(outbox_router, prefix="/api/v1/outbox", tags=["Outbox Administration"])


setup_exception_handlers(app)


@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check():
    """Simple health check endpoint."""
    return {"status": "ok", "app_name": PROJECT_NAME}
