"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routes import get_capture_queue, router
from src.jobs.queue import CaptureQueue
from src.utils.logging import AccessLogMiddleware, get_logger, setup_logging

# Setup logging first
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown events."""
    logger.info("Starting Gated Document Capture API", version="0.1.0")

    from src.browser.chrome import chrome_launcher
    from src.browser.manager import browser_manager
    from src.jobs.queue import capture_queue

    await capture_queue.start()
    logger.info("Capture queue started")

    yield

    # Cleanup
    logger.info("Shutting down...")
    await capture_queue.stop()
    await browser_manager.cleanup()
    await chrome_launcher.terminate_all()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Gated Document Capture API",
    description="Captures gated online document viewers page by page into a PDF",
    version="0.1.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add access logging middleware
app.add_middleware(AccessLogMiddleware)

# Include API routes
app.include_router(router)


@app.get("/health")
async def health_check(queue: CaptureQueue = Depends(get_capture_queue)) -> dict[str, Any]:
    """Health check endpoint with admission status and job counts."""
    from src.browser.manager import browser_manager
    from src.browser.resource_pool import port_pool

    return {
        "status": "healthy",
        "scheduler": queue.scheduler.status(),
        "jobs": queue.store.stats(),
        "active_sessions": browser_manager.active_session_count,
        "free_devtools_ports": port_pool.free_count,
    }
