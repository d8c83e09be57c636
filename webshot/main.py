"""Main entry point for the screenshot service."""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles

from webshot import __version__
from webshot.api.routes import STATIC_DIR, router
from webshot.browser.orchestrator import CaptureOrchestrator
from webshot.core.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the capture orchestrator and release pooled browsers on shutdown."""
    orchestrator = CaptureOrchestrator.from_settings(settings)
    app.state.orchestrator = orchestrator
    logger.info(
        f"Capture service ready (engine={settings.browser_engine}, "
        f"policy={settings.session_policy})"
    )
    try:
        yield
    finally:
        await orchestrator.close()
        logger.info("Shutdown complete")


app = FastAPI(title="webshot", version=__version__, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"]
)
app.add_middleware(GZipMiddleware)
app.mount("/public", StaticFiles(directory=STATIC_DIR), name="public")
app.include_router(router)


def run() -> None:
    """Serve the app with uvicorn."""
    uvicorn.run(
        "webshot.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level
    )


if __name__ == "__main__":
    run()
