"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cronograma.api import cronograma
from cronograma.config import config
from cronograma.dependencies import shutdown_browser
from cronograma.schemas import HealthResponse

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan hooks.

    The shared Chromium session is launched lazily by the first lookup and
    closed here on shutdown.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control is yielded back to FastAPI to run the app.
    """
    logger.info("Starting cronograma backend (profile=%s)", config.DEPLOYMENT_PROFILE)
    yield
    logger.info("Shutting down cronograma backend")
    await shutdown_browser()


app = FastAPI(
    title="cronograma backend",
    description="Scrapes the class-schedule portal with headless Chromium and serves it with short-lived caching",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(cronograma.router)


@app.get("/")
def read_root():
    """Return service metadata.

    Returns:
        dict: Basic service information for smoke testing.
    """
    return {
        "message": "cronograma backend",
        "version": VERSION,
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health", response_model=HealthResponse)
def health_check():
    """Return a health probe response.

    Returns:
        HealthResponse: Always ``{"ok": true}`` while the process runs.
    """
    return HealthResponse()


def run() -> None:
    """Configure logging and serve the app with uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    uvicorn.run(app, host=config.HOST, port=config.PORT, log_level=config.LOG_LEVEL.lower())


if __name__ == "__main__":
    run()
