"""FastAPI entry-point serving agent-powered internet diagnostics."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from netdiag.api.routes import router as diagnostics_router
from netdiag.config import config
from netdiag.runtime import get_dispatcher, get_llm_client

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = config.log_level) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI application."""
    if not config.anthropic.configured:
        logger.warning("ANTHROPIC_API_KEY not set; agent runs and analysis will fail")
    yield
    # Shutdown: stop running dispatches and release the provider connection pool
    await get_dispatcher().shutdown()
    await get_llm_client().aclose()


app = FastAPI(title="netdiag", lifespan=lifespan)
app.include_router(diagnostics_router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}


def run() -> None:
    configure_logging()
    logger.info("netdiag listening on http://%s:%d", config.host, config.port)
    uvicorn.run(app, host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    run()
