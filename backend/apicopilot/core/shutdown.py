"""
Application lifespan for API Copilot.
Builds the shared chat engine on startup and releases its resources on shutdown.
"""

import logging
from contextlib import asynccontextmanager

import httpx

from apicopilot.core.background import get_background_runner
from apicopilot.core.config import settings
from apicopilot.core.exceptions import ProviderNotConfiguredError

logger = logging.getLogger("apicopilot.shutdown")


@asynccontextmanager
async def lifespan_manager(app):
    """
    FastAPI lifespan context manager for startup/shutdown.

    Usage:
        app = FastAPI(lifespan=lifespan_manager)
    """
    from apicopilot.db.session import engine, AsyncSessionLocal
    from apicopilot.services.chat_service import build_chat_service

    logger.info("Application starting up...")
    background = get_background_runner()
    http_client = httpx.AsyncClient(timeout=httpx.Timeout(settings.TOOL_HTTP_TIMEOUT))

    try:
        app.state.chat_service = build_chat_service(AsyncSessionLocal, http_client, background)
    except ProviderNotConfiguredError as e:
        # Health and docs stay up; chat routes answer 503 until a key is configured
        logger.warning(f"Chat engine disabled: {e}")
        app.state.chat_service = None

    logger.info("Application startup complete")

    try:
        yield
    finally:
        logger.info("Application shutting down...")
        await background.drain()
        await http_client.aclose()
        logger.info("Closing database connections...")
        await engine.dispose()
        logger.info("Graceful shutdown complete")
