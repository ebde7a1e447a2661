"""FastAPI application for the tenant portal."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from telegram import Bot

from pgportal.api.portal import router as portal_router
from pgportal.config import PortalConfig, get_portal_config
from pgportal.models import PaymentRecord
from pgportal.services.change_feed import ChangeFeed
from pgportal.services.db import create_engine, create_session_factory, create_tables
from pgportal.services.ledger_binding import PAYMENTS_RESOURCE
from pgportal.services.ledger_store import LedgerStore

logger = logging.getLogger(__name__)


async def _start_bot(token: str) -> Optional[Bot]:
    """Initialize the Telegram bot used for payment feedback, if configured."""
    if not token:
        return None
    bot = Bot(token)
    try:
        await bot.initialize()
    except Exception as e:
        logger.error("Failed to initialize Telegram bot, feedback goes to the log: %s", e, exc_info=True)
        return None
    logger.info("Telegram feedback bot initialized")
    return bot


def create_app(config: Optional[PortalConfig] = None) -> FastAPI:
    """Build the portal application.

    Args:
        config: Portal configuration (default: loaded from environment)

    Returns:
        FastAPI app whose lifespan owns the engine, store and change feed
    """
    config = config or get_portal_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = create_engine(config.database_url)
        await create_tables(engine)

        feed = ChangeFeed()
        feed.watch(PaymentRecord, PAYMENTS_RESOURCE)

        app.state.config = config
        app.state.change_feed = feed
        app.state.ledger_store = LedgerStore(create_session_factory(engine))
        app.state.bot = await _start_bot(config.telegram_bot_token)
        logger.info("Portal started: database=%s", config.database_url)
        try:
            yield
        finally:
            feed.close()
            if app.state.bot is not None:
                await app.state.bot.shutdown()
            await engine.dispose()
            logger.info("Portal shutdown complete")

    app = FastAPI(
        title="PG Tenant Portal",
        description="Rent status, payments and live ledger views for paying-guest tenants",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(portal_router)

    @app.get("/health")
    async def health_check() -> dict:
        """Health check endpoint for monitoring."""
        return {"status": "ok"}

    return app


__all__ = ["create_app"]
