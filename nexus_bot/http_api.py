from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from .config import AppConfig, load_config
from .database import Database, DatabaseError
from .handlers import make_message_handler
from .keepalive import KeepAlive
from .session import SessionStore
from .whatsapp import WhatsAppConnection


logger = logging.getLogger(__name__)


def _log_unhandled(loop: asyncio.AbstractEventLoop, context: Dict[str, Any]) -> None:
    logger.error(
        "Unhandled error: %s",
        context.get("message", "unknown"),
        exc_info=context.get("exception"),
    )


def create_app(
    root_dir: Optional[Path] = None,
    config: Optional[AppConfig] = None,
    database: Optional[Database] = None,
    connection: Optional[WhatsAppConnection] = None,
    keepalive: Optional[KeepAlive] = None,
) -> FastAPI:
    base_dir = root_dir or Path(__file__).resolve().parents[1]
    config = config or load_config(base_dir)
    app = FastAPI(title=f"{config.bot.name} WhatsApp bot")

    database = database or Database(config.mongo)
    if connection is None:
        connection = WhatsAppConnection(
            config=config,
            sessions=SessionStore(config.whatsapp.session_dir),
            message_handler=make_message_handler(database, config.bot.timezone),
        )
    keepalive = keepalive or KeepAlive(config.server.local_url, config.server.keepalive_interval)

    app.state.config = config
    app.state.database = database
    app.state.connection = connection
    app.state.keepalive = keepalive

    @app.on_event("startup")
    async def _startup() -> None:
        asyncio.get_running_loop().set_exception_handler(_log_unhandled)
        try:
            await database.connect()
        except DatabaseError as exc:
            logger.error("%s", exc)
            raise
        try:
            await connection.connect()
        except Exception:
            await database.disconnect()
            raise
        keepalive.start()
        logger.info("Server running on port %s", config.server.port)

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        logger.info("%s Bot shutting down...", config.bot.short_name)
        try:
            await keepalive.stop()
            await connection.disconnect()
            await database.disconnect()
        except Exception as exc:
            logger.error("Error during shutdown: %s", exc, exc_info=True)

    @app.api_route("/", methods=["GET", "HEAD"], response_class=PlainTextResponse)
    async def index() -> str:
        return f"{config.bot.short_name} WhatsApp bot is running!"

    @app.get("/status")
    async def status() -> Dict[str, Any]:
        return {
            "name": config.bot.name,
            "whatsapp": connection.status,
            "database": database.is_connected,
        }

    return app
