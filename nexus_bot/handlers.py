from __future__ import annotations

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from .database import Database
from .whatsapp import InboundMessage, MessageHandler, WhatsAppConnection


logger = logging.getLogger(__name__)


def make_message_handler(database: Database, timezone: str) -> MessageHandler:
    """Default inbound handler: log the message and record it in the database."""
    tz = ZoneInfo(timezone)

    async def handle_message(connection: WhatsAppConnection, message: InboundMessage) -> None:
        logger.info("Message %s from %s in %s", message.message_id, message.sender, message.chat_id)
        await database.record_message(message.to_document(), received_at=datetime.now(tz))

    return handle_message
