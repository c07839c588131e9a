from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from .config import MongoConfig


logger = logging.getLogger(__name__)


class DatabaseError(RuntimeError):
    ...


class Database:
    def __init__(self, config: MongoConfig, client_factory=AsyncMongoClient):
        self.config = config
        self._client_factory = client_factory
        self.client: Optional[Any] = None
        self.db: Optional[Any] = None

    @property
    def is_connected(self) -> bool:
        return self.db is not None

    async def connect(self) -> None:
        if not self.config.uri:
            raise DatabaseError("MONGODB_URI is not configured")
        try:
            self.client = self._client_factory(
                self.config.uri,
                serverSelectionTimeoutMS=self.config.server_selection_timeout_ms,
            )
            await self.client.admin.command("ping")
        except PyMongoError as exc:
            if self.client is not None:
                await self.client.close()
                self.client = None
            raise DatabaseError(f"Failed to connect to MongoDB: {exc}") from exc
        self.db = self.client.get_default_database(default=self.config.database)
        logger.info("Connected to MongoDB")

    async def disconnect(self) -> None:
        if self.client is None:
            return
        await self.client.close()
        self.client = None
        self.db = None
        logger.info("Disconnected from MongoDB")

    async def record_message(self, message: Dict[str, Any], received_at: datetime) -> None:
        if self.db is None:
            raise DatabaseError("Database is not connected")
        document = dict(message)
        document["received_at"] = received_at
        await self.db[self.config.messages_collection].insert_one(document)
