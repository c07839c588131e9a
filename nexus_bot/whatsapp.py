from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from nio import (
    AsyncClient,
    AsyncClientConfig,
    LoginError,
    MatrixRoom,
    RoomCreateError,
    RoomMessageText,
    RoomSendError,
    SyncError,
    SyncResponse,
)

from .config import AppConfig
from .session import AuthState, SessionStore, apply_session_data
from .utils import puppet_user_id, server_from_user_id


logger = logging.getLogger(__name__)

LOGGED_OUT = "M_UNKNOWN_TOKEN"


class WhatsAppError(RuntimeError):
    ...


class WhatsAppAuthError(WhatsAppError):
    ...


@dataclass
class ConnectionUpdate:
    connection: str
    error: Optional[str] = None
    status_code: Optional[str] = None

    @property
    def should_reconnect(self) -> bool:
        return self.status_code != LOGGED_OUT


@dataclass
class InboundMessage:
    message_id: str
    chat_id: str
    sender: str
    body: str
    timestamp: int
    from_me: bool = False
    is_group: bool = False

    def to_document(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class MessagesUpsert:
    type: str
    messages: List[InboundMessage] = field(default_factory=list)


MessageHandler = Callable[["WhatsAppConnection", InboundMessage], Awaitable[None]]


class WhatsAppConnection:
    def __init__(
        self,
        config: AppConfig,
        sessions: SessionStore,
        message_handler: MessageHandler,
        client_factory=AsyncClient,
    ):
        self.config = config
        self.sessions = sessions
        self.message_handler = message_handler
        self._client_factory = client_factory
        self.client: Optional[Any] = None
        self.state = AuthState()
        self.status = "close"
        self._sync_task: Optional[asyncio.Task] = None
        self._history_sync = False
        self._bootstrapped = False

    async def connect(self) -> None:
        if not self.config.whatsapp.homeserver:
            raise WhatsAppError("MATRIX_HOMESERVER is not configured")
        self.status = "connecting"

        state = self.sessions.load()
        if self.config.whatsapp.session_data and not self._bootstrapped:
            apply_session_data(state, self.config.whatsapp.session_data)
        self.state = state
        self._bootstrapped = True

        if self.client is not None:
            await self.client.close()
        self.client = self._build_client(state)
        self.client.add_event_callback(self._on_room_message, RoomMessageText)

        await self._authenticate(state)
        self._history_sync = not self.client.next_batch
        self._sync_task = asyncio.create_task(self._sync_loop())

    async def disconnect(self) -> None:
        if self._sync_task:
            self._sync_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sync_task
            self._sync_task = None
        if self.client is not None:
            await self.client.close()
            self.client = None
        self.status = "close"

    async def send_text(self, room_id: str, text: str) -> Any:
        if self.client is None:
            raise WhatsAppError("Not connected")
        resp = await self.client.room_send(
            room_id=room_id,
            message_type="m.room.message",
            content={"msgtype": "m.text", "body": text},
        )
        if isinstance(resp, RoomSendError):
            raise WhatsAppError(resp.message)
        return resp

    async def send_to_owner(self, text: str) -> Any:
        owner = self.config.bot.owner
        if not owner:
            logger.info("No owner number configured, not sending %r", text)
            return None
        server = server_from_user_id(self.client.user_id)
        puppet = puppet_user_id(self.config.whatsapp.puppet_template, owner, server)
        if puppet is None:
            raise WhatsAppError(f"Invalid owner number {owner!r}")
        room_id = self._direct_room_with(puppet) or await self._create_direct_room(puppet)
        return await self.send_text(room_id, text)

    def _build_client(self, state: AuthState) -> Any:
        whatsapp = self.config.whatsapp
        return self._client_factory(
            whatsapp.homeserver,
            user=state.creds.get("user_id") or whatsapp.user_id,
            device_id=state.creds.get("device_id"),
            store_path=str(self.sessions.keys_dir),
            config=AsyncClientConfig(
                encryption_enabled=whatsapp.encryption,
                store_sync_tokens=False,
            ),
            ssl=whatsapp.verify_ssl,
        )

    async def _authenticate(self, state: AuthState) -> None:
        whatsapp = self.config.whatsapp
        if state.has_token:
            user_id = state.creds.get("user_id") or whatsapp.user_id
            if not user_id:
                raise WhatsAppAuthError("Stored session has no user id")
            self.client.restore_login(
                user_id=user_id,
                device_id=state.creds.get("device_id"),
                access_token=state.creds["access_token"],
            )
            if state.creds.get("next_batch"):
                self.client.next_batch = state.creds["next_batch"]
            logger.info("Restored session for %s", user_id)
            return

        if not whatsapp.password:
            raise WhatsAppAuthError("No stored session and no MATRIX_PASSWORD configured")
        resp = await self.client.login(password=whatsapp.password, device_name=whatsapp.device_name)
        if isinstance(resp, LoginError):
            raise WhatsAppAuthError(f"Login failed: {resp.message}")
        state.creds.update(
            user_id=resp.user_id,
            device_id=resp.device_id,
            access_token=resp.access_token,
        )
        state.creds.pop("next_batch", None)
        logger.info("Logged in as %s (device %s)", resp.user_id, resp.device_id)
        self._on_creds_update()

    async def _sync_loop(self) -> None:
        first = True
        while True:
            try:
                resp = await self.client.sync(
                    timeout=self.config.whatsapp.sync_timeout_ms,
                    full_state=first,
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("Sync failed: %s", exc, exc_info=True)
                await self._on_connection_update(ConnectionUpdate("close", error=str(exc)))
                return
            if isinstance(resp, SyncError):
                await self._on_connection_update(
                    ConnectionUpdate("close", error=resp.message, status_code=resp.status_code)
                )
                return
            self._history_sync = False
            if first:
                first = False
                await self._on_connection_update(ConnectionUpdate("open"))
            self._on_sync(resp)

    async def _on_connection_update(self, update: ConnectionUpdate) -> None:
        self.status = update.connection
        if update.connection == "close":
            should_reconnect = update.should_reconnect and self.config.bot.auto_reconnect
            logger.info(
                "Connection closed due to %s, reconnecting %s",
                update.error or update.status_code,
                should_reconnect,
            )
            if not update.should_reconnect:
                logger.warning("Session was logged out, clearing stored credentials")
                self.sessions.clear()
            if should_reconnect:
                await self._reconnect()
        elif update.connection == "open":
            logger.info("Connected to WhatsApp")
            try:
                await self.send_to_owner(f"{self.config.bot.short_name} Bot is connected and ready to use!")
            except Exception as exc:
                logger.error("Error sending ready message: %s", exc, exc_info=True)

    async def _reconnect(self) -> None:
        while True:
            await asyncio.sleep(self.config.bot.auto_reconnect_interval)
            try:
                await self.connect()
                return
            except WhatsAppAuthError as exc:
                logger.error("Giving up reconnecting: %s", exc)
                self.status = "close"
                return
            except Exception as exc:
                logger.error("Reconnect failed: %s", exc, exc_info=True)

    def _on_sync(self, response: SyncResponse) -> None:
        next_batch = getattr(response, "next_batch", None)
        if next_batch and next_batch != self.state.creds.get("next_batch"):
            self.state.creds["next_batch"] = next_batch
            self._on_creds_update()

    def _on_creds_update(self) -> None:
        try:
            self.sessions.save_creds(self.state)
        except OSError as exc:
            logger.error("Error saving credentials: %s", exc, exc_info=True)

    async def _on_room_message(self, room: MatrixRoom, event: RoomMessageText) -> None:
        message = InboundMessage(
            message_id=event.event_id,
            chat_id=room.room_id,
            sender=event.sender,
            body=event.body,
            timestamp=event.server_timestamp,
            from_me=event.sender == self.client.user_id,
            is_group=room.member_count > 2,
        )
        upsert_type = "append" if self._history_sync else "notify"
        await self._on_messages_upsert(MessagesUpsert(type=upsert_type, messages=[message]))

    async def _on_messages_upsert(self, upsert: MessagesUpsert) -> None:
        if upsert.type != "notify":
            return
        for message in upsert.messages:
            if message.from_me:
                continue
            try:
                await self.message_handler(self, message)
            except Exception as exc:
                logger.error("Error in message handler: %s", exc, exc_info=True)

    def _direct_room_with(self, user_id: str) -> Optional[str]:
        for room_id, room in self.client.rooms.items():
            members = set(room.users) | set(room.invited_users)
            if user_id in members and room.member_count <= 2:
                return room_id
        return None

    async def _create_direct_room(self, user_id: str) -> str:
        resp = await self.client.room_create(is_direct=True, invite=[user_id])
        if isinstance(resp, RoomCreateError):
            raise WhatsAppError(resp.message)
        logger.info("Created direct room %s with %s", resp.room_id, user_id)
        return resp.room_id
