from __future__ import annotations

import asyncio
import base64
import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from nio import LoginResponse

from nexus_bot.config import AppConfig, BotConfig, MongoConfig, ServerConfig, WhatsAppConfig


def encode_session(payload: Any) -> str:
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("utf-8")


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    return AppConfig(
        bot=BotConfig(owner="+234 801 234 5678", auto_reconnect_interval=0),
        server=ServerConfig(port=3000, keepalive_interval=0.01),
        mongo=MongoConfig(uri="mongodb://localhost:27017/nexus"),
        whatsapp=WhatsAppConfig(
            homeserver="https://matrix.example.org",
            user_id="@bot:example.org",
            password="hunter2",
            session_dir=tmp_path / "auth_info",
        ),
    )


class FakeRoom:
    def __init__(self, room_id: str, users: List[str], invited: Optional[List[str]] = None):
        self.room_id = room_id
        self.users = {user: None for user in users}
        self.invited_users = {user: None for user in invited or []}

    @property
    def member_count(self) -> int:
        return len(self.users) + len(self.invited_users)


class FakeClient:
    """Stands in for ``nio.AsyncClient``; sync results are scripted per test."""

    instances: List["FakeClient"] = []

    def __init__(self, homeserver, user="", device_id=None, store_path="", config=None, ssl=None):
        self.homeserver = homeserver
        self.user = user
        self.user_id = user
        self.device_id = device_id
        self.store_path = store_path
        self.config = config
        self.ssl = ssl
        self.access_token = ""
        self.next_batch = None
        self.rooms: Dict[str, FakeRoom] = {}
        self.callbacks: List[Any] = []
        self.sync_results: List[Any] = []
        self.sent: List[Dict[str, Any]] = []
        self.created: List[Dict[str, Any]] = []
        self.closed = False
        self.login_calls: List[Dict[str, Any]] = []
        self.login_result: Any = LoginResponse("@bot:example.org", "DEVICE1", "token-1")
        self.synced = asyncio.Event()
        FakeClient.instances.append(self)

    def add_event_callback(self, callback, filter):
        self.callbacks.append((callback, filter))

    def restore_login(self, user_id, device_id, access_token):
        self.user_id = user_id
        self.device_id = device_id
        self.access_token = access_token

    async def login(self, password=None, device_name=""):
        self.login_calls.append({"password": password, "device_name": device_name})
        if isinstance(self.login_result, LoginResponse):
            self.user_id = self.login_result.user_id
            self.access_token = self.login_result.access_token
        return self.login_result

    async def sync(self, timeout=None, full_state=False):
        if not self.sync_results:
            self.synced.set()
            await asyncio.Event().wait()
        result = self.sync_results.pop(0)
        if isinstance(result, BaseException):
            raise result
        if callable(result):
            result = await result(self)
        return result

    async def room_send(self, room_id, message_type, content):
        self.sent.append({"room_id": room_id, "type": message_type, "content": content})
        return SimpleNamespace(event_id=f"$sent{len(self.sent)}", room_id=room_id)

    async def room_create(self, is_direct=False, invite=()):
        self.created.append({"is_direct": is_direct, "invite": list(invite)})
        room_id = f"!dm{len(self.created)}:example.org"
        self.rooms[room_id] = FakeRoom(room_id, [self.user_id], invited=list(invite))
        return SimpleNamespace(room_id=room_id)

    async def close(self):
        self.closed = True


@pytest.fixture
def fake_client_factory():
    FakeClient.instances = []
    return FakeClient
