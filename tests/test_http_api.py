"""Tests for http_api.py."""

import pytest
from fastapi.testclient import TestClient

from nexus_bot.database import DatabaseError
from nexus_bot.http_api import create_app
from nexus_bot.whatsapp import WhatsAppAuthError


class Recorder:
    def __init__(self):
        self.calls = []


class FakeDatabase:
    def __init__(self, recorder, fail=False):
        self.recorder = recorder
        self.fail = fail
        self.is_connected = False

    async def connect(self):
        self.recorder.calls.append("database.connect")
        if self.fail:
            raise DatabaseError("Failed to connect to MongoDB: no servers")
        self.is_connected = True

    async def disconnect(self):
        self.recorder.calls.append("database.disconnect")
        self.is_connected = False


class FakeConnection:
    def __init__(self, recorder):
        self.recorder = recorder
        self.status = "close"

    async def connect(self):
        self.recorder.calls.append("whatsapp.connect")
        self.status = "open"

    async def disconnect(self):
        self.recorder.calls.append("whatsapp.disconnect")
        self.status = "close"


class FakeKeepAlive:
    def __init__(self, recorder):
        self.recorder = recorder

    def start(self):
        self.recorder.calls.append("keepalive.start")

    async def stop(self):
        self.recorder.calls.append("keepalive.stop")


def build_app(app_config, fail_database=False):
    recorder = Recorder()
    app = create_app(
        config=app_config,
        database=FakeDatabase(recorder, fail=fail_database),
        connection=FakeConnection(recorder),
        keepalive=FakeKeepAlive(recorder),
    )
    return app, recorder


def test_index_keeps_host_happy(app_config):
    app, _ = build_app(app_config)
    client = TestClient(app)

    response = client.get("/")

    assert response.status_code == 200
    assert response.text == "NexusCoders WhatsApp bot is running!"
    assert client.head("/").status_code == 200


def test_lifecycle_order(app_config):
    app, recorder = build_app(app_config)

    with TestClient(app) as client:
        assert recorder.calls == ["database.connect", "whatsapp.connect", "keepalive.start"]
        assert client.get("/status").json() == {
            "name": "NexusCoders-MD",
            "whatsapp": "open",
            "database": True,
        }

    assert recorder.calls[3:] == ["keepalive.stop", "whatsapp.disconnect", "database.disconnect"]


def test_database_failure_aborts_startup(app_config):
    app, recorder = build_app(app_config, fail_database=True)

    with pytest.raises(DatabaseError):
        with TestClient(app):
            pass

    assert "whatsapp.connect" not in recorder.calls


def test_status_before_startup(app_config):
    app, _ = build_app(app_config)

    response = TestClient(app).get("/status")

    assert response.json() == {"name": "NexusCoders-MD", "whatsapp": "close", "database": False}


def test_default_wiring(app_config):
    app = create_app(config=app_config)

    assert app.state.connection.sessions.directory == app_config.whatsapp.session_dir
    assert app.state.keepalive.url == "http://localhost:3000"
    assert app.state.database.config is app_config.mongo


class FailingConnection(FakeConnection):
    async def connect(self):
        self.recorder.calls.append("whatsapp.connect")
        raise WhatsAppAuthError("No stored session and no MATRIX_PASSWORD configured")


def test_whatsapp_failure_releases_database(app_config):
    recorder = Recorder()
    app = create_app(
        config=app_config,
        database=FakeDatabase(recorder),
        connection=FailingConnection(recorder),
        keepalive=FakeKeepAlive(recorder),
    )

    with pytest.raises(WhatsAppAuthError):
        with TestClient(app):
            pass

    assert recorder.calls == ["database.connect", "whatsapp.connect", "database.disconnect"]
