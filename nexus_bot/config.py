from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional


@dataclass
class BotConfig:
    name: str = "NexusCoders-MD"
    owner: Optional[str] = None
    timezone: str = "Africa/Lagos"
    auto_reconnect: bool = True
    auto_reconnect_interval: float = 5.0
    log_level: str = "info"

    @property
    def short_name(self) -> str:
        return self.name.split("-")[0]


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3000
    keepalive_interval: float = 5 * 60

    @property
    def local_url(self) -> str:
        return f"http://localhost:{self.port}"


@dataclass
class MongoConfig:
    uri: str = ""
    database: str = "nexusbot"
    server_selection_timeout_ms: int = 5000
    messages_collection: str = "messages"


@dataclass
class WhatsAppConfig:
    homeserver: str = ""
    user_id: str = ""
    password: Optional[str] = None
    device_name: str = "NexusCoders-MD"
    session_dir: Path = Path("auth_info")
    session_data: Optional[str] = None
    puppet_template: str = "@whatsapp_{number}:{server}"
    sync_timeout_ms: int = 30000
    verify_ssl: bool = True
    encryption: bool = False


@dataclass
class AppConfig:
    bot: BotConfig
    server: ServerConfig
    mongo: MongoConfig
    whatsapp: WhatsAppConfig


ENV_KEYS = (
    "BOT_NAME",
    "OWNER_NUMBER",
    "TIMEZONE",
    "AUTO_RECONNECT",
    "AUTO_RECONNECT_INTERVAL",
    "LOG_LEVEL",
    "HOST",
    "PORT",
    "KEEPALIVE_INTERVAL",
    "MONGODB_URI",
    "MONGODB_DATABASE",
    "MONGODB_TIMEOUT_MS",
    "MATRIX_HOMESERVER",
    "MATRIX_USER_ID",
    "MATRIX_PASSWORD",
    "DEVICE_NAME",
    "SESSION_DIR",
    "SESSION_DATA",
    "PUPPET_TEMPLATE",
    "SYNC_TIMEOUT_MS",
    "VERIFY_SSL",
    "ENCRYPTION",
)

TRUTHY = {"1", "true", "yes", "on"}


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUTHY


def _as_number(raw: Mapping[str, Any], key: str, default: float, kind=float):
    value = raw.get(key)
    if value is None or value == "":
        return kind(default)
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid value for {key}: {value!r}") from None


def _resolve_dir(root_dir: Path, path: str) -> Path:
    resolved = Path(path).expanduser()
    if not resolved.is_absolute():
        resolved = root_dir / resolved
    return resolved.resolve()


def load_config(
    root_dir: Path,
    config_path: str = "config.json",
    environ: Optional[Mapping[str, str]] = None,
) -> AppConfig:
    environ = os.environ if environ is None else environ
    raw: Dict[str, Any] = {}
    config_file = root_dir / config_path
    if config_file.exists():
        raw.update(_load_json(config_file))
    raw.update({key: environ[key] for key in ENV_KEYS if environ.get(key)})

    bot_cfg = BotConfig(
        name=raw.get("BOT_NAME", BotConfig.name),
        owner=raw.get("OWNER_NUMBER") or None,
        timezone=raw.get("TIMEZONE", BotConfig.timezone),
        auto_reconnect=_as_bool(raw.get("AUTO_RECONNECT", True)),
        auto_reconnect_interval=_as_number(raw, "AUTO_RECONNECT_INTERVAL", 5.0),
        log_level=str(raw.get("LOG_LEVEL", "info")).lower(),
    )

    server_cfg = ServerConfig(
        host=raw.get("HOST", "0.0.0.0"),
        port=_as_number(raw, "PORT", 3000, int),
        keepalive_interval=_as_number(raw, "KEEPALIVE_INTERVAL", 5 * 60),
    )

    mongo_cfg = MongoConfig(
        uri=raw.get("MONGODB_URI", ""),
        database=raw.get("MONGODB_DATABASE", MongoConfig.database),
        server_selection_timeout_ms=_as_number(raw, "MONGODB_TIMEOUT_MS", 5000, int),
    )

    whatsapp_cfg = WhatsAppConfig(
        homeserver=raw.get("MATRIX_HOMESERVER", ""),
        user_id=raw.get("MATRIX_USER_ID", ""),
        password=raw.get("MATRIX_PASSWORD") or None,
        device_name=raw.get("DEVICE_NAME", bot_cfg.name),
        session_dir=_resolve_dir(root_dir, raw.get("SESSION_DIR", "auth_info")),
        session_data=raw.get("SESSION_DATA") or None,
        puppet_template=raw.get("PUPPET_TEMPLATE", WhatsAppConfig.puppet_template),
        sync_timeout_ms=_as_number(raw, "SYNC_TIMEOUT_MS", 30000, int),
        verify_ssl=_as_bool(raw.get("VERIFY_SSL", True)),
        encryption=_as_bool(raw.get("ENCRYPTION", False)),
    )

    return AppConfig(bot=bot_cfg, server=server_cfg, mongo=mongo_cfg, whatsapp=whatsapp_cfg)
