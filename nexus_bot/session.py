from __future__ import annotations

import binascii
import json
import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

from .utils import b64_to_bytes


logger = logging.getLogger(__name__)


class SessionDataError(ValueError):
    ...


@dataclass
class AuthState:
    creds: Dict[str, Any] = field(default_factory=dict)

    @property
    def has_token(self) -> bool:
        return bool(self.creds.get("access_token"))


class SessionStore:
    """Multi-file auth state: ``creds.json`` plus the client's key store directory."""

    CREDS_FILE = "creds.json"
    KEYS_DIR = "keys"

    def __init__(self, directory: Path):
        self.directory = directory
        self._lock = threading.Lock()
        self.directory.mkdir(parents=True, exist_ok=True)
        self.keys_dir.mkdir(parents=True, exist_ok=True)

    @property
    def creds_path(self) -> Path:
        return self.directory / self.CREDS_FILE

    @property
    def keys_dir(self) -> Path:
        return self.directory / self.KEYS_DIR

    def load(self) -> AuthState:
        if not self.creds_path.exists():
            return AuthState()
        try:
            creds = json.loads(self.creds_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring unreadable %s: %s", self.creds_path, exc)
            return AuthState()
        if not isinstance(creds, dict):
            logger.warning("Ignoring %s: expected a JSON object", self.creds_path)
            return AuthState()
        return AuthState(creds=creds)

    def save_creds(self, state: AuthState) -> None:
        with self._lock:
            tmp_path = self.creds_path.with_suffix(".json.tmp")
            with tmp_path.open("w", encoding="utf-8") as handle:
                json.dump(state.creds, handle, indent=2)
            os.replace(tmp_path, self.creds_path)

    def clear(self) -> None:
        with self._lock:
            self.creds_path.unlink(missing_ok=True)


def decode_session_data(encoded: str) -> Dict[str, Any]:
    try:
        decoded = json.loads(b64_to_bytes(encoded.strip()).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SessionDataError(str(exc)) from exc
    if not isinstance(decoded, dict):
        raise SessionDataError("session data must be a JSON object")
    return decoded


def apply_session_data(state: AuthState, encoded: str) -> bool:
    """Assign the decoded top-level keys onto ``state``.

    Decoding errors are logged and leave ``state`` untouched so startup can
    continue with whatever credentials were stored on disk.
    """
    try:
        decoded = decode_session_data(encoded)
        creds = decoded.get("creds")
        if creds is not None and not isinstance(creds, dict):
            raise SessionDataError("'creds' must be a JSON object")
    except SessionDataError as exc:
        logger.error("Error parsing SESSION_DATA: %s", exc)
        return False

    for key, value in decoded.items():
        if key == "creds":
            state.creds = dict(value)
        else:
            logger.warning("Ignoring unknown SESSION_DATA key %r", key)
    return True
