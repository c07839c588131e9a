from __future__ import annotations

import base64
import logging
import re
from typing import Optional


LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
URLSAFE_TO_STANDARD = str.maketrans("-_", "+/")


def configure_logging(level: str = "info") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def b64_to_bytes(data: str) -> bytes:
    """Lenient decode: tolerates line breaks, missing padding and the urlsafe alphabet."""
    compact = re.sub(r"\s+", "", data).translate(URLSAFE_TO_STANDARD)
    compact += "=" * (-len(compact) % 4)
    return base64.b64decode(compact.encode("utf-8"))


def normalize_number(number: str) -> str:
    return re.sub(r"\D", "", number)


def server_from_user_id(user_id: str) -> str:
    _, _, server = user_id.partition(":")
    if not server:
        raise ValueError(f"Malformed user id {user_id!r}")
    return server


def puppet_user_id(template: str, number: str, server: str) -> Optional[str]:
    """Map a WhatsApp phone number to the bridge's puppet user on ``server``."""
    digits = normalize_number(number)
    if not digits:
        return None
    return template.format(number=digits, server=server)
