"""
WhatsApp bot shim for NexusCoders-MD.

Wires a WhatsApp connection (through a bridged Matrix homeserver), MongoDB and a
keep-alive HTTP endpoint together. The FastAPI application is exposed via
``nexus_bot.http_api:create_app``.
"""

from .http_api import create_app  # noqa: F401
