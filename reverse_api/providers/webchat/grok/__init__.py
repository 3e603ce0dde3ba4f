"""Grok (grok.com): anonymous handshake, xsid-signed conversations."""

from .client import GrokWebChat, parse_conversation
from .handshake import GrokHandshake, HandshakeState, HandshakeStep
from .models import GrokContinuation, GrokResponse
from .scripts import ScriptCache

__all__ = [
    "GrokContinuation",
    "GrokHandshake",
    "GrokResponse",
    "GrokWebChat",
    "HandshakeState",
    "HandshakeStep",
    "ScriptCache",
    "parse_conversation",
]
