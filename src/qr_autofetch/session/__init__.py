"""Client side of the publish/subscribe RPC session.

Sub-modules
-----------
messages
    Frame encoding and builders.
state
    Lifecycle states and allowed transitions.
extraction
    Identity/secret extraction from pushed profile documents.
transport
    Transport protocols and the ``websockets`` implementation.
client
    :class:`ProtocolSession`, the state machine tying them together.
"""

from __future__ import annotations

from .state import InvalidTransitionError, SessionState  # noqa: F401
from .extraction import extract_credentials, extract_token_record  # noqa: F401
from .transport import Transport, TransportListener, WebSocketTransport  # noqa: F401
from .client import LOGIN_ATTEMPTS, LoginAttempt, ProtocolSession  # noqa: F401

__all__ = [
    "InvalidTransitionError",
    "SessionState",
    "extract_credentials",
    "extract_token_record",
    "Transport",
    "TransportListener",
    "WebSocketTransport",
    "LOGIN_ATTEMPTS",
    "LoginAttempt",
    "ProtocolSession",
]
