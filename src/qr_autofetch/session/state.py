"""Connection lifecycle states and the transitions allowed between them."""

from __future__ import annotations

from enum import Enum
from typing import Final


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    HANDSHAKING = "handshaking"
    AUTHENTICATING = "authenticating"
    FETCHING_PROFILE = "fetching_profile"
    EXTRACTING = "extracting"
    ACTIVE = "active"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.CLOSED, SessionState.FAILED)

    @property
    def answers_ping(self) -> bool:
        return not self.is_terminal


_S = SessionState

TRANSITIONS: Final[dict[SessionState, frozenset[SessionState]]] = {
    _S.IDLE: frozenset({_S.CONNECTING}),
    _S.CONNECTING: frozenset({_S.HANDSHAKING}),
    _S.HANDSHAKING: frozenset({_S.AUTHENTICATING}),
    _S.AUTHENTICATING: frozenset({_S.FETCHING_PROFILE}),
    # extraction failure falls back to waiting for the next push
    _S.FETCHING_PROFILE: frozenset({_S.EXTRACTING}),
    _S.EXTRACTING: frozenset({_S.ACTIVE, _S.FETCHING_PROFILE}),
    _S.ACTIVE: frozenset({_S.CLOSING}),
    _S.CLOSING: frozenset({_S.CLOSED}),
    _S.CLOSED: frozenset(),
    _S.FAILED: frozenset(),
}


class InvalidTransitionError(RuntimeError):
    """Raised when the session attempts a transition the table forbids."""


def check_transition(current: SessionState, target: SessionState) -> None:
    """Validate ``current -> target``.

    ``FAILED`` is reachable from every non-terminal state, and ``CLOSING`` from
    every non-terminal state (an explicit close may interrupt any phase).
    """
    if current.is_terminal:
        raise InvalidTransitionError(f"session already {current.value}")
    if target in (SessionState.FAILED, SessionState.CLOSING):
        return
    if target not in TRANSITIONS[current]:
        raise InvalidTransitionError(f"{current.value} -> {target.value} not allowed")
