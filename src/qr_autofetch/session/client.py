"""Client side of the publish/subscribe RPC session.

:class:`ProtocolSession` drives one connection from handshake to the moment
the identity/secret pair is known, then hands a ready
:class:`~qr_autofetch.codegen.generator.CodeGenerator` to its owner and
releases the connection.

Flow
----
1. ``start()`` opens the transport; on open a ``connect`` frame negotiates the
   protocol version.
2. ``connected`` triggers three *speculative* logins, staggered at 0 s / 1 s /
   2 s, because the accepted login flavour is not known in advance.  The
   first result carrying ``id`` and ``token`` wins and cancels the others.
3. The session subscribes to ``userData`` and calls ``users.get``.
4. Every ``users`` push is run through
   :func:`~qr_autofetch.session.extraction.extract_credentials`.  A miss
   fires the repair RPC and the session keeps waiting.
5. Once credentials are published, the connection is closed after a short
   delay.

The session is callback-driven and never blocks: the transport feeds it one
event at a time and every wait is a timer in a :class:`TimerGroup`.

SECURITY NOTE
-------------
Frames are logged by kind and id only; tokens and hashed secrets are masked.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Final, Literal, Mapping
from urllib.parse import urlparse

from qr_autofetch.codegen.clock import Clock, default_clock
from qr_autofetch.codegen.codec import DEFAULT_STATIC_KEY
from qr_autofetch.codegen.generator import CodeGenerator
from qr_autofetch.codegen.models import Credentials
from qr_autofetch.codegen.window import DEFAULT_INTERVAL_MS
from qr_autofetch.config import validate_credential, validate_endpoint
from qr_autofetch.display import DisplayLog, Severity
from qr_autofetch.errors import (
    ConfigError,
    ExtractionError,
    ProtocolError,
    QrAutofetchError,
    ServerError,
    TransportError,
)
from qr_autofetch.session import messages
from qr_autofetch.session.extraction import (
    extract_credentials,
    extract_token_record,
    looks_like_token_record,
)
from qr_autofetch.session.log_utils import get_session_logger
from qr_autofetch.session.state import SessionState, check_transition
from qr_autofetch.session.transport import Transport
from qr_autofetch.timers import Scheduler, TimerGroup
from qr_autofetch.utils.logging import mask_sensitive

USERS_COLLECTION: Final[str] = "users"
USER_DATA_PUBLICATION: Final[str] = "userData"
PROFILE_METHOD: Final[str] = "users.get"
REPAIR_METHOD: Final[str] = "_users.repairGestixiAssociation"
DEFAULT_AUTO_CLOSE_S: Final[float] = 2.0

CallKind = Literal["login", "profile", "repair", "sub"]


@dataclass(frozen=True, slots=True)
class LoginAttempt:
    """One speculative login: when to send it and how to phrase it."""

    key: str
    delay_s: float
    method: str
    build_params: Callable[[str], list[Any]]


LOGIN_ATTEMPTS: Final[tuple[LoginAttempt, ...]] = (
    LoginAttempt("resume", 0.0, "login", lambda token: [{"resume": token}]),
    LoginAttempt("token", 1.0, "login", lambda token: [{"token": token}]),
    LoginAttempt("login-with-token", 2.0, "_loginWithToken", lambda token: [token]),
)


@dataclass(frozen=True, slots=True)
class PendingCall:
    call_id: str
    kind: CallKind
    name: str
    attempt: str | None = None


ActiveCallback = Callable[[CodeGenerator], None]
ErrorCallback = Callable[[QrAutofetchError], None]
StateCallback = Callable[[SessionState, SessionState], None]


class ProtocolSession:
    """Connection/session state machine; also the transport's listener."""

    def __init__(
        self,
        transport: Transport,
        scheduler: Scheduler,
        *,
        static_key: str = DEFAULT_STATIC_KEY,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        auto_close_s: float = DEFAULT_AUTO_CLOSE_S,
        clock: Clock = default_clock,
        display: DisplayLog | None = None,
        login_attempts: tuple[LoginAttempt, ...] = LOGIN_ATTEMPTS,
        active_callback: ActiveCallback | None = None,
        error_callback: ErrorCallback | None = None,
        state_callback: StateCallback | None = None,
    ) -> None:
        self._transport = transport
        self._timers = TimerGroup(scheduler, name="session")
        self._static_key = static_key
        self._interval_ms = interval_ms
        self._auto_close_s = auto_close_s
        self._clock = clock
        self._display = display
        self._login_attempts = login_attempts
        self._active_callback = active_callback
        self._error_callback = error_callback
        self._state_callback = state_callback
        self._log = get_session_logger(state=SessionState.IDLE.value)

        self._state = SessionState.IDLE
        self._credential: str = ""
        self._next_id = 1
        self._pending: dict[str, PendingCall] = {}
        self._login_failures: set[str] = set()
        self._user_docs: dict[str, dict[str, Any]] = {}
        self._deferred_fields: dict[str, Any] | None = None

        self.endpoint: str | None = None
        self.session_id: str | None = None
        self.user_id: str | None = None
        self.last_error: QrAutofetchError | None = None
        self._credentials: Credentials | None = None
        self._generator: CodeGenerator | None = None

    # ------------------------------------------------------------------ #
    # Read-only views                                                    #
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def credentials(self) -> Credentials | None:
        return self._credentials

    @property
    def generator(self) -> CodeGenerator | None:
        return self._generator

    @property
    def pending_call_ids(self) -> tuple[str, ...]:
        return tuple(self._pending)

    @property
    def pending_timers(self) -> tuple[str, ...]:
        return self._timers.pending

    # ------------------------------------------------------------------ #
    # Commands                                                           #
    # ------------------------------------------------------------------ #
    def start(self, endpoint: str, credential: str) -> None:
        """Open the connection and begin the handshake.

        Raises
        ------
        ConfigError
            If *endpoint* or *credential* is missing or invalid; nothing is
            attempted in that case.
        """
        if self._state is not SessionState.IDLE:
            raise RuntimeError(f"session already started ({self._state.value})")
        try:
            endpoint = validate_endpoint(endpoint)
            credential = validate_credential(credential)
        except ConfigError as exc:
            self._report(exc, "error")
            raise

        self.endpoint = endpoint
        self._credential = credential
        self._next_id = 1
        self._log.bind(endpoint_host=self._host())
        self._transition(SessionState.CONNECTING)
        self._status(f"Connecting to {self._host()}...", "info")
        try:
            self._transport.open(endpoint, self)
        except TransportError as exc:
            self._fail(exc)

    def close(self) -> None:
        """Tear the connection down and cancel every pending timer."""
        if self._state.is_terminal or self._state is SessionState.CLOSING:
            return
        if self._state is SessionState.IDLE:
            self._transition(SessionState.CLOSING)
            self._transition(SessionState.CLOSED)
            return
        self._transition(SessionState.CLOSING)
        self._timers.cancel_all()
        self._transport.close()

    # ------------------------------------------------------------------ #
    # TransportListener                                                  #
    # ------------------------------------------------------------------ #
    def on_open(self) -> None:
        if self._state is not SessionState.CONNECTING:
            self._log.debug("Ignoring transport open in state %s", self._state.value)
            return
        self._transition(SessionState.HANDSHAKING)
        self._status("Connected, negotiating protocol...", "success")
        self._send(messages.connect())

    def on_message(self, raw: str | bytes) -> None:
        if self._state.is_terminal:
            self._log.debug("Dropping frame received after session ended")
            return
        try:
            msg = messages.decode(raw)
        except ProtocolError as exc:
            self._report(exc, "error")
            return

        kind = msg["msg"]
        self._log.debug(
            "Received: %s id=%s", kind or "<none>", msg.get("id"), extra={"severity": "received"}
        )
        if kind == "ping":
            self._handle_ping(msg)
            return
        handler = self._HANDLERS.get(kind)
        if handler is None:
            self._log.debug("Ignoring message kind %r", kind)
            return
        handler(self, msg)

    def on_close(self, code: int | None = None, reason: str = "") -> None:
        self._timers.cancel_all()
        if self._state.is_terminal:
            return
        if self._state is SessionState.CLOSING:
            self._transition(SessionState.CLOSED)
            self._status("Connection closed", "warning")
            return
        if self._state is SessionState.ACTIVE:
            self._transition(SessionState.CLOSING)
            self._transition(SessionState.CLOSED)
            self._status("Connection closed by server", "warning")
            return
        detail = f" (code={code} reason={reason})" if code is not None else ""
        self._fail(
            TransportError(f"connection closed while {self._state.value}{detail}")
        )

    def on_error(self, error: TransportError) -> None:
        if self._state.is_terminal:
            return
        self._fail(error)

    # ------------------------------------------------------------------ #
    # Message handlers                                                   #
    # ------------------------------------------------------------------ #
    def _handle_ping(self, msg: Mapping[str, Any]) -> None:
        if self._state.answers_ping:
            self._send(messages.pong(msg.get("id")))

    def _handle_connected(self, msg: Mapping[str, Any]) -> None:
        if self._state is not SessionState.HANDSHAKING:
            self._report(ProtocolError(f"unexpected 'connected' while {self._state.value}"), "warning")
            return
        self.session_id = str(msg.get("session") or "")
        self._log.bind(session_id=self.session_id)
        self._transition(SessionState.AUTHENTICATING)
        self._status(f"Session established: {self.session_id}", "success")
        self._start_logins()

    def _handle_failed(self, msg: Mapping[str, Any]) -> None:
        self._fail(
            ServerError(
                f"server rejected protocol negotiation (suggested version {msg.get('version')!r})",
                payload=dict(msg),
                fatal=True,
            )
        )

    def _handle_error(self, msg: Mapping[str, Any]) -> None:
        payload = msg.get("error", msg.get("reason"))
        fatal = self._state in (SessionState.CONNECTING, SessionState.HANDSHAKING)
        error = ServerError(f"server error: {payload}", payload=payload, fatal=fatal)
        if fatal:
            self._fail(error)
        else:
            self._report(error, "error")

    def _handle_result(self, msg: Mapping[str, Any]) -> None:
        call_id = str(msg.get("id"))
        call = self._pending.pop(call_id, None)
        if call is None:
            self._report(ProtocolError(f"result for unknown call id {call_id!r}"), "warning")
            return
        self._log.debug(
            "Result for %s (%s) id=%s", call.name, call.kind, call_id, extra={"severity": "result"}
        )
        if msg.get("error") is not None:
            self._handle_call_error(call, msg["error"])
            return

        result = msg.get("result")
        if call.kind == "login":
            if isinstance(result, Mapping) and result.get("id") and result.get("token"):
                self._on_login_success(call, result)
                return
            self._on_login_rejected(call, "login result carried no id/token")
        if looks_like_token_record(result):
            self._on_token_record(result)
        elif call.kind == "profile" and isinstance(result, Mapping):
            # repair replies are only read as token records; a profile that
            # is still incomplete waits for the next push
            if "qrCodeTokens" in result or "profile" in result:
                self._on_user_fields(result)

    def _handle_user_doc(self, msg: Mapping[str, Any]) -> None:
        if msg.get("collection") != USERS_COLLECTION:
            return
        doc_id = str(msg.get("id", ""))
        doc = self._user_docs.setdefault(doc_id, {})
        fields = msg.get("fields")
        if isinstance(fields, Mapping):
            doc.update(fields)
        for key in msg.get("cleared") or ():
            doc.pop(key, None)
        self._on_user_fields(doc)

    def _handle_nosub(self, msg: Mapping[str, Any]) -> None:
        self._pending.pop(str(msg.get("id")), None)
        self._report(
            ServerError(f"subscription refused: {msg.get('error')}", payload=msg.get("error")),
            "warning",
        )

    def _handle_ready(self, msg: Mapping[str, Any]) -> None:
        for sub_id in msg.get("subs") or ():
            self._pending.pop(str(sub_id), None)
        self._log.debug("Subscriptions ready: %s", msg.get("subs"))

    _HANDLERS: Final[dict[str, Callable[["ProtocolSession", Mapping[str, Any]], None]]] = {
        "connected": _handle_connected,
        "failed": _handle_failed,
        "error": _handle_error,
        "result": _handle_result,
        "added": _handle_user_doc,
        "changed": _handle_user_doc,
        "nosub": _handle_nosub,
        "ready": _handle_ready,
    }

    # ------------------------------------------------------------------ #
    # Authentication                                                     #
    # ------------------------------------------------------------------ #
    def _start_logins(self) -> None:
        self._status("Attempting login with token...", "info")
        self._login_failures.clear()
        for attempt in self._login_attempts:
            self._timers.schedule(
                f"login:{attempt.key}",
                attempt.delay_s,
                lambda attempt=attempt: self._send_login(attempt),
            )

    def _send_login(self, attempt: LoginAttempt) -> None:
        if self._state is not SessionState.AUTHENTICATING:
            return
        self._log.debug("Login attempt %s via %s", attempt.key, attempt.method)
        self._call(
            attempt.method,
            attempt.build_params(self._credential),
            kind="login",
            attempt=attempt.key,
        )

    def _on_login_success(self, call: PendingCall, result: Mapping[str, Any]) -> None:
        if self._state is not SessionState.AUTHENTICATING:
            self._log.debug("Ignoring late login success from attempt %s", call.attempt)
            return
        self._timers.cancel_matching("login:")
        self.user_id = str(result["id"])
        self._transition(SessionState.FETCHING_PROFILE)
        self._status(f"Login successful (attempt {call.attempt}), user id: {self.user_id}", "success")

        sub_id = self._allocate_id()
        self._pending[sub_id] = PendingCall(sub_id, "sub", USER_DATA_PUBLICATION)
        self._send(messages.sub(USER_DATA_PUBLICATION, [self.user_id], sub_id))
        self._call(PROFILE_METHOD, [self.user_id], kind="profile")

        if self._deferred_fields is not None:
            deferred, self._deferred_fields = self._deferred_fields, None
            self._on_user_fields(deferred)

    def _on_login_rejected(self, call: PendingCall, reason: str) -> None:
        self._login_failures.add(call.attempt or call.call_id)
        self._log.warning("Login attempt %s rejected: %s", call.attempt, reason)
        if (
            self._state is SessionState.AUTHENTICATING
            and len(self._login_failures) >= len(self._login_attempts)
        ):
            self._fail(ServerError("all login attempts were rejected", payload=reason))

    def _handle_call_error(self, call: PendingCall, error: Any) -> None:
        if call.kind == "login":
            self._on_login_rejected(call, str(error))
            return
        self._report(
            ServerError(f"{call.name} failed: {error}", payload=error),
            "warning" if call.kind == "repair" else "error",
        )

    # ------------------------------------------------------------------ #
    # Extraction                                                         #
    # ------------------------------------------------------------------ #
    def _on_user_fields(self, fields: Mapping[str, Any]) -> None:
        if self._credentials is not None:
            self._log.debug("Credentials already published; ignoring user data")
            return
        if self._state in (
            SessionState.CONNECTING,
            SessionState.HANDSHAKING,
            SessionState.AUTHENTICATING,
        ):
            self._deferred_fields = dict(fields)
            return
        if self._state is not SessionState.FETCHING_PROFILE:
            return

        self._transition(SessionState.EXTRACTING)
        self._status("Received user data", "success")
        try:
            credentials = extract_credentials(fields)
        except ExtractionError as exc:
            self._report(exc, "warning")
            self._transition(SessionState.FETCHING_PROFILE)
            self._status(f"Missing required data. Calling {REPAIR_METHOD}...", "warning")
            self._call(REPAIR_METHOD, [{}], kind="repair")
            return
        self._publish(credentials)

    def _on_token_record(self, record: Mapping[str, Any]) -> None:
        if self._credentials is not None or self._state is not SessionState.FETCHING_PROFILE:
            return
        self._transition(SessionState.EXTRACTING)
        self._status("Received token data", "success")
        try:
            credentials = extract_token_record(record)
        except ExtractionError as exc:
            self._report(exc, "warning")
            self._transition(SessionState.FETCHING_PROFILE)
            return
        self._publish(credentials)

    def _publish(self, credentials: Credentials) -> None:
        if self._credentials is not None:
            return
        self._credentials = credentials
        self._generator = CodeGenerator.from_credentials(
            credentials,
            static_key=self._static_key,
            interval_ms=self._interval_ms,
            clock=self._clock,
        )
        self._transition(SessionState.ACTIVE)
        self._status(
            f"Found data - identity: {credentials.identity}, "
            f"secret: {mask_sensitive(credentials.secret, 4)}",
            "success",
        )
        self._timers.schedule("auto-close", self._auto_close_s, self._auto_close)
        if self._active_callback is not None:
            self._active_callback(self._generator)

    def _auto_close(self) -> None:
        if self._state is not SessionState.ACTIVE:
            return
        self._status("Data fetched successfully, disconnecting...", "success")
        self.close()

    # ------------------------------------------------------------------ #
    # Plumbing                                                           #
    # ------------------------------------------------------------------ #
    def _allocate_id(self) -> str:
        call_id = str(self._next_id)
        self._next_id += 1
        return call_id

    def _call(
        self,
        name: str,
        params: list[Any],
        *,
        kind: CallKind,
        attempt: str | None = None,
    ) -> str:
        call_id = self._allocate_id()
        self._pending[call_id] = PendingCall(call_id, kind, name, attempt)
        self._send(messages.method(name, params, call_id))
        return call_id

    def _send(self, message: Mapping[str, Any]) -> None:
        label = message.get("method") or message.get("name") or ""
        try:
            self._transport.send(messages.encode(message))
        except TransportError as exc:
            self._fail(exc)
            return
        self._log.debug(
            "Sent: %s %s id=%s", message["msg"], label, message.get("id"), extra={"severity": "sent"}
        )

    def _transition(self, target: SessionState) -> None:
        previous = self._state
        check_transition(previous, target)
        self._state = target
        self._log.bind(state=target.value)
        self._log.debug("State %s -> %s", previous.value, target.value)
        if self._state_callback is not None:
            self._state_callback(previous, target)

    def _fail(self, error: QrAutofetchError) -> None:
        if self._state.is_terminal:
            return
        self._report(error, "error")
        self._timers.cancel_all()
        self._transition(SessionState.FAILED)
        self._transport.close()

    def _report(self, error: QrAutofetchError, severity: Severity) -> None:
        self.last_error = error
        level = logging.ERROR if severity == "error" else logging.WARNING
        self._log.log(level, "%s: %s", type(error).__name__, error)
        if self._display is not None:
            self._display.set_status(f"{type(error).__name__}: {error}", severity)
        if self._error_callback is not None:
            self._error_callback(error)

    def _status(self, message: str, severity: Severity) -> None:
        self._log.info(message, extra={"severity": severity})
        if self._display is not None:
            self._display.set_status(message, severity)

    def _host(self) -> str:
        return urlparse(self.endpoint or "").hostname or "?"
