"""Wire format of the publish/subscribe RPC protocol.

Every frame is a single-line JSON object with a ``msg`` discriminator.  Only
the subset of message kinds the fetcher needs is modelled:

=========== ========= ==============================================
kind        direction fields
=========== ========= ==============================================
connect     C -> S    ``version``, ``support``
connected   S -> C    ``session``
failed      S -> C    ``version``
method      C -> S    ``method``, ``params``, ``id``
result      S -> C    ``id``, ``result`` or ``error``
updated     S -> C    ``methods``
sub         C -> S    ``name``, ``params``, ``id``
ready       S -> C    ``subs``
nosub       S -> C    ``id``, ``error``
added       S -> C    ``collection``, ``id``, ``fields``
changed     S -> C    ``collection``, ``id``, ``fields``
ping / pong both      ``id`` (optional)
error       S -> C    ``reason`` / ``error``, ``offendingMessage``
=========== ========= ==============================================
"""

from __future__ import annotations

import json
from typing import Any, Final, Mapping

from qr_autofetch.errors import ProtocolError

PROTOCOL_VERSION: Final[str] = "1"
SUPPORTED_VERSIONS: Final[tuple[str, ...]] = ("1", "pre2", "pre1")

Message = dict[str, Any]


def encode(message: Mapping[str, Any]) -> str:
    """Serialise *message* as compact, newline-free JSON."""
    return json.dumps(message, separators=(",", ":"), ensure_ascii=False)


def decode(raw: str | bytes) -> Message:
    """Parse one frame.

    Raises
    ------
    ProtocolError
        If the frame is not a JSON object with a string ``msg`` field.
        Server heartbeat frames without ``msg`` (e.g. ``{"server_id": ...}``)
        are returned as-is with ``msg`` set to ``""``.
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ProtocolError(f"frame is not UTF-8: {exc}") from None
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"frame is not valid JSON: {exc}", raw=str(raw)[:200]) from None
    if not isinstance(data, dict):
        raise ProtocolError("frame is not a JSON object", raw=str(raw)[:200])
    kind = data.get("msg", "")
    if not isinstance(kind, str):
        raise ProtocolError("frame has a non-string 'msg' field", raw=str(raw)[:200])
    data["msg"] = kind
    return data


# --------------------------------------------------------------------------- #
# Client -> server builders                                                   #
# --------------------------------------------------------------------------- #
def connect() -> Message:
    return {
        "msg": "connect",
        "version": PROTOCOL_VERSION,
        "support": list(SUPPORTED_VERSIONS),
    }


def method(name: str, params: list[Any], call_id: str) -> Message:
    return {"msg": "method", "method": name, "params": params, "id": call_id}


def sub(name: str, params: list[Any], sub_id: str) -> Message:
    return {"msg": "sub", "name": name, "params": params, "id": sub_id}


def pong(ping_id: Any = None) -> Message:
    msg: Message = {"msg": "pong"}
    if ping_id is not None:
        msg["id"] = ping_id
    return msg
