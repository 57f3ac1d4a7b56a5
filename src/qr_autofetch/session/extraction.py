"""Extraction of the identity/secret pair from pushed profile documents.

A ``users`` document carries the identity list under ``profile.gestixiIds``
and the secret under ``qrCodeTokens``.  The token container has been seen in
three shapes, tried in this order:

1. **nested** – ``{"arkose": {"hashed": ..., "gestixiId": ...}}``
2. **array**  – ``[{"gestixiId": ..., "hashed": ...}, ...]``; the first
   element is extracted as a token record (one level, never deeper)
3. **flat**   – ``{"hashed": ...}``

Anything else is **absent**.  The functions here are pure; the session turns
a failed extraction into a repair request.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final, Literal, Mapping, Union

from qr_autofetch.codegen.models import Credentials
from qr_autofetch.errors import ExtractionError

TOKENS_KEY: Final[str] = "qrCodeTokens"
NESTED_KEY: Final[str] = "arkose"
SECRET_KEY: Final[str] = "hashed"
IDENTITY_KEY: Final[str] = "gestixiId"
PROFILE_KEY: Final[str] = "profile"
IDENTITY_LIST_KEY: Final[str] = "gestixiIds"

_MAX_DEPTH: Final[int] = 1


# --------------------------------------------------------------------------- #
# Container variants                                                          #
# --------------------------------------------------------------------------- #
@dataclass(frozen=True, slots=True)
class NestedToken:
    secret: str
    identity: str | None = None
    kind: Literal["nested"] = "nested"


@dataclass(frozen=True, slots=True)
class ArrayToken:
    first: Any
    kind: Literal["array"] = "array"


@dataclass(frozen=True, slots=True)
class FlatToken:
    secret: str
    kind: Literal["flat"] = "flat"


@dataclass(frozen=True, slots=True)
class AbsentToken:
    kind: Literal["absent"] = "absent"


TokenContainer = Union[NestedToken, ArrayToken, FlatToken, AbsentToken]


def _text(value: Any) -> str | None:
    """Return *value* as a non-empty string, or ``None``."""
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value)
    return text or None


def classify_container(container: Any) -> TokenContainer:
    """Decide which shape *container* has, in precedence order."""
    if isinstance(container, Mapping):
        nested = container.get(NESTED_KEY)
        if isinstance(nested, Mapping):
            secret = _text(nested.get(SECRET_KEY))
            if secret:
                return NestedToken(secret=secret, identity=_text(nested.get(IDENTITY_KEY)))
        flat = _text(container.get(SECRET_KEY))
        if flat:
            return FlatToken(secret=flat)
        return AbsentToken()
    if isinstance(container, list) and container:
        return ArrayToken(first=container[0])
    return AbsentToken()


def profile_identity(fields: Mapping[str, Any]) -> str | None:
    """First entry of ``profile.gestixiIds``, if any."""
    profile = fields.get(PROFILE_KEY)
    if not isinstance(profile, Mapping):
        return None
    ids = profile.get(IDENTITY_LIST_KEY)
    if isinstance(ids, list) and ids:
        return _text(ids[0])
    return None


# --------------------------------------------------------------------------- #
# Public API                                                                  #
# --------------------------------------------------------------------------- #
def extract_token_record(
    record: Any,
    *,
    fallback_identity: str | None = None,
    depth: int = 0,
) -> Credentials:
    """Extract credentials from a single token record.

    A record is ``{"gestixiId": ..., "hashed": ...}``; a record that is itself
    a token container (nested / flat) is accepted as well.  *depth* bounds
    recursion through array containers.

    Raises
    ------
    ExtractionError
        When the identity or the secret cannot be resolved.
    """
    if not isinstance(record, Mapping):
        raise ExtractionError("token record is not an object", missing=("identity", "secret"))

    identity = _text(record.get(IDENTITY_KEY)) or fallback_identity
    secret = _text(record.get(SECRET_KEY))
    if secret is None:
        variant = classify_container(record)
        if isinstance(variant, NestedToken):
            secret = variant.secret
            identity = variant.identity or identity
        elif isinstance(variant, ArrayToken) and depth < _MAX_DEPTH:
            return extract_token_record(
                variant.first, fallback_identity=identity, depth=depth + 1
            )
    return _require(identity, secret)


def extract_credentials(fields: Mapping[str, Any]) -> Credentials:
    """Extract credentials from a pushed ``users`` document's *fields*.

    Raises
    ------
    ExtractionError
        When the identity or the secret is missing.
    """
    identity = profile_identity(fields)
    variant = classify_container(fields.get(TOKENS_KEY))

    if isinstance(variant, NestedToken):
        return _require(variant.identity or identity, variant.secret)
    if isinstance(variant, ArrayToken):
        return extract_token_record(variant.first, fallback_identity=identity, depth=1)
    if isinstance(variant, FlatToken):
        return _require(identity, variant.secret)
    return _require(identity, None)


def looks_like_token_record(value: Any) -> bool:
    """True for RPC results that carry token-record fields."""
    return isinstance(value, Mapping) and (
        IDENTITY_KEY in value or SECRET_KEY in value
    )


def _require(identity: str | None, secret: str | None) -> Credentials:
    missing = tuple(
        name for name, value in (("identity", identity), ("secret", secret)) if not value
    )
    if missing:
        raise ExtractionError(
            f"profile data missing {' and '.join(missing)}", missing=missing
        )
    return Credentials(identity=identity, secret=secret)  # type: ignore[arg-type]
