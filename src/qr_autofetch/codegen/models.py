"""Typed, immutable records produced by code generation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Literal

from qr_autofetch.codegen.window import TimeWindow

Mode = Literal["current", "next"]


@dataclass(frozen=True, slots=True)
class Credentials:
    """The (identity, secret) pair that seeds a generator."""

    identity: str
    secret: str

    def __repr__(self) -> str:
        return f"Credentials(identity={self.identity!r}, secret=<redacted>)"


@dataclass(frozen=True, slots=True)
class GeneratedCode:
    """Snapshot of one generation call."""

    code: str
    window: TimeWindow
    remaining_ms: int
    derivation_input: str
    digest: str
    generated_at: datetime

    @property
    def valid_until(self) -> datetime:
        return self.generated_at + timedelta(milliseconds=self.remaining_ms)

    def to_public_dict(self) -> dict[str, object]:
        """JSON-safe view without the derivation input (it embeds the secret)."""
        return {
            "code": self.code,
            "digest": self.digest,
            "window_boundary": self.window.boundary_seconds,
            "remaining_ms": self.remaining_ms,
            "generated_at": self.generated_at.isoformat(),
            "valid_until": self.valid_until.isoformat(),
        }


def datetime_from_ms(at_ms: int) -> datetime:
    return datetime.fromtimestamp(at_ms / 1000, tz=timezone.utc)
