"""Configuration for the fetcher, loaded from the environment.

Environment variables
---------------------
QR_AUTOFETCH_WS_URL
    WebSocket endpoint of the remote service (required).
QR_AUTOFETCH_AUTH_TOKEN
    Bearer/resume token used for login (required).
QR_AUTOFETCH_STATIC_KEY
    Namespace constant mixed into the digest.
QR_AUTOFETCH_INTERVAL_SECONDS
    Refresh window length, whole seconds (default ``10``).
QR_AUTOFETCH_AUTO_CLOSE_SECONDS
    Delay before the connection is released once material is known (``2``).
QR_AUTOFETCH_LOG_HISTORY
    Entries kept by the display log (``50``).
QR_AUTOFETCH_LOG_LEVEL
    Logging level name (``INFO``).
"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final
from urllib.parse import urlparse

from qr_autofetch.codegen.codec import DEFAULT_STATIC_KEY
from qr_autofetch.errors import ConfigError

logger = logging.getLogger("qr-autofetch.config")

ENV_PREFIX: Final[str] = "QR_AUTOFETCH_"
_WS_SCHEMES: Final[tuple[str, ...]] = ("ws", "wss")


def load_env_file(env_path: Path | str | None) -> int:
    """Load KEY=VALUE pairs from a .env style file into *os.environ*.

    Existing variables win.  Returns the number of variables set.
    """
    if env_path is None:
        return 0
    path = Path(env_path)
    if not path.exists():
        return 0

    loaded = 0
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = val
            loaded += 1
    logger.debug("Loaded %d variables from %s", loaded, path)
    return loaded


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(ENV_PREFIX + name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ConfigError(f"{ENV_PREFIX}{name} must be an integer, got {raw!r}") from None


def validate_endpoint(url: str | None) -> str:
    """Return the stripped endpoint or raise :class:`ConfigError`."""
    url = (url or "").strip()
    if not url:
        raise ConfigError("endpoint URL is required")
    if urlparse(url).scheme not in _WS_SCHEMES:
        raise ConfigError(f"endpoint must be a ws:// or wss:// URL: {url}")
    return url


def validate_credential(token: str | None) -> str:
    token = (token or "").strip()
    if not token:
        raise ConfigError("auth token is required")
    return token


@dataclass(frozen=True)
class FetcherConfig:
    """Operator-supplied settings for one fetch-and-generate run."""

    ws_url: str
    auth_token: str
    static_key: str = DEFAULT_STATIC_KEY
    interval_seconds: int = 10
    auto_close_seconds: float = 2.0
    log_history: int = 50
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        validate_endpoint(self.ws_url)
        validate_credential(self.auth_token)
        if self.interval_seconds <= 0:
            raise ConfigError("interval must be a positive number of seconds")
        if self.auto_close_seconds < 0:
            raise ConfigError("auto-close delay cannot be negative")
        if self.log_history <= 0:
            raise ConfigError("log history must be positive")
        if not self.static_key:
            raise ConfigError("static key cannot be empty")

    @property
    def interval_ms(self) -> int:
        return self.interval_seconds * 1000

    @classmethod
    def from_env(cls, **overrides: Any) -> "FetcherConfig":
        """Build a config from ``QR_AUTOFETCH_*`` variables.

        Keyword *overrides* that are not ``None`` take precedence (CLI flags).
        """
        values: dict[str, Any] = {
            "ws_url": os.getenv(ENV_PREFIX + "WS_URL", ""),
            "auth_token": os.getenv(ENV_PREFIX + "AUTH_TOKEN", ""),
            "static_key": os.getenv(ENV_PREFIX + "STATIC_KEY") or DEFAULT_STATIC_KEY,
            "interval_seconds": _int_env("INTERVAL_SECONDS", 10),
            "auto_close_seconds": float(_int_env("AUTO_CLOSE_SECONDS", 2)),
            "log_history": _int_env("LOG_HISTORY", 50),
            "log_level": os.getenv(ENV_PREFIX + "LOG_LEVEL") or "INFO",
        }
        known = {f.name for f in dataclasses.fields(cls)}
        for key, value in overrides.items():
            if key not in known:
                raise TypeError(f"unknown config field: {key}")
            if value is not None:
                values[key] = value
        return cls(**values)
