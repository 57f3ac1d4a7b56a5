"""Code-to-image renderer collaborator.

Wraps the ``qrcode`` library.  The core only hands over the code string and
:class:`RenderOptions`; module layout, masking and encoding are the
library's business.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

import qrcode
from qrcode.constants import ERROR_CORRECT_H, ERROR_CORRECT_L, ERROR_CORRECT_M, ERROR_CORRECT_Q

_LOG = logging.getLogger("qr-autofetch.render")

ERROR_CORRECTION_LEVELS: Final[dict[str, int]] = {
    "L": ERROR_CORRECT_L,
    "M": ERROR_CORRECT_M,
    "Q": ERROR_CORRECT_Q,
    "H": ERROR_CORRECT_H,
}


@dataclass(frozen=True, slots=True)
class RenderOptions:
    size: int = 300
    foreground: str = "#000000"
    background: str = "#FFFFFF"
    error_correction: str = "H"
    border: int = 4

    def __post_init__(self) -> None:
        if self.size <= 0:
            raise ValueError("size must be positive")
        if self.border < 0:
            raise ValueError("border cannot be negative")
        if self.error_correction.upper() not in ERROR_CORRECTION_LEVELS:
            raise ValueError(f"unknown error-correction level: {self.error_correction}")


class QrRenderer:
    """Turn code strings into scannable images."""

    def __init__(self, options: RenderOptions | None = None) -> None:
        self.options = options or RenderOptions()

    def build(self, text: str, options: RenderOptions | None = None) -> qrcode.QRCode:
        """Return a laid-out :class:`qrcode.QRCode` sized to ``options.size``."""
        opts = options or self.options
        qr = qrcode.QRCode(
            version=None,
            error_correction=ERROR_CORRECTION_LEVELS[opts.error_correction.upper()],
            border=opts.border,
        )
        qr.add_data(text)
        qr.make(fit=True)
        total_modules = qr.modules_count + 2 * opts.border
        qr.box_size = max(1, opts.size // total_modules)
        return qr

    def render(self, text: str, options: RenderOptions | None = None) -> Any:  # noqa: ANN401
        """Return a PIL-backed image of *text*."""
        opts = options or self.options
        qr = self.build(text, opts)
        return qr.make_image(fill_color=opts.foreground, back_color=opts.background)

    def render_to_file(
        self, text: str, path: str | os.PathLike, options: RenderOptions | None = None
    ) -> Path:
        """Render *text* as PNG at *path*, replacing it atomically."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        tmp = target.with_suffix(target.suffix + ".tmp")
        image = self.render(text, options)
        with tmp.open("wb") as fh:
            image.save(fh, format="PNG")
        os.replace(tmp, target)  # atomic on POSIX
        _LOG.debug("Rendered code to %s", target)
        return target
