from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from qr_autofetch.display import DisplayLog
    from qr_autofetch.scheduler import RefreshScheduler
    from qr_autofetch.session.client import ProtocolSession


@dataclass
class StatusSources:
    """
    Live objects the status endpoints read from.
    The session and scheduler are attached once they exist; the endpoints
    cope with either being missing.
    """

    display: DisplayLog
    session: ProtocolSession | None = None
    refresh: RefreshScheduler | None = None
