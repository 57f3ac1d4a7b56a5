"""Token derivation and code assembly.

The digest is what the remote verifier recomputes, so the pre-image layout
is fixed::

    <static_key><secret><window_boundary><static_key>

hashed with SHA-256 and rendered as lowercase hex.  The scannable code is the
identity, the digest and a constant tag joined with dashes.

This module performs **no logging**; secrets flow through it unmasked.
"""

from __future__ import annotations

from hashlib import sha256
from typing import Final

DEFAULT_STATIC_KEY: Final[str] = "paH3tGeqmugkUT5Ls"
CODE_SUFFIX: Final[str] = "arkose+"


def derivation_input(static_key: str, secret: str, window_boundary: int) -> str:
    """Return the exact string fed to the hash for *window_boundary*."""
    return f"{static_key}{secret}{window_boundary}{static_key}"


def derive(static_key: str, secret: str, window_boundary: int) -> str:
    """Compute the SHA-256 hex digest for one window.

    Parameters
    ----------
    static_key:
        Shared namespace constant mixed in on both ends.
    secret:
        The previously issued hashed token.
    window_boundary:
        UNIX second marking the end of the window.

    Returns
    -------
    str
        64-character lowercase hex digest.
    """
    payload = derivation_input(static_key, secret, window_boundary)
    return sha256(payload.encode("utf-8")).hexdigest()


def assemble_code(identity: str, digest: str, suffix: str = CODE_SUFFIX) -> str:
    """Format the scannable code string."""
    return f"{identity}-{digest}-{suffix}"
