"""HTTP surface exposing fetcher status to local collaborators."""

from .status import StatusSources, create_status_app  # noqa: F401

__all__ = ["StatusSources", "create_status_app"]
