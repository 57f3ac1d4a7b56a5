"""Configuration for integration tests."""

import pytest

from qr_autofetch.display import DisplayLog


def pytest_configure(config):
    """Add integration marker."""
    config.addinivalue_line(
        "markers", "integration: end-to-end session scenario"
    )


@pytest.fixture()
def display() -> DisplayLog:
    """Display collaborator with the default history size."""
    return DisplayLog()
