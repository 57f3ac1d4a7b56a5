"""Fetch a QR seed over a publish/subscribe WebSocket session and keep the
time-windowed code fresh."""

__version__ = "0.1.0"
