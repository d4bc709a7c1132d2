"""Loopback HTTP API over the safety engine."""

__version__ = "0.4.0"
