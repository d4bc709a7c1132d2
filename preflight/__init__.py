"""Advisory pre-execution context checks."""
from __future__ import annotations

from .checks import ContextChecks, StaticContextChecks, SystemContextChecks
from .types import CheckItem, CheckReport, CheckSeverity

__all__ = [
    "CheckItem",
    "CheckReport",
    "CheckSeverity",
    "ContextChecks",
    "StaticContextChecks",
    "SystemContextChecks",
]
