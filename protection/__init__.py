"""Protection rules deciding which targets may be mutated."""
from __future__ import annotations

from .engine import ProtectionEngine
from .store import DEFAULT_USER_RULES, InMemoryRuleStore, JsonRuleStore, RuleStore, install_default_rules
from .types import Effect, ProtectionRule, Scope, Tier, Verdict, VerdictKind

__all__ = [
    "DEFAULT_USER_RULES",
    "Effect",
    "InMemoryRuleStore",
    "JsonRuleStore",
    "ProtectionEngine",
    "ProtectionRule",
    "RuleStore",
    "Scope",
    "Tier",
    "Verdict",
    "VerdictKind",
    "install_default_rules",
]
