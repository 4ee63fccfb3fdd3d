"""Service module exports."""

from . import analytics, goals, ledger, locks, milestones, rule_engine, rules

__all__ = [
    "analytics",
    "goals",
    "ledger",
    "locks",
    "milestones",
    "rule_engine",
    "rules",
]
