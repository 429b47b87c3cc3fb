"""
Clinical Trigger Layer

Decides which patient signals a matched medication rule cares about.
"""
from .triggers import TriggerFilter, TriggerResult, fuzzy_match, matches_any

__all__ = [
    "TriggerFilter",
    "TriggerResult",
    "fuzzy_match",
    "matches_any",
]
