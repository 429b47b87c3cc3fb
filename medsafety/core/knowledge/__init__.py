"""
Knowledge Base

CSV-backed medication rules and abnormal biomarker ranges.

Usage:
    from medsafety.core.knowledge import KnowledgeBaseStore

    store = KnowledgeBaseStore("data/rules.csv", "data/abnormal_ranges.csv")
    store.load()
"""
from .base import (
    Rule,
    BasedOn,
    OrganTriggers,
    BiomarkerTriggers,
    AbnormalRangeReference,
    RULE_COLUMNS,
    RULE_HEADERS,
)
from .store import KnowledgeBaseStore, parse_bound

__all__ = [
    "Rule",
    "BasedOn",
    "OrganTriggers",
    "BiomarkerTriggers",
    "AbnormalRangeReference",
    "RULE_COLUMNS",
    "RULE_HEADERS",
    "KnowledgeBaseStore",
    "parse_bound",
]
