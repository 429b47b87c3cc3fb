"""
Medication Resolution

Usage:
    from medsafety.core.resolution import MedicationResolver

    resolver = MedicationResolver(store, oracle)
    outcome = await resolver.resolve("lisinopril")
"""
from .resolver import (
    MedicationResolver,
    ResolutionOutcome,
    ResolutionStatus,
    MatchType,
    ErrorKind,
    validate_medication_name,
)

__all__ = [
    "MedicationResolver",
    "ResolutionOutcome",
    "ResolutionStatus",
    "MatchType",
    "ErrorKind",
    "validate_medication_name",
]
