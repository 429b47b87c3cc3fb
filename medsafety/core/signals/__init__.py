"""
Patient Signals

Organ-status and biomarker-abnormality signals derived per request.
"""
from .classifier import (
    SignalClassifier,
    OrganSignal,
    OrganStatus,
    BiomarkerSignal,
    Direction,
    organ_status_for_score,
)

__all__ = [
    "SignalClassifier",
    "OrganSignal",
    "OrganStatus",
    "BiomarkerSignal",
    "Direction",
    "organ_status_for_score",
]
