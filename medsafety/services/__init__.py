"""
Services Package - Request orchestration and external providers
"""
from .lab_results import LabResultsClient, lab_date_to_iso
from .medication_review import MedicationReviewService

__all__ = [
    "LabResultsClient",
    "lab_date_to_iso",
    "MedicationReviewService",
]
