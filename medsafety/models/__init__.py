from .medication import (
    MedicationInput,
    ReviewRequest,
    MedicationResult,
    SkippedMedication,
    ReviewResponse,
    HealthResponse,
    DrugClassesResponse,
)

__all__ = [
    "MedicationInput",
    "ReviewRequest",
    "MedicationResult",
    "SkippedMedication",
    "ReviewResponse",
    "HealthResponse",
    "DrugClassesResponse",
]
