"""
Utilities Package - Logging and Exception Handling
"""
from .logging import get_logger, setup_logging, medication_context
from .exceptions import (
    MedicationSafetyError,
    LoadError,
    KnowledgeBaseWriteError,
    RuleNotFoundError,
    OracleError,
    InvalidInputError,
    LabResultsError,
)

__all__ = [
    "get_logger",
    "setup_logging",
    "medication_context",
    "MedicationSafetyError",
    "LoadError",
    "KnowledgeBaseWriteError",
    "RuleNotFoundError",
    "OracleError",
    "InvalidInputError",
    "LabResultsError",
]
