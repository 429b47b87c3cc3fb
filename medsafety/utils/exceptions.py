"""
Custom Exception Hierarchy

Every failure the review pipeline can report carries a stable error code and
structured details so it can be logged and serialised the same way.
"""
from typing import Optional, Dict, Any


class MedicationSafetyError(Exception):
    """Base exception for all medication safety review errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


class LoadError(MedicationSafetyError):
    """A knowledge-base table could not be read or parsed."""

    def __init__(
        self,
        message: str,
        table: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="KB_LOAD_ERROR",
            details={"table": table, **(details or {})}
        )
        self.table = table


class KnowledgeBaseWriteError(MedicationSafetyError):
    """The updated rule table could not be persisted."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="KB_WRITE_ERROR",
            details=details
        )


class RuleNotFoundError(MedicationSafetyError):
    """No class-based rule exists for a drug class that was expected to have one."""

    def __init__(
        self,
        drug_class: str,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=f'No class-based rule found for drug class "{drug_class}"',
            code="RULE_NOT_FOUND",
            details={"drug_class": drug_class, **(details or {})}
        )
        self.drug_class = drug_class


class OracleError(MedicationSafetyError):
    """The drug classification oracle failed or answered with something unusable."""

    def __init__(
        self,
        message: str,
        medication: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="ORACLE_ERROR",
            details={"medication": medication, **(details or {})}
        )
        self.medication = medication


class InvalidInputError(MedicationSafetyError):
    """Request data that cannot be processed (e.g. an empty medication name)."""

    def __init__(
        self,
        message: str,
        field: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="INVALID_INPUT",
            details={"field": field, **(details or {})}
        )
        self.field = field


class LabResultsError(MedicationSafetyError):
    """The external lab-results provider call failed."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="LAB_RESULTS_ERROR",
            details={"status_code": status_code, **(details or {})}
        )
        self.status_code = status_code
