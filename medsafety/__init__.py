"""
Medication Safety Review Service

Resolves a patient's medications to knowledge-base rules and reports which of
the patient's organ and biomarker signals each rule considers relevant.
"""
__version__ = "1.0.0"
