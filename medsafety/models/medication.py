"""
API Schemas

Request/response models for the medication review endpoints. Field names are
snake_case in Python and camelCase on the wire.
"""
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class MedicationInput(_CamelModel):
    """One entry of the patient's medication list. ``name`` is validated per entry, not per request."""
    name: Any = None
    dose: Union[str, int, float, None] = None


class ReviewRequest(_CamelModel):
    """Medication review request."""
    lab_date: Optional[str] = Field(default=None, alias="labDate")
    patient_sex: Optional[str] = Field(default=None, alias="patientSex")
    biomarkers: Optional[Dict[str, Any]] = None
    medication_list: Optional[List[MedicationInput]] = Field(default=None, alias="medicationList")
    organization_id: Optional[str] = Field(default=None, alias="organizationId")
    patient_id: Optional[str] = Field(default=None, alias="patientId")
    # When given, the lab-results provider is not called.
    organ_data: Union[str, Dict[str, Any], None] = Field(default=None, alias="organData")

    def missing_fields(self) -> List[str]:
        required = {
            "labDate": self.lab_date,
            "patientSex": self.patient_sex,
            "biomarkers": self.biomarkers,
            "medicationList": self.medication_list,
        }
        if self.organ_data is None:
            required["organizationId"] = self.organization_id
            required["patientId"] = self.patient_id
        return [name for name, value in required.items() if value is None or value == ""]


class MedicationResult(_CamelModel):
    """Per-medication risk profile."""
    name: Any = ""
    dose: Union[str, int, float] = ""
    date: str = ""
    drug_category: str = Field(default="", alias="drugCategory")
    drug_class: str = Field(default="", alias="drugClass")
    caution_headline: str = Field(default="", alias="cautionHeadline")
    caution_note: str = Field(default="", alias="cautionNote")
    icd10: str = ""
    snomed: str = ""
    aha_lab_trigger_organs: str = Field(default="", alias="ahaLabTriggerOrgans")
    biomarker_abnormal: str = Field(default="", alias="biomarkerAbnormal")
    match_type: str = Field(alias="matchType")
    match_reason: Optional[str] = Field(default=None, alias="matchReason")
    rule_hit: Optional[int] = Field(default=None, alias="ruleHit")
    based_on: Optional[str] = Field(default=None, alias="basedOn")
    gemini_analysis: Optional[Dict[str, Any]] = Field(default=None, alias="geminiAnalysis")


class SkippedMedication(_CamelModel):
    """A medication whose drug class was learned during this request."""
    name: Any
    reason: str
    drug_class: str = Field(alias="drugClass")
    message: str


class ReviewResponse(_CamelModel):
    medication_list: List[MedicationResult] = Field(default_factory=list, alias="medicationList")
    skipped_medications: List[SkippedMedication] = Field(default_factory=list, alias="skippedMedications")

    def to_payload(self) -> Dict[str, Any]:
        """Wire format; ``skippedMedications`` is omitted when empty."""
        payload = self.model_dump(by_alias=True)
        if not self.skipped_medications:
            payload.pop("skippedMedications")
        return payload


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: str
    uptime_seconds: float
    knowledge_base: Dict[str, Any] = Field(default_factory=dict)
    oracle: Dict[str, Any] = Field(default_factory=dict)


class DrugClassesResponse(BaseModel):
    count: int
    drug_classes: List[str]
