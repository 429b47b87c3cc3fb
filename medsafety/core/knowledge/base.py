"""
Knowledge Base - Base Types

Rows of the medication rule table and the abnormal-range reference table,
plus the fixed CSV column layout both tables are persisted with.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple


# ── Rule table columns (persisted order is fixed) ────────────────────────────
COL_BASED_ON = "Based_On"
COL_CATEGORY = "Drug Category"
COL_CLASS = "Drug Class"
COL_MEDICATIONS = "Medications"
COL_ORGANS_PROBLEMATIC = "AHA Lab Trigger - Organs Problematic"
COL_ORGANS_DYSFUNCTIONAL = "AHA Lab Trigger - Organs Dysfunctional"
COL_BIOMARKER_ABNORMAL = "AHA Lab Trigger - Biomarker Abnormal"
COL_BIOMARKER_LOW = "AHA Lab Trigger - Biomarker Low"
COL_BIOMARKER_HIGH = "AHA Lab Trigger - Biomarker High"
COL_CAUTION_NOTE = "Caution Note"
COL_ICD10_DIAGNOSIS = "ICD-10 Diagnosis"
COL_ICD10_CODE = "ICD-10 Diagnostic Code"
COL_SNOMED = "SNOMED"
# The two trailing columns have blank headers on disk.
COL_RESERVED_1 = "_reserved_1"
COL_RESERVED_2 = "_reserved_2"

RULE_COLUMNS: List[str] = [
    COL_BASED_ON,
    COL_CATEGORY,
    COL_CLASS,
    COL_MEDICATIONS,
    COL_ORGANS_PROBLEMATIC,
    COL_ORGANS_DYSFUNCTIONAL,
    COL_BIOMARKER_ABNORMAL,
    COL_BIOMARKER_LOW,
    COL_BIOMARKER_HIGH,
    COL_CAUTION_NOTE,
    COL_ICD10_DIAGNOSIS,
    COL_ICD10_CODE,
    COL_SNOMED,
    COL_RESERVED_1,
    COL_RESERVED_2,
]

# Header row as written to disk.
RULE_HEADERS: List[str] = [
    "" if c in (COL_RESERVED_1, COL_RESERVED_2) else c for c in RULE_COLUMNS
]

REQUIRED_RULE_COLUMNS = (COL_CLASS, COL_MEDICATIONS)

# Placeholder annotation for classes learned from the oracle.
NEW_CLASS_ICD10_DIAGNOSIS = "Side effect of drug"
NEW_CLASS_ICD10_CODE = "T88.7XXA"
NEW_CLASS_SNOMED = "69449002"

# ── Abnormal range table columns ─────────────────────────────────────────────
RANGE_COL_ORDER = "Order"
RANGE_COL_PANEL = "Panel"
RANGE_COL_FIELD = "Field"
RANGE_COL_NAME = "Biomarker_Name"
RANGE_COL_UNITS = "Conventional Units"
RANGE_COL_MALE_LOWER = "Man Abnormal Lower Limit"
RANGE_COL_MALE_UPPER = "Man Abnormal Upper Limit"
RANGE_COL_FEMALE_LOWER = "Woman Abnormal Lower Limit"
RANGE_COL_FEMALE_UPPER = "Woman Abnormal Upper Limit"

REQUIRED_RANGE_COLUMNS = (RANGE_COL_NAME, RANGE_COL_FIELD)


class BasedOn(str, Enum):
    """What a rule keys on."""
    CLASS = "Class"
    MEDICATION = "Medication"
    OTHER = "Other"

    @classmethod
    def parse(cls, raw: str) -> "BasedOn":
        text = (raw or "").strip().lower()
        for member in (cls.CLASS, cls.MEDICATION):
            if text == member.value.lower():
                return member
        return cls.OTHER


def split_list(raw: str, lower: bool = True) -> List[str]:
    """Split a comma-separated cell into trimmed, non-empty entries."""
    items = [item.strip() for item in (raw or "").split(",")]
    return [item.lower() if lower else item for item in items if item]


@dataclass(frozen=True)
class OrganTriggers:
    """Organs a rule cares about, per organ status tier."""
    problematic: Tuple[str, ...] = ()
    dysfunctional: Tuple[str, ...] = ()


@dataclass(frozen=True)
class BiomarkerTriggers:
    """Biomarkers a rule cares about, per abnormality direction."""
    abnormal: Tuple[str, ...] = ()   # either direction
    low: Tuple[str, ...] = ()
    high: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Rule:
    """
    One knowledge-base entry.

    ``row_index`` is the CSV line number of the row (header is line 1) and is
    what responses report as the rule that matched.
    """
    row_index: int
    based_on: BasedOn
    drug_class: str
    medications_list: Tuple[str, ...]
    based_on_raw: str = ""
    drug_category: str = ""
    caution_note: str = ""
    icd10_diagnosis: str = ""
    icd10_code: str = ""
    snomed_code: str = ""
    organ_triggers: OrganTriggers = field(default_factory=OrganTriggers)
    biomarker_triggers: BiomarkerTriggers = field(default_factory=BiomarkerTriggers)
    medications: FrozenSet[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "medications", frozenset(self.medications_list))

    @property
    def is_class_based(self) -> bool:
        return self.based_on == BasedOn.CLASS

    def has_medication(self, name: str) -> bool:
        return name.strip().lower() in self.medications

    @classmethod
    def from_row(cls, row: Dict[str, str], row_index: int) -> Optional["Rule"]:
        """Build a rule from a CSV row; rows without a class or medications yield None."""
        drug_class = (row.get(COL_CLASS) or "").strip()
        meds_raw = (row.get(COL_MEDICATIONS) or "").strip()
        if not drug_class or not meds_raw:
            return None

        # dict.fromkeys keeps first-seen order while dropping duplicates
        medications = tuple(dict.fromkeys(split_list(meds_raw)))
        based_on_raw = (row.get(COL_BASED_ON) or "").strip()

        return cls(
            row_index=row_index,
            based_on=BasedOn.parse(based_on_raw),
            based_on_raw=based_on_raw,
            drug_class=drug_class,
            drug_category=(row.get(COL_CATEGORY) or "").strip(),
            medications_list=medications,
            caution_note=(row.get(COL_CAUTION_NOTE) or "").strip(),
            icd10_diagnosis=(row.get(COL_ICD10_DIAGNOSIS) or "").strip(),
            icd10_code=(row.get(COL_ICD10_CODE) or "").strip(),
            snomed_code=(row.get(COL_SNOMED) or "").strip(),
            organ_triggers=OrganTriggers(
                problematic=tuple(split_list(row.get(COL_ORGANS_PROBLEMATIC, ""))),
                dysfunctional=tuple(split_list(row.get(COL_ORGANS_DYSFUNCTIONAL, ""))),
            ),
            biomarker_triggers=BiomarkerTriggers(
                abnormal=tuple(split_list(row.get(COL_BIOMARKER_ABNORMAL, ""))),
                low=tuple(split_list(row.get(COL_BIOMARKER_LOW, ""))),
                high=tuple(split_list(row.get(COL_BIOMARKER_HIGH, ""))),
            ),
        )


@dataclass(frozen=True)
class AbnormalRangeReference:
    """One biomarker's sex-specific abnormal limits. ``None`` means no limit on that side."""
    biomarker_name: str
    field_alias: str = ""
    units: str = ""
    panel: str = ""
    order: str = ""
    male_lower: Optional[float] = None
    male_upper: Optional[float] = None
    female_lower: Optional[float] = None
    female_upper: Optional[float] = None

    def matches(self, key: str) -> bool:
        key_lower = key.strip().lower()
        return key_lower in (self.biomarker_name.lower(), self.field_alias.lower())

    def bounds_for(self, patient_sex: str) -> Tuple[Optional[float], Optional[float]]:
        """Lower/upper bounds for the patient's sex; anything other than 'male' uses female limits."""
        if (patient_sex or "").strip().lower() == "male":
            return self.male_lower, self.male_upper
        return self.female_lower, self.female_upper


def unique_in_order(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))
