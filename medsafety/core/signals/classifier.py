"""
Signal Classifier

Turns the lab provider's organ scores and the patient's raw biomarker values
into typed, request-scoped signals for the trigger filter.

Organ score bands:
    6       stressed
    7 - 8   problematic
    9 - 11  dysfunctional
Any other score produces no signal.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Mapping, Optional, Union

from medsafety.core.knowledge import KnowledgeBaseStore
from medsafety.utils import get_logger

logger = get_logger(__name__)


class OrganStatus(str, Enum):
    STRESSED = "stressed"
    PROBLEMATIC = "problematic"
    DYSFUNCTIONAL = "dysfunctional"


class Direction(str, Enum):
    LOW = "low"
    HIGH = "high"


@dataclass(frozen=True)
class OrganSignal:
    organ_name: str
    status: OrganStatus
    final_score: float

    @property
    def display_text(self) -> str:
        return f"{self.status.value} {self.organ_name}"


@dataclass(frozen=True)
class BiomarkerSignal:
    direction: Direction
    biomarker_name: str
    value: float

    @property
    def display_text(self) -> str:
        return f"abnormal {self.direction.value} {self.biomarker_name}"

    @property
    def generic_text(self) -> str:
        return f"abnormal {self.biomarker_name}"


def organ_status_for_score(score: float) -> Optional[OrganStatus]:
    if score == 6:
        return OrganStatus.STRESSED
    if 7 <= score <= 8:
        return OrganStatus.PROBLEMATIC
    if 9 <= score <= 11:
        return OrganStatus.DYSFUNCTIONAL
    return None


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


class SignalClassifier:
    """Derives organ and biomarker signals; reference ranges come from the knowledge base."""

    def __init__(self, store: KnowledgeBaseStore):
        self.store = store

    def classify_organs(self, organ_data: Union[str, Mapping[str, Any], None]) -> List[OrganSignal]:
        """
        Args:
            organ_data: ``{organ: {"finalScore": n, ...}}`` or the same as a JSON string

        Returns:
            Signals for organs whose score falls in a band, in input order
        """
        if not organ_data:
            logger.info("No organ data available")
            return []

        if isinstance(organ_data, str):
            try:
                organ_data = json.loads(organ_data)
            except json.JSONDecodeError as e:
                logger.error(f"Organ data is not valid JSON: {e}")
                return []

        if not isinstance(organ_data, Mapping):
            logger.error(f"Organ data has unexpected type {type(organ_data).__name__}")
            return []

        signals: List[OrganSignal] = []
        for organ_name, organ_info in organ_data.items():
            raw_score = organ_info.get("finalScore") if isinstance(organ_info, Mapping) else None
            score = _as_number(raw_score)
            if score is None:
                logger.debug(f"{organ_name}: no numeric finalScore ({raw_score!r}), skipped")
                continue

            status = organ_status_for_score(score)
            if status is None:
                logger.debug(f"{organ_name}: score {score} outside all bands")
                continue

            signal = OrganSignal(organ_name=organ_name.strip().lower(), status=status, final_score=score)
            logger.info(f"Organ signal: {signal.display_text} (score {score})")
            signals.append(signal)

        return signals

    def classify_biomarkers(
        self,
        biomarkers: Mapping[str, Any],
        patient_sex: str,
    ) -> List[BiomarkerSignal]:
        """
        Compare each present biomarker value against its sex-specific limits.

        Biomarkers without a reference row, without a numeric value, or inside
        their limits produce no signal.
        """
        signals: List[BiomarkerSignal] = []

        for key, raw_value in (biomarkers or {}).items():
            if raw_value is None or raw_value == "":
                continue

            reference = self.store.find_reference(key)
            if reference is None:
                continue

            value = _as_number(raw_value)
            if value is None:
                logger.warning(f"Biomarker {key} has non-numeric value {raw_value!r}, skipped")
                continue

            lower, upper = reference.bounds_for(patient_sex)
            if lower is not None and value < lower:
                direction = Direction.LOW
            elif upper is not None and value > upper:
                direction = Direction.HIGH
            else:
                continue

            signals.append(BiomarkerSignal(
                direction=direction,
                biomarker_name=reference.biomarker_name,
                value=value,
            ))

        logger.info(f"Abnormal biomarkers: {[s.display_text for s in signals]}")
        return signals

    @staticmethod
    def organ_summary(signals: List[OrganSignal]) -> str:
        """All organ signals, most severe score first, as one display string."""
        ranked = sorted(signals, key=lambda s: s.final_score, reverse=True)
        return ", ".join(s.display_text for s in ranked)

