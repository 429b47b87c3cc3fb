"""
Drug Class Oracle

Asks Gemini whether a medication belongs to one of the drug classes already
in the knowledge base and, if not, which real-world class it belongs to.

The oracle is non-deterministic. Everything downstream depends only on the
``DrugClassOracle`` protocol so tests can script its answers.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Sequence

from medsafety.utils import get_logger, OracleError
from .gemini_client import GeminiClient

logger = get_logger(__name__)


CLASSIFICATION_PROMPT = """You are a pharmaceutical expert. I need to identify which drug class a medication belongs to.

Medication Name: "{medication}"

Available Drug Classes in our database:
{class_list}

Please analyze and respond in the following JSON format ONLY (no additional text):
{{
  "foundInDatabase": true/false,
  "drugClass": "exact drug class name from the list above if found, or null",
  "actualDrugClass": "the real-world drug class this medication belongs to",
  "confidence": "high/medium/low",
  "explanation": "brief explanation"
}}

If the medication belongs to one of the listed drug classes, set foundInDatabase to true and provide the exact drug class name.
If not, set foundInDatabase to false and provide the actual real-world drug class it belongs to."""

_FENCE = re.compile(r"```(?:json)?\s*\n?", re.IGNORECASE)


@dataclass(frozen=True)
class OracleAnswer:
    """Parsed classification answer."""
    found_in_database: bool
    drug_class: Optional[str] = None
    actual_drug_class: Optional[str] = None
    confidence: Optional[str] = None
    explanation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Same keys the oracle answers with; returned to clients as ``geminiAnalysis``."""
        return {
            "foundInDatabase": self.found_in_database,
            "drugClass": self.drug_class,
            "actualDrugClass": self.actual_drug_class,
            "confidence": self.confidence,
            "explanation": self.explanation,
        }


class DrugClassOracle(Protocol):
    async def classify(self, medication: str, known_classes: Sequence[str]) -> OracleAnswer:
        """Raises OracleError when no usable answer can be obtained."""
        ...


def build_prompt(medication: str, known_classes: Sequence[str]) -> str:
    class_list = "\n".join(f"- {name}" for name in known_classes)
    return CLASSIFICATION_PROMPT.format(medication=medication, class_list=class_list)


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() == "null":
        return None
    return text


def parse_answer(text: str, medication: str = "unknown") -> OracleAnswer:
    """
    Parse the oracle's reply, tolerating a surrounding ```json fence.

    Raises:
        OracleError: the reply is not a JSON object
    """
    cleaned = _FENCE.sub("", (text or "").strip()).strip()
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise OracleError(
            f"Oracle reply is not valid JSON: {e}",
            medication=medication,
            details={"raw": text[:500] if text else ""},
        ) from e

    if not isinstance(payload, dict):
        raise OracleError(
            "Oracle reply is not a JSON object",
            medication=medication,
            details={"raw": text[:500]},
        )

    found = payload.get("foundInDatabase", False)
    if isinstance(found, str):
        found = found.strip().lower() == "true"

    confidence = payload.get("confidence")
    return OracleAnswer(
        found_in_database=bool(found),
        drug_class=_optional_text(payload.get("drugClass")),
        actual_drug_class=_optional_text(payload.get("actualDrugClass")),
        confidence=str(confidence) if confidence is not None else None,
        explanation=_optional_text(payload.get("explanation")),
    )


class GeminiDrugClassOracle:
    """DrugClassOracle backed by Gemini."""

    def __init__(self, client: Optional[GeminiClient] = None):
        self.client = client or GeminiClient()

    async def classify(self, medication: str, known_classes: Sequence[str]) -> OracleAnswer:
        logger.info(
            f'Querying Gemini for medication "{medication}" '
            f"against {len(known_classes)} known drug classes"
        )
        prompt = build_prompt(medication, known_classes)

        try:
            response = await self.client.generate_async(prompt)
        except OracleError as e:
            raise OracleError(e.message, medication=medication) from e

        logger.debug(f"Gemini response: {response.to_dict()}")
        answer = parse_answer(response.text, medication=medication)
        logger.info(f"Gemini classification for {medication}: {answer.to_dict()}")
        return answer
