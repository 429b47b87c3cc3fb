"""
Medication Resolver

Maps a medication name to a knowledge-base rule in three steps:

1. Exact     - the name is listed in some rule (first rule in table order wins)
2. Assisted  - the classification oracle names one of the known drug classes;
               the medication is then added to that class so step 1 finds it
               next time
3. Learn     - the oracle names a class the knowledge base has never seen; a
               new class row is written and the medication is deferred to a
               later request

Every outcome is returned, never raised: one medication failing must not
stop the rest of a batch.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from medsafety.core.knowledge import KnowledgeBaseStore, Rule
from medsafety.core.llm import DrugClassOracle, OracleAnswer
from medsafety.utils import (
    get_logger,
    InvalidInputError,
    KnowledgeBaseWriteError,
    OracleError,
    RuleNotFoundError,
    medication_context,
)

logger = get_logger(__name__)


class ResolutionStatus(str, Enum):
    EXACT = "exact"
    ASSISTED = "assisted"
    DEFERRED = "deferred"
    FAILED = "failed"


class MatchType(str, Enum):
    """Wire value reported per medication."""
    EXACT = "exact_match"
    ASSISTED = "gemini_match"
    NO_MATCH = "no_match"


class ErrorKind(str, Enum):
    INVALID_INPUT = "invalid_input"
    ORACLE_ERROR = "oracle_error"
    CLASS_NOT_FOUND = "class_not_found"
    CLASS_NOT_IDENTIFIED = "class_not_identified"
    RULE_NOT_FOUND = "rule_not_found"
    KNOWLEDGE_BASE_WRITE = "knowledge_base_write"
    INTERNAL = "internal_error"


@dataclass
class ResolutionOutcome:
    """Result of resolving one medication."""
    medication: str
    status: ResolutionStatus
    rule: Optional[Rule] = None
    error: Optional[ErrorKind] = None
    reason: str = ""
    new_class: Optional[str] = None
    oracle_answer: Optional[OracleAnswer] = None

    @property
    def match_type(self) -> MatchType:
        if self.status == ResolutionStatus.EXACT:
            return MatchType.EXACT
        if self.status == ResolutionStatus.ASSISTED:
            return MatchType.ASSISTED
        return MatchType.NO_MATCH

    @property
    def is_match(self) -> bool:
        return self.rule is not None

    @property
    def is_deferred(self) -> bool:
        return self.status == ResolutionStatus.DEFERRED

    @property
    def deferred_message(self) -> str:
        return (
            f'New drug class "{self.new_class}" added to database. '
            "Medication will be available in next request."
        )


def validate_medication_name(name: Any) -> str:
    """
    Raises:
        InvalidInputError: name is not a non-blank string
    """
    if not isinstance(name, str) or not name.strip():
        raise InvalidInputError("Medication name must be a non-empty string", field="name")
    return name.strip()


class MedicationResolver:
    """
    Resolves medication names against a KnowledgeBaseStore, consulting a
    DrugClassOracle for names the store does not list.
    """

    def __init__(self, store: KnowledgeBaseStore, oracle: DrugClassOracle):
        self.store = store
        self.oracle = oracle

    async def resolve(self, medication: Any) -> ResolutionOutcome:
        try:
            name = validate_medication_name(medication)
        except InvalidInputError:
            logger.warning(f"Invalid medication name: {medication!r}")
            return self._failed(
                medication if isinstance(medication, str) else "",
                ErrorKind.INVALID_INPUT,
                "Invalid name",
            )

        # Step 1: exact
        rule = self.store.find_exact(name)
        if rule is not None:
            logger.info(
                f'Exact match for "{name}" in row {rule.row_index} '
                f'(class "{rule.drug_class}", based on "{rule.based_on.value}")'
            )
            return ResolutionOutcome(medication=name, status=ResolutionStatus.EXACT, rule=rule)

        logger.info(f'No exact match for "{name}", consulting classification oracle')

        # Step 2: oracle
        try:
            answer = await self.oracle.classify(name, self.store.all_drug_classes())
        except OracleError as e:
            logger.error(
                f'Oracle failed for "{name}": {e.message}',
                extra=medication_context(name),
            )
            return self._failed(name, ErrorKind.ORACLE_ERROR, "Gemini API error")

        # Step 3: interpret the answer
        if answer.found_in_database and answer.drug_class:
            return await self._resolve_known_class(name, answer.drug_class, answer)

        if answer.actual_drug_class:
            if self.store.has_drug_class(answer.actual_drug_class):
                logger.info(
                    f'Oracle class "{answer.actual_drug_class}" for "{name}" already exists; '
                    "treating as a known class"
                )
                return await self._resolve_known_class(name, answer.actual_drug_class, answer)
            return await self._learn_new_class(name, answer)

        logger.warning(
            f'Oracle could not identify a drug class for "{name}"',
            extra=medication_context(name),
        )
        return self._failed(name, ErrorKind.CLASS_NOT_IDENTIFIED, "Drug class not identified", answer)

    async def _resolve_known_class(
        self,
        name: str,
        drug_class: str,
        answer: OracleAnswer,
    ) -> ResolutionOutcome:
        candidates = self.store.rules_for_class(drug_class)
        if not candidates:
            logger.warning(f'No rules found for drug class "{drug_class}"')
            return self._failed(
                name,
                ErrorKind.CLASS_NOT_FOUND,
                f'Drug class "{drug_class}" not found in rules',
                answer,
            )

        rule = next((r for r in candidates if r.is_class_based), candidates[0])
        if rule.is_class_based:
            logger.info(
                f'Oracle matched "{name}" to class-based rule at row {rule.row_index}',
                extra=medication_context(name, drug_class=rule.drug_class, rule_row=rule.row_index),
            )
            try:
                await asyncio.to_thread(self.store.append_medication_to_class, rule.drug_class, name)
            except RuleNotFoundError as e:
                logger.error(
                    f'Cannot record "{name}": {e.message}',
                    extra=medication_context(name, drug_class=drug_class),
                )
                return self._failed(name, ErrorKind.RULE_NOT_FOUND, e.message, answer)
            except KnowledgeBaseWriteError as e:
                logger.error(
                    f'Matched "{name}" but could not record it: {e.message}',
                    extra=medication_context(name, drug_class=rule.drug_class, rule_row=rule.row_index),
                )
        else:
            logger.warning(
                f'No class-based rule for "{drug_class}", using first match at row {rule.row_index}; '
                "medication not recorded"
            )

        return ResolutionOutcome(
            medication=name,
            status=ResolutionStatus.ASSISTED,
            rule=rule,
            oracle_answer=answer,
        )

    async def _learn_new_class(self, name: str, answer: OracleAnswer) -> ResolutionOutcome:
        new_class = answer.actual_drug_class
        logger.info(
            f'"{name}" belongs to new drug class "{new_class}"; deferring to a later request',
            extra=medication_context(name, drug_class=new_class),
        )
        try:
            await asyncio.to_thread(self.store.append_new_class, new_class, name, answer.to_dict())
        except KnowledgeBaseWriteError as e:
            logger.error(
                f'Could not add drug class "{new_class}": {e.message}',
                extra=medication_context(name, drug_class=new_class),
            )
            return self._failed(name, ErrorKind.KNOWLEDGE_BASE_WRITE, "Knowledge base update failed", answer)

        return ResolutionOutcome(
            medication=name,
            status=ResolutionStatus.DEFERRED,
            new_class=new_class,
            oracle_answer=answer,
        )

    @staticmethod
    def _failed(
        name: str,
        error: ErrorKind,
        reason: str,
        answer: Optional[OracleAnswer] = None,
    ) -> ResolutionOutcome:
        return ResolutionOutcome(
            medication=name,
            status=ResolutionStatus.FAILED,
            error=error,
            reason=reason,
            oracle_answer=answer,
        )
