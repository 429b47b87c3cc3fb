"""
Medication Review Service

Runs one review request end to end:

    organ scores + biomarkers -> signals
    each medication           -> resolver outcome
    matched rule + signals    -> relevant triggers
                              -> MedicationResult / SkippedMedication

Medications are processed one after another; each may wait on the oracle.
A failure while handling one medication is logged and reported as a
no-match entry for that medication only.
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple

from medsafety.core.clinical import TriggerFilter
from medsafety.core.knowledge import KnowledgeBaseStore
from medsafety.core.resolution import (
    ErrorKind,
    MedicationResolver,
    ResolutionOutcome,
    ResolutionStatus,
)
from medsafety.core.signals import BiomarkerSignal, OrganSignal, SignalClassifier
from medsafety.models import (
    MedicationInput,
    MedicationResult,
    ReviewRequest,
    ReviewResponse,
    SkippedMedication,
)
from medsafety.utils import get_logger, InvalidInputError
from .lab_results import LabResultsClient

logger = get_logger(__name__)

NEW_CLASS_REASON = "new_class_added"


class MedicationReviewService:
    """Assembles per-medication risk profiles for one patient."""

    def __init__(
        self,
        store: KnowledgeBaseStore,
        resolver: MedicationResolver,
        lab_client: Optional[LabResultsClient] = None,
        classifier: Optional[SignalClassifier] = None,
        trigger_filter: Optional[TriggerFilter] = None,
    ):
        self.store = store
        self.resolver = resolver
        self.lab_client = lab_client or LabResultsClient()
        self.classifier = classifier or SignalClassifier(store)
        self.trigger_filter = trigger_filter or TriggerFilter()

    async def review(self, request: ReviewRequest, bearer_token: Optional[str] = None) -> ReviewResponse:
        """
        Raises:
            InvalidInputError: required request data is missing
            LabResultsError: organ data had to be fetched and the provider failed
        """
        missing = request.missing_fields()
        if missing:
            raise InvalidInputError(f"Required fields missing: {', '.join(missing)}", field=missing[0])
        if not request.medication_list:
            raise InvalidInputError("medicationList must be a non-empty array", field="medicationList")

        organ_signals, biomarker_signals = await self.compute_signals(request, bearer_token)

        results: List[MedicationResult] = []
        skipped: List[SkippedMedication] = []
        total = len(request.medication_list)

        for position, medication in enumerate(request.medication_list, start=1):
            logger.info(f"Processing medication {position}/{total}: {medication.name!r}")
            entry = await self._review_medication(
                medication, request.lab_date, organ_signals, biomarker_signals
            )
            if isinstance(entry, SkippedMedication):
                logger.info(f"Skipping {medication.name!r} from response: {entry.reason}")
                skipped.append(entry)
            else:
                results.append(entry)

        if skipped:
            logger.info(f"{len(skipped)} medication(s) skipped and added to the knowledge base")
        return ReviewResponse(medication_list=results, skipped_medications=skipped)

    async def compute_signals(
        self,
        request: ReviewRequest,
        bearer_token: Optional[str] = None,
    ) -> Tuple[List[OrganSignal], List[BiomarkerSignal]]:
        organ_data = request.organ_data
        if organ_data is None:
            if not bearer_token:
                raise InvalidInputError("Bearer token required to fetch lab results", field="authorization")
            lab_results = await self.lab_client.fetch_lab_results(
                request.organization_id,
                request.patient_id,
                request.biomarkers,
                request.lab_date,
                bearer_token,
            )
            organ_data = lab_results.get("OrganData") or "{}"

        organ_signals = self.classifier.classify_organs(organ_data)
        present = {
            key: value for key, value in request.biomarkers.items()
            if value is not None and value != ""
        }
        biomarker_signals = self.classifier.classify_biomarkers(present, request.patient_sex)
        return organ_signals, biomarker_signals

    async def _review_medication(
        self,
        medication: MedicationInput,
        date: str,
        organ_signals: Sequence[OrganSignal],
        biomarker_signals: Sequence[BiomarkerSignal],
    ):
        try:
            outcome = await self.resolver.resolve(medication.name)
            if outcome.is_deferred:
                return SkippedMedication(
                    name=medication.name,
                    reason=NEW_CLASS_REASON,
                    drug_class=outcome.new_class,
                    message=outcome.deferred_message,
                )
            return self.build_result(medication, date, outcome, organ_signals, biomarker_signals)
        except Exception as exc:
            # Isolate failures: one medication must not abort the batch
            logger.error(f"Processing {medication.name!r} raised {exc}", exc_info=True)
            outcome = ResolutionOutcome(
                medication=str(medication.name or ""),
                status=ResolutionStatus.FAILED,
                error=ErrorKind.INTERNAL,
                reason="Processing error",
            )
            return self.build_result(medication, date, outcome, organ_signals, biomarker_signals)

    def build_result(
        self,
        medication: MedicationInput,
        date: str,
        outcome: ResolutionOutcome,
        organ_signals: Sequence[OrganSignal],
        biomarker_signals: Sequence[BiomarkerSignal],
    ) -> MedicationResult:
        answer = outcome.oracle_answer.to_dict() if outcome.oracle_answer else None
        dose = medication.dose if medication.dose is not None else ""

        if not outcome.is_match:
            logger.info(f"No match for {medication.name!r}: {outcome.reason}")
            return MedicationResult(
                name=medication.name or "",
                dose=dose,
                date=date or "",
                drug_class=(outcome.oracle_answer and outcome.oracle_answer.actual_drug_class) or "not found",
                aha_lab_trigger_organs=self.classifier.organ_summary(list(organ_signals)),
                match_type=outcome.match_type.value,
                match_reason=outcome.reason,
                rule_hit=None,
                gemini_analysis=answer,
            )

        rule = outcome.rule
        triggers = self.trigger_filter.apply(rule, organ_signals, biomarker_signals)
        return MedicationResult(
            name=medication.name,
            dose=dose,
            date=date or "",
            drug_category=rule.drug_category,
            drug_class=rule.drug_class,
            caution_note=rule.caution_note,
            icd10=rule.icd10_code,
            snomed=rule.snomed_code,
            aha_lab_trigger_organs=triggers.organs_text,
            biomarker_abnormal=triggers.biomarkers_text,
            match_type=outcome.match_type.value,
            rule_hit=rule.row_index,
            based_on=rule.based_on_raw or rule.based_on.value,
            gemini_analysis=answer,
        )

    def knowledge_base_summary(self) -> Dict[str, Any]:
        return self.store.stats()
