"""
Trigger Filter

Narrows a patient's organ and biomarker signals down to the ones a matched
rule declares clinically relevant.

Trigger names are matched with a loose, bidirectional substring test:
"liver" matches "liver function" and the other way round. Unrelated terms
that happen to contain one another (e.g. "iron" / "environment") will match
too; that looseness is accepted.

Usage:
    from medsafety.core.clinical import TriggerFilter

    result = TriggerFilter().apply(rule, organ_signals, biomarker_signals)
    result.organs_text       # "dysfunctional liver, problematic kidney"
    result.biomarkers_text   # "abnormal high Creatinine"
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

from medsafety.core.knowledge import Rule
from medsafety.core.signals import BiomarkerSignal, Direction, OrganSignal, OrganStatus
from medsafety.utils import get_logger

logger = get_logger(__name__)


def fuzzy_match(trigger: str, candidate: str) -> bool:
    """True if either lower-cased, trimmed string contains the other. Empty strings never match."""
    t = (trigger or "").strip().lower()
    c = (candidate or "").strip().lower()
    if not t or not c:
        return False
    return t in c or c in t


def matches_any(triggers: Iterable[str], candidate: str) -> bool:
    return any(fuzzy_match(trigger, candidate) for trigger in triggers)


@dataclass
class TriggerResult:
    """Signals a rule cares about, ready for response assembly."""
    organs: List[OrganSignal] = field(default_factory=list)
    biomarkers: List[str] = field(default_factory=list)

    @property
    def organs_text(self) -> str:
        return ", ".join(s.display_text for s in self.organs)

    @property
    def biomarkers_text(self) -> str:
        return ", ".join(self.biomarkers)


class TriggerFilter:
    """
    Stateless; safe to share across concurrent requests.
    """

    def filter_organs(self, rule: Rule, signals: Sequence[OrganSignal]) -> List[OrganSignal]:
        """
        Keep problematic organs named in the rule's problematic list and
        dysfunctional organs named in its dysfunctional list. Stressed organs
        have no trigger tier and are never kept.

        Returns:
            Matching signals sorted by score, highest first.
        """
        tiers: Dict[OrganStatus, Sequence[str]] = {
            OrganStatus.PROBLEMATIC: rule.organ_triggers.problematic,
            OrganStatus.DYSFUNCTIONAL: rule.organ_triggers.dysfunctional,
        }

        kept: List[OrganSignal] = []
        for signal in signals:
            triggers = tiers.get(signal.status, ())
            if matches_any(triggers, signal.organ_name):
                kept.append(signal)
                logger.debug(f"Rule row {rule.row_index}: included organ {signal.display_text}")
            else:
                logger.debug(f"Rule row {rule.row_index}: excluded organ {signal.display_text}")

        # sorted() is stable, so equal scores keep input order
        return sorted(kept, key=lambda s: s.final_score, reverse=True)

    def filter_biomarkers(self, rule: Rule, signals: Sequence[BiomarkerSignal]) -> List[str]:
        """
        Direction-specific triggers win and keep the directional text
        ("abnormal high X"); otherwise a direction-agnostic trigger yields the
        generic text ("abnormal X"). Each biomarker is reported at most once.

        Returns:
            Display strings in input order.
        """
        triggers = rule.biomarker_triggers
        directional = {Direction.LOW: triggers.low, Direction.HIGH: triggers.high}

        filtered: List[str] = []
        seen = set()
        for signal in signals:
            key = signal.generic_text.lower()
            if key in seen:
                continue

            if matches_any(directional[signal.direction], signal.biomarker_name):
                text = signal.display_text
            elif matches_any(triggers.abnormal, signal.biomarker_name):
                text = signal.generic_text
            else:
                logger.debug(f"Rule row {rule.row_index}: excluded {signal.display_text}")
                continue

            seen.add(key)
            filtered.append(text)
            logger.debug(f"Rule row {rule.row_index}: included {text}")

        return filtered

    def apply(
        self,
        rule: Rule,
        organ_signals: Sequence[OrganSignal],
        biomarker_signals: Sequence[BiomarkerSignal],
    ) -> TriggerResult:
        result = TriggerResult(
            organs=self.filter_organs(rule, organ_signals),
            biomarkers=self.filter_biomarkers(rule, biomarker_signals),
        )
        logger.info(
            f"Rule row {rule.row_index} ({rule.drug_class}): "
            f"{len(result.organs)}/{len(organ_signals)} organs, "
            f"{len(result.biomarkers)}/{len(biomarker_signals)} biomarkers relevant"
        )
        return result
