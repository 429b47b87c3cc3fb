"""
Unit Tests for Medication Resolution

Tests for the exact / oracle-assisted / learn-new-class paths and their
knowledge-base side effects, using a scripted oracle.
"""
import asyncio
import tempfile

import pytest

from medsafety.core.llm import OracleAnswer
from medsafety.core.resolution import (
    ErrorKind,
    MatchType,
    MedicationResolver,
    ResolutionStatus,
    validate_medication_name,
)
from medsafety.utils import InvalidInputError, KnowledgeBaseWriteError

from tests.factories import FakeOracle, known_class_answer, new_class_answer, read_rule_rows


def make_resolver(store, answers=None):
    oracle = FakeOracle(answers)
    return MedicationResolver(store, oracle), oracle


class TestValidateName:

    def test_trims(self):
        assert validate_medication_name("  Lisinopril ") == "Lisinopril"

    @pytest.mark.parametrize("name", [None, "", "   ", 42, ["aspirin"]])
    def test_rejects(self, name):
        with pytest.raises(InvalidInputError):
            validate_medication_name(name)


@pytest.mark.asyncio
class TestExactPath:

    async def test_exact_match_skips_oracle(self, store):
        resolver, oracle = make_resolver(store)
        outcome = await resolver.resolve("Lisinopril")

        assert outcome.status == ResolutionStatus.EXACT
        assert outcome.match_type == MatchType.EXACT
        assert outcome.rule.row_index == 2
        assert outcome.oracle_answer is None
        assert oracle.calls == []

    async def test_invalid_name(self, store):
        resolver, oracle = make_resolver(store)
        outcome = await resolver.resolve("   ")

        assert outcome.status == ResolutionStatus.FAILED
        assert outcome.error == ErrorKind.INVALID_INPUT
        assert outcome.reason == "Invalid name"
        assert outcome.match_type == MatchType.NO_MATCH
        assert oracle.calls == []


@pytest.mark.asyncio
class TestAssistedPath:

    async def test_known_class_learned_then_exact(self, store):
        resolver, oracle = make_resolver(store, {"ramipril": known_class_answer("ACE Inhibitors")})

        first = await resolver.resolve("ramipril")
        assert first.status == ResolutionStatus.ASSISTED
        assert first.match_type == MatchType.ASSISTED
        assert first.rule.row_index == 2
        assert first.oracle_answer.drug_class == "ACE Inhibitors"
        assert store.revision == 1

        second = await resolver.resolve("Ramipril")
        assert second.status == ResolutionStatus.EXACT
        assert second.rule.row_index == 2
        assert len(oracle.calls) == 1

    async def test_oracle_receives_class_based_classes(self, store):
        resolver, oracle = make_resolver(store, {"ramipril": known_class_answer("ACE Inhibitors")})
        await resolver.resolve("ramipril")
        assert oracle.calls[0]["known_classes"] == ["ACE Inhibitors", "Statins"]

    async def test_actual_class_already_known(self, store):
        answer = OracleAnswer(found_in_database=False, actual_drug_class="statins")
        resolver, _ = make_resolver(store, {"rosuvastatin": answer})

        outcome = await resolver.resolve("rosuvastatin")

        assert outcome.status == ResolutionStatus.ASSISTED
        assert outcome.rule.drug_class == "Statins"
        assert store.find_exact("rosuvastatin") is not None
        # No new class row
        assert len(store.rules) == 3

    async def test_medication_based_rule_not_learned(self, store):
        resolver, _ = make_resolver(store, {"paracetamol": known_class_answer("Non-Opioid Analgesics")})

        outcome = await resolver.resolve("paracetamol")

        assert outcome.status == ResolutionStatus.ASSISTED
        assert outcome.rule.row_index == 4
        assert store.revision == 0
        assert store.find_exact("paracetamol") is None

    async def test_class_not_in_rules(self, store):
        resolver, _ = make_resolver(store, {"metoprolol": known_class_answer("Beta Blockers")})

        outcome = await resolver.resolve("metoprolol")

        assert outcome.status == ResolutionStatus.FAILED
        assert outcome.error == ErrorKind.CLASS_NOT_FOUND
        assert outcome.reason == 'Drug class "Beta Blockers" not found in rules'
        assert outcome.oracle_answer is not None

    async def test_write_failure_still_matches(self, store, monkeypatch):
        def fail(*args, **kwargs):
            raise KnowledgeBaseWriteError("disk full")

        monkeypatch.setattr(store, "append_medication_to_class", fail)
        resolver, _ = make_resolver(store, {"ramipril": known_class_answer("ACE Inhibitors")})

        outcome = await resolver.resolve("ramipril")

        assert outcome.status == ResolutionStatus.ASSISTED
        assert outcome.rule.row_index == 2

    async def test_unwritable_directory_still_matches(self, store, monkeypatch):
        def read_only_dir(*args, **kwargs):
            raise PermissionError(13, "Permission denied")

        monkeypatch.setattr(tempfile, "mkstemp", read_only_dir)
        resolver, _ = make_resolver(store, {"ramipril": known_class_answer("ACE Inhibitors")})

        outcome = await resolver.resolve("ramipril")

        assert outcome.status == ResolutionStatus.ASSISTED
        assert outcome.match_type == MatchType.ASSISTED
        assert store.find_exact("ramipril") is None


@pytest.mark.asyncio
class TestLearnNewClass:

    async def test_new_class_deferred_then_exact(self, store):
        resolver, oracle = make_resolver(store, {"xyzdrug": new_class_answer("Xyz Blockers")})

        first = await resolver.resolve("xyzdrug")
        assert first.status == ResolutionStatus.DEFERRED
        assert first.is_deferred
        assert first.new_class == "Xyz Blockers"
        assert first.rule is None
        assert first.deferred_message == (
            'New drug class "Xyz Blockers" added to database. '
            "Medication will be available in next request."
        )
        assert store.has_drug_class("Xyz Blockers")

        second = await resolver.resolve("xyzdrug")
        assert second.status == ResolutionStatus.EXACT
        assert second.rule.row_index == 5
        assert second.rule.icd10_code == "T88.7XXA"
        assert len(oracle.calls) == 1

    async def test_new_class_write_failure(self, store, monkeypatch):
        def fail(*args, **kwargs):
            raise KnowledgeBaseWriteError("read-only")

        monkeypatch.setattr(store, "append_new_class", fail)
        resolver, _ = make_resolver(store, {"xyzdrug": new_class_answer("Xyz Blockers")})

        outcome = await resolver.resolve("xyzdrug")

        assert outcome.status == ResolutionStatus.FAILED
        assert outcome.error == ErrorKind.KNOWLEDGE_BASE_WRITE
        assert outcome.reason == "Knowledge base update failed"

    async def test_concurrent_requests_share_new_class_row(self, store, rules_path):
        oracle = FakeOracle(
            {
                "xyzdrug": new_class_answer("Test Class"),
                "abcdrug": new_class_answer("Test Class"),
            },
            delay=0.05,
        )
        resolver = MedicationResolver(store, oracle)

        outcomes = await asyncio.gather(resolver.resolve("xyzdrug"), resolver.resolve("abcdrug"))

        assert outcomes[0].status in (ResolutionStatus.DEFERRED, ResolutionStatus.ASSISTED)
        assert outcomes[1].status in (ResolutionStatus.DEFERRED, ResolutionStatus.ASSISTED)
        class_rows = [row for row in read_rule_rows(rules_path)[1:] if row[2] == "Test Class"]
        assert len(class_rows) == 1
        assert store.find_exact("xyzdrug").row_index == 5
        assert store.find_exact("abcdrug").row_index == 5


@pytest.mark.asyncio
class TestOracleFailures:

    async def test_oracle_error(self, store):
        resolver, _ = make_resolver(store)
        outcome = await resolver.resolve("unknowndrug")

        assert outcome.status == ResolutionStatus.FAILED
        assert outcome.error == ErrorKind.ORACLE_ERROR
        assert outcome.reason == "Gemini API error"
        assert store.revision == 0

    async def test_class_not_identified(self, store):
        answer = OracleAnswer(found_in_database=False, actual_drug_class=None)
        resolver, _ = make_resolver(store, {"mystery": answer})

        outcome = await resolver.resolve("mystery")

        assert outcome.status == ResolutionStatus.FAILED
        assert outcome.error == ErrorKind.CLASS_NOT_IDENTIFIED
        assert outcome.reason == "Drug class not identified"
