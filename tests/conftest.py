"""
Pytest Configuration and Fixtures

Shared fixtures for medication review tests.
"""
import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from medsafety.core.knowledge import KnowledgeBaseStore
from tests.factories import (
    ACE_INHIBITORS,
    ACETAMINOPHEN,
    DEFAULT_RANGES,
    STATINS,
    FakeLabClient,
    FakeOracle,
    write_ranges,
    write_rules,
)


@pytest.fixture
def rules_path(tmp_path: Path) -> Path:
    """Rule table: ACE Inhibitors (row 2), Statins (row 3), acetaminophen (row 4)."""
    return write_rules(tmp_path / "rules.csv", [ACE_INHIBITORS, STATINS, ACETAMINOPHEN])


@pytest.fixture
def ranges_path(tmp_path: Path) -> Path:
    return write_ranges(tmp_path / "abnormal_ranges.csv", DEFAULT_RANGES)


@pytest.fixture
def store(rules_path: Path, ranges_path: Path) -> KnowledgeBaseStore:
    kb = KnowledgeBaseStore(rules_path, ranges_path)
    kb.load()
    return kb


@pytest.fixture
def fake_oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def fake_lab_client() -> FakeLabClient:
    return FakeLabClient()
