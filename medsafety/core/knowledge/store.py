"""
Knowledge Base Store

Owns the medication rule table and the abnormal-range reference table.

Readers work on immutable tuple snapshots that are swapped in whole after a
successful load, so a lookup never observes a half-built table. Every write
goes through one lock: the persisted table is re-read, modified, written to a
temporary file, renamed over the original and then reloaded.

Usage:
    store = KnowledgeBaseStore(rules_path, ranges_path)
    store.load()
    rule = store.find_exact("lisinopril")
    store.append_medication_to_class("ACE Inhibitors", "perindopril")
"""
from __future__ import annotations

import os
import re
import tempfile
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import pandas as pd

from medsafety.utils import (
    get_logger,
    medication_context,
    LoadError,
    KnowledgeBaseWriteError,
    RuleNotFoundError,
)
from .base import (
    AbnormalRangeReference,
    BasedOn,
    Rule,
    RULE_COLUMNS,
    RULE_HEADERS,
    REQUIRED_RULE_COLUMNS,
    REQUIRED_RANGE_COLUMNS,
    COL_BASED_ON,
    COL_CLASS,
    COL_MEDICATIONS,
    COL_ICD10_DIAGNOSIS,
    COL_ICD10_CODE,
    COL_SNOMED,
    COL_RESERVED_1,
    COL_RESERVED_2,
    NEW_CLASS_ICD10_DIAGNOSIS,
    NEW_CLASS_ICD10_CODE,
    NEW_CLASS_SNOMED,
    RANGE_COL_ORDER,
    RANGE_COL_PANEL,
    RANGE_COL_FIELD,
    RANGE_COL_NAME,
    RANGE_COL_UNITS,
    RANGE_COL_MALE_LOWER,
    RANGE_COL_MALE_UPPER,
    RANGE_COL_FEMALE_LOWER,
    RANGE_COL_FEMALE_UPPER,
    split_list,
    unique_in_order,
)

logger = get_logger(__name__)

_NUMBER_PREFIX = re.compile(r"\d+(?:\.\d*)?|\.\d+")


def parse_bound(raw: Optional[str]) -> Optional[float]:
    """
    Parse a limit cell such as ``"<3.5"`` or ``"1,200 mg/dL"``.

    Every character other than digits and '.' is dropped first, so limits
    embedded in other text still parse. Empty or unusable cells mean no limit.
    """
    cleaned = re.sub(r"[^0-9.]", "", raw or "")
    match = _NUMBER_PREFIX.match(cleaned)
    if not match:
        return None
    return float(match.group())


def _read_csv(path: Path, table: str) -> pd.DataFrame:
    """Read a CSV as strings; rows with extra fields are truncated to the header width."""
    if not path.exists():
        raise LoadError(f"Table not found: {path}", table=table, details={"path": str(path)})

    try:
        width = len(pd.read_csv(path, nrows=0, encoding="utf-8").columns)
        df = pd.read_csv(
            path,
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            encoding="utf-8",
            engine="python",
            index_col=False,
            on_bad_lines=lambda fields: fields[:width],
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError, OSError) as e:
        raise LoadError(
            f"Failed to parse {table} table: {e}",
            table=table,
            details={"path": str(path)},
        ) from e

    df = df.fillna("")
    df.columns = [str(c).strip() for c in df.columns]
    return df


class KnowledgeBaseStore:
    """
    File-backed rule table + abnormal-range references.

    Thread-safe for many readers and one writer at a time. Writers in other
    processes are not coordinated with (last write wins).
    """

    def __init__(self, rules_path: Union[str, Path], ranges_path: Union[str, Path]):
        self.rules_path = Path(rules_path)
        self.ranges_path = Path(ranges_path)

        self._rules: Tuple[Rule, ...] = ()
        self._ranges: Tuple[AbnormalRangeReference, ...] = ()
        self._write_lock = threading.RLock()
        self._revision = 0
        self._loaded_at: Optional[datetime] = None
        self._last_error: Optional[str] = None

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    @property
    def rules(self) -> Tuple[Rule, ...]:
        return self._rules

    @property
    def abnormal_ranges(self) -> Tuple[AbnormalRangeReference, ...]:
        return self._ranges

    @property
    def revision(self) -> int:
        """Number of successful table rewrites performed by this store."""
        return self._revision

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load(self) -> None:
        """
        Load both tables.

        Both loads are attempted; the first LoadError is re-raised afterwards.
        A failed table keeps its last successfully loaded snapshot.
        """
        errors: List[LoadError] = []
        for loader in (self.load_rules, self.load_abnormal_ranges):
            try:
                loader()
            except LoadError as e:
                errors.append(e)
        if errors:
            raise errors[0]

    def load_rules(self) -> None:
        logger.info(f"Loading rule table from {self.rules_path}")
        try:
            df = self._read_rule_table()
        except LoadError as e:
            self._last_error = e.message
            logger.error(f"Rule table load failed: {e.message}")
            raise

        rules: List[Rule] = []
        for position, row in enumerate(df.to_dict(orient="records")):
            rule = Rule.from_row(row, row_index=position + 2)
            if rule is not None:
                rules.append(rule)

        self._rules = tuple(rules)
        self._loaded_at = datetime.now()
        self._last_error = None
        logger.info(f"Parsed {len(df)} rule rows, {len(rules)} valid rules loaded")

    def load_abnormal_ranges(self) -> None:
        logger.info(f"Loading abnormal range table from {self.ranges_path}")
        try:
            df = _read_csv(self.ranges_path, table="abnormal_ranges")
            missing = [c for c in REQUIRED_RANGE_COLUMNS if c not in df.columns]
            if missing:
                raise LoadError(
                    f"Abnormal range table is missing columns: {missing}",
                    table="abnormal_ranges",
                    details={"path": str(self.ranges_path)},
                )

            references: List[AbnormalRangeReference] = []
            for position, row in enumerate(df.to_dict(orient="records")):
                name = row[RANGE_COL_NAME].strip()
                if not name:
                    raise LoadError(
                        f"Abnormal range row {position + 2} has no biomarker name",
                        table="abnormal_ranges",
                        details={"path": str(self.ranges_path), "row": position + 2},
                    )
                references.append(AbnormalRangeReference(
                    biomarker_name=name,
                    field_alias=row[RANGE_COL_FIELD].strip(),
                    units=row.get(RANGE_COL_UNITS, "").strip(),
                    panel=row.get(RANGE_COL_PANEL, "").strip(),
                    order=row.get(RANGE_COL_ORDER, "").strip(),
                    male_lower=parse_bound(row.get(RANGE_COL_MALE_LOWER)),
                    male_upper=parse_bound(row.get(RANGE_COL_MALE_UPPER)),
                    female_lower=parse_bound(row.get(RANGE_COL_FEMALE_LOWER)),
                    female_upper=parse_bound(row.get(RANGE_COL_FEMALE_UPPER)),
                ))
        except LoadError as e:
            self._last_error = e.message
            logger.error(f"Abnormal range table load failed: {e.message}")
            raise

        self._ranges = tuple(references)
        logger.info(f"Loaded {len(references)} abnormal range references")

    def _read_rule_table(self) -> pd.DataFrame:
        df = _read_csv(self.rules_path, table="rules")
        # Blank headers come back from pandas as "Unnamed: <n>"
        blank = [c for c in df.columns if c == "" or c.startswith("Unnamed:")]
        df = df.rename(columns=dict(zip(blank, (COL_RESERVED_1, COL_RESERVED_2))))
        missing = [c for c in REQUIRED_RULE_COLUMNS if c not in df.columns]
        if missing:
            raise LoadError(
                f"Rule table is missing columns: {missing}",
                table="rules",
                details={"path": str(self.rules_path)},
            )
        return df.reindex(columns=RULE_COLUMNS, fill_value="")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_exact(self, med_name: str) -> Optional[Rule]:
        """First rule, in table order, listing the medication (case-insensitive)."""
        for rule in self._rules:
            if rule.has_medication(med_name):
                return rule
        return None

    def rules_for_class(self, drug_class: str) -> List[Rule]:
        wanted = drug_class.strip().lower()
        return [r for r in self._rules if r.drug_class.lower() == wanted]

    def all_drug_classes(self) -> List[str]:
        """Distinct class names among class-based rules, first-seen order."""
        return unique_in_order(r.drug_class for r in self._rules if r.is_class_based)

    def has_drug_class(self, drug_class: str) -> bool:
        wanted = drug_class.strip().lower()
        return any(c.lower() == wanted for c in self.all_drug_classes())

    def find_reference(self, key: str) -> Optional[AbnormalRangeReference]:
        for reference in self._ranges:
            if reference.matches(key):
                return reference
        return None

    def stats(self) -> Dict[str, Any]:
        return {
            "rules": len(self._rules),
            "drug_classes": len(self.all_drug_classes()),
            "abnormal_ranges": len(self._ranges),
            "revision": self._revision,
            "loaded_at": self._loaded_at.isoformat() if self._loaded_at else None,
            "last_error": self._last_error,
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def append_medication_to_class(self, drug_class: str, med_name: str) -> bool:
        """
        Add a medication to the class-based row for ``drug_class``.

        Returns:
            True if the table was rewritten, False if the medication was already listed.

        Raises:
            RuleNotFoundError: no class-based row exists for the class
            KnowledgeBaseWriteError: the table could not be read back or written
        """
        med_name = med_name.strip()
        logger.info(f'Adding "{med_name}" to drug class "{drug_class}"')

        with self._write_lock:
            df = self._read_for_update()

            idx = self._class_row(df, drug_class)
            if idx is None:
                logger.warning(f'No class-based rule for "{drug_class}"')
                raise RuleNotFoundError(drug_class)

            return self._add_to_row(df, idx, med_name)

    def append_new_class(
        self,
        drug_class: str,
        med_name: str,
        annotation: Optional[Dict[str, Any]] = None,
    ) -> int:
        """
        Append a new class-based row holding a single medication.

        If another writer created a class-based row for the same class in the
        meantime, the medication is added to that row instead.

        Returns:
            The row index of the rule now holding the medication.
        """
        drug_class = drug_class.strip()
        med_name = med_name.strip()
        logger.info(
            f'Adding new drug class "{drug_class}" with medication "{med_name}"',
            extra=medication_context(med_name, drug_class=drug_class),
        )
        if annotation:
            logger.debug(f"Classification behind new class: {annotation}")

        with self._write_lock:
            df = self._read_for_update()

            idx = self._class_row(df, drug_class)
            if idx is not None:
                logger.info(f'Drug class "{drug_class}" already present at row {idx + 2}')
                self._add_to_row(df, idx, med_name)
                return idx + 2

            new_row = {column: "" for column in RULE_COLUMNS}
            new_row.update({
                COL_BASED_ON: BasedOn.CLASS.value,
                COL_CLASS: drug_class,
                COL_MEDICATIONS: med_name,
                COL_ICD10_DIAGNOSIS: NEW_CLASS_ICD10_DIAGNOSIS,
                COL_ICD10_CODE: NEW_CLASS_ICD10_CODE,
                COL_SNOMED: NEW_CLASS_SNOMED,
            })
            df = pd.concat([df, pd.DataFrame([new_row], columns=RULE_COLUMNS)], ignore_index=True)
            self._persist(df)
            return len(df) + 1

    @staticmethod
    def _class_row(df: pd.DataFrame, drug_class: str) -> Optional[int]:
        """First class-based row for the class that loads as a rule (non-empty Medications)."""
        wanted = drug_class.strip().lower()
        is_class_row = df[COL_BASED_ON].str.strip().str.lower() == BasedOn.CLASS.value.lower()
        same_class = df[COL_CLASS].str.strip().str.lower() == wanted
        has_meds = df[COL_MEDICATIONS].str.strip() != ""
        candidates = df.index[is_class_row & same_class & has_meds]
        return int(candidates[0]) if len(candidates) else None

    def _add_to_row(self, df: pd.DataFrame, idx: int, med_name: str) -> bool:
        meds = split_list(df.at[idx, COL_MEDICATIONS], lower=False)
        if any(m.lower() == med_name.lower() for m in meds):
            logger.info(
                f'"{med_name}" already listed in row {idx + 2}',
                extra=medication_context(med_name, rule_row=idx + 2),
            )
            return False

        meds.append(med_name)
        df.at[idx, COL_MEDICATIONS] = ", ".join(meds)
        self._persist(df)
        logger.info(
            f'Added "{med_name}" to row {idx + 2}',
            extra=medication_context(med_name, rule_row=idx + 2, revision=self._revision),
        )
        return True

    def _read_for_update(self) -> pd.DataFrame:
        try:
            return self._read_rule_table()
        except LoadError as e:
            raise KnowledgeBaseWriteError(
                f"Cannot update rule table: {e.message}",
                details=e.details,
            ) from e

    def _persist(self, df: pd.DataFrame) -> None:
        """Write atomically (temp file + rename), then reload the in-memory rules."""
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=str(self.rules_path.parent),
                prefix=f".{self.rules_path.name}.",
                suffix=".tmp",
            )
            os.close(fd)
            df.to_csv(tmp_name, columns=RULE_COLUMNS, header=RULE_HEADERS, index=False)
            os.replace(tmp_name, self.rules_path)
        except OSError as e:
            logger.error(f"Rule table write failed: {e}")
            if tmp_name and os.path.exists(tmp_name):
                os.remove(tmp_name)
            raise KnowledgeBaseWriteError(
                f"Failed to write rule table: {e}",
                details={"path": str(self.rules_path)},
            ) from e

        self._revision += 1
        logger.info(f"Rule table rewritten (revision {self._revision})")

        try:
            self.load_rules()
        except LoadError:
            logger.warning(
                f"Rule table revision {self._revision} written but not reloaded; "
                "previous in-memory rules remain active"
            )
