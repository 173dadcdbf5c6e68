"""Validation of a restaurant's knowledge output.

Checks integrity after a scrape: file presence, entry schema, duplicate IDs
and whether the voice-ai document still carries the content the sync needs.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import Settings, get_settings
from .knowledge import DAGENS_SECTION_RE, KNOWLEDGE_FILE, VOICE_AI_FILE

logger = logging.getLogger(__name__)

ENTRY_TYPES = {"fact", "qa", "menu"}


@dataclass
class ValidationResult:
    """Result of a validation check."""

    check_name: str
    passed: bool
    message: str
    details: List[str] = field(default_factory=list)

    def summary(self) -> str:
        status = "PASS" if self.passed else "FAIL"
        return f"[{status}] {self.check_name}: {self.message}"


@dataclass
class ValidationReport:
    """Aggregated validation report."""

    results: List[ValidationResult] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def failed_count(self) -> int:
        return sum(1 for r in self.results if not r.passed)

    @property
    def passed_count(self) -> int:
        return sum(1 for r in self.results if r.passed)

    def summary(self) -> str:
        lines = [r.summary() for r in self.results]
        lines.append(f"\n{self.passed_count} passed, {self.failed_count} failed")
        return "\n".join(lines)


def _read_jsonl(path: Path) -> List[Dict[str, Any]]:
    """Read a JSONL file into a list of dicts."""
    rows = []
    with path.open("r", encoding="utf-8") as f:
        for i, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                rows.append(json.loads(line))
            except json.JSONDecodeError as exc:
                raise ValueError(f"Invalid JSON at line {i} in {path}: {exc}") from exc
    return rows


def check_file_exists(path: Path, name: str) -> ValidationResult:
    """Check that an output file exists and is non-empty."""
    if not path.exists():
        return ValidationResult(
            check_name=f"{name}_exists",
            passed=False,
            message=f"{path} does not exist",
        )
    if path.stat().st_size == 0:
        return ValidationResult(
            check_name=f"{name}_exists",
            passed=False,
            message=f"{path} is empty (0 bytes)",
        )
    return ValidationResult(
        check_name=f"{name}_exists",
        passed=True,
        message=f"{path} exists ({path.stat().st_size} bytes)",
    )


def check_entries_schema(rows: List[Dict[str, Any]]) -> ValidationResult:
    """Validate that every knowledge entry has an id, a known type, text and tags."""
    errors: List[str] = []
    for i, row in enumerate(rows, 1):
        missing = {"id", "type", "text"} - set(row.keys())
        if missing:
            errors.append(f"Row {i}: missing fields {sorted(missing)}")
            continue
        if row["type"] not in ENTRY_TYPES:
            errors.append(f"Row {i}: type='{row['type']}', expected one of {sorted(ENTRY_TYPES)}")
        if not str(row["text"]).strip():
            errors.append(f"Row {i}: text is empty")
        if not isinstance(row.get("tags", []), list):
            errors.append(f"Row {i}: tags is not a list")

    if errors:
        return ValidationResult(
            check_name="entries_schema",
            passed=False,
            message=f"{len(errors)} schema violation(s)",
            details=errors[:10],
        )
    return ValidationResult(
        check_name="entries_schema",
        passed=True,
        message=f"All {len(rows)} entries conform to schema",
    )


def check_entries_no_duplicates(rows: List[Dict[str, Any]]) -> ValidationResult:
    """Check for duplicate entry IDs."""
    seen: Dict[str, int] = {}
    duplicates: List[str] = []
    for i, row in enumerate(rows, 1):
        key = row.get("id")
        if key in seen:
            duplicates.append(f"Entry '{key}' at rows {seen[key]} and {i}")
        else:
            seen[key] = i

    if duplicates:
        return ValidationResult(
            check_name="entries_no_duplicates",
            passed=False,
            message=f"{len(duplicates)} duplicate entry ID(s)",
            details=duplicates[:10],
        )
    return ValidationResult(
        check_name="entries_no_duplicates",
        passed=True,
        message=f"{len(seen)} unique entries, no duplicates",
    )


def check_has_facts(rows: List[Dict[str, Any]]) -> ValidationResult:
    """A scrape that produced only the standard FAQs found nothing on the site."""
    facts = [r for r in rows if r.get("type") in ("fact", "menu")]
    if not facts:
        return ValidationResult(
            check_name="has_facts",
            passed=False,
            message="No facts or menu entries extracted from the website",
        )
    return ValidationResult(
        check_name="has_facts",
        passed=True,
        message=f"{len(facts)} fact/menu entries",
    )


def check_dagens_section(text: str) -> ValidationResult:
    """Warn when the voice-ai document has no dagens section to sync."""
    if DAGENS_SECTION_RE.search(text):
        return ValidationResult(
            check_name="dagens_section",
            passed=True,
            message="Dagens section present",
        )
    return ValidationResult(
        check_name="dagens_section",
        passed=False,
        message="No dagens section; the full document will be synced instead",
    )


def run_validation(slug: str, *, settings: Optional[Settings] = None) -> ValidationReport:
    """Run all validation checks on one restaurant's output.

    Args:
        slug: Restaurant slug (directory name under the restaurants dir).
        settings: Pipeline settings. Uses defaults if not provided.

    Returns:
        ValidationReport with all check results.
    """
    s = settings or get_settings()
    out_dir = s.restaurants_path / slug
    knowledge_path = out_dir / KNOWLEDGE_FILE
    voice_ai_path = out_dir / VOICE_AI_FILE

    report = ValidationReport()
    report.results.append(check_file_exists(knowledge_path, "knowledge"))
    report.results.append(check_file_exists(voice_ai_path, "voice_ai"))

    if not knowledge_path.exists() or not voice_ai_path.exists():
        logger.error("Cannot run full validation - output files missing for %s", slug)
        return report

    rows = _read_jsonl(knowledge_path)
    logger.info("Validating %d knowledge entries for %s", len(rows), slug)

    report.results.append(check_entries_schema(rows))
    report.results.append(check_entries_no_duplicates(rows))
    report.results.append(check_has_facts(rows))
    report.results.append(check_dagens_section(voice_ai_path.read_text(encoding="utf-8")))

    return report
