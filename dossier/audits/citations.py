"""Citation audits: every ``[S###]`` must point at captured evidence.

``verify_citations`` walks ``findings/*.md`` and ``summary.md`` and
classifies each cited source as valid, stub (metadata without content)
or missing. ``citation_density`` is the structural check that the
summary cites anything at all.
"""

from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from dossier.sources.integrity import evidence_status
from dossier.sources.registry import load_sources

logger = logging.getLogger(__name__)

CITATION_PATTERN = re.compile(r"\[(S\d{3,4})\]")


def extract_citations(text: str) -> list[str]:
    """Sorted unique source ids cited as ``[S###]`` in *text*."""
    return sorted(set(CITATION_PATTERN.findall(text)))


# ---------------------------------------------------------------------------
# Evidence-backed citations
# ---------------------------------------------------------------------------


@dataclass
class CitationReport:
    files_scanned: int = 0
    total_citations: int = 0
    valid_citations: int = 0
    stub_citations: int = 0
    missing_evidence: list[dict[str, Any]] = field(default_factory=list)
    stub_evidence: list[dict[str, Any]] = field(default_factory=list)
    by_file: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return not self.missing_evidence and not self.stub_evidence

    @property
    def cited_sources(self) -> list[str]:
        ids: set[str] = set()
        for info in self.by_file.values():
            ids.update(info["cited"])
        return sorted(ids)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["passed"] = self.passed
        return data


def _scan_file(
    case_dir: Path,
    path: Path,
    label: str,
    report: CitationReport,
    urls: dict[str, str],
) -> None:
    citations = extract_citations(path.read_text(encoding="utf-8", errors="replace"))
    entry: dict[str, Any] = {"cited": citations, "valid": 0, "stubs": [], "missing": []}
    report.by_file[label] = entry

    for source_id in citations:
        report.total_citations += 1
        status = evidence_status(case_dir, source_id)
        if status.exists:
            report.valid_citations += 1
            entry["valid"] += 1
        elif status.kind == "stub":
            report.stub_citations += 1
            entry["stubs"].append(source_id)
            report.stub_evidence.append({
                "source_id": source_id,
                "cited_in": label,
                "url": urls.get(source_id),
                "reason": status.reason,
            })
        else:
            entry["missing"].append(source_id)
            report.missing_evidence.append({
                "source_id": source_id,
                "cited_in": label,
                "url": urls.get(source_id),
                "evidence_path_expected": f"evidence/web/{source_id}/",
                "reason": status.reason or "No evidence folder exists",
            })


def verify_citations(case_dir: str | Path) -> CitationReport:
    """Check that every source cited in findings and the summary was captured."""
    case_dir = Path(case_dir)
    report = CitationReport()
    urls = {s["id"]: s.get("url", "") for s in load_sources(case_dir) if s.get("id")}

    findings_dir = case_dir / "findings"
    if findings_dir.is_dir():
        for path in sorted(findings_dir.glob("*.md")):
            report.files_scanned += 1
            _scan_file(case_dir, path, path.name, report, urls)

    summary = case_dir / "summary.md"
    if summary.exists():
        report.files_scanned += 1
        _scan_file(case_dir, summary, "summary.md", report, urls)

    if not report.passed:
        logger.warning(
            "Citation check failed: %d missing, %d stub",
            len(report.missing_evidence),
            len(report.stub_evidence),
        )
    return report


# ---------------------------------------------------------------------------
# Structural density
# ---------------------------------------------------------------------------


@dataclass
class DensityReport:
    passed: bool
    total_lines: int = 0
    lines_with_citations: int = 0
    total_citations: int = 0
    unique_sources: list[str] = field(default_factory=list)
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def citation_density(case_dir: str | Path) -> DensityReport:
    summary = Path(case_dir) / "summary.md"
    if not summary.exists():
        return DensityReport(passed=False, message="summary.md not found")

    content = summary.read_text(encoding="utf-8", errors="replace")
    lines = content.split("\n")
    total = len(CITATION_PATTERN.findall(content))
    report = DensityReport(
        passed=total > 0,
        total_lines=len(lines),
        lines_with_citations=sum(1 for line in lines if CITATION_PATTERN.search(line)),
        total_citations=total,
        unique_sources=extract_citations(content),
    )
    if not report.passed:
        report.message = "summary.md has no [S###] citations"
    return report
