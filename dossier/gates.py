"""Gate derivation.

Gates are derived from artifacts on disk and deterministic audits, never
self-reported. ``derive_all_gates`` is pure (reads only);
``update_gates`` writes the derived values into ``state.json`` and the
ledger.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dossier.audits.citations import extract_citations, verify_citations
from dossier.audits.leads import audit_leads
from dossier.audits.numerics import audit_numerics
from dossier.case.locking import FileLock, read_json
from dossier.case.state import GATE_NAMES, load_state, save_state, state_path
from dossier.claims.verify import REPORT_NAME
from dossier.config.settings import settings
from dossier.ledger import Ledger
from dossier.sources.integrity import find_duplicate_urls, verify_source

logger = logging.getLogger(__name__)

PLANNING_FILES = ("refined_prompt.md", "strategic_context.md", "investigation_plan.md")
REVIEW_STATUSES = ("READY", "READY WITH CHANGES", "NOT READY")
AUDIT_STATUSES = ("PASS", "FAIL")
AUDIT_FILES = {
    "balance": "balance-audit.md",
    "completeness": "completeness-audit.md",
    "significance": "significance-audit.md",
}
REVIEW_FILES = {"integrity": "integrity-review.md", "legal": "legal-review.md"}

_QUESTION_STATUS = re.compile(r"\*\*Status:\*\*\s*([^\n\r]+)", re.IGNORECASE)
_BOLD_LINE = re.compile(r"^\*\*(.+?)\*\*$", re.MULTILINE)


@dataclass
class GateReport:
    gates: dict[str, bool]
    details: dict[str, dict[str, Any]] = field(default_factory=dict)
    strict: bool = False

    @property
    def all_passed(self) -> bool:
        return all(self.gates.values())

    def to_dict(self) -> dict[str, Any]:
        return {"gates": self.gates, "strict": self.strict, "details": self.details}


def parse_bold_status(text: str, allowed: tuple[str, ...]) -> str | None:
    """Last ``**VALUE**`` line whose value is one of *allowed*."""
    for match in reversed(_BOLD_LINE.findall(text)):
        if match.strip() in allowed:
            return match.strip()
    return None


def _non_empty(path: Path) -> bool:
    return path.is_file() and path.stat().st_size > 0


def _mtime(path: Path) -> float:
    return path.stat().st_mtime if path.exists() else 0.0


# ---------------------------------------------------------------------------
# Process gates
# ---------------------------------------------------------------------------


def derive_planning_gate(case_dir: Path) -> dict[str, Any]:
    missing = [name for name in PLANNING_FILES if not (case_dir / name).exists()]
    return {"ok": not missing, "missing": missing}


def derive_questions_gate(case_dir: Path) -> dict[str, Any]:
    questions_dir = case_dir / "questions"
    files = sorted(questions_dir.glob("*.md")) if questions_dir.is_dir() else []
    if not files:
        return {"ok": False, "error": "no question files", "total": 0, "failures": []}

    failures = []
    for path in files:
        m = _QUESTION_STATUS.search(path.read_text(encoding="utf-8", errors="replace"))
        status = m.group(1).strip().lower() if m else ""
        if not status:
            failures.append({"file": path.name, "status": None, "reason": 'Missing "**Status:**" line'})
        elif status not in ("investigated", "not-applicable"):
            failures.append({"file": path.name, "status": status, "reason": "not investigated"})
    return {"ok": not failures, "total": len(files), "failures": failures}


def derive_curiosity_gate(case_dir: Path) -> dict[str, Any]:
    leads = read_json(case_dir / "leads.json", default={}).get("leads") or []
    pending = [lead.get("id") for lead in leads if lead.get("status") == "pending"]
    return {"ok": not pending, "pending": len(pending), "pending_ids": pending[:25]}


def derive_reconciliation_gate(case_dir: Path) -> dict[str, Any]:
    log_path = case_dir / "reconciliation-log.md"
    if not log_path.exists():
        return {"ok": False, "error": "reconciliation-log.md missing"}

    inputs = [case_dir / "leads.json", case_dir / "sources.json"]
    findings_dir = case_dir / "findings"
    if findings_dir.is_dir():
        inputs += [p for p in findings_dir.iterdir() if p.suffix in (".md", ".json")]
    latest = max((_mtime(p) for p in inputs), default=0.0)
    stale = latest > _mtime(log_path)

    lead_audit = audit_leads(case_dir)
    return {
        "ok": not stale and lead_audit.ok,
        "stale": stale,
        "lead_hygiene": lead_audit.to_dict() if not lead_audit.ok else {"ok": True},
    }


def derive_article_gate(case_dir: Path) -> dict[str, Any]:
    article = case_dir / "articles" / "full.md"
    pdf = case_dir / "articles" / "full.pdf"
    article_ok = _non_empty(article)
    has_citations = article_ok and bool(
        re.search(r"\[S\d{3,4}\]", article.read_text(encoding="utf-8", errors="replace"))
    )
    return {
        "ok": article_ok and _non_empty(pdf) and has_citations,
        "article": article_ok,
        "pdf": _non_empty(pdf),
        "has_citations": has_citations,
    }


# ---------------------------------------------------------------------------
# Sources gate
# ---------------------------------------------------------------------------


def _claims_verification(case_dir: Path) -> dict[str, Any]:
    report = read_json(case_dir / REPORT_NAME, default=None)
    if report is None:
        return {"ok": False, "error": f"{REPORT_NAME} missing"}
    summary = report.get("summary") or {}
    total = int(summary.get("total", 0))
    ok = (
        total > 0
        and int(summary.get("unverified", 0)) == 0
        and int(summary.get("mismatch", 0)) == 0
        and int(summary.get("pending", 0)) == 0
    )
    return {"ok": ok, "summary": summary}


def derive_sources_gate(case_dir: Path, strict: bool = False) -> dict[str, Any]:
    receipt_key = bool(settings.EVIDENCE_RECEIPT_KEY.strip())
    strict = strict or receipt_key

    citations = verify_citations(case_dir)

    article = case_dir / "articles" / "full.md"
    if article.exists():
        numerics = audit_numerics(article)
        numerics_detail = {"ok": numerics.passed, "errors": len(numerics.errors)}
        cited = set(extract_citations(article.read_text(encoding="utf-8", errors="replace")))
    else:
        numerics_detail = {"ok": False, "error": "articles/full.md missing"}
        cited = set()
    cited.update(citations.cited_sources)

    failed_sources = {}
    for source_id in sorted(cited):
        check = verify_source(
            case_dir,
            source_id,
            require_signature=strict,
            require_receipt=receipt_key,
        )
        if not check.valid:
            failed_sources[source_id] = check.errors

    duplicates = [g for g in find_duplicate_urls(case_dir) if not g.allowed]
    claims = _claims_verification(case_dir)

    ok = (
        citations.passed
        and numerics_detail["ok"]
        and not failed_sources
        and not duplicates
        and claims["ok"]
    )
    return {
        "ok": ok,
        "strict": strict,
        "citations": {
            "ok": citations.passed,
            "missing": len(citations.missing_evidence),
            "stub": len(citations.stub_evidence),
        },
        "numerics": numerics_detail,
        "sources": {"ok": not failed_sources, "checked": len(cited), "failed": failed_sources},
        "duplicates": [
            {"url": g.canonical_url, "ids": g.source_ids, "unresolved": g.unresolved}
            for g in duplicates
        ],
        "claims": claims,
    }


# ---------------------------------------------------------------------------
# Artifact-status gates
# ---------------------------------------------------------------------------


def derive_status_gate(
    case_dir: Path,
    filename: str,
    allowed: tuple[str, ...],
    passing: str,
) -> dict[str, Any]:
    path = case_dir / filename
    if not path.exists():
        return {"ok": False, "error": f"{filename} missing"}
    status = parse_bold_status(path.read_text(encoding="utf-8", errors="replace"), allowed)
    return {"ok": status == passing, "status": status, "file": filename}


def derive_all_gates(case_dir: str | Path, strict: bool = False) -> GateReport:
    """Derive every gate from the case's files."""
    case_dir = Path(case_dir)
    details: dict[str, dict[str, Any]] = {
        "planning": derive_planning_gate(case_dir),
        "questions": derive_questions_gate(case_dir),
        "curiosity": derive_curiosity_gate(case_dir),
        "reconciliation": derive_reconciliation_gate(case_dir),
        "article": derive_article_gate(case_dir),
        "sources": derive_sources_gate(case_dir, strict=strict),
    }
    for gate, filename in REVIEW_FILES.items():
        details[gate] = derive_status_gate(case_dir, filename, REVIEW_STATUSES, "READY")
    for gate, filename in AUDIT_FILES.items():
        details[gate] = derive_status_gate(case_dir, filename, AUDIT_STATUSES, "PASS")

    gates = {name: bool(details[name]["ok"]) for name in GATE_NAMES}
    return GateReport(gates=gates, details=details, strict=details["sources"]["strict"])


def update_gates(
    case_dir: str | Path,
    write: bool = False,
    strict: bool = False,
) -> tuple[GateReport, bool]:
    """Derive gates and, when *write*, persist them.

    Returns the report and whether ``state.json`` changed.
    """
    case_dir = Path(case_dir)
    report = derive_all_gates(case_dir, strict=strict)
    if not write:
        return report, False

    changed = False
    with FileLock(state_path(case_dir)):
        state = load_state(case_dir)
        for name, passed in report.gates.items():
            if state["gates"].get(name) != passed:
                state["gates"][name] = passed
                changed = True
        if changed:
            save_state(case_dir, state)

    ledger = Ledger(case_dir)
    for name, passed in report.gates.items():
        ledger.append("gate_check", gate=name, passed=passed, strict=report.strict)
    logger.info(
        "Gates for %s: %d/%d passing%s",
        case_dir.name,
        sum(report.gates.values()),
        len(report.gates),
        " (state updated)" if changed else "",
    )
    return report, changed
