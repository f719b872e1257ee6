"""Lead hygiene audit.

Lead results leak into findings and articles, so an investigated lead
whose result states numbers must name its sources, and those sources
must be real captured web pages.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dossier.case.locking import read_json
from dossier.sources.registry import load_sources

_SOURCE_ID = re.compile(r"^S\d{3,}$")
_HTTP_URL = re.compile(r"^https?://.+", re.IGNORECASE)


@dataclass
class LeadAudit:
    summary: dict[str, int] = field(default_factory=lambda: {
        "total": 0,
        "investigated": 0,
        "investigated_with_digits": 0,
        "investigated_missing_sources": 0,
        "invalid_source_ids": 0,
        "unknown_sources": 0,
        "non_http_sources": 0,
        "uncaptured_sources": 0,
    })
    details: list[dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.details

    def to_dict(self) -> dict[str, Any]:
        return {"ok": self.ok, "summary": dict(self.summary), "details": self.details}


def audit_leads(case_dir: str | Path) -> LeadAudit:
    case_dir = Path(case_dir)
    leads = read_json(case_dir / "leads.json", default={}).get("leads") or []
    sources = {s["id"]: s for s in load_sources(case_dir) if s.get("id")}

    audit = LeadAudit()
    audit.summary["total"] = len(leads)
    counts = audit.summary

    for lead in leads:
        if not isinstance(lead, dict) or lead.get("status") != "investigated":
            continue
        counts["investigated"] += 1
        has_digits = bool(re.search(r"\d", str(lead.get("result") or "")))
        used = lead.get("sources") if isinstance(lead.get("sources"), list) else []
        errors: list[str] = []

        if has_digits:
            counts["investigated_with_digits"] += 1
            if not used:
                counts["investigated_missing_sources"] += 1
                errors.append("Investigated lead result contains digits but sources is empty")

        for source_id in used:
            if not isinstance(source_id, str) or not _SOURCE_ID.match(source_id.strip()):
                counts["invalid_source_ids"] += 1
                errors.append(f"Invalid source id: {source_id!r}")
                continue
            record = sources.get(source_id.strip())
            if record is None:
                counts["unknown_sources"] += 1
                errors.append(f"Source not found in sources.json: {source_id}")
                continue
            if not _HTTP_URL.match(str(record.get("url") or "").strip()):
                counts["non_http_sources"] += 1
                errors.append(f"Non-http(s) URL for {source_id}: {record.get('url')!r}")
            if record.get("captured") is not True:
                counts["uncaptured_sources"] += 1
                errors.append(f"{source_id} is not captured")

        if errors:
            audit.details.append({
                "id": lead.get("id"),
                "has_digits": has_digits,
                "sources_count": len(used),
                "errors": errors,
            })
    return audit
