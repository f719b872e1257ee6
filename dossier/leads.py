"""Lead registry (``leads.json``) with locked claims for parallel agents.

Leads are follow-up threads discovered while answering framework
questions. Several agents may work the FOLLOW phase at once, so every
mutation happens under ``leads.json.lock`` and bumps ``version``. A claim
older than ``LEAD_CLAIM_STALE_MINUTES`` is treated as abandoned.

Lead record::

    {"id": "L007", "lead": "...", "from": "L002", "priority": "HIGH",
     "depth": 1, "parent": "L002", "status": "pending",
     "result": null, "sources": [], "claimed_by": "...", "claimed_at": "..."}
"""

from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from dossier.case.locking import FileLock, read_json, write_json_atomic
from dossier.config.settings import settings
from dossier.errors import LeadError, MaxDepthExceeded

logger = logging.getLogger(__name__)

STATUSES = ("pending", "investigated", "dead_end")
PRIORITIES = ("HIGH", "MEDIUM", "LOW")
_PRIORITY_ORDER = {"HIGH": 0, "MEDIUM": 1, "LOW": 2}
_DIGIT_RE = re.compile(r"\d")


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class ClaimResult:
    claim_id: str
    lead: dict[str, Any]
    version: int


@dataclass
class BatchSelection:
    leads: list[dict[str, Any]]
    available_count: int
    total_pending: int


@dataclass
class LeadStats:
    total: int = 0
    pending: int = 0
    investigated: int = 0
    dead_end: int = 0
    claimed: int = 0
    stale_claims: int = 0
    by_priority: dict[str, int] = field(
        default_factory=lambda: {p: 0 for p in PRIORITIES}
    )
    by_depth: dict[int, int] = field(default_factory=dict)
    version: int = 0


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_ts(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None


def lead_number(lead_id: str) -> int:
    match = re.fullmatch(r"L(\d+)", lead_id or "")
    return int(match.group(1)) if match else 0


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class LeadStore:
    """Locked access to a case's ``leads.json``.

    Parameters
    ----------
    case_dir:
        The case directory.
    stale_minutes:
        Claim age after which a claim is considered abandoned.
        Defaults to ``settings.LEAD_CLAIM_STALE_MINUTES``.
    """

    def __init__(self, case_dir: str | Path, stale_minutes: float | None = None) -> None:
        self.case_dir = Path(case_dir)
        self.path = self.case_dir / "leads.json"
        self.stale_after = timedelta(
            minutes=settings.LEAD_CLAIM_STALE_MINUTES
            if stale_minutes is None
            else stale_minutes
        )

    # -- persistence ---------------------------------------------------------

    def read(self) -> dict[str, Any]:
        data = read_json(
            self.path,
            default={"version": 0, "max_depth": settings.MAX_LEAD_DEPTH, "leads": []},
        )
        data.setdefault("version", 0)
        data.setdefault("max_depth", settings.MAX_LEAD_DEPTH)
        data.setdefault("leads", [])
        return data

    def _write(self, data: dict[str, Any]) -> int:
        data["version"] = int(data.get("version", 0)) + 1
        data["updated_at"] = _now_iso()
        write_json_atomic(self.path, data)
        return data["version"]

    def _lock(self) -> FileLock:
        return FileLock(self.path)

    def is_stale(self, lead: dict[str, Any]) -> bool:
        claimed_at = _parse_ts(lead.get("claimed_at") or "")
        if claimed_at is None:
            return False
        return datetime.now(timezone.utc) - claimed_at > self.stale_after

    @staticmethod
    def _find(data: dict[str, Any], lead_id: str) -> dict[str, Any] | None:
        return next((l for l in data["leads"] if l.get("id") == lead_id), None)

    @staticmethod
    def _next_id(data: dict[str, Any]) -> str:
        highest = max((lead_number(l.get("id", "")) for l in data["leads"]), default=0)
        return f"L{highest + 1:03d}"

    @staticmethod
    def _claim_id() -> str:
        return f"pid_{os.getpid()}_{int(time.time() * 1000)}"

    # -- operations ----------------------------------------------------------

    def list(self, status: str | None = None) -> list[dict[str, Any]]:
        leads = self.read()["leads"]
        if status:
            leads = [l for l in leads if l.get("status") == status]
        return leads

    def get(self, lead_id: str) -> dict[str, Any]:
        lead = self._find(self.read(), lead_id)
        if lead is None:
            raise LeadError(f"Lead {lead_id} not found")
        return lead

    def add(
        self,
        text: str,
        priority: str = "MEDIUM",
        source: str | None = None,
    ) -> dict[str, Any]:
        """Add a top-level (depth 0) lead."""
        if not text.strip():
            raise LeadError("Lead text must not be empty")
        priority = priority.upper()
        if priority not in PRIORITIES:
            raise LeadError(f"Invalid priority {priority!r}; expected one of {PRIORITIES}")
        with self._lock():
            data = self.read()
            lead = {
                "id": self._next_id(data),
                "lead": text.strip(),
                "from": source,
                "priority": priority,
                "depth": 0,
                "parent": None,
                "status": "pending",
                "result": None,
                "sources": [],
            }
            data["leads"].append(lead)
            self._write(data)
        logger.info("Added lead %s (%s)", lead["id"], priority)
        return lead

    def claim(self, lead_id: str) -> ClaimResult:
        with self._lock():
            data = self.read()
            lead = self._find(data, lead_id)
            if lead is None:
                raise LeadError(f"Lead {lead_id} not found")
            if lead.get("status") != "pending":
                raise LeadError(
                    f"Lead {lead_id} is not pending (status: {lead.get('status')})"
                )
            if lead.get("claimed_by") and not self.is_stale(lead):
                raise LeadError(f"Lead {lead_id} already claimed by {lead['claimed_by']}")

            claim_id = self._claim_id()
            lead["claimed_by"] = claim_id
            lead["claimed_at"] = _now_iso()
            version = self._write(data)
        logger.info("Claimed lead %s as %s", lead_id, claim_id)
        return ClaimResult(claim_id=claim_id, lead=lead, version=version)

    def batch_claim(self, lead_ids: list[str]) -> tuple[str, list[dict[str, Any]], int]:
        """Claim every lead in *lead_ids* or none of them.

        Returns ``(claim_id, leads, version)``. Raises ``LeadError``
        listing every problem when any lead cannot be claimed.
        """
        with self._lock():
            data = self.read()
            errors: list[str] = []
            targets: list[dict[str, Any]] = []
            for lead_id in lead_ids:
                lead = self._find(data, lead_id)
                if lead is None:
                    errors.append(f"{lead_id}: not found")
                elif lead.get("status") != "pending":
                    errors.append(f"{lead_id}: not pending ({lead.get('status')})")
                elif lead.get("claimed_by") and not self.is_stale(lead):
                    errors.append(f"{lead_id}: already claimed by {lead['claimed_by']}")
                else:
                    targets.append(lead)
            if errors:
                raise LeadError("Batch claim failed: " + "; ".join(errors))

            claim_id = self._claim_id()
            claimed_at = _now_iso()
            for lead in targets:
                lead["claimed_by"] = claim_id
                lead["claimed_at"] = claimed_at
            version = self._write(data)
        logger.info("Batch-claimed %d leads as %s", len(targets), claim_id)
        return claim_id, targets, version

    def release(self, lead_id: str) -> int:
        with self._lock():
            data = self.read()
            lead = self._find(data, lead_id)
            if lead is None:
                raise LeadError(f"Lead {lead_id} not found")
            lead.pop("claimed_by", None)
            lead.pop("claimed_at", None)
            return self._write(data)

    def update(
        self,
        lead_id: str,
        status: str,
        result: str | None,
        sources: list[str] | tuple[str, ...] = (),
    ) -> dict[str, Any]:
        """Record the outcome of following a lead and drop its claim.

        An ``investigated`` result that states numbers must cite sources.
        """
        if status not in STATUSES:
            raise LeadError(f"Invalid status {status!r}; expected one of {STATUSES}")
        sources = list(sources)
        if (
            status == "investigated"
            and result
            and _DIGIT_RE.search(result)
            and not sources
        ):
            raise LeadError(
                f"Lead {lead_id}: result contains numbers but no sources were given"
            )
        with self._lock():
            data = self.read()
            lead = self._find(data, lead_id)
            if lead is None:
                raise LeadError(f"Lead {lead_id} not found")
            lead["status"] = status
            lead["result"] = result
            if sources:
                lead["sources"] = sources
            lead["updated_at"] = _now_iso()
            lead.pop("claimed_by", None)
            lead.pop("claimed_at", None)
            self._write(data)
        logger.info("Lead %s -> %s", lead_id, status)
        return lead

    def add_child(
        self,
        parent_id: str,
        text: str,
        priority: str = "MEDIUM",
    ) -> dict[str, Any]:
        """Add a lead discovered while following *parent_id*.

        Raises ``MaxDepthExceeded`` when the child would sit deeper than
        the case's ``max_depth``; callers defer it with
        ``defer_to_future_research``.
        """
        priority = (priority or "MEDIUM").upper()
        with self._lock():
            data = self.read()
            parent = self._find(data, parent_id)
            if parent is None:
                raise LeadError(f"Parent lead {parent_id} not found")
            depth = int(parent.get("depth") or 0) + 1
            if depth > int(data["max_depth"]):
                raise MaxDepthExceeded(depth, int(data["max_depth"]))

            lead = {
                "id": self._next_id(data),
                "lead": text,
                "from": parent_id,
                "priority": priority,
                "depth": depth,
                "parent": parent_id,
                "status": "pending",
                "result": None,
                "sources": [],
            }
            data["leads"].append(lead)
            self._write(data)
        logger.info("Added child lead %s under %s (depth %d)", lead["id"], parent_id, depth)
        return lead

    def select_batch(self, count: int) -> BatchSelection:
        """Pick up to *count* claimable leads, highest priority and shallowest first."""
        data = self.read()
        available = [
            l
            for l in data["leads"]
            if l.get("status") == "pending"
            and (not l.get("claimed_by") or self.is_stale(l))
        ]
        available.sort(
            key=lambda l: (_PRIORITY_ORDER.get(l.get("priority"), 3), l.get("depth") or 0)
        )
        return BatchSelection(
            leads=available[: max(count, 0)],
            available_count=len(available),
            total_pending=sum(1 for l in data["leads"] if l.get("status") == "pending"),
        )

    def cleanup_stale(self) -> int:
        """Release abandoned claims. Returns how many were released."""
        with self._lock():
            data = self.read()
            cleaned = 0
            for lead in data["leads"]:
                if lead.get("claimed_by") and self.is_stale(lead):
                    lead.pop("claimed_by", None)
                    lead.pop("claimed_at", None)
                    cleaned += 1
            if cleaned:
                self._write(data)
        if cleaned:
            logger.info("Released %d stale lead claims", cleaned)
        return cleaned

    def stats(self) -> LeadStats:
        data = self.read()
        stats = LeadStats(total=len(data["leads"]), version=data["version"])
        for lead in data["leads"]:
            status = lead.get("status")
            if status == "pending":
                stats.pending += 1
            elif status == "investigated":
                stats.investigated += 1
            elif status == "dead_end":
                stats.dead_end += 1

            if lead.get("claimed_by"):
                if self.is_stale(lead):
                    stats.stale_claims += 1
                else:
                    stats.claimed += 1

            if lead.get("priority") in stats.by_priority:
                stats.by_priority[lead["priority"]] += 1

            depth = int(lead.get("depth") or 0)
            stats.by_depth[depth] = stats.by_depth.get(depth, 0) + 1
        return stats


def defer_to_future_research(
    case_dir: str | Path,
    text: str,
    reason: str = "exceeds max_depth",
) -> None:
    """Append a lead that will not be followed to ``future_research.md``."""
    path = Path(case_dir) / "future_research.md"
    existing = path.read_text(encoding="utf-8") if path.exists() else "# Future Research\n"
    existing = existing.replace("*No leads deferred yet.*\n", "")
    entry = f"- {text.strip()} ({reason}, {_now_iso()[:10]})\n"
    path.write_text(existing.rstrip("\n") + "\n" + entry, encoding="utf-8")
    logger.info("Deferred lead to future research: %s", text[:60])
