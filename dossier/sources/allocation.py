"""Source ID allocation for parallel capture batches.

Source IDs (``S001``, ``S002`` ...) are append-only: once handed out an
ID is never renumbered or reused. Parallel batches reserve a contiguous
range in ``state.json["source_allocations"]`` under ``state.json.lock``
and commit how many they actually used. Ranges are half-open
(``start`` inclusive, ``end`` exclusive).
"""

from __future__ import annotations

import logging
import re
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from dossier.case.locking import FileLock
from dossier.case.state import load_state, save_state, state_path
from dossier.config.settings import settings
from dossier.errors import AllocationError

logger = logging.getLogger(__name__)

SOURCE_ID_RE = re.compile(r"^S\d{3,4}$")


def format_source_id(number: int) -> str:
    if number < 1:
        raise ValueError(f"Source numbers start at 1, got {number}")
    return f"S{number:03d}"


def parse_source_id(source_id: str) -> int:
    if not isinstance(source_id, str) or not SOURCE_ID_RE.match(source_id):
        raise ValueError(f"Invalid source id: {source_id!r}")
    return int(source_id[1:])


@dataclass
class Allocation:
    batch_id: str
    start: int
    end: int
    count: int
    allocated_at: str
    status: str = "active"

    @property
    def source_ids(self) -> list[str]:
        return [format_source_id(n) for n in range(self.start, self.end)]

    @classmethod
    def from_state(cls, batch_id: str, raw: dict[str, Any]) -> "Allocation":
        return cls(
            batch_id=batch_id,
            start=int(raw["start"]),
            end=int(raw["end"]),
            count=int(raw.get("count", int(raw["end"]) - int(raw["start"]))),
            allocated_at=raw.get("allocated_at", ""),
            status=raw.get("status", "active"),
        )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _is_stale(raw: dict[str, Any]) -> bool:
    allocated_at = raw.get("allocated_at")
    if not allocated_at:
        return False
    try:
        when = datetime.fromisoformat(allocated_at.replace("Z", "+00:00"))
    except ValueError:
        return False
    limit = timedelta(minutes=settings.ALLOCATION_STALE_MINUTES)
    return datetime.now(timezone.utc) - when > limit


def _batch_id() -> str:
    return f"batch_{int(time.time() * 1000)}_{secrets.token_hex(3)}"


def _lock(case_dir: str | Path) -> FileLock:
    return FileLock(state_path(case_dir))


def allocate(
    case_dir: str | Path,
    count: int,
    batch_id: str | None = None,
    **metadata: Any,
) -> Allocation:
    """Reserve *count* consecutive source numbers for a batch."""
    if count < 1:
        raise ValueError("count must be at least 1")

    with _lock(case_dir):
        state = load_state(case_dir)
        allocations = state.setdefault("source_allocations", {})
        for stale_id in [b for b, raw in allocations.items() if _is_stale(raw)]:
            logger.warning("Dropping stale source allocation %s", stale_id)
            del allocations[stale_id]

        start = int(state.get("next_source") or 1)
        for raw in allocations.values():
            start = max(start, int(raw["end"]))

        batch_id = batch_id or _batch_id()
        if batch_id in allocations:
            raise AllocationError(f"Allocation {batch_id} already exists")
        raw = {
            "start": start,
            "end": start + count,
            "count": count,
            "allocated_at": _now_iso(),
            "status": "active",
            **metadata,
        }
        allocations[batch_id] = raw
        save_state(case_dir, state)

    allocation = Allocation.from_state(batch_id, raw)
    logger.info(
        "Allocated %s..%s to %s",
        format_source_id(allocation.start),
        format_source_id(allocation.end - 1),
        batch_id,
    )
    return allocation


def release(case_dir: str | Path, batch_id: str) -> None:
    """Drop an allocation without advancing ``next_source``."""
    with _lock(case_dir):
        state = load_state(case_dir)
        allocations = state.get("source_allocations", {})
        if batch_id not in allocations:
            raise AllocationError(f"Allocation {batch_id} not found")
        del allocations[batch_id]
        save_state(case_dir, state)
    logger.info("Released allocation %s", batch_id)


def commit(case_dir: str | Path, batch_id: str, used: int) -> int:
    """Commit *used* IDs of an allocation. Returns the new ``next_source``.

    ``next_source`` only moves forward, so IDs committed by another batch
    are never handed out again.
    """
    with _lock(case_dir):
        state = load_state(case_dir)
        allocations = state.get("source_allocations", {})
        if batch_id not in allocations:
            raise AllocationError(f"Allocation {batch_id} not found")
        raw = allocations[batch_id]
        if not 0 <= used <= int(raw["count"]):
            raise AllocationError(
                f"used={used} outside allocation of {raw['count']} for {batch_id}"
            )
        actual_end = int(raw["start"]) + used
        if actual_end > int(state.get("next_source") or 1):
            state["next_source"] = actual_end
        del allocations[batch_id]
        save_state(case_dir, state)
        next_source = int(state["next_source"])

    logger.info("Committed %d IDs from %s; next_source=%d", used, batch_id, next_source)
    return next_source


def status(case_dir: str | Path) -> dict[str, Any]:
    state = load_state(case_dir)
    active: list[dict[str, Any]] = []
    stale: list[dict[str, Any]] = []
    for batch_id, raw in state.get("source_allocations", {}).items():
        info = {"batch_id": batch_id, **raw}
        (stale if _is_stale(raw) else active).append(info)
    return {
        "next_source": int(state.get("next_source") or 1),
        "active_allocations": active,
        "stale_allocations": stale,
    }


def cleanup_stale(case_dir: str | Path) -> int:
    with _lock(case_dir):
        state = load_state(case_dir)
        allocations = state.get("source_allocations", {})
        stale_ids = [b for b, raw in allocations.items() if _is_stale(raw)]
        for batch_id in stale_ids:
            del allocations[batch_id]
        if stale_ids:
            save_state(case_dir, state)
    return len(stale_ids)
