"""Append-only action ledger (``ledger.json``).

The ledger is the audit trail of a case: every phase change, agent
dispatch, capture and gate check is appended as an entry and never
modified afterwards. ``source_capture`` entries are only accepted when
the referenced evidence carries a valid capture signature.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from dossier.case.locking import FileLock, read_json, write_json_atomic
from dossier.errors import LedgerError
from dossier.sources.capture import verify_capture_signature
from dossier.sources.integrity import hash_file

logger = logging.getLogger(__name__)

ENTRY_TYPES: tuple[str, ...] = (
    "iteration_start",
    "iteration_complete",
    "phase_start",
    "phase_complete",
    "agent_dispatch",
    "agent_complete",
    "task_create",
    "task_assign",
    "task_complete",
    "source_capture",
    "claim_create",
    "claim_update",
    "gate_check",
    "synthesis_complete",
    "file_lock",
    "file_unlock",
)

REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "phase_start": ("phase",),
    "phase_complete": ("phase",),
    "agent_dispatch": ("agent",),
    "agent_complete": ("agent",),
    "task_create": ("task_id",),
    "task_assign": ("task_id", "agent"),
    "task_complete": ("task_id",),
    "source_capture": ("source_id", "evidence_path"),
    "claim_create": ("claim_id",),
    "claim_update": ("claim_id",),
    "gate_check": ("gate", "passed"),
    "file_lock": ("file", "agent"),
    "file_unlock": ("file", "agent"),
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class Ledger:
    """Append-only ledger for one case."""

    def __init__(self, case_dir: str | Path) -> None:
        self.case_dir = Path(case_dir)
        self.path = self.case_dir / "ledger.json"

    def _empty(self) -> dict[str, Any]:
        return {
            "case_id": self.case_dir.resolve().name,
            "created_at": _now_iso(),
            "entries": [],
        }

    def init(self) -> None:
        """Create an empty ledger, replacing any existing one."""
        with FileLock(self.path):
            write_json_atomic(self.path, self._empty())
        logger.info("Initialized ledger %s", self.path)

    def read(self) -> dict[str, Any]:
        if not self.path.exists():
            return self._empty()
        data = read_json(self.path)
        data.setdefault("entries", [])
        return data

    def entries(self, entry_type: str | None = None) -> list[dict[str, Any]]:
        entries = self.read()["entries"]
        if entry_type:
            entries = [e for e in entries if e.get("type") == entry_type]
        return entries

    def _check_capture(self, fields: dict[str, Any]) -> None:
        evidence = self.case_dir / str(fields["evidence_path"])
        if not evidence.exists():
            raise LedgerError(
                f"Evidence path does not exist: {evidence}. Capture before logging."
            )
        if evidence.is_file():
            self._check_document(evidence, fields)
            return
        metadata_path = evidence / "metadata.json"
        if not metadata_path.exists():
            raise LedgerError(f"No metadata.json in {evidence}; capture may have failed")
        try:
            metadata = json.loads(metadata_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise LedgerError(f"Unreadable metadata.json in {evidence}: {e}") from e

        check = verify_capture_signature(metadata)
        if not check.valid:
            raise LedgerError(
                f"Evidence integrity failure for {fields['source_id']}: {check.reason}"
            )
        fields["file_count"] = sum(
            1 for p in evidence.iterdir()
            if p.name != "metadata.json" and not p.name.startswith(".")
        )
        fields["signature_valid"] = True

    def _check_document(self, path: Path, fields: dict[str, Any]) -> None:
        meta_path = Path(f"{path}.meta.json")
        if not meta_path.exists():
            raise LedgerError(f"No {meta_path.name} beside {path.name}; download may have failed")
        try:
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise LedgerError(f"Unreadable {meta_path.name}: {e}") from e

        actual = hash_file(path)
        if meta.get("hash") != actual:
            raise LedgerError(
                f"Evidence integrity failure for {fields['source_id']}: "
                f"hash {actual} does not match {meta.get('hash')}"
            )
        fields["file_count"] = 1
        fields["hash_verified"] = True

    def append(self, entry_type: str, **fields: Any) -> dict[str, Any]:
        """Append one entry and return it (with its ``E###`` id)."""
        if entry_type not in ENTRY_TYPES:
            raise LedgerError(
                f"Invalid entry type {entry_type!r}. Valid types: {', '.join(ENTRY_TYPES)}"
            )
        missing = [
            name for name in REQUIRED_FIELDS.get(entry_type, ())
            if fields.get(name) is None or fields.get(name) == ""
        ]
        if missing:
            raise LedgerError(f"{entry_type} requires: {', '.join(missing)}")

        if entry_type == "source_capture":
            self._check_capture(fields)

        with FileLock(self.path):
            ledger = self.read()
            entry = {
                "id": f"E{len(ledger['entries']) + 1:03d}",
                "type": entry_type,
                "ts": _now_iso(),
                **{k: v for k, v in fields.items() if v is not None},
            }
            ledger["entries"].append(entry)
            ledger["last_updated"] = entry["ts"]
            write_json_atomic(self.path, ledger)

        logger.debug("Ledger %s | %s", entry["id"], entry_type)
        return entry
