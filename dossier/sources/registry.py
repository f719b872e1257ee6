"""Source registry (``sources.json``) and the ``sources.md`` listing.

``sources.json`` is ``{"sources": [record, ...]}``. Older cases keyed
records by ID (``{"S001": {...}}``); both shapes are accepted on read and
the list shape is written back.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from dossier.case.locking import FileLock, read_json, write_json_atomic
from dossier.case.state import load_state, save_state, state_path
from dossier.sources.allocation import SOURCE_ID_RE, format_source_id, parse_source_id
from dossier.sources.urls import is_valid_url

logger = logging.getLogger(__name__)


def load_sources(case_dir: str | Path) -> list[dict[str, Any]]:
    """Source records from ``sources.json`` in either stored shape."""
    data = read_json(Path(case_dir) / "sources.json", default={"sources": []})
    if isinstance(data, dict) and isinstance(data.get("sources"), list):
        return [s for s in data["sources"] if isinstance(s, dict)]
    if isinstance(data, dict):
        return [
            {"id": sid, **record}
            for sid, record in data.items()
            if SOURCE_ID_RE.match(sid) and isinstance(record, dict)
        ]
    if isinstance(data, list):
        return [s for s in data if isinstance(s, dict)]
    return []


class SourceRegistry:
    """Read and append source records for one case."""

    def __init__(self, case_dir: str | Path) -> None:
        self.case_dir = Path(case_dir)
        self.path = self.case_dir / "sources.json"

    def list(self) -> list[dict[str, Any]]:
        return load_sources(self.case_dir)

    def by_id(self) -> dict[str, dict[str, Any]]:
        return {s["id"]: s for s in load_sources(self.case_dir) if s.get("id")}

    def get(self, source_id: str) -> dict[str, Any] | None:
        return self.by_id().get(source_id)

    def _save(self, sources: list[dict[str, Any]]) -> None:
        write_json_atomic(self.path, {"sources": sources})

    def add(
        self,
        url: str,
        title: str = "",
        source_type: str = "",
        **extra: Any,
    ) -> dict[str, Any]:
        """Register a new source under the next free ID.

        ``state.json["next_source"]`` is advanced under its lock, so the ID
        is never handed to anyone else.
        """
        if not is_valid_url(url):
            raise ValueError(f"Not a citable http(s) URL: {url!r}")

        with FileLock(state_path(self.case_dir)):
            state = load_state(self.case_dir)
            number = int(state.get("next_source") or 1)
            for raw in state.get("source_allocations", {}).values():
                number = max(number, int(raw["end"]))
            state["next_source"] = number + 1
            save_state(self.case_dir, state)

        record = {
            "id": format_source_id(number),
            "url": url,
            "title": title,
            "captured": False,
            "captured_at": None,
            "evidence_path": None,
            "hash": None,
        }
        if source_type:
            record["source_type"] = source_type
        record.update(extra)

        with FileLock(self.path):
            sources = self.list()
            sources.append(record)
            self._save(sources)
        logger.info("Registered source %s: %s", record["id"], url)
        return record

    def upsert(self, record: dict[str, Any]) -> None:
        """Insert or replace a record whose ID was allocated elsewhere."""
        if not SOURCE_ID_RE.match(record.get("id", "")):
            raise ValueError(f"Invalid source id: {record.get('id')!r}")
        with FileLock(self.path):
            sources = self.list()
            for i, existing in enumerate(sources):
                if existing.get("id") == record["id"]:
                    sources[i] = {**existing, **record}
                    break
            else:
                sources.append(record)
            self._save(sources)

    def mark_captured(
        self,
        source_id: str,
        evidence_path: str,
        content_hash: str | None,
        captured_at: str | None = None,
        title: str | None = None,
    ) -> dict[str, Any]:
        with FileLock(self.path):
            sources = self.list()
            record = next((s for s in sources if s.get("id") == source_id), None)
            if record is None:
                raise KeyError(f"Source {source_id} not in sources.json")
            record["captured"] = True
            record["captured_at"] = captured_at or datetime.now(timezone.utc).isoformat()
            record["evidence_path"] = evidence_path
            record["hash"] = content_hash
            if title:
                record["title"] = title
            self._save(sources)
        return record


def _format_ts(value: str | None) -> str:
    if not value:
        return "unknown"
    try:
        when = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    return when.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


def _source_order(record: dict[str, Any]) -> tuple[int, str]:
    source_id = str(record.get("id", ""))
    try:
        return parse_source_id(source_id), source_id
    except ValueError:
        return 1 << 31, source_id


def render_sources_md(case_dir: str | Path) -> Path:
    """Write ``sources.md`` from ``sources.json`` and return its path."""
    case_dir = Path(case_dir)
    state = load_state(case_dir)
    sources = sorted(load_sources(case_dir), key=_source_order)
    captured = [s for s in sources if s.get("captured")]
    uncaptured = [s for s in sources if not s.get("captured")]

    lines = [
        "# Source Registry",
        "",
        f"**Case**: {state.get('case', case_dir.name)}",
        f"**Topic**: {state.get('topic', '')}",
        "",
        "---",
        "",
        "## Source Statistics",
        "",
        "| Metric | Count |",
        "|--------|-------|",
        f"| Total Sources | {len(sources)} |",
        f"| Captured | {len(captured)} |",
        f"| Not captured | {len(uncaptured)} |",
        "",
        "---",
        "",
        "## Captured Sources",
        "",
    ]
    for src in captured:
        lines += [
            f"### [{src['id']}] {src.get('title') or 'Untitled'}",
            "",
            "| Field | Value |",
            "|-------|-------|",
            f"| **URL** | {src.get('url', '')} |",
            f"| **Captured** | {_format_ts(src.get('captured_at'))} |",
            f"| **Evidence** | `{src.get('evidence_path') or 'N/A'}` |",
            f"| **Hash** | `{src.get('hash') or 'N/A'}` |",
            "",
            "---",
            "",
        ]

    if uncaptured:
        lines += [
            "## Not Captured",
            "",
            "*Cannot be cited until evidence is captured.*",
            "",
            "| ID | URL | Title |",
            "|----|-----|-------|",
        ]
        lines += [
            f"| {s.get('id', '?')} | {s.get('url', '')} | {s.get('title', '')} |"
            for s in uncaptured
        ]
        lines.append("")

    path = case_dir / "sources.md"
    path.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Wrote %s (%d captured, %d pending)", path, len(captured), len(uncaptured))
    return path
