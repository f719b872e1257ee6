"""Decomposed findings (``findings/F###.md``).

Instead of one monolithic summary, each finding is its own markdown file
with a small frontmatter block and an independent lifecycle:

    draft → sourced → (stale | superseded)

``manifest.json`` records the assembly order; ``assemble`` stitches the
live findings back into a single document.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

from dossier.case.locking import FileLock, read_json, write_json_atomic
from dossier.errors import CaseFileError

logger = logging.getLogger(__name__)

FINDING_STATUSES = ("draft", "sourced", "stale", "superseded")
FINDING_FILE_RE = re.compile(r"^F(\d{3,})\.md$")
_FRONTMATTER_RE = re.compile(r"^---\n([\s\S]*?)\n---\n([\s\S]*)$")
_HEADING_RE = re.compile(r"^#\s+(?:Finding:\s*)?(.+?)\s*$", re.MULTILINE)
_FIELD_ORDER = (
    "id",
    "status",
    "created",
    "updated",
    "sources",
    "supersedes",
    "superseded_by",
    "confidence",
    "related_leads",
)


@dataclass
class Finding:
    id: str
    metadata: dict[str, Any] = field(default_factory=dict)
    body: str = ""

    @property
    def status(self) -> str:
        return str(self.metadata.get("status") or "unknown")

    @property
    def sources(self) -> list[str]:
        value = self.metadata.get("sources")
        return list(value) if isinstance(value, list) else []

    @property
    def title(self) -> str:
        """Frontmatter ``title`` if set, else the first heading of the body."""
        if self.metadata.get("title"):
            return str(self.metadata["title"])
        m = _HEADING_RE.search(self.body)
        return m.group(1) if m else ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.title, **self.metadata, "body": self.body}


# ---------------------------------------------------------------------------
# Frontmatter
# ---------------------------------------------------------------------------


def _parse_value(raw: str) -> Any:
    if raw == "null":
        return None
    if raw.startswith("[") and raw.endswith("]"):
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            return raw
    return raw


def parse_finding(text: str) -> tuple[dict[str, Any], str]:
    """Split a finding into (metadata, body).

    Text without a frontmatter block is returned whole as the body.
    """
    match = _FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    metadata: dict[str, Any] = {}
    for line in match.group(1).split("\n"):
        key, sep, value = line.partition(":")
        if sep and key.strip():
            metadata[key.strip()] = _parse_value(value.strip())
    return metadata, match.group(2).strip()


def render_frontmatter(metadata: dict[str, Any]) -> str:
    keys = [k for k in _FIELD_ORDER if k in metadata]
    keys += [k for k in metadata if k not in _FIELD_ORDER]
    lines = ["---"]
    for key in keys:
        value = metadata[key]
        if isinstance(value, list):
            lines.append(f"{key}: {json.dumps(value)}")
        elif value is None:
            lines.append(f"{key}: null")
        else:
            lines.append(f"{key}: {value}")
    lines.append("---")
    return "\n".join(lines)


def next_finding_id(findings_dir: str | Path) -> str:
    findings_dir = Path(findings_dir)
    highest = 0
    if findings_dir.is_dir():
        for path in findings_dir.iterdir():
            m = FINDING_FILE_RE.match(path.name)
            if m:
                highest = max(highest, int(m.group(1)))
    return f"F{highest + 1:03d}"


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class FindingStore:
    """Findings of one case."""

    def __init__(self, case_dir: str | Path) -> None:
        self.case_dir = Path(case_dir)
        self.dir = self.case_dir / "findings"
        self.manifest_path = self.dir / "manifest.json"

    def _path(self, finding_id: str) -> Path:
        return self.dir / f"{finding_id}.md"

    def manifest(self) -> dict[str, Any]:
        data = read_json(self.manifest_path, default={})
        data.setdefault("assembly_order", [])
        return data

    def ids(self) -> list[str]:
        if not self.dir.is_dir():
            return []
        return sorted(p.stem for p in self.dir.iterdir() if FINDING_FILE_RE.match(p.name))

    def ordered_ids(self) -> list[str]:
        """Manifest order first, then any finding the manifest misses."""
        order = [i for i in self.manifest()["assembly_order"] if self._path(i).exists()]
        return order + [i for i in self.ids() if i not in order]

    def read(self, finding_id: str) -> Finding:
        path = self._path(finding_id)
        if not path.exists():
            raise CaseFileError(f"Finding {finding_id} not found in {self.dir}")
        metadata, body = parse_finding(path.read_text(encoding="utf-8"))
        return Finding(id=finding_id, metadata=metadata, body=body)

    def list(self) -> list[Finding]:
        return [self.read(i) for i in self.ids()]

    def add(self, title: str, body: str = "*Content to be added.*") -> Finding:
        if not title.strip():
            raise ValueError("Finding title must not be empty")
        self.dir.mkdir(parents=True, exist_ok=True)
        today = date.today().isoformat()

        with FileLock(self.manifest_path):
            finding_id = next_finding_id(self.dir)
            metadata: dict[str, Any] = {
                "id": finding_id,
                "status": "draft",
                "created": today,
                "updated": today,
                "sources": [],
                "supersedes": None,
                "superseded_by": None,
                "confidence": "low",
                "related_leads": [],
            }
            content = f"{render_frontmatter(metadata)}\n\n# Finding: {title.strip()}\n\n{body}\n"
            self._path(finding_id).write_text(content, encoding="utf-8")

            manifest = self.manifest()
            manifest["assembly_order"].append(finding_id)
            write_json_atomic(self.manifest_path, manifest)

        logger.info("Created finding %s: %s", finding_id, title)
        return Finding(id=finding_id, metadata=metadata, body=content.split("---\n", 2)[-1].strip())

    def update(self, finding_id: str, field_name: str, value: Any) -> Finding:
        """Set one frontmatter field and bump ``updated``."""
        if field_name == "status" and value not in FINDING_STATUSES:
            raise ValueError(
                f"Invalid finding status {value!r}. Valid: {', '.join(FINDING_STATUSES)}"
            )
        finding = self.read(finding_id)
        finding.metadata[field_name] = value
        finding.metadata["updated"] = date.today().isoformat()
        self._path(finding_id).write_text(
            f"{render_frontmatter(finding.metadata)}\n\n{finding.body}\n", encoding="utf-8"
        )
        return finding

    def assemble(self) -> str:
        """Concatenate live findings, then list every source they reference."""
        parts: list[str] = []
        sources: set[str] = set()
        for finding_id in self.ordered_ids():
            finding = self.read(finding_id)
            if finding.status in ("stale", "superseded"):
                continue
            parts.append(finding.body)
            sources.update(finding.sources)

        listing = "\n".join(f"- {s}" for s in sorted(sources))
        return "\n\n---\n\n".join(parts) + f"\n\n---\n\n## Sources Referenced\n\n{listing}\n"
