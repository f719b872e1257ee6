"""Evidence integrity checks: presence, hashes, signatures, red flags,
and duplicate source URLs."""

from __future__ import annotations

import hashlib
import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dossier.sources.capture import verify_capture_signature
from dossier.sources.registry import load_sources
from dossier.sources.urls import canonicalize_url, is_homepage

logger = logging.getLogger(__name__)

_CONTENT_SUFFIXES = (".md", ".html", ".pdf", ".txt")
_ROUND_TIMESTAMP = re.compile(r"T\d{2}:00:00\.000Z$")
_COMPILATION_CONTENT = re.compile(
    r"^(Research compilation|Summary of|Synthesis of|Overview of)", re.IGNORECASE
)
_SUSPICIOUS_TITLE = re.compile(r"(compilation|synthesis|summary|overview|aggregat)", re.IGNORECASE)


def hash_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as fh:
        for chunk in iter(lambda: fh.read(65536), b""):
            digest.update(chunk)
    return f"sha256:{digest.hexdigest()}"


# ---------------------------------------------------------------------------
# Evidence presence
# ---------------------------------------------------------------------------


@dataclass
class EvidenceStatus:
    exists: bool
    kind: str | None = None    # web | document | stub | error
    path: Path | None = None
    reason: str = ""


def evidence_status(case_dir: str | Path, source_id: str) -> EvidenceStatus:
    """Whether *source_id* has real captured content on disk.

    A ``metadata.json`` with no content beside it is a stub: it looks like
    evidence but nothing was fetched.
    """
    case_dir = Path(case_dir)
    web_dir = case_dir / "evidence" / "web" / source_id
    meta_path = web_dir / "metadata.json"

    if meta_path.exists():
        content = [
            p for p in web_dir.iterdir()
            if p.name != "metadata.json"
            and (p.name.startswith("capture.") or p.suffix in _CONTENT_SUFFIXES)
        ]
        if content:
            return EvidenceStatus(True, "web", web_dir)
        try:
            meta = json.loads(meta_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            return EvidenceStatus(False, "error", web_dir, f"metadata.json parse error: {e}")
        for info in (meta.get("files") or {}).values():
            rel = info.get("path") if isinstance(info, dict) else info
            if rel and (web_dir / rel).exists():
                return EvidenceStatus(True, "web", web_dir)
        return EvidenceStatus(
            False, "stub", web_dir, "metadata.json exists but no content was captured"
        )

    doc_dir = case_dir / "evidence" / "documents"
    if doc_dir.is_dir():
        for p in sorted(doc_dir.iterdir()):
            if p.name.startswith(f"{source_id}_") and not p.name.endswith(".meta.json"):
                return EvidenceStatus(True, "document", p)

    return EvidenceStatus(False, None, None, "no evidence captured")


# ---------------------------------------------------------------------------
# Per-source verification
# ---------------------------------------------------------------------------


@dataclass
class SourceCheck:
    source_id: str
    valid: bool = False
    checks: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "valid": self.valid,
            "checks": self.checks,
            "errors": self.errors,
            "warnings": self.warnings,
        }


def _verify_document(path: Path, result: SourceCheck) -> SourceCheck:
    meta_path = Path(f"{path}.meta.json")
    if not meta_path.exists():
        result.errors.append(f"{meta_path.name} missing")
        return result
    try:
        meta = json.loads(meta_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        result.errors.append(f"{meta_path.name} invalid JSON: {e}")
        return result
    result.checks.append("metadata_exists")
    actual = hash_file(path)
    if meta.get("hash") != actual:
        result.errors.append(f"Hash mismatch for {path.name}: actual={actual}, stored={meta.get('hash')}")
    else:
        result.checks.append("hash_verified")
    result.valid = not result.errors
    return result


def verify_source(
    case_dir: str | Path,
    source_id: str,
    require_signature: bool = False,
    require_receipt: bool = False,
) -> SourceCheck:
    """Check a source's captured evidence.

    Errors make the source unusable for citation; warnings are red flags
    worth a human look.
    """
    result = SourceCheck(source_id)
    status = evidence_status(case_dir, source_id)
    if status.kind == "document" and status.path is not None:
        return _verify_document(status.path, result)
    if status.path is None:
        result.errors.append(f"Evidence missing: evidence/web/{source_id}/")
        return result
    result.checks.append("directory_exists")

    evidence_dir = status.path
    try:
        metadata = json.loads((evidence_dir / "metadata.json").read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        result.errors.append(f"metadata.json invalid JSON: {e}")
        return result
    result.checks.append("metadata_valid_json")

    if not metadata.get("url"):
        result.errors.append("Required field missing: url")
    if not metadata.get("captured_at"):
        result.errors.append("Required field missing: captured_at")
    files = metadata.get("files") or {}
    if not files:
        result.errors.append("Required field missing: files")
    result.checks.append("required_fields")

    sig = verify_capture_signature(metadata, require_receipt=require_receipt)
    if sig.valid:
        result.checks.append("signature_verified")
    elif require_signature or require_receipt:
        result.errors.append(sig.reason)
    else:
        result.warnings.append(sig.reason)

    for key, info in files.items():
        if not isinstance(info, dict) or not info.get("path") or not info.get("hash"):
            continue
        file_path = evidence_dir / info["path"]
        if not file_path.exists():
            result.errors.append(f"File listed in metadata is missing: {info['path']}")
            continue
        actual = hash_file(file_path)
        if actual != info["hash"]:
            result.errors.append(
                f"Hash mismatch for {info['path']}: actual={actual}, stored={info['hash']}"
            )
        else:
            result.checks.append(f"hash_verified:{key}")

    captured_at = metadata.get("captured_at") or ""
    if _ROUND_TIMESTAMP.search(captured_at):
        result.warnings.append(f"Suspicious round timestamp: {captured_at}")
    if metadata.get("url") and is_homepage(metadata["url"]):
        result.warnings.append(f"URL appears to be a homepage, not a specific page: {metadata['url']}")
    if metadata.get("title") and _SUSPICIOUS_TITLE.search(metadata["title"]):
        result.warnings.append(f"Title suggests compilation, not a single source: {metadata['title']}")
    content_path = evidence_dir / "content.md"
    if content_path.exists():
        head = content_path.read_text(encoding="utf-8", errors="replace")[:200].lstrip()
        if _COMPILATION_CONTENT.match(head):
            result.errors.append("content.md starts with a compilation pattern; likely fabricated")
    result.checks.append("red_flag_scan")

    result.valid = not result.errors
    return result


# ---------------------------------------------------------------------------
# Duplicate URLs
# ---------------------------------------------------------------------------


@dataclass
class DuplicateGroup:
    canonical_url: str
    source_ids: list[str]
    unresolved: list[str]

    @property
    def allowed(self) -> bool:
        return not self.unresolved


def _duplicate_allowed(record: dict[str, Any], group_ids: list[str]) -> bool:
    reason = str(record.get("duplicate_reason") or "").strip()
    if not reason:
        return False
    if record.get("allow_duplicate") is True:
        return True
    return str(record.get("duplicate_of") or "").strip() in group_ids


def find_duplicate_urls(case_dir: str | Path) -> list[DuplicateGroup]:
    """Group sources sharing a canonical URL.

    The lowest ID in a group is the primary; every other member must
    explain itself with ``duplicate_reason`` plus either
    ``allow_duplicate`` or a ``duplicate_of`` pointing into the group.
    """
    groups: dict[str, list[dict[str, Any]]] = {}
    for record in load_sources(case_dir):
        canonical = canonicalize_url(record.get("url"))
        if canonical and record.get("id"):
            groups.setdefault(canonical, []).append(record)

    duplicates: list[DuplicateGroup] = []
    for canonical, records in groups.items():
        if len(records) < 2:
            continue
        records.sort(key=lambda r: r["id"])
        ids = [r["id"] for r in records]
        unresolved = [r["id"] for r in records[1:] if not _duplicate_allowed(r, ids)]
        duplicates.append(DuplicateGroup(canonical, ids, unresolved))
        if unresolved:
            logger.warning("Duplicate URL %s under %s", canonical, ", ".join(ids))
    return duplicates
