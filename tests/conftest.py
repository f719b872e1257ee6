"""Shared fixtures: an initialised case in ``tmp_path`` and signed captures."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from dossier.case.layout import init_case
from dossier.config.settings import settings
from dossier.sources.capture import capture_signature, sha256_hex
from dossier.sources.registry import SourceRegistry

CAPTURED_AT = "2026-03-04T10:15:27.123Z"
DEFAULT_CONTENT = (
    "# Water Board Annual Report\n\n"
    "The board approved a budget of $12 million in 2025.\n"
    "Unpaid invoices rose 40% compared with the previous year.\n"
)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setattr(settings, "CASES_ROOT", str(tmp_path / "cases"))
    monkeypatch.setattr(settings, "EVIDENCE_RECEIPT_KEY", "")
    monkeypatch.setattr(settings, "FIRECRAWL_API_KEY", "")
    monkeypatch.setattr(settings, "LOG_FILE", "")


@pytest.fixture
def cases_root(tmp_path: Path) -> Path:
    return tmp_path / "cases"


@pytest.fixture
def case_dir(cases_root: Path) -> Path:
    return init_case("Water Board Contracts", cases_root).root


@pytest.fixture
def make_capture(case_dir: Path) -> Callable[..., Path]:
    """Write a correctly signed web capture and register the source."""

    def _make(
        source_id: str,
        url: str = "https://example.org/reports/2025-annual",
        content: str = DEFAULT_CONTENT,
        *,
        register: bool = True,
        captured_at: str = CAPTURED_AT,
        extra_metadata: dict[str, Any] | None = None,
    ) -> Path:
        evidence = case_dir / "evidence" / "web" / source_id
        evidence.mkdir(parents=True, exist_ok=True)
        raw = content.encode("utf-8")
        (evidence / "content.md").write_bytes(raw)
        files = {
            "markdown": {
                "path": "content.md",
                "hash": f"sha256:{sha256_hex(raw)}",
                "size": len(raw),
            }
        }
        metadata: dict[str, Any] = {
            "source_id": source_id,
            "url": url,
            "title": "Water Board Annual Report",
            "captured_at": captured_at,
            "method": "firecrawl",
            "files": files,
            "_signature_version": "v2",
            "_capture_signature": capture_signature(source_id, url, captured_at, files),
        }
        metadata.update(extra_metadata or {})
        (evidence / "metadata.json").write_text(json.dumps(metadata, indent=2), encoding="utf-8")

        if register:
            SourceRegistry(case_dir).upsert({
                "id": source_id,
                "url": url,
                "title": metadata["title"],
                "captured": True,
                "captured_at": captured_at,
                "evidence_path": f"evidence/web/{source_id}",
                "hash": files["markdown"]["hash"],
            })
        return evidence

    return _make
