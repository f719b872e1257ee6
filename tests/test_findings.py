"""Tests for decomposed findings."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from dossier.errors import CaseFileError
from dossier.findings import FindingStore, next_finding_id, parse_finding, render_frontmatter


@pytest.fixture
def store(case_dir: Path) -> FindingStore:
    return FindingStore(case_dir)


class TestFrontmatter:
    def test_round_trip_values(self):
        text = render_frontmatter({
            "id": "F001",
            "status": "sourced",
            "sources": ["S001", "S004"],
            "supersedes": None,
            "extra": "kept",
        }) + "\n\n# Finding: Budget\n\nBody text.\n"
        metadata, body = parse_finding(text)
        assert metadata["sources"] == ["S001", "S004"]
        assert metadata["supersedes"] is None
        assert metadata["extra"] == "kept"
        assert body == "# Finding: Budget\n\nBody text."

    def test_field_order(self):
        text = render_frontmatter({"status": "draft", "zeta": 1, "id": "F002"})
        assert text.split("\n")[1:4] == ["id: F002", "status: draft", "zeta: 1"]

    def test_no_frontmatter(self):
        assert parse_finding("Just text") == ({}, "Just text")

    def test_next_id(self, tmp_path: Path):
        assert next_finding_id(tmp_path / "absent") == "F001"
        (tmp_path / "F002.md").write_text("")
        (tmp_path / "notes.md").write_text("")
        assert next_finding_id(tmp_path) == "F003"


class TestFindingStore:
    def test_add_writes_file_and_manifest(self, store: FindingStore, case_dir: Path):
        finding = store.add("Contracts split to avoid tender", body="Seven awards [S001].")
        assert finding.id == "F001"
        assert finding.status == "draft"

        text = (case_dir / "findings" / "F001.md").read_text()
        assert text.startswith("---\nid: F001\nstatus: draft\n")
        assert "# Finding: Contracts split to avoid tender" in text
        manifest = json.loads((case_dir / "findings" / "manifest.json").read_text())
        assert manifest["assembly_order"] == ["F001"]

    def test_title_read_back_from_heading(self, store: FindingStore):
        store.add("Contracts split to avoid tender")
        finding = store.read("F001")
        assert "title" not in finding.metadata
        assert finding.title == "Contracts split to avoid tender"
        assert finding.to_dict()["title"] == "Contracts split to avoid tender"

    def test_empty_title(self, store: FindingStore):
        with pytest.raises(ValueError):
            store.add(" ")

    def test_read_missing(self, store: FindingStore):
        with pytest.raises(CaseFileError):
            store.read("F404")

    def test_update(self, store: FindingStore):
        store.add("First")
        store.update("F001", "sources", ["S002"])
        updated = store.update("F001", "status", "sourced")
        assert updated.status == "sourced"
        assert store.read("F001").sources == ["S002"]
        with pytest.raises(ValueError, match="Invalid finding status"):
            store.update("F001", "status", "published")

    def test_ordered_ids_include_unlisted(self, store: FindingStore, case_dir: Path):
        store.add("First")
        store.add("Second")
        manifest_path = case_dir / "findings" / "manifest.json"
        manifest_path.write_text(json.dumps({"assembly_order": ["F002", "F009"]}))
        assert store.ordered_ids() == ["F002", "F001"]

    def test_assemble_skips_dead_findings(self, store: FindingStore):
        store.add("Awards", body="Seven awards [S001].")
        store.add("Old theory", body="Since disproven.")
        store.add("Payments", body="Paid late [S002].")
        store.update("F001", "sources", ["S001"])
        store.update("F003", "sources", ["S002", "S001"])
        store.update("F002", "status", "superseded")

        document = store.assemble()
        assert "Seven awards" in document
        assert "Paid late" in document
        assert "Since disproven" not in document
        assert document.index("Seven awards") < document.index("Paid late")
        assert document.endswith("## Sources Referenced\n\n- S001\n- S002\n")
        assert [f.id for f in store.list()] == ["F001", "F002", "F003"]
