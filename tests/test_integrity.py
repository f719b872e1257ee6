"""Tests for evidence presence, per-source verification and duplicate URLs."""

from __future__ import annotations

import json
from pathlib import Path

from dossier.sources.capture import sha256_hex
from dossier.sources.integrity import (
    evidence_status,
    find_duplicate_urls,
    hash_file,
    verify_source,
)
from dossier.sources.registry import SourceRegistry


# ===========================================================================
# Evidence presence
# ===========================================================================


class TestEvidenceStatus:
    def test_web_capture(self, case_dir: Path, make_capture):
        make_capture("S001")
        status = evidence_status(case_dir, "S001")
        assert status.exists
        assert status.kind == "web"

    def test_metadata_only_is_stub(self, case_dir: Path):
        stub = case_dir / "evidence" / "web" / "S002"
        stub.mkdir(parents=True)
        (stub / "metadata.json").write_text(json.dumps({"source_id": "S002", "summary": "..."}))

        status = evidence_status(case_dir, "S002")
        assert not status.exists
        assert status.kind == "stub"

    def test_unreadable_metadata(self, case_dir: Path):
        broken = case_dir / "evidence" / "web" / "S003"
        broken.mkdir(parents=True)
        (broken / "metadata.json").write_text("{oops")
        assert evidence_status(case_dir, "S003").kind == "error"

    def test_document(self, case_dir: Path):
        docs = case_dir / "evidence" / "documents"
        docs.mkdir(parents=True)
        (docs / "S004_budget.pdf").write_bytes(b"%PDF")
        (docs / "S004_budget.pdf.meta.json").write_text("{}")

        status = evidence_status(case_dir, "S004")
        assert status.exists
        assert status.kind == "document"
        assert status.path == docs / "S004_budget.pdf"

    def test_missing(self, case_dir: Path):
        status = evidence_status(case_dir, "S099")
        assert not status.exists
        assert status.kind is None


# ===========================================================================
# verify_source
# ===========================================================================


class TestVerifySource:
    def test_valid_capture(self, case_dir: Path, make_capture):
        make_capture("S001")
        check = verify_source(case_dir, "S001", require_signature=True)
        assert check.valid, check.errors
        assert "signature_verified" in check.checks
        assert "hash_verified:markdown" in check.checks
        assert check.warnings == []

    def test_edited_content_detected(self, case_dir: Path, make_capture):
        evidence = make_capture("S001")
        (evidence / "content.md").write_text("# Rewritten by hand\n")

        check = verify_source(case_dir, "S001")
        assert not check.valid
        assert any("Hash mismatch" in e for e in check.errors)

    def test_unsigned_is_warning_unless_strict(self, case_dir: Path, make_capture):
        evidence = make_capture("S001")
        metadata = json.loads((evidence / "metadata.json").read_text())
        metadata["_capture_signature"] = "sig_v2_" + "0" * 32
        (evidence / "metadata.json").write_text(json.dumps(metadata))

        lenient = verify_source(case_dir, "S001")
        assert lenient.valid
        assert any("Signature mismatch" in w for w in lenient.warnings)

        strict = verify_source(case_dir, "S001", require_signature=True)
        assert not strict.valid

    def test_red_flags(self, case_dir: Path, make_capture):
        make_capture(
            "S001",
            url="https://example.org/",
            captured_at="2026-03-04T10:00:00.000Z",
            extra_metadata={"title": "Research compilation on water contracts"},
        )
        check = verify_source(case_dir, "S001")
        assert check.valid
        warnings = " ".join(check.warnings)
        assert "round timestamp" in warnings
        assert "homepage" in warnings
        assert "compilation" in warnings

    def test_compilation_content_is_error(self, case_dir: Path, make_capture):
        make_capture("S001", content="Research compilation of several reports.\n")
        check = verify_source(case_dir, "S001")
        assert not check.valid

    def test_missing_evidence(self, case_dir: Path):
        check = verify_source(case_dir, "S010")
        assert not check.valid
        assert check.errors == ["Evidence missing: evidence/web/S010/"]

    def test_document_hash(self, case_dir: Path):
        docs = case_dir / "evidence" / "documents"
        docs.mkdir(parents=True)
        path = docs / "S005_filing.pdf"
        path.write_bytes(b"%PDF filing")
        meta = {"hash": f"sha256:{sha256_hex(b'%PDF filing')}"}
        Path(f"{path}.meta.json").write_text(json.dumps(meta))

        assert hash_file(path) == meta["hash"]
        assert verify_source(case_dir, "S005").valid

        path.write_bytes(b"%PDF altered")
        assert not verify_source(case_dir, "S005").valid

    def test_corrupt_document_sidecar(self, case_dir: Path):
        docs = case_dir / "evidence" / "documents"
        docs.mkdir(parents=True)
        path = docs / "S006_minutes.pdf"
        path.write_bytes(b"%PDF minutes")
        Path(f"{path}.meta.json").write_text("{not json")

        check = verify_source(case_dir, "S006")
        assert not check.valid
        assert check.errors[0].startswith("S006_minutes.pdf.meta.json invalid JSON")
        assert "metadata_exists" not in check.checks


# ===========================================================================
# Duplicate URLs
# ===========================================================================


class TestDuplicateUrls:
    def _register(self, case_dir: Path, *records: dict) -> None:
        registry = SourceRegistry(case_dir)
        for record in records:
            registry.upsert(record)

    def test_canonical_duplicates_flagged(self, case_dir: Path):
        self._register(
            case_dir,
            {"id": "S001", "url": "https://www.example.org/story?utm_source=feed"},
            {"id": "S002", "url": "https://example.org/story/"},
            {"id": "S003", "url": "https://example.org/other"},
        )
        groups = find_duplicate_urls(case_dir)
        assert len(groups) == 1
        assert groups[0].canonical_url == "https://example.org/story"
        assert groups[0].source_ids == ["S001", "S002"]
        assert groups[0].unresolved == ["S002"]
        assert not groups[0].allowed

    def test_justified_duplicate_allowed(self, case_dir: Path):
        self._register(
            case_dir,
            {"id": "S001", "url": "https://example.org/story"},
            {
                "id": "S002",
                "url": "https://example.org/story",
                "duplicate_of": "S001",
                "duplicate_reason": "Page updated after publication; second capture",
            },
        )
        assert find_duplicate_urls(case_dir)[0].allowed

    def test_reason_required(self, case_dir: Path):
        self._register(
            case_dir,
            {"id": "S001", "url": "https://example.org/story"},
            {"id": "S002", "url": "https://example.org/story", "allow_duplicate": True},
        )
        assert not find_duplicate_urls(case_dir)[0].allowed

    def test_duplicate_of_outside_group(self, case_dir: Path):
        self._register(
            case_dir,
            {"id": "S001", "url": "https://example.org/story"},
            {
                "id": "S002",
                "url": "https://example.org/story",
                "duplicate_of": "S009",
                "duplicate_reason": "wrong pointer",
            },
        )
        assert find_duplicate_urls(case_dir)[0].unresolved == ["S002"]
