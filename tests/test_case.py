"""Tests for case layout, state, active-case selection and file locking."""

from __future__ import annotations

import json
import os
import time
from pathlib import Path

import pytest

from dossier.case.active import clear_active, get_active, resolve_case, set_active
from dossier.case.layout import FRAMEWORKS, CasePaths, init_case, slugify
from dossier.case.locking import FileLock, read_json, write_json_atomic
from dossier.case.state import (
    GATE_NAMES,
    Phase,
    all_gates_pass,
    failing_gates,
    load_state,
    new_state,
    save_state,
)
from dossier.errors import CaseExistsError, CaseFileError, CaseNotFoundError, LockTimeout


# ===========================================================================
# Layout
# ===========================================================================


class TestInitCase:
    def test_slugify(self):
        assert slugify("Water Board Contracts") == "water-board-contracts"
        assert slugify("  FOIA: 2025/26 -- audit!  ") == "foia-2025-26-audit"

    def test_creates_layout(self, cases_root: Path):
        paths = init_case("Water Board Contracts", cases_root)

        assert paths.case_id == "water-board-contracts"
        assert paths.root == cases_root / "water-board-contracts"
        for path in (
            paths.state, paths.sources, paths.leads, paths.claims, paths.ledger,
            paths.summary, paths.removed_points, paths.future_research,
            paths.findings / "manifest.json",
        ):
            assert path.exists(), path
        assert paths.evidence.is_dir()
        assert paths.articles.is_dir()

    def test_one_question_file_per_framework(self, cases_root: Path):
        paths = init_case("Frameworks", cases_root)
        files = sorted(p.name for p in paths.questions.glob("*.md"))

        assert len(files) == len(FRAMEWORKS) == 35
        assert files[0] == "01-follow-the-money.md"
        assert files[-1] == "35-mechanism-tracing.md"
        text = (paths.questions / files[0]).read_text(encoding="utf-8")
        assert text.startswith("# 01: Follow the Money")
        assert "**Status:** pending" in text

    def test_initial_files(self, cases_root: Path):
        paths = init_case("Initial Files", cases_root)

        state = json.loads(paths.state.read_text())
        assert state["phase"] == "PLAN"
        assert state["next_source"] == 1
        assert state["topic"] == "Initial Files"
        assert set(state["gates"]) == set(GATE_NAMES)
        assert not any(state["gates"].values())

        assert json.loads(paths.sources.read_text()) == {"sources": []}
        leads = json.loads(paths.leads.read_text())
        assert leads["leads"] == [] and leads["version"] == 0 and leads["max_depth"] == 3
        assert json.loads(paths.ledger.read_text())["entries"] == []
        assert paths.summary.read_text().startswith("# Initial Files")

    def test_existing_case_rejected(self, cases_root: Path):
        init_case("Twice", cases_root)
        with pytest.raises(CaseExistsError):
            init_case("Twice", cases_root)

    def test_empty_slug_rejected(self, cases_root: Path):
        with pytest.raises(ValueError):
            init_case("!!!", cases_root)

    def test_case_paths_accessors(self, tmp_path: Path):
        paths = CasePaths(tmp_path / "demo")
        assert paths.article == tmp_path / "demo" / "articles" / "full.md"
        assert paths.web_capture_dir("S004") == tmp_path / "demo" / "evidence" / "web" / "S004"


# ===========================================================================
# State
# ===========================================================================


class TestState:
    def test_phases_in_order(self):
        assert [p.value for p in Phase] == [
            "PLAN", "BOOTSTRAP", "QUESTION", "FOLLOW", "WRITE", "VERIFY", "COMPLETE",
        ]

    def test_load_fills_missing_gates(self, tmp_path: Path):
        state = new_state("demo", "Demo")
        del state["gates"]["significance"]
        del state["next_source"]
        save_state(tmp_path, state)

        loaded = load_state(tmp_path)
        assert loaded["gates"]["significance"] is False
        assert loaded["next_source"] == 1

    def test_missing_state_raises(self, tmp_path: Path):
        with pytest.raises(CaseNotFoundError):
            load_state(tmp_path)

    def test_gate_helpers(self):
        gates = {name: True for name in GATE_NAMES}
        assert all_gates_pass(gates)
        gates["legal"] = False
        assert not all_gates_pass(gates)
        assert failing_gates(gates) == ["legal"]
        assert failing_gates({}) == list(GATE_NAMES)


# ===========================================================================
# Active case
# ===========================================================================


class TestActiveCase:
    def test_set_get_clear(self, cases_root: Path):
        assert get_active(cases_root) is None
        set_active("water-board-contracts", cases_root)
        assert get_active(cases_root) == "water-board-contracts"
        assert (cases_root / ".active").read_text() == "water-board-contracts\n"
        clear_active(cases_root)
        assert get_active(cases_root) is None
        clear_active(cases_root)  # idempotent

    def test_set_rejects_blank(self, cases_root: Path):
        with pytest.raises(ValueError):
            set_active("  ", cases_root)

    def test_resolve_explicit_path(self, case_dir: Path, cases_root: Path):
        resolved = resolve_case(str(case_dir), cases_root)
        assert resolved.case_dir == case_dir
        assert resolved.source == "arg_path"

    def test_resolve_explicit_id(self, case_dir: Path, cases_root: Path, monkeypatch):
        monkeypatch.chdir(cases_root.parent)
        resolved = resolve_case("water-board-contracts", cases_root)
        assert resolved.case_id == "water-board-contracts"
        assert resolved.source == "arg_id"

    def test_resolve_active(self, case_dir: Path, cases_root: Path):
        set_active(case_dir.name, cases_root)
        resolved = resolve_case(None, cases_root)
        assert resolved.case_dir == cases_root / case_dir.name
        assert resolved.source == "active"

    def test_unknown_explicit_falls_back_to_active(self, case_dir: Path, cases_root: Path):
        set_active(case_dir.name, cases_root)
        assert resolve_case("no-such-case", cases_root).source == "active"

    def test_active_pointing_nowhere(self, cases_root: Path):
        set_active("deleted-case", cases_root)
        with pytest.raises(CaseNotFoundError, match="missing directory"):
            resolve_case(None, cases_root)

    def test_nothing_to_resolve(self, cases_root: Path):
        with pytest.raises(CaseNotFoundError, match="No active case"):
            resolve_case(None, cases_root)
        with pytest.raises(CaseNotFoundError, match="Case not found"):
            resolve_case("ghost", cases_root)


# ===========================================================================
# Locking and atomic JSON
# ===========================================================================


class TestFileLock:
    def test_lock_file_lifecycle(self, tmp_path: Path):
        target = tmp_path / "leads.json"
        with FileLock(target) as lock:
            assert lock.lock_path == tmp_path / "leads.json.lock"
            assert lock.lock_path.exists()
        assert not lock.lock_path.exists()

    def test_held_lock_times_out(self, tmp_path: Path):
        target = tmp_path / "state.json"
        with FileLock(target):
            with pytest.raises(LockTimeout):
                FileLock(target, timeout=0.1, retry=0.02).acquire()

    def test_stale_lock_is_removed(self, tmp_path: Path):
        target = tmp_path / "state.json"
        lock_path = tmp_path / "state.json.lock"
        lock_path.write_text("99999")
        old = time.time() - 120
        os.utime(lock_path, (old, old))

        with FileLock(target, timeout=0.5, stale_after=30):
            assert lock_path.read_text() == str(os.getpid())

    def test_release_without_acquire_is_noop(self, tmp_path: Path):
        FileLock(tmp_path / "x.json").release()


class TestJsonHelpers:
    def test_write_then_read(self, tmp_path: Path):
        path = tmp_path / "nested" / "data.json"
        write_json_atomic(path, {"name": "Łódź", "n": 1})
        assert read_json(path) == {"name": "Łódź", "n": 1}
        assert "Łódź" in path.read_text(encoding="utf-8")
        assert not list(path.parent.glob(".*.tmp"))

    def test_missing_with_default(self, tmp_path: Path):
        assert read_json(tmp_path / "nope.json", default={"a": 1}) == {"a": 1}

    def test_missing_without_default(self, tmp_path: Path):
        with pytest.raises(CaseFileError, match="not found"):
            read_json(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path: Path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        with pytest.raises(CaseFileError, match="Invalid JSON"):
            read_json(path)
