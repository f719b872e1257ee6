"""Tests for the ``dossier`` command-line interface."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from dossier.cli import main
from dossier.ledger import Ledger


@pytest.fixture(autouse=True)
def _restore_root_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def run(cases_root: Path, *argv: str) -> int:
    with pytest.raises(SystemExit) as exc:
        main(["--cases-root", str(cases_root), *argv])
    return exc.value.code


def run_json(capsys: pytest.CaptureFixture[str], cases_root: Path, *argv: str) -> tuple[int, dict]:
    code = run(cases_root, "--json", *argv)
    return code, json.loads(capsys.readouterr().out)


# ===========================================================================
# Case lifecycle
# ===========================================================================


class TestCaseCommands:
    def test_no_command_prints_help(self, cases_root: Path, capsys):
        assert run(cases_root) == 2
        assert "usage: dossier" in capsys.readouterr().out

    def test_init_sets_active(self, cases_root: Path, capsys):
        assert run(cases_root, "init", "Harbour Permits") == 0
        out = capsys.readouterr().out
        assert "Created case harbour-permits" in out
        assert out.strip().endswith("(active)")

        assert run(cases_root, "active", "get") == 0
        assert capsys.readouterr().out.strip() == "harbour-permits"

    def test_init_no_activate(self, cases_root: Path, capsys):
        code, payload = run_json(capsys, cases_root, "init", "Harbour Permits", "--no-activate")
        assert code == 0
        assert payload["active"] is False
        assert run(cases_root, "active", "get") == 1

    def test_duplicate_init_fails(self, cases_root: Path, capsys):
        run(cases_root, "init", "Harbour Permits")
        capsys.readouterr()
        code, payload = run_json(capsys, cases_root, "init", "Harbour Permits")
        assert code == 1
        assert payload["ok"] is False
        assert "already exists" in payload["error"]

    def test_active_resolve(self, cases_root: Path, capsys):
        run(cases_root, "init", "Harbour Permits")
        capsys.readouterr()
        code, payload = run_json(capsys, cases_root, "active", "resolve")
        assert code == 0
        assert payload["case_id"] == "harbour-permits"
        assert payload["source"] == "active"

    def test_no_active_case_is_an_error(self, cases_root: Path, capsys):
        code, payload = run_json(capsys, cases_root, "leads", "stats")
        assert code == 1
        assert "No active case" in payload["error"]


# ===========================================================================
# Orchestration
# ===========================================================================


class TestNextAndGates:
    def test_next_continue_exit_code(self, cases_root: Path, capsys):
        run(cases_root, "init", "Harbour Permits")
        capsys.readouterr()
        assert run(cases_root, "next") == 2
        out = capsys.readouterr().out
        assert "Phase:  PLAN" in out
        assert "Next:   plan-investigation" in out

    def test_next_json(self, cases_root: Path, capsys):
        run(cases_root, "init", "Harbour Permits")
        capsys.readouterr()
        code, payload = run_json(capsys, cases_root, "next", "harbour-permits")
        assert code == 2
        assert payload["case"] == "harbour-permits"
        assert payload["status"] == "CONTINUE"

    def test_gates_fail_on_fresh_case(self, cases_root: Path, capsys):
        run(cases_root, "init", "Harbour Permits")
        capsys.readouterr()
        code, payload = run_json(capsys, cases_root, "gates", "--write")
        assert code == 1
        assert payload["changed"] is True
        assert payload["gates"]["curiosity"] is True


# ===========================================================================
# Leads, sources, ledger, claims
# ===========================================================================


class TestWorkflowCommands:
    @pytest.fixture
    def active(self, cases_root: Path, capsys) -> Path:
        run(cases_root, "init", "Harbour Permits")
        capsys.readouterr()
        return cases_root / "harbour-permits"

    def test_leads_add_and_list(self, active: Path, cases_root: Path, capsys):
        assert run(cases_root, "leads", "add", "Who signed the permits?", "--priority", "HIGH") == 0
        assert capsys.readouterr().out.strip() == "Added L001 [HIGH]"

        code, payload = run_json(capsys, cases_root, "leads", "list", "--status", "pending")
        assert code == 0
        assert [l["id"] for l in payload["leads"]] == ["L001"]

    def test_leads_invalid_priority(self, active: Path, cases_root: Path, capsys):
        code, payload = run_json(capsys, cases_root, "leads", "add", "Lead", "--priority", "URGENT")
        assert code == 1
        assert payload["ok"] is False

    def test_findings_list_shows_titles(self, active: Path, cases_root: Path, capsys):
        assert run(cases_root, "findings", "add", "Permits signed after hours") == 0
        capsys.readouterr()
        assert run(cases_root, "findings", "list") == 0
        assert capsys.readouterr().out.strip() == "F001 [draft] Permits signed after hours"

    def test_sources_allocate(self, active: Path, cases_root: Path, capsys):
        assert run(cases_root, "sources", "allocate", "3", "--batch-id", "agent-a") == 0
        assert capsys.readouterr().out.strip() == "agent-a: S001..S003"

        code, payload = run_json(capsys, cases_root, "sources", "status")
        assert code == 0
        assert payload["next_source"] == 1
        assert len(payload["active_allocations"]) == 1

    def test_ledger_entry(self, active: Path, cases_root: Path, capsys):
        assert run(cases_root, "ledger", "harbour-permits", "phase_start", "--field", "phase=PLAN") == 0
        assert capsys.readouterr().out.strip() == "E001 phase_start"
        assert Ledger(active).entries()[0]["phase"] == "PLAN"

    def test_ledger_missing_field(self, active: Path, cases_root: Path, capsys):
        code, payload = run_json(capsys, cases_root, "ledger", "harbour-permits", "phase_start")
        assert code == 1
        assert payload["error"] == "phase_start requires: phase"

    def test_ledger_malformed_field(self, active: Path, cases_root: Path, capsys):
        assert run(cases_root, "ledger", "harbour-permits", "phase_start", "--field", "PLAN") == 1

    def test_claims_add_records_ledger(self, active: Path, cases_root: Path, capsys):
        assert run(cases_root, "claims", "add", "The port issued 40 permits", "S001") == 0
        assert capsys.readouterr().out.strip() == "CL0001"
        assert run(cases_root, "claims", "add", "the port  issued 40 permits", "S001") == 0
        assert capsys.readouterr().out.strip() == "CL0001 (duplicate)"

        entries = Ledger(active).entries("claim_create")
        assert [e["claim_id"] for e in entries] == ["CL0001"]

    def test_audit_numerics(self, active: Path, cases_root: Path, tmp_path: Path, capsys):
        article = tmp_path / "draft.md"
        article.write_text("# Draft\n\nThe port issued 40 permits.\n")
        code, payload = run_json(capsys, cases_root, "audit", "numerics", str(article))
        assert code == 1
        assert payload["passed"] is False

    def test_pdf_without_articles(self, active: Path, cases_root: Path, capsys):
        assert run(cases_root, "pdf") == 1
        assert "No articles found" in capsys.readouterr().out
