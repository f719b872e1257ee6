"""Tests for the orchestrator phase machine."""

from __future__ import annotations

import os
import time
from pathlib import Path

import pytest

from dossier.case.active import set_active
from dossier.case.layout import init_case
from dossier.case.state import GATE_NAMES, load_state, save_state
from dossier.errors import CaseNotFoundError
from dossier.leads import LeadStore
from dossier.ledger import Ledger
from dossier.orchestrator import COMPLETE, CONTINUE, ERROR, find_case, next_action


def _set_state(case_dir: Path, phase: str | None = None, **gates: bool) -> None:
    state = load_state(case_dir)
    if phase:
        state["phase"] = phase
    state["gates"].update(gates)
    save_state(case_dir, state)


# ===========================================================================
# Phase progression
# ===========================================================================


class TestPhases:
    def test_fresh_case_plans(self, case_dir: Path):
        signal = next_action(case_dir)
        assert signal.status == CONTINUE
        assert signal.phase == "PLAN"
        assert signal.next == "plan-investigation"
        assert signal.exit_code == 2
        assert signal.to_dict()["gates_total"] == len(GATE_NAMES)

    def test_planning_gate_advances_to_bootstrap(self, case_dir: Path):
        _set_state(case_dir, planning=True)
        signal = next_action(case_dir)

        assert signal.phase == "BOOTSTRAP"
        assert signal.next == "research"
        assert signal.gates_passing == 1
        assert load_state(case_dir)["phase"] == "BOOTSTRAP"
        entries = Ledger(case_dir).entries()
        assert [(e["type"], e["phase"]) for e in entries] == [
            ("phase_complete", "PLAN"),
            ("phase_start", "BOOTSTRAP"),
        ]

    def test_questions_then_follow(self, case_dir: Path):
        _set_state(case_dir, phase="QUESTION")
        assert next_action(case_dir).next == "question"

        store = LeadStore(case_dir)
        store.add("Low priority", priority="LOW")
        store.add("High priority", priority="HIGH")
        _set_state(case_dir, questions=True)

        signal = next_action(case_dir)
        assert signal.phase == "FOLLOW"
        assert signal.next == "follow L002"
        assert signal.lead_info["pending"] == 2
        assert signal.lead_info["next_lead"]["id"] == "L002"

    def test_batch_follow(self, case_dir: Path):
        store = LeadStore(case_dir)
        store.add("Medium", priority="MEDIUM")
        store.add("High", priority="HIGH")
        store.add("Low", priority="LOW")
        _set_state(case_dir, phase="FOLLOW")

        signal = next_action(case_dir, batch=True, batch_size=2)
        assert signal.next == "follow-batch L002 L001"
        assert [b["id"] for b in signal.batch] == ["L002", "L001"]

    def test_batch_of_one_is_single_follow(self, case_dir: Path):
        LeadStore(case_dir).add("Only lead")
        _set_state(case_dir, phase="FOLLOW")
        assert next_action(case_dir, batch=True).next == "follow L001"

    def test_batch_with_only_claimed_leads_stays_in_follow(self, case_dir: Path):
        store = LeadStore(case_dir)
        store.add("Already being worked", priority="HIGH")
        store.claim("L001")
        _set_state(case_dir, phase="FOLLOW", planning=True, questions=True,
                   reconciliation=True, curiosity=True)

        signal = next_action(case_dir, batch=True)
        assert signal.status == CONTINUE
        assert signal.phase == "FOLLOW"
        assert signal.next == "follow L001"
        assert signal.lead_info["pending"] == 1
        assert load_state(case_dir)["phase"] == "FOLLOW"

    def test_follow_reconcile_then_curiosity(self, case_dir: Path):
        _set_state(case_dir, phase="FOLLOW")
        assert next_action(case_dir).next == "reconcile"
        _set_state(case_dir, reconciliation=True)
        assert next_action(case_dir).next == "curiosity"

    def test_write_requires_prerequisites(self, case_dir: Path):
        _set_state(case_dir, phase="FOLLOW", reconciliation=True, curiosity=True)
        signal = next_action(case_dir)

        assert signal.status == ERROR
        assert signal.phase == "WRITE"
        assert signal.missing_prerequisites == ["planning", "questions"]
        assert signal.exit_code == 1

    def test_write_article(self, case_dir: Path):
        _set_state(
            case_dir, phase="WRITE",
            planning=True, questions=True, curiosity=True, reconciliation=True,
        )
        assert next_action(case_dir).next == "article"

    def test_verify_parallel_review(self, case_dir: Path):
        _set_state(case_dir, phase="WRITE", planning=True, questions=True,
                   curiosity=True, reconciliation=True, article=True, sources=True)
        signal = next_action(case_dir)
        assert signal.phase == "VERIFY"
        assert signal.next == "parallel-review"
        assert signal.parallel_review is True

    def test_verify_audits_in_order(self, case_dir: Path):
        process = {g: True for g in GATE_NAMES if g not in ("balance", "completeness", "significance")}
        _set_state(case_dir, phase="VERIFY", **process)
        assert next_action(case_dir).next == "balance-audit"
        _set_state(case_dir, balance=True)
        assert next_action(case_dir).next == "completeness-audit"

    def test_verify_lists_failing(self, case_dir: Path):
        _set_state(case_dir, phase="VERIFY", integrity=True)
        signal = next_action(case_dir)
        assert signal.next.startswith("verify (failing: planning, questions")

    def test_all_gates_complete(self, case_dir: Path):
        _set_state(case_dir, phase="VERIFY", **{g: True for g in GATE_NAMES})
        signal = next_action(case_dir)
        assert signal.status == COMPLETE
        assert signal.exit_code == 0
        assert signal.gates_passing == len(GATE_NAMES)


# ===========================================================================
# Case discovery
# ===========================================================================


class TestFindCase:
    def test_active_case_wins(self, cases_root: Path):
        init_case("First case", cases_root)
        second = init_case("Second case", cases_root).root
        set_active("first-case", cases_root)
        assert find_case(cases_root=cases_root).name == "first-case"
        assert find_case(str(second), cases_root) == second

    def test_falls_back_to_most_recent(self, cases_root: Path):
        old = init_case("Old case", cases_root).root
        new = init_case("New case", cases_root).root
        past = time.time() - 3600
        os.utime(old, (past, past))
        assert find_case(cases_root=cases_root) == new

    def test_unknown_explicit_case(self, cases_root: Path):
        init_case("Some case", cases_root)
        with pytest.raises(CaseNotFoundError):
            find_case("nope", cases_root)

    def test_no_cases(self, tmp_path: Path):
        with pytest.raises(CaseNotFoundError, match="No active case found"):
            find_case(cases_root=tmp_path / "empty")
