"""Orchestrator phase machine.

``next_action`` reads ``state.json`` and ``leads.json`` and returns the
single next step for the agent driving the case:

    PLAN → BOOTSTRAP → QUESTION → FOLLOW → WRITE → VERIFY → COMPLETE

When the gate guarding a phase already passes, the case advances
automatically; every transition is persisted and recorded in the ledger
as ``phase_complete`` / ``phase_start``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dossier.case.active import resolve_case
from dossier.case.locking import FileLock, read_json
from dossier.case.state import (
    AUDIT_GATES,
    GATE_NAMES,
    REVIEW_GATES,
    WRITE_PREREQUISITES,
    Phase,
    all_gates_pass,
    failing_gates,
    load_state,
    save_state,
    state_path,
)
from dossier.config.settings import settings
from dossier.errors import CaseNotFoundError
from dossier.leads import LeadStore
from dossier.ledger import Ledger

logger = logging.getLogger(__name__)

CONTINUE = "CONTINUE"
COMPLETE = "COMPLETE"
ERROR = "ERROR"

_PRIORITY_ORDER = {"HIGH": 0, "MEDIUM": 1, "LOW": 2}


@dataclass
class Signal:
    """What the orchestrator should do next."""

    status: str
    phase: str
    next: str | None = None
    reason: str = ""
    lead_info: dict[str, Any] | None = None
    batch: list[dict[str, Any]] = field(default_factory=list)
    parallel_review: bool = False
    missing_prerequisites: list[str] = field(default_factory=list)
    gates_passing: int = 0

    @property
    def exit_code(self) -> int:
        """0 for COMPLETE, 1 for ERROR, 2 for CONTINUE."""
        return {COMPLETE: 0, ERROR: 1}.get(self.status, 2)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "phase": self.phase,
            "next": self.next,
            "reason": self.reason,
            "lead_info": self.lead_info,
            "batch": self.batch,
            "parallel_review": self.parallel_review,
            "missing_prerequisites": self.missing_prerequisites,
            "gates_passing": self.gates_passing,
            "gates_total": len(GATE_NAMES),
        }


# ---------------------------------------------------------------------------
# Case discovery
# ---------------------------------------------------------------------------


def find_case(explicit: str | None = None, cases_root: str | Path | None = None) -> Path:
    """Resolve a case, falling back to the most recently modified one."""
    try:
        return resolve_case(explicit, cases_root).case_dir
    except CaseNotFoundError:
        if explicit:
            raise
    root = Path(cases_root if cases_root is not None else settings.CASES_ROOT)
    candidates = [
        p for p in root.iterdir() if (p / "state.json").exists()
    ] if root.is_dir() else []
    if not candidates:
        raise CaseNotFoundError(
            "No active case found. Start one with: dossier init <topic>"
        )
    return max(candidates, key=lambda p: p.stat().st_mtime)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _lead_counts(leads: list[dict[str, Any]]) -> dict[str, int]:
    counts = {"pending": 0, "investigated": 0, "dead_end": 0, "total": len(leads)}
    for lead in leads:
        if lead.get("status") in counts:
            counts[lead["status"]] += 1
    return counts


def _next_pending(leads: list[dict[str, Any]]) -> dict[str, Any] | None:
    pending = [lead for lead in leads if lead.get("status") == "pending"]
    pending.sort(key=lambda lead: _PRIORITY_ORDER.get(lead.get("priority"), 3))
    return pending[0] if pending else None


def _transition(case_dir: Path, state: dict[str, Any], new_phase: Phase) -> None:
    old_phase = state.get("phase")
    with FileLock(state_path(case_dir)):
        current = load_state(case_dir)
        current["phase"] = new_phase.value
        save_state(case_dir, current)
    state["phase"] = new_phase.value

    ledger = Ledger(case_dir)
    ledger.append("phase_complete", phase=old_phase)
    ledger.append("phase_start", phase=new_phase.value)
    logger.info("Phase transition: %s → %s", old_phase, new_phase.value)


# ---------------------------------------------------------------------------
# Phase machine
# ---------------------------------------------------------------------------


def _follow(
    case_dir: Path,
    state: dict[str, Any],
    leads: list[dict[str, Any]],
    batch: bool,
    batch_size: int,
) -> Signal | None:
    gates = state["gates"]
    counts = _lead_counts(leads)
    phase = state["phase"]

    if batch:
        selection = LeadStore(case_dir).select_batch(batch_size)
        if len(selection.leads) > 1:
            ids = " ".join(lead["id"] for lead in selection.leads)
            return Signal(
                CONTINUE,
                phase,
                next=f"follow-batch {ids}",
                reason=f"Batch processing {len(selection.leads)} leads in parallel",
                lead_info=counts,
                batch=[
                    {"id": lead["id"], "priority": lead.get("priority"), "lead": lead.get("lead")}
                    for lead in selection.leads
                ],
            )
        if selection.leads:
            lead = selection.leads[0]
            return Signal(
                CONTINUE,
                phase,
                next=f"follow {lead['id']}",
                reason=f'Pending lead: "{lead.get("lead")}"',
                lead_info={**counts, "next_lead": lead},
            )

    # Claimed pending leads still block leaving FOLLOW.
    lead = _next_pending(leads)
    if lead is not None:
        return Signal(
            CONTINUE,
            phase,
            next=f"follow {lead['id']}",
            reason=f'Pending lead: "{lead.get("lead")}"'
            + (" (claimed by another agent)" if batch else ""),
            lead_info={**counts, "next_lead": lead},
        )

    if not gates["reconciliation"]:
        return Signal(
            CONTINUE,
            phase,
            next="reconcile",
            reason="All leads terminal - reconcile results with summary",
            lead_info=counts,
        )
    if not gates["curiosity"]:
        return Signal(
            CONTINUE,
            phase,
            next="curiosity",
            reason="Reconciled - evaluate completeness",
            lead_info=counts,
        )
    return None


def _verify(state: dict[str, Any]) -> Signal:
    gates = state["gates"]
    phase = state["phase"]
    failing = failing_gates(gates)

    if gates["sources"] and all(not gates[g] for g in REVIEW_GATES):
        return Signal(
            CONTINUE,
            phase,
            next="parallel-review",
            reason="Parallel integrity + legal review (sources gate passed)",
            parallel_review=True,
        )

    process_gates = [g for g in GATE_NAMES if g not in AUDIT_GATES]
    if all(gates[g] for g in process_gates):
        for gate in AUDIT_GATES:
            if not gates[gate]:
                return Signal(
                    CONTINUE,
                    phase,
                    next=f"{gate}-audit",
                    reason=f"Quality gate: {gate} audit needed",
                )

    return Signal(
        CONTINUE,
        phase,
        next=f"verify (failing: {', '.join(failing)})",
        reason="Verify phase - fix failing gates",
    )


def _decide(
    case_dir: Path,
    state: dict[str, Any],
    batch: bool,
    batch_size: int,
) -> Signal:
    gates = state["gates"]
    phase = state.get("phase")

    if all_gates_pass(gates):
        return Signal(COMPLETE, phase, reason=f"All {len(GATE_NAMES)} gates passing")

    if phase == Phase.PLAN.value:
        if not gates["planning"]:
            return Signal(
                CONTINUE, phase,
                next="plan-investigation",
                reason="Plan phase - design investigation strategy",
            )
        _transition(case_dir, state, Phase.BOOTSTRAP)
        return _decide(case_dir, state, batch, batch_size)

    if phase == Phase.BOOTSTRAP.value:
        return Signal(CONTINUE, phase, next="research", reason="Bootstrap phase - need initial research")

    if phase == Phase.QUESTION.value:
        if not gates["questions"]:
            return Signal(
                CONTINUE, phase,
                next="question",
                reason="Questions phase - answer framework questions",
            )
        _transition(case_dir, state, Phase.FOLLOW)
        return _decide(case_dir, state, batch, batch_size)

    if phase == Phase.FOLLOW.value:
        leads = read_json(case_dir / "leads.json", default={}).get("leads") or []
        signal = _follow(case_dir, state, leads, batch, batch_size)
        if signal is not None:
            return signal
        _transition(case_dir, state, Phase.WRITE)
        return _decide(case_dir, state, batch, batch_size)

    if phase == Phase.WRITE.value:
        missing = [g for g in WRITE_PREREQUISITES if not gates[g]]
        if missing:
            return Signal(
                ERROR, phase,
                next="Cannot write articles - prerequisites not met",
                reason=f"Missing gates: {', '.join(missing)}. Return to FOLLOW phase.",
                missing_prerequisites=missing,
            )
        if not gates["article"]:
            return Signal(CONTINUE, phase, next="article", reason="Write phase - generate articles")
        _transition(case_dir, state, Phase.VERIFY)
        return _decide(case_dir, state, batch, batch_size)

    if phase == Phase.VERIFY.value:
        return _verify(state)

    if phase == Phase.COMPLETE.value:
        return Signal(COMPLETE, phase, reason="Investigation complete")

    return Signal(CONTINUE, phase, next="verify", reason=f"Unknown phase: {phase}")


def next_action(
    case_dir: str | Path,
    batch: bool = False,
    batch_size: int | None = None,
) -> Signal:
    """Decide the next orchestrator action for a case.

    Parameters
    ----------
    case_dir:
        Case directory containing ``state.json``.
    batch:
        Select several pending leads for parallel processing.
    batch_size:
        Leads per batch; defaults to ``settings.BATCH_SIZE``.
    """
    case_dir = Path(case_dir)
    state = load_state(case_dir)
    signal = _decide(case_dir, state, batch, batch_size or settings.BATCH_SIZE)
    signal.gates_passing = sum(1 for name in GATE_NAMES if state["gates"].get(name))
    logger.debug("Signal for %s: %s %s", case_dir.name, signal.status, signal.next)
    return signal
