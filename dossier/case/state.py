"""Case state (``state.json``): phase, iteration, gates, allocations."""

from __future__ import annotations

import enum
import logging
from pathlib import Path
from typing import Any

from dossier.case.locking import read_json, write_json_atomic
from dossier.errors import CaseNotFoundError

logger = logging.getLogger(__name__)


class Phase(str, enum.Enum):
    """Orchestrator phases, in the order a case moves through them."""

    PLAN = "PLAN"
    BOOTSTRAP = "BOOTSTRAP"
    QUESTION = "QUESTION"
    FOLLOW = "FOLLOW"
    WRITE = "WRITE"
    VERIFY = "VERIFY"
    COMPLETE = "COMPLETE"


GATE_NAMES: tuple[str, ...] = (
    "planning",
    "questions",
    "curiosity",
    "reconciliation",
    "article",
    "sources",
    "integrity",
    "legal",
    "balance",
    "completeness",
    "significance",
)

# Gates that must all pass before the WRITE phase may produce an article.
WRITE_PREREQUISITES: tuple[str, ...] = (
    "planning",
    "questions",
    "curiosity",
    "reconciliation",
)

REVIEW_GATES: tuple[str, ...] = ("integrity", "legal")
AUDIT_GATES: tuple[str, ...] = ("balance", "completeness", "significance")


def new_state(case_id: str, topic: str) -> dict[str, Any]:
    """Fresh state for a case that has just been initialised."""
    return {
        "case": case_id,
        "topic": topic,
        "phase": Phase.PLAN.value,
        "iteration": 1,
        "next_source": 1,
        "planning": {
            "step": 0,
            "refined_prompt": False,
            "strategic_context": False,
            "investigation_plan": False,
        },
        "planning_todos": [],
        "gates": {name: False for name in GATE_NAMES},
        "source_allocations": {},
    }


def state_path(case_dir: str | Path) -> Path:
    return Path(case_dir) / "state.json"


def load_state(case_dir: str | Path) -> dict[str, Any]:
    """Read ``state.json``, filling gates and fields added since creation."""
    path = state_path(case_dir)
    if not path.exists():
        raise CaseNotFoundError(f"No state.json in {case_dir}")
    state = read_json(path)
    gates = state.setdefault("gates", {})
    for name in GATE_NAMES:
        gates.setdefault(name, False)
    state.setdefault("next_source", 1)
    state.setdefault("iteration", 1)
    state.setdefault("source_allocations", {})
    return state


def save_state(case_dir: str | Path, state: dict[str, Any]) -> None:
    write_json_atomic(state_path(case_dir), state)


def all_gates_pass(gates: dict[str, bool]) -> bool:
    return all(gates.get(name, False) for name in GATE_NAMES)


def failing_gates(gates: dict[str, bool]) -> list[str]:
    return [name for name in GATE_NAMES if not gates.get(name, False)]
