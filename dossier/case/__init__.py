"""Case directories: layout, state, active-case pointer, and locking."""

from dossier.case.layout import FRAMEWORKS, CasePaths, init_case, slugify
from dossier.case.state import GATE_NAMES, Phase, load_state, save_state

__all__ = [
    "FRAMEWORKS",
    "CasePaths",
    "init_case",
    "slugify",
    "GATE_NAMES",
    "Phase",
    "load_state",
    "save_state",
]
