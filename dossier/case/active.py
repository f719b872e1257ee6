"""Active case selection stored in ``cases/.active``."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from dossier.config.settings import settings
from dossier.errors import CaseNotFoundError

ACTIVE_FILE = ".active"


@dataclass
class ResolvedCase:
    case_dir: Path
    case_id: str
    source: str  # arg_path | arg_id | active


def _root(cases_root: str | Path | None) -> Path:
    return Path(cases_root if cases_root is not None else settings.CASES_ROOT)


def get_active(cases_root: str | Path | None = None) -> str | None:
    path = _root(cases_root) / ACTIVE_FILE
    if not path.exists():
        return None
    value = path.read_text(encoding="utf-8").strip()
    return value or None


def set_active(case_id: str, cases_root: str | Path | None = None) -> None:
    if not case_id or not case_id.strip():
        raise ValueError("case-id must be a non-empty string")
    root = _root(cases_root)
    root.mkdir(parents=True, exist_ok=True)
    (root / ACTIVE_FILE).write_text(f"{case_id.strip()}\n", encoding="utf-8")


def clear_active(cases_root: str | Path | None = None) -> None:
    (_root(cases_root) / ACTIVE_FILE).unlink(missing_ok=True)


def resolve_case(
    explicit: str | None = None,
    cases_root: str | Path | None = None,
) -> ResolvedCase:
    """Resolve a case directory.

    Order: explicit directory path, explicit case id under the cases
    root, then the active case. Raises ``CaseNotFoundError`` otherwise.
    """
    root = _root(cases_root)

    if explicit:
        candidate = Path(explicit)
        if candidate.is_dir():
            return ResolvedCase(candidate, candidate.resolve().name, "arg_path")
        by_id = root / explicit
        if by_id.is_dir():
            return ResolvedCase(by_id, explicit, "arg_id")

    active_id = get_active(root)
    if active_id:
        by_active = root / active_id
        if by_active.is_dir():
            return ResolvedCase(by_active, active_id, "active")
        raise CaseNotFoundError(
            f"{root / ACTIVE_FILE} points to missing directory: {by_active}"
        )

    if explicit:
        raise CaseNotFoundError(f"Case not found: {explicit}")
    raise CaseNotFoundError(
        "No active case set. Run: dossier active set <case-id>"
    )
