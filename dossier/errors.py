"""Exception hierarchy shared by the case-file modules.

Library code raises these; the CLI and the MCP tool executor turn them
into exit codes and ``isError`` results respectively.
"""

from __future__ import annotations


class DossierError(Exception):
    """Base class for all case-file errors."""


class CaseNotFoundError(DossierError):
    """No case directory (or no active case) could be resolved."""


class CaseExistsError(DossierError):
    """A case directory with the same slug already exists."""


class CaseFileError(DossierError):
    """A case JSON file is missing or cannot be parsed."""


class LockTimeout(DossierError):
    """A lock file could not be acquired within the timeout."""


class LeadError(DossierError):
    """A lead operation was rejected."""


class MaxDepthExceeded(LeadError):
    """A child lead would exceed the case's ``max_depth``."""

    def __init__(self, depth: int, max_depth: int) -> None:
        super().__init__(
            f"Depth {depth} exceeds max_depth {max_depth}; "
            f"defer to future_research.md"
        )
        self.depth = depth
        self.max_depth = max_depth


class AllocationError(DossierError):
    """A source ID allocation could not be found or committed."""


class LedgerError(DossierError):
    """A ledger entry was rejected."""


class CaptureError(DossierError):
    """Evidence capture failed."""
