"""Deterministic audits over case artifacts.

Each audit returns a report object with ``passed``/``ok`` and
``to_dict()`` so the CLI and MCP layers can emit JSON directly.
"""

from dossier.audits.citations import (
    CitationReport,
    DensityReport,
    citation_density,
    extract_citations,
    verify_citations,
)
from dossier.audits.leads import LeadAudit, audit_leads
from dossier.audits.numerics import NumericAudit, audit_numerics

__all__ = [
    "CitationReport",
    "DensityReport",
    "LeadAudit",
    "NumericAudit",
    "audit_leads",
    "audit_numerics",
    "citation_density",
    "extract_citations",
    "verify_citations",
]
