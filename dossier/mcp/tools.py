"""MCP tool definitions for Dossier.

Maps case operations to MCP tool format with JSON Schema input
definitions. Each tool delegates to an existing module; this is glue,
not new logic.

Tool categories:
  - case: initialise, status, orchestration, gate derivation
  - leads: add, claim, update, child leads, batch selection
  - sources: ID allocation, capture
  - verification: claims, citations, ledger
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Coroutine

from dossier.audits.citations import verify_citations
from dossier.case.active import resolve_case, set_active
from dossier.case.layout import init_case
from dossier.case.state import GATE_NAMES, load_state
from dossier.claims.registry import ClaimRegistry, find_quote
from dossier.errors import DossierError, MaxDepthExceeded
from dossier.gates import update_gates
from dossier.leads import LeadStore, defer_to_future_research
from dossier.ledger import Ledger
from dossier.orchestrator import next_action
from dossier.sources import allocation
from dossier.sources.capture import capture_document, capture_source
from dossier.sources.registry import SourceRegistry, load_sources

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definition schema (MCP-compatible)
# ---------------------------------------------------------------------------


@dataclass
class MCPToolDef:
    """MCP tool definition with JSON Schema input."""
    name: str
    description: str
    input_schema: dict[str, Any]
    category: str = "case"
    read_only: bool = True            # MCP annotation hint
    requires_confirmation: bool = False


_CASE_PROP = {
    "case": {
        "type": "string",
        "description": "Case id or directory. Defaults to the active case.",
    },
}


def _schema(properties: dict[str, Any], required: list[str] | None = None) -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {**properties, **_CASE_PROP},
        "required": required or [],
    }


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


DOSSIER_TOOLS: list[MCPToolDef] = [
    # --- Case ---
    MCPToolDef(
        name="case_init",
        description=(
            "Create a new case directory for a topic: state, leads, sources, "
            "claims, ledger and the 35 framework question files. The new case "
            "becomes the active case."
        ),
        input_schema={
            "type": "object",
            "properties": {
                "topic": {"type": "string", "description": "Investigation topic"},
                "activate": {"type": "boolean", "default": True},
            },
            "required": ["topic"],
        },
        read_only=False,
    ),
    MCPToolDef(
        name="case_status",
        description="Phase, iteration, gate status, lead counts and source counts for a case.",
        input_schema=_schema({}),
    ),
    MCPToolDef(
        name="next_action",
        description=(
            "Orchestrator signal: the single next action for the case "
            "(CONTINUE / COMPLETE / ERROR). Advances the phase when the "
            "guarding gate already passes."
        ),
        input_schema=_schema({
            "batch": {"type": "boolean", "default": False,
                      "description": "Select several leads for parallel follow-up"},
            "batch_size": {"type": "integer", "default": 4},
        }),
        read_only=False,
    ),
    MCPToolDef(
        name="derive_gates",
        description=(
            "Derive all 11 gates from case artifacts and deterministic audits. "
            "With write=true the result is stored in state.json and the ledger."
        ),
        input_schema=_schema({
            "write": {"type": "boolean", "default": False},
            "strict": {"type": "boolean", "default": False,
                       "description": "Require capture signatures on cited sources"},
        }),
        read_only=False,
    ),

    # --- Leads ---
    MCPToolDef(
        name="lead_add",
        description="Add a top-level lead (depth 0).",
        input_schema=_schema({
            "text": {"type": "string"},
            "priority": {"type": "string", "enum": ["HIGH", "MEDIUM", "LOW"], "default": "MEDIUM"},
            "source": {"type": "string", "description": "Where the lead came from"},
        }, ["text"]),
        category="leads",
        read_only=False,
    ),
    MCPToolDef(
        name="lead_claim",
        description=(
            "Claim one or more pending leads before following them. Several ids "
            "are claimed all-or-nothing."
        ),
        input_schema=_schema({
            "lead_ids": {"type": "array", "items": {"type": "string"}},
        }, ["lead_ids"]),
        category="leads",
        read_only=False,
    ),
    MCPToolDef(
        name="lead_update",
        description=(
            "Record the outcome of a lead (investigated / dead_end). Results "
            "stating numbers must list source ids."
        ),
        input_schema=_schema({
            "lead_id": {"type": "string"},
            "status": {"type": "string", "enum": ["pending", "investigated", "dead_end"]},
            "result": {"type": "string"},
            "sources": {"type": "array", "items": {"type": "string"}},
        }, ["lead_id", "status"]),
        category="leads",
        read_only=False,
    ),
    MCPToolDef(
        name="lead_add_child",
        description=(
            "Add a lead discovered while following another. Leads past the "
            "case's max depth are deferred to future_research.md."
        ),
        input_schema=_schema({
            "parent_id": {"type": "string"},
            "text": {"type": "string"},
            "priority": {"type": "string", "enum": ["HIGH", "MEDIUM", "LOW"], "default": "MEDIUM"},
        }, ["parent_id", "text"]),
        category="leads",
        read_only=False,
    ),
    MCPToolDef(
        name="lead_select_batch",
        description="Select up to N claimable pending leads, highest priority and shallowest first.",
        input_schema=_schema({"count": {"type": "integer", "default": 4}}),
        category="leads",
    ),

    # --- Sources ---
    MCPToolDef(
        name="source_allocate",
        description=(
            "Reserve a block of consecutive source ids (S###) for a parallel "
            "batch. Commit the number actually used afterwards."
        ),
        input_schema=_schema({
            "count": {"type": "integer"},
            "batch_id": {"type": "string"},
        }, ["count"]),
        category="sources",
        read_only=False,
    ),
    MCPToolDef(
        name="source_commit",
        description="Commit how many ids of an allocation were used; advances next_source.",
        input_schema=_schema({
            "batch_id": {"type": "string"},
            "used": {"type": "integer"},
        }, ["batch_id", "used"]),
        category="sources",
        read_only=False,
    ),
    MCPToolDef(
        name="source_capture",
        description=(
            "Capture a URL as evidence for a source id (web page via Firecrawl, "
            "or a document download), register it and record it in the ledger."
        ),
        input_schema=_schema({
            "source_id": {"type": "string"},
            "url": {"type": "string"},
            "document": {"type": "boolean", "default": False},
        }, ["source_id", "url"]),
        category="sources",
        read_only=False,
    ),

    # --- Verification ---
    MCPToolDef(
        name="claim_add",
        description=(
            "Register a factual claim extracted from a captured source, with a "
            "verbatim supporting quote."
        ),
        input_schema=_schema({
            "text": {"type": "string"},
            "source_id": {"type": "string"},
            "supporting_quote": {"type": "string"},
            "claim_type": {"type": "string", "default": "fact"},
        }, ["text", "source_id"]),
        category="verification",
        read_only=False,
    ),
    MCPToolDef(
        name="verify_citations",
        description="Check that every [S###] cited in findings and the summary has captured evidence.",
        input_schema=_schema({}),
        category="verification",
    ),
    MCPToolDef(
        name="ledger_append",
        description="Append an entry to the case's append-only ledger.",
        input_schema=_schema({
            "entry_type": {"type": "string"},
            "fields": {"type": "object", "description": "Entry fields"},
        }, ["entry_type"]),
        category="verification",
        read_only=False,
    ),
]


# ---------------------------------------------------------------------------
# Tool executor: delegates to existing Dossier modules
# ---------------------------------------------------------------------------


class DossierToolExecutor:
    """Executes MCP tool calls by delegating to Dossier's modules.

    Parameters
    ----------
    cases_root:
        Directory holding cases. Defaults to ``settings.CASES_ROOT``.
    """

    def __init__(self, cases_root: str | Path | None = None) -> None:
        self.cases_root = cases_root
        self._tool_map: dict[str, Callable[..., Coroutine[Any, Any, dict]]] = {
            "case_init": self._case_init,
            "case_status": self._case_status,
            "next_action": self._next_action,
            "derive_gates": self._derive_gates,
            "lead_add": self._lead_add,
            "lead_claim": self._lead_claim,
            "lead_update": self._lead_update,
            "lead_add_child": self._lead_add_child,
            "lead_select_batch": self._lead_select_batch,
            "source_allocate": self._source_allocate,
            "source_commit": self._source_commit,
            "source_capture": self._source_capture,
            "claim_add": self._claim_add,
            "verify_citations": self._verify_citations,
            "ledger_append": self._ledger_append,
        }

    async def execute(self, tool_name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Execute an MCP tool call."""
        handler = self._tool_map.get(tool_name)
        if handler is None:
            return {
                "isError": True,
                "content": [{"type": "text", "text": f"Unknown tool: {tool_name}"}],
            }
        try:
            result = await handler(**arguments)
        except (DossierError, ValueError, TypeError) as exc:
            logger.warning("Tool %s rejected: %s", tool_name, exc)
            return {
                "isError": True,
                "content": [{"type": "text", "text": f"Error: {exc}"}],
            }
        except Exception as exc:
            logger.exception("Tool execution failed: %s", tool_name)
            return {
                "isError": True,
                "content": [{"type": "text", "text": f"Error: {exc}"}],
            }
        return {
            "isError": False,
            "content": [{"type": "text", "text": _format_result(result)}],
            "_raw": result,
        }

    def list_tools(self) -> list[dict[str, Any]]:
        """Return MCP-formatted tool list."""
        return [
            {
                "name": t.name,
                "description": t.description,
                "inputSchema": t.input_schema,
                "annotations": {
                    "readOnlyHint": t.read_only,
                    "destructiveHint": False,
                    "requiresConfirmation": t.requires_confirmation,
                },
            }
            for t in DOSSIER_TOOLS
        ]

    def _case_dir(self, case: str | None) -> Path:
        return resolve_case(case, self.cases_root).case_dir

    # --- Case ---

    async def _case_init(self, topic: str, activate: bool = True) -> dict[str, Any]:
        paths = init_case(topic, self.cases_root)
        if activate:
            set_active(paths.case_id, self.cases_root)
        return {"case_id": paths.case_id, "case_dir": str(paths.root), "active": activate}

    async def _case_status(self, case: str | None = None) -> dict[str, Any]:
        case_dir = self._case_dir(case)
        state = load_state(case_dir)
        stats = LeadStore(case_dir).stats()
        sources = load_sources(case_dir)
        return {
            "case": state.get("case"),
            "topic": state.get("topic"),
            "phase": state.get("phase"),
            "iteration": state.get("iteration"),
            "next_source": state.get("next_source"),
            "gates": state["gates"],
            "gates_passing": sum(1 for g in GATE_NAMES if state["gates"].get(g)),
            "leads": asdict(stats),
            "sources": {
                "total": len(sources),
                "captured": sum(1 for s in sources if s.get("captured")),
            },
            "claims": ClaimRegistry(case_dir).stats().total,
        }

    async def _next_action(
        self,
        case: str | None = None,
        batch: bool = False,
        batch_size: int | None = None,
    ) -> dict[str, Any]:
        return next_action(self._case_dir(case), batch=batch, batch_size=batch_size).to_dict()

    async def _derive_gates(
        self,
        case: str | None = None,
        write: bool = False,
        strict: bool = False,
    ) -> dict[str, Any]:
        report, changed = update_gates(self._case_dir(case), write=write, strict=strict)
        return {**report.to_dict(), "changed": changed}

    # --- Leads ---

    async def _lead_add(
        self,
        text: str,
        priority: str = "MEDIUM",
        source: str | None = None,
        case: str | None = None,
    ) -> dict[str, Any]:
        return {"lead": LeadStore(self._case_dir(case)).add(text, priority, source)}

    async def _lead_claim(self, lead_ids: list[str], case: str | None = None) -> dict[str, Any]:
        store = LeadStore(self._case_dir(case))
        if len(lead_ids) == 1:
            result = store.claim(lead_ids[0])
            return {"claim_id": result.claim_id, "leads": [result.lead], "version": result.version}
        claim_id, leads, version = store.batch_claim(lead_ids)
        return {"claim_id": claim_id, "leads": leads, "version": version}

    async def _lead_update(
        self,
        lead_id: str,
        status: str,
        result: str | None = None,
        sources: list[str] | None = None,
        case: str | None = None,
    ) -> dict[str, Any]:
        lead = LeadStore(self._case_dir(case)).update(lead_id, status, result, sources or ())
        return {"lead": lead}

    async def _lead_add_child(
        self,
        parent_id: str,
        text: str,
        priority: str = "MEDIUM",
        case: str | None = None,
    ) -> dict[str, Any]:
        case_dir = self._case_dir(case)
        try:
            lead = LeadStore(case_dir).add_child(parent_id, text, priority)
        except MaxDepthExceeded as exc:
            defer_to_future_research(
                case_dir, text, reason=f"depth {exc.depth} exceeds max_depth {exc.max_depth}"
            )
            return {"deferred": True, "depth": exc.depth, "max_depth": exc.max_depth}
        return {"deferred": False, "lead": lead}

    async def _lead_select_batch(self, count: int = 4, case: str | None = None) -> dict[str, Any]:
        return asdict(LeadStore(self._case_dir(case)).select_batch(count))

    # --- Sources ---

    async def _source_allocate(
        self,
        count: int,
        batch_id: str | None = None,
        case: str | None = None,
    ) -> dict[str, Any]:
        alloc = allocation.allocate(self._case_dir(case), count, batch_id)
        return {**asdict(alloc), "source_ids": alloc.source_ids}

    async def _source_commit(self, batch_id: str, used: int, case: str | None = None) -> dict[str, Any]:
        return {"next_source": allocation.commit(self._case_dir(case), batch_id, used)}

    async def _source_capture(
        self,
        source_id: str,
        url: str,
        document: bool = False,
        case: str | None = None,
    ) -> dict[str, Any]:
        case_dir = self._case_dir(case)
        if document:
            doc = await capture_document(case_dir, source_id, url)
            return {"success": True, "source_id": source_id, "path": str(doc.file_path), "hash": doc.hash}

        result = await capture_source(case_dir, source_id, url)
        return {
            "success": result.success,
            "source_id": source_id,
            "evidence_dir": str(result.evidence_dir),
            "hash": result.content_hash,
            "error": result.error,
        }

    # --- Verification ---

    async def _claim_add(
        self,
        text: str,
        source_id: str,
        supporting_quote: str = "",
        claim_type: str = "fact",
        case: str | None = None,
    ) -> dict[str, Any]:
        case_dir = self._case_dir(case)
        source = SourceRegistry(case_dir).get(source_id) or {}
        location: dict[str, Any] = {}
        content = case_dir / "evidence" / "web" / source_id / "content.md"
        if supporting_quote and content.exists():
            location = find_quote(supporting_quote, content.read_text(encoding="utf-8"))
        claim = ClaimRegistry(case_dir).add(
            text,
            source_id,
            source_url=source.get("url", ""),
            claim_type=claim_type,
            supporting_quote=supporting_quote,
            quote_location=location,
            extraction_method="mcp",
        )
        if not claim.get("duplicate"):
            Ledger(case_dir).append("claim_create", claim_id=claim["id"], source_id=source_id)
        return {"claim": claim}

    async def _verify_citations(self, case: str | None = None) -> dict[str, Any]:
        return verify_citations(self._case_dir(case)).to_dict()

    async def _ledger_append(
        self,
        entry_type: str,
        fields: dict[str, Any] | None = None,
        case: str | None = None,
    ) -> dict[str, Any]:
        return {"entry": Ledger(self._case_dir(case)).append(entry_type, **(fields or {}))}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _format_result(result: dict[str, Any]) -> str:
    """Format a tool result as JSON text for the MCP response."""
    return json.dumps(result, indent=2, default=str)
