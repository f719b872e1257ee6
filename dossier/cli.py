"""Dossier CLI: command-line interface for investigation case files.

Usage:
    dossier init "Topic of the investigation"
    dossier next [case] [--batch]
    dossier gates [case] --write
    dossier leads add "Lead text" --priority HIGH
    dossier sources allocate 5
    dossier capture S001 https://example.com/page
    dossier serve --transport stdio

Exit codes: 0 success (``next``: COMPLETE), 1 failure (``next``: ERROR),
2 ``next`` CONTINUE or usage error, 130 interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable

from dossier.errors import DossierError

logger = logging.getLogger("dossier.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dossier",
        description="Dossier: case-file engine for evidence-backed investigations",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--json", action="store_true", help="Machine-readable output")
    parser.add_argument("--cases-root", default=None, help="Override CASES_ROOT")

    subparsers = parser.add_subparsers(dest="command")

    # init
    init_p = subparsers.add_parser("init", help="Create a new case")
    init_p.add_argument("topic", help="Investigation topic")
    init_p.add_argument("--no-activate", action="store_true", help="Do not set as active case")

    # active
    active_p = subparsers.add_parser("active", help="Manage the active case")
    active_sub = active_p.add_subparsers(dest="action", required=True)
    active_sub.add_parser("get")
    set_p = active_sub.add_parser("set")
    set_p.add_argument("case_id")
    active_sub.add_parser("clear")
    resolve_p = active_sub.add_parser("resolve")
    resolve_p.add_argument("case", nargs="?")

    # next
    next_p = subparsers.add_parser("next", help="Decide the next orchestrator action")
    next_p.add_argument("case", nargs="?")
    next_p.add_argument("--batch", action="store_true", help="Select leads for parallel work")
    next_p.add_argument("--batch-size", type=int, default=None)

    # gates
    gates_p = subparsers.add_parser("gates", help="Derive quality gates from case files")
    gates_p.add_argument("case", nargs="?")
    gates_p.add_argument("--write", action="store_true", help="Persist to state.json")
    gates_p.add_argument("--strict", action="store_true", help="Require capture signatures")

    # leads
    leads_p = subparsers.add_parser("leads", help="Lead management")
    leads_p.add_argument("--case", default=None)
    leads_sub = leads_p.add_subparsers(dest="action", required=True)
    la = leads_sub.add_parser("add")
    la.add_argument("text")
    la.add_argument("--priority", default="MEDIUM")
    la.add_argument("--from", dest="origin", default=None)
    lc = leads_sub.add_parser("claim")
    lc.add_argument("lead_ids", nargs="+")
    lr = leads_sub.add_parser("release")
    lr.add_argument("lead_id")
    lu = leads_sub.add_parser("update")
    lu.add_argument("lead_id")
    lu.add_argument("status", choices=["pending", "investigated", "dead_end"])
    lu.add_argument("--result", default=None)
    lu.add_argument("--sources", default="", help="Comma-separated source IDs")
    lch = leads_sub.add_parser("add-child")
    lch.add_argument("parent_id")
    lch.add_argument("text")
    lch.add_argument("--priority", default="MEDIUM")
    ls = leads_sub.add_parser("select")
    ls.add_argument("--count", type=int, default=None)
    leads_sub.add_parser("cleanup")
    leads_sub.add_parser("stats")
    ll = leads_sub.add_parser("list")
    ll.add_argument("--status", default=None)

    # sources
    sources_p = subparsers.add_parser("sources", help="Source IDs and registry")
    sources_p.add_argument("--case", default=None)
    sources_sub = sources_p.add_subparsers(dest="action", required=True)
    sa = sources_sub.add_parser("allocate")
    sa.add_argument("count", type=int)
    sa.add_argument("--batch-id", default=None)
    sc = sources_sub.add_parser("commit")
    sc.add_argument("batch_id")
    sc.add_argument("used", type=int)
    srel = sources_sub.add_parser("release")
    srel.add_argument("batch_id")
    sources_sub.add_parser("status")
    sadd = sources_sub.add_parser("add")
    sadd.add_argument("url")
    sadd.add_argument("--title", default="")
    sadd.add_argument("--type", dest="source_type", default="")
    sources_sub.add_parser("render")

    # capture
    capture_p = subparsers.add_parser("capture", help="Capture evidence for a source")
    capture_p.add_argument("source_id")
    capture_p.add_argument("url")
    capture_p.add_argument("case", nargs="?")
    capture_p.add_argument("--document", action="store_true", help="Download a file instead")
    capture_p.add_argument("--filename", default=None)

    # ledger
    ledger_p = subparsers.add_parser("ledger", help="Append a ledger entry")
    ledger_p.add_argument("case")
    ledger_p.add_argument("type")
    ledger_p.add_argument(
        "--field", action="append", default=[], metavar="KEY=VALUE",
        help="Entry field (repeatable); values are parsed as JSON when possible",
    )

    # claims
    claims_p = subparsers.add_parser("claims", help="Claim registry")
    claims_p.add_argument("--case", default=None)
    claims_sub = claims_p.add_subparsers(dest="action", required=True)
    claims_sub.add_parser("stats")
    cs = claims_sub.add_parser("search")
    cs.add_argument("query")
    cadd = claims_sub.add_parser("add")
    cadd.add_argument("text")
    cadd.add_argument("source_id")
    cadd.add_argument("--quote", default="")
    cadd.add_argument("--type", dest="claim_type", default="fact")
    cv = claims_sub.add_parser("verify")
    cv.add_argument("--article", default=None)
    cv.add_argument("--provider", choices=["ollama", "anthropic", "stub"], default=None)

    # findings
    findings_p = subparsers.add_parser("findings", help="Findings sections")
    findings_p.add_argument("--case", default=None)
    findings_sub = findings_p.add_subparsers(dest="action", required=True)
    findings_sub.add_parser("list")
    fa = findings_sub.add_parser("add")
    fa.add_argument("title")
    fa.add_argument("--body", default=None)
    fa.add_argument("--body-file", default=None)
    fas = findings_sub.add_parser("assemble")
    fas.add_argument("--output", default=None)

    # audit
    audit_p = subparsers.add_parser("audit", help="Deterministic audits")
    audit_sub = audit_p.add_subparsers(dest="action", required=True)
    ac = audit_sub.add_parser("citations")
    ac.add_argument("case", nargs="?")
    ac.add_argument("--density", action="store_true", help="Check summary.md density only")
    an = audit_sub.add_parser("numerics")
    an.add_argument("path")
    al = audit_sub.add_parser("leads")
    al.add_argument("case", nargs="?")
    ad = audit_sub.add_parser("dedup")
    ad.add_argument("case", nargs="?")

    # pdf
    pdf_p = subparsers.add_parser("pdf", help="Render articles to PDF")
    pdf_p.add_argument("case", nargs="?")

    # serve
    serve_p = subparsers.add_parser("serve", help="Start MCP server")
    serve_p.add_argument("--transport", choices=["stdio", "http"], default="stdio")
    serve_p.add_argument("--host", default="127.0.0.1")
    serve_p.add_argument("--port", type=int, default=9400)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Entry point for the ``dossier`` console script."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    from dossier.log import configure_logging

    configure_logging("DEBUG" if args.verbose else None)

    if not args.command:
        parser.print_help()
        sys.exit(2)

    handler = _COMMANDS[args.command]
    try:
        code = handler(args)
    except KeyboardInterrupt:
        print("\nInterrupted.")
        sys.exit(130)
    except (DossierError, ValueError) as exc:
        logger.error("Error: %s", exc)
        if args.verbose:
            raise
        if args.json:
            _emit(args, {"ok": False, "error": str(exc)})
        sys.exit(1)
    sys.exit(code or 0)


# ---------------------------------------------------------------------------
# Output helpers
# ---------------------------------------------------------------------------


def _emit(args: argparse.Namespace, payload: Any, text: str | None = None) -> None:
    """Print *payload* as JSON with ``--json``, else *text* (or the JSON)."""
    if args.json or text is None:
        print(json.dumps(payload, indent=2, default=str))
    else:
        print(text)


def _mark(ok: bool) -> str:
    return "✓" if ok else "✗"


def _case_dir(args: argparse.Namespace, explicit: str | None = None) -> Path:
    from dossier.case.active import resolve_case

    return resolve_case(explicit, args.cases_root).case_dir


def _parse_field(raw: str) -> tuple[str, Any]:
    if "=" not in raw:
        raise ValueError(f"--field expects KEY=VALUE, got {raw!r}")
    key, value = raw.split("=", 1)
    try:
        return key, json.loads(value)
    except json.JSONDecodeError:
        return key, value


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_init(args: argparse.Namespace) -> int:
    from dossier.case.active import set_active
    from dossier.case.layout import init_case

    paths = init_case(args.topic, args.cases_root)
    if not args.no_activate:
        set_active(paths.case_id, args.cases_root)
    _emit(
        args,
        {"ok": True, "case_id": paths.case_id, "case_dir": str(paths.root),
         "active": not args.no_activate},
        f"Created case {paths.case_id} at {paths.root}"
        + ("" if args.no_activate else " (active)"),
    )
    return 0


def _cmd_active(args: argparse.Namespace) -> int:
    from dossier.case.active import clear_active, get_active, resolve_case, set_active

    if args.action == "get":
        case_id = get_active(args.cases_root)
        _emit(args, {"active": case_id}, case_id or "(no active case)")
        return 0 if case_id else 1
    if args.action == "set":
        set_active(args.case_id, args.cases_root)
        _emit(args, {"ok": True, "active": args.case_id}, f"Active case: {args.case_id}")
        return 0
    if args.action == "clear":
        clear_active(args.cases_root)
        _emit(args, {"ok": True, "active": None}, "Active case cleared")
        return 0

    resolved = resolve_case(args.case, args.cases_root)
    _emit(
        args,
        {"case_id": resolved.case_id, "case_dir": str(resolved.case_dir), "source": resolved.source},
        str(resolved.case_dir),
    )
    return 0


def _cmd_next(args: argparse.Namespace) -> int:
    from dossier.orchestrator import find_case, next_action

    case_dir = find_case(args.case, args.cases_root)
    signal = next_action(case_dir, batch=args.batch, batch_size=args.batch_size)

    if args.json:
        _emit(args, {"case": case_dir.name, **signal.to_dict()})
        return signal.exit_code

    print(f"Case:   {case_dir.name}")
    print(f"Phase:  {signal.phase}")
    print(f"Status: {signal.status}")
    if signal.next:
        print(f"Next:   {signal.next}")
    if signal.reason:
        print(f"Reason: {signal.reason}")
    for lead in signal.batch:
        print(f"  [{lead['priority']}] {lead['id']}: {lead['lead']}")
    if signal.missing_prerequisites:
        print(f"Missing: {', '.join(signal.missing_prerequisites)}")
    print(f"Gates:  {signal.gates_passing}/{signal.to_dict()['gates_total']}")
    return signal.exit_code


def _cmd_gates(args: argparse.Namespace) -> int:
    from dossier.gates import update_gates
    from dossier.orchestrator import find_case

    case_dir = find_case(args.case, args.cases_root)
    report, changed = update_gates(case_dir, write=args.write, strict=args.strict)

    if args.json:
        _emit(args, {"case": case_dir.name, "changed": changed, **report.to_dict()})
    else:
        passing = sum(report.gates.values())
        print(f"Gates for {case_dir.name}: {passing}/{len(report.gates)} passing"
              + (" (strict)" if report.strict else ""))
        for name, ok in report.gates.items():
            detail = report.details.get(name, {})
            note = detail.get("error") or ""
            print(f"  {name:15s} {_mark(ok)} {note}".rstrip())
        if args.write:
            print("state.json updated" if changed else "state.json unchanged")
    return 0 if report.all_passed else 1


def _cmd_leads(args: argparse.Namespace) -> int:
    from dossier.errors import MaxDepthExceeded
    from dossier.leads import LeadStore, defer_to_future_research

    case_dir = _case_dir(args, args.case)
    store = LeadStore(case_dir)

    if args.action == "add":
        lead = store.add(args.text, priority=args.priority, source=args.origin)
        _emit(args, {"ok": True, "lead": lead}, f"Added {lead['id']} [{lead['priority']}]")
    elif args.action == "claim":
        if len(args.lead_ids) == 1:
            result = store.claim(args.lead_ids[0])
            payload = {"ok": True, "claim_id": result.claim_id, "lead": result.lead,
                       "version": result.version}
        else:
            claim_id, leads, version = store.batch_claim(args.lead_ids)
            payload = {"ok": True, "claim_id": claim_id, "leads": leads, "version": version}
        _emit(args, payload, f"Claimed {', '.join(args.lead_ids)} as {payload['claim_id']}")
    elif args.action == "release":
        version = store.release(args.lead_id)
        _emit(args, {"ok": True, "version": version}, f"Released {args.lead_id}")
    elif args.action == "update":
        sources = [s.strip() for s in args.sources.split(",") if s.strip()]
        lead = store.update(args.lead_id, args.status, args.result, sources)
        _emit(args, {"ok": True, "lead": lead}, f"{args.lead_id} -> {args.status}")
    elif args.action == "add-child":
        try:
            lead = store.add_child(args.parent_id, args.text, priority=args.priority)
        except MaxDepthExceeded as exc:
            defer_to_future_research(case_dir, args.text)
            _emit(args, {"ok": True, "deferred": True, "reason": str(exc)},
                  f"Deferred to future_research.md: {exc}")
            return 0
        _emit(args, {"ok": True, "lead": lead},
              f"Added {lead['id']} under {args.parent_id} (depth {lead['depth']})")
    elif args.action == "select":
        from dossier.config.settings import settings

        selection = store.select_batch(args.count or settings.BATCH_SIZE)
        _emit(
            args,
            {"leads": selection.leads, "available": selection.available_count,
             "total_pending": selection.total_pending},
            "\n".join(f"{l['id']} [{l['priority']}] {l['lead']}" for l in selection.leads)
            or "(no claimable leads)",
        )
    elif args.action == "cleanup":
        cleaned = store.cleanup_stale()
        _emit(args, {"ok": True, "released": cleaned}, f"Released {cleaned} stale claims")
    elif args.action == "stats":
        stats = store.stats()
        _emit(
            args,
            vars(stats),
            f"Leads: {stats.total} total, {stats.pending} pending, "
            f"{stats.investigated} investigated, {stats.dead_end} dead ends "
            f"({stats.claimed} claimed, {stats.stale_claims} stale)",
        )
    else:
        leads = store.list(status=args.status)
        _emit(
            args,
            {"leads": leads},
            "\n".join(
                f"{l['id']} [{l.get('priority')}] {l.get('status'):12s} {l.get('lead')}"
                for l in leads
            ) or "(no leads)",
        )
    return 0


def _cmd_sources(args: argparse.Namespace) -> int:
    from dossier.sources import allocation
    from dossier.sources.registry import SourceRegistry, render_sources_md

    case_dir = _case_dir(args, args.case)

    if args.action == "allocate":
        alloc = allocation.allocate(case_dir, args.count, batch_id=args.batch_id)
        ids = alloc.source_ids
        _emit(
            args,
            {"ok": True, "batch_id": alloc.batch_id, "start": alloc.start,
             "end": alloc.end, "source_ids": ids},
            f"{alloc.batch_id}: {ids[0]}..{ids[-1]}",
        )
    elif args.action == "commit":
        next_source = allocation.commit(case_dir, args.batch_id, args.used)
        _emit(args, {"ok": True, "next_source": next_source},
              f"Committed {args.used}; next source {allocation.format_source_id(next_source)}")
    elif args.action == "release":
        allocation.release(case_dir, args.batch_id)
        _emit(args, {"ok": True}, f"Released {args.batch_id}")
    elif args.action == "status":
        info = allocation.status(case_dir)
        _emit(
            args,
            info,
            f"Next source: {allocation.format_source_id(info['next_source'])}\n"
            f"Active allocations: {len(info['active_allocations'])}\n"
            f"Stale allocations: {len(info['stale_allocations'])}",
        )
    elif args.action == "add":
        record = SourceRegistry(case_dir).add(
            args.url, title=args.title, source_type=args.source_type
        )
        _emit(args, {"ok": True, "source": record}, f"Registered {record['id']}: {args.url}")
    else:
        path = render_sources_md(case_dir)
        _emit(args, {"ok": True, "path": str(path)}, f"Wrote {path}")
    return 0


def _cmd_capture(args: argparse.Namespace) -> int:
    return asyncio.run(_capture(args))


async def _capture(args: argparse.Namespace) -> int:
    from dossier.sources.capture import capture_document, capture_source

    case_dir = _case_dir(args, args.case)

    if args.document:
        doc = await capture_document(case_dir, args.source_id, args.url, filename=args.filename)
        _emit(
            args,
            {"ok": True, "source_id": args.source_id, "path": str(doc.file_path),
             "size": doc.size, "hash": doc.hash},
            f"Downloaded {args.source_id} -> {doc.file_path} ({doc.size} bytes)",
        )
        return 0

    result = await capture_source(case_dir, args.source_id, args.url)
    _emit(
        args,
        {"ok": result.success, "source_id": result.source_id, "evidence_dir": str(result.evidence_dir),
         "files": result.files, "hash": result.content_hash, "error": result.error,
         "attempts": result.attempts},
        f"Captured {result.source_id} -> {result.evidence_dir}"
        if result.success
        else f"Capture failed for {result.source_id}: {result.error}",
    )
    return 0 if result.success else 1


def _cmd_ledger(args: argparse.Namespace) -> int:
    from dossier.ledger import Ledger

    case_dir = _case_dir(args, args.case)
    fields = dict(_parse_field(raw) for raw in args.field)
    entry = Ledger(case_dir).append(args.type, **fields)
    _emit(args, {"ok": True, "entry": entry}, f"{entry['id']} {entry['type']}")
    return 0


def _cmd_claims(args: argparse.Namespace) -> int:
    from dossier.claims.registry import ClaimRegistry

    case_dir = _case_dir(args, args.case)
    registry = ClaimRegistry(case_dir)

    if args.action == "stats":
        stats = registry.stats()
        _emit(
            args,
            {"total": stats.total, "by_type": stats.by_type, "by_source": stats.by_source,
             "sources_with_claims": stats.sources_with_claims},
            f"Claims: {stats.total} from {stats.sources_with_claims} sources",
        )
    elif args.action == "search":
        matches = registry.search(args.query)
        _emit(
            args,
            {"query": args.query, "claims": matches},
            "\n".join(f"{c['id']} [{c['source_id']}] {c['text']}" for c in matches)
            or "(no matching claims)",
        )
    elif args.action == "add":
        from dossier.claims.registry import find_quote
        from dossier.ledger import Ledger
        from dossier.sources.registry import SourceRegistry

        source = SourceRegistry(case_dir).get(args.source_id) or {}
        location: dict[str, Any] = {}
        content = case_dir / "evidence" / "web" / args.source_id / "content.md"
        if args.quote and content.exists():
            location = find_quote(args.quote, content.read_text(encoding="utf-8"))
        claim = registry.add(
            args.text,
            args.source_id,
            source_url=source.get("url", ""),
            claim_type=args.claim_type,
            supporting_quote=args.quote,
            quote_location=location,
            extraction_method="cli",
        )
        if not claim.get("duplicate"):
            Ledger(case_dir).append("claim_create", claim_id=claim["id"], source_id=args.source_id)
        _emit(args, {"ok": True, "claim": claim},
              f"{claim['id']}{' (duplicate)' if claim.get('duplicate') else ''}")
    else:
        return asyncio.run(_verify_claims(args, case_dir))
    return 0


async def _verify_claims(args: argparse.Namespace, case_dir: Path) -> int:
    from dossier.claims.verify import REPORT_NAME, verify_article
    from dossier.cognition.llm_factory import create_llm_client

    llm = create_llm_client(args.provider)
    report = await verify_article(case_dir, llm, article_path=args.article)
    summary = report["summary"]
    _emit(
        args,
        report,
        f"Wrote {REPORT_NAME} ({report['provider']}): "
        + ", ".join(f"{k}={v}" for k, v in summary.items()),
    )
    clean = all(int(summary.get(k, 0)) == 0 for k in ("unverified", "mismatch", "pending"))
    return 0 if clean else 1


def _cmd_findings(args: argparse.Namespace) -> int:
    from dossier.findings import FindingStore

    store = FindingStore(_case_dir(args, args.case))

    if args.action == "list":
        findings = store.list()
        _emit(
            args,
            {"findings": [f.to_dict() for f in findings]},
            "\n".join(
                f"{f.id} [{f.status}] {f.title}" for f in findings
            ) or "(no findings)",
        )
    elif args.action == "add":
        if args.body_file:
            body = Path(args.body_file).read_text(encoding="utf-8")
        else:
            body = args.body or "*Content to be added.*"
        finding = store.add(args.title, body)
        _emit(args, {"ok": True, "finding": finding.to_dict()}, f"Added {finding.id}")
    else:
        text = store.assemble()
        if args.output:
            Path(args.output).parent.mkdir(parents=True, exist_ok=True)
            Path(args.output).write_text(text, encoding="utf-8")
            _emit(args, {"ok": True, "path": args.output}, f"Wrote {args.output}")
        else:
            _emit(args, {"markdown": text}, text)
    return 0


def _cmd_audit(args: argparse.Namespace) -> int:
    if args.action == "numerics":
        from dossier.audits import audit_numerics

        audit = audit_numerics(args.path)
        _emit(
            args,
            audit.to_dict(),
            f"{audit.file}: {audit.uncited_numeric_sentences}/{audit.total_numeric_sentences} "
            f"numeric sentences uncited ({len(audit.errors)} errors)",
        )
        return 0 if audit.passed else 1

    case_dir = _case_dir(args, args.case)

    if args.action == "citations":
        from dossier.audits import citation_density, verify_citations

        if args.density:
            density = citation_density(case_dir)
            _emit(
                args,
                density.to_dict(),
                f"{_mark(density.passed)} {density.total_citations} citations, "
                f"{len(density.unique_sources)} unique sources {density.message}".rstrip(),
            )
            return 0 if density.passed else 1
        report = verify_citations(case_dir)
        _emit(
            args,
            report.to_dict(),
            f"{_mark(report.passed)} {report.valid_citations}/{report.total_citations} citations "
            f"valid; missing: {', '.join(m['source_id'] for m in report.missing_evidence) or 'none'}; "
            f"stubs: {', '.join(s['source_id'] for s in report.stub_evidence) or 'none'}",
        )
        return 0 if report.passed else 1

    if args.action == "leads":
        from dossier.audits import audit_leads

        lead_audit = audit_leads(case_dir)
        _emit(
            args,
            lead_audit.to_dict(),
            f"{_mark(lead_audit.ok)} " + ", ".join(f"{k}={v}" for k, v in lead_audit.summary.items()),
        )
        return 0 if lead_audit.ok else 1

    from dossier.sources.integrity import find_duplicate_urls

    groups = find_duplicate_urls(case_dir)
    failing = [g for g in groups if not g.allowed]
    _emit(
        args,
        {"ok": not failing,
         "groups": [{"url": g.canonical_url, "ids": g.source_ids, "unresolved": g.unresolved}
                    for g in groups]},
        "\n".join(
            f"{_mark(g.allowed)} {g.canonical_url}: {', '.join(g.source_ids)}" for g in groups
        ) or "No duplicate URLs",
    )
    return 0 if not failing else 1


def _cmd_pdf(args: argparse.Namespace) -> int:
    from dossier.export import generate_case_pdfs

    case_dir = _case_dir(args, args.case)
    results = generate_case_pdfs(case_dir)
    if not results:
        _emit(args, {"ok": False, "results": []}, "No articles found in articles/")
        return 1
    _emit(
        args,
        {"ok": all(r["success"] for r in results), "results": results},
        "\n".join(
            f"{_mark(r['success'])} {r['file']}" + (f" ({r['error']})" if not r["success"] else "")
            for r in results
        ),
    )
    return 0 if all(r["success"] for r in results) else 1


def _cmd_serve(args: argparse.Namespace) -> int:
    """Start MCP server."""
    from dossier.mcp.server import DossierMCPServer

    server = DossierMCPServer(cases_root=args.cases_root)
    if args.transport == "stdio":
        logger.info("Starting Dossier MCP server (transport: stdio)")
        asyncio.run(server.run_stdio())
    else:
        logger.info("Starting Dossier MCP server on http://%s:%d/mcp", args.host, args.port)
        asyncio.run(server.run_http(host=args.host, port=args.port))
    return 0


_COMMANDS: dict[str, Callable[[argparse.Namespace], int]] = {
    "init": _cmd_init,
    "active": _cmd_active,
    "next": _cmd_next,
    "gates": _cmd_gates,
    "leads": _cmd_leads,
    "sources": _cmd_sources,
    "capture": _cmd_capture,
    "ledger": _cmd_ledger,
    "claims": _cmd_claims,
    "findings": _cmd_findings,
    "audit": _cmd_audit,
    "pdf": _cmd_pdf,
    "serve": _cmd_serve,
}


if __name__ == "__main__":
    main()
