"""Case directory layout and initialisation.

A case lives in ``cases/<slug>/`` and starts with a state file, empty
source and lead registries, three markdown stubs, and one question file
per analytical framework.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import NamedTuple

from dossier.case.locking import write_json_atomic
from dossier.case.state import new_state
from dossier.config.settings import settings
from dossier.errors import CaseExistsError

logger = logging.getLogger(__name__)


class Framework(NamedTuple):
    num: str
    slug: str
    name: str


FRAMEWORKS: tuple[Framework, ...] = (
    Framework("01", "follow-the-money", "Follow the Money"),
    Framework("02", "follow-the-silence", "Follow the Silence"),
    Framework("03", "follow-the-timeline", "Follow the Timeline"),
    Framework("04", "follow-the-documents", "Follow the Documents"),
    Framework("05", "follow-the-contradictions", "Follow the Contradictions"),
    Framework("06", "follow-the-relationships", "Follow the Relationships"),
    Framework("07", "stakeholder-mapping", "Stakeholder Mapping"),
    Framework("08", "network-analysis", "Network Analysis"),
    Framework("09", "means-motive-opportunity", "Means / Motive / Opportunity"),
    Framework("10", "competing-hypotheses", "Competing Hypotheses"),
    Framework("11", "assumptions-check", "Assumptions Check"),
    Framework("12", "pattern-analysis", "Pattern Analysis"),
    Framework("13", "counterfactual", "Counterfactual"),
    Framework("14", "pre-mortem", "Pre-Mortem"),
    Framework("15", "cognitive-bias-check", "Cognitive Bias Check"),
    Framework("16", "uncomfortable-questions", "Uncomfortable Questions"),
    Framework("17", "second-order-effects", "Second-Order Effects"),
    Framework("18", "meta-questions", "Meta Questions"),
    Framework("19", "5-whys-root-cause", "5 Whys (Root Cause)"),
    Framework("20", "sense-making", "Sense-Making"),
    Framework("21", "first-principles-scientific-reality", "First Principles / Scientific Reality"),
    Framework("22", "domain-expert-blind-spots", "Domain Expert Blind Spots"),
    Framework("23", "marketing-vs-scientific-reality", "Marketing vs Scientific Reality"),
    Framework("24", "subject-experience-ground-truth", "Subject Experience / Ground Truth"),
    Framework("25", "contrarian-expert-search", "Contrarian Expert Search"),
    Framework("26", "quantification-base-rates", "Quantification & Base Rates"),
    Framework("27", "causation-vs-correlation", "Causation vs Correlation"),
    Framework("28", "definitional-analysis", "Definitional Analysis"),
    Framework("29", "methodology-audit", "Methodology Audit"),
    Framework("30", "incentive-mapping", "Incentive Mapping"),
    Framework("31", "information-asymmetry", "Information Asymmetry"),
    Framework("32", "comparative-benchmarking", "Comparative Benchmarking"),
    Framework("33", "regulatory-institutional-capture", "Regulatory & Institutional Capture"),
    Framework("34", "data-provenance-chain-of-custody", "Data Provenance & Chain of Custody"),
    Framework("35", "mechanism-tracing", "Mechanism Tracing"),
)


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


@dataclass(frozen=True)
class CasePaths:
    """Typed accessors for every well-known file in a case directory."""

    root: Path

    @property
    def case_id(self) -> str:
        return self.root.name

    @property
    def state(self) -> Path:
        return self.root / "state.json"

    @property
    def sources(self) -> Path:
        return self.root / "sources.json"

    @property
    def sources_md(self) -> Path:
        return self.root / "sources.md"

    @property
    def leads(self) -> Path:
        return self.root / "leads.json"

    @property
    def claims(self) -> Path:
        return self.root / "claims.json"

    @property
    def ledger(self) -> Path:
        return self.root / "ledger.json"

    @property
    def summary(self) -> Path:
        return self.root / "summary.md"

    @property
    def removed_points(self) -> Path:
        return self.root / "removed-points.md"

    @property
    def future_research(self) -> Path:
        return self.root / "future_research.md"

    @property
    def questions(self) -> Path:
        return self.root / "questions"

    @property
    def evidence(self) -> Path:
        return self.root / "evidence"

    @property
    def web_evidence(self) -> Path:
        return self.root / "evidence" / "web"

    @property
    def documents(self) -> Path:
        return self.root / "evidence" / "documents"

    @property
    def findings(self) -> Path:
        return self.root / "findings"

    @property
    def articles(self) -> Path:
        return self.root / "articles"

    @property
    def article(self) -> Path:
        return self.root / "articles" / "full.md"

    @property
    def article_pdf(self) -> Path:
        return self.root / "articles" / "full.pdf"

    def web_capture_dir(self, source_id: str) -> Path:
        return self.web_evidence / source_id


def _question_file(fw: Framework) -> str:
    return (
        f"# {fw.num}: {fw.name}\n\n"
        "**Status:** pending\n\n"
        "---\n\n"
        "## Questions\n\n"
        "*Questions will be answered during the QUESTION phase.*\n\n"
        "---\n\n"
        "## Leads Generated\n\n"
        "*Leads will be added as questions reveal areas needing further investigation.*\n"
    )


def _summary_md(topic: str) -> str:
    return (
        f"# {topic}\n\n"
        "*Investigation summary will be built here as research progresses.*\n\n"
        "---\n\n"
        "## Key Findings\n\n"
        "*Findings will be added with [S###] citations as evidence is gathered.*\n\n"
        "---\n\n"
        "## Sources Used\n\n"
        "*Source references will be listed here.*\n"
    )


_REMOVED_POINTS_MD = (
    "# Removed Points\n\n"
    "Points removed during verification due to unverifiable sources.\n\n"
    "---\n\n"
    "*No points removed yet.*\n"
)

_FUTURE_RESEARCH_MD = (
    "# Future Research\n\n"
    "Leads beyond max_depth that merit future investigation.\n\n"
    "---\n\n"
    "*No leads deferred yet.*\n"
)


def init_case(topic: str, cases_root: str | Path | None = None) -> CasePaths:
    """Create a new case directory for *topic*.

    Raises
    ------
    ValueError
        If the topic yields an empty slug.
    CaseExistsError
        If ``cases/<slug>`` already exists.
    """
    slug = slugify(topic)
    if not slug:
        raise ValueError(f"Topic {topic!r} does not produce a usable case id")

    root = Path(cases_root if cases_root is not None else settings.CASES_ROOT)
    paths = CasePaths(root / slug)
    if paths.root.exists():
        raise CaseExistsError(f"Case already exists at {paths.root}")

    for directory in (paths.root, paths.questions, paths.evidence, paths.findings, paths.articles):
        directory.mkdir(parents=True, exist_ok=True)

    created = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    write_json_atomic(paths.state, new_state(slug, topic))
    write_json_atomic(paths.sources, {"sources": []})
    write_json_atomic(
        paths.leads,
        {"version": 0, "max_depth": settings.MAX_LEAD_DEPTH, "leads": []},
    )
    write_json_atomic(paths.claims, {"version": 1, "created_at": created, "claims": []})
    write_json_atomic(paths.ledger, {"case_id": slug, "created_at": created, "entries": []})
    write_json_atomic(paths.findings / "manifest.json", {"assembly_order": [], "sections": {}})
    paths.summary.write_text(_summary_md(topic), encoding="utf-8")
    paths.removed_points.write_text(_REMOVED_POINTS_MD, encoding="utf-8")
    paths.future_research.write_text(_FUTURE_RESEARCH_MD, encoding="utf-8")

    for fw in FRAMEWORKS:
        (paths.questions / f"{fw.num}-{fw.slug}.md").write_text(
            _question_file(fw), encoding="utf-8"
        )

    logger.info("Created case %s (%d question files)", slug, len(FRAMEWORKS))
    return paths
