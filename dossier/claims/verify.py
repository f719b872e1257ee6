"""Verify an article's cited sentences against the claim registry."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from dossier.case.locking import write_json_atomic
from dossier.claims.match import apply_response, match_summary, prepare_matching
from dossier.cognition.llm_base import LLMClient, LLMError
from dossier.log import log_operation

logger = logging.getLogger(__name__)

REPORT_NAME = "claims-verification.json"

_SYSTEM = (
    "You are a fact-checker comparing an article sentence with claims "
    "extracted from captured sources. Answer only with the requested JSON."
)


async def verify_article(
    case_dir: str | Path,
    llm: LLMClient,
    article_path: str | Path | None = None,
) -> dict[str, Any]:
    """Match every cited sentence and write ``claims-verification.json``.

    Parameters
    ----------
    case_dir:
        The case directory.
    llm:
        Client used for semantic matching of PENDING items.
    article_path:
        Article to check. Defaults to ``articles/full.md``.
    """
    case_dir = Path(case_dir)
    article = Path(article_path) if article_path else case_dir / "articles" / "full.md"
    text = article.read_text(encoding="utf-8")

    items = prepare_matching(case_dir, text)
    pending = [item for item in items if item.status == "PENDING"]
    with log_operation(logger, "verify_article", claims=len(items), pending=len(pending)) as summary:
        for item in pending:
            try:
                response = await llm.complete(
                    item.prompt or "",
                    system=_SYSTEM,
                    max_tokens=300,
                    temperature=0.0,
                    tier="fast",
                )
            except LLMError as e:
                logger.warning("LLM failed on line %d: %s", item.article_claim.line, e)
                item.status = "UNVERIFIED"
                item.reason = f"LLM error: {e}"
                continue
            apply_response(item, response.text)
        summary.update(match_summary(items))

    report = {
        "article": str(article.relative_to(case_dir) if article.is_relative_to(case_dir) else article),
        "verified_at": datetime.now(timezone.utc).isoformat(),
        "provider": llm.provider.value,
        "summary": match_summary(items),
        "items": [item.to_dict() for item in items],
    }
    write_json_atomic(case_dir / REPORT_NAME, report)
    return report
