"""Match cited article sentences against the claim registry.

Sentences carrying ``[S###]`` or ``[CL####]`` citations are extracted
from the article. A direct ``[CL####]`` reference verifies immediately;
everything else is matched semantically by an LLM against candidate
claims (preferring claims from the cited sources).
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dossier.claims.registry import ClaimRegistry, normalize_claim

logger = logging.getLogger(__name__)

CITATION_RE = re.compile(r"\[(S\d{3,4}|CL\d{4})\](?:\([^)]+\))?")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+(?=[A-Z])")
_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

MAX_CANDIDATES = 10
STATUSES = ("VERIFIED", "UNVERIFIED", "MISMATCH", "PENDING")


@dataclass
class ArticleClaim:
    text: str
    normalized: str
    line: int
    source_ids: list[str]
    claim_ids: list[str]
    raw: str


@dataclass
class MatchItem:
    article_claim: ArticleClaim
    candidates: list[dict[str, Any]] = field(default_factory=list)
    prompt: str | None = None
    status: str = "PENDING"
    confidence: float = 0.0
    reason: str = ""
    registry_claim: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "line": self.article_claim.line,
            "text": self.article_claim.text,
            "source_ids": self.article_claim.source_ids,
            "claim_ids": self.article_claim.claim_ids,
            "status": self.status,
            "confidence": self.confidence,
            "reason": self.reason,
            "registry_claim": self.registry_claim.get("id") if self.registry_claim else None,
        }


def extract_article_claims(text: str) -> list[ArticleClaim]:
    claims: list[ArticleClaim] = []
    for line_no, line in enumerate(text.split("\n"), start=1):
        if line.startswith("#") or not line.strip() or line.startswith("---"):
            continue
        if not CITATION_RE.search(line):
            continue
        for sentence in _SENTENCE_SPLIT.split(line):
            ids = [m.group(1) for m in CITATION_RE.finditer(sentence)]
            if not ids:
                continue
            claim_text = re.sub(r"\s+", " ", CITATION_RE.sub("", sentence)).strip()
            if len(claim_text) < 10:
                continue
            claims.append(ArticleClaim(
                text=claim_text,
                normalized=normalize_claim(claim_text),
                line=line_no,
                source_ids=[i for i in ids if i.startswith("S")],
                claim_ids=[i for i in ids if i.startswith("CL")],
                raw=sentence.strip(),
            ))
    return claims


def candidates_for(
    article_claim: ArticleClaim,
    claims: list[dict[str, Any]],
) -> list[dict[str, Any]]:
    if article_claim.source_ids:
        cited = [c for c in claims if c.get("source_id") in article_claim.source_ids]
        if cited:
            return cited
    return list(claims)


def match_prompt(article_claim: ArticleClaim, candidates: list[dict[str, Any]]) -> str | None:
    if not candidates:
        return None
    shown = candidates[:MAX_CANDIDATES]
    listing = "\n\n".join(
        f'{i}. [{c["id"]}] "{c.get("text", "")}"\n'
        f'   Source: {c.get("source_id", "")}\n'
        f'   Quote: "{(c.get("supporting_quote") or "")[:100]}..."'
        for i, c in enumerate(shown, start=1)
    )
    cited = (
        f"Cited sources: {', '.join(article_claim.source_ids)}"
        if article_claim.source_ids
        else ""
    )
    return (
        "Verify if any registered claim supports this article claim.\n\n"
        f'ARTICLE CLAIM: "{article_claim.text}"\n'
        f"{cited}\n\n"
        f"REGISTERED CLAIMS:\n{listing}\n\n"
        "Instructions:\n"
        "1. Check if any registered claim conveys the SAME factual information as the article claim\n"
        "2. Numbers must match exactly (62% ≠ 60%, $50M ≠ $5M)\n"
        "3. The meaning must be equivalent, not just similar words\n"
        "4. If the article claim cites a source, prefer matches from that source\n\n"
        "Respond in JSON:\n"
        "{\n"
        f'  "match": <number 1-{len(shown)}> or null,\n'
        '  "confidence": <0.0-1.0>,\n'
        '  "status": "VERIFIED" | "UNVERIFIED" | "MISMATCH",\n'
        '  "reason": "<brief explanation>"\n'
        "}\n\n"
        "- VERIFIED: A registered claim supports the article claim\n"
        "- UNVERIFIED: No registered claim supports this (claim may need a source)\n"
        "- MISMATCH: Article claim contradicts or misrepresents a registered claim"
    )


def parse_match_response(
    response: str,
    candidates: list[dict[str, Any]],
) -> dict[str, Any]:
    """Parse an LLM verdict. Unparsable output counts as UNVERIFIED."""
    body = response
    fenced = _FENCED_JSON.search(response)
    if fenced:
        body = fenced.group(1)
    try:
        parsed = json.loads(body.strip())
        if not isinstance(parsed, dict):
            raise ValueError("expected a JSON object")
    except ValueError as e:
        return {
            "match": None,
            "confidence": 0.0,
            "status": "UNVERIFIED",
            "reason": f"Failed to parse LLM response: {e}",
        }

    index = parsed.get("match")
    matched = None
    if isinstance(index, int) and 1 <= index <= min(len(candidates), MAX_CANDIDATES):
        matched = candidates[index - 1]

    status = parsed.get("status") or ("VERIFIED" if matched else "UNVERIFIED")
    if status not in STATUSES:
        status = "UNVERIFIED"
    try:
        confidence = float(parsed.get("confidence") or 0)
    except (TypeError, ValueError):
        confidence = 0.0
    return {
        "match": matched,
        "confidence": confidence,
        "status": status,
        "reason": parsed.get("reason") or "",
    }


def prepare_matching(case_dir: str | Path, article_text: str) -> list[MatchItem]:
    """Build match items; PENDING items still need an LLM verdict."""
    registry_claims = ClaimRegistry(case_dir).claims
    by_id = {c.get("id"): c for c in registry_claims}
    items: list[MatchItem] = []

    for article_claim in extract_article_claims(article_text):
        direct = next((by_id[i] for i in article_claim.claim_ids if i in by_id), None)
        if direct is not None:
            items.append(MatchItem(
                article_claim=article_claim,
                status="VERIFIED",
                confidence=1.0,
                reason="Direct claim reference",
                registry_claim=direct,
            ))
            continue

        candidates = candidates_for(article_claim, registry_claims)
        prompt = match_prompt(article_claim, candidates)
        items.append(MatchItem(
            article_claim=article_claim,
            candidates=candidates,
            prompt=prompt,
            status="PENDING" if prompt else "UNVERIFIED",
            reason="Awaiting LLM verification" if prompt else "No candidates found",
        ))
    return items


def apply_response(item: MatchItem, response: str) -> MatchItem:
    verdict = parse_match_response(response, item.candidates)
    item.registry_claim = verdict["match"]
    item.status = verdict["status"]
    item.confidence = verdict["confidence"]
    item.reason = verdict["reason"]
    return item


def match_summary(items: list[MatchItem]) -> dict[str, int]:
    summary = {"total": len(items), "verified": 0, "unverified": 0, "mismatch": 0, "pending": 0}
    for item in items:
        key = item.status.lower()
        if key in summary:
            summary[key] += 1
    return summary
