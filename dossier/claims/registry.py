"""Claim registry (``claims.json``).

Claims are atomic factual statements pulled from captured sources, each
tied to the source it came from and, ideally, a verbatim supporting
quote. Article sentences are later matched against this registry.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from dossier.case.locking import FileLock, read_json, write_json_atomic

logger = logging.getLogger(__name__)

CLAIM_ID_RE = re.compile(r"^CL(\d{4,})$")

_PERCENT_RE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:percent|%)", re.IGNORECASE)
_DOLLAR_RE = re.compile(
    r"\$\s*(\d+(?:,\d{3})*(?:\.\d+)?)\s*(million|billion|thousand)?", re.IGNORECASE
)
_PLAIN_RE = re.compile(r"(\d{1,3}(?:,\d{3})+|\d+(?:\.\d+)?)\s+(\w+)")
_MULTIPLIERS = {"thousand": 1e3, "million": 1e6, "billion": 1e9}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def normalize_claim(text: str) -> str:
    text = re.sub(r"\s+", " ", text.lower())
    text = text.replace("“", '"').replace("”", '"')
    text = text.replace("‘", "'").replace("’", "'")
    return re.sub(r"\.$", "", text.strip()).strip()


def hash_claim(text: str, source_id: str) -> str:
    """Deduplication key: same text from the same source is one claim."""
    normalized = re.sub(r"\s+", " ", text.lower()).strip()
    return hashlib.sha256(f"{normalized}:{source_id}".encode("utf-8")).hexdigest()[:16]


def _context(text: str, index: int, window: int = 30) -> str:
    return text[max(0, index - window): index + window].strip()


def extract_numbers(text: str) -> list[dict[str, Any]]:
    """Pull percentages, dollar amounts and counted quantities out of *text*."""
    numbers: list[dict[str, Any]] = []

    for m in _PERCENT_RE.finditer(text):
        numbers.append({
            "value": float(m.group(1)),
            "unit": "percent",
            "context": _context(text, m.start()),
        })

    for m in _DOLLAR_RE.finditer(text):
        value = float(m.group(1).replace(",", ""))
        multiplier = (m.group(2) or "").lower()
        value *= _MULTIPLIERS.get(multiplier, 1)
        numbers.append({
            "value": value,
            "unit": "dollars",
            "context": _context(text, m.start()),
        })

    for m in _PLAIN_RE.finditer(text):
        if m.start() > 0 and text[m.start() - 1] == "$":
            continue
        if re.match(r"percent|%", m.group(2), re.IGNORECASE):
            continue
        numbers.append({
            "value": float(m.group(1).replace(",", "")),
            "unit": m.group(2).lower(),
            "context": _context(text, m.start()),
        })

    return numbers


def find_quote(quote: str, content: str) -> dict[str, Any]:
    """Locate a supporting quote in captured source text.

    Tries the whole quote, then its first 50 characters, after
    whitespace and case normalisation.
    """
    norm_quote = re.sub(r"\s+", " ", quote.lower()).strip()
    norm_content = re.sub(r"\s+", " ", content.lower())
    for candidate, kind in ((norm_quote, "exact"), (norm_quote[:50], "partial")):
        if not candidate:
            continue
        index = norm_content.find(candidate)
        if index != -1:
            # Line of the match in the normalised text approximates the original.
            line = content.lower().count("\n", 0, _original_offset(content, index)) + 1
            return {"found": True, "location": f"line {line}", "match_type": kind}
    return {"found": False, "location": None, "match_type": "none"}


def _original_offset(content: str, normalized_index: int) -> int:
    """Map an offset in whitespace-collapsed text back to *content*."""
    seen = 0
    in_space = False
    for i, ch in enumerate(content):
        if seen >= normalized_index:
            return i
        if ch.isspace():
            if not in_space:
                seen += 1
            in_space = True
        else:
            seen += 1
            in_space = False
    return len(content)


@dataclass
class RegistryStats:
    total: int
    by_type: dict[str, int] = field(default_factory=dict)
    by_source: dict[str, int] = field(default_factory=dict)

    @property
    def sources_with_claims(self) -> int:
        return len(self.by_source)


class ClaimRegistry:
    """Locked access to a case's ``claims.json``."""

    def __init__(self, case_dir: str | Path) -> None:
        self.case_dir = Path(case_dir)
        self.path = self.case_dir / "claims.json"

    def read(self) -> dict[str, Any]:
        data = read_json(
            self.path,
            default={"version": 1, "created_at": _now_iso(), "claims": []},
        )
        data.setdefault("claims", [])
        for claim in data["claims"]:
            if "source_id" not in claim and "sourceId" in claim:
                claim["source_id"] = claim.pop("sourceId")
            if "source_url" not in claim and "sourceUrl" in claim:
                claim["source_url"] = claim.pop("sourceUrl")
        return data

    def _save(self, data: dict[str, Any]) -> None:
        data["updated_at"] = _now_iso()
        write_json_atomic(self.path, data)

    @staticmethod
    def _next_id(claims: list[dict[str, Any]]) -> str:
        highest = 0
        for claim in claims:
            m = CLAIM_ID_RE.match(claim.get("id", ""))
            if m:
                highest = max(highest, int(m.group(1)))
        return f"CL{highest + 1:04d}"

    @property
    def claims(self) -> list[dict[str, Any]]:
        return self.read()["claims"]

    def add(
        self,
        text: str,
        source_id: str,
        *,
        source_url: str = "",
        claim_type: str = "fact",
        numbers: list[dict[str, Any]] | None = None,
        entities: list[str] | None = None,
        supporting_quote: str = "",
        quote_location: dict[str, Any] | None = None,
        extraction_method: str = "auto",
    ) -> dict[str, Any]:
        """Register a claim; re-adding the same text for a source is a no-op.

        The returned dict has ``duplicate=True`` when the claim already
        existed.
        """
        if not text.strip():
            raise ValueError("Claim text must not be empty")
        key = hash_claim(text, source_id)
        with FileLock(self.path):
            data = self.read()
            existing = next((c for c in data["claims"] if c.get("hash") == key), None)
            if existing is not None:
                return {**existing, "duplicate": True}

            claim = {
                "id": self._next_id(data["claims"]),
                "hash": key,
                "text": text.strip(),
                "normalized": normalize_claim(text),
                "type": claim_type,
                "numbers": numbers if numbers is not None else extract_numbers(text),
                "entities": entities or [],
                "source_id": source_id,
                "source_url": source_url,
                "supporting_quote": supporting_quote,
                "quote_location": quote_location or {},
                "extracted_at": _now_iso(),
                "extraction_method": extraction_method,
            }
            data["claims"].append(claim)
            self._save(data)
        logger.debug("Registered claim %s from %s", claim["id"], source_id)
        return claim

    def get(self, claim_id: str) -> dict[str, Any] | None:
        return next((c for c in self.claims if c.get("id") == claim_id), None)

    def by_source(self, source_id: str) -> list[dict[str, Any]]:
        return [c for c in self.claims if c.get("source_id") == source_id]

    def by_number(self, value: float, tolerance: float = 0.01) -> list[dict[str, Any]]:
        """Claims stating a number within *tolerance* (relative) of *value*."""
        matches = []
        for claim in self.claims:
            for num in claim.get("numbers", []):
                a, b = float(num.get("value", 0)), float(value)
                scale = max(abs(a), abs(b))
                if (a == b) or (scale and abs(a - b) / scale <= tolerance):
                    matches.append(claim)
                    break
        return matches

    def search(self, query: str) -> list[dict[str, Any]]:
        """Keyword search; best matches first."""
        query_words = query.lower().split()
        if not query_words:
            return []
        scored = []
        for claim in self.claims:
            claim_words = claim.get("normalized", "").split()
            hits = sum(
                1 for qw in query_words
                if any(qw in cw or cw in qw for cw in claim_words)
            )
            score = hits / len(query_words)
            if score > 0.3:
                scored.append((score, claim))
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [claim for _, claim in scored]

    def update(self, claim_id: str, **updates: Any) -> dict[str, Any] | None:
        with FileLock(self.path):
            data = self.read()
            for i, claim in enumerate(data["claims"]):
                if claim.get("id") == claim_id:
                    data["claims"][i] = {**claim, **updates, "updated_at": _now_iso()}
                    self._save(data)
                    return data["claims"][i]
        return None

    def remove(self, claim_id: str) -> bool:
        with FileLock(self.path):
            data = self.read()
            kept = [c for c in data["claims"] if c.get("id") != claim_id]
            if len(kept) == len(data["claims"]):
                return False
            data["claims"] = kept
            self._save(data)
        return True

    def stats(self) -> RegistryStats:
        stats = RegistryStats(total=0)
        for claim in self.claims:
            stats.total += 1
            ctype = claim.get("type", "fact")
            stats.by_type[ctype] = stats.by_type.get(ctype, 0) + 1
            sid = claim.get("source_id", "")
            stats.by_source[sid] = stats.by_source.get(sid, 0) + 1
        return stats
