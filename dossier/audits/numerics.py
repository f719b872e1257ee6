"""Numeric citation hygiene.

Any sentence carrying a digit must carry an ``[S###]`` citation.
Blunt, but it keeps precise-looking numbers from appearing without a
traceable source.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+(?=[A-Z(])")
_CITATION = re.compile(r"\[S\d{3,4}\](?:\([^)]+\))?")
_SOURCES_HEADER = re.compile(
    r"^#+\s*(Sources?\s+(Cited|Consulted)|Sources?|References?|Works\s+Cited|Bibliography)\b",
    re.IGNORECASE,
)
_HEADING = re.compile(r"^(#+)\s+")
_TABLE_ROW = re.compile(r"^\s*\|")
_MAX_TEXT = 240


@dataclass
class NumericAudit:
    file: str
    total_numeric_sentences: int = 0
    uncited_numeric_sentences: int = 0
    details: list[dict[str, Any]] = field(default_factory=list)

    @property
    def errors(self) -> list[dict[str, Any]]:
        return [d for d in self.details if d["severity"] == "error"]

    @property
    def passed(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["error_count"] = len(self.errors)
        data["passed"] = self.passed
        return data


def _sentences(line: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_SPLIT.split(line) if s.strip()]


def audit_numerics(path: str | Path) -> NumericAudit:
    """Flag uncited numeric sentences in a markdown file.

    Table rows are reported as warnings (tables often cite in a caption);
    prose sentences are errors.
    """
    path = Path(path)
    audit = NumericAudit(file=str(path))
    in_code = False
    sources_level: int | None = None

    for line_no, line in enumerate(path.read_text(encoding="utf-8").split("\n"), start=1):
        if line.strip().startswith("```"):
            in_code = not in_code
            continue
        if in_code:
            continue

        heading = _HEADING.match(line)
        if _SOURCES_HEADER.match(line):
            sources_level = len(heading.group(1)) if heading else 2
            continue
        if sources_level is not None:
            if heading and len(heading.group(1)) <= sources_level:
                sources_level = None
            else:
                continue

        if line.startswith("---") or line.startswith("#") or not line.strip():
            continue

        is_table = bool(_TABLE_ROW.match(line))
        for sentence in [line.strip()] if is_table else _sentences(line):
            if not re.search(r"\d", sentence):
                continue
            audit.total_numeric_sentences += 1
            if _CITATION.search(sentence):
                continue
            audit.uncited_numeric_sentences += 1
            audit.details.append({
                "line": line_no,
                "severity": "warning" if is_table else "error",
                "text": sentence[:_MAX_TEXT],
            })
    return audit
