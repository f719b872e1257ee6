"""Sources: ID allocation, registry, URL handling, capture, integrity."""

from dossier.sources.allocation import (
    SOURCE_ID_RE,
    Allocation,
    format_source_id,
    parse_source_id,
)
from dossier.sources.registry import SourceRegistry, load_sources

__all__ = [
    "SOURCE_ID_RE",
    "Allocation",
    "format_source_id",
    "parse_source_id",
    "SourceRegistry",
    "load_sources",
]
