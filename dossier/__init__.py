"""Dossier: case-file engine for evidence-backed investigations.

Keeps every investigation in a ``cases/<case-id>/`` directory and enforces
in code what the research agents are asked to respect: append-only
source IDs, locked lead claims, signed evidence captures, a claim
registry, and quality gates derived from the artifacts on disk.
"""

__version__ = "0.4.0"
