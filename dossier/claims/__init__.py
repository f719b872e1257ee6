"""Claim registry and article-to-registry matching."""

from dossier.claims.registry import ClaimRegistry, extract_numbers, hash_claim, normalize_claim

__all__ = ["ClaimRegistry", "extract_numbers", "hash_claim", "normalize_claim"]
