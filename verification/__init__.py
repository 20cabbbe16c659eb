"""Claim verification: temporal lock, evidence provenance and sanity checks."""

from .sources import is_allowed_source
from .verifier import ClaimVerifier

__all__ = ["ClaimVerifier", "is_allowed_source"]
