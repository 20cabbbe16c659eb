"""Consensus building: per-ticker aggregation, risk re-weighting and conflict detection."""

from .builder import ConsensusBuilder, conflict_severity, liquidity_score

__all__ = ["ConsensusBuilder", "conflict_severity", "liquidity_score"]
