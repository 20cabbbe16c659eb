"""Round logging and audit models.

- ``RoundState``: lifecycle states of a claim round.
- ``RoundResult``: full per-round audit trail, committed once decisions are handed off.
- ``RunLog``: run-level log with embedded config for reproducibility.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from models.claim import Claim, RiskViolation
from models.config import RiskProfile, RoundConfig
from models.consensus import ClaimConflict, ConsensusRec
from models.decision import DecisionBatch


class RoundState(str, Enum):
    IDLE = "IDLE"
    COLLECTING = "COLLECTING"
    CLAIM_GENERATION = "CLAIM_GENERATION"
    VERIFICATION = "VERIFICATION"
    CONSENSUS = "CONSENSUS"
    DECISION = "DECISION"
    EXECUTION = "EXECUTION"
    SETTLED = "SETTLED"
    ABORTED = "ABORTED"


class RoundResult(BaseModel):
    """Per-round audit trail.

    ``consensus`` holds the base multiplicative ranking and
    ``risk_adjusted_consensus`` the additive re-weighting; they are kept
    side by side because they can rank tickers differently.
    """

    round_id: str
    cutoff: datetime
    risk_profile: RiskProfile
    status: RoundState = RoundState.IDLE
    abort_reason: str | None = None
    state_history: list[RoundState] = Field(default_factory=list)

    universe: list[str] = Field(default_factory=list)
    claims: list[Claim] = Field(default_factory=list)
    verified_claim_ids: list[str] = Field(default_factory=list)
    rejected_claim_ids: list[str] = Field(default_factory=list)
    late_claim_ids: list[str] = Field(default_factory=list)  # verified but dated past the cutoff
    violations: list[RiskViolation] = Field(default_factory=list)

    consensus: list[ConsensusRec] = Field(default_factory=list)
    risk_adjusted_consensus: list[ConsensusRec] | None = None
    conflicts: list[ClaimConflict] = Field(default_factory=list)
    decision_source: str = "base"
    decisions: DecisionBatch | None = None
    orders_count: int = 0

    errors: list[str] = Field(default_factory=list)
    elapsed_seconds: float = 0.0

    def summary(self) -> dict[str, Any]:
        """Lightweight per-round counts for the run summary."""
        decisions = self.decisions.decisions if self.decisions else []
        return {
            "round_id": self.round_id,
            "cutoff": self.cutoff.isoformat(),
            "status": self.status.value,
            "abort_reason": self.abort_reason,
            "claims": len(self.claims),
            "verified": len(self.verified_claim_ids),
            "rejected": len(self.rejected_claim_ids),
            "late": len(self.late_claim_ids),
            "critical_violations": sum(1 for v in self.violations if v.severity == "critical"),
            "warnings": sum(1 for v in self.violations if v.severity == "warning"),
            "consensus": len(self.consensus),
            "conflicts": len(self.conflicts),
            "buy": sum(1 for d in decisions if d.action == "BUY"),
            "sell": sum(1 for d in decisions if d.action == "SELL"),
            "hold": sum(1 for d in decisions if d.action == "HOLD"),
            "portfolio_allocation": self.decisions.portfolio_allocation if self.decisions else 0.0,
            "orders": self.orders_count,
            "errors": len(self.errors),
        }


class RunLog(BaseModel):
    """Run-level log with embedded configuration for reproducibility.

    ``run_name`` is derived from the configuration file path by the CLI.
    """

    run_name: str
    config: RoundConfig
    rounds: list[RoundResult] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
