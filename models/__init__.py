"""Data models for the claim round pipeline.

Verifier, consensus, decision and round controller all import from models.
"""

from models.agents import (
    AgentContext,
    AgentRunResult,
    ClaimParseError,
    ClaimParseOutcome,
    ParsedClaim,
)
from models.claim import AgentRole, Claim, RiskViolation, VerificationResult
from models.config import AgentSpec, RiskProfile, RoundConfig, VerifierConfig
from models.consensus import ClaimConflict, ConsensusRec
from models.dataset import RoundDataset
from models.decision import DecisionBatch, TradingDecision
from models.evidence import Evidence, describe_evidence
from models.log import RoundResult, RoundState, RunLog
from models.market import MarketStats

__all__ = [
    # agents
    "AgentContext",
    "AgentRunResult",
    "ClaimParseError",
    "ClaimParseOutcome",
    "ParsedClaim",
    # claim
    "AgentRole",
    "Claim",
    "RiskViolation",
    "VerificationResult",
    # config
    "AgentSpec",
    "RiskProfile",
    "RoundConfig",
    "VerifierConfig",
    # consensus
    "ClaimConflict",
    "ConsensusRec",
    # dataset
    "RoundDataset",
    # decision
    "DecisionBatch",
    "TradingDecision",
    # evidence
    "Evidence",
    "describe_evidence",
    # log
    "RoundResult",
    "RoundState",
    "RunLog",
    # market
    "MarketStats",
]
