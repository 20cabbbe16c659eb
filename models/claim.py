"""Claim and verification models."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.evidence import Evidence, as_utc


class AgentRole(str, Enum):
    """Analysis roles that produce claims. Coverage is always measured against all three."""

    FUNDAMENTAL = "fundamental"
    SENTIMENT = "sentiment"
    TECHNICAL = "technical"


Severity = Literal["warning", "critical"]

ViolationType = Literal[
    "claim-timestamp",  # claim dated past cutoff + clock-skew tolerance
    "evidence-lookahead",  # evidence observed/published after cutoff
    "evidence-source",  # source not on the per-kind allow-list
    "evidence-malformed",  # undated evidence, relevance outside [0, 1], blank source
    "confidence-bound",  # confidence outside [0, 1]
    "excessive-confidence",
    "risk-flags",
    "claim-length",
]


class Claim(BaseModel):
    """A directional trading assertion from one agent for one ticker in one round.

    ``confidence`` is not range-checked here; out-of-range values are
    rejected by the verifier with a critical violation.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    ticker: str
    agent_role: AgentRole = Field(alias="agentRole")
    claim: str
    confidence: float
    evidence: list[Evidence] = Field(default_factory=list)
    timestamp: datetime
    risk_flags: list[str] = Field(default_factory=list, alias="riskFlags")

    @field_validator("timestamp")
    @classmethod
    def _normalise_tz(cls, value: datetime) -> datetime:
        return as_utc(value)


class RiskViolation(BaseModel):
    """One finding raised while verifying a claim.

    ``current`` and ``limit`` are numeric; timestamps are expressed as
    POSIX seconds.
    """

    type: ViolationType
    current: float
    limit: float
    severity: Severity
    claim_id: str | None = None
    ticker: str | None = None
    message: str = ""


class VerificationResult(BaseModel):
    """Partition of a claim batch produced by ``ClaimVerifier.verify``."""

    verified: list[Claim] = Field(default_factory=list)
    rejected: list[Claim] = Field(default_factory=list)
    violations: list[RiskViolation] = Field(default_factory=list)

    @property
    def critical(self) -> list[RiskViolation]:
        return [v for v in self.violations if v.severity == "critical"]

    @property
    def warnings(self) -> list[RiskViolation]:
        return [v for v in self.violations if v.severity == "warning"]
