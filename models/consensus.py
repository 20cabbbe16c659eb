"""Consensus models: per-ticker aggregated recommendations and conflicts."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

ConflictSeverity = Literal["low", "medium", "high"]


class ConsensusRec(BaseModel):
    """Aggregated, scored recommendation for one ticker in one round."""

    model_config = ConfigDict(populate_by_name=True)

    ticker: str
    avg_confidence: float = Field(alias="avgConfidence")
    coverage: float  # distinct roles / 3
    liquidity: float
    final_score: float = Field(alias="finalScore")
    claims: list[str] = Field(default_factory=list)  # Claim IDs


class ClaimConflict(BaseModel):
    """A ticker holding both bullish and bearish claims. Informational only."""

    ticker: str
    claim_ids: list[str]
    severity: ConflictSeverity
    buy_confidence: float
    sell_confidence: float
