"""Agent interface models."""

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from models.claim import Claim
from models.config import RiskProfile
from models.evidence import Evidence
from models.market import MarketStats


class AgentContext(BaseModel):
    """Input passed to every agent at the start of claim generation.

    ``timestamp`` is the round cutoff; agents must not look past it.
    """

    round_id: str
    universe: list[str]
    evidence: list[Evidence] = Field(default_factory=list)
    market_stats: list[MarketStats] = Field(default_factory=list)
    risk_profile: RiskProfile = RiskProfile.NEUTRAL
    timestamp: datetime


class AgentRunResult(BaseModel):
    """Claims produced by one agent, plus any per-agent errors."""

    claims: list[Claim] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    raw_output: dict[str, Any] | str | None = None


# ---------------------------------------------------------------------------
# Claim parsing outcomes
# ---------------------------------------------------------------------------


class ParsedClaim(BaseModel):
    kind: Literal["claim"] = "claim"
    claim: Claim


class ClaimParseError(BaseModel):
    """A record (or whole response) that could not become a ``Claim``.

    ``index`` is the record's position in the response, or ``None`` when
    the response itself could not be read.
    """

    kind: Literal["error"] = "error"
    index: int | None = None
    message: str
    record: Any = None


ClaimParseOutcome = Annotated[Union[ParsedClaim, ClaimParseError], Field(discriminator="kind")]
