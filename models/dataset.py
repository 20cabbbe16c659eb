"""Recorded round inputs used by replay agents and in-memory collaborators."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from models.claim import AgentRole
from models.evidence import Evidence, as_utc
from models.market import MarketStats


class RoundDataset(BaseModel):
    """Everything needed to replay one round.

    ``claims`` maps each agent role to the raw claim records that role
    produced; records are parsed by the replay agent, so malformed ones
    surface as agent errors rather than load failures.
    """

    cutoff: datetime
    universe: list[str] | None = None
    market_stats: list[MarketStats] = Field(default_factory=list)
    evidence: list[Evidence] = Field(default_factory=list)
    claims: dict[AgentRole, list[dict[str, Any]]] = Field(default_factory=dict)

    @field_validator("cutoff")
    @classmethod
    def _normalise_tz(cls, value: datetime) -> datetime:
        return as_utc(value)

    def records_for(self, role: AgentRole) -> list[dict[str, Any]]:
        return list(self.claims.get(AgentRole(role), []))
