"""Round configuration models, loaded from YAML.

These live in ``models/`` because they are shared data contracts used by the
round controller, the agents, and the CLI.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field

from models.claim import AgentRole


class RiskProfile(str, Enum):
    """Risk appetite driving thresholds, weights and position sizing."""

    AVERSE = "averse"
    NEUTRAL = "neutral"
    BOLD = "bold"


DEFAULT_NEWS_SOURCES: list[str] = [
    "coindesk.com",
    "cointelegraph.com",
    "bitcoin.com",
    "decrypt.co",
    "theblock.co",
    "reuters.com",
    "bloomberg.com",
    "cnbc.com",
    "wsj.com",
]
DEFAULT_MARKET_SOURCES: list[str] = ["binance"]
DEFAULT_TECH_SOURCES: list[str] = ["indicators", "technical-analysis"]


class VerifierConfig(BaseModel):
    """Thresholds and allow-lists for the claim verifier."""

    clock_skew_seconds: float = Field(
        default=60.0,
        ge=0,
        description="Tolerance before a claim timestamp past the cutoff is flagged.",
    )
    max_confidence: float = Field(
        default=0.95,
        description="Confidence above this is flagged as suspicious (warning only).",
    )
    max_risk_flags: int = Field(default=3, ge=0)
    min_claim_length: int = Field(default=10, ge=0)
    news_sources: list[str] = Field(default_factory=lambda: list(DEFAULT_NEWS_SOURCES))
    market_sources: list[str] = Field(default_factory=lambda: list(DEFAULT_MARKET_SOURCES))
    tech_sources: list[str] = Field(default_factory=lambda: list(DEFAULT_TECH_SOURCES))

    def sources_for(self, kind: str) -> list[str]:
        """Allow-list for an evidence kind; unknown kinds allow nothing."""
        return {
            "news": self.news_sources,
            "market": self.market_sources,
            "tech": self.tech_sources,
        }.get(kind, [])


class AgentSpec(BaseModel):
    """One analysis agent to register for the round."""

    role: AgentRole
    kind: Literal["replay", "llm"] = "replay"
    llm_provider: str = Field(
        default="openai",
        description="LLM provider identifier, e.g. 'openai', 'anthropic'.",
    )
    llm_model: str = Field(default="gpt-4o-mini", description="Model name.")
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    system_prompt_override: str | None = None


class RoundConfig(BaseModel):
    """Top-level configuration for a run of claim rounds, loaded from YAML.

    The run name is derived from the config file path at load time rather
    than being specified inside the YAML itself.
    """

    universe: list[str] = Field(description="Ticker symbols eligible this run.")
    risk_profile: RiskProfile = RiskProfile.NEUTRAL
    max_positions: int = Field(
        default=10,
        ge=0,
        description="Consensus records retained per round (top-N by final score).",
    )
    max_decisions: int | None = Field(
        default=None,
        ge=0,
        description="Decisions emitted per round. Defaults to the risk profile's position limit.",
    )
    cutoff_lag_seconds: float = Field(
        default=60.0,
        ge=0,
        description="Live rounds use now - lag as the cutoff.",
    )
    apply_risk_adjustments: bool = True
    decision_source: Literal["base", "risk_adjusted"] = "base"
    dataset_path: str | None = Field(
        default=None,
        description="Replay dataset (file or directory) for replay agents and in-memory collaborators.",
    )
    num_rounds: int | None = Field(
        default=None,
        ge=1,
        description="Rounds to run. Defaults to one per dataset entry.",
    )
    verifier: VerifierConfig = Field(default_factory=VerifierConfig)
    agents: list[AgentSpec] = Field(
        default_factory=lambda: [AgentSpec(role=role) for role in AgentRole],
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> RoundConfig:
        """Load and validate a ``RoundConfig`` from a YAML file.

        Raises ``FileNotFoundError`` if the file does not exist and
        ``ValueError`` if the content is not a valid YAML mapping.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open(encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)

        if not isinstance(raw, dict):
            raise ValueError(
                f"Expected a YAML mapping in {path}, got {type(raw).__name__}."
            )

        return cls(**raw)
