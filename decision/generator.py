"""Turn ranked consensus records into bounded BUY / SELL / HOLD decisions.

Actions come from per-profile score and confidence thresholds. Position
size scales with score strength, confidence, liquidity and the profile's
risk multiplier, and is capped at ``MAX_POSITION_SIZE`` per decision.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import NamedTuple

from models.config import RiskProfile
from models.consensus import ConsensusRec
from models.decision import Action, DecisionBatch, TradingDecision

logger = logging.getLogger(__name__)

MAX_POSITION_SIZE = 0.20
STOP_LOSS = 0.05
TAKE_PROFIT = 0.15


class Thresholds(NamedTuple):
    buy: float
    sell: float
    min_confidence: float


THRESHOLDS: dict[RiskProfile, Thresholds] = {
    RiskProfile.AVERSE: Thresholds(buy=0.4, sell=-0.4, min_confidence=0.7),
    RiskProfile.NEUTRAL: Thresholds(buy=0.3, sell=-0.3, min_confidence=0.6),
    RiskProfile.BOLD: Thresholds(buy=0.2, sell=-0.2, min_confidence=0.5),
}

RISK_MULTIPLIERS: dict[RiskProfile, float] = {
    RiskProfile.AVERSE: 0.5,
    RiskProfile.NEUTRAL: 1.0,
    RiskProfile.BOLD: 1.5,
}

MAX_POSITIONS_BY_PROFILE: dict[RiskProfile, int] = {
    RiskProfile.AVERSE: 5,
    RiskProfile.NEUTRAL: 8,
    RiskProfile.BOLD: 12,
}


def max_positions_for(profile: RiskProfile | str) -> int:
    """Default number of decisions per round for *profile*."""
    return MAX_POSITIONS_BY_PROFILE[RiskProfile(profile)]


class DecisionGenerator:
    """Maps consensus records to trading decisions for a risk profile."""

    def generate_trading_decisions(
        self,
        consensus: Sequence[ConsensusRec],
        risk_profile: RiskProfile | str = RiskProfile.NEUTRAL,
        max_positions: int = 5,
    ) -> DecisionBatch:
        """One decision per record, in ranked order, for the first *max_positions* records.

        ``portfolio_allocation`` is the sum of BUY/SELL position sizes and is
        not capped.
        """
        if max_positions < 0:
            raise ValueError(f"max_positions must be >= 0, got {max_positions}")

        profile = RiskProfile(risk_profile)
        thresholds = THRESHOLDS[profile]
        decisions: list[TradingDecision] = []
        allocation = 0.0

        for rec in consensus[:max_positions]:
            action = self._action_for(rec, thresholds)
            size = 0.0
            if action != "HOLD":
                size = self.position_size(rec, profile)
                allocation += size

            decisions.append(
                TradingDecision(
                    ticker=rec.ticker,
                    action=action,
                    confidence=rec.avg_confidence,
                    score=rec.final_score,
                    rationale=build_rationale(rec, action, profile),
                    position_size=size,
                    stop_loss=STOP_LOSS if action != "HOLD" else None,
                    take_profit=TAKE_PROFIT if action != "HOLD" else None,
                )
            )

        batch = DecisionBatch(decisions=decisions, portfolio_allocation=allocation)
        logger.info(
            "Generated %d decision(s) for %s profile: %d BUY, %d SELL, %d HOLD; allocation %.3f.",
            len(decisions),
            profile.value,
            len(batch.by_action("BUY")),
            len(batch.by_action("SELL")),
            len(batch.by_action("HOLD")),
            allocation,
        )
        return batch

    @staticmethod
    def position_size(rec: ConsensusRec, profile: RiskProfile | str) -> float:
        raw = (
            MAX_POSITION_SIZE
            * abs(rec.final_score)
            * rec.avg_confidence
            * rec.liquidity
            * RISK_MULTIPLIERS[RiskProfile(profile)]
        )
        return min(raw, MAX_POSITION_SIZE)

    @staticmethod
    def _action_for(rec: ConsensusRec, thresholds: Thresholds) -> Action:
        if rec.avg_confidence < thresholds.min_confidence:
            return "HOLD"
        if rec.final_score > thresholds.buy:
            return "BUY"
        if rec.final_score < thresholds.sell:
            return "SELL"
        return "HOLD"


def build_rationale(rec: ConsensusRec, action: Action, profile: RiskProfile | str) -> str:
    """Deterministic one-paragraph explanation of a decision."""
    profile = RiskProfile(profile).value
    score = f"{abs(rec.final_score) * 100:.1f}"
    confidence = f"{rec.avg_confidence * 100:.1f}"
    coverage = f"{rec.coverage * 100:.1f}"
    liquidity = f"{rec.liquidity * 100:.1f}"

    if action == "BUY":
        return (
            f"Strong BUY signal with {score}% score strength. {confidence}% agent confidence "
            f"with {coverage}% coverage. High liquidity ({liquidity}%) supports position entry. "
            f"Risk profile: {profile}."
        )
    if action == "SELL":
        return (
            f"Strong SELL signal with {score}% score strength. {confidence}% agent confidence "
            f"with {coverage}% coverage. Adequate liquidity ({liquidity}%) for position exit. "
            f"Risk profile: {profile}."
        )
    return (
        f"HOLD recommendation due to weak signal ({score}% strength) or low confidence "
        f"({confidence}%). {coverage}% agent coverage. Risk profile: {profile}."
    )
