"""Per-ticker consensus over verified claims.

The base ranking is multiplicative::

    final_score = avg_confidence * coverage * liquidity

so a ticker needs confident claims, broad role coverage and a tradable
market to rank well. ``apply_risk_adjustments`` produces an alternative,
additive ranking; both are kept so the caller can choose which one feeds
decisions.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from statistics import fmean

from models.claim import AgentRole, Claim
from models.config import RiskProfile
from models.consensus import ClaimConflict, ConflictSeverity, ConsensusRec
from models.market import MarketStats

logger = logging.getLogger(__name__)

ROLE_COUNT = len(AgentRole)

VOLUME_NORMALISER = 1_000_000.0
VOLUME_WEIGHT = 0.7
SPREAD_WEIGHT = 0.3

# (confidence weight, liquidity weight)
RISK_WEIGHTS: dict[RiskProfile, tuple[float, float]] = {
    RiskProfile.AVERSE: (0.6, 0.4),
    RiskProfile.NEUTRAL: (0.7, 0.3),
    RiskProfile.BOLD: (0.8, 0.2),
}

BULLISH_KEYWORDS = ("buy", "bullish")
BEARISH_KEYWORDS = ("sell", "bearish")


def liquidity_score(stats: MarketStats) -> float:
    """Blend normalised 24h volume and spread into a score in [0, 1].

    A missing spread counts as zero spread.
    """
    volume = min(stats.volume_24h / VOLUME_NORMALISER, 1.0)
    spread = max(0.0, 1.0 - (stats.spread or 0.0) / 100.0)
    return VOLUME_WEIGHT * volume + SPREAD_WEIGHT * spread


def _ranked(records: Iterable[ConsensusRec]) -> list[ConsensusRec]:
    return sorted(records, key=lambda r: (-r.final_score, r.ticker))


def _group_by_ticker(claims: Iterable[Claim]) -> dict[str, list[Claim]]:
    groups: dict[str, list[Claim]] = {}
    for claim in claims:
        groups.setdefault(claim.ticker, []).append(claim)
    return groups


class ConsensusBuilder:
    """Aggregates verified claims into ranked ``ConsensusRec`` records.

    Stateless; every method is a pure function of its arguments.
    """

    def build_consensus(
        self,
        claims: Sequence[Claim],
        market_stats: Sequence[MarketStats],
        max_positions: int = 10,
    ) -> list[ConsensusRec]:
        """Group *claims* by ticker, score each group and return the top *max_positions*.

        Tickers without market stats are skipped. Ties in ``final_score``
        are ordered by ticker.
        """
        if max_positions < 0:
            raise ValueError(f"max_positions must be >= 0, got {max_positions}")

        stats_by_symbol = {s.symbol: s for s in market_stats}
        records: list[ConsensusRec] = []

        for ticker, group in _group_by_ticker(claims).items():
            stats = stats_by_symbol.get(ticker)
            if stats is None:
                logger.warning(
                    "No market stats for %s; skipping %d claim(s).", ticker, len(group)
                )
                continue

            avg_confidence = fmean(c.confidence for c in group)
            coverage = len({c.agent_role for c in group}) / ROLE_COUNT
            liquidity = liquidity_score(stats)
            records.append(
                ConsensusRec(
                    ticker=ticker,
                    avg_confidence=avg_confidence,
                    coverage=coverage,
                    liquidity=liquidity,
                    final_score=avg_confidence * coverage * liquidity,
                    claims=[c.id for c in group],
                )
            )
            logger.debug(
                "%s: score=%.3f confidence=%.3f coverage=%.3f liquidity=%.3f",
                ticker,
                records[-1].final_score,
                avg_confidence,
                coverage,
                liquidity,
            )

        ranked = _ranked(records)[:max_positions]
        logger.info(
            "Built consensus for %d of %d ticker(s) from %d claim(s).",
            len(ranked),
            len(records),
            len(claims),
        )
        return ranked

    def apply_risk_adjustments(
        self,
        consensus: Sequence[ConsensusRec],
        profile: RiskProfile | str,
    ) -> list[ConsensusRec]:
        """Re-score *consensus* additively by risk profile and re-rank.

        Returns new records; the input list and its records are not modified.
        """
        conf_weight, liq_weight = RISK_WEIGHTS[RiskProfile(profile)]
        adjusted = (
            rec.model_copy(
                update={"final_score": rec.avg_confidence * conf_weight + rec.liquidity * liq_weight}
            )
            for rec in consensus
        )
        return _ranked(adjusted)

    def detect_conflicts(self, claims: Sequence[Claim]) -> list[ClaimConflict]:
        """Find tickers carrying both bullish and bearish claims.

        Severity grows as the two sides' mean confidences converge.
        """
        conflicts: list[ClaimConflict] = []
        for ticker, group in _group_by_ticker(claims).items():
            if len(group) < 2:
                continue

            bullish = [c for c in group if _mentions(c, BULLISH_KEYWORDS)]
            bearish = [c for c in group if _mentions(c, BEARISH_KEYWORDS)]
            if not bullish or not bearish:
                continue

            buy_conf = fmean(c.confidence for c in bullish)
            sell_conf = fmean(c.confidence for c in bearish)
            conflicts.append(
                ClaimConflict(
                    ticker=ticker,
                    claim_ids=[c.id for c in group],
                    severity=conflict_severity(buy_conf, sell_conf),
                    buy_confidence=buy_conf,
                    sell_confidence=sell_conf,
                )
            )

        if conflicts:
            logger.info(
                "Detected %d conflict(s): %s",
                len(conflicts),
                ", ".join(f"{c.ticker}={c.severity}" for c in conflicts),
            )
        return conflicts


def conflict_severity(buy_confidence: float, sell_confidence: float) -> ConflictSeverity:
    diff = abs(buy_confidence - sell_confidence)
    if diff < 0.2:
        return "high"
    if diff < 0.4:
        return "medium"
    return "low"


def _mentions(claim: Claim, keywords: tuple[str, ...]) -> bool:
    text = claim.claim.lower()
    return any(k in text for k in keywords)
