"""In-memory collaborators for replay runs and tests.

``InMemoryFactStore`` keeps evidence and per-round records in dictionaries,
``StaticMarketData`` serves a fixed stats table and ``PaperExecution``
accepts decisions without touching a venue. None of them retain state
across processes.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from models.claim import Claim
from models.consensus import ConsensusRec
from models.decision import TradingDecision
from models.evidence import Evidence, as_utc
from models.log import RoundState
from models.market import MarketStats

logger = logging.getLogger(__name__)


class InMemoryFactStore:
    """Dictionary-backed fact store.

    Evidence is queried by ticker and time lock; round records hold the
    claims, consensus and results stored for each round id.
    """

    def __init__(self, evidence: Iterable[Evidence] | None = None) -> None:
        self._evidence: list[Evidence] = list(evidence or [])
        self.rounds: dict[str, dict[str, Any]] = {}
        self.claims: dict[str, list[Claim]] = {}
        self.consensus: dict[str, list[ConsensusRec]] = {}
        self.results: dict[str, list[TradingDecision]] = {}

    # ------------------------------------------------------------------
    # Evidence
    # ------------------------------------------------------------------

    def put_evidence(self, evidence: Iterable[Evidence]) -> None:
        """Add *evidence*, skipping items already stored."""
        for item in evidence:
            if item not in self._evidence:
                self._evidence.append(item)

    async def find_evidence(self, ticker: str, until: datetime) -> list[Evidence]:
        """Evidence tagged with *ticker* and dated no later than *until*, oldest first."""
        until = as_utc(until)
        found = [
            e for e in self._evidence
            if e.ticker == ticker and e.effective_time is not None and e.effective_time <= until
        ]
        return sorted(found, key=lambda e: e.effective_time)

    def validate_evidence(self, evidence: Evidence, cutoff: datetime) -> bool:
        ts = evidence.effective_time
        return ts is not None and ts <= as_utc(cutoff)

    # ------------------------------------------------------------------
    # Round records
    # ------------------------------------------------------------------

    async def start_round(self, round_id: str) -> None:
        self.rounds[round_id] = {"status": RoundState.COLLECTING.value}

    async def end_round(
        self,
        round_id: str,
        status: RoundState,
        claims_count: int,
        orders_count: int,
        total_pnl: float,
    ) -> None:
        self.rounds.setdefault(round_id, {}).update(
            status=RoundState(status).value,
            claims_count=claims_count,
            orders_count=orders_count,
            total_pnl=total_pnl,
        )

    async def store_claims(self, claims: Sequence[Claim], round_id: str) -> None:
        self.claims.setdefault(round_id, []).extend(claims)

    async def store_consensus(self, consensus: Sequence[ConsensusRec], round_id: str) -> None:
        self.consensus[round_id] = list(consensus)

    async def store_results(self, decisions: Sequence[TradingDecision], round_id: str) -> None:
        self.results[round_id] = list(decisions)


class StaticMarketData:
    """Serves market stats from a fixed table keyed by symbol."""

    def __init__(self, stats: Iterable[MarketStats] | None = None) -> None:
        self._stats: dict[str, MarketStats] = {}
        self.update(stats or [])

    def update(self, stats: Iterable[MarketStats]) -> None:
        for item in stats:
            self._stats[item.symbol] = item

    async def get_market_stats(self, ticker: str) -> MarketStats | None:
        return self._stats.get(ticker)


class PaperExecution:
    """Records decisions instead of placing orders.

    Every BUY or SELL counts as one order; HOLD decisions are not orders.
    """

    def __init__(self) -> None:
        self.executed: dict[str, list[TradingDecision]] = {}

    async def execute(self, decisions: Sequence[TradingDecision], round_id: str) -> int:
        orders = [d for d in decisions if d.action != "HOLD"]
        self.executed[round_id] = orders
        for decision in orders:
            logger.info(
                "Paper order %s %s size=%.4f (round %s)",
                decision.action,
                decision.ticker,
                decision.position_size,
                round_id,
            )
        return len(orders)
