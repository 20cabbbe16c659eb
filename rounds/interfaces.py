"""Collaborator interfaces the round controller depends on.

Concrete adapters (exchange clients, databases, brokers) live outside this
package; ``rounds.adapters`` ships in-memory versions for replay runs and
tests. Any adapter may raise ``ExternalUnavailableError`` when its backend
cannot be reached.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol, runtime_checkable

from models.claim import Claim
from models.consensus import ConsensusRec
from models.decision import TradingDecision
from models.evidence import Evidence
from models.log import RoundState
from models.market import MarketStats


@runtime_checkable
class EvidenceValidator(Protocol):
    """Anything that can confirm evidence predates a cutoff."""

    def validate_evidence(self, evidence: Evidence, cutoff: datetime) -> bool: ...


@runtime_checkable
class FactStore(EvidenceValidator, Protocol):
    """Durable record of rounds, claims, consensus and results."""

    async def start_round(self, round_id: str) -> None: ...

    async def end_round(
        self,
        round_id: str,
        status: RoundState,
        claims_count: int,
        orders_count: int,
        total_pnl: float,
    ) -> None: ...

    async def store_claims(self, claims: Sequence[Claim], round_id: str) -> None: ...

    async def store_consensus(self, consensus: Sequence[ConsensusRec], round_id: str) -> None: ...

    async def store_results(self, decisions: Sequence[TradingDecision], round_id: str) -> None: ...

    async def find_evidence(self, ticker: str, until: datetime) -> list[Evidence]: ...


@runtime_checkable
class MarketDataAdapter(Protocol):
    async def get_market_stats(self, ticker: str) -> MarketStats | None: ...


@runtime_checkable
class ExecutionAdapter(Protocol):
    async def execute(self, decisions: Sequence[TradingDecision], round_id: str) -> int:
        """Hand decisions off for execution; return the number of orders placed."""
        ...
