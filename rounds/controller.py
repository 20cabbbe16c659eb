"""Round controller: drives one claim round through the pipeline.

Lifecycle of ``run_round``:
    1. Reserve a cutoff from the cursor and open the round in the fact store.
    2. Collect market stats and time-locked evidence for the universe.
    3. Run every registered agent concurrently; failures are isolated.
    4. Verify claims, build consensus over verified claims at or before the
       cutoff, and generate decisions.
    5. Hand decisions to execution and settle.

A round aborts only when the fact store cannot be reached while opening
the round or collecting evidence, or when ``abort`` is requested before
execution. Abort requests take effect at the next stage boundary.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timedelta, timezone

from agents.base import AnalysisAgent
from agents.registry import AgentRegistry
from consensus import ConsensusBuilder
from decision import DecisionGenerator, max_positions_for
from models.agents import AgentContext, AgentRunResult
from models.claim import Claim
from models.config import RoundConfig
from models.evidence import Evidence, as_utc
from models.log import RoundResult, RoundState
from models.market import MarketStats
from rounds.cursor import RoundCursor
from rounds.errors import AgentFailure, ExternalUnavailableError, RoundAborted
from rounds.interfaces import ExecutionAdapter, FactStore, MarketDataAdapter
from rounds.state import RoundStateMachine
from verification import ClaimVerifier

logger = logging.getLogger(__name__)

_UNAVAILABLE = (ExternalUnavailableError, ConnectionError, TimeoutError)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoundController:
    """Runs claim rounds against injected agents and collaborators.

    One round runs at a time per controller. The verifier, consensus
    builder and decision generator are synchronous and see fully
    materialised inputs.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        market_data: MarketDataAdapter,
        fact_store: FactStore,
        execution: ExecutionAdapter,
        config: RoundConfig,
        *,
        verifier: ClaimVerifier | None = None,
        consensus_builder: ConsensusBuilder | None = None,
        decision_generator: DecisionGenerator | None = None,
        cursor: RoundCursor | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._registry = registry
        self._market_data = market_data
        self._fact_store = fact_store
        self._execution = execution
        self._config = config
        self._verifier = verifier or ClaimVerifier(config.verifier, fact_store=fact_store)
        self._consensus = consensus_builder or ConsensusBuilder()
        self._decisions = decision_generator or DecisionGenerator()
        self._cursor = cursor or RoundCursor()
        self._clock = clock

        self._active: RoundStateMachine | None = None
        self._abort_reason: str | None = None

    @property
    def cursor(self) -> RoundCursor:
        return self._cursor

    @property
    def active_state(self) -> RoundState | None:
        return self._active.state if self._active else None

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def abort(self, reason: str) -> bool:
        """Request that the active round abort.

        Returns ``False`` if there is no active round or it has already
        reached execution.
        """
        sm = self._active
        if sm is None or not sm.can_abort:
            logger.warning("Abort ignored (%s): no abortable round in progress.", reason)
            return False
        self._abort_reason = reason
        logger.info("Abort requested for round %s: %s", sm.round_id, reason)
        return True

    async def run_round(
        self,
        cutoff: datetime | None = None,
        universe: Sequence[str] | None = None,
    ) -> RoundResult:
        """Run one round at *cutoff* (default: now minus the configured lag).

        Raises ``ValueError`` if the cursor refuses the cutoff and
        ``RuntimeError`` if a round is already in progress.
        """
        if self._active is not None:
            raise RuntimeError(f"Round {self._active.round_id} is already in progress.")

        if cutoff is None:
            cutoff = self._clock() - timedelta(seconds=self._config.cutoff_lag_seconds)
        cutoff = self._cursor.acquire(as_utc(cutoff))

        round_id = uuid.uuid4().hex
        sm = RoundStateMachine(round_id)
        self._active = sm
        self._abort_reason = None
        result = RoundResult(
            round_id=round_id,
            cutoff=cutoff,
            risk_profile=self._config.risk_profile,
            universe=list(universe if universe is not None else self._config.universe),
            decision_source=self._config.decision_source,
        )
        logger.info(
            "Starting round %s at cutoff %s (%d ticker(s), %s profile).",
            round_id,
            cutoff.isoformat(),
            len(result.universe),
            self._config.risk_profile.value,
        )

        t0 = time.monotonic()
        try:
            await self._run_pipeline(sm, result)
        except RoundAborted as exc:
            sm.abort(exc.reason)
        except Exception as exc:
            if not sm.can_abort:
                raise
            logger.exception("Round %s failed in %s.", round_id, sm.state.value)
            result.errors.append(f"Round failed in {sm.state.value}: {exc}")
            sm.abort(f"internal error: {exc}")
        finally:
            result.elapsed_seconds = time.monotonic() - t0
            result.status = sm.state
            result.abort_reason = sm.abort_reason
            result.state_history = list(sm.history)
            self._active = None
            self._abort_reason = None
            self._cursor.release(cutoff)

        await self._close_round(result)
        logger.info(
            "Round %s %s in %.2fs: %d claim(s), %d verified, %d decision(s), %d order(s).",
            round_id,
            result.status.value,
            result.elapsed_seconds,
            len(result.claims),
            len(result.verified_claim_ids),
            len(result.decisions.decisions) if result.decisions else 0,
            result.orders_count,
        )
        return result

    # ------------------------------------------------------------------
    # Pipeline stages
    # ------------------------------------------------------------------

    async def _run_pipeline(self, sm: RoundStateMachine, result: RoundResult) -> None:
        cfg = self._config
        cutoff = result.cutoff

        # ---- Collecting ---------------------------------------------------
        self._enter(sm, RoundState.COLLECTING)
        try:
            await self._fact_store.start_round(result.round_id)
        except _UNAVAILABLE as exc:
            raise RoundAborted(f"fact store unavailable at round start: {exc}") from exc

        market_stats = await self._collect_market_stats(result.universe, result)
        try:
            evidence = await self._collect_evidence(result.universe, cutoff)
        except _UNAVAILABLE as exc:
            raise RoundAborted(f"fact store unavailable during evidence collection: {exc}") from exc

        # ---- Claim generation ---------------------------------------------
        self._enter(sm, RoundState.CLAIM_GENERATION)
        context = AgentContext(
            round_id=result.round_id,
            universe=result.universe,
            evidence=evidence,
            market_stats=market_stats,
            risk_profile=cfg.risk_profile,
            timestamp=cutoff,
        )
        result.claims = await self._generate_claims(context, result)
        await self._persist("claims", self._fact_store.store_claims(result.claims, result.round_id), result)

        # ---- Verification -------------------------------------------------
        self._enter(sm, RoundState.VERIFICATION)
        verification = self._verifier.verify(result.claims, cutoff)
        result.verified_claim_ids = [c.id for c in verification.verified]
        result.rejected_claim_ids = [c.id for c in verification.rejected]
        result.violations = verification.violations

        scored: list[Claim] = []
        for claim in verification.verified:
            if claim.timestamp > cutoff:
                result.late_claim_ids.append(claim.id)
            else:
                scored.append(claim)
        if result.late_claim_ids:
            logger.info(
                "Round %s: %d verified claim(s) dated after the cutoff kept out of consensus.",
                result.round_id,
                len(result.late_claim_ids),
            )

        # ---- Consensus ----------------------------------------------------
        self._enter(sm, RoundState.CONSENSUS)
        result.consensus = self._consensus.build_consensus(scored, market_stats, cfg.max_positions)
        result.conflicts = self._consensus.detect_conflicts(scored)
        if cfg.apply_risk_adjustments or cfg.decision_source == "risk_adjusted":
            result.risk_adjusted_consensus = self._consensus.apply_risk_adjustments(
                result.consensus, cfg.risk_profile
            )
        await self._persist(
            "consensus",
            self._fact_store.store_consensus(result.consensus, result.round_id),
            result,
        )

        # ---- Decision -----------------------------------------------------
        self._enter(sm, RoundState.DECISION)
        ranked = (
            result.risk_adjusted_consensus
            if cfg.decision_source == "risk_adjusted"
            else result.consensus
        )
        max_decisions = (
            cfg.max_decisions if cfg.max_decisions is not None else max_positions_for(cfg.risk_profile)
        )
        result.decisions = self._decisions.generate_trading_decisions(
            ranked, cfg.risk_profile, max_decisions
        )
        decisions = result.decisions.decisions
        # Results are stored while the round is still abortable.
        await self._persist("results", self._fact_store.store_results(decisions, result.round_id), result)

        # ---- Execution ----------------------------------------------------
        self._enter(sm, RoundState.EXECUTION)
        try:
            result.orders_count = await self._execution.execute(decisions, result.round_id)
        except Exception as exc:
            logger.exception("Round %s: execution hand-off failed.", result.round_id)
            result.errors.append(f"Execution failed: {exc}")

        sm.advance(RoundState.SETTLED)

    def _enter(self, sm: RoundStateMachine, state: RoundState) -> None:
        """Honour a pending abort request, then move to *state*."""
        if self._abort_reason is not None:
            raise RoundAborted(self._abort_reason)
        sm.advance(state)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _collect_market_stats(
        self,
        universe: Sequence[str],
        result: RoundResult,
    ) -> list[MarketStats]:
        async def fetch(ticker: str) -> MarketStats | None:
            try:
                stats = await self._market_data.get_market_stats(ticker)
            except _UNAVAILABLE as exc:
                logger.warning("Market stats unavailable for %s: %s", ticker, exc)
                result.errors.append(f"Market stats unavailable for {ticker}: {exc}")
                return None
            if stats is None:
                logger.warning("No market stats for %s.", ticker)
            return stats

        fetched = await asyncio.gather(*(fetch(t) for t in universe))
        return [s for s in fetched if s is not None]

    async def _collect_evidence(self, universe: Sequence[str], cutoff: datetime) -> list[Evidence]:
        batches = await asyncio.gather(
            *(self._fact_store.find_evidence(t, until=cutoff) for t in universe)
        )
        evidence: list[Evidence] = []
        for batch in batches:
            for item in batch:
                if item not in evidence:
                    evidence.append(item)
        logger.info("Collected %d evidence item(s) up to %s.", len(evidence), cutoff.isoformat())
        return evidence

    async def _generate_claims(self, context: AgentContext, result: RoundResult) -> list[Claim]:
        agents = list(self._registry)
        if not agents:
            logger.warning("Round %s: no agents registered.", context.round_id)
            return []

        outcomes = await asyncio.gather(
            *(self._run_agent(agent, context) for agent in agents),
            return_exceptions=True,
        )

        claims: list[Claim] = []
        for agent, outcome in zip(agents, outcomes):
            if isinstance(outcome, AgentFailure):
                result.errors.append(str(outcome))
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            claims.extend(outcome.claims)
            result.errors.extend(outcome.errors)
        return claims

    async def _run_agent(self, agent: AnalysisAgent, context: AgentContext) -> AgentRunResult:
        try:
            return await agent.run(context)
        except Exception as exc:
            logger.warning("%s agent failed in round %s: %s", agent.role.value, context.round_id, exc)
            raise AgentFailure(agent.role.value, exc) from exc

    async def _persist(self, what: str, op: Awaitable[None], result: RoundResult) -> None:
        try:
            await op
        except _UNAVAILABLE as exc:
            logger.warning("Round %s: could not store %s: %s", result.round_id, what, exc)
            result.errors.append(f"Could not store {what}: {exc}")

    async def _close_round(self, result: RoundResult) -> None:
        try:
            await self._fact_store.end_round(
                result.round_id,
                result.status,
                len(result.claims),
                result.orders_count,
                0.0,
            )
        except _UNAVAILABLE as exc:
            logger.warning("Round %s: could not close round in fact store: %s", result.round_id, exc)
            result.errors.append(f"Could not close round: {exc}")
