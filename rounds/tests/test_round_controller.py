"""Tests for the round controller.

Rounds run against in-memory collaborators and scripted agents, so no
network or LLM access is needed. Tests verify:
  1. A full round settles with the expected state path and outputs
  2. Agent and persistence failures are isolated
  3. Fact store outages while opening the round abort it
  4. Abort requests take effect at the next stage boundary
  5. Late claims are kept out of consensus
  6. Cutoffs must advance across rounds
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from agents.base import AnalysisAgent
from agents.registry import AgentRegistry
from models.agents import AgentContext, AgentRunResult
from models.claim import AgentRole, Claim
from models.config import RoundConfig
from models.evidence import Evidence
from models.log import RoundState
from models.market import MarketStats
from rounds.adapters import InMemoryFactStore, PaperExecution, StaticMarketData
from rounds.controller import RoundController
from rounds.errors import ExternalUnavailableError

CUTOFF = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

FULL_PATH = [
    RoundState.IDLE,
    RoundState.COLLECTING,
    RoundState.CLAIM_GENERATION,
    RoundState.VERIFICATION,
    RoundState.CONSENSUS,
    RoundState.DECISION,
    RoundState.EXECUTION,
    RoundState.SETTLED,
]


def _run_async(coro):
    return asyncio.run(coro)


def _claim(
    ticker: str,
    role: AgentRole,
    confidence: float,
    text: str = "BUY - constructive setup",
    timestamp: datetime = CUTOFF,
) -> Claim:
    return Claim(ticker=ticker, agent_role=role, claim=text, confidence=confidence, timestamp=timestamp)


class ScriptedAgent(AnalysisAgent):
    """Returns fixed claims and remembers the context it was given."""

    def __init__(self, role, claims=(), errors=(), on_run=None):
        super().__init__(role)
        self._claims = list(claims)
        self._errors = list(errors)
        self._on_run = on_run
        self.contexts: list[AgentContext] = []

    async def run(self, context):
        self.contexts.append(context)
        if self._on_run is not None:
            self._on_run()
        return AgentRunResult(claims=self._claims, errors=self._errors)


class FailingAgent(AnalysisAgent):
    async def run(self, context):
        raise RuntimeError("model timed out")


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def market_data() -> StaticMarketData:
    return StaticMarketData(
        [
            MarketStats(symbol="BTC", volume_24h=3_000_000 / 7),  # liquidity 0.6
            MarketStats(symbol="ETH", volume_24h=2_000_000, spread=0.0),  # liquidity 1.0
        ]
    )


@pytest.fixture
def fact_store() -> InMemoryFactStore:
    return InMemoryFactStore(
        [
            Evidence(
                id="ev-btc",
                kind="news",
                source="coindesk.com",
                ticker="BTC",
                published_at=CUTOFF - timedelta(hours=2),
                relevance=0.9,
            ),
            Evidence(
                id="ev-btc-late",
                kind="news",
                source="coindesk.com",
                ticker="BTC",
                published_at=CUTOFF + timedelta(minutes=30),
                relevance=0.9,
            ),
        ]
    )


@pytest.fixture
def execution() -> PaperExecution:
    return PaperExecution()


@pytest.fixture
def config() -> RoundConfig:
    return RoundConfig(universe=["BTC", "ETH"])


@pytest.fixture
def agents() -> list[ScriptedAgent]:
    return [
        ScriptedAgent(
            AgentRole.FUNDAMENTAL,
            [_claim("BTC", AgentRole.FUNDAMENTAL, 0.9, "BUY - institutional demand is strong")],
        ),
        ScriptedAgent(
            AgentRole.SENTIMENT,
            [
                _claim("BTC", AgentRole.SENTIMENT, 0.8, "BUY - positive news coverage"),
                _claim("ETH", AgentRole.SENTIMENT, 0.9, "Coverage turning bullish"),
            ],
        ),
        ScriptedAgent(
            AgentRole.TECHNICAL,
            [
                _claim("BTC", AgentRole.TECHNICAL, 0.7, "BUY - oversold bounce setup"),
                _claim("ETH", AgentRole.TECHNICAL, 0.85, "Chart structure looks bearish"),
            ],
        ),
    ]


def _controller(agents, market_data, fact_store, execution, config, **kwargs) -> RoundController:
    return RoundController(AgentRegistry(agents), market_data, fact_store, execution, config, **kwargs)


# =============================================================================
# 1. HAPPY PATH
# =============================================================================


class TestSettledRound:
    def test_full_round(self, agents, market_data, fact_store, execution, config):
        controller = _controller(agents, market_data, fact_store, execution, config)
        result = _run_async(controller.run_round(cutoff=CUTOFF))

        assert result.status == RoundState.SETTLED
        assert result.state_history == FULL_PATH
        assert result.abort_reason is None
        assert result.errors == []
        assert len(result.claims) == 5
        assert len(result.verified_claim_ids) == 5

        by_ticker = {r.ticker: r for r in result.consensus}
        assert by_ticker["BTC"].final_score == pytest.approx(0.48)
        assert by_ticker["ETH"].final_score == pytest.approx(0.875 * (2 / 3) * 1.0)
        assert [r.ticker for r in result.consensus] == ["ETH", "BTC"]

        [conflict] = result.conflicts
        assert conflict.ticker == "ETH"
        assert conflict.severity == "high"

        assert [d.ticker for d in result.decisions.decisions] == ["ETH", "BTC"]
        assert all(d.action == "BUY" for d in result.decisions.decisions)
        assert result.orders_count == 2

    def test_collaborators_see_the_round(self, agents, market_data, fact_store, execution, config):
        controller = _controller(agents, market_data, fact_store, execution, config)
        result = _run_async(controller.run_round(cutoff=CUTOFF))
        rid = result.round_id

        assert fact_store.rounds[rid] == {
            "status": "SETTLED",
            "claims_count": 5,
            "orders_count": 2,
            "total_pnl": 0.0,
        }
        assert len(fact_store.claims[rid]) == 5
        assert fact_store.consensus[rid] == result.consensus
        assert fact_store.results[rid] == result.decisions.decisions
        assert len(execution.executed[rid]) == 2

    def test_agents_get_time_locked_context(self, agents, market_data, fact_store, execution, config):
        controller = _controller(agents, market_data, fact_store, execution, config)
        _run_async(controller.run_round(cutoff=CUTOFF))

        [context] = agents[0].contexts
        assert context.timestamp == CUTOFF
        assert context.universe == ["BTC", "ETH"]
        assert [e.id for e in context.evidence] == ["ev-btc"]
        assert {s.symbol for s in context.market_stats} == {"BTC", "ETH"}
        assert context.risk_profile == config.risk_profile

    def test_rejected_claims_do_not_score(self, market_data, fact_store, execution, config):
        agents = [
            ScriptedAgent(
                AgentRole.TECHNICAL,
                [
                    _claim("BTC", AgentRole.TECHNICAL, 1.4, "BUY - momentum is very strong"),
                    _claim("ETH", AgentRole.TECHNICAL, 0.8, "BUY - breakout above range"),
                ],
            )
        ]
        result = _run_async(
            _controller(agents, market_data, fact_store, execution, config).run_round(cutoff=CUTOFF)
        )
        assert len(result.rejected_claim_ids) == 1
        assert any(v.type == "confidence-bound" for v in result.violations)
        assert [r.ticker for r in result.consensus] == ["ETH"]

    def test_ticker_without_market_stats_is_skipped(self, agents, fact_store, execution, config):
        market_data = StaticMarketData([MarketStats(symbol="ETH", volume_24h=2_000_000, spread=0.0)])
        result = _run_async(
            _controller(agents, market_data, fact_store, execution, config).run_round(cutoff=CUTOFF)
        )
        assert result.status == RoundState.SETTLED
        assert [r.ticker for r in result.consensus] == ["ETH"]

    def test_risk_adjusted_decision_source(self, agents, market_data, fact_store, execution):
        config = RoundConfig(universe=["BTC", "ETH"], decision_source="risk_adjusted")
        result = _run_async(
            _controller(agents, market_data, fact_store, execution, config).run_round(cutoff=CUTOFF)
        )
        assert result.decision_source == "risk_adjusted"
        adjusted = {r.ticker: r.final_score for r in result.risk_adjusted_consensus}
        assert adjusted["BTC"] == pytest.approx(0.8 * 0.7 + 0.6 * 0.3)
        decided = {d.ticker: d.score for d in result.decisions.decisions}
        assert decided == pytest.approx(adjusted)

    def test_risk_adjustments_off(self, agents, market_data, fact_store, execution):
        config = RoundConfig(universe=["BTC", "ETH"], apply_risk_adjustments=False)
        result = _run_async(
            _controller(agents, market_data, fact_store, execution, config).run_round(cutoff=CUTOFF)
        )
        assert result.risk_adjusted_consensus is None

    def test_max_decisions_from_config(self, agents, market_data, fact_store, execution):
        config = RoundConfig(universe=["BTC", "ETH"], max_decisions=1)
        result = _run_async(
            _controller(agents, market_data, fact_store, execution, config).run_round(cutoff=CUTOFF)
        )
        assert [d.ticker for d in result.decisions.decisions] == ["ETH"]

    def test_no_agents(self, market_data, fact_store, execution, config):
        result = _run_async(
            _controller([], market_data, fact_store, execution, config).run_round(cutoff=CUTOFF)
        )
        assert result.status == RoundState.SETTLED
        assert result.claims == []
        assert result.decisions.decisions == []
        assert result.orders_count == 0

    def test_default_cutoff_uses_clock_and_lag(self, agents, market_data, fact_store, execution, config):
        now = CUTOFF + timedelta(minutes=5)
        controller = _controller(agents, market_data, fact_store, execution, config, clock=lambda: now)
        result = _run_async(controller.run_round())
        assert result.cutoff == now - timedelta(seconds=config.cutoff_lag_seconds)


# =============================================================================
# 2. FAILURE ISOLATION
# =============================================================================


class TestFailureIsolation:
    def test_agent_failure_is_isolated(self, agents, market_data, fact_store, execution, config):
        agents = [agents[0], agents[1], FailingAgent(AgentRole.TECHNICAL)]
        result = _run_async(
            _controller(agents, market_data, fact_store, execution, config).run_round(cutoff=CUTOFF)
        )
        assert result.status == RoundState.SETTLED
        assert result.errors == ["Failed to run technical agent: model timed out"]
        assert len(result.claims) == 3

    def test_agent_parse_errors_are_reported(self, market_data, fact_store, execution, config):
        agents = [ScriptedAgent(AgentRole.SENTIMENT, errors=["sentiment agent record 0: missing ticker"])]
        result = _run_async(
            _controller(agents, market_data, fact_store, execution, config).run_round(cutoff=CUTOFF)
        )
        assert result.errors == ["sentiment agent record 0: missing ticker"]

    def test_store_failure_after_start_does_not_abort(self, agents, market_data, fact_store, execution, config):
        fact_store.store_claims = AsyncMock(side_effect=ConnectionError("db gone"))
        result = _run_async(
            _controller(agents, market_data, fact_store, execution, config).run_round(cutoff=CUTOFF)
        )
        assert result.status == RoundState.SETTLED
        assert result.errors == ["Could not store claims: db gone"]

    def test_results_store_outage_still_executes(self, agents, market_data, fact_store, execution, config):
        fact_store.store_results = AsyncMock(side_effect=ConnectionError("db gone"))
        result = _run_async(
            _controller(agents, market_data, fact_store, execution, config).run_round(cutoff=CUTOFF)
        )
        assert result.status == RoundState.SETTLED
        assert result.errors == ["Could not store results: db gone"]
        assert result.round_id in execution.executed

    def test_market_stats_outage_skips_ticker(self, agents, market_data, fact_store, execution, config):
        original = market_data.get_market_stats

        async def flaky(ticker):
            if ticker == "BTC":
                raise TimeoutError("rate limited")
            return await original(ticker)

        market_data.get_market_stats = flaky
        result = _run_async(
            _controller(agents, market_data, fact_store, execution, config).run_round(cutoff=CUTOFF)
        )
        assert result.status == RoundState.SETTLED
        assert result.errors == ["Market stats unavailable for BTC: rate limited"]
        assert [r.ticker for r in result.consensus] == ["ETH"]

    def test_execution_failure_still_settles(self, agents, market_data, fact_store, execution, config):
        execution.execute = AsyncMock(side_effect=RuntimeError("venue rejected batch"))
        result = _run_async(
            _controller(agents, market_data, fact_store, execution, config).run_round(cutoff=CUTOFF)
        )
        assert result.status == RoundState.SETTLED
        assert result.orders_count == 0
        assert result.errors == ["Execution failed: venue rejected batch"]


# =============================================================================
# 3. ABORTS
# =============================================================================


class TestAbort:
    def test_fact_store_down_at_start_aborts(self, agents, market_data, fact_store, execution, config):
        fact_store.start_round = AsyncMock(side_effect=ExternalUnavailableError("connection refused"))
        result = _run_async(
            _controller(agents, market_data, fact_store, execution, config).run_round(cutoff=CUTOFF)
        )
        assert result.status == RoundState.ABORTED
        assert result.state_history == [RoundState.IDLE, RoundState.COLLECTING, RoundState.ABORTED]
        assert result.abort_reason.startswith("fact store unavailable at round start")
        assert result.decisions is None
        assert agents[0].contexts == []
        assert execution.executed == {}
        assert fact_store.rounds[result.round_id]["status"] == "ABORTED"

    def test_evidence_outage_aborts(self, agents, market_data, fact_store, execution, config):
        fact_store.find_evidence = AsyncMock(side_effect=ConnectionError("reset by peer"))
        result = _run_async(
            _controller(agents, market_data, fact_store, execution, config).run_round(cutoff=CUTOFF)
        )
        assert result.status == RoundState.ABORTED
        assert "evidence collection" in result.abort_reason

    def test_abort_takes_effect_at_next_stage(self, market_data, fact_store, execution, config):
        holder = {}
        agent = ScriptedAgent(
            AgentRole.SENTIMENT,
            [_claim("BTC", AgentRole.SENTIMENT, 0.8)],
            on_run=lambda: holder.setdefault("accepted", holder["controller"].abort("operator stop")),
        )
        controller = _controller([agent], market_data, fact_store, execution, config)
        holder["controller"] = controller

        result = _run_async(controller.run_round(cutoff=CUTOFF))

        assert holder["accepted"] is True
        assert result.status == RoundState.ABORTED
        assert result.abort_reason == "operator stop"
        assert result.state_history[-2:] == [RoundState.CLAIM_GENERATION, RoundState.ABORTED]
        assert len(result.claims) == 1
        assert result.verified_claim_ids == []
        assert execution.executed == {}

    def test_abort_ignored_once_executing(self, agents, market_data, fact_store, config):
        holder = {}

        class AbortingExecution(PaperExecution):
            async def execute(self, decisions, round_id):
                holder["accepted"] = holder["controller"].abort("too late")
                return await super().execute(decisions, round_id)

        controller = _controller(agents, market_data, fact_store, AbortingExecution(), config)
        holder["controller"] = controller

        result = _run_async(controller.run_round(cutoff=CUTOFF))
        assert holder["accepted"] is False
        assert result.status == RoundState.SETTLED

    def test_abort_without_round(self, agents, market_data, fact_store, execution, config):
        controller = _controller(agents, market_data, fact_store, execution, config)
        assert controller.abort("nothing running") is False
        assert controller.active_state is None

    def test_internal_error_aborts(self, agents, market_data, fact_store, execution, config):
        class BrokenVerifier:
            def verify(self, claims, cutoff):
                raise KeyError("missing threshold")

        controller = _controller(
            agents, market_data, fact_store, execution, config, verifier=BrokenVerifier()
        )
        result = _run_async(controller.run_round(cutoff=CUTOFF))
        assert result.status == RoundState.ABORTED
        assert result.abort_reason.startswith("internal error:")
        assert result.errors[0].startswith("Round failed in VERIFICATION")
        assert controller.cursor.active == frozenset()

    def test_results_store_error_aborts_before_execution(self, agents, market_data, fact_store, execution, config):
        fact_store.store_results = AsyncMock(side_effect=ValueError("bad row"))
        controller = _controller(agents, market_data, fact_store, execution, config)
        result = _run_async(controller.run_round(cutoff=CUTOFF))

        assert result.status == RoundState.ABORTED
        assert result.abort_reason == "internal error: bad row"
        assert result.errors == ["Round failed in DECISION: bad row"]
        assert result.decisions is not None
        assert execution.executed == {}
        assert fact_store.rounds[result.round_id]["status"] == "ABORTED"
        assert controller.cursor.active == frozenset()


# =============================================================================
# 4. TIME LOCK
# =============================================================================


class TestTimeLock:
    def test_late_claims_excluded_from_consensus(self, market_data, fact_store, execution, config):
        late = _claim("ETH", AgentRole.TECHNICAL, 0.9, "BUY - breakout confirmed", CUTOFF + timedelta(seconds=30))
        on_time = _claim("BTC", AgentRole.TECHNICAL, 0.8, "BUY - trend intact")
        agents = [ScriptedAgent(AgentRole.TECHNICAL, [late, on_time])]

        result = _run_async(
            _controller(agents, market_data, fact_store, execution, config).run_round(cutoff=CUTOFF)
        )
        assert late.id in result.verified_claim_ids
        assert result.late_claim_ids == [late.id]
        assert [r.ticker for r in result.consensus] == ["BTC"]
        assert all(late.id not in r.claims for r in result.consensus)

    def test_cutoffs_must_advance(self, agents, market_data, fact_store, execution, config):
        controller = _controller(agents, market_data, fact_store, execution, config)
        _run_async(controller.run_round(cutoff=CUTOFF))

        with pytest.raises(ValueError):
            _run_async(controller.run_round(cutoff=CUTOFF))
        with pytest.raises(ValueError):
            _run_async(controller.run_round(cutoff=CUTOFF - timedelta(minutes=1)))

        later = _run_async(controller.run_round(cutoff=CUTOFF + timedelta(hours=1)))
        assert later.status == RoundState.SETTLED
        assert controller.cursor.last_cutoff == CUTOFF + timedelta(hours=1)

    def test_rounds_get_distinct_ids(self, agents, market_data, fact_store, execution, config):
        controller = _controller(agents, market_data, fact_store, execution, config)
        first = _run_async(controller.run_round(cutoff=CUTOFF))
        second = _run_async(controller.run_round(cutoff=CUTOFF + timedelta(hours=1)))
        assert first.round_id != second.round_id
