"""Agent registry: one analysis agent per role, owned by whoever builds it.

Usage::

    from agents.registry import create_agent_registry

    registry = create_agent_registry(config.agents, datasets)
    controller = RoundController(registry, ...)
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence

from agents.base import AnalysisAgent
from models.claim import AgentRole
from models.config import AgentSpec
from models.dataset import RoundDataset


class AgentRegistry:
    """Maps agent roles to ``AnalysisAgent`` instances.

    Each registry is independent, so separate controllers (or tests) never
    share registrations.
    """

    def __init__(self, agents: Iterable[AnalysisAgent] = ()) -> None:
        self._agents: dict[AgentRole, AnalysisAgent] = {}
        for agent in agents:
            self.register(agent)

    def register(self, agent: AnalysisAgent) -> AnalysisAgent:
        """Register *agent* under its role. Raises ``ValueError`` on a duplicate role."""
        if agent.role in self._agents:
            raise ValueError(f"An agent for role '{agent.role.value}' is already registered.")
        self._agents[agent.role] = agent
        return agent

    def get(self, role: AgentRole | str) -> AnalysisAgent:
        """Return the agent for *role*. Raises ``KeyError`` if none is registered."""
        role = AgentRole(role)
        if role not in self._agents:
            available = ", ".join(r.value for r in self._agents) or "(none)"
            raise KeyError(f"No agent registered for role '{role.value}'. Available: {available}.")
        return self._agents[role]

    @property
    def roles(self) -> list[AgentRole]:
        return list(self._agents)

    def __iter__(self) -> Iterator[AnalysisAgent]:
        return iter(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, role: object) -> bool:
        return role in self._agents


def create_agent(spec: AgentSpec, datasets: Sequence[RoundDataset] = ()) -> AnalysisAgent:
    """Instantiate the agent described by *spec*."""
    if spec.kind == "replay":
        from agents.replay import ReplayAgent

        return ReplayAgent(spec.role, datasets)
    if spec.kind == "llm":
        from agents.llm_agent import LLMClaimAgent

        return LLMClaimAgent(spec)
    raise KeyError(f"Unknown agent kind '{spec.kind}'. Available: llm, replay.")


def create_agent_registry(
    specs: Iterable[AgentSpec],
    datasets: Sequence[RoundDataset] = (),
) -> AgentRegistry:
    """Build a registry with one agent per spec."""
    return AgentRegistry(create_agent(spec, datasets) for spec in specs)
