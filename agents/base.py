"""Abstract base class for analysis agents.

Every agent (recorded replay, LLM-backed, etc.) implements this interface
so the round controller can run them interchangeably and concurrently.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from models.agents import AgentContext, AgentRunResult
from models.claim import AgentRole


class AnalysisAgent(ABC):
    """Produces claims for one analysis role.

    ``run`` is called once per round. Agents report recoverable problems in
    ``AgentRunResult.errors``; an exception raised from ``run`` is isolated
    to this agent by the controller.
    """

    def __init__(self, role: AgentRole | str) -> None:
        self.role = AgentRole(role)

    @abstractmethod
    async def run(self, context: AgentContext) -> AgentRunResult:
        """Generate claims for ``context.universe`` as of ``context.timestamp``."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(role={self.role.value!r})"
