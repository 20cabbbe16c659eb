"""LLM-backed analysis agent: one chat model call per round.

The agent renders role and risk-profile prompts, asks the model for an
analysis followed by a JSON claim list, and parses the reply with the same
parser the replay agent uses.
"""

from __future__ import annotations

import logging

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from agents.base import AnalysisAgent
from agents.parsing import parse_claims_response, split_outcomes
from agents.prompts import build_system_prompt, build_user_prompt
from models.agents import AgentContext, AgentRunResult
from models.config import AgentSpec

logger = logging.getLogger(__name__)


def _create_llm(spec: AgentSpec) -> BaseChatModel:
    """Instantiate the appropriate LangChain chat model from config."""
    provider = spec.llm_provider.lower()

    if provider == "openai":
        from langchain_openai import ChatOpenAI

        return ChatOpenAI(
            model=spec.llm_model,
            temperature=spec.temperature,
        )
    elif provider == "anthropic":
        from langchain_anthropic import ChatAnthropic

        return ChatAnthropic(
            model=spec.llm_model,
            temperature=spec.temperature,
        )
    else:
        raise ValueError(
            f"Unsupported LLM provider '{provider}'. "
            f"Supported: 'openai', 'anthropic'."
        )


class LLMClaimAgent(AnalysisAgent):
    """Claim generator backed by a LangChain chat model.

    Pass *llm* to inject a model (tests use a fake chat model); otherwise
    one is built from *spec*.
    """

    def __init__(self, spec: AgentSpec, llm: BaseChatModel | None = None) -> None:
        super().__init__(spec.role)
        self.spec = spec
        self._llm = llm if llm is not None else _create_llm(spec)

    async def run(self, context: AgentContext) -> AgentRunResult:
        messages = [
            SystemMessage(
                content=build_system_prompt(
                    self.role, context.risk_profile, self.spec.system_prompt_override
                )
            ),
            HumanMessage(content=build_user_prompt(self.role, context)),
        ]

        response = await self._llm.ainvoke(messages)
        text = response.content if isinstance(response.content, str) else str(response.content)

        outcomes = parse_claims_response(
            text, self.role, context.timestamp, known_evidence=context.evidence
        )
        claims, errors = split_outcomes(outcomes, self.role)

        logger.info(
            "%s agent (%s/%s) produced %d claim(s) for round %s (%d dropped).",
            self.role.value,
            self.spec.llm_provider,
            self.spec.llm_model,
            len(claims),
            context.round_id,
            len(errors),
        )
        return AgentRunResult(claims=claims, errors=errors, raw_output=text)
