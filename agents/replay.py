"""Replay agent: serves recorded claim records for its role."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from agents.base import AnalysisAgent
from agents.parsing import parse_claim_records, split_outcomes
from models.agents import AgentContext, AgentRunResult
from models.claim import AgentRole
from models.dataset import RoundDataset

logger = logging.getLogger(__name__)


class ReplayAgent(AnalysisAgent):
    """Replays the claims a role produced in recorded rounds.

    The round is matched on cutoff: the dataset whose ``cutoff`` equals
    ``context.timestamp`` supplies the records. Records go through the same
    parser as live model output.
    """

    def __init__(self, role: AgentRole | str, datasets: Sequence[RoundDataset]) -> None:
        super().__init__(role)
        self._by_cutoff = {ds.cutoff: ds for ds in datasets}

    async def run(self, context: AgentContext) -> AgentRunResult:
        dataset = self._by_cutoff.get(context.timestamp)
        if dataset is None:
            logger.info(
                "No recorded round at %s for %s agent.",
                context.timestamp.isoformat(),
                self.role.value,
            )
            return AgentRunResult()

        records = dataset.records_for(self.role)
        outcomes = parse_claim_records(
            records,
            self.role,
            context.timestamp,
            known_evidence=[*context.evidence, *dataset.evidence],
        )
        claims, errors = split_outcomes(outcomes, self.role)
        logger.info(
            "%s agent replayed %d claim(s) (%d dropped).",
            self.role.value,
            len(claims),
            len(errors),
        )
        return AgentRunResult(claims=claims, errors=errors, raw_output={"records": records})
