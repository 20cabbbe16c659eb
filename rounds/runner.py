"""Replay runner: drives a configured number of rounds from recorded data.

Lifecycle:
    1. Load config and round datasets.
    2. Build the agent registry and in-memory collaborators.
    3. For each round:
        a. Load the round's market stats and evidence into the collaborators.
        b. Run the round at the recorded cutoff.
        c. Write the round log.
    4. Finalise and write summary.
"""

from __future__ import annotations

import logging
from pathlib import Path

from agents.registry import create_agent_registry
from models.config import RoundConfig
from models.dataset import RoundDataset
from rounds.adapters import InMemoryFactStore, PaperExecution, StaticMarketData
from rounds.controller import RoundController
from rounds.loader import load_round_datasets
from rounds.round_logging import RoundLogger, run_name_from_config_path

logger = logging.getLogger(__name__)


class ReplayRunner:
    """Runs rounds against in-memory collaborators and logs them to disk."""

    def __init__(
        self,
        config: RoundConfig,
        config_yaml_path: str | Path,
        output_dir: str | Path = "results",
    ) -> None:
        self._config = config
        self._config_yaml_path = config_yaml_path
        self._run_name = run_name_from_config_path(config_yaml_path)
        self._round_logger = RoundLogger(output_dir, config, self._run_name)

    @property
    def round_logger(self) -> RoundLogger:
        return self._round_logger

    async def run(self) -> None:
        """Execute every configured round."""
        self._round_logger.init_run(self._config_yaml_path)

        datasets = self._load_datasets()
        num_rounds = self._config.num_rounds or len(datasets)
        if num_rounds > len(datasets):
            self._round_logger.record_error(
                f"Requested {num_rounds} round(s) but the dataset holds {len(datasets)}."
            )
            num_rounds = len(datasets)

        market_data = StaticMarketData()
        fact_store = InMemoryFactStore()
        controller = RoundController(
            create_agent_registry(self._config.agents, datasets),
            market_data,
            fact_store,
            PaperExecution(),
            self._config,
        )
        logger.info("Starting run '%s': %d round(s).", self._run_name, num_rounds)

        for idx, dataset in enumerate(datasets[:num_rounds]):
            market_data.update(dataset.market_stats)
            fact_store.put_evidence(dataset.evidence)
            universe = dataset.universe if dataset.universe is not None else self._config.universe

            try:
                result = await controller.run_round(cutoff=dataset.cutoff, universe=universe)
                self._round_logger.write_round(result)
            except Exception as exc:
                msg = f"Round {idx} at {dataset.cutoff.isoformat()} failed: {exc}"
                logger.exception(msg)
                self._round_logger.record_error(msg)

        self._round_logger.finalize(self._round_logger.build_summary())
        logger.info("Run '%s' complete. Output: %s", self._run_name, self._round_logger.run_dir)

    def _load_datasets(self) -> list[RoundDataset]:
        if self._config.dataset_path is None:
            raise ValueError("dataset_path must be set to replay rounds.")
        return load_round_datasets(self._config.dataset_path)
