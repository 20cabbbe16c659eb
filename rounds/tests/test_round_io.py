"""Tests for dataset loading, round logging and the replay runner."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path

import pytest
import yaml

from models.config import RoundConfig
from models.log import RoundResult, RoundState
from rounds.loader import load_round_datasets
from rounds.round_logging import RoundLogger, run_name_from_config_path
from rounds.runner import ReplayRunner

REPO_ROOT = Path(__file__).resolve().parents[2]
EXAMPLE_DATASET = REPO_ROOT / "data" / "example_round.json"


def _round(hour: int, **extra) -> dict:
    return {
        "cutoff": f"2025-01-15T{hour:02d}:00:00Z",
        "market_stats": [{"symbol": "BTC", "volume24h": 1_000_000}],
        **extra,
    }


@pytest.fixture
def config() -> RoundConfig:
    return RoundConfig(universe=["BTC", "ETH", "SOL"], dataset_path=str(EXAMPLE_DATASET))


# =============================================================================
# LOADER
# =============================================================================


class TestLoadRoundDatasets:
    def test_single_object(self, tmp_path):
        path = tmp_path / "round.json"
        path.write_text(json.dumps(_round(12)))
        [ds] = load_round_datasets(path)
        assert ds.cutoff == datetime(2025, 1, 15, 12, tzinfo=timezone.utc)
        assert ds.universe is None

    def test_array(self, tmp_path):
        path = tmp_path / "rounds.json"
        path.write_text(json.dumps([_round(12), _round(13, universe=["ETH"])]))
        datasets = load_round_datasets(path)
        assert [ds.cutoff.hour for ds in datasets] == [12, 13]
        assert datasets[1].universe == ["ETH"]

    def test_jsonl_skips_blank_lines(self, tmp_path):
        path = tmp_path / "rounds.jsonl"
        path.write_text(json.dumps(_round(12)) + "\n\n" + json.dumps(_round(13)) + "\n")
        assert len(load_round_datasets(path)) == 2

    def test_directory_sorted_by_relative_path(self, tmp_path):
        (tmp_path / "2025-01-16").mkdir()
        (tmp_path / "2025-01-15").mkdir()
        (tmp_path / "2025-01-16" / "0900.json").write_text(json.dumps(_round(9)))
        (tmp_path / "2025-01-15" / "1400.json").write_text(json.dumps(_round(14)))
        (tmp_path / "2025-01-15" / "1000.json").write_text(json.dumps(_round(10)))
        assert [ds.cutoff.hour for ds in load_round_datasets(tmp_path)] == [10, 14, 9]

    def test_empty_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_round_datasets(tmp_path)

    def test_missing_path(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_round_datasets(tmp_path / "nope.json")

    def test_scalar_json_rejected(self, tmp_path):
        path = tmp_path / "round.json"
        path.write_text("42")
        with pytest.raises(ValueError):
            load_round_datasets(path)

    def test_example_dataset_loads(self):
        datasets = load_round_datasets(EXAMPLE_DATASET)
        assert len(datasets) == 2
        assert datasets[0].cutoff < datasets[1].cutoff


# =============================================================================
# ROUND LOGGING
# =============================================================================


class TestRoundLogger:
    def test_run_name_from_config_path(self):
        assert run_name_from_config_path("config/btc_hourly.yaml") == "btc_hourly"

    def test_writes_round_and_run_files(self, tmp_path, config):
        config_yaml = tmp_path / "example.yaml"
        config_yaml.write_text(yaml.safe_dump({"universe": ["BTC"]}))

        logger = RoundLogger(tmp_path / "results", config, "example")
        logger.init_run(config_yaml)
        result = RoundResult(
            round_id="abc123",
            cutoff=datetime(2025, 1, 15, 12, tzinfo=timezone.utc),
            risk_profile="neutral",
            status=RoundState.ABORTED,
            abort_reason="operator stop",
        )
        round_dir = logger.write_round(result)
        logger.record_error("something went wrong")
        logger.finalize(logger.build_summary())

        run_dir = tmp_path / "results" / "example"
        assert (run_dir / "config.yaml").exists()
        assert round_dir == run_dir / "rounds" / "abc123"
        assert json.loads((round_dir / "round_log.json").read_text())["status"] == "ABORTED"
        assert not (round_dir / "decisions.json").exists()
        assert not (round_dir / "violations.json").exists()

        run_log = json.loads((run_dir / "run_log.json").read_text())
        assert run_log["errors"] == ["something went wrong"]
        assert len(run_log["rounds"]) == 1

        summary = json.loads((run_dir / "summary.json").read_text())
        assert summary["num_rounds"] == 1
        assert summary["aborted"] == 1
        assert summary["errors"] == 1
        assert summary["rounds"][0]["abort_reason"] == "operator stop"

    def test_run_dir_is_unique(self, tmp_path, config):
        first = RoundLogger(tmp_path, config, "run")
        first.init_run()
        second = RoundLogger(tmp_path, config, "run")
        second.init_run()
        assert first.run_dir.name == "run"
        assert second.run_dir.name == "run_001"


# =============================================================================
# REPLAY RUNNER
# =============================================================================


class TestReplayRunner:
    def test_replays_example_dataset(self, tmp_path, config):
        config_yaml = tmp_path / "example.yaml"
        config_yaml.write_text(yaml.safe_dump(config.model_dump(mode="json")))

        runner = ReplayRunner(config, config_yaml, output_dir=tmp_path / "results")
        asyncio.run(runner.run())

        summary = json.loads((runner.round_logger.run_dir / "summary.json").read_text())
        assert summary["num_rounds"] == 2
        assert summary["settled"] == 2
        assert summary["total_claims"] == 9

        first, second = runner.round_logger.run_log.rounds
        # SOL cites evidence published after the cutoff; ETH technical has confidence 1.4
        assert len(first.rejected_claim_ids) == 2
        assert {v.type for v in first.violations if v.severity == "critical"} == {
            "evidence-lookahead",
            "confidence-bound",
        }
        assert any("ticker" in e for e in second.errors)
        for result in (first, second):
            assert (runner.round_logger.run_dir / "rounds" / result.round_id / "round_log.json").exists()

    def test_more_rounds_than_data_is_recorded(self, tmp_path, config):
        config = config.model_copy(update={"num_rounds": 5})
        config_yaml = tmp_path / "five.yaml"
        config_yaml.write_text("universe: [BTC]\n")

        runner = ReplayRunner(config, config_yaml, output_dir=tmp_path)
        asyncio.run(runner.run())

        assert len(runner.round_logger.run_log.rounds) == 2
        assert runner.round_logger.run_log.errors == [
            "Requested 5 round(s) but the dataset holds 2."
        ]

    def test_round_universe_overrides_config(self, tmp_path, config):
        dataset = tmp_path / "rounds.json"
        dataset.write_text(json.dumps([_round(12), _round(13, universe=["ETH"])]))
        config = config.model_copy(update={"dataset_path": str(dataset)})
        config_yaml = tmp_path / "cfg.yaml"
        config_yaml.write_text("universe: [BTC, ETH, SOL]\n")

        runner = ReplayRunner(config, config_yaml, output_dir=tmp_path / "results")
        asyncio.run(runner.run())

        first, second = runner.round_logger.run_log.rounds
        assert first.universe == ["BTC", "ETH", "SOL"]
        assert second.universe == ["ETH"]

    def test_dataset_path_required(self, tmp_path):
        config_yaml = tmp_path / "bare.yaml"
        config_yaml.write_text("universe: [BTC]\n")
        runner = ReplayRunner(RoundConfig(universe=["BTC"]), config_yaml, output_dir=tmp_path)
        with pytest.raises(ValueError):
            asyncio.run(runner.run())
