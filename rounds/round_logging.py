"""Round output logging: persists the run log, per-round audit trails and summaries.

The output directory structure is::

    {output_dir}/{run_name}/
    ├── config.yaml
    ├── run_log.json
    ├── rounds/
    │   ├── {round_id}/
    │   │   ├── round_log.json
    │   │   ├── decisions.json
    │   │   └── violations.json
    │   └── ...
    └── summary.json
"""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Any

from models.config import RoundConfig
from models.log import RoundResult, RunLog

logger = logging.getLogger(__name__)


def run_name_from_config_path(config_path: str | Path) -> str:
    """Derive a run name from the configuration file path (stem without extension)."""
    return Path(config_path).stem


class RoundLogger:
    """Manages on-disk output for a run of rounds.

    Call ``init_run`` once at the start, ``write_round`` after each round
    finishes, and ``finalize`` at the very end.
    """

    def __init__(self, output_dir: str | Path, config: RoundConfig, run_name: str) -> None:
        self._run_dir = _unique_run_dir(Path(output_dir), run_name)
        self._rounds_dir = self._run_dir / "rounds"
        self._run_log = RunLog(run_name=self._run_dir.name, config=config)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init_run(self, config_yaml_path: str | Path | None = None) -> None:
        """Create the output directory tree and optionally copy the config."""
        self._run_dir.mkdir(parents=True, exist_ok=True)
        self._rounds_dir.mkdir(exist_ok=True)
        if config_yaml_path is not None:
            dest = self._run_dir / "config.yaml"
            shutil.copy2(config_yaml_path, dest)
            logger.info("Copied config to %s", dest)

    def write_round(self, result: RoundResult) -> Path:
        """Persist one round's audit trail and return its directory."""
        round_dir = self._rounds_dir / result.round_id
        round_dir.mkdir(parents=True, exist_ok=True)

        _write_json(round_dir / "round_log.json", result.model_dump(mode="json"))

        if result.decisions is not None:
            _write_json(round_dir / "decisions.json", result.decisions.model_dump(mode="json"))

        if result.violations:
            _write_json(
                round_dir / "violations.json",
                [v.model_dump(mode="json") for v in result.violations],
            )

        self._run_log.rounds.append(result)
        logger.info("Wrote round log for '%s' to %s", result.round_id, round_dir)
        return round_dir

    def record_error(self, message: str) -> None:
        """Append an error message to the run-level log."""
        self._run_log.errors.append(message)
        logger.error("Run error: %s", message)

    def finalize(self, summary: dict[str, Any] | None = None) -> None:
        """Write the run-level log and optional summary."""
        _write_json(self._run_dir / "run_log.json", self._run_log.model_dump(mode="json"))
        if summary is not None:
            _write_json(self._run_dir / "summary.json", summary)
        logger.info("Run log finalized at %s", self._run_dir)

    def build_summary(self) -> dict[str, Any]:
        """Lightweight run summary: per-round counts plus totals."""
        rounds = [r.summary() for r in self._run_log.rounds]
        return {
            "run_name": self._run_log.run_name,
            "num_rounds": len(rounds),
            "settled": sum(1 for r in rounds if r["status"] == "SETTLED"),
            "aborted": sum(1 for r in rounds if r["status"] == "ABORTED"),
            "total_claims": sum(r["claims"] for r in rounds),
            "total_orders": sum(r["orders"] for r in rounds),
            "errors": len(self._run_log.errors),
            "rounds": rounds,
        }

    @property
    def run_log(self) -> RunLog:
        return self._run_log

    @property
    def run_dir(self) -> Path:
        return self._run_dir


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _unique_run_dir(output_dir: Path, run_name: str) -> Path:
    """Return a run directory that does not already exist.

    ``output_dir/run_name`` is used if free; otherwise ``run_name_001``,
    ``run_name_002`` and so on.
    """
    candidate = output_dir / run_name
    if not candidate.exists():
        return candidate

    idx = 1
    while True:
        candidate = output_dir / f"{run_name}_{idx:03d}"
        if not candidate.exists():
            return candidate
        idx += 1


def _write_json(path: Path, data: Any) -> None:
    """Write *data* as pretty-printed JSON to *path*."""
    path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
