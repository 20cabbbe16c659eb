"""Round dataset loading.

Supported formats
-----------------
* **Directory (with optional sub-directories)**: one round per ``.json``
  file, sorted by path relative to the dataset root, so names like
  ``2025-01-15/1200.json`` order rounds chronologically.
* **Single JSON file**: either one round object or a JSON array of rounds.
* **Single JSON-lines file**: each line is one round.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from models.dataset import RoundDataset

logger = logging.getLogger(__name__)


def load_round_datasets(dataset_path: str | Path) -> list[RoundDataset]:
    """Load recorded rounds from *dataset_path* in replay order."""
    path = Path(dataset_path)

    if path.is_dir():
        rounds = _load_from_directory(path)
    elif path.is_file() and path.suffix == ".jsonl":
        rounds = _load_from_jsonl(path)
    elif path.is_file() and path.suffix == ".json":
        rounds = _load_from_json(path)
    else:
        raise FileNotFoundError(
            f"Dataset path '{dataset_path}' is neither a directory nor a "
            f"supported file (.json, .jsonl)."
        )

    logger.info("Loaded %d round(s) from '%s'.", len(rounds), path)
    return rounds


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------

def _load_from_directory(directory: Path) -> list[RoundDataset]:
    files = sorted(
        directory.rglob("*.json"),
        key=lambda f: f.relative_to(directory),
    )
    if not files:
        raise FileNotFoundError(f"No .json files found under '{directory}'.")
    return [RoundDataset.model_validate(_read_json(f)) for f in files]


def _load_from_jsonl(path: Path) -> list[RoundDataset]:
    rounds: list[RoundDataset] = []
    with path.open(encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if not line:
                continue
            rounds.append(RoundDataset.model_validate(json.loads(line)))
    return rounds


def _load_from_json(path: Path) -> list[RoundDataset]:
    raw = _read_json(path)
    if isinstance(raw, dict):
        return [RoundDataset.model_validate(raw)]
    if isinstance(raw, list):
        return [RoundDataset.model_validate(item) for item in raw]
    raise ValueError(
        f"Expected a JSON object or array in '{path}', got {type(raw).__name__}."
    )


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))
