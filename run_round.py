#!/usr/bin/env python3
"""CLI entrypoint for replaying claim rounds.

Usage::

    python run_round.py --config config/example.yaml
    python run_round.py --config config/example.yaml --output-dir results/

The runner loads a YAML configuration file, builds the configured agents
and in-memory collaborators, then runs each recorded round through
verification, consensus and decision generation. The run name is derived
from the config file name (e.g. ``example.yaml`` -> ``example``).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

from models.config import RoundConfig
from rounds.runner import ReplayRunner


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run claim rounds: verify, build consensus and generate trading decisions.",
    )
    parser.add_argument(
        "--config",
        required=True,
        type=str,
        help="Path to the YAML configuration file.",
    )
    parser.add_argument(
        "--output-dir",
        default="results",
        type=str,
        help="Directory where round logs will be written (default: results/).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO).",
    )
    return parser.parse_args(argv)


def _setup_logging(level: str) -> None:
    """Configure root logger with a clean format."""
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


async def _main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    _setup_logging(args.log_level)
    load_dotenv()  # provider API keys for LLM agents

    logger = logging.getLogger(__name__)
    logger.info("Loading config from '%s'...", args.config)

    config = RoundConfig.from_yaml(args.config)
    logger.info(
        "Config loaded: %d ticker(s), %s profile, agents=%s",
        len(config.universe),
        config.risk_profile.value,
        ", ".join(f"{a.role.value}:{a.kind}" for a in config.agents),
    )

    runner = ReplayRunner(
        config,
        config_yaml_path=args.config,
        output_dir=args.output_dir,
    )
    await runner.run()


def main() -> None:
    asyncio.run(_main())


if __name__ == "__main__":
    main()
