"""Decision generation from ranked consensus."""

from .generator import (
    MAX_POSITION_SIZE,
    DecisionGenerator,
    build_rationale,
    max_positions_for,
)

__all__ = [
    "MAX_POSITION_SIZE",
    "DecisionGenerator",
    "build_rationale",
    "max_positions_for",
]
