"""Round lifecycle state machine.

::

    IDLE -> COLLECTING -> CLAIM_GENERATION -> VERIFICATION
         -> CONSENSUS -> DECISION -> EXECUTION -> SETTLED

``ABORTED`` is reachable from every state before ``EXECUTION``. Once
decisions have been handed to execution the round can only settle.
"""

from __future__ import annotations

import logging

from models.log import RoundState
from rounds.errors import InvalidTransitionError

logger = logging.getLogger(__name__)

PIPELINE: tuple[RoundState, ...] = (
    RoundState.IDLE,
    RoundState.COLLECTING,
    RoundState.CLAIM_GENERATION,
    RoundState.VERIFICATION,
    RoundState.CONSENSUS,
    RoundState.DECISION,
    RoundState.EXECUTION,
    RoundState.SETTLED,
)

ABORTABLE: frozenset[RoundState] = frozenset(PIPELINE[: PIPELINE.index(RoundState.EXECUTION)])
TERMINAL: frozenset[RoundState] = frozenset({RoundState.SETTLED, RoundState.ABORTED})

TRANSITIONS: dict[RoundState, frozenset[RoundState]] = {
    state: frozenset(
        {nxt} | ({RoundState.ABORTED} if state in ABORTABLE else set())
    )
    for state, nxt in zip(PIPELINE, PIPELINE[1:])
}
TRANSITIONS[RoundState.SETTLED] = frozenset()
TRANSITIONS[RoundState.ABORTED] = frozenset()


class RoundStateMachine:
    """Tracks one round's state and the path it took."""

    def __init__(self, round_id: str) -> None:
        self.round_id = round_id
        self._state = RoundState.IDLE
        self.history: list[RoundState] = [RoundState.IDLE]
        self.abort_reason: str | None = None

    @property
    def state(self) -> RoundState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL

    @property
    def can_abort(self) -> bool:
        return self._state in ABORTABLE

    def advance(self, target: RoundState) -> None:
        """Move to *target*. Raises ``InvalidTransitionError`` if not allowed."""
        target = RoundState(target)
        if target not in TRANSITIONS[self._state]:
            raise InvalidTransitionError(
                f"Round {self.round_id}: cannot move from {self._state.value} to {target.value}."
            )
        logger.info("Round %s: %s -> %s", self.round_id, self._state.value, target.value)
        self._state = target
        self.history.append(target)

    def abort(self, reason: str) -> None:
        """Move to ``ABORTED`` with *reason*."""
        self.advance(RoundState.ABORTED)
        self.abort_reason = reason
        logger.warning("Round %s aborted: %s", self.round_id, reason)
