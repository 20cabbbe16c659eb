"""Exceptions raised at round and collaborator boundaries.

Verification findings are data (``RiskViolation``), not exceptions; the
classes here cover the conditions that cross component boundaries.
"""


class ExternalUnavailableError(RuntimeError):
    """A collaborator (fact store, market data) could not be reached."""


class AgentFailure(RuntimeError):
    """One agent's claim generation failed. Isolated to that agent."""

    def __init__(self, role: str, cause: BaseException) -> None:
        super().__init__(f"Failed to run {role} agent: {cause}")
        self.role = role
        self.cause = cause


class InvalidTransitionError(RuntimeError):
    """A round state transition that the lifecycle does not allow."""


class RoundAborted(RuntimeError):
    """Raised inside the controller to unwind a round into ABORTED."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
