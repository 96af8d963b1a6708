"""Domain errors raised by the readiness assessor and the debate orchestrator."""


class QuorumError(Exception):
    """Base class for all Quorum domain errors."""


class InvalidInput(QuorumError):
    """Caller supplied input that fails validation. Never retried."""


class DebateNotFound(QuorumError):
    def __init__(self, debate_id: str) -> None:
        self.debate_id = debate_id
        super().__init__(f"Debate not found: {debate_id}")


class InvalidTransition(QuorumError):
    """Command not allowed in the debate's current status."""

    def __init__(self, debate_id: str, status: str, command: str) -> None:
        self.debate_id = debate_id
        self.status = status
        self.command = command
        super().__init__(f"Cannot {command} debate {debate_id} in status '{status}'")


class OwnershipViolation(QuorumError):
    def __init__(self, caller_id: str, debate_id: str) -> None:
        self.caller_id = caller_id
        self.debate_id = debate_id
        super().__init__(f"Caller {caller_id} does not own debate {debate_id}")


class ConcurrentStartConflict(QuorumError):
    """A round loop is already running (or starting) for this debate."""

    def __init__(self, debate_id: str) -> None:
        self.debate_id = debate_id
        super().__init__(f"Debate {debate_id} already has a running round loop")


class RoundInFlight(QuorumError):
    """A destructive command was issued while expert calls are still in flight."""

    def __init__(self, debate_id: str) -> None:
        self.debate_id = debate_id
        super().__init__(
            f"Debate {debate_id} has a round in flight; wait for it to seal or force-fail it"
        )


class OrchestratorFatal(QuorumError):
    """The debate cannot make progress. Moves the debate to 'failed'."""
