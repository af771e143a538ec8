"""Exception hierarchy.

Structural and contention problems are raised as exceptions and end the
invocation. A phase's own failure is never an exception: it is recorded in
the orchestration document and routed through the retry policy.
"""

from typing import List, Optional


class SymphonyError(RuntimeError):
    """Base error for a failed invocation."""

    def details(self) -> List[str]:
        """Extra diagnostic lines printed below the error message."""
        return []


class UsageError(SymphonyError):
    """Invalid command arguments."""


class PlanError(SymphonyError):
    """The plan file could not be read or its phases block is unusable."""


class PlanValidationError(PlanError):
    """Phase definitions failed validation."""

    def __init__(self, result):
        self.result = result
        super().__init__(
            f"Phase validation failed ({len(result.errors)} error(s))")

    def details(self) -> List[str]:
        return [f"  - {e.field}: {e.message}" for e in self.result.errors]


class StateFileError(SymphonyError):
    """The orchestration document is missing, unreadable or malformed."""


class PhaseNotFoundError(SymphonyError):
    def __init__(self, phase_id: str, available: Optional[List[str]] = None):
        self.phase_id = phase_id
        self.available = list(available or [])
        super().__init__(f'Phase "{phase_id}" not found in state')

    def details(self) -> List[str]:
        if not self.available:
            return []
        return [f"Available phases: {', '.join(self.available)}"]


class InvalidDependencyError(SymphonyError):
    def __init__(self, phase_id: str, dependency_id: str):
        self.phase_id = phase_id
        self.dependency_id = dependency_id
        super().__init__(
            f'Phase "{phase_id}" depends on non-existent phase '
            f'"{dependency_id}"')


class CycleDetectedError(SymphonyError):
    def __init__(self, cycle_path: List[str]):
        self.cycle_path = list(cycle_path)
        super().__init__(
            f"Circular dependency detected: {' -> '.join(cycle_path)}")


class InvalidTransitionError(SymphonyError):
    """A status change that is not an edge of the phase state machine."""

    def __init__(self, phase_id: str, from_status, to_status):
        self.phase_id = phase_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f'[{phase_id}] Invalid state transition: '
            f'{from_status.value} -> {to_status.value}')


class PhaseNotReadyError(SymphonyError):
    def __init__(self, phase_id: str, waiting_on: List[str]):
        self.phase_id = phase_id
        self.waiting_on = list(waiting_on)
        super().__init__(
            f'Phase "{phase_id}" is not ready; waiting on: '
            f"{', '.join(waiting_on)}")


class DecisionError(SymphonyError):
    """resolve-decision called on a phase that has no open decision."""


class LockTimeoutError(SymphonyError):
    def __init__(self, lock_path: str, waited_seconds: float):
        self.lock_path = lock_path
        self.waited_seconds = waited_seconds
        super().__init__(
            f"Failed to acquire lock on {lock_path} after "
            f"{int(waited_seconds * 1000)}ms")
