"""Status, category and option enumerations."""

from enum import Enum
from typing import Dict, FrozenSet


class PhaseStatus(Enum):
    """Status of an individual phase."""
    PENDING = "pending"
    READY = "ready"                    # released by a decision, runnable
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"
    ABORTED = "aborted"                # cancelled by a decision
    BLOCKED = "blocked"                # an ancestor failed or was aborted
    RETRYING = "retrying"              # waiting for nextRetryAt
    AWAITING_DECISION = "awaiting_decision"


class OrchestrationStatus(Enum):
    """Overall status of an orchestration run."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    ABORTED = "aborted"
    AWAITING_USER_DECISION = "awaiting_user_decision"


class ErrorCategory(Enum):
    TRANSIENT = "transient"
    RESOURCE = "resource"
    LOGIC = "logic"
    PERMANENT = "permanent"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class BackoffStrategy(Enum):
    FIXED = "fixed"
    EXPONENTIAL = "exponential"
    EXPONENTIAL_JITTER = "exponential-jitter"


class DecisionOption(Enum):
    RETRY_ONCE_MORE = "retry_once_more"
    SKIP_PHASE = "skip_phase"
    ABORT_BRANCH = "abort_branch"
    ABORT_ALL = "abort_all"


class ArtifactType(Enum):
    FILE_CREATED = "file_created"
    FILE_MODIFIED = "file_modified"
    FILE_DELETED = "file_deleted"
    EXPORT = "export"
    NOTE = "note"


class Complexity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


TERMINAL_STATUSES: FrozenSet[PhaseStatus] = frozenset({
    PhaseStatus.COMPLETE, PhaseStatus.FAILED,
    PhaseStatus.ABORTED, PhaseStatus.BLOCKED,
})

# Every status change is checked against this table. A runner may report an
# outcome for a pending/ready phase without sending a start signal first.
PHASE_TRANSITIONS: Dict[PhaseStatus, FrozenSet[PhaseStatus]] = {
    PhaseStatus.PENDING: frozenset({
        PhaseStatus.READY, PhaseStatus.RUNNING, PhaseStatus.COMPLETE,
        PhaseStatus.RETRYING, PhaseStatus.AWAITING_DECISION,
        PhaseStatus.FAILED, PhaseStatus.BLOCKED, PhaseStatus.ABORTED,
    }),
    PhaseStatus.READY: frozenset({
        PhaseStatus.PENDING, PhaseStatus.RUNNING, PhaseStatus.COMPLETE,
        PhaseStatus.RETRYING, PhaseStatus.AWAITING_DECISION,
        PhaseStatus.FAILED, PhaseStatus.BLOCKED, PhaseStatus.ABORTED,
    }),
    PhaseStatus.RUNNING: frozenset({
        PhaseStatus.COMPLETE, PhaseStatus.RETRYING,
        PhaseStatus.AWAITING_DECISION, PhaseStatus.FAILED,
        PhaseStatus.ABORTED,
    }),
    PhaseStatus.RETRYING: frozenset({
        PhaseStatus.RUNNING, PhaseStatus.COMPLETE, PhaseStatus.RETRYING,
        PhaseStatus.AWAITING_DECISION, PhaseStatus.FAILED,
        PhaseStatus.ABORTED,
    }),
    PhaseStatus.AWAITING_DECISION: frozenset({
        PhaseStatus.READY, PhaseStatus.COMPLETE, PhaseStatus.ABORTED,
    }),
    PhaseStatus.COMPLETE: frozenset({PhaseStatus.COMPLETE}),
    PhaseStatus.FAILED: frozenset(),
    PhaseStatus.ABORTED: frozenset(),
    PhaseStatus.BLOCKED: frozenset(),
}


def can_transition(from_status: PhaseStatus, to_status: PhaseStatus) -> bool:
    return to_status in PHASE_TRANSITIONS.get(from_status, frozenset())
