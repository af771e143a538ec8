"""Data models for plans and orchestration documents."""

from symphony.models.enums import (
    PhaseStatus, OrchestrationStatus, ErrorCategory, BackoffStrategy,
    DecisionOption, ArtifactType, Complexity, TERMINAL_STATUSES,
    PHASE_TRANSITIONS, can_transition,
)
from symphony.models.phase import Phase, RequiredContext
from symphony.models.orchestration_state import (
    Artifact, RetryAttempt, PendingDecision, RetryPolicy, PhaseState,
    OrchestrationState,
)

__all__ = [
    "PhaseStatus",
    "OrchestrationStatus",
    "ErrorCategory",
    "BackoffStrategy",
    "DecisionOption",
    "ArtifactType",
    "Complexity",
    "TERMINAL_STATUSES",
    "PHASE_TRANSITIONS",
    "can_transition",
    "Phase",
    "RequiredContext",
    "Artifact",
    "RetryAttempt",
    "PendingDecision",
    "RetryPolicy",
    "PhaseState",
    "OrchestrationState",
]
