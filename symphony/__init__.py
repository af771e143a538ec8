"""Symphony: dependency-ordered orchestration of multi-phase plans, with a
crash-safe shared state document, retry/backoff and human-in-the-loop
decisions."""

from symphony.config import (
    STATE_FILE_NAME, PLANS_DIR, PHASES_BLOCK_LABEL,
    LOCK_TIMEOUT_SECONDS, LOCK_STALE_SECONDS,
    DEFAULT_MAX_RETRIES, DEFAULT_BACKOFF_STRATEGY,
    DECISION_WEBHOOK_URL,
)
from symphony.errors import (
    SymphonyError, UsageError, PlanError, PlanValidationError,
    StateFileError, PhaseNotFoundError, InvalidDependencyError,
    CycleDetectedError, InvalidTransitionError, PhaseNotReadyError,
    DecisionError, LockTimeoutError,
)
from symphony.models import (
    PhaseStatus, OrchestrationStatus, ErrorCategory, BackoffStrategy,
    DecisionOption, ArtifactType, Phase, PhaseState, Artifact,
    RetryPolicy, OrchestrationState,
)
from symphony.classifier import classify_error
from symphony.backoff import calculate_backoff
from symphony.file_lock import FileLock
from symphony.scheduler import DependencyGraph
from symphony.validation import validate_phases, validate_phase_id
from symphony.plan import load_plan, find_latest_plan
from symphony.orchestrator import Orchestrator
from symphony.statusline import render_statusline
from symphony.cli import main
