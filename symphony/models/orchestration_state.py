"""OrchestrationState dataclass: the persisted document of one run.

The on-disk document is JSON with camelCase keys; the dataclasses here are
its in-memory form. ``from_dict`` rejects a structurally broken document
with ``StateFileError`` before anything is mutated.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from symphony import config
from symphony.errors import InvalidTransitionError, StateFileError
from symphony.models.enums import (
    ArtifactType, BackoffStrategy, DecisionOption, ErrorCategory,
    OrchestrationStatus, PhaseStatus, can_transition,
)
from symphony.models.phase import Phase


def _enum(enum_cls, value, where: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise StateFileError(
            f'Invalid value {value!r} for {where}') from None


def _optional_str(value, where: str) -> Optional[str]:
    if value is not None and not isinstance(value, str):
        raise StateFileError(f'{where} must be a string, got {value!r}')
    return value


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass
class Artifact:
    type: ArtifactType
    path: Optional[str] = None
    content: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Artifact":
        if not isinstance(data, dict):
            raise StateFileError(f'Artifact must be an object, got {data!r}')
        metadata = data.get('metadata') or {}
        if not isinstance(metadata, dict):
            raise StateFileError(
                f'artifact.metadata must be an object, got {metadata!r}')
        return cls(
            type=_enum(ArtifactType, data.get('type'), 'artifact.type'),
            path=_optional_str(data.get('path'), 'artifact.path'),
            content=_optional_str(data.get('content'), 'artifact.content'),
            metadata=dict(metadata),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = _drop_none({
            'type': self.type.value,
            'path': self.path,
            'content': self.content,
        })
        if self.metadata:
            data['metadata'] = dict(self.metadata)
        return data


@dataclass
class RetryAttempt:
    attempt_number: int
    started_at: str
    failed_at: str
    error: str
    error_category: ErrorCategory
    duration_ms: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryAttempt":
        if not isinstance(data, dict):
            raise StateFileError('retryHistory entry must be an object')
        return cls(
            attempt_number=int(data.get('attemptNumber', 0)),
            started_at=data.get('startedAt', ''),
            failed_at=data.get('failedAt', ''),
            error=data.get('error', ''),
            error_category=_enum(ErrorCategory,
                                 data.get('errorCategory', 'unknown'),
                                 'retryHistory.errorCategory'),
            duration_ms=int(data.get('durationMs', 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'attemptNumber': self.attempt_number,
            'startedAt': self.started_at,
            'failedAt': self.failed_at,
            'error': self.error,
            'errorCategory': self.error_category.value,
            'durationMs': self.duration_ms,
        }


@dataclass
class PendingDecision:
    phase_id: str
    error: str
    error_category: ErrorCategory
    retry_count: int
    asked_at: str
    options: List[DecisionOption] = field(
        default_factory=lambda: list(DecisionOption))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingDecision":
        if not isinstance(data, dict) or 'phaseId' not in data:
            raise StateFileError('pendingDecisions entry missing "phaseId"')
        return cls(
            phase_id=data['phaseId'],
            error=data.get('error', ''),
            error_category=_enum(ErrorCategory,
                                 data.get('errorCategory', 'unknown'),
                                 'pendingDecisions.errorCategory'),
            retry_count=int(data.get('retryCount', 0)),
            asked_at=data.get('askedAt', ''),
            options=[_enum(DecisionOption, o, 'pendingDecisions.options')
                     for o in data.get('options',
                                       [o.value for o in DecisionOption])],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'phaseId': self.phase_id,
            'error': self.error,
            'errorCategory': self.error_category.value,
            'retryCount': self.retry_count,
            'options': [o.value for o in self.options],
            'askedAt': self.asked_at,
        }


@dataclass
class RetryPolicy:
    max_retries: int
    backoff_strategy: BackoffStrategy
    initial_delay_ms: int
    max_delay_ms: int
    retryable_categories: List[ErrorCategory]

    @classmethod
    def default(cls) -> "RetryPolicy":
        return cls(
            max_retries=config.DEFAULT_MAX_RETRIES,
            backoff_strategy=BackoffStrategy(config.DEFAULT_BACKOFF_STRATEGY),
            initial_delay_ms=config.DEFAULT_INITIAL_DELAY_MS,
            max_delay_ms=config.DEFAULT_MAX_DELAY_MS,
            retryable_categories=[
                ErrorCategory.TRANSIENT, ErrorCategory.RESOURCE,
                ErrorCategory.TIMEOUT, ErrorCategory.UNKNOWN,
            ],
        )

    def is_retryable(self, category: ErrorCategory) -> bool:
        return category in self.retryable_categories

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryPolicy":
        if not isinstance(data, dict):
            raise StateFileError('"retryPolicy" must be an object')
        default = cls.default()
        categories = data.get('retryableCategories')
        return cls(
            max_retries=int(data.get('maxRetries', default.max_retries)),
            backoff_strategy=_enum(
                BackoffStrategy,
                data.get('backoffStrategy', default.backoff_strategy.value),
                'retryPolicy.backoffStrategy'),
            initial_delay_ms=int(data.get('initialDelayMs',
                                          default.initial_delay_ms)),
            max_delay_ms=int(data.get('maxDelayMs', default.max_delay_ms)),
            retryable_categories=(
                [_enum(ErrorCategory, c, 'retryPolicy.retryableCategories')
                 for c in categories]
                if categories is not None else default.retryable_categories),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'maxRetries': self.max_retries,
            'backoffStrategy': self.backoff_strategy.value,
            'initialDelayMs': self.initial_delay_ms,
            'maxDelayMs': self.max_delay_ms,
            'retryableCategories': [c.value for c in
                                    self.retryable_categories],
        }


@dataclass
class PhaseState:
    status: PhaseStatus = PhaseStatus.PENDING
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    error: Optional[str] = None
    artifacts: List[Artifact] = field(default_factory=list)
    retry_count: int = 0
    retry_history: List[RetryAttempt] = field(default_factory=list)
    last_error_category: Optional[ErrorCategory] = None
    next_retry_at: Optional[str] = None

    def transition_to(self, phase_id: str, status: PhaseStatus):
        if not can_transition(self.status, status):
            raise InvalidTransitionError(phase_id, self.status, status)
        self.status = status

    @classmethod
    def from_dict(cls, phase_id: str, data: Dict[str, Any]) -> "PhaseState":
        if not isinstance(data, dict):
            raise StateFileError(f'State for phase "{phase_id}" must be an '
                                 f'object')
        if 'status' not in data:
            raise StateFileError(f'State for phase "{phase_id}" missing '
                                 f'"status"')
        category = data.get('lastErrorCategory')
        return cls(
            status=_enum(PhaseStatus, data['status'],
                         f'phases.{phase_id}.status'),
            started_at=data.get('startedAt'),
            completed_at=data.get('completedAt'),
            error=data.get('error'),
            artifacts=[Artifact.from_dict(a)
                       for a in data.get('artifacts') or []],
            retry_count=int(data.get('retryCount', 0)),
            retry_history=[RetryAttempt.from_dict(r)
                           for r in data.get('retryHistory') or []],
            last_error_category=(
                _enum(ErrorCategory, category,
                      f'phases.{phase_id}.lastErrorCategory')
                if category is not None else None),
            next_retry_at=data.get('nextRetryAt'),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = _drop_none({
            'status': self.status.value,
            'startedAt': self.started_at,
            'completedAt': self.completed_at,
            'error': self.error,
        })
        data['artifacts'] = [a.to_dict() for a in self.artifacts]
        data['retryCount'] = self.retry_count
        data['retryHistory'] = [r.to_dict() for r in self.retry_history]
        if self.last_error_category is not None:
            data['lastErrorCategory'] = self.last_error_category.value
        if self.next_retry_at is not None:
            data['nextRetryAt'] = self.next_retry_at
        return data


@dataclass
class OrchestrationState:
    plan_path: str
    started_at: str
    plan_phases: List[Phase]
    phases: Dict[str, PhaseState]
    status: OrchestrationStatus = OrchestrationStatus.RUNNING
    completed_at: Optional[str] = None
    completed_count: int = 0
    failed_count: int = 0
    retry_policy: Optional[RetryPolicy] = None
    pending_decisions: List[PendingDecision] = field(default_factory=list)

    def effective_retry_policy(self) -> RetryPolicy:
        return self.retry_policy or RetryPolicy.default()

    def find_decision(self, phase_id: str) -> Optional[PendingDecision]:
        for decision in self.pending_decisions:
            if decision.phase_id == phase_id:
                return decision
        return None

    def remove_decision(self, phase_id: str):
        self.pending_decisions = [d for d in self.pending_decisions
                                  if d.phase_id != phase_id]

    def refresh_counts(self):
        statuses = [p.status for p in self.phases.values()]
        self.completed_count = statuses.count(PhaseStatus.COMPLETE)
        self.failed_count = statuses.count(PhaseStatus.FAILED)

    @classmethod
    def from_dict(cls, data: Any) -> "OrchestrationState":
        if not isinstance(data, dict):
            raise StateFileError('State file must contain a JSON object')
        phases = data.get('phases')
        if not isinstance(phases, dict):
            raise StateFileError('State file missing "phases" field')
        plan = data.get('plan')
        if not isinstance(plan, dict) or not isinstance(plan.get('phases'),
                                                        list):
            raise StateFileError('State file missing "plan.phases" array '
                                 'with phase definitions')
        try:
            plan_phases = [Phase.from_dict(p) for p in plan['phases']]
        except (KeyError, TypeError, AttributeError) as exc:
            raise StateFileError(
                f'Malformed phase definition in "plan.phases": {exc}') from exc
        policy = data.get('retryPolicy')
        return cls(
            plan_path=data.get('planPath', ''),
            started_at=data.get('startedAt', ''),
            plan_phases=plan_phases,
            phases={pid: PhaseState.from_dict(pid, ps)
                    for pid, ps in phases.items()},
            status=_enum(OrchestrationStatus, data.get('status', 'running'),
                         'status'),
            completed_at=data.get('completedAt'),
            completed_count=int(data.get('completedCount', 0)),
            failed_count=int(data.get('failedCount', 0)),
            retry_policy=(RetryPolicy.from_dict(policy)
                          if policy is not None else None),
            pending_decisions=[PendingDecision.from_dict(d)
                               for d in data.get('pendingDecisions') or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'planPath': self.plan_path,
            'startedAt': self.started_at,
        }
        if self.completed_at is not None:
            data['completedAt'] = self.completed_at
        data.update({
            'phases': {pid: ps.to_dict() for pid, ps in self.phases.items()},
            'plan': {'phases': [p.to_dict() for p in self.plan_phases]},
            'completedCount': self.completed_count,
            'failedCount': self.failed_count,
            'status': self.status.value,
        })
        if self.retry_policy is not None:
            data['retryPolicy'] = self.retry_policy.to_dict()
        data['pendingDecisions'] = [d.to_dict()
                                    for d in self.pending_decisions]
        return data
