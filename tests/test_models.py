import json

import pytest

from symphony.errors import InvalidTransitionError, StateFileError
from symphony.models import (
    OrchestrationState, PhaseState, PhaseStatus, TERMINAL_STATUSES,
    can_transition,
)


def test_terminal_statuses_have_no_exits_except_idempotent_complete():
    for status in TERMINAL_STATUSES:
        targets = [t for t in PhaseStatus if can_transition(status, t)]
        if status == PhaseStatus.COMPLETE:
            assert targets == [PhaseStatus.COMPLETE]
        else:
            assert targets == []


def test_decision_exits():
    allowed = {t for t in PhaseStatus
               if can_transition(PhaseStatus.AWAITING_DECISION, t)}
    assert allowed == {PhaseStatus.READY, PhaseStatus.COMPLETE,
                       PhaseStatus.ABORTED}


def test_running_cannot_be_blocked():
    assert not can_transition(PhaseStatus.RUNNING, PhaseStatus.BLOCKED)
    state = PhaseState(status=PhaseStatus.RUNNING)
    with pytest.raises(InvalidTransitionError) as excinfo:
        state.transition_to("build", PhaseStatus.BLOCKED)
    assert str(excinfo.value) == \
        "[build] Invalid state transition: running -> blocked"


def test_document_keeps_camel_case_layout(orch, state_path):
    raw = json.loads(state_path.read_text())
    state = OrchestrationState.from_dict(raw)
    assert state.to_dict() == raw
    assert list(raw)[:3] == ["planPath", "startedAt", "phases"]


def test_retry_policy_defaults_fill_missing_fields():
    raw = {
        "planPath": "p.md", "startedAt": "2024-01-01T00:00:00.000Z",
        "phases": {}, "plan": {"phases": []}, "retryPolicy": {"maxRetries": 5},
    }
    policy = OrchestrationState.from_dict(raw).retry_policy
    assert policy.max_retries == 5
    assert policy.backoff_strategy.value == "exponential-jitter"


def test_bad_artifact_type_is_a_state_error():
    with pytest.raises(StateFileError):
        PhaseState.from_dict("a", {"status": "complete",
                                   "artifacts": [{"type": "poem"}]})
