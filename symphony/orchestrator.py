"""Lock-guarded state mutations over one orchestration document.

Every operation is an independent unit: acquire the lock keyed on the
document path, load and parse the whole document, apply exactly one
transition through the dependency graph, recompute counts and the overall
status, write the document atomically and release the lock. Nothing lives
in memory between invocations.
"""

import json
import os
import sys
from contextlib import contextmanager
from functools import partial
from typing import Any, Callable, Dict, Iterator, List, Optional

from symphony.backoff import calculate_backoff
from symphony.classifier import classify_error
from symphony.errors import (
    DecisionError, PhaseNotReadyError, StateFileError, UsageError,
)
from symphony.file_lock import FileLock
from symphony.models import (
    Artifact, ArtifactType, DecisionOption, OrchestrationState,
    OrchestrationStatus, PendingDecision, Phase, PhaseState, PhaseStatus,
    RetryAttempt, RetryPolicy, TERMINAL_STATUSES, can_transition,
)
from symphony.notifier import DecisionNotifier
from symphony.plan import load_plan
from symphony.scheduler import RUNNABLE_STATUSES, DependencyGraph
from symphony.utils import (
    atomic_write_text, elapsed_ms, iso_after_ms, to_iso, utc_now,
    utc_now_iso,
)

SKIPPED_NOTE = 'Phase skipped by user after retry failure'

FINISHED_RUN_STATUSES = frozenset({
    OrchestrationStatus.COMPLETED, OrchestrationStatus.FAILED,
    OrchestrationStatus.ABORTED,
})


def parse_artifacts(raw: Optional[str]) -> List[Artifact]:
    """Parse a JSON array of artifacts supplied on the command line."""
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise UsageError(f'Invalid artifacts JSON: {exc}') from exc
    if not isinstance(data, list):
        raise UsageError('Artifacts must be a JSON array')
    artifacts = []
    for item in data:
        try:
            artifacts.append(Artifact.from_dict(item))
        except StateFileError as exc:
            valid = ', '.join(t.value for t in ArtifactType)
            raise UsageError(f'Invalid artifact: {exc} (valid types: '
                             f'{valid})') from exc
    return artifacts


def plan_execution_order(phases: List[Phase]) -> Dict[str, Any]:
    graph = DependencyGraph(phases)
    levels = graph.get_execution_order()
    return {
        'levels': [group.to_dict() for group in levels],
        'order': [pid for group in levels for pid in group.phases],
    }


def refresh_orchestration_status(state: OrchestrationState):
    """Recompute counts and the overall status from the phase statuses.

    Called before every write, so counts always equal the status tallies.
    """
    state.refresh_counts()
    statuses = [ps.status for ps in state.phases.values()]

    if state.status == OrchestrationStatus.ABORTED:
        pass
    elif statuses and all(s == PhaseStatus.COMPLETE for s in statuses):
        state.status = OrchestrationStatus.COMPLETED
    elif state.pending_decisions:
        state.status = OrchestrationStatus.AWAITING_USER_DECISION
    elif PhaseStatus.FAILED in statuses:
        state.status = OrchestrationStatus.FAILED
    elif (all(s in TERMINAL_STATUSES for s in statuses)
          and any(s in (PhaseStatus.ABORTED, PhaseStatus.BLOCKED)
                  for s in statuses)):
        state.status = OrchestrationStatus.ABORTED
    else:
        state.status = OrchestrationStatus.RUNNING

    if state.status in FINISHED_RUN_STATUSES:
        if state.completed_at is None:
            state.completed_at = utc_now_iso()
    else:
        state.completed_at = None


class Orchestrator:
    """Applies state-machine transitions to the document at *state_path*.

    *lock_factory* is called with the document path and must return a
    context manager that holds an exclusive lease while entered.
    """

    def __init__(self, state_path: str,
                 lock_factory: Optional[Callable[[str], Any]] = None,
                 notifier: Optional[DecisionNotifier] = None,
                 debug: bool = False):
        self.state_path = state_path
        self.lock_factory = lock_factory or partial(FileLock, debug=debug)
        self.notifier = notifier
        self.debug = debug

    def _dbg(self, msg: str):
        if self.debug:
            print(f"[SYMPHONY] {msg}", file=sys.stderr)

    # -- state persistence ----------------------------------------------------

    def _load_state(self) -> OrchestrationState:
        try:
            with open(self.state_path, 'r', encoding='utf-8') as f:
                content = f.read()
        except FileNotFoundError:
            raise StateFileError(
                f'State file not found: {self.state_path}') from None
        except (OSError, UnicodeDecodeError) as exc:
            raise StateFileError(f'Error reading state file: {exc}') from exc

        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise StateFileError(
                f'Invalid JSON in state file: {exc}') from exc

        try:
            return OrchestrationState.from_dict(data)
        except (TypeError, ValueError) as exc:
            raise StateFileError(f'Malformed state file: {exc}') from exc

    def _save_state(self, state: OrchestrationState):
        atomic_write_text(self.state_path,
                          json.dumps(state.to_dict(), indent=2) + '\n')
        self._dbg(f"wrote {self.state_path} (status={state.status.value}, "
                  f"{state.completed_count} complete, "
                  f"{state.failed_count} failed)")

    @contextmanager
    def _transaction(self) -> Iterator[OrchestrationState]:
        """Hold the lock across load, mutation and write.

        If the body raises, nothing is written.
        """
        with self.lock_factory(self.state_path):
            state = self._load_state()
            yield state
            refresh_orchestration_status(state)
            self._save_state(state)

    def _read(self) -> OrchestrationState:
        with self.lock_factory(self.state_path):
            return self._load_state()

    def _require_dependencies(self, graph: DependencyGraph, phase_id: str):
        """A pending/ready phase may only start once its inputs exist."""
        if graph.status_of(phase_id) not in RUNNABLE_STATUSES:
            return
        waiting = graph.unmet_dependencies(phase_id)
        if waiting:
            raise PhaseNotReadyError(phase_id, waiting)

    # -- init -----------------------------------------------------------------

    def init(self, plan_path: str, force: bool = False,
             retry_policy: Optional[RetryPolicy] = None) -> Dict[str, Any]:
        """Validate the plan and create a fresh document for it."""
        phases = load_plan(plan_path)

        directory = os.path.dirname(os.path.abspath(self.state_path))
        os.makedirs(directory, exist_ok=True)

        with self.lock_factory(self.state_path):
            if os.path.exists(self.state_path) and not force:
                raise StateFileError(
                    f'State file already exists: {self.state_path} '
                    f'(use --force to overwrite)')
            state = OrchestrationState(
                plan_path=os.path.abspath(plan_path),
                started_at=utc_now_iso(),
                plan_phases=phases,
                phases={phase.id: PhaseState() for phase in phases},
                retry_policy=retry_policy or RetryPolicy.default(),
            )
            refresh_orchestration_status(state)
            self._save_state(state)

        print(f"[SYMPHONY] Initialised {len(phases)} phase(s) from "
              f"{plan_path}", file=sys.stderr)
        return {'success': True, 'statePath': self.state_path,
                'phaseCount': len(phases)}

    # -- read-only queries ----------------------------------------------------

    def get_ready(self) -> List[Dict[str, Any]]:
        """Ready phases, each with the artifacts of its dependencies."""
        graph = DependencyGraph.from_state(self._read())
        self._dbg(str(graph))
        return [
            {
                'phase': graph.get_phase(pid).to_dict(),
                'artifacts': [a.to_dict()
                              for a in graph.get_artifacts_for_phase(pid)],
            }
            for pid in graph.get_ready()
        ]

    def execution_order(self) -> Dict[str, Any]:
        return plan_execution_order(self._read().plan_phases)

    # -- transitions ----------------------------------------------------------

    def mark_running(self, phase_id: str) -> Dict[str, Any]:
        with self._transaction() as state:
            graph = DependencyGraph.from_state(state)
            self._require_dependencies(graph, phase_id)
            graph.mark_running(phase_id)
            phase_state = graph.state_of(phase_id)
        self._dbg(f"{phase_id} -> running")
        return {
            'success': True,
            'phaseId': phase_id,
            'status': phase_state.status.value,
            'startedAt': phase_state.started_at,
            'retryCount': phase_state.retry_count,
            'orchestrationStatus': state.status.value,
        }

    def mark_complete(self, phase_id: str,
                      artifacts: Optional[List[Artifact]] = None
                      ) -> Dict[str, Any]:
        """Complete *phase_id*; repeating the call does not recount it."""
        artifacts = list(artifacts or [])
        with self._transaction() as state:
            graph = DependencyGraph.from_state(state)
            self._require_dependencies(graph, phase_id)
            graph.mark_complete(phase_id, artifacts)
            state.remove_decision(phase_id)
            phase_state = graph.state_of(phase_id)
        self._dbg(f"{phase_id} -> complete with {len(artifacts)} artifact(s)")
        return {
            'success': True,
            'phaseId': phase_id,
            'status': PhaseStatus.COMPLETE.value,
            'completedAt': phase_state.completed_at,
            'artifactsCount': len(artifacts),
            'completedCount': state.completed_count,
            'orchestrationStatus': state.status.value,
        }

    def record_failure(self, phase_id: str, error: str, force: bool = False,
                       no_retry: bool = False,
                       bypass: bool = False) -> Dict[str, Any]:
        """Route a phase failure through the retry policy.

        Returns ``action`` = ``scheduled_retry`` (status retrying, dependents
        untouched), ``awaiting_decision`` (a PendingDecision is registered)
        or, with *bypass*, ``failed`` (dependents cascaded to blocked).
        *force* treats any category as retryable; *no_retry* skips the
        retry budget and asks for a decision straight away.
        """
        decision: Optional[PendingDecision] = None
        with self._transaction() as state:
            graph = DependencyGraph.from_state(state)
            phase_state = graph.state_of(phase_id)
            self._require_dependencies(graph, phase_id)

            classification = classify_error(error)
            category = classification.category
            policy = state.effective_retry_policy()
            now = utc_now()
            attempt = RetryAttempt(
                attempt_number=phase_state.retry_count,
                started_at=phase_state.started_at or to_iso(now),
                failed_at=to_iso(now),
                error=error,
                error_category=category,
                duration_ms=elapsed_ms(phase_state.started_at, now),
            )
            retryable = force or policy.is_retryable(category)
            result: Dict[str, Any] = {
                'success': True,
                'phaseId': phase_id,
                'errorCategory': category.value,
            }

            if bypass:
                blocked = graph.mark_failed(phase_id, error)
                phase_state.retry_history.append(attempt)
                phase_state.last_error_category = category
                state.remove_decision(phase_id)
                result.update({
                    'action': 'failed',
                    'retryCount': phase_state.retry_count,
                    'blockedPhases': blocked,
                    'message': f'Phase failed, {len(blocked)} dependent '
                               f'phase(s) blocked',
                })
            elif (retryable and not no_retry
                  and phase_state.retry_count < policy.max_retries):
                # backoff is keyed on the attempt index before the increment
                delay_ms = calculate_backoff(phase_state.retry_count, policy)
                graph.transition(phase_id, PhaseStatus.RETRYING)
                phase_state.retry_history.append(attempt)
                phase_state.retry_count += 1
                phase_state.error = error
                phase_state.last_error_category = category
                phase_state.next_retry_at = iso_after_ms(delay_ms, now)
                phase_state.started_at = None
                phase_state.completed_at = None
                result.update({
                    'action': 'scheduled_retry',
                    'retryCount': phase_state.retry_count,
                    'delayMs': delay_ms,
                    'nextRetryAt': phase_state.next_retry_at,
                })
            else:
                if no_retry:
                    reason = 'retry_disabled'
                    message = 'Retry disabled, awaiting user decision'
                elif not retryable:
                    reason = 'not_retryable'
                    message = (f"Error category '{category.value}' is not "
                               f"retryable, awaiting user decision")
                else:
                    reason = 'retries_exhausted'
                    message = 'Max retries exceeded, awaiting user decision'
                graph.transition(phase_id, PhaseStatus.AWAITING_DECISION)
                phase_state.retry_history.append(attempt)
                phase_state.error = error
                phase_state.last_error_category = category
                phase_state.next_retry_at = None
                decision = PendingDecision(
                    phase_id=phase_id,
                    error=error,
                    error_category=category,
                    retry_count=phase_state.retry_count,
                    asked_at=to_iso(now),
                )
                state.remove_decision(phase_id)
                state.pending_decisions.append(decision)
                result.update({
                    'action': 'awaiting_decision',
                    'reason': reason,
                    'retryCount': phase_state.retry_count,
                    'message': message,
                })

        result['failedCount'] = state.failed_count
        result['orchestrationStatus'] = state.status.value
        self._dbg(f"{phase_id} failure ({category.value}) -> "
                  f"{result['action']}")

        # after the lock is released; a slow webhook must not hold it
        if decision is not None and self.notifier is not None:
            self.notifier.notify_decision(self.state_path, decision.to_dict())
        return result

    def resolve_decision(self, phase_id: str, decision: str) -> Dict[str, Any]:
        """Apply a user decision to a phase awaiting one.

        ``abort_all`` aborts every phase that can still move to aborted.
        Failed and blocked phases are already terminal and keep their status;
        the result lists them under ``unchangedPhases``.
        """
        try:
            option = DecisionOption(decision)
        except ValueError:
            valid = ', '.join(o.value for o in DecisionOption)
            raise UsageError(f'Invalid decision "{decision}". Valid '
                             f'decisions: {valid}') from None

        blocked: List[str] = []
        aborted: List[str] = []
        unchanged: List[str] = []
        warnings: List[str] = []
        with self._transaction() as state:
            graph = DependencyGraph.from_state(state)
            phase_state = graph.state_of(phase_id)
            if phase_state.status != PhaseStatus.AWAITING_DECISION:
                raise DecisionError(
                    f'Phase "{phase_id}" is not awaiting a decision '
                    f'(current status: {phase_state.status.value})')
            if state.find_decision(phase_id) is None:
                raise DecisionError(
                    f'Phase "{phase_id}" not found in pendingDecisions')

            if option == DecisionOption.RETRY_ONCE_MORE:
                # retryCount is kept, so the next failure asks again
                graph.transition(phase_id, PhaseStatus.READY)
                phase_state.error = None
                phase_state.next_retry_at = None
                state.remove_decision(phase_id)
                message = 'Phase set to ready for one more retry attempt'

            elif option == DecisionOption.SKIP_PHASE:
                graph.mark_complete(phase_id, phase_state.artifacts + [
                    Artifact(type=ArtifactType.NOTE, content=SKIPPED_NOTE)])
                expecting = graph.dependents_of(phase_id)
                if expecting:
                    warnings.append(
                        f"Phase '{phase_id}' was skipped. The following "
                        f"phases may fail due to missing artifacts: "
                        f"{', '.join(expecting)}")
                state.remove_decision(phase_id)
                message = 'Phase skipped, dependents unblocked'

            elif option == DecisionOption.ABORT_BRANCH:
                blocked = graph.mark_aborted(phase_id)
                aborted.append(phase_id)
                state.remove_decision(phase_id)
                message = (f'Phase aborted, {len(blocked)} dependent '
                           f'phase(s) blocked')

            else:
                now = utc_now_iso()
                unchanged = [pid for pid in graph.phase_ids
                             if graph.state_of(pid).status in (
                                 PhaseStatus.FAILED, PhaseStatus.BLOCKED)]
                for pid in [phase_id] + [p for p in graph.phase_ids
                                         if p != phase_id]:
                    other = graph.state_of(pid)
                    if can_transition(other.status, PhaseStatus.ABORTED):
                        graph.transition(pid, PhaseStatus.ABORTED)
                        other.completed_at = now
                        other.next_retry_at = None
                        aborted.append(pid)
                state.pending_decisions = []
                state.status = OrchestrationStatus.ABORTED
                message = f'All phases aborted ({len(aborted)} total)'
                if unchanged:
                    message += (f'; {len(unchanged)} failed or blocked '
                                f'phase(s) left as they were')

        for warning in warnings:
            print(f"[SYMPHONY] Warning: {warning}", file=sys.stderr)

        result: Dict[str, Any] = {
            'success': True,
            'phaseId': phase_id,
            'decision': option.value,
            'message': message,
        }
        if blocked:
            result['blockedPhases'] = blocked
        if aborted:
            result['abortedPhases'] = aborted
        if unchanged:
            result['unchangedPhases'] = unchanged
        if warnings:
            result['warnings'] = warnings
        result['orchestrationStatus'] = state.status.value
        return result
