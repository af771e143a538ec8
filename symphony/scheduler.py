"""Dependency graph over plan phases.

Edges are the union of a phase's explicit ``dependencies`` and its
``required_context.artifacts_from`` sources. The graph answers readiness,
levels phases into parallel-safe waves, detects cycles (Kahn's algorithm,
then a depth-first search over the unprocessed remainder to name one
concrete cycle), and applies the failure/abort blocking cascade.

Readiness is computed lazily by ``is_ready``; completing a phase never
rewrites its dependents' statuses. Every mutation path consults the same
predicate.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Iterable, List, Mapping, Optional, Set

from symphony.errors import (
    CycleDetectedError, InvalidDependencyError, PhaseNotFoundError,
)
from symphony.models import (
    Artifact, Phase, PhaseState, PhaseStatus, can_transition,
)
from symphony.utils import utc_now_iso

RUNNABLE_STATUSES = frozenset({PhaseStatus.PENDING, PhaseStatus.READY})


@dataclass
class ParallelGroup:
    level: int
    phases: List[str]

    def to_dict(self):
        return {'level': self.level, 'phases': list(self.phases)}


@dataclass
class CycleDetectionResult:
    has_cycle: bool
    cycle_path: List[str] = field(default_factory=list)


def find_cycle(dependencies: Mapping[str, Iterable[str]]) -> Optional[List[str]]:
    """Return one cycle of the graph ``node -> its dependencies``, or None.

    Nodes referenced but not declared as keys are ignored. A returned path
    starts and ends with the same node and each consecutive pair
    ``(a, b)`` is an edge "a depends on b".
    """
    deps = {node: [d for d in targets if d in dependencies]
            for node, targets in dependencies.items()}
    dependents: Dict[str, List[str]] = {node: [] for node in deps}
    in_degree = {node: len(set(targets)) for node, targets in deps.items()}
    for node, targets in deps.items():
        for dep in set(targets):
            dependents[dep].append(node)

    queue: Deque[str] = deque(n for n, degree in in_degree.items()
                              if degree == 0)
    processed: Set[str] = set()
    while queue:
        current = queue.popleft()
        processed.add(current)
        for dependent in dependents[current]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    if len(processed) == len(deps):
        return None

    remaining = [n for n in deps if n not in processed]
    remaining_set = set(remaining)
    visited: Set[str] = set()

    # iterative DFS restricted to the unprocessed nodes
    for root in remaining:
        if root in visited:
            continue
        path: List[str] = [root]
        on_path = {root}
        visited.add(root)
        stack = [iter([d for d in deps[root] if d in remaining_set])]
        while stack:
            nxt = next(stack[-1], None)
            if nxt is None:
                stack.pop()
                on_path.discard(path.pop())
                continue
            if nxt in on_path:
                return path[path.index(nxt):] + [nxt]
            if nxt in visited:
                continue
            visited.add(nxt)
            path.append(nxt)
            on_path.add(nxt)
            stack.append(iter([d for d in deps[nxt] if d in remaining_set]))

    # every unprocessed node lies on or behind a cycle, so this is unreachable
    return remaining + remaining[:1]


class DependencyGraph:
    """In-memory DAG of phases with their runtime states."""

    def __init__(self, phases: Optional[Iterable[Phase]] = None,
                 states: Optional[Dict[str, PhaseState]] = None):
        self._phases: Dict[str, Phase] = {}
        self._dependencies: Dict[str, List[str]] = {}
        self._dependents: Dict[str, List[str]] = {}
        # shared with the document when built via from_state
        self._states: Dict[str, PhaseState] = states if states is not None \
            else {}
        for phase in phases or []:
            self.add_phase(phase)

    @classmethod
    def from_state(cls, state) -> "DependencyGraph":
        """Build a graph view over an ``OrchestrationState``.

        Phase states are shared by reference, so status changes made
        through the graph land in the document.
        """
        for phase in state.plan_phases:
            state.phases.setdefault(phase.id, PhaseState())
        return cls(state.plan_phases, state.phases)

    # -- structure ------------------------------------------------------------

    def add_phase(self, phase: Phase):
        self._phases[phase.id] = phase
        self._states.setdefault(phase.id, PhaseState())
        self._dependencies[phase.id] = phase.all_dependencies
        self._dependents.setdefault(phase.id, [])
        for dep_id in phase.all_dependencies:
            dependents = self._dependents.setdefault(dep_id, [])
            if phase.id not in dependents:
                dependents.append(phase.id)

    def __len__(self) -> int:
        return len(self._phases)

    @property
    def phase_ids(self) -> List[str]:
        return list(self._phases)

    def get_phase(self, phase_id: str) -> Phase:
        if phase_id not in self._phases:
            raise PhaseNotFoundError(phase_id, self.phase_ids)
        return self._phases[phase_id]

    def state_of(self, phase_id: str) -> PhaseState:
        self.get_phase(phase_id)
        return self._states[phase_id]

    def status_of(self, phase_id: str) -> PhaseStatus:
        return self.state_of(phase_id).status

    def dependencies_of(self, phase_id: str) -> List[str]:
        self.get_phase(phase_id)
        return list(self._dependencies[phase_id])

    def dependents_of(self, phase_id: str) -> List[str]:
        """Direct dependents over the combined edge set."""
        self.get_phase(phase_id)
        return [d for d in self._dependents.get(phase_id, [])
                if d in self._phases]

    def descendants_of(self, phase_id: str) -> List[str]:
        """All transitive dependents, breadth-first."""
        seen: Set[str] = set()
        order: List[str] = []
        queue: Deque[str] = deque(self.dependents_of(phase_id))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            order.append(current)
            queue.extend(self._dependents.get(current, []))
        return order

    # -- validation -----------------------------------------------------------

    def validate_dependencies(self):
        for phase_id, deps in self._dependencies.items():
            for dep_id in deps:
                if dep_id not in self._phases:
                    raise InvalidDependencyError(phase_id, dep_id)

    def detect_cycle(self) -> CycleDetectionResult:
        cycle = find_cycle(self._dependencies)
        if cycle is None:
            return CycleDetectionResult(has_cycle=False)
        return CycleDetectionResult(has_cycle=True, cycle_path=cycle)

    def assert_no_cycles(self):
        result = self.detect_cycle()
        if result.has_cycle:
            raise CycleDetectedError(result.cycle_path)

    # -- readiness ------------------------------------------------------------

    def unmet_dependencies(self, phase_id: str) -> List[str]:
        return [d for d in self.dependencies_of(phase_id)
                if d not in self._phases
                or self._states[d].status != PhaseStatus.COMPLETE]

    def is_ready(self, phase_id: str) -> bool:
        """Runnable status and every combined dependency complete."""
        return (self.status_of(phase_id) in RUNNABLE_STATUSES
                and not self.unmet_dependencies(phase_id))

    def get_ready(self) -> List[str]:
        return [pid for pid in self._phases if self.is_ready(pid)]

    def get_artifacts_for_phase(self, phase_id: str) -> List[Artifact]:
        """Artifacts of completed dependencies, deduplicated by path.

        Each copy is tagged with ``metadata.sourcePhase``. Artifacts without
        a path are never deduplicated.
        """
        artifacts: List[Artifact] = []
        seen_paths: Set[str] = set()
        for source_id in self.dependencies_of(phase_id):
            source = self._states.get(source_id)
            if source is None or source.status != PhaseStatus.COMPLETE:
                continue
            for artifact in source.artifacts:
                if artifact.path:
                    if artifact.path in seen_paths:
                        continue
                    seen_paths.add(artifact.path)
                artifacts.append(Artifact(
                    type=artifact.type,
                    path=artifact.path,
                    content=artifact.content,
                    metadata={**artifact.metadata, 'sourcePhase': source_id},
                ))
        return artifacts

    # -- ordering -------------------------------------------------------------

    def get_execution_order(self) -> List[ParallelGroup]:
        """Group phases into waves; each wave depends only on earlier ones."""
        self.validate_dependencies()
        self.assert_no_cycles()

        levels: Dict[str, int] = {}
        queue: Deque[str] = deque()
        for phase_id, deps in self._dependencies.items():
            if not deps:
                levels[phase_id] = 0
                queue.append(phase_id)

        while queue:
            current = queue.popleft()
            for dependent in self._dependents.get(current, []):
                if dependent in levels:
                    continue
                dep_levels = [levels.get(d) for d in
                              self._dependencies[dependent]]
                if any(level is None for level in dep_levels):
                    continue
                levels[dependent] = max(dep_levels) + 1
                queue.append(dependent)

        groups: Dict[int, List[str]] = {}
        for phase_id, level in levels.items():
            groups.setdefault(level, []).append(phase_id)
        return [ParallelGroup(level=level, phases=sorted(groups[level]))
                for level in sorted(groups)]

    def get_topological_order(self) -> List[str]:
        order: List[str] = []
        for group in self.get_execution_order():
            order.extend(group.phases)
        return order

    # -- transitions ----------------------------------------------------------

    def transition(self, phase_id: str, status: PhaseStatus) -> PhaseState:
        state = self.state_of(phase_id)
        state.transition_to(phase_id, status)
        return state

    def mark_running(self, phase_id: str):
        state = self.transition(phase_id, PhaseStatus.RUNNING)
        state.started_at = utc_now_iso()
        state.next_retry_at = None

    def mark_complete(self, phase_id: str,
                      artifacts: Optional[List[Artifact]] = None):
        state = self.transition(phase_id, PhaseStatus.COMPLETE)
        state.completed_at = utc_now_iso()
        state.artifacts = list(artifacts or [])
        state.error = None
        state.next_retry_at = None

    def mark_failed(self, phase_id: str, error: str) -> List[str]:
        state = self.transition(phase_id, PhaseStatus.FAILED)
        state.completed_at = utc_now_iso()
        state.error = error
        state.next_retry_at = None
        return self.block_dependents(phase_id)

    def mark_aborted(self, phase_id: str) -> List[str]:
        state = self.transition(phase_id, PhaseStatus.ABORTED)
        state.completed_at = utc_now_iso()
        state.next_retry_at = None
        return self.block_dependents(phase_id)

    def block_dependents(self, phase_id: str) -> List[str]:
        """Block every transitive dependent that has not yet started.

        Walks the reverse-adjacency map iteratively; returns the ids that
        changed to blocked, in traversal order.
        """
        blocked: List[str] = []
        for dependent in self.descendants_of(phase_id):
            state = self._states[dependent]
            if can_transition(state.status, PhaseStatus.BLOCKED):
                state.transition_to(dependent, PhaseStatus.BLOCKED)
                blocked.append(dependent)
        return blocked

    # -- summaries ------------------------------------------------------------

    def status_counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in PhaseStatus}
        for phase_id in self._phases:
            counts[self._states[phase_id].status.value] += 1
        return counts

    def __str__(self) -> str:
        counts = self.status_counts()
        lines = [
            "DependencyGraph:",
            f"  Phases: {len(self)} ({counts['complete']} complete, "
            f"{counts['running']} running, {counts['pending']} pending)",
        ]
        for phase_id, deps in self._dependencies.items():
            suffix = f" <- [{', '.join(deps)}]" if deps else ""
            lines.append(f"  - {phase_id} "
                         f"({self._states[phase_id].status.value}){suffix}")
        return "\n".join(lines)
