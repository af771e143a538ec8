import random

import pytest

from symphony.errors import (
    CycleDetectedError, InvalidDependencyError, InvalidTransitionError,
)
from symphony.models import Artifact, ArtifactType, Phase, PhaseStatus
from symphony.scheduler import DependencyGraph, find_cycle

from conftest import make_phase


def _graph(raw_phases) -> DependencyGraph:
    return DependencyGraph([Phase.from_dict(p) for p in raw_phases])


def test_diamond_levels(diamond_phases):
    graph = _graph(diamond_phases)
    waves = [g.phases for g in graph.get_execution_order()]
    assert waves == [["a"], ["b", "c"], ["d"]]
    assert graph.get_topological_order() == ["a", "b", "c", "d"]


def test_ready_follows_completion(diamond_phases):
    graph = _graph(diamond_phases)
    assert graph.get_ready() == ["a"]
    graph.mark_complete("a")
    assert graph.get_ready() == ["b", "c"]
    graph.mark_complete("b")
    assert graph.get_ready() == ["c"]
    graph.mark_complete("c")
    assert graph.get_ready() == ["d"]


def test_artifacts_from_counts_as_dependency():
    graph = _graph([make_phase("a"), make_phase("b", artifacts_from=["a"])])
    assert graph.dependencies_of("b") == ["a"]
    assert graph.get_ready() == ["a"]
    waves = [g.phases for g in graph.get_execution_order()]
    assert waves == [["a"], ["b"]]


def _random_dag(rng: random.Random, size: int):
    phases = []
    for i in range(size):
        earlier = [f"p{j}" for j in range(i)]
        deps = rng.sample(earlier, k=rng.randint(0, min(3, len(earlier))))
        phases.append(make_phase(f"p{i}", deps))
    rng.shuffle(phases)
    return phases


def test_levels_place_dependencies_strictly_lower():
    rng = random.Random(7)
    for _ in range(25):
        graph = _graph(_random_dag(rng, rng.randint(1, 15)))
        level_of = {}
        for group in graph.get_execution_order():
            for pid in group.phases:
                level_of[pid] = group.level
        assert set(level_of) == set(graph.phase_ids)
        for pid in graph.phase_ids:
            for dep in graph.dependencies_of(pid):
                assert level_of[dep] < level_of[pid]


def _assert_valid_cycle(path, edges):
    assert len(path) >= 2
    assert path[0] == path[-1]
    for a, b in zip(path, path[1:]):
        assert b in edges[a]


def test_find_cycle_reports_a_real_cycle():
    edges = {"a": ["b"], "b": ["c"], "c": ["a"], "d": ["a"]}
    cycle = find_cycle(edges)
    _assert_valid_cycle(cycle, edges)


def test_find_cycle_on_acyclic_graph():
    assert find_cycle({"a": [], "b": ["a"], "c": ["a", "b"]}) is None


def test_find_cycle_matches_random_graphs():
    rng = random.Random(11)
    for _ in range(50):
        nodes = [f"n{i}" for i in range(rng.randint(1, 8))]
        edges = {n: [m for m in nodes if rng.random() < 0.2]
                 for n in nodes}
        cycle = find_cycle(edges)
        if cycle is not None:
            _assert_valid_cycle(cycle, edges)
        else:
            # acyclic: a depth-first order exists with every edge pointing back
            order = []
            seen = set()

            def visit(node):
                if node in seen:
                    return
                seen.add(node)
                for dep in edges[node]:
                    visit(dep)
                order.append(node)

            for node in nodes:
                visit(node)
            position = {n: i for i, n in enumerate(order)}
            for node, deps in edges.items():
                for dep in deps:
                    assert position[dep] < position[node]


def test_execution_order_rejects_cycles_and_unknown_ids():
    graph = _graph([make_phase("a", ["b"]), make_phase("b", ["a"])])
    assert graph.detect_cycle().has_cycle
    with pytest.raises(CycleDetectedError) as excinfo:
        graph.get_execution_order()
    assert excinfo.value.cycle_path[0] == excinfo.value.cycle_path[-1]

    with pytest.raises(InvalidDependencyError):
        _graph([make_phase("a", ["ghost"])]).get_execution_order()


def test_failure_blocks_transitive_dependents_only(diamond_phases):
    graph = _graph(diamond_phases + [make_phase("e")])
    graph.mark_complete("a")
    blocked = graph.mark_failed("b", "boom")
    assert blocked == ["d"]
    assert graph.status_of("c") == PhaseStatus.PENDING
    assert graph.status_of("e") == PhaseStatus.PENDING
    assert graph.status_of("d") == PhaseStatus.BLOCKED


def test_blocking_skips_started_and_terminal_dependents():
    graph = _graph([
        make_phase("a"),
        make_phase("b", ["a"]),
        make_phase("c", ["a"]),
        make_phase("d", ["c"]),
    ])
    graph.mark_running("a")
    graph.mark_running("b")
    blocked = graph.mark_aborted("a")
    assert graph.status_of("b") == PhaseStatus.RUNNING
    assert sorted(blocked) == ["c", "d"]


def test_long_chain_cascade_is_iterative():
    size = 3000
    phases = [make_phase("p0")] + [
        make_phase(f"p{i}", [f"p{i - 1}"]) for i in range(1, size)]
    graph = _graph(phases)
    blocked = graph.mark_failed("p0", "boom")
    assert len(blocked) == size - 1


def test_artifacts_are_deduplicated_and_tagged():
    graph = _graph([
        make_phase("a"),
        make_phase("b"),
        make_phase("c", ["a"], artifacts_from=["b"]),
    ])
    graph.mark_complete("a", [
        Artifact(ArtifactType.FILE_CREATED, path="src/x.py"),
        Artifact(ArtifactType.NOTE, content="remember"),
    ])
    graph.mark_complete("b", [
        Artifact(ArtifactType.FILE_MODIFIED, path="src/x.py"),
        Artifact(ArtifactType.EXPORT, path="src/y.py"),
    ])
    artifacts = graph.get_artifacts_for_phase("c")
    assert [(a.path, a.metadata["sourcePhase"]) for a in artifacts] == [
        ("src/x.py", "a"), (None, "a"), ("src/y.py", "b")]


def test_terminal_status_cannot_be_left(diamond_phases):
    graph = _graph(diamond_phases)
    graph.mark_failed("a", "boom")
    with pytest.raises(InvalidTransitionError):
        graph.mark_running("a")
    with pytest.raises(InvalidTransitionError):
        graph.mark_complete("d")
