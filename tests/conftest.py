import json
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from symphony.orchestrator import Orchestrator


def make_phase(phase_id: str, dependencies: Optional[List[str]] = None,
               artifacts_from: Optional[List[str]] = None, **overrides) -> Dict:
    phase = {
        "id": phase_id,
        "title": f"Phase {phase_id}",
        "objective": f"Do the work of {phase_id}",
        "tasks": [f"task for {phase_id}"],
        "dependencies": list(dependencies or []),
        "complexity": "medium",
        "required_context": {
            "files": [],
            "concepts": [],
            "artifacts_from": list(artifacts_from or []),
        },
        "success_criteria": f"{phase_id} done",
    }
    phase.update(overrides)
    return phase


def plan_markdown(phases: List[Dict]) -> str:
    return (
        "# Plan\n\nSome prose.\n\n"
        "```symphony-phases\n"
        f"{json.dumps(phases, indent=2)}\n"
        "```\n"
    )


def write_plan(path: Path, phases: List[Dict]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(plan_markdown(phases), encoding="utf-8")
    return path


def read_state(path: Path) -> Dict:
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def diamond_phases() -> List[Dict]:
    """A; B and C depend on A; D depends on B and C."""
    return [
        make_phase("a"),
        make_phase("b", ["a"]),
        make_phase("c", ["a"]),
        make_phase("d", ["b", "c"]),
    ]


@pytest.fixture
def plan_file(tmp_path: Path, diamond_phases) -> Path:
    return write_plan(tmp_path / "plan.md", diamond_phases)


@pytest.fixture
def state_path(tmp_path: Path) -> Path:
    return tmp_path / ".symphony-state.json"


@pytest.fixture
def orch(state_path: Path, plan_file: Path) -> Orchestrator:
    orchestrator = Orchestrator(str(state_path))
    orchestrator.init(str(plan_file))
    return orchestrator
