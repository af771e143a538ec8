import json
from pathlib import Path

import pytest

from symphony.orchestrator import Orchestrator
from symphony.statusline import render_statusline


def test_missing_or_malformed_document_renders_nothing(tmp_path: Path):
    assert render_statusline(str(tmp_path / "missing.json")) is None
    bad = tmp_path / "bad.json"
    bad.write_text("{oops")
    assert render_statusline(str(bad)) is None
    bad.write_text(json.dumps(["not", "an", "object"]))
    assert render_statusline(str(bad)) is None


def test_progress_bar_with_running_phases(orch, state_path):
    orch.mark_complete("a")
    orch.mark_running("b")
    orch.mark_running("c")
    assert render_statusline(str(state_path)) == \
        "[███░░░░░░░] 1/4 | b, c"


def test_failure_marker_and_terminal_labels(orch, state_path):
    orch.mark_complete("a")
    orch.record_failure("b", "boom", bypass=True)
    assert render_statusline(str(state_path)) == "[Failed] 1/4"


def test_waiting_label_lists_pending_decisions(orch, state_path):
    orch.mark_complete("a")
    orch.record_failure("b", "SyntaxError: nope")
    assert render_statusline(str(state_path)) == \
        "[███░░░░░░░] 1/4 | [Waiting] b"


def test_done_label(tmp_path: Path, plan_file):
    state = tmp_path / "done.json"
    orch = Orchestrator(str(state))
    orch.init(str(plan_file))
    for phase_id in ["a", "b", "c", "d"]:
        orch.mark_complete(phase_id)
    assert render_statusline(str(state)) == "[Done] 4/4"


def test_failure_count_shown_while_waiting(orch, state_path):
    orch.mark_complete("a")
    orch.record_failure("c", "boom", bypass=True)
    orch.record_failure("b", "SyntaxError: nope")
    assert render_statusline(str(state_path)) == \
        "[███░░░░░░░] 1/4 (1!) | [Waiting] b"


@pytest.mark.parametrize("overrides", [
    {"status": ["running"]},
    {"status": None},
    {"status": "awaiting_user_decision", "pendingDecisions": 5},
    {"status": "awaiting_user_decision", "pendingDecisions": "b"},
])
def test_wrongly_typed_fields_render_nothing(orch, state_path, overrides):
    doc = json.loads(state_path.read_text())
    doc.update(overrides)
    state_path.write_text(json.dumps(doc))
    assert render_statusline(str(state_path)) is None


def test_decisions_without_string_ids_are_left_out(orch, state_path):
    doc = json.loads(state_path.read_text())
    doc["status"] = "awaiting_user_decision"
    doc["pendingDecisions"] = [{"phaseId": 7}, "b", {"phaseId": "c"}]
    state_path.write_text(json.dumps(doc))
    assert render_statusline(str(state_path)) == \
        "[░░░░░░░░░░] 0/4 | [Waiting] c"
