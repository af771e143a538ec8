import pytest

from symphony.errors import PlanValidationError
from symphony.validation import (
    assert_valid_phases, format_validation_errors, is_valid_phase_id,
    validate_phase, validate_phases,
)

from conftest import make_phase


@pytest.mark.parametrize("phase_id", ["a", "setup-db", "phase2", "x-1-y"])
def test_valid_phase_ids(phase_id):
    assert is_valid_phase_id(phase_id)


@pytest.mark.parametrize(
    "phase_id",
    ["", "Test_Phase", "phase$(rm -rf /)", "1phase", "phase-", "a--b",
     "../etc", "a" * 65, None, 42],
)
def test_invalid_phase_ids(phase_id):
    assert not is_valid_phase_id(phase_id)


def test_valid_plan_passes(diamond_phases):
    result = validate_phases(diamond_phases)
    assert result.valid
    assert format_validation_errors(result) == "Validation passed"


def test_phase_shape_errors_are_collected():
    phase = make_phase("a", complexity="extreme", tasks=[], title="  ")
    del phase["success_criteria"]
    fields = {e.field for e in validate_phase(phase, 0).errors}
    assert fields == {
        "phases[0].title",
        "phases[0].tasks",
        "phases[0].complexity",
        "phases[0].success_criteria",
    }


def test_required_context_must_be_object():
    phase = make_phase("a", required_context=None)
    errors = validate_phase(phase).errors
    assert [e.field for e in errors] == ["phase.required_context"]


def test_constraints_must_be_strings_when_present():
    phase = make_phase("a", constraints=["ok", 3])
    errors = validate_phase(phase).errors
    assert [e.field for e in errors] == ["phase.constraints[1]"]


def test_empty_and_non_list_plans_are_rejected():
    assert not validate_phases([]).valid
    assert not validate_phases({"id": "a"}).valid


def test_duplicate_ids_are_rejected():
    result = validate_phases([make_phase("a"), make_phase("a")])
    assert any("Duplicate phase ID" in e.message for e in result.errors)


def test_unresolved_references_are_rejected():
    result = validate_phases([
        make_phase("a", ["ghost"]),
        make_phase("b", artifacts_from=["phantom"]),
    ])
    fields = [e.field for e in result.errors]
    assert "phases[0].dependencies[0]" in fields
    assert "phases[1].required_context.artifacts_from[0]" in fields


def test_self_dependency_is_rejected():
    result = validate_phases([make_phase("a", ["a"])])
    assert any(e.message == "Phase cannot depend on itself"
               for e in result.errors)


def test_cycle_through_artifacts_from_is_reported_with_path():
    result = validate_phases([
        make_phase("a", ["b"]),
        make_phase("b", artifacts_from=["a"]),
    ])
    messages = [e.message for e in result.errors]
    assert any(m.startswith("Circular dependency detected: ")
               for m in messages)


def test_non_list_dependencies_do_not_crash():
    phase = make_phase("a")
    phase["dependencies"] = 5
    result = validate_phases([phase])
    assert [e.field for e in result.errors] == ["phases[0].dependencies"]


def test_assert_valid_phases_raises_with_details():
    with pytest.raises(PlanValidationError) as excinfo:
        assert_valid_phases([make_phase("Bad_Id")])
    details = excinfo.value.details()
    assert details and details[0].startswith("  - phases[0].id: ")
