"""Validation of phase definitions.

Phase ids end up in file paths, process names and session identifiers, so
they are restricted to kebab-case ASCII: a lowercase letter first, then
lowercase letters and digits, with single hyphens between groups, at most
64 characters. ``"phase$(rm -rf /)"`` and ``"Test_Phase"`` are rejected.

All checks collect errors instead of stopping at the first one, so a plan
author sees every problem at once.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from symphony.errors import PlanValidationError
from symphony.models import Complexity
from symphony.scheduler import find_cycle

PHASE_ID_PATTERN = re.compile(r'^[a-z][a-z0-9]*(-[a-z0-9]+)*$')
MAX_PHASE_ID_LENGTH = 64


@dataclass
class ValidationIssue:
    field: str
    message: str
    value: Any = None


@dataclass
class ValidationResult:
    errors: List[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def add(self, field_name: str, message: str, value: Any = None):
        self.errors.append(ValidationIssue(field_name, message, value))

    def extend(self, other: "ValidationResult", prefix: str = ""):
        for err in other.errors:
            self.errors.append(ValidationIssue(
                f"{prefix}{err.field}", err.message, err.value))


def validate_phase_id(phase_id: Any) -> ValidationResult:
    result = ValidationResult()
    if not isinstance(phase_id, str):
        result.add('id', 'Phase ID must be a string', phase_id)
    elif not phase_id:
        result.add('id', 'Phase ID cannot be empty', phase_id)
    elif len(phase_id) > MAX_PHASE_ID_LENGTH:
        result.add('id', f'Phase ID exceeds maximum length of '
                         f'{MAX_PHASE_ID_LENGTH} characters', phase_id)
    elif not PHASE_ID_PATTERN.fullmatch(phase_id):
        result.add('id', 'Phase ID must be kebab-case (lowercase letters, '
                         'numbers, hyphens only). Must start with a letter '
                         'and cannot end with a hyphen.', phase_id)
    return result


def is_valid_phase_id(phase_id: Any) -> bool:
    return validate_phase_id(phase_id).valid


def _non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _check_string_list(result: ValidationResult, where: str, value: Any,
                       item_label: str):
    if not isinstance(value, list):
        result.add(where, f'{where.rsplit(".", 1)[-1]} must be an array',
                   value)
        return
    for i, item in enumerate(value):
        if not isinstance(item, str):
            result.add(f'{where}[{i}]', f'{item_label} must be a string',
                       item)


def _check_id_list(result: ValidationResult, where: str, value: Any,
                   label: str):
    if not isinstance(value, list):
        result.add(where, f'{where.rsplit(".", 1)[-1]} must be an array',
                   value)
        return
    for i, ref in enumerate(value):
        ref_result = validate_phase_id(ref)
        if not ref_result.valid:
            result.add(f'{where}[{i}]',
                       f'Invalid {label}: {ref_result.errors[0].message}',
                       ref)


def validate_phase(phase: Any, index: Optional[int] = None) -> ValidationResult:
    """Check the shape of a single phase definition."""
    prefix = f'phases[{index}]' if index is not None else 'phase'
    result = ValidationResult()
    if not isinstance(phase, dict):
        result.add(prefix, 'Phase must be an object', phase)
        return result

    result.extend(validate_phase_id(phase.get('id')), prefix=f'{prefix}.')

    for name in ('title', 'objective', 'success_criteria'):
        if not _non_empty_string(phase.get(name)):
            result.add(f'{prefix}.{name}',
                       f'Phase {name} must be a non-empty string',
                       phase.get(name))

    tasks = phase.get('tasks')
    if isinstance(tasks, list) and not tasks:
        result.add(f'{prefix}.tasks', 'Phase must have at least one task',
                   tasks)
    else:
        _check_string_list(result, f'{prefix}.tasks', tasks, 'Task')

    _check_id_list(result, f'{prefix}.dependencies',
                   phase.get('dependencies'), 'dependency ID')

    complexities = [c.value for c in Complexity]
    if phase.get('complexity') not in complexities:
        result.add(f'{prefix}.complexity',
                   f'Phase complexity must be one of: '
                   f'{", ".join(complexities)}', phase.get('complexity'))

    ctx = phase.get('required_context')
    if not isinstance(ctx, dict):
        result.add(f'{prefix}.required_context',
                   'Phase required_context must be an object', ctx)
    else:
        where = f'{prefix}.required_context'
        _check_string_list(result, f'{where}.files', ctx.get('files'),
                           'File path')
        _check_string_list(result, f'{where}.concepts', ctx.get('concepts'),
                           'Concept')
        _check_id_list(result, f'{where}.artifacts_from',
                       ctx.get('artifacts_from'), 'artifacts_from reference')

    if 'constraints' in phase and phase['constraints'] is not None:
        _check_string_list(result, f'{prefix}.constraints',
                           phase['constraints'], 'Constraint')

    return result


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _id_list(value: Any) -> List[str]:
    return [v for v in _as_list(value) if is_valid_phase_id(v)]


def validate_phases(phases: Any) -> ValidationResult:
    """Validate a whole plan, including cross-references and cycles."""
    result = ValidationResult()
    if not isinstance(phases, list):
        result.add('phases', 'Phases must be an array', phases)
        return result
    if not phases:
        result.add('phases', 'At least one phase is required', phases)
        return result

    first_seen: Dict[str, int] = {}
    for i, phase in enumerate(phases):
        result.extend(validate_phase(phase, i))
        phase_id = phase.get('id') if isinstance(phase, dict) else None
        if not is_valid_phase_id(phase_id):
            continue
        if phase_id in first_seen:
            result.add(f'phases[{i}].id',
                       f'Duplicate phase ID "{phase_id}" (first seen at '
                       f'index {first_seen[phase_id]})', phase_id)
        else:
            first_seen[phase_id] = i

    graph: Dict[str, List[str]] = {}
    for i, phase in enumerate(phases):
        if not isinstance(phase, dict):
            continue
        phase_id = phase.get('id')
        deps = _id_list(phase.get('dependencies'))
        ctx = phase.get('required_context')
        sources = _id_list(ctx.get('artifacts_from')) \
            if isinstance(ctx, dict) else []

        for j, dep_id in enumerate(_as_list(phase.get('dependencies'))):
            if dep_id not in deps:
                continue
            if dep_id not in first_seen:
                result.add(f'phases[{i}].dependencies[{j}]',
                           f'Dependency "{dep_id}" references non-existent '
                           f'phase', dep_id)
            if dep_id == phase_id:
                result.add(f'phases[{i}].dependencies[{j}]',
                           'Phase cannot depend on itself', dep_id)
        for j, ref_id in enumerate(_as_list(ctx.get('artifacts_from'))
                                   if isinstance(ctx, dict) else []):
            if ref_id not in sources:
                continue
            if ref_id not in first_seen:
                result.add(f'phases[{i}].required_context.artifacts_from'
                           f'[{j}]',
                           f'artifacts_from "{ref_id}" references '
                           f'non-existent phase', ref_id)
            if ref_id == phase_id:
                result.add(f'phases[{i}].required_context.artifacts_from'
                           f'[{j}]',
                           'Phase cannot take artifacts from itself', ref_id)

        if first_seen.get(phase_id) == i:
            graph[phase_id] = deps + [s for s in sources if s not in deps]

    cycle = find_cycle(graph)
    if cycle is not None:
        result.add('phases', f'Circular dependency detected: '
                             f'{" -> ".join(cycle)}', cycle)

    return result


def format_validation_errors(result: ValidationResult) -> str:
    if result.valid:
        return 'Validation passed'
    lines = ['Validation errors:']
    for err in result.errors:
        lines.append(f'  - {err.field}: {err.message}')
    return '\n'.join(lines)


def assert_valid_phases(phases: Any):
    result = validate_phases(phases)
    if not result.valid:
        raise PlanValidationError(result)
