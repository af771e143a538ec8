"""Phase dataclass: one immutable node of an execution plan."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from symphony.models.enums import Complexity


@dataclass
class RequiredContext:
    files: List[str] = field(default_factory=list)
    concepts: List[str] = field(default_factory=list)
    artifacts_from: List[str] = field(default_factory=list)


@dataclass
class Phase:
    id: str
    title: str
    objective: str
    tasks: List[str]
    dependencies: List[str] = field(default_factory=list)
    complexity: str = Complexity.MEDIUM.value
    required_context: RequiredContext = field(default_factory=RequiredContext)
    success_criteria: str = ""
    constraints: Optional[List[str]] = None

    @property
    def all_dependencies(self) -> List[str]:
        """Explicit dependencies followed by artifact sources, deduplicated."""
        merged: List[str] = []
        for dep_id in self.dependencies + self.required_context.artifacts_from:
            if dep_id not in merged:
                merged.append(dep_id)
        return merged

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Phase":
        ctx = data.get('required_context') or {}
        return cls(
            id=data['id'],
            title=data['title'],
            objective=data['objective'],
            tasks=list(data['tasks']),
            dependencies=list(data.get('dependencies', [])),
            complexity=data.get('complexity', Complexity.MEDIUM.value),
            required_context=RequiredContext(
                files=list(ctx.get('files', [])),
                concepts=list(ctx.get('concepts', [])),
                artifacts_from=list(ctx.get('artifacts_from', [])),
            ),
            success_criteria=data.get('success_criteria', ''),
            constraints=(list(data['constraints'])
                         if data.get('constraints') is not None else None),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'id': self.id,
            'title': self.title,
            'objective': self.objective,
            'tasks': list(self.tasks),
            'dependencies': list(self.dependencies),
            'complexity': self.complexity,
            'required_context': {
                'files': list(self.required_context.files),
                'concepts': list(self.required_context.concepts),
                'artifacts_from': list(self.required_context.artifacts_from),
            },
            'success_criteria': self.success_criteria,
        }
        if self.constraints is not None:
            data['constraints'] = list(self.constraints)
        return data
