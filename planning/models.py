"""Plan, task and analysis records shared by every planning component."""

from dataclasses import dataclass, field, asdict, fields
from typing import Dict, List, Optional, Any

from .errors import PlanningError, ValidationError

TASK_STATUSES = ("pending", "in_progress", "completed", "blocked")
TASK_PRIORITIES = ("low", "medium", "high", "critical")
COMPLEXITY_POINTS = (1, 2, 3, 5, 8)
DEPENDENCY_KINDS = ("blocks", "relates_to", "requires")
FILE_ACTIONS = ("create", "modify", "delete")
PLAN_STATUSES = ("draft", "active", "completed", "archived")
COMPLEXITY_LABELS = ("simple", "moderate", "complex")
METHODS = ("ai", "rule-based")


def _check_choice(name: str, value: Any, allowed: tuple) -> Any:
    if value not in allowed:
        raise ValidationError(f"Invalid {name} {value!r}, expected one of {list(allowed)}")
    return value


_MISSING = object()


def _read_fields(data: Any, entity: str, spec: Dict[str, tuple]) -> Dict[str, Any]:
    """Map ``data`` onto field names, accepting each field's wire name too.

    ``spec`` maps a field name to ``(wire_name, default)``; a default of
    ``_MISSING`` makes the field required.
    """
    if not isinstance(data, dict):
        raise ValidationError(f"Malformed {entity}: {data!r}")

    known = set(spec) | {wire for wire, _ in spec.values()}
    unknown = [key for key in data if key not in known]
    if unknown:
        raise ValidationError(f"Unknown {entity} field(s) {unknown}")

    values: Dict[str, Any] = {}
    for name, (wire, default) in spec.items():
        if name in data:
            values[name] = data[name]
        elif wire in data:
            values[name] = data[wire]
        elif default is _MISSING:
            raise ValidationError(f"{entity} is missing {name!r}")
        else:
            values[name] = default
    return values


@dataclass
class TaskDependency:
    """Free-text reference to another task; never resolved by the engine"""

    target_task_ref: str
    kind: str  # blocks, relates_to, requires

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskDependency":
        return cls(**_read_fields(data, "dependency", {
            'target_task_ref': ('taskId', _MISSING),
            'kind': ('type', _MISSING),
        }))


@dataclass
class FileChange:
    path: str
    action: str  # create, modify, delete
    description: str
    snippet: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileChange":
        return cls(**_read_fields(data, "file change", {
            'path': ('filePath', _MISSING),
            'action': ('action', _MISSING),
            'description': ('description', ''),
            'snippet': ('codeSnippet', None),
        }))


@dataclass
class TaskDraft:
    """A task as produced by a decomposition strategy, before it has identity"""

    title: str
    description: str
    status: str = "pending"  # pending, in_progress, completed, blocked
    priority: str = "medium"  # low, medium, high, critical
    estimated_complexity: int = 3  # 1, 2, 3, 5, 8
    dependencies: List[TaskDependency] = field(default_factory=list)
    file_changes: List[FileChange] = field(default_factory=list)
    acceptance_criteria: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    order: int = 0


@dataclass
class Task:
    """Single unit of work inside a plan"""

    id: str
    title: str
    description: str
    status: str
    priority: str
    estimated_complexity: int
    created_at: str
    updated_at: str
    dependencies: List[TaskDependency] = field(default_factory=list)
    file_changes: List[FileChange] = field(default_factory=list)
    acceptance_criteria: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    order: int = 0

    @classmethod
    def from_draft(cls, draft: TaskDraft, task_id: str, timestamp: str) -> "Task":
        return cls(
            id=task_id,
            title=draft.title,
            description=draft.description,
            status=draft.status,
            priority=draft.priority,
            estimated_complexity=draft.estimated_complexity,
            created_at=timestamp,
            updated_at=timestamp,
            dependencies=[TaskDependency(d.target_task_ref, d.kind) for d in draft.dependencies],
            file_changes=[FileChange(c.path, c.action, c.description, c.snippet) for c in draft.file_changes],
            acceptance_criteria=list(draft.acceptance_criteria),
            tags=list(draft.tags),
            order=draft.order,
        )

    def to_draft(self) -> TaskDraft:
        """Strip identity and timestamps, leaving only the task content"""
        return TaskDraft(
            title=self.title,
            description=self.description,
            status=self.status,
            priority=self.priority,
            estimated_complexity=self.estimated_complexity,
            dependencies=list(self.dependencies),
            file_changes=list(self.file_changes),
            acceptance_criteria=list(self.acceptance_criteria),
            tags=list(self.tags),
            order=self.order,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=data['id'],
            title=data.get('title', ''),
            description=data.get('description', ''),
            status=data.get('status', 'pending'),
            priority=data.get('priority', 'medium'),
            estimated_complexity=data.get('estimated_complexity', 3),
            created_at=data['created_at'],
            updated_at=data.get('updated_at', data['created_at']),
            dependencies=[TaskDependency.from_dict(d) for d in data.get('dependencies') or []],
            file_changes=[FileChange.from_dict(c) for c in data.get('file_changes') or []],
            acceptance_criteria=list(data.get('acceptance_criteria') or []),
            tags=list(data.get('tags') or []),
            order=data.get('order', 0),
        )


@dataclass
class PlanMetadata:
    total_tasks: int = 0
    completed_tasks: int = 0
    estimated_effort: int = 0
    complexity: str = "moderate"  # simple, moderate, complex

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlanMetadata":
        return cls(**_read_fields(data, "plan metadata", {
            'total_tasks': ('totalTasks', 0),
            'completed_tasks': ('completedTasks', 0),
            'estimated_effort': ('estimatedEffort', 0),
            'complexity': ('complexity', 'moderate'),
        }))


@dataclass
class Plan:
    """Requirements text plus its decomposed task list and aggregate counters"""

    id: str
    title: str
    description: str
    requirements: str
    created_at: str
    updated_at: str
    tasks: List[Task] = field(default_factory=list)
    status: str = "draft"  # draft, active, completed, archived
    metadata: PlanMetadata = field(default_factory=PlanMetadata)

    @property
    def progress(self) -> float:
        """Percentage of completed tasks, 0 for an empty plan"""
        if self.metadata.total_tasks <= 0:
            return 0.0
        return self.metadata.completed_tasks / self.metadata.total_tasks * 100

    def find_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Plan":
        meta = data.get('metadata') or {}
        return cls(
            id=data['id'],
            title=data.get('title', ''),
            description=data.get('description', ''),
            requirements=data.get('requirements', ''),
            created_at=data['created_at'],
            updated_at=data.get('updated_at', data['created_at']),
            tasks=[Task.from_dict(t) for t in data.get('tasks') or []],
            status=data.get('status', 'draft'),
            metadata=PlanMetadata.from_dict(meta),
        )


# Wire names accepted by the patch parsers in addition to the field names
_PATCH_ALIASES = {
    'estimatedComplexity': 'estimated_complexity',
    'acceptanceCriteria': 'acceptance_criteria',
    'fileChanges': 'file_changes',
}

_IDENTITY_FIELDS = {'id', 'created_at', 'createdAt', 'updated_at', 'updatedAt'}


def _normalize_patch_keys(data: Dict[str, Any], allowed: set, entity: str) -> Dict[str, Any]:
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        if key in _IDENTITY_FIELDS:
            raise ValidationError(f"{entity} field {key!r} cannot be updated")
        name = _PATCH_ALIASES.get(key, key)
        if name not in allowed:
            raise ValidationError(f"Unknown {entity} field {key!r}")
        normalized[name] = value
    return normalized


@dataclass
class TaskPatch:
    """Partial task update; fields left as None stay unchanged"""

    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    estimated_complexity: Optional[int] = None
    dependencies: Optional[List[TaskDependency]] = None
    file_changes: Optional[List[FileChange]] = None
    acceptance_criteria: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    order: Optional[int] = None

    def __post_init__(self):
        if self.status is not None:
            _check_choice("task status", self.status, TASK_STATUSES)
        if self.priority is not None:
            _check_choice("priority", self.priority, TASK_PRIORITIES)
        if self.estimated_complexity is not None:
            if isinstance(self.estimated_complexity, bool) or not isinstance(self.estimated_complexity, int):
                raise ValidationError(f"Invalid estimated complexity {self.estimated_complexity!r}")
            _check_choice("estimated complexity", self.estimated_complexity, COMPLEXITY_POINTS)
        for dependency in self.dependencies or []:
            _check_choice("dependency type", dependency.kind, DEPENDENCY_KINDS)
        for change in self.file_changes or []:
            _check_choice("file action", change.action, FILE_ACTIONS)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskPatch":
        values = _normalize_patch_keys(data, {f.name for f in fields(cls)}, "task")
        for name in ('dependencies', 'file_changes', 'acceptance_criteria', 'tags'):
            if values.get(name) is not None and not isinstance(values[name], list):
                raise ValidationError(f"Task field {name!r} must be a list")
        if values.get('dependencies') is not None:
            values['dependencies'] = [
                d if isinstance(d, TaskDependency) else TaskDependency.from_dict(d)
                for d in values['dependencies']
            ]
        if values.get('file_changes') is not None:
            values['file_changes'] = [
                c if isinstance(c, FileChange) else FileChange.from_dict(c)
                for c in values['file_changes']
            ]
        return cls(**values)


@dataclass
class PlanPatch:
    """Partial plan update; metadata, when given, is stored as supplied"""

    title: Optional[str] = None
    description: Optional[str] = None
    requirements: Optional[str] = None
    status: Optional[str] = None
    tasks: Optional[List[Task]] = None
    metadata: Optional[PlanMetadata] = None

    def __post_init__(self):
        if self.status is not None:
            _check_choice("plan status", self.status, PLAN_STATUSES)
        if self.metadata is not None:
            _check_choice("complexity", self.metadata.complexity, COMPLEXITY_LABELS)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlanPatch":
        values = _normalize_patch_keys(data, {f.name for f in fields(cls)}, "plan")
        if values.get('tasks') is not None:
            if not isinstance(values['tasks'], list):
                raise ValidationError("Plan field 'tasks' must be a list")
            try:
                values['tasks'] = [
                    t if isinstance(t, Task) else Task.from_dict(t) for t in values['tasks']
                ]
            except (KeyError, TypeError, AttributeError) as e:
                raise ValidationError(f"Malformed task in plan update: {e}") from e
        if values.get('metadata') is not None and not isinstance(values['metadata'], PlanMetadata):
            values['metadata'] = PlanMetadata.from_dict(values['metadata'])
        return cls(**values)


@dataclass
class Analysis:
    """Output shared by both decomposition strategies"""

    tasks: List[TaskDraft]
    suggestions: List[str]
    complexity: str  # simple, moderate, complex


@dataclass
class Decomposition(Analysis):
    method: str = "rule-based"  # ai, rule-based

    @classmethod
    def tagged(cls, analysis: Analysis, method: str) -> "Decomposition":
        return cls(
            tasks=analysis.tasks,
            suggestions=analysis.suggestions,
            complexity=analysis.complexity,
            method=method,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AnalysisOutcome:
    """Success or failure of one analysis attempt"""

    analysis: Optional[Analysis] = None
    error: Optional[PlanningError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.analysis is not None

    @classmethod
    def success(cls, analysis: Analysis) -> "AnalysisOutcome":
        return cls(analysis=analysis)

    @classmethod
    def failure(cls, error: PlanningError) -> "AnalysisOutcome":
        return cls(error=error)

    def unwrap(self) -> Analysis:
        if self.error is not None:
            raise self.error
        return self.analysis
