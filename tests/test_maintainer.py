import itertools

import pytest

from planning import maintainer, rules
from planning.errors import NotFound, ValidationError
from planning.maintainer import apply_plan_update, apply_task_update, materialize
from planning.models import (
    FileChange,
    Plan,
    PlanMetadata,
    PlanPatch,
    TaskDependency,
    TaskDraft,
    TaskPatch,
)

REQUIREMENTS = "Add JWT authentication and a database of users."


@pytest.fixture
def ticking_clock(monkeypatch):
    ticks = itertools.count(1)
    monkeypatch.setattr(maintainer, "timestamp", lambda: f"2026-01-01T00:00:{next(ticks):02d}")


def _plan(requirements: str = REQUIREMENTS) -> Plan:
    analysis = rules.generate(requirements)
    return materialize("Users", requirements, analysis.tasks, analysis.complexity)


def test_materialize_assigns_identity_and_metadata():
    plan = _plan()

    assert plan.status == "draft"
    assert plan.title == "Users"
    assert plan.requirements == REQUIREMENTS
    assert plan.metadata.total_tasks == 3
    assert plan.metadata.completed_tasks == 0
    assert plan.metadata.estimated_effort == 5 + 3 + 5
    assert plan.metadata.complexity == "simple"
    assert plan.created_at == plan.updated_at
    assert all(task.created_at == plan.created_at == task.updated_at for task in plan.tasks)
    assert plan.id.startswith("plan_")
    assert all(task.id.startswith("task_") for task in plan.tasks)


def test_description_is_first_200_characters():
    requirements = "Send weekly digest emails. " * 20
    plan = _plan(requirements)
    assert plan.description == requirements[:200]


def test_materialize_is_idempotent_in_shape():
    first, second = _plan(), _plan()

    assert [t.to_draft() for t in first.tasks] == [t.to_draft() for t in second.tasks]
    assert first.metadata == second.metadata
    assert first.id != second.id
    assert {t.id for t in first.tasks}.isdisjoint({t.id for t in second.tasks})


def test_ids_are_unique_across_many_materializations():
    drafts = [TaskDraft(title=f"t{i}", description="d") for i in range(5)]
    plans = [materialize("p", "r", drafts, "simple") for _ in range(50)]

    plan_ids = {plan.id for plan in plans}
    task_ids = {task.id for plan in plans for task in plan.tasks}
    assert len(plan_ids) == 50
    assert len(task_ids) == 250


def test_completing_second_task_counts_two(ticking_clock):
    plan = materialize(
        "Two tasks",
        "r",
        [TaskDraft(title="a", description="a", status="completed"), TaskDraft(title="b", description="b")],
        "simple",
    )
    assert plan.metadata.completed_tasks == 1

    target = plan.tasks[1]
    updated = apply_task_update(plan, target.id, TaskPatch(status="completed"))

    assert updated.metadata.completed_tasks == 2
    assert target.updated_at != target.created_at
    assert updated.updated_at == target.updated_at


def test_completed_count_tracks_any_update_sequence():
    plan = _plan("Build a REST api with a login form")
    ids = [task.id for task in plan.tasks]
    statuses = ["completed", "in_progress", "blocked", "pending", "completed"]

    for step, status in enumerate(statuses * 3):
        apply_task_update(plan, ids[step % len(ids)], TaskPatch(status=status))
        assert plan.metadata.completed_tasks == sum(t.status == "completed" for t in plan.tasks)
        assert plan.metadata.total_tasks == len(plan.tasks)


def test_task_update_leaves_unspecified_fields_and_effort_alone():
    plan = _plan()
    task = plan.tasks[0]
    before_effort = plan.metadata.estimated_effort

    apply_task_update(plan, task.id, TaskPatch(estimated_complexity=8, tags=["security"]))

    assert task.estimated_complexity == 8
    assert task.tags == ["security"]
    assert task.title == "Set up authentication system"
    assert task.status == "pending"
    assert len(task.acceptance_criteria) == 4
    assert plan.metadata.estimated_effort == before_effort


def test_unknown_task_is_not_found():
    plan = _plan()
    with pytest.raises(NotFound):
        apply_task_update(plan, "task_missing", TaskPatch(status="completed"))


def test_plan_update_trusts_supplied_metadata(ticking_clock):
    plan = _plan()
    metadata = PlanMetadata(total_tasks=99, completed_tasks=42, estimated_effort=7, complexity="complex")

    apply_plan_update(plan, PlanPatch(status="active", metadata=metadata))

    assert plan.status == "active"
    assert plan.metadata.total_tasks == 99
    assert plan.metadata.completed_tasks == 42
    assert plan.title == "Users"
    assert plan.updated_at != plan.created_at


def test_plan_update_replacing_tasks_recounts():
    plan = _plan()
    plan.tasks[0].status = "completed"

    apply_plan_update(plan, PlanPatch(tasks=plan.tasks[:2]))

    assert plan.metadata.total_tasks == 2
    assert plan.metadata.completed_tasks == 1
    assert plan.metadata.estimated_effort == 13


def test_task_patch_from_dict_accepts_wire_names():
    patch = TaskPatch.from_dict({"status": "in_progress", "acceptanceCriteria": ["works"]})
    assert patch.status == "in_progress"
    assert patch.acceptance_criteria == ["works"]
    assert patch.title is None


@pytest.mark.parametrize(
    "data",
    [
        {"id": "task_x"},
        {"createdAt": "2026-01-01"},
        {"colour": "red"},
        {"status": "done"},
        {"priority": "urgent"},
        {"estimatedComplexity": 4},
        {"dependencies": [{"taskId": "Design schema"}]},
        {"dependencies": [{"taskId": "Design schema", "type": "needs"}]},
        {"dependencies": [{"taskId": "Design schema", "type": "requires", "weight": 2}]},
        {"dependencies": ["Design schema"]},
        {"dependencies": "Design schema"},
        {"fileChanges": [{"action": "create"}]},
        {"fileChanges": [{"filePath": "app/models.py", "action": "rename"}]},
        {"estimatedComplexity": 5.0},
    ],
)
def test_task_patch_rejects_bad_input(data):
    with pytest.raises(ValidationError):
        TaskPatch.from_dict(data)


def test_task_patch_from_dict_accepts_nested_wire_names():
    patch = TaskPatch.from_dict({
        "dependencies": [{"taskId": "Design schema", "type": "requires"}],
        "fileChanges": [
            {"filePath": "app/models.py", "action": "modify", "description": "Add index",
             "codeSnippet": "index=True"},
        ],
    })

    assert patch.dependencies == [TaskDependency("Design schema", "requires")]
    assert patch.file_changes == [FileChange("app/models.py", "modify", "Add index", "index=True")]


def test_task_patch_checks_nested_enumerations():
    with pytest.raises(ValidationError):
        TaskPatch(dependencies=[TaskDependency("Design schema", "bogus")])
    with pytest.raises(ValidationError):
        TaskPatch(file_changes=[FileChange("app/models.py", "rename", "")])


def test_plan_patch_metadata_accepts_wire_names():
    patch = PlanPatch.from_dict({
        "metadata": {"totalTasks": 3, "completedTasks": 1, "estimatedEffort": 8, "complexity": "simple"},
    })
    assert patch.metadata == PlanMetadata(total_tasks=3, completed_tasks=1, estimated_effort=8, complexity="simple")


@pytest.mark.parametrize(
    "data",
    [
        {"metadata": {"totalTasks": 3, "velocity": 2}},
        {"metadata": {"complexity": "huge"}},
        {"metadata": 3},
        {"tasks": [{"title": "No identity"}]},
        {"tasks": "all of them"},
    ],
)
def test_plan_patch_rejects_bad_input(data):
    with pytest.raises(ValidationError):
        PlanPatch.from_dict(data)


def test_plan_patch_rejects_unknown_status():
    with pytest.raises(ValidationError):
        PlanPatch.from_dict({"status": "shipped"})


def test_plan_round_trips_through_dict():
    plan = _plan()
    assert Plan.from_dict(plan.to_dict()) == plan


def test_progress_percentage():
    plan = _plan()
    assert plan.progress == 0
    apply_task_update(plan, plan.tasks[0].id, TaskPatch(status="completed"))
    assert plan.progress == pytest.approx(100 / 3)

    empty = materialize("Empty", "r", [], "simple")
    assert empty.progress == 0
