"""Materializes decomposition output into plans and keeps their metadata in step."""

import time
import uuid
from dataclasses import fields
from datetime import datetime
from typing import List

from .errors import NotFound
from .models import Plan, PlanMetadata, PlanPatch, Task, TaskDraft, TaskPatch

DESCRIPTION_LENGTH = 200


def timestamp() -> str:
    return datetime.now().isoformat()


def new_id(prefix: str) -> str:
    """Millisecond prefix keeps ids sortable; the random suffix keeps them unique"""
    return f"{prefix}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:12]}"


def count_completed(tasks: List[Task]) -> int:
    return sum(1 for task in tasks if task.status == "completed")


def _merge(target, patch) -> bool:
    """Copy every non-None patch field onto target. Returns True if anything was set."""
    changed = False
    for f in fields(patch):
        value = getattr(patch, f.name)
        if value is None:
            continue
        if isinstance(value, list):
            value = list(value)
        setattr(target, f.name, value)
        changed = True
    return changed


def materialize(title: str, requirements: str, drafts: List[TaskDraft], complexity: str) -> Plan:
    """Assign identity and timestamps to drafts and assemble a new draft plan"""
    now = timestamp()
    tasks = [Task.from_draft(draft, new_id("task"), now) for draft in drafts]

    return Plan(
        id=new_id("plan"),
        title=title,
        description=requirements[:DESCRIPTION_LENGTH],
        requirements=requirements,
        created_at=now,
        updated_at=now,
        tasks=tasks,
        status="draft",
        metadata=PlanMetadata(
            total_tasks=len(tasks),
            completed_tasks=count_completed(tasks),
            estimated_effort=sum(task.estimated_complexity for task in tasks),
            complexity=complexity,
        ),
    )


def apply_task_update(plan: Plan, task_id: str, patch: TaskPatch) -> Plan:
    """Merge ``patch`` into one task of ``plan`` in place and refresh counters.

    ``estimated_effort`` is a creation-time snapshot and is left as is.

    Raises:
        NotFound: no task in the plan has ``task_id``
    """
    task = plan.find_task(task_id)
    if task is None:
        raise NotFound("task", task_id)

    now = timestamp()
    _merge(task, patch)
    task.updated_at = now

    plan.metadata.total_tasks = len(plan.tasks)
    plan.metadata.completed_tasks = count_completed(plan.tasks)
    plan.updated_at = now
    return plan


def apply_plan_update(plan: Plan, patch: PlanPatch) -> Plan:
    """Shallow-merge ``patch`` into ``plan`` in place.

    Supplied metadata is stored as given. Counters are only recomputed when
    the task list is replaced and no metadata accompanies it.
    """
    _merge(plan, patch)
    if patch.tasks is not None and patch.metadata is None:
        plan.metadata.total_tasks = len(plan.tasks)
        plan.metadata.completed_tasks = count_completed(plan.tasks)
    plan.updated_at = timestamp()
    return plan
