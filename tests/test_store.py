import fakeredis
import pytest

from planning.maintainer import materialize
from planning.models import Plan, TaskDraft
from planning.store import InMemoryPlanRepository, RedisPlanRepository


def _plan(created_at: str, title: str = "p") -> Plan:
    plan = materialize(title, "requirements", [TaskDraft(title="t", description="d")], "simple")
    plan.created_at = created_at
    return plan


@pytest.fixture(params=["memory", "redis"])
def repository(request):
    if request.param == "memory":
        repo = InMemoryPlanRepository()
    else:
        repo = RedisPlanRepository(fakeredis.FakeRedis(decode_responses=True), key="plans:test")
    try:
        yield repo
    finally:
        repo.close()


def test_set_get_delete(repository):
    plan = _plan("2026-01-01T10:00:00")
    repository.set(plan.id, plan)

    assert repository.get(plan.id) == plan
    assert repository.delete(plan.id) is True
    assert repository.get(plan.id) is None
    assert repository.delete(plan.id) is False


def test_list_is_newest_first(repository):
    older = _plan("2026-01-01T10:00:00", "older")
    newer = _plan("2026-03-01T10:00:00", "newer")
    middle = _plan("2026-02-01T10:00:00", "middle")
    for plan in (older, newer, middle):
        repository.set(plan.id, plan)

    assert [plan.title for plan in repository.list()] == ["newer", "middle", "older"]


def test_set_replaces_previous_value(repository):
    plan = _plan("2026-01-01T10:00:00")
    repository.set(plan.id, plan)
    plan.status = "active"
    repository.set(plan.id, plan)

    assert repository.get(plan.id).status == "active"
    assert len(repository.list()) == 1


def test_redis_list_skips_unreadable_payloads():
    client = fakeredis.FakeRedis(decode_responses=True)
    repo = RedisPlanRepository(client, key="plans:test")
    plan = _plan("2026-01-01T10:00:00")
    repo.set(plan.id, plan)
    client.hset("plans:test", "broken", "{not json")

    assert [p.id for p in repo.list()] == [plan.id]
