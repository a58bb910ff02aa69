"""Keyed plan storage: get, set, delete, list."""

import json
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import redis

from .errors import ValidationError
from .models import Plan

logger = logging.getLogger("planning.store")


def newest_first(plans: List[Plan]) -> List[Plan]:
    return sorted(plans, key=lambda plan: plan.created_at, reverse=True)


class PlanRepository(ABC):
    """Storage contract. No ordering or transaction guarantees beyond list()."""

    @abstractmethod
    def get(self, plan_id: str) -> Optional[Plan]:
        """Return the stored plan or None"""

    @abstractmethod
    def set(self, plan_id: str, plan: Plan) -> None:
        """Store ``plan`` under ``plan_id``, replacing any previous value"""

    @abstractmethod
    def delete(self, plan_id: str) -> bool:
        """Remove a plan. Returns False if nothing was stored under the id."""

    @abstractmethod
    def list(self) -> List[Plan]:
        """All stored plans, newest created first"""

    def close(self) -> None:
        pass


class InMemoryPlanRepository(PlanRepository):
    """Transient process-local store, no durability"""

    def __init__(self):
        self._plans: Dict[str, Plan] = {}

    def get(self, plan_id: str) -> Optional[Plan]:
        return self._plans.get(plan_id)

    def set(self, plan_id: str, plan: Plan) -> None:
        self._plans[plan_id] = plan

    def delete(self, plan_id: str) -> bool:
        return self._plans.pop(plan_id, None) is not None

    def list(self) -> List[Plan]:
        return newest_first(list(self._plans.values()))


class RedisPlanRepository(PlanRepository):
    """Plans serialized as JSON fields of a single Redis hash"""

    def __init__(self, client: redis.Redis, key: str = "plans"):
        self.client = client
        self.key = key

    @staticmethod
    def _decode(payload) -> Plan:
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        return Plan.from_dict(json.loads(payload))

    def get(self, plan_id: str) -> Optional[Plan]:
        payload = self.client.hget(self.key, plan_id)
        if payload is None:
            return None
        return self._decode(payload)

    def set(self, plan_id: str, plan: Plan) -> None:
        self.client.hset(self.key, plan_id, json.dumps(plan.to_dict()))

    def delete(self, plan_id: str) -> bool:
        return bool(self.client.hdel(self.key, plan_id))

    def list(self) -> List[Plan]:
        plans = []
        for payload in self.client.hvals(self.key):
            try:
                plans.append(self._decode(payload))
            except (ValueError, KeyError, ValidationError) as e:
                logger.error(f"Skipping unreadable plan payload in {self.key}: {e}")
        return newest_first(plans)

    def close(self) -> None:
        self.client.close()
