#!/usr/bin/env python3
"""
Requirements Planning Service

Turns free-text requirements into a trackable plan. Does three things:
1. Breaks requirements into tasks (AI first when asked, rules otherwise)
2. Materializes tasks into plans with ids, timestamps and counters
3. Keeps plan metadata consistent as tasks are updated

The transport layer calls into PlanningService; storage is injected.
"""

import os
import re
import sys
import json
import logging
import argparse
from typing import Dict, List, Optional, Any, Union

import yaml
import redis

from . import maintainer
from . import rules
from . import templates
from .errors import NotFound, PlanningError, ValidationError
from .llm import AIAnalyzer, LLMSettings
from .models import Analysis, Decomposition, Plan, PlanPatch, TaskPatch, PLAN_STATUSES
from .planner import Decomposer
from .store import InMemoryPlanRepository, PlanRepository, RedisPlanRepository


class RedactingFilter(logging.Filter):
    def __init__(self, compiled_patterns):
        super().__init__()
        self.patterns = compiled_patterns

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        for pattern in self.patterns:
            message = pattern.sub('***', message)
        record.msg = message
        record.args = ()
        return True


class PlanningService:
    """Plan lifecycle on top of a keyed plan repository"""

    def __init__(
        self,
        config_path: str = "config.yaml",
        *,
        config: Optional[Dict[str, Any]] = None,
        repository: Optional[PlanRepository] = None,
        redis_client: Optional[redis.Redis] = None,
        analyzer: Optional[AIAnalyzer] = None,
    ):
        self.config = config or self._load_config(config_path)

        # Setup logging
        self._setup_logging()
        self.logger = logging.getLogger("planning.service")

        self.repository = repository or self._setup_repository(redis_client)

        llm_cfg = self.config.get('llm', {})
        self.analyzer = analyzer or AIAnalyzer(LLMSettings.from_config(self.config))
        self.decomposer = Decomposer(self.analyzer, ai_enabled=llm_cfg.get('enabled', True))

        self.logger.info(
            "Planning service initialized (storage=%s, ai_configured=%s)",
            type(self.repository).__name__,
            self.analyzer.configured,
        )

    def _load_config(self, path: str) -> Dict[str, Any]:
        """Load configuration from YAML file"""
        try:
            with open(path, 'r') as f:
                return yaml.safe_load(f)
        except Exception as e:
            print(f"FATAL: Cannot load config from {path}: {e}")
            sys.exit(1)

    def _setup_logging(self):
        """Setup logging configuration"""
        log_config = self.config.get('logging', {})
        level = self.config.get('system', {}).get('log_level', 'INFO')

        handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

        log_file = log_config.get('files', {}).get('planning')
        if log_file:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            handlers.append(logging.FileHandler(log_file, delay=True))

        patterns = self.config.get('security', {}).get('redact_patterns', [])
        if patterns:
            redactor = RedactingFilter([re.compile(pattern) for pattern in patterns])
            for handler in handlers:
                handler.addFilter(redactor)

        logging.basicConfig(
            level=getattr(logging, level),
            format=log_config.get('format', '%(asctime)s [%(levelname)s] %(name)s: %(message)s'),
            datefmt=log_config.get('date_format'),
            handlers=handlers,
        )

    def _setup_redis(self) -> redis.Redis:
        """Setup Redis connection"""
        redis_config = self.config['redis']

        if self.config.get('development', {}).get('test_mode'):
            try:
                import fakeredis
            except ImportError:
                print("FATAL: test_mode enabled but fakeredis is not installed")
                sys.exit(1)
            return fakeredis.FakeRedis(decode_responses=True)

        try:
            client = redis.Redis(
                host=redis_config['host'],
                port=redis_config['port'],
                db=redis_config['db'],
                password=redis_config.get('password'),
                socket_timeout=redis_config['socket_timeout'],
                decode_responses=True
            )
            # Test connection
            client.ping()
            return client
        except redis.RedisError as e:
            print(f"FATAL: Cannot connect to Redis: {e}")
            sys.exit(1)

    def _setup_repository(self, redis_client: Optional[redis.Redis]) -> PlanRepository:
        storage = self.config.get('storage', {})
        backend = storage.get('backend', 'memory')

        if backend == 'memory':
            return InMemoryPlanRepository()
        if backend == 'redis':
            client = redis_client or self._setup_redis()
            return RedisPlanRepository(client, key=storage.get('key', 'plans'))

        print(f"FATAL: Unknown storage backend '{backend}'")
        sys.exit(1)

    def _require_plan(self, plan_id: str) -> Plan:
        plan = self.repository.get(plan_id)
        if plan is None:
            raise NotFound("plan", plan_id)
        return plan

    def analyze(
        self,
        requirements: str,
        context: Optional[str] = None,
        use_ai: bool = True,
    ) -> Decomposition:
        """Decompose requirements without creating a plan"""
        return self.decomposer.decompose(requirements, use_ai=use_ai, context=context)

    def quick_analyze(self, requirements: str) -> Analysis:
        """Rule-based analysis for real-time feedback"""
        if not requirements or not requirements.strip():
            raise ValidationError("Requirements are required")
        return rules.generate(requirements)

    def create_plan(
        self,
        title: str,
        requirements: str,
        use_ai: bool = False,
        context: Optional[str] = None,
    ) -> Plan:
        if not title or not title.strip() or not requirements or not requirements.strip():
            raise ValidationError("Title and requirements are required")

        result = self.decomposer.decompose(requirements, use_ai=use_ai, context=context)
        plan = maintainer.materialize(title, requirements, result.tasks, result.complexity)
        self.repository.set(plan.id, plan)

        self.logger.info(
            f"Created plan {plan.id} with {plan.metadata.total_tasks} tasks ({result.method})"
        )
        return plan

    def get_plan(self, plan_id: str) -> Plan:
        return self._require_plan(plan_id)

    def list_plans(self) -> List[Plan]:
        return self.repository.list()

    def update_plan(self, plan_id: str, patch: Union[PlanPatch, Dict[str, Any]]) -> Plan:
        if isinstance(patch, dict):
            patch = PlanPatch.from_dict(patch)
        plan = maintainer.apply_plan_update(self._require_plan(plan_id), patch)
        self.repository.set(plan.id, plan)
        self.logger.info(f"Updated plan {plan_id}")
        return plan

    def update_task(
        self,
        plan_id: str,
        task_id: str,
        patch: Union[TaskPatch, Dict[str, Any]],
    ) -> Plan:
        if isinstance(patch, dict):
            patch = TaskPatch.from_dict(patch)
        plan = maintainer.apply_task_update(self._require_plan(plan_id), task_id, patch)
        self.repository.set(plan.id, plan)
        self.logger.info(
            f"Updated task {task_id} in plan {plan_id} "
            f"({plan.metadata.completed_tasks}/{plan.metadata.total_tasks} completed)"
        )
        return plan

    def delete_plan(self, plan_id: str) -> None:
        if not self.repository.delete(plan_id):
            raise NotFound("plan", plan_id)
        self.logger.info(f"Deleted plan {plan_id}")

    def code_suggestion(self, plan_id: str, task_id: str, file_path: str) -> str:
        plan = self._require_plan(plan_id)
        task = plan.find_task(task_id)
        if task is None:
            raise NotFound("task", task_id)
        if not file_path or not file_path.strip():
            raise ValidationError("File path is required")
        return self.analyzer.generate_code_suggestion(task.description, file_path)

    def get_status(self) -> Dict[str, Any]:
        """Get current plan counts"""
        plans = self.repository.list()
        plan_counts = {status: 0 for status in PLAN_STATUSES}
        for plan in plans:
            plan_counts[plan.status] = plan_counts.get(plan.status, 0) + 1

        total_tasks = sum(plan.metadata.total_tasks for plan in plans)
        completed_tasks = sum(plan.metadata.completed_tasks for plan in plans)

        return {
            "plans": plan_counts,
            "total_plans": len(plans),
            "total_tasks": total_tasks,
            "completed_tasks": completed_tasks,
            "ai_configured": self.analyzer.configured,
        }

    def close(self):
        self.repository.close()


def main():
    parser = argparse.ArgumentParser(description="Requirements Planning Service")
    parser.add_argument("--config", default="config.yaml", help="Config file path")
    parser.add_argument("--create", metavar="TITLE", help="Create a plan with this title")
    parser.add_argument("--requirements", help="Requirements text for --create")
    parser.add_argument("--analyze", metavar="REQUIREMENTS", help="Analyze requirements without creating a plan")
    parser.add_argument("--ai", action="store_true", help="Try AI-assisted analysis first")
    parser.add_argument("--context", help="Additional context for AI-assisted analysis")
    parser.add_argument("--list", action="store_true", help="List plans, newest first")
    parser.add_argument("--show", metavar="PLAN_ID", help="Print a plan")
    parser.add_argument("--delete", metavar="PLAN_ID", help="Delete a plan")
    parser.add_argument("--update-task", nargs=2, metavar=("PLAN_ID", "TASK_ID"), help="Update a task")
    parser.add_argument("--task-status", help="New status for --update-task")
    parser.add_argument("--priority", help="New priority for --update-task")
    parser.add_argument("--plan-status", nargs=2, metavar=("PLAN_ID", "STATUS"), help="Set a plan's status")
    parser.add_argument("--code-suggestion", nargs=2, metavar=("PLAN_ID", "TASK_ID"),
                        help="Generate code for a task")
    parser.add_argument("--file", help="Target file path for --code-suggestion")
    parser.add_argument("--templates", action="store_true", help="List requirement templates")
    parser.add_argument("--category", help="Template category filter for --templates")
    parser.add_argument("--status", action="store_true", help="Print plan counts and exit")

    args = parser.parse_args()

    if args.templates:
        print(json.dumps([t.to_dict() for t in templates.list_templates(args.category)], indent=2))
        return

    service = PlanningService(args.config)

    try:
        if args.status:
            result = service.get_status()
        elif args.create:
            result = service.create_plan(args.create, args.requirements or "", args.ai, args.context).to_dict()
        elif args.analyze:
            result = service.analyze(args.analyze, args.context, use_ai=args.ai).to_dict()
        elif args.list:
            result = [plan.to_dict() for plan in service.list_plans()]
        elif args.show:
            result = service.get_plan(args.show).to_dict()
        elif args.delete:
            service.delete_plan(args.delete)
            result = {"status": "deleted", "plan_id": args.delete}
        elif args.update_task:
            patch = TaskPatch(status=args.task_status, priority=args.priority)
            result = service.update_task(args.update_task[0], args.update_task[1], patch).to_dict()
        elif args.plan_status:
            plan_id, status = args.plan_status
            result = service.update_plan(plan_id, PlanPatch(status=status)).to_dict()
        elif args.code_suggestion:
            plan_id, task_id = args.code_suggestion
            result = {"code": service.code_suggestion(plan_id, task_id, args.file or "")}
        else:
            parser.print_help()
            return
    except PlanningError as e:
        print(json.dumps({"error": str(e), "kind": e.kind}))
        sys.exit(1)
    finally:
        service.close()

    print(json.dumps(result, indent=2))


if __name__ == "__main__":
    main()
