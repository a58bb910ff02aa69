"""
AI-assisted requirement analysis.

Delegates decomposition to an Azure OpenAI deployment through an Agno agent,
asking for a JSON document and normalizing it into the same task drafts the
rule-based generator produces. One outbound call per invocation, no retries.
"""

import os
import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Mapping

from agno.agent import Agent
from agno.models.azure import AzureOpenAI

from .errors import AnalysisError, NotConfigured, PlanningError
from .models import (
    Analysis,
    AnalysisOutcome,
    FileChange,
    TaskDependency,
    TaskDraft,
    COMPLEXITY_LABELS,
    COMPLEXITY_POINTS,
    DEPENDENCY_KINDS,
    FILE_ACTIONS,
    TASK_PRIORITIES,
)

logger = logging.getLogger("planning.llm")

ENV_OVERRIDES = {
    'api_key': 'OPEN_AI_API_KEY',
    'endpoint': 'OPEN_AI_AZURE_ENDPOINT',
    'api_version': 'OPEN_AI_API_VERSION',
    'deployment': 'OPEN_AI_DEPLOYMENT_NAME',
}

ANALYSIS_INSTRUCTIONS = [
    "You are an expert software architect and project planner.",
    "Analyze requirements and break them down into actionable development tasks "
    "with clear dependencies, file changes, and acceptance criteria.",
    "Respond in JSON format.",
]

CODE_INSTRUCTIONS = [
    "You are an expert programmer.",
    "Generate clean, well-documented code based on task descriptions.",
]

RESPONSE_SCHEMA = """{
  "complexity": "simple" | "moderate" | "complex",
  "tasks": [
    {
      "title": "Task title",
      "description": "Detailed description",
      "priority": "low" | "medium" | "high" | "critical",
      "estimatedComplexity": 1 | 2 | 3 | 5 | 8,
      "dependencies": [
        {
          "taskId": "reference to another task by title",
          "type": "blocks" | "relates_to" | "requires"
        }
      ],
      "fileChanges": [
        {
          "filePath": "relative/path/to/file",
          "action": "create" | "modify" | "delete",
          "description": "What changes to make",
          "codeSnippet": "optional code example"
        }
      ],
      "acceptanceCriteria": ["criterion 1", "criterion 2"],
      "tags": ["tag1", "tag2"],
      "order": 1
    }
  ],
  "suggestions": ["suggestion 1", "suggestion 2"]
}"""


@dataclass
class LLMSettings:
    """Connection values for the Azure OpenAI deployment"""

    api_key: Optional[str] = None
    endpoint: Optional[str] = None
    api_version: Optional[str] = None
    deployment: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    timeout: Optional[float] = None

    @classmethod
    def from_config(
        cls,
        config: Optional[Dict[str, Any]],
        environ: Optional[Mapping[str, str]] = None,
    ) -> "LLMSettings":
        """Read the ``llm`` section, letting environment variables win"""
        llm_cfg = (config or {}).get('llm') or {}
        environ = os.environ if environ is None else environ

        values = {}
        for name, env_var in ENV_OVERRIDES.items():
            values[name] = environ.get(env_var) or llm_cfg.get(name)

        return cls(
            temperature=llm_cfg.get('temperature'),
            max_tokens=llm_cfg.get('max_tokens'),
            timeout=llm_cfg.get('timeout'),
            **values,
        )

    def missing(self) -> List[str]:
        return [env_var for name, env_var in ENV_OVERRIDES.items() if not getattr(self, name)]


def build_prompt(requirements: str, context: Optional[str] = None) -> str:
    context_block = f"Additional Context:\n{context}\n" if context else ""
    return (
        "Analyze the following software requirements and break them down into "
        "actionable development tasks.\n\n"
        f"Requirements:\n{requirements}\n\n"
        f"{context_block}\n"
        "Please provide a JSON response with the following structure:\n"
        f"{RESPONSE_SCHEMA}\n\n"
        "Focus on:\n"
        "- Clear, actionable tasks\n"
        "- Proper task ordering and dependencies\n"
        "- Specific file changes needed\n"
        "- Realistic complexity estimates\n"
        "- Comprehensive acceptance criteria\n"
    )


def _string_list(value: Any, field_name: str) -> List[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise AnalysisError(f"Expected a list for {field_name}, got {type(value).__name__}")
    return [str(item) for item in value]


def _parse_dependency(item: Any) -> TaskDependency:
    if not isinstance(item, dict) or not isinstance(item.get('taskId'), str):
        raise AnalysisError(f"Malformed dependency: {item!r}")
    if item.get('type') not in DEPENDENCY_KINDS:
        raise AnalysisError(f"Unknown dependency type: {item.get('type')!r}")
    return TaskDependency(target_task_ref=item['taskId'], kind=item['type'])


def _parse_file_change(item: Any) -> FileChange:
    if not isinstance(item, dict) or not isinstance(item.get('filePath'), str):
        raise AnalysisError(f"Malformed file change: {item!r}")
    if item.get('action') not in FILE_ACTIONS:
        raise AnalysisError(f"Unknown file action: {item.get('action')!r}")
    snippet = item.get('codeSnippet')
    return FileChange(
        path=item['filePath'],
        action=item['action'],
        description=str(item.get('description', '')),
        snippet=str(snippet) if snippet is not None else None,
    )


def _parse_task(item: Any, position: int) -> TaskDraft:
    if not isinstance(item, dict):
        raise AnalysisError(f"Task {position} is not an object")

    title = item.get('title')
    description = item.get('description')
    if not isinstance(title, str) or not isinstance(description, str):
        raise AnalysisError(f"Task {position} needs a string title and description")

    priority = item.get('priority')
    if priority not in TASK_PRIORITIES:
        raise AnalysisError(f"Task {position} has invalid priority {priority!r}")

    points = item.get('estimatedComplexity')
    if isinstance(points, bool) or not isinstance(points, int) or points not in COMPLEXITY_POINTS:
        raise AnalysisError(f"Task {position} has invalid estimatedComplexity {points!r}")

    order = item.get('order', position)
    if isinstance(order, bool) or not isinstance(order, int):
        raise AnalysisError(f"Task {position} has invalid order {order!r}")

    dependencies = item.get('dependencies') or []
    file_changes = item.get('fileChanges') or []
    if not isinstance(dependencies, list) or not isinstance(file_changes, list):
        raise AnalysisError(f"Task {position} has malformed dependencies or fileChanges")

    return TaskDraft(
        title=title,
        description=description,
        status="pending",
        priority=priority,
        estimated_complexity=points,
        dependencies=[_parse_dependency(d) for d in dependencies],
        file_changes=[_parse_file_change(c) for c in file_changes],
        acceptance_criteria=_string_list(item.get('acceptanceCriteria'), 'acceptanceCriteria'),
        tags=_string_list(item.get('tags'), 'tags'),
        order=order,
    )


def parse_response(content: Any) -> Analysis:
    """Turn raw model output into an :class:`Analysis`.

    Raises:
        AnalysisError: content is not JSON or does not match the expected shape
    """
    if isinstance(content, str):
        try:
            content = json.loads(content)
        except json.JSONDecodeError as e:
            raise AnalysisError(f"Model response is not valid JSON: {e}") from e
        except RecursionError as e:
            raise AnalysisError("Model response is nested too deeply") from e

    if not isinstance(content, dict):
        raise AnalysisError("Model response is not a JSON object")

    raw_tasks = content.get('tasks')
    if not isinstance(raw_tasks, list):
        raise AnalysisError("Model response has no task list")

    complexity = content.get('complexity') or "moderate"
    if complexity not in COMPLEXITY_LABELS:
        raise AnalysisError(f"Model response has invalid complexity {complexity!r}")

    tasks = [_parse_task(item, index + 1) for index, item in enumerate(raw_tasks)]
    suggestions = _string_list(content.get('suggestions'), 'suggestions')

    return Analysis(tasks=tasks, suggestions=suggestions, complexity=complexity)


class AIAnalyzer:
    """Requirement analysis backed by an external language model"""

    def __init__(
        self,
        settings: Optional[LLMSettings] = None,
        *,
        agent: Optional[Any] = None,
        code_agent: Optional[Any] = None,
    ):
        self.settings = settings or LLMSettings.from_config(None)
        # Agents are anything with run(prompt) -> object with .content
        self._agent = agent
        self._code_agent = code_agent

    @property
    def configured(self) -> bool:
        return not self.settings.missing()

    def _ensure_configured(self):
        missing = self.settings.missing()
        if missing:
            raise NotConfigured(missing)

    def _create_agent(self, name: str, instructions: List[str], json_mode: bool) -> Agent:
        """Create an Agno agent bound to the configured deployment"""
        model_kwargs: Dict[str, Any] = {
            "id": self.settings.deployment,
            "api_key": self.settings.api_key,
            "azure_endpoint": self.settings.endpoint,
            "azure_deployment": self.settings.deployment,
            "api_version": self.settings.api_version,
        }
        if self.settings.temperature is not None:
            model_kwargs["temperature"] = self.settings.temperature
        if self.settings.max_tokens is not None:
            model_kwargs["max_tokens"] = self.settings.max_tokens
        if self.settings.timeout is not None:
            model_kwargs["timeout"] = self.settings.timeout
        if json_mode:
            model_kwargs["request_params"] = {"response_format": {"type": "json_object"}}

        try:
            return Agent(
                name=name,
                model=AzureOpenAI(**model_kwargs),
                instructions=instructions,
                markdown=False,
            )
        except Exception as e:
            raise AnalysisError(f"Cannot create {name}: {e}") from e

    @property
    def agent(self):
        if self._agent is None:
            self._agent = self._create_agent("planning_agent", ANALYSIS_INSTRUCTIONS, json_mode=True)
        return self._agent

    @property
    def code_agent(self):
        if self._code_agent is None:
            self._code_agent = self._create_agent("code_agent", CODE_INSTRUCTIONS, json_mode=False)
        return self._code_agent

    def _run(self, agent, prompt: str) -> Any:
        try:
            result = agent.run(prompt)
        except Exception as e:
            raise AnalysisError(f"Language model request failed: {e}") from e

        # Agno reports some failed runs through the result status instead of raising
        status = getattr(result, 'status', None)
        if str(getattr(status, 'value', status)).lower() == "error":
            raise AnalysisError(f"Language model request failed: {getattr(result, 'content', None)}")

        if result is not None and hasattr(result, 'content'):
            return result.content
        return result

    def analyze(self, requirements: str, context: Optional[str] = None) -> Analysis:
        """Decompose ``requirements`` with the language model.

        Raises:
            NotConfigured: a required connection setting is absent
            AnalysisError: the call failed or its response could not be parsed
        """
        self._ensure_configured()
        logger.debug("Requesting AI analysis for %d characters of requirements", len(requirements))
        content = self._run(self.agent, build_prompt(requirements, context))
        analysis = parse_response(content)
        logger.info("AI analysis produced %d tasks", len(analysis.tasks))
        return analysis

    def try_analyze(self, requirements: str, context: Optional[str] = None) -> AnalysisOutcome:
        try:
            return AnalysisOutcome.success(self.analyze(requirements, context))
        except PlanningError as e:
            return AnalysisOutcome.failure(e)

    def generate_code_suggestion(self, task_description: str, file_path: str) -> str:
        """Draft code for a single task; does not touch any plan"""
        self._ensure_configured()
        prompt = (
            "Generate code for the following task:\n\n"
            f"Task: {task_description}\n"
            f"File: {file_path}\n\n"
            "Provide clean, production-ready code with comments."
        )
        content = self._run(self.code_agent, prompt)
        return "" if content is None else str(content)
