import copy
import json
from pathlib import Path
from types import SimpleNamespace

import pytest
import yaml

from planning.llm import AIAnalyzer, LLMSettings, ENV_OVERRIDES
from planning.main import PlanningService

CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"


@pytest.fixture(autouse=True)
def clear_llm_env(monkeypatch):
    for env_var in ENV_OVERRIDES.values():
        monkeypatch.delenv(env_var, raising=False)


@pytest.fixture(scope="session")
def base_config() -> dict:
    with CONFIG_PATH.open("r", encoding="utf-8") as fh:
        config = yaml.safe_load(fh)
    return config


@pytest.fixture
def config_factory(base_config, tmp_path):
    def _factory(**overrides):
        cfg = copy.deepcopy(base_config)
        cfg['logging']['files']['planning'] = str(tmp_path / "logs" / "planning.log")
        cfg.setdefault('development', {})['test_mode'] = True
        cfg['storage']['backend'] = overrides.get('backend', 'memory')
        cfg['llm']['enabled'] = overrides.get('llm_enabled', True)
        return cfg

    return _factory


@pytest.fixture
def configured_settings() -> LLMSettings:
    return LLMSettings(
        api_key="test-key",
        endpoint="https://example.openai.azure.com",
        api_version="2024-10-21",
        deployment="gpt-test",
    )


def make_agent(content=None, error=None, calls=None, status=None):
    """Stand-in for an Agno agent: run(prompt) -> object with .content and .status"""

    def run(prompt: str):
        if calls is not None:
            calls.append(prompt)
        if error is not None:
            raise error
        return SimpleNamespace(content=content, status=status)

    return SimpleNamespace(run=run)


@pytest.fixture
def agent_factory():
    return make_agent


AI_RESPONSE = {
    "complexity": "moderate",
    "tasks": [
        {
            "title": "Model the inventory",
            "description": "Create item and stock tables",
            "priority": "high",
            "estimatedComplexity": 5,
            "fileChanges": [
                {"filePath": "app/models.py", "action": "create", "description": "Inventory models"}
            ],
            "acceptanceCriteria": ["Items can be stored"],
            "tags": ["database"],
            "order": 1,
        },
        {
            "title": "Expose stock levels",
            "description": "Read-only endpoint for current stock",
            "priority": "medium",
            "estimatedComplexity": 2,
            "dependencies": [{"taskId": "Model the inventory", "type": "requires"}],
            "order": 2,
        },
    ],
    "suggestions": ["Cache stock reads"],
}


@pytest.fixture
def ai_response() -> dict:
    return copy.deepcopy(AI_RESPONSE)


@pytest.fixture
def ai_analyzer(configured_settings, ai_response):
    return AIAnalyzer(configured_settings, agent=make_agent(json.dumps(ai_response)))


@pytest.fixture
def service(config_factory):
    service = PlanningService(config=config_factory())
    try:
        yield service
    finally:
        service.close()
