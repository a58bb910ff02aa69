"""Deterministic, offline decomposition driven by topic keywords."""

import re
from enum import Enum
from typing import Callable, List, Tuple, Pattern

from .features import extract_features, assess_complexity
from .models import Analysis, FileChange, TaskDependency, TaskDraft

MAX_GENERIC_TASKS = 5
GENERIC_TITLE_LENGTH = 50
GENERIC_TAG_LIMIT = 3

# Symbolic reference used by the login UI task to point at the auth backend task
AUTH_BACKEND_REF = "AUTH_BACKEND"

SUGGESTIONS = [
    "Consider breaking down large tasks into smaller, testable units",
    "Add error handling and validation for each component",
    "Include unit tests for critical functionality",
]

SENTENCE_SPLIT = re.compile(r"[.!?]+")


class Topic(str, Enum):
    AUTHENTICATION = "authentication"
    DATABASE = "database"
    API = "api"
    UI = "ui"


def _auth_tasks() -> List[TaskDraft]:
    return [
        TaskDraft(
            title="Set up authentication system",
            description="Implement user authentication with secure password hashing",
            priority="high",
            estimated_complexity=5,
            file_changes=[
                FileChange("backend/src/models/User.ts", "create", "Create User model with password hashing"),
                FileChange("backend/src/routes/auth.ts", "create", "Create authentication routes"),
            ],
            acceptance_criteria=[
                "Users can register with email and password",
                "Passwords are hashed using bcrypt",
                "JWT tokens are generated on successful login",
                "Protected routes verify JWT tokens",
            ],
            tags=["authentication", "security"],
            order=1,
        ),
        TaskDraft(
            title="Create login UI component",
            description="Build user-friendly login form with validation",
            priority="high",
            estimated_complexity=3,
            dependencies=[TaskDependency(AUTH_BACKEND_REF, "requires")],
            file_changes=[
                FileChange("frontend/src/components/LoginForm.vue", "create", "Create login form component"),
            ],
            acceptance_criteria=[
                "Form validates email format",
                "Shows error messages for invalid credentials",
                "Redirects to dashboard on successful login",
            ],
            tags=["ui", "authentication"],
            order=2,
        ),
    ]


def _database_tasks() -> List[TaskDraft]:
    return [
        TaskDraft(
            title="Design database schema",
            description="Create database models and relationships",
            priority="high",
            estimated_complexity=5,
            file_changes=[FileChange("backend/src/models/", "create", "Create data models")],
            acceptance_criteria=[
                "Schema supports all required entities",
                "Proper indexing for performance",
                "Relationships are correctly defined",
            ],
            tags=["database", "backend"],
            order=1,
        ),
    ]


def _api_tasks() -> List[TaskDraft]:
    return [
        TaskDraft(
            title="Implement RESTful API endpoints",
            description="Create API routes with proper error handling",
            priority="high",
            estimated_complexity=5,
            file_changes=[FileChange("backend/src/routes/", "create", "Create API route handlers")],
            acceptance_criteria=[
                "All CRUD operations are available",
                "Proper HTTP status codes",
                "Input validation is implemented",
                "Error responses are standardized",
            ],
            tags=["api", "backend"],
            order=2,
        ),
    ]


def _ui_tasks() -> List[TaskDraft]:
    return [
        TaskDraft(
            title="Create UI components",
            description="Build reusable frontend components",
            priority="medium",
            estimated_complexity=3,
            file_changes=[FileChange("frontend/src/components/", "create", "Create Vue components")],
            acceptance_criteria=[
                "Components are responsive",
                "Consistent styling across the app",
                "Proper state management",
            ],
            tags=["ui", "frontend"],
            order=3,
        ),
    ]


# Evaluated in order, independently; every matching topic contributes its tasks
TOPIC_RULES: List[Tuple[Topic, Pattern, Callable[[], List[TaskDraft]]]] = [
    (
        Topic.AUTHENTICATION,
        re.compile(r"\b(auth|login|signup|register|password|session|jwt|token)\b", re.IGNORECASE),
        _auth_tasks,
    ),
    (
        Topic.DATABASE,
        re.compile(r"\b(database|db|mongo|postgres|sql|schema|model|collection)\b", re.IGNORECASE),
        _database_tasks,
    ),
    (
        Topic.API,
        re.compile(r"\b(api|endpoint|rest|graphql|route|controller)\b", re.IGNORECASE),
        _api_tasks,
    ),
    (
        Topic.UI,
        re.compile(r"\b(ui|interface|frontend|component|view|page|form|button)\b", re.IGNORECASE),
        _ui_tasks,
    ),
]


def detect_topics(requirements: str) -> List[Topic]:
    return [topic for topic, pattern, _ in TOPIC_RULES if pattern.search(requirements)]


def split_sentences(requirements: str) -> List[str]:
    return [part.strip() for part in SENTENCE_SPLIT.split(requirements) if part.strip()]


def generic_tasks(requirements: str, features: List[str]) -> List[TaskDraft]:
    """One task per sentence, for text that matches no topic"""
    tasks: List[TaskDraft] = []
    for index, sentence in enumerate(split_sentences(requirements)[:MAX_GENERIC_TASKS]):
        tasks.append(TaskDraft(
            title=f"Implement: {sentence[:GENERIC_TITLE_LENGTH]}...",
            description=sentence,
            priority="medium",
            estimated_complexity=3,
            acceptance_criteria=["Feature is implemented", "Code is tested", "Documentation is updated"],
            tags=features[:GENERIC_TAG_LIMIT],
            order=index + 1,
        ))
    return tasks


def generate(requirements: str) -> Analysis:
    """Rule-based decomposition of ``requirements``. Never raises."""
    features = extract_features(requirements)
    complexity = assess_complexity(requirements)

    tasks: List[TaskDraft] = []
    for _topic, pattern, templates in TOPIC_RULES:
        if pattern.search(requirements):
            tasks.extend(templates())

    if not tasks:
        tasks = generic_tasks(requirements, features)

    return Analysis(tasks=tasks, suggestions=list(SUGGESTIONS), complexity=complexity)
