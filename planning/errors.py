"""Error kinds raised by the planning engine."""

from typing import Optional


class PlanningError(Exception):
    """Base class for every planning failure"""

    kind = "planning_error"


class ValidationError(PlanningError):
    """Required input is missing or malformed"""

    kind = "validation_error"


class NotConfigured(PlanningError):
    """The AI analyzer is missing credentials or endpoint settings"""

    kind = "not_configured"

    def __init__(self, missing: Optional[list] = None):
        self.missing = list(missing or [])
        detail = ", ".join(self.missing) if self.missing else "unknown settings"
        super().__init__(f"Azure OpenAI not configured, missing: {detail}")


class AnalysisError(PlanningError):
    """External analysis failed, timed out, or returned unusable content"""

    kind = "analysis_error"


class NotFound(PlanningError):
    kind = "not_found"

    def __init__(self, entity: str, identifier: str):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity.capitalize()} not found: {identifier}")
