"""Task decomposition strategies and the AI-first fallback policy."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

from . import rules
from .errors import ValidationError
from .llm import AIAnalyzer
from .models import AnalysisOutcome, Decomposition

logger = logging.getLogger("planning.planner")


class DecompositionStrategy(ABC):
    """Interface for requirement decomposition strategies."""

    method: str = ""

    @abstractmethod
    def decompose(self, requirements: str, context: Optional[str] = None) -> AnalysisOutcome:
        """Return the analysis, or the failure that prevented it."""


class RuleBasedDecomposition(DecompositionStrategy):
    """Keyword-driven decomposition; always succeeds."""

    method = "rule-based"

    def decompose(self, requirements: str, context: Optional[str] = None) -> AnalysisOutcome:
        return AnalysisOutcome.success(rules.generate(requirements))


class AIDecomposition(DecompositionStrategy):
    method = "ai"

    def __init__(self, analyzer: AIAnalyzer) -> None:
        self.analyzer = analyzer

    def decompose(self, requirements: str, context: Optional[str] = None) -> AnalysisOutcome:
        return self.analyzer.try_analyze(requirements, context)


class Decomposer:
    """Tries the AI strategy when asked, falling back to rules on any failure."""

    def __init__(self, analyzer: Optional[AIAnalyzer] = None, *, ai_enabled: bool = True) -> None:
        self.fallback = RuleBasedDecomposition()
        self.assisted = AIDecomposition(analyzer) if analyzer is not None else None
        self.ai_enabled = ai_enabled

    def decompose(
        self,
        requirements: str,
        *,
        use_ai: bool = False,
        context: Optional[str] = None,
    ) -> Decomposition:
        if not requirements or not requirements.strip():
            raise ValidationError("Requirements are required")

        if use_ai and self.ai_enabled and self.assisted is not None:
            outcome = self.assisted.decompose(requirements, context)
            if outcome.ok:
                return Decomposition.tagged(outcome.analysis, self.assisted.method)
            logger.warning(
                "AI analysis failed (%s: %s), falling back to rule-based",
                type(outcome.error).__name__,
                outcome.error,
            )
        elif use_ai:
            logger.info("AI analysis unavailable, using rule-based decomposition")

        outcome = self.fallback.decompose(requirements, context)
        return Decomposition.tagged(outcome.unwrap(), self.fallback.method)
