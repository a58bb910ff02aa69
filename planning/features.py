"""Keyword extraction and complexity assessment for requirement text."""

from typing import List

FEATURE_KEYWORDS = [
    'authentication', 'login', 'signup', 'database', 'API', 'endpoint',
    'UI', 'interface', 'frontend', 'backend', 'component', 'service',
    'validation', 'testing', 'deployment',
]

SIMPLE_MAX_WORDS = 50
SIMPLE_MAX_FEATURES = 2
MODERATE_MAX_WORDS = 150
MODERATE_MAX_FEATURES = 5


def extract_features(text: str) -> List[str]:
    """Return the vocabulary keywords found in ``text``.

    Matching is a case-insensitive substring test, so ``"UI"`` also matches
    inside ``"build"``. Labels come back in vocabulary order without repeats.
    """
    lowered = text.lower()
    return [keyword for keyword in FEATURE_KEYWORDS if keyword.lower() in lowered]


def count_words(text: str) -> int:
    return len(text.split())


def assess_complexity(text: str) -> str:
    word_count = count_words(text)
    feature_count = len(extract_features(text))

    if word_count < SIMPLE_MAX_WORDS and feature_count <= SIMPLE_MAX_FEATURES:
        return "simple"
    if word_count < MODERATE_MAX_WORDS and feature_count <= MODERATE_MAX_FEATURES:
        return "moderate"
    return "complex"
