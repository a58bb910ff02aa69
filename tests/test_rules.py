import pytest

from planning import rules
from planning.features import assess_complexity, extract_features
from planning.rules import Topic, detect_topics, generate


def test_extract_features_is_case_insensitive_substring_match():
    features = extract_features("Build a LOGIN page with JWT Authentication")
    # "ui" is found inside "Build"
    assert features == ["authentication", "login", "UI"]


def test_extract_features_handles_text_without_keywords():
    assert extract_features("Send weekly digest emails") == []


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Fix the typo", "simple"),
        ("authentication database endpoint", "moderate"),
        ("authentication login signup database endpoint service", "complex"),
    ],
)
def test_assess_complexity_tiers(text, expected):
    assert assess_complexity(text) == expected


def test_assess_complexity_moves_forward_across_word_boundaries():
    ranks = {"simple": 0, "moderate": 1, "complex": 2}
    counts = [10, 49, 50, 100, 149, 150, 400]
    labels = [assess_complexity(" ".join(["word"] * n)) for n in counts]

    assert labels == ["simple", "simple", "moderate", "moderate", "moderate", "complex", "complex"]
    assert [ranks[label] for label in labels] == sorted(ranks[label] for label in labels)


def test_authentication_and_database_scenario():
    analysis = generate("Add JWT authentication and a database of users.")

    assert [task.title for task in analysis.tasks] == [
        "Set up authentication system",
        "Create login UI component",
        "Design database schema",
    ]
    assert analysis.complexity == "simple"

    login_task = analysis.tasks[1]
    assert login_task.dependencies[0].target_task_ref == rules.AUTH_BACKEND_REF
    assert login_task.dependencies[0].kind == "requires"
    assert all(task.status == "pending" for task in analysis.tasks)


def test_topics_are_additive():
    text = "Build a REST api with a login form"
    assert detect_topics(text) == [Topic.AUTHENTICATION, Topic.API, Topic.UI]

    titles = [task.title for task in generate(text).tasks]
    assert titles == [
        "Set up authentication system",
        "Create login UI component",
        "Implement RESTful API endpoints",
        "Create UI components",
    ]


def test_topic_detection_uses_word_boundaries():
    assert detect_topics("Handle authorization rules for editors") == []


def test_generic_tasks_one_per_sentence():
    analysis = generate("Send weekly digest emails. Track open rates! Archive old digests?  ")

    assert [task.description for task in analysis.tasks] == [
        "Send weekly digest emails",
        "Track open rates",
        "Archive old digests",
    ]
    assert analysis.tasks[0].title == "Implement: Send weekly digest emails..."
    assert [task.order for task in analysis.tasks] == [1, 2, 3]
    assert all(task.estimated_complexity == 3 for task in analysis.tasks)


def test_generic_tasks_capped_at_five():
    analysis = generate("One. Two. Three. Four. Five. Six. Seven.")
    assert len(analysis.tasks) == rules.MAX_GENERIC_TASKS
    assert analysis.tasks[-1].description == "Five"


def test_generic_title_truncates_sentence_to_fifty_characters():
    sentence = (
        "Generate monthly invoices for every customer account "
        "and email them automatically to billing contacts"
    )
    task = generate(sentence).tasks[0]

    assert task.title == f"Implement: {sentence[:50]}..."
    assert len(task.title) == len("Implement: ") + 50 + len("...")


def test_generic_tasks_tagged_with_first_three_features():
    analysis = generate("Improve deployment testing and validation for the service layer.")
    assert analysis.tasks[0].tags == ["service", "validation", "testing"]


def test_suggestions_are_fixed_on_every_path():
    topical = generate("Add a login form")
    generic = generate("Send weekly digest emails.")
    empty = generate("   ")

    assert topical.suggestions == rules.SUGGESTIONS
    assert generic.suggestions == rules.SUGGESTIONS
    assert empty.suggestions == rules.SUGGESTIONS
    assert empty.tasks == []


def test_templates_are_fresh_per_call():
    first = generate("Add a login form")
    first.tasks[0].tags.append("mutated")
    first.tasks[0].file_changes.clear()

    second = generate("Add a login form")
    assert second.tasks[0].tags == ["authentication", "security"]
    assert len(second.tasks[0].file_changes) == 2
