import pytest

from knowledge_search.domain.models import Memory
from knowledge_search.services.similarity import deduplicate_memories, is_duplicate, normalize, similarity

SAMPLES = [
    "Met Bob at 3pm",
    "Alice prefers tea over coffee",
    "The quarterly review moved to Friday",
    "",
    "x",
]


@pytest.mark.parametrize("text", SAMPLES)
def test_identical_strings_score_one(text):
    assert similarity(text, text) == 1.0


@pytest.mark.parametrize("a", SAMPLES)
@pytest.mark.parametrize("b", SAMPLES)
def test_similarity_is_symmetric_and_bounded(a, b):
    score = similarity(a, b)
    assert 0.0 <= score <= 1.0
    assert score == pytest.approx(similarity(b, a))


def test_empty_against_non_empty_is_zero():
    assert similarity("", "anything") == 0.0


def test_containment_counts_as_full_match():
    assert similarity("Bob likes sailing", "On weekends Bob likes sailing a lot") == 1.0


def test_normalize_strips_case_and_punctuation():
    assert normalize("  Met BOB, at 3pm!! ") == "met bob at 3pm"


def test_cosmetic_variants_are_duplicates():
    assert is_duplicate("Met Bob at 3pm", "met bob at 3 pm")


def test_unrelated_facts_are_not_duplicates():
    assert not is_duplicate("Alice prefers tea", "The server migration finished")


def test_deduplicate_keeps_first_seen():
    memories = [
        Memory(content="Met Bob at 3pm"),
        Memory(content="Alice prefers tea over coffee"),
        Memory(content="met bob at 3 pm"),
    ]

    kept = deduplicate_memories(memories)

    assert [m.content for m in kept] == ["Met Bob at 3pm", "Alice prefers tea over coffee"]
