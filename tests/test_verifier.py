import pytest
from conftest import hit

from knowledge_search.core.config import SearchConfig
from knowledge_search.domain.models import Confidence
from knowledge_search.services.verifier import (
    ADD_CONTEXT,
    BROADEN_QUERY,
    SPLIT_QUERY,
    Verifier,
    keyword_overlap,
)

QUERY = "tomato seedlings indoors"


@pytest.fixture
def verifier():
    return Verifier(SearchConfig(verification_enabled=True, verification_threshold=0.5))


def test_keyword_overlap():
    assert keyword_overlap(QUERY, "Tomato seedlings grown indoors") == 1.0
    assert keyword_overlap(QUERY, "tomato soup") == pytest.approx(1 / 3)
    assert keyword_overlap("the and of", "anything") == 0.0


def test_disabled_verification_is_skipped():
    results = [hit("a", 0.3, content="car repair")]

    report = Verifier().verify(QUERY, results)

    assert report.confidence == Confidence.SKIPPED
    assert report.results == results
    assert report.suggestion is None


def test_request_flag_overrides_config(verifier):
    results = [hit("a", 0.3, content="car repair")]
    assert verifier.verify(QUERY, results, enabled=False).confidence == Confidence.SKIPPED
    assert Verifier().verify(QUERY, results, enabled=True).confidence == Confidence.LOW


def test_no_results_is_insufficient(verifier):
    report = verifier.verify("cats", [])

    assert report.confidence == Confidence.INSUFFICIENT
    assert report.suggestion == ADD_CONTEXT


def test_filters_below_threshold_and_grades_set(verifier):
    results = [
        hit("a", 0.9, content="tomato seedlings indoors under lights"),
        hit("b", 0.8, content="tomato soup recipe"),
        hit("c", 0.7, content="car repair"),
    ]

    report = verifier.verify(QUERY, results)

    assert [r.source_id for r in report.results] == ["a"]
    assert report.results[0].relevance_score == 1.0
    assert report.confidence == Confidence.MEDIUM
    assert report.suggestion is None
    assert report.original_count == 3
    assert report.filtered_count == 1


def test_low_confidence_suggests_splitting_compound_query(verifier):
    report = verifier.verify("tomato seedlings and peppers", [hit("a", 0.5, content="car repair")])

    assert report.confidence == Confidence.LOW
    assert report.results == []
    assert report.suggestion == SPLIT_QUERY


def test_low_confidence_with_nothing_left_suggests_broadening(verifier):
    report = verifier.verify(QUERY, [hit("a", 0.5, content="car repair")])
    assert report.suggestion == BROADEN_QUERY


def test_high_confidence(verifier):
    report = verifier.verify(QUERY, [hit("a", 0.5, content="indoors: tomato seedlings")])
    assert report.confidence == Confidence.HIGH
