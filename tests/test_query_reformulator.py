from conftest import hit

from knowledge_search.core.config import SearchConfig
from knowledge_search.services.query_reformulator import (
    QueryReformulator,
    ReformulationOptions,
    expand_abbreviations,
    extract_keywords,
    is_complex,
    sub_queries,
)


def texts(variants):
    return [v.text for v in variants]


def test_short_query_is_returned_alone():
    assert texts(QueryReformulator().reformulate("ml")) == ["ml"]


def test_disabled_returns_original_only():
    options = ReformulationOptions(enabled=False)
    query = "find ml documents"
    assert texts(QueryReformulator().reformulate(query, options)) == [query]


def test_compound_query_splits_into_clauses():
    variants = texts(QueryReformulator().reformulate("machine learning and neural networks"))

    assert variants[0] == "machine learning and neural networks"
    assert "machine learning" in variants
    assert "neural networks" in variants


def test_abbreviations_and_synonyms_are_added_after_original():
    variants = texts(QueryReformulator().reformulate("find ml documents"))

    assert variants == [
        "find ml documents",
        "find machine learning documents",
        "search ml documents",
        "locate ml documents",
    ]


def test_variant_count_is_capped_and_unique():
    options = ReformulationOptions(max_sub_queries=1)
    variants = texts(QueryReformulator().reformulate("find ml documents", options))

    assert variants == ["find ml documents", "find machine learning documents"]
    assert len(set(variants)) == len(variants)


def test_options_follow_config():
    options = ReformulationOptions.from_config(SearchConfig(reformulation_enabled=False, max_sub_queries=5))
    assert options.enabled is False
    assert options.max_sub_queries == 5


def test_helpers():
    assert expand_abbreviations("k8s on aws") == "kubernetes on amazon web services"
    assert extract_keywords("What is the API for the UI?") == ["api"]
    assert not is_complex("cats")
    assert sub_queries("short one") == ["short one"]


def test_merge_results_keeps_best_hit_per_entry():
    merged = QueryReformulator.merge_results(
        [
            [hit("a", 0.4), hit("b", 0.9)],
            [hit("a", 0.8), hit("c", 0.1)],
            [],
        ]
    )

    assert [(r.source_id, r.score) for r in merged] == [("b", 0.9), ("a", 0.8), ("c", 0.1)]
