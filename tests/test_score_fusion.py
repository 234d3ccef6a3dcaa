import pytest
from conftest import hit

from knowledge_search.services.score_fusion import best_per_source, combine, normalize, sort_candidates


def test_normalize_rescales_to_unit_interval():
    assert normalize([2.0, 4.0, 3.0]) == [0.0, 1.0, 0.5]


def test_normalize_uniform_scores_map_to_one():
    assert normalize([0.4, 0.4]) == [1.0, 1.0]
    assert normalize([]) == []


def test_self_combine_with_full_weight_preserves_ranking():
    results = [hit("a", 0.9), hit("b", 0.5), hit("c", 0.7), hit("d", 0.1)]

    fused = combine(results, results, 1.0, 0.0)

    assert [f.key for f in fused] == ["a", "c", "b", "d"]


def test_one_sided_items_get_no_credit_from_other_weight():
    semantic = [hit("a", 0.9), hit("b", 0.3)]
    keyword = [hit("c", 5.0), hit("d", 1.0)]

    fused = {f.key: f for f in combine(semantic, keyword, 0.7, 0.3)}

    assert fused["a"].combined == pytest.approx(0.7)
    assert fused["b"].combined == pytest.approx(0.0)
    assert fused["c"].combined == pytest.approx(0.3)
    assert fused["c"].in_a is False
    assert fused["c"].in_b is True


def test_combine_weights_normalised_scores():
    semantic = [hit("first", 0.9), hit("second", 0.2)]
    keyword = [hit("first", 0.4), hit("second", 0.95)]

    fused = combine(semantic, keyword, 0.7, 0.3)

    assert [f.key for f in fused] == ["first", "second"]
    assert fused[0].combined == pytest.approx(0.7)
    assert fused[1].combined == pytest.approx(0.3)


def test_ties_break_by_ascending_identity():
    fused = combine([hit("b", 0.5), hit("a", 0.5)], [], 1.0, 0.0)
    assert [f.key for f in fused] == ["a", "b"]


def test_base_prefers_side_a_hit():
    fused = combine([hit("a", 0.5, title="from a")], [hit("a", 0.7, title="from b")], 0.5, 0.5)
    assert fused[0].base.title == "from a"


def test_best_per_source_keeps_highest():
    results = [
        hit("a", 0.4, memory_id="m1"),
        hit("a", 0.8, memory_id="m2"),
        hit("b", 0.6, memory_id="m3"),
    ]

    best = best_per_source(results)

    assert [(r.source_id, r.memory_id) for r in best] == [("a", "m2"), ("b", "m3")]


def test_sort_candidates_orders_by_score_then_identity():
    ordered = sort_candidates([hit("b", 0.5), hit("c", 0.9), hit("a", 0.5)])
    assert [r.source_id for r in ordered] == ["c", "a", "b"]
