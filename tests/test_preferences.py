import pytest

from concept_weights.config import OptimizerConfig
from concept_weights.errors import DanglingReferenceError, MalformedInputError
from concept_weights.preferences import (
    Preference,
    PreferenceKind,
    generate_preferences,
    group_rsv,
)


@pytest.fixture
def relevance():
    return {-1: {10: 1, 20: 1}}


@pytest.fixture
def rsv():
    # Ranking: 30 (0.8), 10 (0.5), 40 (0.2), 20 (no RSV line -> 0).
    return [(-1, 10, 0.5), (-1, 30, 0.8), (-1, 40, 0.2)]


def test_kind_properties():
    assert PreferenceKind.parse("+") is PreferenceKind.SATISFIED
    assert PreferenceKind.SATISFIED.sign == -1.0
    assert PreferenceKind.UNSATISFIED.sign == 1.0
    assert PreferenceKind.COST_ONLY.sign == 1.0
    assert not PreferenceKind.SATISFIED.constrains
    assert PreferenceKind.UNSATISFIED.constrains
    assert PreferenceKind.COST_ONLY.constrains


def test_generate_preferences(relevance, rsv):
    prefs, counts = generate_preferences(relevance, rsv, OptimizerConfig(show_progress=False))

    assert [(p.kind, p.query, p.doc1, p.doc2) for p in prefs] == [
        (PreferenceKind.UNSATISFIED, -1, 30, 10),
        (PreferenceKind.SATISFIED, -1, 40, 10),
        (PreferenceKind.COST_ONLY, -1, 30, 20),
        (PreferenceKind.COST_ONLY, -1, 40, 20),
    ]
    assert [p.delta for p in prefs] == pytest.approx([0.3, -0.3, 0.8, 0.2])

    assert counts.total_satisfied == 1
    assert counts.useful_satisfied == 1
    assert counts.total_unsatisfied == 3
    assert counts.useful_unsatisfied == 1


def test_satisfied_preference_that_is_not_useful_is_dropped(relevance):
    # 0.1 is far enough below 0.5 that the bounds cannot reverse the order.
    rsv = [(-1, 10, 0.5), (-1, 40, 0.1)]
    prefs, counts = generate_preferences(relevance, rsv)
    assert counts.total_satisfied == 1
    assert counts.useful_satisfied == 0
    assert all(p.kind is not PreferenceKind.SATISFIED for p in prefs)


def test_ties_count_as_unsatisfied():
    relevance = {-1: {10: 1}}
    prefs, _ = generate_preferences(relevance, [(-1, 10, 0.5), (-1, 30, 0.5 + 1e-7)])
    assert len(prefs) == 1
    assert prefs[0].kind is PreferenceKind.UNSATISFIED
    assert prefs[0].delta == 0.0


def test_graded_relevance_compares_adjacent_levels():
    relevance = {-1: {10: 2, 20: 1}}
    rsv = [(-1, 20, 0.9), (-1, 10, 0.6), (-1, 30, 0.5)]
    prefs, _ = generate_preferences(relevance, rsv)
    pairs = {(p.doc1, p.doc2): p.kind for p in prefs}
    # Level 2 doc 10 against level 1 doc 20 and unjudged doc 30.
    assert pairs[(20, 10)] is PreferenceKind.UNSATISFIED
    assert pairs[(30, 10)] is PreferenceKind.SATISFIED
    # Level 1 doc 20 against unjudged doc 30 only.
    assert pairs[(30, 20)] is PreferenceKind.SATISFIED
    assert (10, 20) not in pairs


@pytest.mark.parametrize("query", [1, -1])
def test_query_filter_keeps_matching_query(relevance, rsv, query):
    prefs, _ = generate_preferences(relevance, rsv, query=query)
    assert len(prefs) == 4


def test_query_filter_drops_only_unsatisfied(relevance, rsv):
    prefs, _ = generate_preferences(relevance, rsv, query=2)
    assert prefs == [Preference(PreferenceKind.SATISFIED, -1, 40, 10, prefs[0].delta)]


def test_group_rsv():
    blocks = group_rsv([(-1, 10, 0.5), (-1, 20, 0.7), (-1, 10, 0.9), (-2, 5, 1.0)], [-1, -2])
    assert blocks == [(-1, {10: 0.5, 20: 0.7}), (-2, {5: 1.0})]


def test_query_split_across_stream_is_malformed(relevance):
    relevance = {-1: {10: 1}, -2: {10: 1}}
    with pytest.raises(MalformedInputError):
        generate_preferences(relevance, [(-1, 10, 0.5), (-2, 10, 0.5), (-1, 20, 0.1)])


def test_unknown_query_in_rsv_stream(relevance):
    with pytest.raises(DanglingReferenceError):
        generate_preferences(relevance, [(-5, 10, 0.5)])
