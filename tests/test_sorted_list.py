from operator import attrgetter

import pytest

from concept_weights.collection import ConceptWeight, concept_key, doc_key, new_vector
from concept_weights.sorted_list import SortedList, difference, merge, union


def _vector(pairs):
    return new_vector(ConceptWeight(c, w) for c, w in pairs)


@pytest.fixture
def query():
    return _vector([(7, 1.0), (2, 0.5), (11, 2.0), (4, 1.5)])


@pytest.fixture
def document():
    return _vector([(4, 3.0), (5, 1.0), (11, 0.25), (20, 1.0)])


def test_elements_are_sorted_by_key(query):
    assert query.keys() == [2, 4, 7, 11]
    assert [cw.concept for cw in reversed(query)] == [11, 7, 4, 2]
    assert [cw.concept for cw in query.iterate(reverse=True)] == [11, 7, 4, 2]


def test_insert_or_fetch_returns_existing_element(query):
    existing = query.lookup(7)
    fetched = query.insert_or_fetch(7, lambda: ConceptWeight(7, 99.0))
    assert fetched is existing
    assert fetched.weight == 1.0
    assert len(query) == 4


def test_insert_or_fetch_creates_missing_element(query):
    created = query.insert_or_fetch(3, lambda: ConceptWeight(3))
    created.weight += 0.75
    assert query.keys() == [2, 3, 4, 7, 11]
    assert query.lookup(3).weight == 0.75


def test_factory_with_wrong_key_is_rejected(query):
    with pytest.raises(ValueError):
        query.insert_or_fetch(3, lambda: ConceptWeight(8))


def test_lookup_does_not_mutate(query):
    assert query.lookup(100) is None
    assert 100 not in query
    assert len(query) == 4


def test_delete(query):
    removed = query.delete(4)
    assert removed.concept == 4
    assert query.keys() == [2, 7, 11]
    with pytest.raises(KeyError):
        query.delete(4)


def test_empty_list():
    empty = new_vector()
    assert not empty
    assert len(empty) == 0
    assert list(empty) == []
    assert list(union(empty, _vector([(1, 1.0)]))) == []


def test_iteration_is_restartable_and_can_stop_early(query):
    first = []
    for cw in query:
        if cw.concept > 4:
            break
        first.append(cw.concept)
    assert first == [2, 4]
    assert [cw.concept for cw in query] == [2, 4, 7, 11]


def test_union_matches_naive_intersection(query, document):
    pairs = list(union(query, document))
    assert [(q.concept, d.concept) for q, d in pairs] == [(4, 4), (11, 11)]
    assert [q.weight * d.weight for q, d in pairs] == [1.5 * 3.0, 2.0 * 0.25]

    expected = sorted(set(query.keys()) & set(document.keys()))
    assert [q.concept for q, _ in pairs] == expected


def test_difference(query, document):
    assert [cw.concept for cw in difference(query, document)] == [2, 7]
    assert [cw.concept for cw in difference(document, query)] == [5, 20]


def test_merge_prefers_first_operand(query, document):
    merged = list(merge(query, document))
    assert [cw.concept for cw in merged] == [2, 4, 5, 7, 11, 20]
    by_concept = {cw.concept: cw.weight for cw in merged}
    assert by_concept[4] == 1.5
    assert by_concept[11] == 2.0
    assert by_concept[20] == 1.0


@pytest.mark.parametrize("operation", [union, difference, merge])
def test_set_algebra_requires_shared_key(operation, query):
    other = SortedList(attrgetter("concept"), [ConceptWeight(4, 1.0)])
    with pytest.raises(ValueError):
        list(operation(query, other))


def test_shared_key_objects_are_distinct_per_entity():
    assert concept_key is not doc_key
