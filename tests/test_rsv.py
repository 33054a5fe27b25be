import numpy as np
import pytest

from concept_weights.collection import DocumentTable, WeightTable
from concept_weights.errors import DanglingReferenceError
from concept_weights.rsv import calculate_rsv, rank, rsv, rsv_matrix


@pytest.fixture
def documents():
    table = DocumentTable()
    for doc_id, concepts in {
        -2: {3: 1.0},
        -1: {1: 1.0, 2: 2.0},
        10: {1: 1.0},
        20: {2: 1.0, 3: 1.0},
        30: {3: 5.0},
    }.items():
        doc = table.add(doc_id)
        for concept, weight in concepts.items():
            doc.add(concept, weight)
    return table


@pytest.fixture
def weights():
    return WeightTable([(1, 0.5), (2, 1.5), (3, 1.0)])


def test_single_pair(documents, weights):
    assert rsv(documents.require(-1), documents.require(20), weights) == pytest.approx(3.0)
    assert rsv(documents.require(-1), documents.require(30), weights) == 0.0


def test_matrix_matches_pairwise_rsv(documents, weights):
    query_ids, doc_ids, scores = rsv_matrix(documents, weights)
    assert query_ids == [-2, -1]
    assert doc_ids == [10, 20, 30]
    dense = scores.toarray()
    for i, q in enumerate(query_ids):
        for j, d in enumerate(doc_ids):
            expected = rsv(documents.require(q), documents.require(d), weights)
            assert dense[i, j] == pytest.approx(expected)


def test_calculate_rsv_skips_zero_scores(documents, weights):
    values = list(calculate_rsv(documents, weights))
    assert [(q, d) for q, d, _ in values] == [(-2, 20), (-2, 30), (-1, 10), (-1, 20)]
    assert [v for _, _, v in values] == pytest.approx([1.0, 5.0, 0.5, 3.0])


def test_missing_weight_of_shared_concept(documents):
    with pytest.raises(DanglingReferenceError):
        rsv_matrix(documents, WeightTable([(1, 0.5), (2, 1.5)]))


def test_rank_breaks_ties_by_larger_id(documents):
    weights = WeightTable([(1, 2.0), (2, 0.5), (3, 1.0)])
    ids, scores = rank(-1, documents, weights)
    # doc 10: 1 * 2.0 = 2.0, doc 20: 2 * 0.5 = 1.0, doc 30: 0.
    np.testing.assert_array_equal(ids, [10, 20, 30])
    np.testing.assert_allclose(scores, [2.0, 1.0, 0.0])

    tied = WeightTable([(1, 1.0), (2, 0.5), (3, 1.0)])
    ids, _ = rank(-1, documents, tied)
    np.testing.assert_array_equal(ids, [20, 10, 30])
