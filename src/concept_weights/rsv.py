"""
Retrieval status values of queries against documents.

    RSV(q, d) = sum over shared concepts c of  w_q(c) * w_d(c) * weight(c)

``calculate_rsv`` evaluates every query/document pair at once with sparse
matrix products; ``rsv`` evaluates a single pair with a linear co-scan.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import TYPE_CHECKING

import numpy as np
from scipy.sparse import csr_matrix

from concept_weights.collection import Document, DocumentTable, WeightTable
from concept_weights.errors import DanglingReferenceError
from concept_weights.sorted_list import union

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


def rsv(query: Document, doc: Document, weights: WeightTable) -> float:
    total = 0.0
    for q, d in union(query.concepts, doc.concepts):
        weight = weights.require(q.concept, f"query {query.doc_id}")
        total += q.weight * d.weight * weight
    return total


def _vectors(docs: list[Document], vocabulary: dict[int, int]) -> csr_matrix:
    rows, cols, data = [], [], []
    for row, doc in enumerate(docs):
        for cw in doc.concepts:
            rows.append(row)
            cols.append(vocabulary[cw.concept])
            data.append(cw.weight)
    return csr_matrix(
        (
            np.array(data, dtype=np.float64),
            (np.array(rows, dtype=np.int64), np.array(cols, dtype=np.int64)),
        ),
        shape=(len(docs), len(vocabulary)),
    )


def rsv_matrix(
    documents: DocumentTable, weights: WeightTable
) -> tuple[list[int], list[int], csr_matrix]:
    """
    RSV of every query against every document.

    Returns:
        (query ids, document ids, sparse matrix of shape (queries, documents)),
        both id lists ascending.

    Raises:
        DanglingReferenceError: A concept shared by a query and a document has
            no weight.
    """
    queries = list(documents.queries())
    docs = list(documents.documents())
    query_concepts = {cw.concept for q in queries for cw in q.concepts}
    doc_concepts = {cw.concept for d in docs for cw in d.concepts}
    vocabulary = {
        concept: i for i, concept in enumerate(sorted(query_concepts | doc_concepts))
    }

    concept_weights = np.zeros(len(vocabulary), dtype=np.float64)
    for concept in sorted(query_concepts & doc_concepts):
        weight = weights.require(concept, "RSV calculation")
        concept_weights[vocabulary[concept]] = weight

    q_matrix = _vectors(queries, vocabulary)
    d_matrix = _vectors(docs, vocabulary)
    weighted = q_matrix.multiply(concept_weights[np.newaxis, :]).tocsr()
    scores = (weighted @ d_matrix.T).tocsr()
    return [q.doc_id for q in queries], [d.doc_id for d in docs], scores


def calculate_rsv(
    documents: DocumentTable, weights: WeightTable
) -> Iterator[tuple[int, int, float]]:
    """Yield ``(query, doc, rsv)`` for every pair with a positive RSV."""
    query_ids, doc_ids, scores = rsv_matrix(documents, weights)
    logger.info(
        "Calculating RSV values for %d queries and %d documents",
        len(query_ids),
        len(doc_ids),
    )
    scores.sort_indices()
    for row, query in enumerate(query_ids):
        start, end = scores.indptr[row], scores.indptr[row + 1]
        for col, value in zip(scores.indices[start:end], scores.data[start:end]):
            if value > 0.0:
                yield query, doc_ids[col], float(value)


def rank(
    query_id: int, documents: DocumentTable, weights: WeightTable
) -> tuple[NDArray[np.int64], NDArray[np.float64]]:
    """Document ids ordered by decreasing RSV for one query, with their scores."""
    query = documents.require(query_id, "ranking")
    ids = np.array([d.doc_id for d in documents.documents()], dtype=np.int64)
    scores = np.array(
        [rsv(query, d, weights) for d in documents.documents()], dtype=np.float64
    )
    order = np.lexsort((-ids, -scores))
    return ids[order], scores[order]
