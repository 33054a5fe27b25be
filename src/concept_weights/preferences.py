"""
Pairwise relevance preferences.

A preference ``(q, d1, d2)`` states that for query ``q`` document ``d2`` is
more relevant than ``d1`` ("d1 <q d2"). Its kind records how the current
ranking treats it:

    +  satisfied    RSV(q, d2) already exceeds RSV(q, d1)
    -  unsatisfied  RSV(q, d1) >= RSV(q, d2); becomes a constraint and a cost term
    C  cost-only    unsatisfied, but the weight bounds cannot fix it; cost term only

``generate_preferences`` derives these from relevance judgments and a set of
RSV values, the same way the ``eval_prefs`` tool of the 1989 tool chain did.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from concept_weights.config import OptimizerConfig
from concept_weights.errors import DanglingReferenceError, MalformedInputError

logger = logging.getLogger(__name__)


class PreferenceKind(Enum):
    SATISFIED = "+"
    UNSATISFIED = "-"
    COST_ONLY = "C"

    @property
    def constrains(self) -> bool:
        """True for kinds whose concepts are optimized and which enter the cost row."""
        return self is not PreferenceKind.SATISFIED

    @property
    def sign(self) -> float:
        return -1.0 if self is PreferenceKind.SATISFIED else 1.0

    @classmethod
    def parse(cls, symbol: str) -> PreferenceKind:
        return cls(symbol)


@dataclass(frozen=True)
class Preference:
    kind: PreferenceKind
    query: int
    doc1: int
    doc2: int
    delta: float = 0.0

    def document_ids(self) -> tuple[int, int, int]:
        return self.query, self.doc1, self.doc2


@dataclass
class PreferenceCounts:
    total_satisfied: int = 0
    total_unsatisfied: int = 0
    useful_satisfied: int = 0
    useful_unsatisfied: int = 0


@dataclass
class RankedDocument:
    doc_id: int
    level: int
    rsv: float


@dataclass
class _QueryRanking:
    query: int
    documents: list[RankedDocument] = field(default_factory=list)

    def sort(self) -> None:
        # Decreasing RSV; equal RSV ranks the larger document id first.
        self.documents.sort(key=lambda d: (-d.rsv, -d.doc_id))


def group_rsv(
    rsv: Iterable[tuple[int, int, float]],
    known_queries: Iterable[int],
) -> list[tuple[int, dict[int, float]]]:
    """
    Split an RSV stream into per-query blocks.

    Raises:
        MalformedInputError: A query's lines are not contiguous.
        DanglingReferenceError: A query has no relevance judgments.
    """
    known = set(known_queries)
    blocks: list[tuple[int, dict[int, float]]] = []
    seen_queries: set[int] = set()
    current: dict[int, float] | None = None
    current_query = None

    for line_number, (query, doc, value) in enumerate(rsv, start=1):
        if current is None or query != current_query:
            if query in seen_queries:
                raise MalformedInputError(
                    None,
                    line_number,
                    f"{query} {doc} {value}",
                    "RSV values of a query must be grouped",
                )
            if query not in known:
                raise DanglingReferenceError("query", query, "RSV stream")
            seen_queries.add(query)
            current, current_query = {}, query
            blocks.append((query, current))
        current.setdefault(doc, float(value))
    return blocks


def _group_rsv(
    rsv: Iterable[tuple[int, int, float]],
    relevance: dict[int, dict[int, int]],
) -> list[_QueryRanking]:
    rankings: list[_QueryRanking] = []
    for query, values in group_rsv(rsv, relevance):
        ranking = _QueryRanking(query)
        for doc, value in values.items():
            level = relevance[query].get(doc, 0)
            ranking.documents.append(RankedDocument(doc, level, value))
        rankings.append(ranking)

    for ranking in rankings:
        ranked = {d.doc_id for d in ranking.documents}
        # Relevant documents without an RSV line rank with RSV 0.
        for doc, level in sorted(relevance[ranking.query].items()):
            if doc not in ranked:
                ranking.documents.append(RankedDocument(doc, level, 0.0))
        ranking.sort()
    return rankings


def generate_preferences(
    relevance: dict[int, dict[int, int]],
    rsv: Iterable[tuple[int, int, float]],
    config: OptimizerConfig | None = None,
    query: int | None = None,
) -> tuple[list[Preference], PreferenceCounts]:
    """
    Build satisfied/unsatisfied/cost-only preferences from a ranking.

    Args:
        relevance: Query id (negative) -> {document id -> relevance level > 0}.
        rsv: ``(query, doc, rsv)`` triples, grouped by query.
        config: Supplies epsilon and the C1/C2 usefulness test.
        query: If given, only unsatisfied and cost-only preferences of this
            query are emitted; satisfied preferences are kept for all queries.

    Returns:
        The preferences in ranking order and the per-kind counts.
    """
    config = config or OptimizerConfig()
    eps = config.epsilon
    if query is not None and query > 0:
        query = -query

    preferences: list[Preference] = []
    counts = PreferenceCounts()

    for ranking in _group_rsv(rsv, relevance):
        for relevant in ranking.documents:
            if relevant.level <= 0:
                continue
            for other in ranking.documents:
                if other.level != relevant.level - 1 and other.level != 0:
                    continue
                delta = other.rsv - relevant.rsv
                if abs(delta) < eps:
                    delta = 0.0

                if delta >= -eps:
                    kind = PreferenceKind.UNSATISFIED
                    useful = config.c1 * other.rsv - config.c2 * relevant.rsv < -eps
                    counts.total_unsatisfied += 1
                    counts.useful_unsatisfied += int(useful)
                else:
                    kind = PreferenceKind.SATISFIED
                    useful = config.c2 * other.rsv - config.c1 * relevant.rsv >= -eps
                    counts.total_satisfied += 1
                    counts.useful_satisfied += int(useful)

                if not useful:
                    if kind is PreferenceKind.SATISFIED:
                        continue
                    kind = PreferenceKind.COST_ONLY
                other_query = query is not None and ranking.query != query
                if kind is not PreferenceKind.SATISFIED and other_query:
                    continue
                preferences.append(
                    Preference(
                        kind, ranking.query, other.doc_id, relevant.doc_id, delta
                    )
                )

    logger.info(
        "Total + : %d, total - : %d", counts.total_satisfied, counts.total_unsatisfied
    )
    logger.info(
        "Useful + : %d, useful - : %d",
        counts.useful_satisfied,
        counts.useful_unsatisfied,
    )
    return preferences, counts
