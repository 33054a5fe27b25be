"""
Ranking quality: interpolated precision/recall tables and rank metrics.

``evaluate_rankings`` produces the ``calc_pr`` report of the 1989 tool chain:
for every query with relevant documents, the best precision reached at or
beyond each recall level 0.00, 0.05, ..., 0.95, averaged over queries, plus
a few per-query diagnostics (first non-relevant rank, worst-ranked relevant
documents, best-ranked non-relevant documents, relevant documents that were
never retrieved).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

import numpy as np

from concept_weights.preferences import group_rsv

RECALL_LEVELS = np.arange(20, dtype=np.float64) * 0.05
DIAGNOSTIC_COUNT = 5


def precision_at_k(relevant: np.ndarray, retrieved: np.ndarray, k: int) -> float:
    """
    Fraction of the top ``k`` retrieved documents that are relevant.

    Args:
        relevant: 1D array of relevant document ids.
        retrieved: 1D array of document ids in ranking order.
        k: Top-k cutoff.
    """
    if k == 0:
        return 0.0
    hits = np.isin(retrieved[:k], relevant).sum()
    return float(hits / k)


def recall_at_k(relevant: np.ndarray, retrieved: np.ndarray, k: int) -> float:
    if relevant.size == 0:
        return 0.0
    hits = np.isin(retrieved[:k], relevant).sum()
    return float(hits / len(relevant))


def average_precision(relevant: np.ndarray, retrieved: np.ndarray) -> float:
    """Mean of the precision values at the rank of every relevant document retrieved."""
    if relevant.size == 0:
        return 0.0

    relevant_set = set(relevant.tolist())
    hits, sum_precisions = 0, 0.0
    for i, doc_id in enumerate(retrieved.tolist(), start=1):
        if doc_id in relevant_set:
            hits += 1
            sum_precisions += hits / i
    return sum_precisions / len(relevant_set)


def reciprocal_rank(relevant: np.ndarray, retrieved: np.ndarray) -> float:
    relevant_set = set(relevant.tolist())
    for i, doc_id in enumerate(retrieved.tolist(), start=1):
        if doc_id in relevant_set:
            return 1.0 / i
    return 0.0


def mean_average_precision(runs: Iterable[tuple[np.ndarray, np.ndarray]]) -> float:
    """Average precision over ``(relevant, retrieved)`` pairs, one per query."""
    scores = [average_precision(relevant, retrieved) for relevant, retrieved in runs]
    return float(np.mean(scores)) if scores else 0.0


def mean_reciprocal_rank(runs: Iterable[tuple[np.ndarray, np.ndarray]]) -> float:
    scores = [reciprocal_rank(relevant, retrieved) for relevant, retrieved in runs]
    return float(np.mean(scores)) if scores else 0.0


def precision_recall_table(
    relevant: np.ndarray,
    retrieved: np.ndarray,
    levels: np.ndarray = RECALL_LEVELS,
) -> np.ndarray:
    """
    Interpolated precision: for each recall level, the highest precision at any
    rank whose recall is at least that level.

    Args:
        relevant: Relevant document ids (must be non-empty).
        retrieved: Retrieved document ids in ranking order.
        levels: Recall levels.
    """
    table = np.zeros(len(levels), dtype=np.float64)
    total = len(relevant)
    if total == 0:
        return table
    relevant_set = set(relevant.tolist())
    hits = 0
    for i, doc_id in enumerate(retrieved.tolist(), start=1):
        if doc_id not in relevant_set:
            continue
        hits += 1
        precision, recall = hits / i, hits / total
        reached = levels <= recall
        table[reached] = np.maximum(table[reached], precision)
        if hits == total:
            break
    return table


@dataclass
class QueryReport:
    """Ranking of one query together with the diagnostics printed for it."""

    query: int
    relevant_ids: np.ndarray
    ranking: np.ndarray
    precision: np.ndarray
    first_nonrelevant_rank: int = 0
    first_nonrelevant: int = 0
    worst_relevant: list[tuple[int, int]] = field(default_factory=list)
    best_nonrelevant: list[tuple[int, int]] = field(default_factory=list)
    unretrieved: list[int] = field(default_factory=list)

    @property
    def retrieved(self) -> int:
        return len(self.ranking)

    @property
    def relevant(self) -> int:
        return len(self.relevant_ids)

    def precision_at(self, k: int) -> float:
        return precision_at_k(self.relevant_ids, self.ranking, k)

    def recall_at(self, k: int) -> float:
        return recall_at_k(self.relevant_ids, self.ranking, k)


@dataclass
class PrecisionRecallReport:
    queries: list[QueryReport]
    levels: np.ndarray
    precision: np.ndarray

    @property
    def curve_sum(self) -> float:
        return float(self.precision.sum())

    @property
    def mean_average_precision(self) -> float:
        return mean_average_precision((q.relevant_ids, q.ranking) for q in self.queries)

    @property
    def mean_reciprocal_rank(self) -> float:
        return mean_reciprocal_rank((q.relevant_ids, q.ranking) for q in self.queries)

    def format(self) -> str:
        lines = []
        for q in self.queries:
            lines.append(
                f"QUERY {abs(q.query)} - total {q.retrieved}, relevant {q.relevant}, "
                f"1st nonrel = {q.first_nonrelevant_rank}. {q.first_nonrelevant}"
            )
            lines.extend(f"\t{rank}. {doc}" for rank, doc in q.worst_relevant)
            lines.append("------- best non-relevant:")
            lines.extend(f"\t{rank}. {doc}" for rank, doc in q.best_nonrelevant)
            lines.append("")
            lines.append("RSV zero:  " + "".join(f"{doc}  " for doc in q.unretrieved))
            lines.append("")
        lines.append("-------")
        lines.append(f"Global average for {len(self.queries)} queries")
        lines.append("-------")
        lines.append(" R \t P ")
        lines.append("---\t---")
        lines.extend(
            f"{level:f}\t{prec:f}" for level, prec in zip(self.levels, self.precision)
        )
        lines.append("")
        lines.append(f"Curve sum = {self.curve_sum:f}")
        lines.append(
            f"MAP = {self.mean_average_precision:f}, "
            f"MRR = {self.mean_reciprocal_rank:f}"
        )
        return "\n".join(lines) + "\n"


def _report_query(
    query: int, judged: dict[int, int], values: dict[int, float], levels: np.ndarray
) -> QueryReport:
    # Decreasing RSV, equal RSV by ascending document id.
    ordered = sorted(values.items(), key=lambda item: (-item[1], item[0]))
    ranking = np.array([doc for doc, _ in ordered], dtype=np.int64)
    relevant = np.array(sorted(judged), dtype=np.int64)
    is_relevant = np.isin(ranking, relevant)

    precision = precision_recall_table(relevant, ranking, levels)
    report = QueryReport(query, relevant, ranking, precision)

    nonrelevant_ranks = np.flatnonzero(~is_relevant)
    if nonrelevant_ranks.size:
        report.first_nonrelevant_rank = int(nonrelevant_ranks[0]) + 1
        report.first_nonrelevant = int(ranking[nonrelevant_ranks[0]])

    worst = np.flatnonzero(is_relevant)[::-1][:DIAGNOSTIC_COUNT]
    report.worst_relevant = [(int(r) + 1, int(ranking[r])) for r in worst]
    best = nonrelevant_ranks[:DIAGNOSTIC_COUNT]
    report.best_nonrelevant = [(int(r) + 1, int(ranking[r])) for r in best]
    report.unretrieved = [int(doc) for doc in relevant[~np.isin(relevant, ranking)]]
    return report


def evaluate_rankings(
    relevance: dict[int, dict[int, int]],
    rsv: Iterable[tuple[int, int, float]],
    levels: np.ndarray = RECALL_LEVELS,
) -> PrecisionRecallReport:
    """
    Precision/recall report over every query of the RSV stream that has
    relevance judgments.

    Args:
        relevance: Query id (negative) -> {relevant document id -> level}.
        rsv: ``(query, doc, rsv)`` triples, grouped by query.
        levels: Recall levels of the averaged curve.

    Returns:
        Per-query reports and the precision curve averaged over them.
    """
    reports = [
        _report_query(query, relevance[query], values, levels)
        for query, values in group_rsv(rsv, relevance)
        if relevance[query]
    ]
    if reports:
        precision = np.mean([r.precision for r in reports], axis=0)
    else:
        precision = np.zeros(len(levels), dtype=np.float64)
    return PrecisionRecallReport(reports, levels, precision)
