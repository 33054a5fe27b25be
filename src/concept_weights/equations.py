"""
Equation builder: preferences and document vectors -> optimization matrix.

Only concepts shared by a query and one of the documents of an unsatisfied
or cost-only preference are optimized; each gets a dense matrix column in
order of first appearance. All other concepts keep their IDF, and their
contribution to an RSV is folded into the constant term of the row.

For a preference (q, d1, d2) of sign s (+1 unsatisfied/cost-only, -1
satisfied) the row is

    s * (RSV(q, d1) - RSV(q, d2) + EPSILON) >= 0

Satisfied and unsatisfied rows become constraints; unsatisfied and
cost-only rows are subtracted from the cost row, so maximizing the cost
minimizes the total violation.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from concept_weights.collection import Document, DocumentTable, WeightTable, concept_key
from concept_weights.config import OptimizerConfig
from concept_weights.errors import DanglingReferenceError
from concept_weights.matrix import OptimizationMatrix
from concept_weights.preferences import Preference, PreferenceKind
from concept_weights.sorted_list import SortedList, union

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

NOT_OPTIMIZED = -1


# =============================================================================
# Column assignment
# =============================================================================


@dataclass
class AtomicConcept:
    concept: int
    column: int = NOT_OPTIMIZED


class ColumnMap:
    """Bijection between optimized concept ids and matrix columns."""

    def __init__(self) -> None:
        self._atoms: SortedList[AtomicConcept] = SortedList(concept_key)
        self._by_column: list[int] = []

    def __len__(self) -> int:
        return len(self._by_column)

    def __contains__(self, concept: int) -> bool:
        return concept in self._atoms

    def add(self, concept: int) -> int:
        """Give ``concept`` the next free column unless it already has one."""
        atom = self._atoms.insert_or_fetch(concept, lambda: AtomicConcept(concept))
        if atom.column == NOT_OPTIMIZED:
            atom.column = len(self._by_column)
            self._by_column.append(concept)
        return atom.column

    def column(self, concept: int) -> int:
        atom = self._atoms.lookup(concept)
        return atom.column if atom is not None else NOT_OPTIMIZED

    def concept(self, column: int) -> int:
        return self._by_column[column]

    def by_column(self) -> list[int]:
        return list(self._by_column)

    def by_concept(self) -> Iterator[AtomicConcept]:
        """Optimized concepts in ascending concept id order."""
        return iter(self._atoms)


def assign_columns(
    preferences: Iterable[Preference], documents: DocumentTable
) -> ColumnMap:
    """
    Assign a column to every concept shared by the query and either document of
    an unsatisfied or cost-only preference.
    """
    columns = ColumnMap()
    for pref in preferences:
        if not pref.kind.constrains:
            continue
        context = f"preference {pref.kind.value} {pref.query} {pref.doc1} {pref.doc2}"
        query = documents.require(pref.query, context)
        for doc_id in (pref.doc1, pref.doc2):
            doc = documents.require(doc_id, context)
            for shared, _ in union(query.concepts, doc.concepts):
                columns.add(shared.concept)
    logger.info("Weights to optimize: %d", len(columns))
    return columns


# =============================================================================
# RSV products
# =============================================================================


@dataclass
class RsvProduct:
    """Linear form of an RSV: ``coefficients . x + constant``."""

    has_optimized_overlap: bool
    coefficients: NDArray[np.float64]
    constant: float


def dot_product(
    query: Document, doc: Document, columns: ColumnMap, fixed_idf: WeightTable
) -> RsvProduct:
    """
    RSV of ``doc`` for ``query`` as a function of the optimized weights.

    Shared optimized concepts contribute ``w_q * w_d`` to their column; shared
    concepts without a column add ``w_q * w_d * idf`` to the constant.
    """
    coefficients = np.zeros(len(columns), dtype=np.float64)
    constant = 0.0
    overlap = False
    for q, d in union(query.concepts, doc.concepts):
        product = q.weight * d.weight
        col = columns.column(q.concept)
        if col != NOT_OPTIMIZED:
            coefficients[col] = product
            if product != 0.0:
                overlap = True
        else:
            context = f"RSV of query {query.doc_id} and document {doc.doc_id}"
            idf = fixed_idf.require(q.concept, context)
            constant += product * idf
    return RsvProduct(overlap, coefficients, constant)


# =============================================================================
# Equations
# =============================================================================


@dataclass
class EquationRow:
    preference: Preference
    values: NDArray[np.float64]

    @property
    def coefficients(self) -> NDArray[np.float64]:
        return self.values[:-1]

    @property
    def constant(self) -> float:
        return float(self.values[-1])


@dataclass
class BuildSummary:
    stored: int = 0
    dropped: int = 0
    satisfied: int = 0
    unsatisfied: int = 0
    cost_only: int = 0


class EquationBuilder:
    """
    Builds the rows of one optimization run.

    Args:
        documents: Query and document vectors referenced by the preferences.
        columns: Column assignment from ``assign_columns``.
        idf: IDF of every concept occurring in a shared-concept union.
        config: Supplies C1, C2 and EPSILON.
    """

    def __init__(
        self,
        documents: DocumentTable,
        columns: ColumnMap,
        idf: WeightTable,
        config: OptimizerConfig | None = None,
    ):
        self.documents = documents
        self.columns = columns
        self.idf = idf
        self.config = config or OptimizerConfig()
        self.summary = BuildSummary()
        self._initial = np.array(
            [idf.require(c, "optimized column") for c in columns.by_column()],
            dtype=np.float64,
        )

    @property
    def n_weights(self) -> int:
        return len(self.columns)

    def initial_solution(self) -> NDArray[np.float64]:
        """IDF of every optimized concept, indexed by column."""
        return self._initial.copy()

    def build_row(self, pref: Preference) -> EquationRow | None:
        """Equation row of ``pref``, or None when no optimized concept is shared."""
        context = f"preference {pref.kind.value} {pref.query} {pref.doc1} {pref.doc2}"
        query = self.documents.require(pref.query, context)
        doc1 = self.documents.require(pref.doc1, context)
        doc2 = self.documents.require(pref.doc2, context)

        first = dot_product(query, doc1, self.columns, self.idf)
        second = dot_product(query, doc2, self.columns, self.idf)
        if not first.has_optimized_overlap and not second.has_optimized_overlap:
            return None

        sign = pref.kind.sign
        values = np.empty(self.n_weights + 1, dtype=np.float64)
        values[:-1] = sign * (first.coefficients - second.coefficients)
        values[-1] = sign * (self.config.epsilon + first.constant - second.constant)
        return EquationRow(pref, values)

    def build_rows(self, preferences: Iterable[Preference]) -> list[EquationRow]:
        rows = []
        for pref in preferences:
            row = self.build_row(pref)
            if row is None:
                self.summary.dropped += 1
                continue
            if pref.kind is PreferenceKind.SATISFIED:
                self.summary.satisfied += 1
            elif pref.kind is PreferenceKind.UNSATISFIED:
                self.summary.unsatisfied += 1
            else:
                self.summary.cost_only += 1
            rows.append(row)
        self.summary.stored = self.summary.satisfied + self.summary.unsatisfied
        logger.info(
            "Preferences: %d (dropped %d)", self.summary.stored, self.summary.dropped
        )
        logger.info(
            "Total + : %d, - : %d, C : %d",
            self.summary.satisfied,
            self.summary.unsatisfied,
            self.summary.cost_only,
        )
        return rows

    def build_cost_row(self, rows: Iterable[EquationRow]) -> NDArray[np.float64]:
        cost = np.zeros(self.n_weights + 1, dtype=np.float64)
        for row in rows:
            if row.preference.kind.constrains:
                cost -= row.values
        return cost

    def build_bound_rows(self) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        n = self.n_weights
        lower = np.zeros((n, n + 1), dtype=np.float64)
        upper = np.zeros((n, n + 1), dtype=np.float64)
        idx = np.arange(n)
        lower[idx, idx] = 1.0
        lower[:, -1] = -self.config.c1 * self._initial
        upper[idx, idx] = -1.0
        upper[:, -1] = self.config.c2 * self._initial
        return lower, upper

    def build_translation_rows(self) -> NDArray[np.float64]:
        n = self.n_weights
        translation = np.zeros((n, n + 1), dtype=np.float64)
        idx = np.arange(n)
        translation[idx, idx] = 1.0
        translation[:, -1] = self._initial
        return translation

    def build(self, preferences: Iterable[Preference]) -> OptimizationMatrix:
        rows = self.build_rows(preferences)
        constraints = [
            row.values
            for row in rows
            if row.preference.kind is not PreferenceKind.COST_ONLY
        ]
        lower, upper = self.build_bound_rows()
        return OptimizationMatrix(
            self.n_weights,
            translation=self.build_translation_rows(),
            rsv=constraints,
            lower=lower,
            upper=upper,
            cost=self.build_cost_row(rows),
        )
