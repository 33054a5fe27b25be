"""
End-to-end weight optimization.

Usage:
    from concept_weights.optimizer import load_problem, optimize

    problem = load_problem("prefs.txt", "docs.txt", "idf.txt", concepts="concepts.txt")
    result = optimize(problem.preferences, problem.documents, problem.idf)
    result.raise_for_status()
    for concept, weight in result.weights():
        ...
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import IO, TYPE_CHECKING

from concept_weights.collection import DocumentTable, WeightTable
from concept_weights.config import OptimizerConfig
from concept_weights.equations import (
    BuildSummary,
    ColumnMap,
    EquationBuilder,
    assign_columns,
)
from concept_weights.errors import OptimizationFailed
from concept_weights.preferences import Preference
from concept_weights.readers import (
    read_concepts,
    read_documents,
    read_preferences,
    read_weights,
    write_weights,
)
from concept_weights.simplex import SimplexResult, SimplexSolver, SolveStatus
from concept_weights.sorted_list import merge

if TYPE_CHECKING:
    import numpy as np
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)


@dataclass
class Problem:
    preferences: list[Preference]
    documents: DocumentTable
    idf: WeightTable


def load_problem(
    preferences: str | Path,
    documents: str | Path,
    idf: str | Path,
    concepts: str | Path | None = None,
    progress: bool = False,
) -> Problem:
    """
    Read the optimizer's input files.

    Only documents and queries named by some preference are kept. When a
    concept file is given, the document file holds sign weights that are
    expanded onto atomic concepts.
    """
    prefs = read_preferences(preferences, progress=progress)
    wanted = {doc_id for pref in prefs for doc_id in pref.document_ids()}
    signs = read_concepts(concepts, progress=progress) if concepts is not None else None
    docs = read_documents(documents, signs=signs, wanted=wanted, progress=progress)
    weights = read_weights(idf, progress=progress)
    return Problem(prefs, docs, weights)


@dataclass
class OptimizationResult:
    status: SolveStatus
    columns: ColumnMap
    idf: WeightTable
    solution: NDArray[np.float64] | None
    simplex: SimplexResult
    summary: BuildSummary

    @property
    def ok(self) -> bool:
        return self.status.ok

    @property
    def iterations(self) -> int:
        return self.simplex.iterations

    def raise_for_status(self) -> None:
        if not self.ok:
            raise OptimizationFailed(self.status, self.simplex.iterations)

    def optimized_weights(self) -> WeightTable:
        """Weights of the optimized concepts only."""
        self.raise_for_status()
        return WeightTable(
            (atom.concept, float(self.solution[atom.column]))
            for atom in self.columns.by_concept()
        )

    def weights(self) -> Iterator[tuple[int, float]]:
        """
        Every concept exactly once, ascending: optimized weights where a concept
        was optimized, its unchanged IDF otherwise.
        """
        optimized = self.optimized_weights()
        for entry in merge(optimized.entries, self.idf.entries):
            yield entry.concept, entry.weight

    def unchanged(self) -> Iterator[tuple[int, float]]:
        for entry in self.idf:
            if entry.concept not in self.columns:
                yield entry.concept, entry.weight

    def emit(self, out: IO[str]) -> int:
        return write_weights(self.weights(), out)


def optimize(
    preferences: list[Preference],
    documents: DocumentTable,
    idf: WeightTable,
    config: OptimizerConfig | None = None,
) -> OptimizationResult:
    """Learn concept weights that best satisfy ``preferences``."""
    config = config or OptimizerConfig()
    logger.info("Parameters: C1 = %f, C2 = %f", config.c1, config.c2)

    logger.info("Serializing atoms.")
    columns = assign_columns(preferences, documents)

    logger.info("Calculating RSV values.")
    builder = EquationBuilder(documents, columns, idf, config)
    matrix = builder.build(preferences)

    logger.info("Simplex algorithm.")
    solver = SimplexSolver(matrix, builder.initial_solution(), config)
    outcome = solver.solve()
    if outcome.status.ok:
        logger.info(
            "Optimal cost %g after %d iterations", outcome.cost, outcome.iterations
        )
    else:
        logger.error("Optimization failed: %s", outcome.status.name)

    return OptimizationResult(
        status=outcome.status,
        columns=columns,
        idf=idf,
        solution=outcome.solution,
        simplex=outcome,
        summary=builder.summary,
    )
