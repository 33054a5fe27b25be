"""
Simplex solver for the weight optimization matrix.

The constraint rows read ``y[i] = sum(a[i,k] * x[k]) + c[i] >= 0`` and the
cost row ``z = sum(b[k] * x[k]) + d`` is to be maximized. The weights ``x``
are free variables, so the solver works in exchange-step (Stiefel) form:

1. Translation: the origin moves to the IDF solution, every constant absorbs
   ``A x0`` and the column variables become deviations from ``x0``.
2. Elimination: each free variable is exchanged into a constraint row chosen
   by a min-ratio rule; that row is then "transformed" and stops being a
   constraint. Afterwards every column belongs to a slack variable.
3. Feasibility restoration: constraint rows that the starting point already
   violates (possible for hand-made inputs only) are driven back to zero one
   row at a time. Bland's rule picks the exchanges, so no basis repeats.
4. Pivot loop: the column with the largest positive cost coefficient enters,
   the row with the smallest ratio ``c / -a`` leaves, until no cost
   coefficient is positive.
5. Back-substitution: the constant of every row holding a weight variable is
   added to that weight's starting value.

Every row and column carries an identity: positive ``k`` is weight ``k - 1``,
negative ``-i`` is the slack of constraint row ``i - 1``. An exchange step
swaps the identities of its pivot row and column.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np
from tqdm import tqdm

from concept_weights.config import OptimizerConfig
from concept_weights.matrix import OptimizationMatrix, RowKind

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

PIVOT_TOLERANCE = 1e-12
RATIO_TOLERANCE = 1e-12
UNNUMBERED = np.iinfo(np.int64).max


class SolveStatus(Enum):
    OPTIMAL = "optimal"
    INFEASIBLE_BASIS = "infeasible_basis"
    INFEASIBLE = "infeasible"
    ITERATION_LIMIT = "iteration_limit"

    @property
    def ok(self) -> bool:
        return self is SolveStatus.OPTIMAL


@dataclass
class SimplexResult:
    status: SolveStatus
    solution: NDArray[np.float64] | None
    iterations: int = 0
    restorations: int = 0
    cost: float = 0.0
    cost_history: list[float] = field(default_factory=list)
    clamped: int = 0


class SimplexSolver:
    """
    Solves one optimization matrix in place.

    Args:
        matrix: Matrix built by ``EquationBuilder.build``; it is modified.
        initial: Starting weights (the IDF of every optimized concept).
        config: Supplies EPSILON, the iteration ceiling and progress display.
    """

    def __init__(
        self,
        matrix: OptimizationMatrix,
        initial: NDArray[np.float64],
        config: OptimizerConfig | None = None,
    ):
        self.matrix = matrix
        self.config = config or OptimizerConfig()
        self.initial = np.asarray(initial, dtype=np.float64).copy()
        if self.initial.shape != (matrix.n_weights,):
            raise ValueError(
                f"initial solution has shape {self.initial.shape}, "
                f"expected ({matrix.n_weights},)"
            )
        n, m = matrix.n_weights, matrix.n_constraints
        self.n = n
        self.m = m
        self.column_ids = np.arange(1, n + 1)
        self.row_ids = -np.arange(1, m + 1)
        self.transformed = np.zeros(m, dtype=bool)
        self.iterations = 0
        self.restorations = 0
        self.clamped = 0
        self.cost_history: list[float] = []
        self._translated = False

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _clamp_round_off(self) -> None:
        """Set constants in [-EPSILON, 0) of open constraint rows to zero."""
        constants = self.matrix.constraints[:, -1]
        eps = self.config.epsilon
        mask = ~self.transformed & (constants < 0.0) & (constants >= -eps)
        count = int(mask.sum())
        if count:
            for position in np.flatnonzero(mask):
                logger.debug(
                    "inaccuracy in row %s, val = %g",
                    self.matrix.constraint_ref(int(position)),
                    constants[position],
                )
            constants[mask] = 0.0
            self.clamped += count

    @property
    def _exchanges(self) -> int:
        return self.iterations + self.restorations

    def _lowest_row(self, mask: NDArray[np.bool_]) -> int:
        """Position of the masked row whose basic variable has the lowest number."""
        numbers = np.where(mask, np.abs(self.row_ids), UNNUMBERED)
        return int(np.argmin(numbers))

    def _exchange(self, position: int, col: int) -> None:
        self.matrix.pivot(self.matrix.constraint_ref(position), col)
        row_id, column_id = self.row_ids[position], self.column_ids[col]
        self.row_ids[position], self.column_ids[col] = column_id, row_id

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    def translate(self) -> None:
        """Fold the starting weights into the constants of every non-translation row."""
        if self._translated:
            return
        self.matrix.translate(self.initial)
        self._translated = True
        self._clamp_round_off()
        violated = int((self.matrix.constraints[:, -1] < 0.0).sum())
        if violated:
            logger.warning(
                "%d constraint rows are violated by the starting weights", violated
            )

    def eliminate(self) -> bool:
        """
        Exchange every free weight variable into a constraint row.

        Returns:
            False if some variable has no admissible pivot row.
        """
        logger.info("Elimination.")
        cost = self.matrix.cost_row
        for col in tqdm(
            range(self.n),
            desc="Elimination",
            unit="col",
            disable=not self.config.show_progress,
            leave=False,
        ):
            self._clamp_round_off()
            rows = self.matrix.constraints
            coefficients = rows[:, col]
            constants = rows[:, -1]
            open_rows = ~self.transformed & (constants >= 0.0)

            with np.errstate(divide="ignore", invalid="ignore"):
                ratios = constants / coefficients
            if cost[col] > 0.0:
                candidates = open_rows & (coefficients < 0.0)
                if not candidates.any():
                    logger.error("no admissible pivot row for column %d", col)
                    return False
                position = int(np.argmax(np.where(candidates, ratios, -np.inf)))
            else:
                candidates = open_rows & (coefficients > 0.0)
                if not candidates.any():
                    logger.error("no admissible pivot row for column %d", col)
                    return False
                position = int(np.argmin(np.where(candidates, ratios, np.inf)))

            self._exchange(position, col)
            self.transformed[position] = True
        return True

    def restore_feasibility(self) -> SolveStatus | None:
        """
        Drive constraint rows with negative constants back to zero.

        Returns:
            None once every open row is feasible, otherwise the failure status.
        """
        eps = self.config.epsilon
        target = None
        while True:
            self._clamp_round_off()
            rows = self.matrix.constraints
            constants = rows[:, -1]
            violated = ~self.transformed & (constants < -eps)
            if not violated.any():
                return None
            # One row at a time: the target stays until it is satisfied.
            if target is None or not violated[target]:
                target = int(np.argmin(np.where(violated, constants, np.inf)))

            # Bland's rule: lowest variable number among the improving columns.
            improving = rows[target, :-1] > PIVOT_TOLERANCE
            if not improving.any():
                logger.error(
                    "row %s cannot be satisfied (val = %g)",
                    self.matrix.constraint_ref(target),
                    constants[target],
                )
                return SolveStatus.INFEASIBLE
            if self._exchanges >= self.config.max_iterations:
                logger.error(
                    "iteration limit of %d reached", self.config.max_iterations
                )
                return SolveStatus.ITERATION_LIMIT
            numbers = np.where(improving, np.abs(self.column_ids), UNNUMBERED)
            col = int(np.argmin(numbers))

            column = rows[:, col]
            step = -constants[target] / rows[target, col]
            blocking = (
                ~self.transformed & (constants >= 0.0) & (column < -PIVOT_TOLERANCE)
            )
            position = target
            if blocking.any():
                with np.errstate(divide="ignore", invalid="ignore"):
                    ratios = np.where(blocking, constants / -column, np.inf)
                best = ratios.min()
                if best < step:
                    position = self._lowest_row(ratios <= best + RATIO_TOLERANCE)
            self._exchange(position, col)
            self.restorations += 1

    def iterate(self) -> SolveStatus:
        """Run the pivot loop until no cost coefficient is positive."""
        logger.info("Calculation loop start.")
        cost = self.matrix.cost_row
        self.cost_history.append(self.matrix.cost_value)
        disable = not self.config.show_progress
        with tqdm(desc="Simplex", unit="pivot", disable=disable, leave=False) as bar:
            while True:
                self._clamp_round_off()
                col = int(np.argmax(cost[:-1])) if self.n else 0
                if self.n == 0 or cost[col] <= 0.0:
                    return SolveStatus.OPTIMAL

                rows = self.matrix.constraints
                column = rows[:, col]
                constants = rows[:, -1]
                candidates = ~self.transformed & (column < 0.0)
                if not candidates.any():
                    logger.error(
                        "no pivot row for column %d; there is no bounded optimum",
                        col,
                    )
                    return SolveStatus.INFEASIBLE
                if self._exchanges >= self.config.max_iterations:
                    logger.error(
                        "iteration limit of %d reached", self.config.max_iterations
                    )
                    return SolveStatus.ITERATION_LIMIT

                with np.errstate(divide="ignore", invalid="ignore"):
                    ratios = np.where(candidates, constants / -column, np.inf)
                position = self._lowest_row(ratios <= ratios.min() + RATIO_TOLERANCE)

                self._exchange(position, col)
                self.iterations += 1
                self.cost_history.append(self.matrix.cost_value)
                logger.debug(
                    "pivot %d: column %d, row %s, cost %g",
                    self.iterations,
                    col,
                    self.matrix.constraint_ref(position),
                    self.matrix.cost_value,
                )
                bar.update(1)

    def back_substitute(self) -> NDArray[np.float64]:
        """Add the constant of every row holding a weight variable to that weight."""
        x = self.initial.copy()
        constants = self.matrix.constraints[:, -1]
        for position, identity in enumerate(self.row_ids):
            if identity > 0:
                x[identity - 1] += constants[position]
        return x

    def translation_values(self) -> NDArray[np.float64]:
        """Current weights as carried by the translation rows."""
        return self.matrix.block(RowKind.TRANSLATION)[:, -1].copy()

    # -------------------------------------------------------------------------
    # Driver
    # -------------------------------------------------------------------------

    def _result(
        self, status: SolveStatus, solution: NDArray[np.float64] | None
    ) -> SimplexResult:
        return SimplexResult(
            status=status,
            solution=solution,
            iterations=self.iterations,
            restorations=self.restorations,
            cost=self.matrix.cost_value,
            cost_history=list(self.cost_history),
            clamped=self.clamped,
        )

    def solve(self) -> SimplexResult:
        if self.n == 0:
            logger.info("Nothing to optimize.")
            return self._result(SolveStatus.OPTIMAL, self.initial.copy())

        self.translate()
        if not self.eliminate():
            return self._result(SolveStatus.INFEASIBLE_BASIS, None)

        failure = self.restore_feasibility()
        if failure is not None:
            return self._result(failure, None)
        if self.restorations:
            logger.info("Feasibility restored after %d exchanges", self.restorations)

        status = self.iterate()
        logger.info("Iterations: %d", self.iterations)
        if not status.ok:
            return self._result(status, None)
        return self._result(status, self.back_substitute())
