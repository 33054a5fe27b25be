"""
The optimization matrix.

Each row is a dense vector of ``n + 1`` floats: the coefficients of the ``n``
optimized weights followed by a constant term, and reads

    y = sum(a[k] * x[k]) + c >= 0

Rows come in five kinds, stored in this order:

    TRANSLATION   x[i] = idf[i]; re-expresses the origin, never a pivot row
    RSV           one per stored preference
    LOWER_BOUND   x[i] - C1 * idf[i] >= 0
    UPPER_BOUND   C2 * idf[i] - x[i] >= 0
    COST          the objective to maximize

Callers address rows with ``RowRef(kind, index)``; the storage is a single
numpy array so that one Gauss-Jordan exchange updates every block at once.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray


class RowKind(Enum):
    TRANSLATION = "translation"
    RSV = "rsv"
    LOWER_BOUND = "lower"
    UPPER_BOUND = "upper"
    COST = "cost"


ROW_ORDER = (
    RowKind.TRANSLATION,
    RowKind.RSV,
    RowKind.LOWER_BOUND,
    RowKind.UPPER_BOUND,
    RowKind.COST,
)
CONSTRAINT_KINDS = (RowKind.RSV, RowKind.LOWER_BOUND, RowKind.UPPER_BOUND)


@dataclass(frozen=True)
class RowRef:
    kind: RowKind
    index: int

    def __str__(self) -> str:
        return f"{self.kind.value}[{self.index}]"


def _as_block(rows, width: int) -> NDArray[np.float64]:
    block = np.asarray(rows, dtype=np.float64)
    if block.size == 0:
        return np.zeros((0, width), dtype=np.float64)
    if block.ndim == 1:
        block = block.reshape(1, -1)
    if block.shape[1] != width:
        raise ValueError(f"row width {block.shape[1]} does not match {width}")
    return block


class OptimizationMatrix:
    """
    The virtual (m + n + 1) x (n + 1) system of one optimization run.

    Args:
        n_weights: Number of optimized weights (columns before the constant).
        translation: ``n`` translation rows.
        rsv: RSV-difference rows.
        lower: ``n`` lower-bound rows.
        upper: ``n`` upper-bound rows.
        cost: The cost row.
    """

    def __init__(self, n_weights: int, translation, rsv, lower, upper, cost):
        self.n_weights = n_weights
        width = n_weights + 1
        blocks = {
            RowKind.TRANSLATION: _as_block(translation, width),
            RowKind.RSV: _as_block(rsv, width),
            RowKind.LOWER_BOUND: _as_block(lower, width),
            RowKind.UPPER_BOUND: _as_block(upper, width),
            RowKind.COST: _as_block(cost, width),
        }
        for kind in (RowKind.TRANSLATION, RowKind.LOWER_BOUND, RowKind.UPPER_BOUND):
            if blocks[kind].shape[0] != n_weights:
                raise ValueError(
                    f"{kind.value} block needs {n_weights} rows, "
                    f"got {blocks[kind].shape[0]}"
                )
        if blocks[RowKind.COST].shape[0] != 1:
            raise ValueError("exactly one cost row is required")

        self._offsets: dict[RowKind, int] = {}
        self._counts: dict[RowKind, int] = {}
        start = 0
        for kind in ROW_ORDER:
            self._offsets[kind] = start
            self._counts[kind] = blocks[kind].shape[0]
            start += blocks[kind].shape[0]
        self._data = np.vstack([blocks[kind] for kind in ROW_ORDER])

    # -------------------------------------------------------------------------
    # Shape and addressing
    # -------------------------------------------------------------------------

    @property
    def width(self) -> int:
        return self.n_weights + 1

    def count(self, kind: RowKind) -> int:
        return self._counts[kind]

    @property
    def n_constraints(self) -> int:
        """Rows that can become pivot rows (RSV and both bound blocks)."""
        return sum(self._counts[kind] for kind in CONSTRAINT_KINDS)

    def block(self, kind: RowKind) -> NDArray[np.float64]:
        start = self._offsets[kind]
        return self._data[start : start + self._counts[kind]]

    @property
    def constraints(self) -> NDArray[np.float64]:
        """View of all constraint rows, in RSV, lower, upper order."""
        start = self._offsets[RowKind.RSV]
        return self._data[start : start + self.n_constraints]

    @property
    def cost_row(self) -> NDArray[np.float64]:
        return self._data[self._offsets[RowKind.COST]]

    @property
    def cost_value(self) -> float:
        return float(self.cost_row[-1])

    def constraint_refs(self) -> list[RowRef]:
        return [
            RowRef(kind, i)
            for kind in CONSTRAINT_KINDS
            for i in range(self._counts[kind])
        ]

    def constraint_ref(self, position: int) -> RowRef:
        """Row descriptor of the ``position``-th constraint row."""
        for kind in CONSTRAINT_KINDS:
            if position < self._counts[kind]:
                return RowRef(kind, position)
            position -= self._counts[kind]
        raise IndexError("constraint row out of range")

    def _global(self, ref: RowRef) -> int:
        if not 0 <= ref.index < self._counts[ref.kind]:
            raise IndexError(f"row {ref} out of range")
        return self._offsets[ref.kind] + ref.index

    # -------------------------------------------------------------------------
    # Element access
    # -------------------------------------------------------------------------

    def row(self, ref: RowRef) -> NDArray[np.float64]:
        return self._data[self._global(ref)]

    def coefficient(self, ref: RowRef, col: int) -> float:
        return float(self._data[self._global(ref), col])

    def constant(self, ref: RowRef) -> float:
        return float(self._data[self._global(ref), -1])

    def set_coefficient(self, ref: RowRef, col: int, value: float) -> None:
        self._data[self._global(ref), col] = value

    def set_constant(self, ref: RowRef, value: float) -> None:
        self._data[self._global(ref), -1] = value

    def copy(self) -> OptimizationMatrix:
        clone = object.__new__(OptimizationMatrix)
        clone.n_weights = self.n_weights
        clone._offsets = dict(self._offsets)
        clone._counts = dict(self._counts)
        clone._data = self._data.copy()
        return clone

    def evaluate(
        self, x: NDArray[np.float64], kind: RowKind | None = None
    ) -> NDArray[np.float64]:
        """Row values ``A x + c`` of one block (or of all constraint rows)."""
        rows = self.constraints if kind is None else self.block(kind)
        return rows[:, :-1] @ np.asarray(x, dtype=np.float64) + rows[:, -1]

    # -------------------------------------------------------------------------
    # Gauss-Jordan exchange
    # -------------------------------------------------------------------------

    def translate(self, x: NDArray[np.float64]) -> None:
        """Move the origin to ``x``: each non-translation constant absorbs ``A x``."""
        start = self._offsets[RowKind.RSV]
        rows = self._data[start:]
        rows[:, -1] += rows[:, :-1] @ np.asarray(x, dtype=np.float64)

    def pivot(self, ref: RowRef, col: int) -> None:
        """
        Exchange the basic variable of row ``ref`` with the variable of column ``col``.

        The pivot row is solved for the column variable and substituted into
        every other row, translation and cost rows included.
        """
        p = self._global(ref)
        a = self._data
        pivot = a[p, col]
        if pivot == 0.0:
            raise ZeroDivisionError(f"zero pivot at {ref}, column {col}")

        pivot_row = -a[p] / pivot
        pivot_row[col] = 0.0
        column = a[:, col].copy()

        a += np.outer(column, pivot_row)
        a[:, col] = column / pivot
        pivot_row[col] = 1.0 / pivot
        a[p] = pivot_row
