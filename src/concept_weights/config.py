"""
Runtime configuration of the weight optimizer.

The bound multipliers C1/C2 and the round-off tolerance EPSILON were
compile-time constants of the 1989 tools. Here they are plain values with
defaults that can be overridden from the environment:

    CONCEPT_WEIGHTS_C1=0.8
    CONCEPT_WEIGHTS_C2=1.2
    CONCEPT_WEIGHTS_EPSILON=1e-5
    CONCEPT_WEIGHTS_MAX_ITERATIONS=100000
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

# =============================================================================
# Defaults
# =============================================================================

DEFAULT_C1 = 0.5
DEFAULT_C2 = 2.0
DEFAULT_EPSILON = 1e-5
DEFAULT_MAX_ITERATIONS = 100_000

ENV_PREFIX = "CONCEPT_WEIGHTS_"

# Narrower weight bands used in the thesis experiments ("P10" and "P20").
BOUND_PRESETS: dict[str, tuple[float, float]] = {
    "default": (DEFAULT_C1, DEFAULT_C2),
    "p10": (0.9, 1.1),
    "p20": (0.8, 1.2),
}


def _given(overrides: dict) -> dict:
    return {key: value for key, value in overrides.items() if value is not None}


@dataclass(frozen=True)
class OptimizerConfig:
    """
    Parameters shared by the equation builder, the simplex solver and the
    preference evaluator.

    Attributes:
        c1: Lower bound multiplier; an optimized weight stays >= c1 * idf.
        c2: Upper bound multiplier; an optimized weight stays <= c2 * idf.
        epsilon: Tolerance for RSV ties and for clamping round-off negatives.
        max_iterations: Ceiling on pivot-loop iterations.
        show_progress: Draw tqdm running counts on stderr.
    """

    c1: float = DEFAULT_C1
    c2: float = DEFAULT_C2
    epsilon: float = DEFAULT_EPSILON
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    show_progress: bool = True

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if not 0.0 < self.c1 < 1.0:
            raise ValueError(f"c1 must lie in (0, 1), got {self.c1}")
        if self.c2 <= 1.0:
            raise ValueError(f"c2 must be greater than 1, got {self.c2}")
        if self.epsilon <= 0.0:
            raise ValueError(f"epsilon must be positive, got {self.epsilon}")
        if self.max_iterations < 1:
            raise ValueError(
                f"max_iterations must be at least 1, got {self.max_iterations}"
            )

    @classmethod
    def from_env(
        cls, environ: dict[str, str] | None = None, **overrides
    ) -> OptimizerConfig:
        """Build a config from ``CONCEPT_WEIGHTS_*`` variables, then apply overrides."""
        env = os.environ if environ is None else environ
        values = {
            "c1": float(env.get(f"{ENV_PREFIX}C1", DEFAULT_C1)),
            "c2": float(env.get(f"{ENV_PREFIX}C2", DEFAULT_C2)),
            "epsilon": float(env.get(f"{ENV_PREFIX}EPSILON", DEFAULT_EPSILON)),
            "max_iterations": int(
                env.get(f"{ENV_PREFIX}MAX_ITERATIONS", DEFAULT_MAX_ITERATIONS)
            ),
        }
        values.update(_given(overrides))
        return cls(**values)

    @classmethod
    def from_preset(cls, name: str, **overrides) -> OptimizerConfig:
        c1, c2 = BOUND_PRESETS[name.lower()]
        return cls(c1=c1, c2=c2, **overrides)

    def with_overrides(self, **overrides) -> OptimizerConfig:
        return replace(self, **_given(overrides))
