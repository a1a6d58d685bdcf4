"""Environmental forcing for grid simulations.

The environment is a sequence of (x, y, variable) arrays: either one array
reused for every step (time-invariant) or one array per step
(time-varying). A single 3-D array, or a 4-D (time, x, y, variable) stack,
is also accepted and normalised to a sequence.
"""

from __future__ import annotations

from typing import List, Sequence, Union

import numpy as np

EnvironmentLike = Union[np.ndarray, Sequence[np.ndarray]]


def as_environment_series(env: EnvironmentLike) -> List[np.ndarray]:
    """Normalise an environment argument to a list of (x, y, variable) arrays.

    Args:
        env: One 3-D array (time-invariant), a 4-D (time, x, y, variable)
            array, or a sequence of 3-D arrays.

    Returns:
        List of float64 arrays, one per distinct environment state.
    """
    if isinstance(env, np.ndarray):
        if env.ndim == 3:
            return [env.astype(np.float64, copy=False)]
        if env.ndim == 4:
            return [np.asarray(e, dtype=np.float64) for e in env]
        raise ValueError(
            f"environment array must be 3-D (x, y, variable) or "
            f"4-D (time, x, y, variable), got {env.ndim}-D"
        )
    return [np.asarray(e, dtype=np.float64) for e in env]


def is_time_varying(series: Sequence[np.ndarray]) -> bool:
    """True when the series holds one environment per step."""
    return len(series) > 1


def environment_index(series: Sequence[np.ndarray], step: int) -> int:
    """Index of the environment used at ``step`` (0 if time-invariant)."""
    return step if is_time_varying(series) else 0


def environment_at(series: Sequence[np.ndarray], step: int) -> np.ndarray:
    """Environment slice for a step.

    Raises:
        IndexError: A time-varying series is shorter than the run.
    """
    idx = environment_index(series, step)
    if idx >= len(series):
        raise IndexError(
            f"time-varying environment has {len(series)} steps, "
            f"step {step} requested"
        )
    return series[idx]


def empty_environment(grid_shape) -> np.ndarray:
    """(x, y, 0) environment for models without environmental effects."""
    return np.zeros(tuple(grid_shape) + (0,), dtype=np.float64)
