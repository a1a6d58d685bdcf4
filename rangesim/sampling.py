"""Constrained binomial and sequential multinomial sampling on grids.

Both transition and dispersal turn continuous probabilities into integer
counts with these two routines:
  - binomial_sample: one independent Binomial(n, p) draw per cell
  - sequential_multinomial: a multinomial split of each cell's count across
    ordered categories, realised as a chain of conditional binomials

Draws are vectorised over cells; within a call the generator is consumed
category by category, each category in C (row-major) cell order.
"""

from __future__ import annotations

from typing import Union

import numpy as np

ArrayLike = Union[np.ndarray, float, int]


def binomial_sample(
    n: np.ndarray,
    p: np.ndarray,
    rng: np.random.Generator,
) -> np.ndarray:
    """Draw one binomial outcome per cell.

    Degenerate cells behave as expected: n=0 or p=0 gives 0, p=1 gives n.
    No clamping is done here; p outside [0, 1] or NaN raises ValueError.

    Args:
        n: Non-negative integer trial counts.
        p: Success probabilities, same shape as n.
        rng: Random generator.

    Returns:
        int64 array of outcomes with the shape of n.
    """
    n = np.asarray(n, dtype=np.int64)
    p = np.asarray(p, dtype=np.float64)
    return rng.binomial(n, p).astype(np.int64, copy=False)


def sequential_multinomial(
    n: np.ndarray,
    probs: np.ndarray,
    rng: np.random.Generator,
    residual: ArrayLike = 0.0,
) -> np.ndarray:
    """Split per-cell counts across ordered categories.

    Category i is drawn as Binomial(u, p_i / rem_i), where u is the count
    still unallocated and rem_i = residual + sum(p_j for j >= i) is the
    probability mass not yet decided. Conditioning on the remaining mass
    makes the chain an exact multinomial draw in any category order.

    The residual is an implicit last category that is never allocated
    (mortality in a transition). With residual=0 the weights are
    normalised internally and every trial lands in some category.

    Args:
        n: Integer trial counts, shape S.
        probs: Category probabilities or weights with categories on the
            last axis in processing order; shape S + (k,), or (k,) when
            every cell shares the same categories.
        rng: Random generator.
        residual: Unallocated probability mass, broadcastable to S.

    Returns:
        int64 array of shape S + (k,) with allocations summing to <= n.
    """
    probs = np.asarray(probs, dtype=np.float64)
    remaining = np.array(n, dtype=np.int64)
    residual = np.asarray(residual, dtype=np.float64)

    # rem_i for every category at once: reversed cumulative tail sums
    tail = np.cumsum(probs[..., ::-1], axis=-1)[..., ::-1] + residual[..., None]

    y = np.zeros(remaining.shape + (probs.shape[-1],), dtype=np.int64)
    for i in range(probs.shape[-1]):
        p_i = probs[..., i]
        rem = tail[..., i]
        # rem == 0 allocates nothing; NaN passes through and fails the draw
        cond = np.divide(
            p_i, rem, out=np.zeros(np.broadcast(p_i, rem).shape), where=rem != 0,
        )
        np.clip(cond, 0.0, 1.0, out=cond)  # rounding in the tail sums
        draw = binomial_sample(remaining, np.broadcast_to(cond, remaining.shape), rng)
        y[..., i] = np.minimum(draw, remaining)
        remaining -= y[..., i]

    return y
