"""Offspring dispersal across a spatial grid.

Each cell's offspring are redistributed over a square neighbourhood kernel
of odd side 2r+1 (centre = stay in place). Work happens on a grid padded by
r on every side so that every offset of every cell has a landing spot:
  - Stochastic: each cell's integer count is split over kernel offsets by
    a sequential multinomial, most probable offset first. Kernel entries
    are weights; they are normalised internally and every offspring lands
    somewhere in the padded grid.
  - Deterministic: the padded grid is the full 2-D convolution of the
    offspring field with the kernel, i.e. S[cell] · kernel added at each
    cell. Entries act as literal multipliers.

Boundaries either reflect (padding folded back onto the mirrored interior
rows and columns, conserving mass) or absorb (padding discarded).
"""

from __future__ import annotations

from typing import Optional

import numpy as np
from scipy.signal import convolve2d

from rangesim.rng import SeedLike, resolve_rng
from rangesim.sampling import sequential_multinomial


# ═══════════════════════════════════════════════════════════════════════
# KERNEL HELPERS
# ═══════════════════════════════════════════════════════════════════════

def kernel_radius(kernel: np.ndarray) -> int:
    """Window radius r of a (2r+1, 2r+1) kernel."""
    return (kernel.shape[0] - 1) // 2


def dispersal_order(kernel: np.ndarray) -> np.ndarray:
    """Flat (row-major) kernel indices sorted by descending weight.

    Ties keep row-major order. Visiting likely destinations first keeps
    the conditional binomials well away from tiny probabilities when
    counts are small.
    """
    weights = np.asarray(kernel, dtype=np.float64).ravel()
    return np.argsort(-weights, kind='stable')


# ═══════════════════════════════════════════════════════════════════════
# BOUNDARY REFLECTION
# ═══════════════════════════════════════════════════════════════════════

def reflect_index(index: np.ndarray, length: int) -> np.ndarray:
    """Mirror interior-relative indices back into [0, length).

    Symmetric reflection including the edge cell: -1 → 0, -2 → 1,
    length → length - 1. Indices further out keep bouncing between the
    two edges, so any radius maps inside any grid.
    """
    period = 2 * length
    m = np.mod(index, period)
    return np.where(m >= length, period - 1 - m, m)


def reflect_padding(T: np.ndarray, r: int) -> np.ndarray:
    """Fold the r-wide padding of T onto the interior and return it.

    Rows are folded first, then columns, so corner mass is mirrored
    across both edges. Total mass is unchanged.
    """
    rows = T.shape[0] - 2 * r
    cols = T.shape[1] - 2 * r

    row_map = reflect_index(np.arange(T.shape[0]) - r, rows)
    folded = np.zeros((rows, T.shape[1]), dtype=np.float64)
    np.add.at(folded, row_map, T)

    col_map = reflect_index(np.arange(T.shape[1]) - r, cols)
    out = np.zeros((rows, cols), dtype=np.float64)
    np.add.at(out.T, col_map, folded.T)
    return out


# ═══════════════════════════════════════════════════════════════════════
# DISPERSAL
# ═══════════════════════════════════════════════════════════════════════

def _stochastic_padded(S, kernel, rng) -> np.ndarray:
    rows, cols = S.shape
    side = kernel.shape[0]
    r = kernel_radius(kernel)

    order = dispersal_order(kernel)
    weights = kernel.ravel()[order]
    counts = S.astype(np.int64)

    # (rows, cols, k) allocations, offsets in visiting order
    alloc = sequential_multinomial(counts, weights, rng)

    T = np.zeros((rows + 2 * r, cols + 2 * r), dtype=np.float64)
    for k, flat in enumerate(order):
        i, j = divmod(int(flat), side)
        T[i:i + rows, j:j + cols] += alloc[:, :, k]
    return T


def disperse(
    S: np.ndarray,
    kernel: np.ndarray,
    reflect: bool = True,
    stochastic: bool = True,
    seed: SeedLike = 1,
    rng: Optional[np.random.Generator] = None,
) -> np.ndarray:
    """Simulate dispersal of offspring across a spatial grid.

    Args:
        S: (x, y) offspring counts. Stochastic mode truncates to integers.
        kernel: (2r+1, 2r+1) neighbourhood weights.
        reflect: Bounce dispersers off the domain edge (True) or let them
            leave the domain (False).
        stochastic: Sample the split; if False, use expected values.
        seed: Seed for the call's generator (int or SeedSequence).
        rng: Optional generator to draw from instead of seeding a new one.

    Returns:
        (x, y) post-dispersal counts, same shape as S.
    """
    S = np.asarray(S, dtype=np.float64)
    kernel = np.asarray(kernel, dtype=np.float64)
    r = kernel_radius(kernel)

    if stochastic:
        T = _stochastic_padded(S, kernel, resolve_rng(seed, rng))
    else:
        T = convolve2d(S, kernel, mode='full')

    if reflect:
        return reflect_padding(T, r)
    return T[r:r + S.shape[0], r:r + S.shape[1]].copy()
