"""Demographic transition and reproduction across a spatial grid.

Transition moves individuals between life stages. For every
(target, source) stage pair the per-cell probability is

    p = alpha[t, s] + Σ_d beta[t, s, d] · N[:, :, d] + Σ_e gamma[t, s, e] · E[:, :, e]

clamped to [0, 1]. Density terms are summed in ascending stage order, then
environment terms in ascending variable order, so results do not depend on
the parameterisation's sparsity pattern.

Two modes (see TransitionMode):
  - GRID_CONSTRAINED: target probabilities of a source are rescaled so they
    sum to at most 1 per cell and the source count is split by one
    sequential multinomial. The unallocated share is mortality; survival in
    place needs an explicit alpha[s, s].
  - PAIRWISE: each pair is an independent binomial from the whole source
    count. The fecundity slot (target, source) builds its probability with
    the intercept forced to 1 and multiplies the draw by the real intercept,
    giving integer offspring at a continuous fecundity rate.

Reproduction is the fecundity-weighted sum of stages.
"""

from __future__ import annotations

from typing import Optional, Sequence, Tuple, Union

import numpy as np

from rangesim.rng import SeedLike, resolve_rng
from rangesim.sampling import binomial_sample, sequential_multinomial
from rangesim.types import DEFAULT_FECUNDITY_SLOT, TransitionMode


# ═══════════════════════════════════════════════════════════════════════
# TRANSITION PROBABILITIES
# ═══════════════════════════════════════════════════════════════════════

def transition_probabilities(
    N: np.ndarray,
    E: np.ndarray,
    alpha: np.ndarray,
    beta: np.ndarray,
    gamma: np.ndarray,
    source: int,
    joint: bool = True,
    intercepts: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Build the per-cell probabilities of leaving ``source`` for each target.

    A target whose coefficients sum to exactly zero is skipped and keeps
    probability 0.

    Args:
        N: (x, y, stage) population.
        E: (x, y, variable) environment.
        alpha: (target, source) intercepts.
        beta: (target, source, stage) density effects.
        gamma: (target, source, variable) environmental effects.
        source: Source stage index.
        joint: Rescale each cell so target probabilities sum to <= 1.
        intercepts: Optional (target,) replacement for alpha[:, source].

    Returns:
        (x, y, target) probability field.
    """
    n_targets = alpha.shape[0]
    grid_shape = N.shape[:2]
    a_col = alpha[:, source] if intercepts is None else intercepts

    p = np.zeros(grid_shape + (n_targets,), dtype=np.float64)
    for t in range(n_targets):
        b = beta[t, source]
        g = gamma[t, source]
        if a_col[t] + b.sum() + g.sum() == 0:
            continue

        slab = np.full(grid_shape, a_col[t], dtype=np.float64)
        for d in range(N.shape[2]):
            if b[d] != 0:
                slab += N[:, :, d] * b[d]
        for e in range(E.shape[2]):
            if g[e] != 0:
                slab += E[:, :, e] * g[e]
        p[:, :, t] = slab

    np.clip(p, 0.0, 1.0, out=p)

    if joint:
        total = p.sum(axis=2)
        over = total > 1.0
        p[over] /= total[over][:, None]

    return p


def _check_fecundity_slot(
    slot: Optional[Tuple[int, int]],
    alpha: np.ndarray,
) -> Optional[Tuple[int, int]]:
    if slot is None:
        return None
    target, source = int(slot[0]), int(slot[1])
    if not (0 <= target < alpha.shape[0] and 0 <= source < alpha.shape[1]):
        raise ValueError(
            f"fecundity_slot {tuple(slot)} is outside alpha of shape "
            f"{alpha.shape}; pass fecundity_slot=None to disable it"
        )
    return target, source


# ═══════════════════════════════════════════════════════════════════════
# TRANSITION
# ═══════════════════════════════════════════════════════════════════════

def _grid_constrained(N, E, alpha, beta, gamma, stochastic, rng) -> np.ndarray:
    out = np.zeros(N.shape, dtype=np.float64)
    for s in range(alpha.shape[1]):
        p = transition_probabilities(N, E, alpha, beta, gamma, s, joint=True)
        if stochastic:
            mortality = np.clip(1.0 - p.sum(axis=2), 0.0, None)
            out += sequential_multinomial(N[:, :, s], p, rng, residual=mortality)
        else:
            out += N[:, :, s, None] * p
    return out


def _pairwise(N, E, alpha, beta, gamma, stochastic, rng, slot) -> np.ndarray:
    out = np.zeros(N.shape, dtype=np.float64)
    n_targets = alpha.shape[0]
    for s in range(alpha.shape[1]):
        intercepts = alpha[:, s].astype(np.float64)
        scale = np.ones(n_targets)
        if slot is not None and slot[1] == s:
            scale[slot[0]] = intercepts[slot[0]]
            intercepts[slot[0]] = 1.0

        p = transition_probabilities(
            N, E, alpha, beta, gamma, s, joint=False, intercepts=intercepts,
        )
        for t in range(n_targets):
            if not p[:, :, t].any():
                continue
            if stochastic:
                moved = binomial_sample(N[:, :, s], p[:, :, t], rng)
            else:
                moved = N[:, :, s] * p[:, :, t]
            out[:, :, t] += moved * scale[t]
    return out


def transition(
    N: np.ndarray,
    E: np.ndarray,
    alpha: np.ndarray,
    beta: np.ndarray,
    gamma: np.ndarray,
    mode: Union[TransitionMode, str] = TransitionMode.GRID_CONSTRAINED,
    stochastic: bool = True,
    seed: SeedLike = 1,
    rng: Optional[np.random.Generator] = None,
    fecundity_slot: Optional[Tuple[int, int]] = DEFAULT_FECUNDITY_SLOT,
) -> np.ndarray:
    """Perform one stage-based demographic transition.

    Sources are processed in index order and, within a source, targets in
    index order; the generator is consumed in that order.

    Args:
        N: (x, y, stage) population counts.
        E: (x, y, variable) environment for this step.
        alpha: (target, source) transition intercepts.
        beta: (target, source, stage) density dependence.
        gamma: (target, source, variable) environmental effects.
        mode: GRID_CONSTRAINED or PAIRWISE.
        stochastic: Sample counts; if False, add expected values instead.
        seed: Seed for the call's generator (int or SeedSequence).
        rng: Optional generator to draw from instead of seeding a new one.
        fecundity_slot: (target, source) pair treated as a fecundity
            multiplier in PAIRWISE mode, or None. Ignored in
            GRID_CONSTRAINED mode.

    Returns:
        (x, y, stage) post-transition population (float64).

    Raises:
        ValueError: Unknown mode, out-of-range fecundity slot in PAIRWISE
            mode, or a NaN probability during sampling.
    """
    mode = TransitionMode(mode)
    N = np.asarray(N, dtype=np.float64)
    E = np.asarray(E, dtype=np.float64)
    alpha = np.asarray(alpha, dtype=np.float64)
    beta = np.asarray(beta, dtype=np.float64)
    gamma = np.asarray(gamma, dtype=np.float64)

    gen = resolve_rng(seed, rng) if stochastic else None

    if mode is TransitionMode.GRID_CONSTRAINED:
        return _grid_constrained(N, E, alpha, beta, gamma, stochastic, gen)

    slot = _check_fecundity_slot(fecundity_slot, alpha)
    return _pairwise(N, E, alpha, beta, gamma, stochastic, gen, slot)


# ═══════════════════════════════════════════════════════════════════════
# REPRODUCTION
# ═══════════════════════════════════════════════════════════════════════

def reproduce(N: np.ndarray, fecundity: Sequence[float]) -> np.ndarray:
    """Fecundity-weighted offspring per cell.

    Args:
        N: (x, y, stage) population.
        fecundity: One value per stage; zero stages are skipped.

    Returns:
        (x, y) offspring field.
    """
    N = np.asarray(N, dtype=np.float64)
    y = np.zeros(N.shape[:2], dtype=np.float64)
    for i, f in enumerate(fecundity):
        if f == 0:
            continue
        y += N[:, :, i] * f
    return y
