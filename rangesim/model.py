"""Range simulation driver.

One time step:
  1. Transition: stage changes under this step's environment
  2. Reproduction: fecundity-weighted offspring per cell
  3. Dispersal: offspring spread over the kernel
  4. Dispersed offspring are added to stage 0 and the recorded stage is
     stored

Each step draws from two generators seeded by rng.step_seeds(seed, step),
so a run is a pure function of its inputs and base seed. Numerical errors
(e.g. NaN probabilities) propagate out of the run unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterator, Optional, Sequence, Tuple, Union

import numpy as np

from rangesim.config import (
    SimulationConfig,
    default_config,
    demography_arrays,
    environment_array,
    fecundity_slot,
    initial_population,
    kernel_array,
)
from rangesim.demography import reproduce, transition
from rangesim.dispersal import disperse
from rangesim.environment import (
    EnvironmentLike,
    as_environment_series,
    environment_at,
)
from rangesim.perf import PerfMonitor
from rangesim.rng import step_seeds
from rangesim.types import DEFAULT_FECUNDITY_SLOT, TransitionMode


# ═══════════════════════════════════════════════════════════════════════
# STEPPING
# ═══════════════════════════════════════════════════════════════════════

def run_steps(
    N0: np.ndarray,
    env: EnvironmentLike,
    alpha: np.ndarray,
    beta: np.ndarray,
    gamma: np.ndarray,
    fecundity: Sequence[float],
    kernel: np.ndarray,
    reflect: bool = True,
    stochastic: bool = True,
    seed: int = 1,
    nsteps: int = 100,
    mode: Union[TransitionMode, str] = TransitionMode.GRID_CONSTRAINED,
    fecundity_slot: Optional[Tuple[int, int]] = DEFAULT_FECUNDITY_SLOT,
    perf: Optional[PerfMonitor] = None,
) -> Iterator[Tuple[int, np.ndarray]]:
    """Advance a population step by step.

    Yields (step, N) after every step. N is the driver's working array and
    is updated on the next iteration; copy it to keep a snapshot. N0 is
    not modified.
    """
    if perf is None:
        perf = PerfMonitor(enabled=False)

    series = as_environment_series(env)
    N = np.array(N0, dtype=np.float64)

    for i in range(nsteps):
        E = environment_at(series, i)
        transition_seed, dispersal_seed = step_seeds(seed, i)

        with perf.track("transition"):
            N = transition(
                N, E, alpha, beta, gamma,
                mode=mode,
                stochastic=stochastic,
                seed=transition_seed,
                fecundity_slot=fecundity_slot,
            )
        with perf.track("reproduction"):
            offspring = reproduce(N, fecundity)
        with perf.track("dispersal"):
            N[:, :, 0] += disperse(
                offspring, kernel,
                reflect=reflect,
                stochastic=stochastic,
                seed=dispersal_seed,
            )

        yield i, N


def simulate(
    N0: np.ndarray,
    env: EnvironmentLike,
    alpha: np.ndarray,
    beta: np.ndarray,
    gamma: np.ndarray,
    fecundity: Sequence[float],
    kernel: np.ndarray,
    reflect: bool = True,
    stochastic: bool = True,
    seed: int = 1,
    record: int = 0,
    nsteps: int = 100,
    mode: Union[TransitionMode, str] = TransitionMode.GRID_CONSTRAINED,
    fecundity_slot: Optional[Tuple[int, int]] = DEFAULT_FECUNDITY_SLOT,
    perf: Optional[PerfMonitor] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> np.ndarray:
    """Run a range simulation.

    Args:
        N0: (x, y, stage) initial population.
        env: One (x, y, variable) environment for every step, or one per
            step (sequence or (time, x, y, variable) array).
        alpha, beta, gamma: Transition parameters; see demography.transition.
        fecundity: Per-stage fecundity; see demography.reproduce.
        kernel: (2r+1, 2r+1) dispersal kernel.
        reflect: Reflecting (True) or absorbing (False) boundaries.
        stochastic: Random transitions and dispersal; False for expected
            values.
        seed: Base seed (non-negative).
        record: Stage to record each step.
        nsteps: Number of steps.
        mode: Transition mode.
        fecundity_slot: Pairwise fecundity (target, source) pair, or None.
        perf: Optional PerfMonitor for per-operator timing.
        progress_callback: Optional callable(step, nsteps) after each step.

    Returns:
        (x, y, nsteps + 1) array of the recorded stage; index 0 is N0.
    """
    if perf is None:
        perf = PerfMonitor(enabled=False)
    perf.start()

    N0 = np.asarray(N0, dtype=np.float64)
    recorded = np.zeros(N0.shape[:2] + (nsteps + 1,), dtype=np.float64)
    recorded[:, :, 0] = N0[:, :, record]

    for i, N in run_steps(
        N0, env, alpha, beta, gamma, fecundity, kernel,
        reflect=reflect, stochastic=stochastic, seed=seed, nsteps=nsteps,
        mode=mode, fecundity_slot=fecundity_slot, perf=perf,
    ):
        recorded[:, :, i + 1] = N[:, :, record]
        if progress_callback is not None:
            progress_callback(i, nsteps)

    perf.stop()
    return recorded


# ═══════════════════════════════════════════════════════════════════════
# CONFIG-DRIVEN RUNS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimResult:
    """Results from a config-driven simulation."""
    nsteps: int = 0
    seed: int = 0
    record: int = 0
    mode: str = TransitionMode.GRID_CONSTRAINED.value
    stochastic: bool = True
    # (x, y, nsteps + 1) recorded stage, index 0 = initial state
    recorded: Optional[np.ndarray] = None
    # (nsteps + 1, stage) grid-wide total per stage
    stage_totals: Optional[np.ndarray] = None
    final_population: Optional[np.ndarray] = None   # (x, y, stage)
    # Summary
    initial_total: float = 0.0
    final_total: float = 0.0
    occupied_cells: int = 0       # cells with any individuals at the end
    extinct: bool = False
    perf_summary: Optional[dict] = None


def run_simulation(
    config: Optional[SimulationConfig] = None,
    N0: Optional[np.ndarray] = None,
    env: Optional[EnvironmentLike] = None,
    perf: Optional[PerfMonitor] = None,
    progress_callback: Optional[Callable[[int, int], None]] = None,
) -> SimResult:
    """Run a simulation described by a SimulationConfig.

    Args:
        config: Validated configuration; uses default_config() if None.
        N0: Initial population; built from config.grid if None.
        env: Environment; time-invariant config.grid.environment if None.
        perf: Optional PerfMonitor.
        progress_callback: Optional callable(step, nsteps).

    Returns:
        SimResult with the recorded stage, per-stage totals and summary.
    """
    if config is None:
        config = default_config()
    if perf is None:
        perf = PerfMonitor(enabled=False)

    sim = config.simulation
    alpha, beta, gamma, fec = demography_arrays(config)
    kernel = kernel_array(config)
    if N0 is None:
        N0 = initial_population(config)
    if env is None:
        env = environment_array(config)
    N0 = np.asarray(N0, dtype=np.float64)

    result = SimResult(
        nsteps=sim.nsteps,
        seed=sim.seed,
        record=sim.record,
        mode=TransitionMode(sim.mode).value,
        stochastic=sim.stochastic,
    )
    recorded = np.zeros(N0.shape[:2] + (sim.nsteps + 1,), dtype=np.float64)
    totals = np.zeros((sim.nsteps + 1, N0.shape[2]), dtype=np.float64)
    recorded[:, :, 0] = N0[:, :, sim.record]
    totals[0] = N0.sum(axis=(0, 1))

    N = N0
    perf.start()
    for i, N in run_steps(
        N0, env, alpha, beta, gamma, fec, kernel,
        reflect=config.dispersal.reflect,
        stochastic=sim.stochastic,
        seed=sim.seed,
        nsteps=sim.nsteps,
        mode=sim.mode,
        fecundity_slot=fecundity_slot(config),
        perf=perf,
    ):
        recorded[:, :, i + 1] = N[:, :, sim.record]
        totals[i + 1] = N.sum(axis=(0, 1))
        if progress_callback is not None:
            progress_callback(i, sim.nsteps)
    perf.stop()

    result.recorded = recorded
    result.stage_totals = totals
    result.final_population = np.array(N, dtype=np.float64)
    result.initial_total = float(totals[0].sum())
    result.final_total = float(totals[-1].sum())
    result.occupied_cells = int(np.count_nonzero(N.sum(axis=2)))
    result.extinct = result.final_total == 0
    if perf.enabled:
        result.perf_summary = perf.summary()
    return result
