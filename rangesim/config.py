"""Configuration system for rangesim.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → dict overrides

Parameters are kept as plain nested lists in the dataclasses so that YAML
round-trips cleanly; demography_arrays() and friends turn them into the
NumPy arrays the operators expect.

The default parameterisation is a three-stage life cycle
(0 = seed/offspring, 1 = juvenile, 2 = adult) on a 20 × 20 grid with a
3 × 3 dispersal kernel.
"""

from __future__ import annotations

import dataclasses
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
import yaml

from rangesim.types import DEFAULT_FECUNDITY_SLOT, TransitionMode


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Run control."""
    seed: int = 1
    nsteps: int = 100
    record: int = 0                  # stage recorded at every step
    stochastic: bool = True          # False = expected-value run
    mode: str = "grid_constrained"   # 'grid_constrained' or 'pairwise'
    # (target, source) fecundity multiplier in pairwise mode; null disables
    fecundity_slot: Optional[List[int]] = field(
        default_factory=lambda: list(DEFAULT_FECUNDITY_SLOT)
    )


@dataclass
class DemographySection:
    """Transition and reproduction parameters.

    alpha[target][source] intercepts, beta[target][source][stage] density
    effects, gamma[target][source][variable] environmental effects.
    beta and gamma default to all-zero arrays of the right shape.
    """
    alpha: List[List[float]] = field(default_factory=lambda: [
        [0.2, 0.0, 0.0],
        [0.3, 0.5, 0.0],
        [0.0, 0.2, 0.9],
    ])
    beta: Optional[List[List[List[float]]]] = field(default_factory=lambda: [
        [[0.0, 0.0, 0.0], [0.0, 0.0, 0.0], [0.0, 0.0, 0.0]],
        [[0.0, 0.0, -0.01], [0.0, 0.0, 0.0], [0.0, 0.0, 0.0]],  # adult crowding of recruits
        [[0.0, 0.0, 0.0], [0.0, 0.0, 0.0], [0.0, 0.0, 0.0]],
    ])
    gamma: Optional[List[List[List[float]]]] = None
    fecundity: List[float] = field(default_factory=lambda: [0.0, 0.0, 5.0])


@dataclass
class DispersalSection:
    """Neighbourhood kernel and boundary behaviour."""
    kernel: List[List[float]] = field(default_factory=lambda: [
        [0.025, 0.075, 0.025],
        [0.075, 0.600, 0.075],
        [0.025, 0.075, 0.025],
    ])
    reflect: bool = True


@dataclass
class GridSection:
    """Initial state used when a run is started from configuration."""
    rows: int = 20
    cols: int = 20
    initial: List[float] = field(default_factory=lambda: [0.0, 0.0, 10.0])  # per stage, every cell
    environment: List[float] = field(default_factory=list)  # per variable, every cell


@dataclass
class SimulationConfig:
    """Complete simulation configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    demography: DemographySection = field(default_factory=DemographySection)
    dispersal: DispersalSection = field(default_factory=DispersalSection)
    grid: GridSection = field(default_factory=GridSection)


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    Dict values merge recursively; anything else (including parameter
    lists) is replaced wholesale.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, ignoring unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


_SECTION_MAP = {
    'simulation': SimulationSection,
    'demography': DemographySection,
    'dispersal': DispersalSection,
    'grid': GridSection,
}


def _yaml_to_config(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig."""
    sections = {}
    for key, cls in _SECTION_MAP.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()
    return SimulationConfig(**sections)


# ═══════════════════════════════════════════════════════════════════════
# ARRAY CONVERSION
# ═══════════════════════════════════════════════════════════════════════

def n_stages(config: SimulationConfig) -> int:
    return len(config.demography.alpha)


def demography_arrays(
    config: SimulationConfig,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Return (alpha, beta, gamma, fecundity) as float64 arrays.

    A missing beta becomes zeros of shape (stages, stages, stages); a
    missing gamma becomes zeros with one variable per grid.environment
    entry.
    """
    demo = config.demography
    alpha = np.asarray(demo.alpha, dtype=np.float64)
    n = alpha.shape[0]

    if demo.beta is None:
        beta = np.zeros((n, n, n), dtype=np.float64)
    else:
        beta = np.asarray(demo.beta, dtype=np.float64)

    if demo.gamma is None:
        gamma = np.zeros((n, n, len(config.grid.environment)), dtype=np.float64)
    else:
        gamma = np.asarray(demo.gamma, dtype=np.float64)

    fecundity = np.asarray(demo.fecundity, dtype=np.float64)
    return alpha, beta, gamma, fecundity


def kernel_array(config: SimulationConfig) -> np.ndarray:
    return np.asarray(config.dispersal.kernel, dtype=np.float64)


def fecundity_slot(config: SimulationConfig) -> Optional[Tuple[int, int]]:
    slot = config.simulation.fecundity_slot
    return None if slot is None else (int(slot[0]), int(slot[1]))


def initial_population(config: SimulationConfig) -> np.ndarray:
    """(rows, cols, stage) population with grid.initial in every cell."""
    g = config.grid
    per_cell = np.asarray(g.initial, dtype=np.float64)
    return np.broadcast_to(per_cell, (g.rows, g.cols, per_cell.size)).copy()


def environment_array(config: SimulationConfig) -> np.ndarray:
    """Time-invariant (rows, cols, variable) environment from grid.environment."""
    g = config.grid
    per_cell = np.asarray(g.environment, dtype=np.float64).reshape(-1)
    return np.broadcast_to(per_cell, (g.rows, g.cols, per_cell.size)).copy()


# ═══════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════

def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure.

    Checks:
      - Run control values (seed, nsteps, mode, record stage)
      - Parameter array shapes agree with the number of stages
      - Kernel is square, odd-sided and non-negative
      - Fecundity slot lies inside the stage range
      - Grid initial state and environment agree with the parameters

    Warns (UserWarning) when deterministic dispersal will not conserve
    mass, or when a pairwise fecundity slot has a non-positive intercept.
    """
    sim = config.simulation

    if sim.seed < 0:
        raise ValueError("simulation.seed must be non-negative")
    if sim.nsteps < 0:
        raise ValueError(f"simulation.nsteps must be >= 0, got {sim.nsteps}")

    valid_modes = {m.value for m in TransitionMode}
    if sim.mode not in valid_modes:
        raise ValueError(
            f"simulation.mode must be one of {sorted(valid_modes)}, "
            f"got '{sim.mode}'"
        )

    # Demography shapes
    alpha = np.asarray(config.demography.alpha, dtype=np.float64)
    if alpha.ndim != 2 or alpha.shape[0] != alpha.shape[1] or alpha.shape[0] == 0:
        raise ValueError(
            f"demography.alpha must be a non-empty square (target, source) "
            f"matrix, got shape {alpha.shape}"
        )
    n = alpha.shape[0]

    if not (0 <= sim.record < n):
        raise ValueError(
            f"simulation.record must be a stage in [0, {n - 1}], got {sim.record}"
        )

    if config.demography.beta is not None:
        beta = np.asarray(config.demography.beta, dtype=np.float64)
        if beta.shape != (n, n, n):
            raise ValueError(
                f"demography.beta must have shape {(n, n, n)}, got {beta.shape}"
            )

    n_env = len(config.grid.environment)
    if config.demography.gamma is not None:
        gamma = np.asarray(config.demography.gamma, dtype=np.float64)
        if gamma.ndim != 3 or gamma.shape[:2] != (n, n):
            raise ValueError(
                f"demography.gamma must have shape ({n}, {n}, n_variables), "
                f"got {gamma.shape}"
            )
        if gamma.shape[2] != n_env:
            raise ValueError(
                f"demography.gamma has {gamma.shape[2]} variables but "
                f"grid.environment has {n_env}"
            )

    if len(config.demography.fecundity) != n:
        raise ValueError(
            f"demography.fecundity must have {n} elements (one per stage), "
            f"got {len(config.demography.fecundity)}"
        )

    # Kernel
    kernel = np.asarray(config.dispersal.kernel, dtype=np.float64)
    if kernel.ndim != 2 or kernel.shape[0] != kernel.shape[1] or kernel.shape[0] % 2 == 0:
        raise ValueError(
            f"dispersal.kernel must be square with odd side, got shape {kernel.shape}"
        )
    if np.any(kernel < 0):
        raise ValueError("dispersal.kernel weights must be non-negative")
    if not sim.stochastic and not np.isclose(kernel.sum(), 1.0):
        warnings.warn(
            f"dispersal.kernel sums to {kernel.sum():.6g}; deterministic "
            f"dispersal will not conserve offspring",
            UserWarning,
            stacklevel=2,
        )

    # Fecundity slot
    slot = sim.fecundity_slot
    if slot is not None:
        if len(slot) != 2 or not all(0 <= int(i) < n for i in slot):
            raise ValueError(
                f"simulation.fecundity_slot must be a (target, source) pair "
                f"of stages in [0, {n - 1}], got {slot}"
            )
        if sim.mode == TransitionMode.PAIRWISE.value and alpha[slot[0], slot[1]] <= 0:
            warnings.warn(
                f"pairwise fecundity slot {tuple(slot)} has intercept "
                f"{alpha[slot[0], slot[1]]}; it will produce no offspring",
                UserWarning,
                stacklevel=2,
            )

    # Grid
    g = config.grid
    if g.rows < 1 or g.cols < 1:
        raise ValueError(f"grid must be at least 1 × 1, got {g.rows} × {g.cols}")
    if len(g.initial) != n:
        raise ValueError(
            f"grid.initial must have {n} elements (one per stage), got {len(g.initial)}"
        )
    if any(v < 0 for v in g.initial):
        raise ValueError("grid.initial counts must be non-negative")


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML (skipped if missing).
        overrides: Optional dict of overrides, e.g. from a parameter sweep.

    Returns:
        Validated SimulationConfig.

    Raises:
        FileNotFoundError: If base_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if scenario_path.exists():
            with open(scenario_path) as f:
                scenario = yaml.safe_load(f) or {}
            deep_merge(config_dict, scenario)

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config() -> SimulationConfig:
    """Return a SimulationConfig with all default values."""
    config = SimulationConfig()
    validate_config(config)
    return config
