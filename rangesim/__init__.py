"""rangesim: stage-structured population dynamics on a spatial grid.

A grid-based range simulator composing two stochastic operators:
  - Demographic transition between life stages, driven by an intercept,
    density dependence and environmental effects per (target, source) pair
  - Dispersal of offspring across the grid through a neighbourhood kernel,
    with reflecting or absorbing boundaries

Both operators also run deterministically (expected values), and every
stochastic call is a pure function of its explicit seed.
"""

from rangesim.types import TransitionMode  # noqa: F401
from rangesim.demography import reproduce, transition  # noqa: F401
from rangesim.dispersal import disperse  # noqa: F401
from rangesim.model import SimResult, run_simulation, simulate  # noqa: F401

__version__ = "0.1.0"
