"""Shared enumerations and constants for rangesim."""

from enum import Enum
from typing import Tuple


class TransitionMode(str, Enum):
    """Transition algorithm selected at the call site.

    GRID_CONSTRAINED: per-cell target probabilities are jointly capped at 1
        and realised by one multinomial split of the source stage, so the
        output never holds more individuals than the input.
    PAIRWISE: every (source, target) pair is drawn as an independent
        binomial from the full source stage. Draws for the same source can
        jointly exceed its count.
    """
    GRID_CONSTRAINED = "grid_constrained"
    PAIRWISE = "pairwise"


# (target, source) pair whose intercept is a fecundity multiplier in
# pairwise mode: stage-2 adults producing stage-0 offspring.
DEFAULT_FECUNDITY_SLOT: Tuple[int, int] = (0, 2)
