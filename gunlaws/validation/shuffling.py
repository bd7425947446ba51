"""
Shuffling module.

Random reassignment of law adoption years across states for placebo tests.
"""

from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np

from ..utils.logging import get_logger

logger = get_logger(__name__)


def permute_adoption_years(
    adoption_years: Mapping[str, int],
    permute: bool = True,
    rng: Optional[np.random.Generator] = None
) -> Dict[str, int]:
    """
    Shuffle adoption years across the adopting states.

    The key set is unchanged and the years are a permutation of the
    original values; states without the law never receive a year.

    Parameters
    ----------
    adoption_years : mapping
        state -> adoption year, adopting states only
    permute : bool
        If False, return the original assignment
    rng : np.random.Generator, optional
        Random generator

    Returns
    -------
    dict
        state -> assigned year
    """
    if not permute or len(adoption_years) < 2:
        return dict(adoption_years)

    if rng is None:
        rng = np.random.default_rng()

    states = list(adoption_years.keys())
    years = rng.permutation(np.asarray(list(adoption_years.values())))

    return dict(zip(states, years.tolist()))


def draw_law_permutations(
    rtc_years: Mapping[str, int],
    syg_years: Mapping[str, int],
    permute: bool = True,
    rng: Optional[np.random.Generator] = None
) -> Tuple[Dict[str, int], Dict[str, int]]:
    """
    Independent permutations for RTC and SYG.

    Returns
    -------
    tuple
        (rtc assignment, syg assignment)
    """
    if rng is None:
        rng = np.random.default_rng()

    syg = permute_adoption_years(syg_years, permute, rng)
    rtc = permute_adoption_years(rtc_years, permute, rng)

    return rtc, syg


def spawn_iteration_seeds(seed: int, n_iterations: int) -> List[np.random.SeedSequence]:
    """
    One independent seed per iteration.

    Iteration ``i`` (1-based) uses element ``i - 1``, so a draw does not
    depend on which worker runs it or in which order.
    """
    return np.random.SeedSequence(seed).spawn(n_iterations)
