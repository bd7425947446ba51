# Validation package
from .placebo_tests import (
    PlaceboInputs, PlaceboResult, SimulationAccumulator,
    run_iteration, observed_coefficients, run_placebo,
    compare_observed_vs_placebo
)
from .shuffling import (
    permute_adoption_years, draw_law_permutations, spawn_iteration_seeds
)

__all__ = [
    # Placebo tests
    'PlaceboInputs', 'PlaceboResult', 'SimulationAccumulator',
    'run_iteration', 'observed_coefficients', 'run_placebo',
    'compare_observed_vs_placebo',
    # Shuffling
    'permute_adoption_years', 'draw_law_permutations', 'spawn_iteration_seeds'
]
