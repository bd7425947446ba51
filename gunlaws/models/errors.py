"""
Exception types raised by model specification, fitting and inference.
"""

from typing import Optional


class GunlawsError(Exception):
    """Base class for analysis errors."""


class SpecificationError(GunlawsError, ValueError):
    """A formula or specification cannot be built or fit as written."""


class ConvergenceError(GunlawsError, RuntimeError):
    """The regression engine did not reach a usable optimum."""


class FitError(GunlawsError):
    """
    A single model fit failed inside a table of specifications.

    All constructor arguments are kept in ``args`` so the error survives
    pickling across worker processes.
    """

    def __init__(self, table: str, model: int, outcome: str, cause: Exception):
        super().__init__(table, model, outcome, cause)
        self.table = table
        self.model = model
        self.outcome = outcome
        self.cause = cause

    def __str__(self):
        return (
            f"{self.table} model {self.model} ({self.outcome}) failed: "
            f"{type(self.cause).__name__}: {self.cause}"
        )


class IterationError(GunlawsError):
    """A placebo iteration could not produce its coefficient records."""

    def __init__(self, iteration: int, cause: Exception):
        super().__init__(iteration, cause)
        self.iteration = iteration
        self.cause = cause
        self.fit_error: Optional[FitError] = cause if isinstance(cause, FitError) else None

    def __str__(self):
        return f"Placebo iteration {self.iteration} failed: {self.cause}"


class InferenceError(GunlawsError, ValueError):
    """Empirical p-values cannot be computed from the simulation table."""
