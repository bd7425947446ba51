# Models package
from .errors import (
    GunlawsError, SpecificationError, ConvergenceError,
    FitError, IterationError, InferenceError
)
from .specification import (
    PanelLevel, Term, BaseFormula, Specification,
    normalize_formula, parse_formula, create_specifications
)
from .panel_regression import (
    FittedModel, NegativeBinomialEngine,
    prepare_regression_data, format_regression_table
)
from .fitting import select_panel, fit_model_all
from .results import (
    LAW_TERMS, RECORD_COLUMNS, tidy_model, tidy_results,
    extract_law_coefficients, event_study_coefficients
)

__all__ = [
    # Errors
    'GunlawsError', 'SpecificationError', 'ConvergenceError',
    'FitError', 'IterationError', 'InferenceError',
    # Specification
    'PanelLevel', 'Term', 'BaseFormula', 'Specification',
    'normalize_formula', 'parse_formula', 'create_specifications',
    # Panel regression
    'FittedModel', 'NegativeBinomialEngine',
    'prepare_regression_data', 'format_regression_table',
    # Fitting
    'select_panel', 'fit_model_all',
    # Results
    'LAW_TERMS', 'RECORD_COLUMNS', 'tidy_model', 'tidy_results',
    'extract_law_coefficients', 'event_study_coefficients'
]
