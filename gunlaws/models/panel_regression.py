"""
Panel regression module.

Fixed-effects negative binomial regressions with clustered standard errors,
the count model used for every justifiable-homicide table.

Fixed effects enter as dummies, as in a least-squares dummy variable fit.
Groups whose outcome is zero in every period carry no information for a
count model and are dropped before fitting.
"""

import warnings
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
import statsmodels.api as sm
from statsmodels.tools.sm_exceptions import PerfectSeparationError

from .errors import ConvergenceError, SpecificationError
from .specification import Specification
from ..utils.logging import get_logger

logger = get_logger(__name__)


COEFFICIENT_COLUMNS = ['estimate', 'std_error', 'p_value']


@dataclass
class FittedModel:
    """Coefficients of one fitted specification."""
    specification: Specification
    coefficients: pd.DataFrame
    n_obs: int
    converged: bool = True
    dispersion: Optional[float] = None
    loglike: Optional[float] = None
    info: Dict = field(default_factory=dict)

    def __post_init__(self):
        missing = [c for c in COEFFICIENT_COLUMNS if c not in self.coefficients.columns]
        if missing:
            raise ValueError(f"Coefficient table missing columns: {missing}")


def _drop_all_zero_groups(
    data: pd.DataFrame,
    outcome: str,
    fixed_effects: List[str]
) -> pd.DataFrame:
    """Drop fixed-effect groups with only zero outcomes until none remain."""
    while True:
        keep = pd.Series(True, index=data.index)
        for fe in fixed_effects:
            totals = data.groupby(fe)[outcome].transform('sum')
            keep &= totals > 0
        if keep.all():
            return data
        data = data[keep]


def prepare_regression_data(
    data: pd.DataFrame,
    specification: Specification
) -> Tuple[pd.Series, pd.DataFrame, np.ndarray, Dict]:
    """
    Prepare data for regression.

    Parameters
    ----------
    data : pd.DataFrame
        State or city panel
    specification : Specification
        Model to fit

    Returns
    -------
    tuple
        (y, X, groups, info); X holds a constant, the regressors and the
        fixed-effect dummies, groups holds integer cluster codes
    """
    missing = [c for c in specification.required_columns if c not in data.columns]
    if missing:
        raise SpecificationError(
            f"{specification.table} model {specification.model}: "
            f"columns not in panel: {missing}"
        )

    frame = data[specification.required_columns].dropna()
    n_missing = len(data) - len(frame)

    frame = _drop_all_zero_groups(frame, specification.outcome, list(specification.fixed_effects))
    n_zero = len(data) - n_missing - len(frame)

    if frame.empty:
        raise SpecificationError(
            f"{specification.table} model {specification.model}: no usable observations"
        )

    parts = []
    for term in specification.terms:
        if term.is_indicator:
            dummies = pd.get_dummies(frame[term.name], prefix=term.name, prefix_sep='::')
            reference = f"{term.name}::{term.ref}"
            if reference not in dummies.columns:
                raise SpecificationError(
                    f"Reference level {term.ref} not found for {term.name}"
                )
            parts.append(dummies.drop(columns=reference).astype(float))
        else:
            parts.append(frame[[term.name]].astype(float))

    regressors = pd.concat(parts, axis=1)

    # Constant regressors cannot be identified next to the intercept
    constant = [c for c in regressors.columns if regressors[c].nunique() <= 1]
    if constant:
        logger.warning(
            f"{specification.table} model {specification.model}: "
            f"dropping constant regressors {constant}"
        )
        regressors = regressors.drop(columns=constant)
    if regressors.shape[1] == 0:
        raise SpecificationError(
            f"{specification.table} model {specification.model}: no identifiable regressors"
        )

    fe_dummies = [
        pd.get_dummies(frame[fe], prefix=f'fe_{fe}', drop_first=True).astype(float)
        for fe in specification.fixed_effects
    ]

    X = pd.concat([regressors] + fe_dummies, axis=1)
    X = pd.concat([pd.Series(1.0, index=X.index, name='const'), X], axis=1)
    y = frame[specification.outcome].astype(float)

    codes = [pd.factorize(frame[c])[0] for c in specification.cluster]
    groups = codes[0] if len(codes) == 1 else np.column_stack(codes)

    info = {
        'n_obs': len(frame),
        'n_dropped_missing': n_missing,
        'n_dropped_zero_groups': n_zero,
        'regressors': list(regressors.columns),
        'n_fixed_effects': sum(d.shape[1] for d in fe_dummies),
    }

    logger.debug(
        f"Prepared {specification.table} model {specification.model}: "
        f"{info['n_obs']} obs, {len(info['regressors'])} regressors"
    )

    return y, X, groups, info


class NegativeBinomialEngine:
    """
    Fixed-effects negative binomial (NB2) regression engine.

    Usage:
        engine = NegativeBinomialEngine()
        fitted = engine.fit(specification, panel)
        print(fitted.coefficients)
    """

    def __init__(
        self,
        method: str = 'newton',
        maxiter: int = 100,
        loglike_method: str = 'nb2'
    ):
        self.method = method
        self.maxiter = maxiter
        self.loglike_method = loglike_method

    def fit(self, specification: Specification, data: pd.DataFrame) -> FittedModel:
        """
        Fit one specification.

        Raises
        ------
        SpecificationError
            Columns missing or nothing left to estimate
        ConvergenceError
            Optimizer failed, did not converge or left singular standard errors
        """
        y, X, groups, info = prepare_regression_data(data, specification)

        model = sm.NegativeBinomial(y, X, loglike_method=self.loglike_method)

        with warnings.catch_warnings():
            # Convergence is judged from mle_retvals below
            warnings.simplefilter('ignore')
            try:
                result = model.fit(
                    method=self.method,
                    maxiter=self.maxiter,
                    disp=0,
                    cov_type='cluster',
                    cov_kwds={'groups': groups},
                )
            except (np.linalg.LinAlgError, PerfectSeparationError) as e:
                raise ConvergenceError(
                    f"{specification.table} model {specification.model} "
                    f"({specification.outcome}): {e}"
                ) from e

        converged = bool(result.mle_retvals.get('converged', False))
        if not converged:
            raise ConvergenceError(
                f"{specification.table} model {specification.model} "
                f"({specification.outcome}) did not converge in {self.maxiter} iterations"
            )

        names = info['regressors']
        coefficients = pd.DataFrame({
            'estimate': result.params[names],
            'std_error': result.bse[names],
            'p_value': result.pvalues[names],
        })
        coefficients.index.name = 'term'

        if not np.isfinite(coefficients.to_numpy()).all():
            raise ConvergenceError(
                f"{specification.table} model {specification.model} "
                f"({specification.outcome}): non-finite coefficients or standard errors"
            )

        return FittedModel(
            specification=specification,
            coefficients=coefficients,
            n_obs=info['n_obs'],
            converged=converged,
            dispersion=float(result.params['alpha']),
            loglike=float(result.llf),
            info=info,
        )


def format_regression_table(
    models: List[FittedModel],
    stars: bool = True,
    digits: int = 3
) -> pd.DataFrame:
    """
    Format fitted models side by side as a publication table.

    Parameters
    ----------
    models : list
        Fitted models, one column each
    stars : bool
        Add significance stars
    digits : int
        Decimal places

    Returns
    -------
    pd.DataFrame
        Estimate and (standard error) rows per term, then N and outcome
    """
    def add_stars(coef, pval):
        stars_str = ''
        if pval < 0.01:
            stars_str = '***'
        elif pval < 0.05:
            stars_str = '**'
        elif pval < 0.10:
            stars_str = '*'
        return f"{coef:.{digits}f}{stars_str}"

    terms = []
    for m in models:
        for term in m.coefficients.index:
            if term not in terms:
                terms.append(term)

    columns = {}
    for m in models:
        label = f"model_{m.specification.model}"
        cells = {}
        for term in terms:
            if term in m.coefficients.index:
                row = m.coefficients.loc[term]
                cells[term] = (
                    add_stars(row['estimate'], row['p_value']) if stars
                    else f"{row['estimate']:.{digits}f}"
                )
                cells[f"{term} (se)"] = f"({row['std_error']:.{digits}f})"
            else:
                cells[term] = ''
                cells[f"{term} (se)"] = ''
        cells['Dependent var.'] = m.specification.outcome
        cells['Cluster'] = m.specification.cluster_formula()
        cells['N'] = f"{m.n_obs}"
        columns[label] = cells

    index = []
    for term in terms:
        index.extend([term, f"{term} (se)"])
    index.extend(['Dependent var.', 'Cluster', 'N'])

    return pd.DataFrame(columns, index=index)
