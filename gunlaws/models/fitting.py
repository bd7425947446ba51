"""
Model fitting orchestration.

Dispatches every specification to the regression engine with the panel its
level calls for and collects the fitted models per table.
"""

from typing import Dict, List, Mapping

import pandas as pd

from .errors import FitError
from .panel_regression import FittedModel
from .specification import PanelLevel, Specification
from ..utils.logging import get_logger

logger = get_logger(__name__)


def select_panel(
    specification: Specification,
    panels: Mapping[PanelLevel, pd.DataFrame]
) -> pd.DataFrame:
    """Panel a specification is fit on: city data for city-level outcomes."""
    try:
        return panels[specification.level]
    except KeyError:
        raise FitError(
            specification.table, specification.model, specification.outcome,
            KeyError(f"no {specification.level.value} panel supplied")
        ) from None


def fit_model_all(
    specifications: Mapping[str, List[Specification]],
    state_panel: pd.DataFrame,
    city_panel: pd.DataFrame,
    engine
) -> Dict[str, List[FittedModel]]:
    """
    Fit all model specifications.

    Parameters
    ----------
    specifications : dict
        table name -> specifications, as built by ``create_specifications``
    state_panel : pd.DataFrame
        State-level panel (one-way clustered models)
    city_panel : pd.DataFrame
        City-level panel (two-way clustered models)
    engine : object
        Regression engine with ``fit(specification, data) -> FittedModel``

    Returns
    -------
    dict
        table name -> fitted models in specification order

    Raises
    ------
    FitError
        On the first failing specification; no partial result is returned
    """
    panels = {
        PanelLevel.JURISDICTION: state_panel,
        PanelLevel.SUB_JURISDICTION: city_panel,
    }

    results = {}
    for table, table_specs in specifications.items():
        fitted = []
        for spec in table_specs:
            data = select_panel(spec, panels)
            try:
                fitted.append(engine.fit(spec, data))
            except Exception as e:
                raise FitError(spec.table, spec.model, spec.outcome, e) from e
            logger.debug(f"Fitted {table} model {spec.model}: {spec.formula()}")
        results[table] = fitted

    return results
