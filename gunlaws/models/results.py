"""
Coefficient extraction from fitted models.

Turns fitted models into long-format coefficient tables and keeps only the
law terms needed for placebo inference.
"""

import re
from typing import List, Mapping, Sequence

import numpy as np
import pandas as pd

from .panel_regression import FittedModel
from ..utils.config import DEFAULT_LAW_TERMS
from ..utils.logging import get_logger

logger = get_logger(__name__)


LAW_TERMS = tuple(DEFAULT_LAW_TERMS)

RECORD_COLUMNS = ['iteration', 'table', 'model', 'term', 'estimate', 'std_error', 'p_value']

_EVENT_TERM = re.compile(r"^(rtc|syg)_dist_w(\d+)::(-?\d+)$")


def tidy_model(fitted: FittedModel) -> pd.DataFrame:
    """
    One row per coefficient.

    Returns
    -------
    pd.DataFrame
        Columns: term, estimate, std_error, p_value (model order)
    """
    tidy = fitted.coefficients[['estimate', 'std_error', 'p_value']].copy()
    tidy.index.name = 'term'
    return tidy.reset_index()


def tidy_results(results: Mapping[str, List[FittedModel]]) -> pd.DataFrame:
    """All coefficients of all tables, tagged with table and model index."""
    frames = []
    for table, models in results.items():
        for fitted in models:
            tidy = tidy_model(fitted)
            tidy.insert(0, 'model', fitted.specification.model)
            tidy.insert(0, 'table', table)
            frames.append(tidy)

    if not frames:
        return pd.DataFrame(columns=['table', 'model', 'term', 'estimate', 'std_error', 'p_value'])

    return pd.concat(frames, ignore_index=True)


def extract_law_coefficients(
    results: Mapping[str, List[FittedModel]],
    iteration: int,
    terms: Sequence[str] = LAW_TERMS
) -> pd.DataFrame:
    """
    Law coefficients of one run.

    Parameters
    ----------
    results : dict
        table name -> fitted models
    iteration : int
        Iteration id (0 for the observed run)
    terms : sequence
        Coefficients to keep

    Returns
    -------
    pd.DataFrame
        Columns ``RECORD_COLUMNS``, rows in table, model, coefficient order
    """
    tidy = tidy_results(results)
    tidy = tidy[tidy['term'].isin(list(terms))].reset_index(drop=True)
    tidy.insert(0, 'iteration', iteration)

    tidy['iteration'] = tidy['iteration'].astype(np.int64)
    tidy['model'] = tidy['model'].astype(np.int64)

    return tidy[RECORD_COLUMNS]


def event_study_coefficients(results: Mapping[str, List[FittedModel]]) -> pd.DataFrame:
    """
    Event-time coefficients (``rtc_dist_wW::k`` and ``syg_dist_wW::k``).

    Returns
    -------
    pd.DataFrame
        table, model, outcome, law, window, offset, estimate, std_error,
        p_value, plus ci_lower/ci_upper at two standard errors
    """
    rows = []
    for table, models in results.items():
        for fitted in models:
            for term, row in fitted.coefficients.iterrows():
                match = _EVENT_TERM.match(str(term))
                if not match:
                    continue
                law, window, offset = match.groups()
                rows.append({
                    'table': table,
                    'model': fitted.specification.model,
                    'outcome': fitted.specification.outcome,
                    'level': fitted.specification.level.value,
                    'law': law.upper(),
                    'window': int(window),
                    'offset': int(offset),
                    'estimate': row['estimate'],
                    'std_error': row['std_error'],
                    'p_value': row['p_value'],
                })

    df = pd.DataFrame(rows)
    if df.empty:
        logger.warning("No event-study terms found in fitted models")
        return df

    df['ci_lower'] = df['estimate'] - 2 * df['std_error']
    df['ci_upper'] = df['estimate'] + 2 * df['std_error']
    return df
