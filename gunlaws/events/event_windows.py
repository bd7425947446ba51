"""
Event windows module.

Builds capped event-time columns around SYG and RTC adoption for
event-study regressions.
"""

from typing import Dict, Sequence

import pandas as pd

from ..utils.config import ColumnConfig
from ..utils.logging import get_logger

logger = get_logger(__name__)


# Default windows (in years)
DEFAULT_WINDOWS = [1, 2, 3, 10]


def first_active_year(
    panel: pd.DataFrame,
    law_col: str,
    jurisdiction_col: str = 'state',
    time_col: str = 'year'
) -> pd.Series:
    """First year with the law in force, broadcast to every row of the state."""
    active_years = panel[time_col].where(panel[law_col] == 1)
    return active_years.groupby(panel[jurisdiction_col]).transform('min')


def cap_distance(distance: pd.Series, window: int) -> pd.Categorical:
    """
    Clip event time to [-window, window].

    States that never adopt are placed in the lowest bin.
    """
    capped = distance.clip(lower=-window, upper=window).fillna(-window).astype(int)
    return pd.Categorical(capped, categories=list(range(-window, window + 1)))


def add_windows(
    panel: pd.DataFrame,
    windows: Sequence[int] = None,
    laws: Dict[str, str] = None,
    columns: ColumnConfig = None
) -> pd.DataFrame:
    """
    Add event-time columns for each law.

    For each law this adds ``year_{law}`` (first year in force),
    ``{law}_dist`` (year minus that first year) and one categorical
    ``{law}_dist_w{W}`` per window.

    Parameters
    ----------
    panel : pd.DataFrame
        State or city panel with 0/1 law columns
    windows : sequence, optional
        Window half-widths in years
    laws : dict, optional
        Label -> law indicator column
    columns : ColumnConfig, optional
        Column names

    Returns
    -------
    pd.DataFrame
        Copy of the panel with the added columns
    """
    if windows is None:
        windows = DEFAULT_WINDOWS
    if columns is None:
        columns = ColumnConfig()
    if laws is None:
        laws = {'syg': columns.syg, 'rtc': columns.rtc_observed}

    data = panel.copy()

    for label, law_col in laws.items():
        if law_col not in data.columns:
            raise ValueError(f"Law column {law_col} not in panel")

        adoption = first_active_year(data, law_col, columns.jurisdiction, columns.time)
        distance = data[columns.time] - adoption

        data[f'year_{label}'] = adoption
        data[f'{label}_dist'] = distance

        for window in windows:
            data[f'{label}_dist_w{window}'] = cap_distance(distance, window)

        n_adopting = data.loc[adoption.notna(), columns.jurisdiction].nunique()
        logger.debug(f"{label}: {n_adopting} adopting jurisdictions, windows {list(windows)}")

    return data
