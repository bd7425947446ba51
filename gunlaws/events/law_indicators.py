"""
Law indicator construction.

Rebuilds the RTC and SYG indicator columns, and their interaction, from a
mapping of adoption year per state. Used for the observed data and for every
placebo draw.
"""

from typing import Dict, List, Mapping, Optional

import pandas as pd

from ..models.specification import PanelLevel
from ..utils.config import ColumnConfig
from ..utils.logging import get_logger

logger = get_logger(__name__)


INDICATOR_STYLES = ('cumulative', 'boolean')


def remap_start_year(
    adoption_years: Mapping[str, float],
    reference_start: int,
    own_start: int
) -> Dict[str, float]:
    """
    Move adoptions in the reference series' first year to this series' first year.

    City panels start one year after the state panel; a state adopting in
    the state panel's first year would otherwise never switch on in the
    city panel.

    Parameters
    ----------
    adoption_years : mapping
        state -> adoption year
    reference_start : int
        First year of the state panel (e.g. 1977)
    own_start : int
        First year of the panel being built (e.g. 1978)

    Returns
    -------
    dict
        Remapped copy
    """
    if own_start <= reference_start:
        return dict(adoption_years)

    return {
        state: (own_start if year == reference_start else year)
        for state, year in adoption_years.items()
    }


def law_indicator(
    panel: pd.DataFrame,
    adoption_years: Mapping[str, float],
    group_cols: List[str],
    jurisdiction_col: str = 'state',
    time_col: str = 'year',
    style: str = 'cumulative'
) -> pd.Series:
    """
    Step indicator switching on in the adoption year.

    Within each group (rows must be sorted by time) this is the running
    count of periods equal to the adoption year, or whether that count is
    positive for the boolean style. States missing from the mapping never
    switch on.

    Parameters
    ----------
    panel : pd.DataFrame
        Panel sorted by group and time
    adoption_years : mapping
        state -> adoption year
    group_cols : list
        Columns identifying a unit's time series
    jurisdiction_col : str
        Column matched against the mapping keys
    time_col : str
        Time period column
    style : str
        'cumulative' or 'boolean'

    Returns
    -------
    pd.Series
        Integer indicator aligned with ``panel``
    """
    if style not in INDICATOR_STYLES:
        raise ValueError(f"Unknown indicator style: {style}")

    adoption = panel[jurisdiction_col].map(dict(adoption_years))
    switch = (panel[time_col] == adoption)

    counts = switch.groupby([panel[c] for c in group_cols], sort=False).cumsum()
    counts = counts.fillna(0)

    if style == 'boolean':
        counts = counts > 0

    return counts.astype(int)


def build_law_panel(
    panel: pd.DataFrame,
    rtc_years: Mapping[str, float],
    syg_years: Mapping[str, float],
    columns: ColumnConfig = None,
    level: PanelLevel = PanelLevel.JURISDICTION,
    style: str = 'cumulative',
    reference_start: Optional[int] = None
) -> pd.DataFrame:
    """
    Add RTC, SYG and interaction indicators to a panel.

    Parameters
    ----------
    panel : pd.DataFrame
        State or city panel
    rtc_years, syg_years : mapping
        state -> adoption year, one mapping per law
    columns : ColumnConfig, optional
        Column names
    level : PanelLevel
        Jurisdiction (state) or sub-jurisdiction (state + city) grouping
    style : str
        Indicator style applied to both laws
    reference_start : int, optional
        First year of the state panel; adoptions in that year are moved to
        this panel's first year when it starts later

    Returns
    -------
    pd.DataFrame
        New panel sorted by unit and time
    """
    if columns is None:
        columns = ColumnConfig()

    level = PanelLevel(level)
    group_cols = [columns.jurisdiction]
    if level == PanelLevel.SUB_JURISDICTION:
        group_cols.append(columns.sub_jurisdiction)

    data = panel.sort_values(group_cols + [columns.time], kind='mergesort').reset_index(drop=True)

    if reference_start is not None:
        own_start = int(data[columns.time].min())
        rtc_years = remap_start_year(rtc_years, reference_start, own_start)
        syg_years = remap_start_year(syg_years, reference_start, own_start)

    for col, years in ((columns.rtc, rtc_years), (columns.syg, syg_years)):
        data[col] = law_indicator(
            data, years, group_cols,
            jurisdiction_col=columns.jurisdiction,
            time_col=columns.time,
            style=style,
        )

    data[columns.interaction] = data[columns.syg] * data[columns.rtc]

    return data


def build_panels(
    state_panel: pd.DataFrame,
    city_panel: pd.DataFrame,
    rtc_years: Mapping[str, float],
    syg_years: Mapping[str, float],
    columns: ColumnConfig = None,
    indicator_styles: Mapping[str, str] = None
) -> Dict[PanelLevel, pd.DataFrame]:
    """
    Build the state and city panels for one adoption-year assignment.

    Returns
    -------
    dict
        PanelLevel -> panel with rebuilt indicators
    """
    if columns is None:
        columns = ColumnConfig()
    if indicator_styles is None:
        indicator_styles = {'jurisdiction': 'cumulative', 'sub_jurisdiction': 'boolean'}

    state = build_law_panel(
        state_panel, rtc_years, syg_years, columns,
        level=PanelLevel.JURISDICTION,
        style=indicator_styles['jurisdiction'],
    )
    city = build_law_panel(
        city_panel, rtc_years, syg_years, columns,
        level=PanelLevel.SUB_JURISDICTION,
        style=indicator_styles['sub_jurisdiction'],
        reference_start=int(state_panel[columns.time].min()),
    )

    return {PanelLevel.JURISDICTION: state, PanelLevel.SUB_JURISDICTION: city}
