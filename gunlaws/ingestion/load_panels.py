"""
Panel loading module.

Loads the prepared state-level (1977-2020) and city-level (1978-2020)
justifiable homicide panels and derives adoption years from them.
Files are read-only - no modifications to prepared data.
"""

from pathlib import Path
from typing import Dict, List, Optional, Union

import pandas as pd

from ..utils.config import AnalysisConfig, ColumnConfig, get_project_dir
from ..utils.logging import get_logger

logger = get_logger(__name__)


def load_panel(
    path: Union[str, Path],
    required_columns: Optional[List[str]] = None,
    sort_by: Optional[List[str]] = None
) -> pd.DataFrame:
    """
    Load a panel from CSV or parquet.

    Parameters
    ----------
    path : str or Path
        Panel file (.csv or .parquet)
    required_columns : list, optional
        Columns that must be present
    sort_by : list, optional
        Sort keys

    Returns
    -------
    pd.DataFrame
        Panel data
    """
    path = Path(path)
    if not path.is_absolute():
        path = get_project_dir() / path

    if not path.exists():
        raise FileNotFoundError(f"Panel file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == '.parquet':
        df = pd.read_parquet(path)
    elif suffix == '.csv':
        df = pd.read_csv(path)
    else:
        raise ValueError(f"Unsupported panel format: {suffix}")

    if required_columns:
        validate_panel(df, required_columns, name=path.name)

    if sort_by:
        df = df.sort_values(sort_by, kind='mergesort').reset_index(drop=True)

    logger.info(f"Loaded {path.name}: {len(df)} rows, {df.shape[1]} columns")
    return df


def validate_panel(
    df: pd.DataFrame,
    required_columns: List[str],
    key_columns: Optional[List[str]] = None,
    name: str = 'panel'
) -> None:
    """
    Check required columns and, optionally, key uniqueness.

    Raises
    ------
    ValueError
        Missing columns or duplicated keys
    """
    missing = [c for c in required_columns if c not in df.columns]
    if missing:
        raise ValueError(f"{name} missing required columns: {missing}")

    if key_columns:
        duplicated = df.duplicated(subset=key_columns)
        if duplicated.any():
            raise ValueError(
                f"{name} has {int(duplicated.sum())} duplicated rows for key {key_columns}"
            )


def load_panels(config: AnalysisConfig) -> Dict[str, pd.DataFrame]:
    """
    Load the state and city panels named in the config.

    Returns
    -------
    dict
        'state' and 'city' panels
    """
    cols = config.columns
    state_outcomes = [o for o, level in config.outcomes if level == 'jurisdiction']
    city_outcomes = [o for o, level in config.outcomes if level == 'sub_jurisdiction']

    state = load_panel(
        config.paths['state_panel'],
        required_columns=[cols.jurisdiction, cols.time] + state_outcomes,
        sort_by=[cols.jurisdiction, cols.time],
    )
    validate_panel(state, [], key_columns=[cols.jurisdiction, cols.time], name='state panel')

    city = load_panel(
        config.paths['city_panel'],
        required_columns=[cols.jurisdiction, cols.sub_jurisdiction, cols.time] + city_outcomes,
        sort_by=[cols.jurisdiction, cols.sub_jurisdiction, cols.time],
    )
    validate_panel(
        city, [], key_columns=[cols.jurisdiction, cols.sub_jurisdiction, cols.time],
        name='city panel'
    )

    return {'state': state, 'city': city}


def adoption_years_from_panel(
    panel: pd.DataFrame,
    law_col: str,
    columns: ColumnConfig = None
) -> Dict[str, int]:
    """
    First year each state has the law in force.

    States that never adopt within the panel are left out of the mapping.

    Parameters
    ----------
    panel : pd.DataFrame
        State panel with a 0/1 law column
    law_col : str
        Law indicator column
    columns : ColumnConfig, optional
        Column names

    Returns
    -------
    dict
        state -> adoption year, in state order
    """
    if columns is None:
        columns = ColumnConfig()

    active = panel.loc[panel[law_col] == 1]
    years = active.groupby(columns.jurisdiction)[columns.time].min()

    logger.info(
        f"{law_col}: {len(years)} of {panel[columns.jurisdiction].nunique()} "
        f"states adopt within the panel"
    )

    return {state: int(year) for state, year in years.items()}
