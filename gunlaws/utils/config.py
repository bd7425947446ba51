"""
Configuration loading for the gun law analysis.

Settings live in ``config/analysis.yaml``. Every key has a default that
reproduces the reference setup, so a missing file or a partial file is fine.
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, field

import yaml

from .logging import get_logger

logger = get_logger(__name__)


DEFAULT_CONTROLS = [
    'unemp_rate', 'log_police_rate', 'pct_pop_black', 'pct_republican',
    'poverty_rate', 'log_pop', 'pct_pop_18_24'
]

# Placebo regressions use the rebuilt indicators
DEFAULT_PLACEBO_FORMULA = "JH_tot ~ rtc_law + syg_law + " + " + ".join(DEFAULT_CONTROLS)

# Main tables use the RTC dummy shipped with the data
DEFAULT_MAIN_FORMULA = "JH_tot ~ shall_issue + syg_law + " + " + ".join(DEFAULT_CONTROLS)

DEFAULT_EVENT_FORMULAS = {
    'strategy2_w2': (
        "JH_tot ~ i(rtc_dist_w2, ref = -1) + i(syg_dist_w2, ref = -1) + "
        + " + ".join(DEFAULT_CONTROLS)
    ),
    'strategy2_w3': (
        "JH_tot ~ i(rtc_dist_w3, ref = -1) + i(syg_dist_w3, ref = -1) + "
        + " + ".join(DEFAULT_CONTROLS)
    ),
}

# (outcome, panel level) in model order
DEFAULT_OUTCOMES = [
    ('JH_cit', 'jurisdiction'),
    ('JH_pol', 'jurisdiction'),
    ('FENC_pol', 'jurisdiction'),
    ('JH_city_cit', 'sub_jurisdiction'),
    ('JH_city_pol', 'sub_jurisdiction'),
]

DEFAULT_LAW_TERMS = ['shall_issue', 'syg_law', 'rtc_law', 'SYGxRTC']


@dataclass
class ColumnConfig:
    """Column names shared by the state and city panels."""
    jurisdiction: str = 'state'
    sub_jurisdiction: str = 'address_city'
    time: str = 'year'
    id: str = 'id'
    rtc: str = 'rtc_law'
    syg: str = 'syg_law'
    interaction: str = 'SYGxRTC'
    rtc_observed: str = 'shall_issue'


@dataclass
class PlaceboSettings:
    """Placebo batch settings."""
    n_iterations: int = 1000
    seed: int = 1
    failure_policy: str = 'strict'
    n_workers: int = 1
    log_every: int = 50
    checkpoint: Optional[str] = None

    def __post_init__(self):
        if self.failure_policy not in ('strict', 'lenient'):
            raise ValueError(
                f"Unknown failure policy: {self.failure_policy} "
                "(expected 'strict' or 'lenient')"
            )
        if self.n_iterations < 0:
            raise ValueError("n_iterations must be non-negative")


@dataclass
class AnalysisConfig:
    """Typed view over ``analysis.yaml``."""
    paths: Dict[str, str] = field(default_factory=lambda: {
        'state_panel': 'data/jh.parquet',
        'city_panel': 'data/jh_city.parquet',
        'output_dir': 'outputs',
        'log_dir': 'logs',
    })
    columns: ColumnConfig = field(default_factory=ColumnConfig)
    placebo_formula: str = DEFAULT_PLACEBO_FORMULA
    main_formula: str = DEFAULT_MAIN_FORMULA
    event_formulas: Dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_EVENT_FORMULAS)
    )
    event_windows: List[int] = field(default_factory=lambda: [1, 2, 3, 10])
    outcomes: List[Tuple[str, str]] = field(
        default_factory=lambda: list(DEFAULT_OUTCOMES)
    )
    table_names: Tuple[str, str] = ('table03', 'table04')
    indicator_styles: Dict[str, str] = field(default_factory=lambda: {
        'jurisdiction': 'cumulative',
        'sub_jurisdiction': 'boolean',
    })
    law_terms: List[str] = field(default_factory=lambda: list(DEFAULT_LAW_TERMS))
    placebo: PlaceboSettings = field(default_factory=PlaceboSettings)
    engine: Dict[str, object] = field(default_factory=lambda: {
        'method': 'newton',
        'maxiter': 100,
    })
    alpha: float = 0.05

    @classmethod
    def from_dict(cls, raw: Optional[Dict]) -> "AnalysisConfig":
        """Build a config from a parsed YAML mapping, keeping defaults for gaps."""
        raw = raw or {}
        config = cls()

        if 'paths' in raw:
            config.paths.update(raw['paths'] or {})
        if 'columns' in raw:
            config.columns = ColumnConfig(**(raw['columns'] or {}))

        formula = raw.get('formula') or {}
        config.placebo_formula = formula.get('placebo', config.placebo_formula)
        config.main_formula = formula.get('main', config.main_formula)
        if 'event_study' in formula:
            config.event_formulas = dict(formula['event_study'] or {})
        config.event_windows = list(raw.get('event_windows', config.event_windows))

        if 'outcomes' in raw:
            config.outcomes = [
                (item['name'], item.get('level', 'jurisdiction'))
                for item in raw['outcomes']
            ]
        if 'tables' in raw:
            tables = tuple(raw['tables'])
            if len(tables) != 2:
                raise ValueError(f"Expected two table names, got {tables}")
            config.table_names = tables
        if 'indicator_styles' in raw:
            config.indicator_styles.update(raw['indicator_styles'] or {})
        if 'law_terms' in raw:
            config.law_terms = list(raw['law_terms'])
        if 'placebo' in raw:
            config.placebo = PlaceboSettings(**(raw['placebo'] or {}))
        if 'engine' in raw:
            config.engine.update(raw['engine'] or {})
        if 'inference' in raw:
            config.alpha = float((raw['inference'] or {}).get('alpha', config.alpha))

        return config


def get_project_dir() -> Path:
    """Repository root (the directory holding ``config/``)."""
    return Path(__file__).parents[2]


def load_config(config_path: Optional[Path] = None) -> AnalysisConfig:
    """
    Load configuration from YAML.

    Parameters
    ----------
    config_path : Path, optional
        Path to a YAML file or to a directory containing ``analysis.yaml``.
        Defaults to ``config/analysis.yaml`` in the project directory.

    Returns
    -------
    AnalysisConfig
        Parsed configuration
    """
    if config_path is None:
        config_path = get_project_dir() / "config"

    config_path = Path(config_path)
    if config_path.is_dir():
        config_path = config_path / "analysis.yaml"

    if not config_path.exists():
        logger.warning(f"Config file {config_path} not found, using defaults")
        return AnalysisConfig()

    with open(config_path, 'r', encoding='utf-8') as f:
        raw = yaml.safe_load(f)

    logger.debug(f"Loaded config from {config_path}")
    return AnalysisConfig.from_dict(raw)
