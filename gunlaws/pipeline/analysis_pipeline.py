"""
Gun Law Analysis Pipeline - Unified Orchestrator

Complete pipeline: Panels → Main Tables → Event Study → Placebo → Inference

Steps:
1. Load state and city panels, derive adoption years
2. Fit table03 / table04 on the observed law indicators
3. Fit event-study windows around adoption
4. Run the placebo permutation batch
5. Compare observed coefficients with the placebo distribution
"""

from pathlib import Path
from typing import Dict, List, Optional, Sequence
from datetime import datetime
from dataclasses import dataclass, field

import pandas as pd

from ..events.event_windows import add_windows
from ..ingestion.load_panels import adoption_years_from_panel, load_panels
from ..models.fitting import fit_model_all
from ..models.panel_regression import (
    FittedModel, NegativeBinomialEngine, format_regression_table
)
from ..models.results import event_study_coefficients, tidy_results
from ..models.specification import create_specifications
from ..utils.config import AnalysisConfig, get_project_dir
from ..utils.logging import LogContext, get_logger
from ..validation.placebo_tests import (
    PlaceboInputs, PlaceboResult, compare_observed_vs_placebo, run_placebo
)

logger = get_logger(__name__)


STEPS = ('models', 'event', 'placebo')


@dataclass
class AnalysisResult:
    """Complete pipeline output."""
    timestamp: datetime
    main_models: Dict[str, List[FittedModel]] = field(default_factory=dict)
    main_tables: Dict[str, pd.DataFrame] = field(default_factory=dict)
    event_study: Dict[str, pd.DataFrame] = field(default_factory=dict)
    placebo: Optional[PlaceboResult] = None
    placebo_pvalues: Optional[pd.DataFrame] = None


class AnalysisPipeline:
    """
    Complete gun law analysis pipeline.

    Usage:
        pipeline = AnalysisPipeline(load_config())
        result = pipeline.run(steps=['models', 'placebo'])
        print(result.placebo_pvalues)
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        engine=None,
        state_panel: Optional[pd.DataFrame] = None,
        city_panel: Optional[pd.DataFrame] = None
    ):
        self.config = config or AnalysisConfig()
        self.engine = engine or NegativeBinomialEngine(**self.config.engine)
        self.state_panel = state_panel
        self.city_panel = city_panel

    def load_data(self) -> None:
        """Load panels from the configured paths unless already supplied."""
        if self.state_panel is not None and self.city_panel is not None:
            return

        panels = load_panels(self.config)
        if self.state_panel is None:
            self.state_panel = panels['state']
        if self.city_panel is None:
            self.city_panel = panels['city']

    def adoption_years(self) -> Dict[str, Dict[str, int]]:
        """Observed adoption years per law, from the state panel."""
        self.load_data()
        cols = self.config.columns
        return {
            'rtc': adoption_years_from_panel(self.state_panel, cols.rtc_observed, cols),
            'syg': adoption_years_from_panel(self.state_panel, cols.syg, cols),
        }

    def _specifications(self, formula: str):
        return create_specifications(
            formula,
            outcomes=self.config.outcomes,
            columns=self.config.columns,
            table_names=self.config.table_names,
        )

    def run_main_models(self) -> Dict[str, List[FittedModel]]:
        """Fit table03 and table04 on the observed indicators."""
        self.load_data()
        specs = self._specifications(self.config.main_formula)

        with LogContext(logger, "main models"):
            return fit_model_all(specs, self.state_panel, self.city_panel, self.engine)

    def run_event_study(self) -> Dict[str, pd.DataFrame]:
        """Fit every configured event-study formula; event-time coefficients per formula."""
        self.load_data()
        windows = self.config.event_windows
        cols = self.config.columns

        state_w = add_windows(self.state_panel, windows, columns=cols)
        city_w = add_windows(self.city_panel, windows, columns=cols)

        coefficients = {}
        for name, formula in self.config.event_formulas.items():
            specs = self._specifications(formula)
            with LogContext(logger, f"event study {name}"):
                results = fit_model_all(specs, state_w, city_w, self.engine)
            coefficients[name] = event_study_coefficients(results)

        return coefficients

    def build_placebo_inputs(self) -> PlaceboInputs:
        self.load_data()
        years = self.adoption_years()
        return PlaceboInputs(
            state_panel=self.state_panel,
            city_panel=self.city_panel,
            rtc_years=years['rtc'],
            syg_years=years['syg'],
            specifications=self._specifications(self.config.placebo_formula),
            engine=self.engine,
            columns=self.config.columns,
            indicator_styles=dict(self.config.indicator_styles),
            law_terms=tuple(self.config.law_terms),
        )

    def run_placebo(self, **overrides) -> PlaceboResult:
        """
        Run the placebo batch with the configured settings.

        Keyword overrides (n_iterations, seed, failure_policy, n_workers,
        checkpoint_path, backend) take precedence over the config.
        """
        settings = self.config.placebo
        checkpoint = settings.checkpoint
        if checkpoint and not Path(checkpoint).is_absolute():
            checkpoint = get_project_dir() / checkpoint

        kwargs = {
            'n_iterations': settings.n_iterations,
            'seed': settings.seed,
            'failure_policy': settings.failure_policy,
            'n_workers': settings.n_workers,
            'checkpoint_path': checkpoint,
            'log_every': settings.log_every,
        }
        kwargs.update({k: v for k, v in overrides.items() if v is not None})

        return run_placebo(self.build_placebo_inputs(), **kwargs)

    def run(self, steps: Sequence[str] = STEPS, **placebo_overrides) -> AnalysisResult:
        """
        Run the selected steps.

        Parameters
        ----------
        steps : sequence
            Any of 'models', 'event', 'placebo'
        **placebo_overrides
            Passed to ``run_placebo``

        Returns
        -------
        AnalysisResult
            Outputs of the steps that ran
        """
        unknown = [s for s in steps if s not in STEPS]
        if unknown:
            raise ValueError(f"Unknown steps: {unknown}")

        logger.info("=" * 50)
        logger.info("STARTING GUN LAW ANALYSIS")
        logger.info("=" * 50)

        self.load_data()
        result = AnalysisResult(timestamp=datetime.now())

        if 'models' in steps:
            logger.info("Step 1: Main models...")
            result.main_models = self.run_main_models()
            result.main_tables = {
                table: format_regression_table(models)
                for table, models in result.main_models.items()
            }

        if 'event' in steps:
            logger.info("Step 2: Event study...")
            result.event_study = self.run_event_study()

        if 'placebo' in steps:
            logger.info("Step 3: Placebo permutations...")
            result.placebo = self.run_placebo(**placebo_overrides)
            result.placebo_pvalues = compare_observed_vs_placebo(
                result.placebo.simulations,
                result.placebo.observed,
                alpha=self.config.alpha,
            )

        logger.info("=" * 50)
        logger.info("ANALYSIS COMPLETE")
        logger.info("=" * 50)

        return result


def save_results(result: AnalysisResult, output_dir: Path) -> List[Path]:
    """
    Write pipeline outputs as CSV.

    Returns
    -------
    list
        Written files
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    written = []

    def _write(df: pd.DataFrame, name: str, index: bool = False):
        path = output_dir / name
        df.to_csv(path, index=index)
        written.append(path)

    if result.main_models:
        _write(tidy_results(result.main_models), 'main_coefficients.csv')
    for table, formatted in result.main_tables.items():
        _write(formatted, f'{table}.csv', index=True)
    for name, coefficients in result.event_study.items():
        _write(coefficients, f'{name}.csv')
    if result.placebo is not None:
        _write(result.placebo.simulations, 'placebo_simulations.csv')
        _write(result.placebo.observed, 'placebo_observed.csv')
        if result.placebo.failures:
            _write(pd.DataFrame(result.placebo.failures), 'placebo_failures.csv')
    if result.placebo_pvalues is not None:
        _write(result.placebo_pvalues, 'placebo_pvalues.csv')

    logger.info(f"Saved {len(written)} files to {output_dir}")
    return written
