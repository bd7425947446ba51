"""Shared fixtures: small synthetic state and city panels and a fake engine."""

import threading

import numpy as np
import pandas as pd
import pytest

from gunlaws.models.errors import ConvergenceError, SpecificationError
from gunlaws.models.panel_regression import FittedModel
from gunlaws.models.specification import create_specifications
from gunlaws.utils.config import DEFAULT_CONTROLS, DEFAULT_PLACEBO_FORMULA
from gunlaws.validation.placebo_tests import PlaceboInputs


STATES = ['alabama', 'colorado', 'florida', 'georgia', 'ohio', 'texas']
STATE_YEARS = list(range(1977, 1987))
CITY_YEARS = list(range(1978, 1987))
RTC_YEARS = {'alabama': 1977, 'florida': 1980, 'georgia': 1983, 'texas': 1985}
SYG_YEARS = {'alabama': 1982, 'florida': 1977, 'ohio': 1984}


def _active(years, state, year):
    return int(state in years and year >= years[state])


def _fake_fit(specification, data):
    missing = [c for c in specification.required_columns if c not in data.columns]
    if missing:
        raise SpecificationError(f"missing {missing}")

    names, estimates = [], []
    for term in specification.terms:
        if term.is_indicator:
            values = data[term.name].astype(int)
            for level in sorted(values.unique()):
                if level == term.ref:
                    continue
                names.append(f"{term.name}::{level}")
                estimates.append(float((values == level).mean()))
        else:
            names.append(term.name)
            estimates.append(float(data[term.name].mean()))

    coefficients = pd.DataFrame(
        {
            'estimate': estimates,
            'std_error': [0.1] * len(names),
            'p_value': [0.01 if abs(e) > 0.25 else 0.5 for e in estimates],
        },
        index=pd.Index(names, name='term'),
    )
    return FittedModel(specification, coefficients, n_obs=len(data))


class FakeEngine:
    """
    Deterministic stand-in for the regression engine.

    Each linear term's estimate is the mean of its column in the data the
    model was fit on, so rebuilt indicators show up in the estimates.
    Indicator terms yield one coefficient per non-reference level.
    """

    def __init__(self, fail_on_calls=()):
        self.fail_on_calls = set(fail_on_calls)
        self.calls = []
        self._lock = threading.Lock()

    def fit(self, specification, data):
        with self._lock:
            self.calls.append({
                'table': specification.table,
                'model': specification.model,
                'level': specification.level,
                'has_city': 'address_city' in data.columns,
            })
            call_number = len(self.calls)

        if call_number in self.fail_on_calls:
            raise ConvergenceError(f"simulated failure on call {call_number}")

        return _fake_fit(specification, data)


class StatelessEngine:
    """
    Picklable fake engine without a call counter, for process pools.

    With ``fail_on=(table, model)`` that model fails whenever the panel's
    interaction total differs from ``interaction_total``, so failures depend
    only on the drawn adoption years.
    """

    def __init__(self, fail_on=None, interaction_total=None):
        self.fail_on = fail_on
        self.interaction_total = interaction_total

    def fit(self, specification, data):
        if (
            self.fail_on == (specification.table, specification.model)
            and int(data['SYGxRTC'].sum()) != self.interaction_total
        ):
            raise ConvergenceError(
                f"simulated failure for {specification.table} model {specification.model}"
            )
        return _fake_fit(specification, data)


@pytest.fixture
def state_panel():
    rng = np.random.default_rng(0)
    rows = []
    for state in STATES:
        for year in STATE_YEARS:
            rtc = _active(RTC_YEARS, state, year)
            syg = _active(SYG_YEARS, state, year)
            row = {
                'id': f"{year}_{state}",
                'state': state,
                'year': year,
                'JH_cit': int(rng.poisson(3)),
                'JH_pol': int(rng.poisson(5)),
                'FENC_pol': int(rng.poisson(4)),
                'shall_issue': rtc,
                'syg_law': syg,
                'SYGxRTC': rtc * syg,
            }
            row.update({c: float(rng.normal()) for c in DEFAULT_CONTROLS})
            rows.append(row)
    return pd.DataFrame(rows)


@pytest.fixture
def city_panel():
    rng = np.random.default_rng(1)
    rows = []
    for state in STATES:
        for k in (1, 2):
            city = f"{state[:3].upper()} CITY{k}"
            for year in CITY_YEARS:
                rtc = _active(RTC_YEARS, state, year)
                syg = _active(SYG_YEARS, state, year)
                row = {
                    'id': f"{year}_{city}",
                    'state': state,
                    'address_city': city,
                    'year': year,
                    'JH_city_cit': int(rng.poisson(2)),
                    'JH_city_pol': int(rng.poisson(3)),
                    'shall_issue': rtc,
                    'syg_law': syg,
                    'SYGxRTC': rtc * syg,
                }
                row.update({c: float(rng.normal()) for c in DEFAULT_CONTROLS})
                rows.append(row)
    return pd.DataFrame(rows)


@pytest.fixture
def rtc_years():
    return dict(RTC_YEARS)


@pytest.fixture
def syg_years():
    return dict(SYG_YEARS)


@pytest.fixture
def fake_engine():
    return FakeEngine()


@pytest.fixture
def placebo_inputs(state_panel, city_panel, rtc_years, syg_years, fake_engine):
    return PlaceboInputs(
        state_panel=state_panel,
        city_panel=city_panel,
        rtc_years=rtc_years,
        syg_years=syg_years,
        specifications=create_specifications(DEFAULT_PLACEBO_FORMULA),
        engine=fake_engine,
    )
