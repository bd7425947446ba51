from dataclasses import replace

import numpy as np
import pandas as pd
import pytest

from conftest import FakeEngine, StatelessEngine
from gunlaws.events.law_indicators import build_panels
from gunlaws.models.errors import InferenceError, IterationError
from gunlaws.models.results import RECORD_COLUMNS
from gunlaws.models.specification import PanelLevel
from gunlaws.validation.placebo_tests import (
    SimulationAccumulator, compare_observed_vs_placebo, observed_coefficients,
    run_iteration, run_placebo
)


def test_observed_run_is_idempotent(placebo_inputs):
    first = observed_coefficients(placebo_inputs)
    second = observed_coefficients(placebo_inputs)

    assert first.to_csv(index=False) == second.to_csv(index=False)
    assert (first['iteration'] == 0).all()


def test_iteration_does_not_mutate_inputs(placebo_inputs):
    state_before = placebo_inputs.state_panel.copy()
    rtc_before = dict(placebo_inputs.rtc_years)

    run_iteration(1, placebo_inputs, seed=11)

    pd.testing.assert_frame_equal(placebo_inputs.state_panel, state_before)
    assert placebo_inputs.rtc_years == rtc_before


def test_batch_shape_and_ids(placebo_inputs):
    result = run_placebo(placebo_inputs, n_iterations=5, seed=1)
    sims = result.simulations

    assert list(sims.columns) == RECORD_COLUMNS
    assert sorted(sims['iteration'].unique()) == [1, 2, 3, 4, 5]
    # table03: rtc_law + syg_law, table04 adds SYGxRTC, five models each
    assert (sims.groupby('iteration').size() == 25).all()
    assert result.effective_n == 5
    assert result.failures == []
    assert 0 not in set(sims['iteration'])


def test_same_seed_reproduces_batch(placebo_inputs):
    first = run_placebo(placebo_inputs, n_iterations=5, seed=42)
    again = run_placebo(replace(placebo_inputs, engine=FakeEngine()), n_iterations=5, seed=42)

    pd.testing.assert_frame_equal(first.simulations, again.simulations)


def test_permutations_vary_interaction(placebo_inputs):
    result = run_placebo(placebo_inputs, n_iterations=20, seed=3)
    sims = result.simulations

    interaction = sims[(sims['table'] == 'table04') & (sims['model'] == 1)
                       & (sims['term'] == 'SYGxRTC')]
    assert interaction['estimate'].nunique() > 1


def test_permutation_keeps_treated_state_years(placebo_inputs):
    result = run_placebo(placebo_inputs, n_iterations=10, seed=5)
    sims, observed = result.simulations, result.observed

    def rtc_share(frame):
        rows = frame[(frame['table'] == 'table03') & (frame['model'] == 1)
                     & (frame['term'] == 'rtc_law')]
        return rows['estimate'].to_numpy()

    # Shuffling years across adopting states leaves the number of treated
    # state-years, hence the fake engine's column mean, unchanged
    assert np.allclose(rtc_share(sims), rtc_share(observed)[0])


def test_thread_pool_matches_sequential(placebo_inputs):
    sequential = run_placebo(placebo_inputs, n_iterations=6, seed=7)
    threaded = run_placebo(
        replace(placebo_inputs, engine=FakeEngine()),
        n_iterations=6, seed=7, n_workers=3, backend='thread',
    )

    pd.testing.assert_frame_equal(sequential.simulations, threaded.simulations)


@pytest.fixture
def stateless_inputs(placebo_inputs):
    panels = build_panels(
        placebo_inputs.state_panel, placebo_inputs.city_panel,
        placebo_inputs.rtc_years, placebo_inputs.syg_years,
    )
    total = int(panels[PanelLevel.JURISDICTION]['SYGxRTC'].sum())
    return replace(
        placebo_inputs,
        engine=StatelessEngine(fail_on=('table03', 2), interaction_total=total),
    )


def test_process_pool_matches_sequential(placebo_inputs):
    inputs = replace(placebo_inputs, engine=StatelessEngine())

    sequential = run_placebo(inputs, n_iterations=6, seed=7)
    pooled = run_placebo(inputs, n_iterations=6, seed=7, n_workers=2, backend='process')

    pd.testing.assert_frame_equal(sequential.simulations, pooled.simulations)
    pd.testing.assert_frame_equal(sequential.observed, pooled.observed)


def test_process_pool_lenient_records_same_failures(stateless_inputs):
    sequential = run_placebo(stateless_inputs, n_iterations=6, seed=3, failure_policy='lenient')
    pooled = run_placebo(
        stateless_inputs, n_iterations=6, seed=3, failure_policy='lenient',
        n_workers=2, backend='process',
    )

    failed = sorted(f['iteration'] for f in sequential.failures)
    assert failed
    assert sorted(f['iteration'] for f in pooled.failures) == failed
    assert all(f['table'] == 'table03' and f['model'] == 2 for f in pooled.failures)
    assert pooled.effective_n == 6 - len(failed)
    pd.testing.assert_frame_equal(sequential.simulations, pooled.simulations)


def test_process_pool_strict_raises_iteration_error(stateless_inputs):
    sequential = run_placebo(stateless_inputs, n_iterations=6, seed=3, failure_policy='lenient')
    failed = {f['iteration'] for f in sequential.failures}

    with pytest.raises(IterationError) as info:
        run_placebo(
            stateless_inputs, n_iterations=6, seed=3, failure_policy='strict',
            n_workers=2, backend='process',
        )

    assert info.value.iteration in failed
    assert info.value.fit_error.table == 'table03'
    assert info.value.fit_error.model == 2
    assert info.value.fit_error.outcome == 'JH_pol'


def test_strict_policy_aborts_with_iteration_context(placebo_inputs):
    # Observed run uses calls 1-10, iteration 1 calls 11-20
    inputs = replace(placebo_inputs, engine=FakeEngine(fail_on_calls={25}))

    with pytest.raises(IterationError) as info:
        run_placebo(inputs, n_iterations=5, seed=1, failure_policy='strict')

    assert info.value.iteration == 2
    assert info.value.fit_error.table == 'table03'
    assert info.value.fit_error.model == 5


def test_lenient_policy_skips_failed_iteration(placebo_inputs):
    inputs = replace(placebo_inputs, engine=FakeEngine(fail_on_calls={25}))

    result = run_placebo(inputs, n_iterations=5, seed=1, failure_policy='lenient')

    assert sorted(result.simulations['iteration'].unique()) == [1, 3, 4, 5]
    assert result.effective_n == 4
    assert result.n_requested == 5
    assert len(result.failures) == 1
    failure = result.failures[0]
    assert failure['iteration'] == 2
    assert failure['table'] == 'table03'
    assert failure['model'] == 5


def test_failed_observed_run_is_fatal_even_when_lenient(placebo_inputs):
    inputs = replace(placebo_inputs, engine=FakeEngine(fail_on_calls={3}))

    with pytest.raises(IterationError) as info:
        run_placebo(inputs, n_iterations=2, failure_policy='lenient')

    assert info.value.iteration == 0


def test_unknown_policy_rejected(placebo_inputs):
    with pytest.raises(ValueError):
        run_placebo(placebo_inputs, n_iterations=1, failure_policy='ignore')


def test_checkpoint_resume_matches_fresh_run(placebo_inputs, tmp_path):
    checkpoint = tmp_path / 'placebo.csv'

    partial = run_placebo(placebo_inputs, n_iterations=3, seed=9, checkpoint_path=checkpoint)
    assert partial.effective_n == 3
    assert checkpoint.exists()

    engine = FakeEngine()
    resumed = run_placebo(
        replace(placebo_inputs, engine=engine),
        n_iterations=5, seed=9, checkpoint_path=checkpoint,
    )
    # Observed run plus iterations 4 and 5 only
    assert len(engine.calls) == 3 * 10

    fresh = run_placebo(replace(placebo_inputs, engine=FakeEngine()), n_iterations=5, seed=9)

    pd.testing.assert_frame_equal(resumed.simulations, fresh.simulations, check_dtype=False)
    assert len(pd.read_csv(checkpoint)) == len(fresh.simulations)


def test_checkpoint_records_master_seed(placebo_inputs, tmp_path):
    checkpoint = tmp_path / 'placebo.csv'
    run_placebo(placebo_inputs, n_iterations=2, seed=9, checkpoint_path=checkpoint)

    meta = tmp_path / 'placebo.csv.meta.yaml'
    assert meta.exists()
    assert SimulationAccumulator(checkpoint, seed=9).load_checkpoint() == {1, 2}


def test_checkpoint_from_other_seed_rejected(placebo_inputs, tmp_path):
    checkpoint = tmp_path / 'placebo.csv'
    run_placebo(placebo_inputs, n_iterations=6, seed=1, checkpoint_path=checkpoint)

    with pytest.raises(ValueError):
        run_placebo(
            replace(placebo_inputs, engine=FakeEngine()),
            n_iterations=6, seed=99, checkpoint_path=checkpoint,
        )


def test_checkpoint_without_seed_file_rejected(placebo_inputs, tmp_path):
    checkpoint = tmp_path / 'placebo.csv'
    run_placebo(placebo_inputs, n_iterations=2, seed=1, checkpoint_path=checkpoint)
    (tmp_path / 'placebo.csv.meta.yaml').unlink()

    with pytest.raises(ValueError):
        run_placebo(placebo_inputs, n_iterations=2, seed=1, checkpoint_path=checkpoint)


def test_smaller_rerun_ignores_extra_checkpointed_iterations(placebo_inputs, tmp_path):
    checkpoint = tmp_path / 'placebo.csv'
    run_placebo(placebo_inputs, n_iterations=6, seed=1, checkpoint_path=checkpoint)

    engine = FakeEngine()
    result = run_placebo(
        replace(placebo_inputs, engine=engine),
        n_iterations=2, seed=1, checkpoint_path=checkpoint,
    )

    assert result.effective_n == 2
    assert result.n_requested == 2
    assert sorted(result.simulations['iteration'].unique()) == [1, 2]
    # Observed run only
    assert len(engine.calls) == 10


def test_accumulator_rejects_duplicate_iteration():
    accumulator = SimulationAccumulator()
    records = pd.DataFrame([{
        'iteration': 1, 'table': 'table03', 'model': 1, 'term': 'rtc_law',
        'estimate': 0.1, 'std_error': 0.05, 'p_value': 0.04,
    }])
    accumulator.append(1, records)

    with pytest.raises(ValueError):
        accumulator.append(1, records)
    assert len(accumulator) == 1
    assert accumulator.completed == {1}


def test_accumulator_orders_by_iteration():
    accumulator = SimulationAccumulator()
    for iteration in (3, 1, 2):
        accumulator.append(iteration, pd.DataFrame([{
            'iteration': iteration, 'table': 'table03', 'model': 1, 'term': term,
            'estimate': 0.0, 'std_error': 0.1, 'p_value': 0.5,
        } for term in ('rtc_law', 'syg_law')]))

    frame = accumulator.to_frame()
    assert frame['iteration'].tolist() == [1, 1, 2, 2, 3, 3]
    assert frame['term'].tolist() == ['rtc_law', 'syg_law'] * 3


def _records(estimates, table='table03', model=1, term='syg_law', p_value=0.5):
    return pd.DataFrame({
        'iteration': np.arange(1, len(estimates) + 1),
        'table': table,
        'model': model,
        'term': term,
        'estimate': estimates,
        'std_error': 0.1,
        'p_value': p_value,
    })


def test_empirical_p_value_from_tail_counts():
    simulations = _records([-1.0] * 953 + [1.0] * 47)
    observed = _records([0.0], p_value=0.01)
    observed['iteration'] = 0

    comparison = compare_observed_vs_placebo(simulations, observed)
    row = comparison.iloc[0]

    assert row['n_above'] == 47
    assert row['n_below'] == 953
    assert row['n_draws'] == 1000
    assert row['p_value'] == pytest.approx(0.047)
    assert row['p_value_upper'] == pytest.approx(0.047)
    assert bool(row['is_significant'])


def test_ties_count_in_neither_tail():
    simulations = _records([0.0, 0.0, 1.0, -1.0])
    observed = _records([0.0])

    row = compare_observed_vs_placebo(simulations, observed).iloc[0]

    assert row['n_draws'] == 4
    assert row['n_below'] == 1
    assert row['n_above'] == 1
    assert row['p_value'] == pytest.approx(0.25)
    assert not bool(row['is_significant'])


def test_p_value_uses_draws_actually_present():
    simulations = _records([1.0, 2.0, 3.0, -1.0])
    observed = _records([0.5])

    row = compare_observed_vs_placebo(simulations, observed).iloc[0]
    assert row['p_value'] == pytest.approx(0.25)


def test_comparison_per_coefficient():
    simulations = pd.concat([
        _records([1.0, 2.0], term='rtc_law'),
        _records([-1.0, -2.0], term='syg_law'),
    ])
    observed = pd.concat([_records([0.0], term='rtc_law'), _records([0.0], term='syg_law')])

    comparison = compare_observed_vs_placebo(simulations, observed)

    assert comparison['term'].tolist() == ['rtc_law', 'syg_law']
    assert comparison['n_above'].tolist() == [2, 0]
    assert comparison['n_below'].tolist() == [0, 2]
    assert comparison['p_value'].tolist() == [0.0, 0.0]


def test_empty_simulation_table_raises():
    with pytest.raises(InferenceError):
        compare_observed_vs_placebo(pd.DataFrame(columns=RECORD_COLUMNS), _records([0.0]))


def test_missing_draws_for_observed_key_raises():
    simulations = _records([1.0, 2.0], model=1)
    observed = _records([0.0], model=2)

    with pytest.raises(InferenceError):
        compare_observed_vs_placebo(simulations, observed)


def test_batch_feeds_inference(placebo_inputs):
    result = run_placebo(placebo_inputs, n_iterations=4, seed=2)
    comparison = compare_observed_vs_placebo(result.simulations, result.observed)

    assert len(comparison) == len(result.observed)
    assert (comparison['n_draws'] == 4).all()
    assert comparison['p_value'].between(0, 0.5).all()
