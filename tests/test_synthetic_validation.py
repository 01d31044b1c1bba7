import numpy as np
import pandas as pd

from mockcal.synthetic_validation import generate_synthetic_data, run_validation


def test_generate_synthetic_data_shapes():
    data, true_bias = generate_synthetic_data(n_samples=12, n_taxa=5, depth=5000, seed=1)
    assert data.observed.shape == (12, 5)
    assert data.actual.shape == (12, 5)
    np.testing.assert_allclose(true_bias.sum(), 1.0)
    np.testing.assert_allclose(data.actual.sum(axis=1), 1.0)
    np.testing.assert_allclose(data.observed.sum(axis=1), 5000)
    assert ((data.actual > 0).sum(axis=1) >= 3).all()
    assert (data.sample_data['n_taxa'] == (data.actual > 0).sum(axis=1)).all()
    # No reads for taxa absent from the mock
    assert (data.observed[data.actual == 0].fillna(0) == 0).all().all()


def test_generate_synthetic_data_reproducible():
    first, _ = generate_synthetic_data(seed=7)
    second, _ = generate_synthetic_data(seed=7)
    pd.testing.assert_frame_equal(first.observed, second.observed)


def test_generate_with_given_bias():
    _, true_bias = generate_synthetic_data(n_taxa=3, true_bias=[1.0, 1.0, 2.0], seed=0)
    np.testing.assert_allclose(true_bias.values, [0.25, 0.25, 0.5])


def test_even_mocks():
    data, _ = generate_synthetic_data(n_samples=5, n_taxa=4, even=True, seed=0)
    for _, row in data.actual.iterrows():
        present = row[row > 0]
        np.testing.assert_allclose(present.values, 1.0 / len(present))


def test_run_validation_center(capsys):
    results = run_validation(n_samples=20, n_taxa=5, depth=20000, times=100, seed=3)
    assert 'center' in results
    assert 'pibble' not in results
    assert results['center']['max_log_error'] < 0.2
    assert 0.0 <= results['center']['coverage'] <= 1.0
    assert "SYNTHETIC VALIDATION RESULTS" in capsys.readouterr().out
