import matplotlib
matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from mockcal.data_utils import align_tables


TAXA = ['A', 'B', 'C', 'D', 'E']
SAMPLES = ['s1', 's2', 's3', 's4', 's5', 's6']


@pytest.fixture
def true_bias():
    bias = pd.Series([1.0, 2.0, 0.5, 4.0, 0.25], index=TAXA, name='bias')
    return bias / bias.sum()


@pytest.fixture
def actual():
    """Mocks with different taxon subsets; every pair linked through shared taxa."""
    values = np.array([
        [0.2, 0.2, 0.2, 0.2, 0.2],
        [0.5, 0.5, 0.0, 0.0, 0.0],
        [0.0, 0.3, 0.3, 0.4, 0.0],
        [0.25, 0.0, 0.25, 0.0, 0.5],
        [0.0, 0.0, 0.0, 0.6, 0.4],
        [0.1, 0.2, 0.3, 0.4, 0.0],
    ])
    return pd.DataFrame(values, index=SAMPLES, columns=TAXA)


@pytest.fixture
def observed(actual, true_bias):
    """Noise-free read counts: closed(actual * bias) scaled to 10000 reads."""
    expected = actual * true_bias
    return expected.div(expected.sum(axis=1), axis=0) * 10000


@pytest.fixture
def sample_data():
    return pd.DataFrame({
        'plate': [1, 1, 1, 2, 2, 2],
        'n_taxa': [5, 2, 3, 3, 2, 4],
    }, index=pd.Index(SAMPLES, name='sample'))


@pytest.fixture
def calibration_data(sample_data, observed, actual):
    return align_tables(sample_data, observed, actual)


@pytest.fixture
def csv_files(tmp_path, sample_data, observed, actual):
    sample_path = tmp_path / "samples.csv"
    observed_path = tmp_path / "observed.csv"
    actual_path = tmp_path / "actual.csv"
    sample_data.to_csv(sample_path)
    observed.to_csv(observed_path)
    actual.to_csv(actual_path)
    return sample_path, observed_path, actual_path
