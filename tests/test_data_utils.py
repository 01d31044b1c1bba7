import numpy as np
import pandas as pd
import pytest

from mockcal.data_utils import (
    AlignmentError,
    align_tables,
    check_alignment,
    error_matrix,
    load_abundance_matrix,
    load_calibration_data,
    load_sample_data,
    zero_observations,
)


def test_load_calibration_data(csv_files, observed, actual):
    data = load_calibration_data(*csv_files)
    assert data.n_samples == 6
    assert data.n_taxa == 5
    assert list(data.samples) == list(observed.index)
    assert list(data.taxa) == list(observed.columns)
    np.testing.assert_allclose(data.actual.values, actual.values)
    assert 'plate' in data.sample_data.columns


def test_load_sample_data_index(csv_files):
    sample_data = load_sample_data(csv_files[0])
    assert sample_data.index.name == 'sample'
    assert sample_data.loc['s2', 'n_taxa'] == 2


def test_load_abundance_matrix_taxa_as_rows(tmp_path, observed):
    path = tmp_path / "observed_t.csv"
    observed.T.to_csv(path)
    loaded = load_abundance_matrix(path, samples_as_rows=False)
    assert list(loaded.index) == list(observed.index)
    assert list(loaded.columns) == list(observed.columns)
    assert loaded.dtypes.unique().tolist() == [np.dtype(float)]


def test_align_tables_reorders(sample_data, observed, actual):
    shuffled_actual = actual.iloc[::-1, ::-1]
    shuffled_samples = sample_data.iloc[[3, 1, 5, 0, 2, 4]]
    data = align_tables(shuffled_samples, observed, shuffled_actual)
    assert list(data.actual.index) == list(observed.index)
    assert list(data.actual.columns) == list(observed.columns)
    assert list(data.sample_data.index) == list(observed.index)
    pd.testing.assert_frame_equal(data.actual, actual)


def test_align_tables_normalizes_actual(sample_data, observed, actual):
    data = align_tables(sample_data, observed, actual * 100)
    np.testing.assert_allclose(data.actual.sum(axis=1), 1.0)


def test_mismatched_samples_raise(sample_data, observed, actual):
    with pytest.raises(AlignmentError, match="s6"):
        align_tables(sample_data, observed, actual.drop(index='s6'))
    with pytest.raises(AlignmentError):
        align_tables(sample_data.drop(index='s1'), observed, actual)


def test_mismatched_taxa_raise(sample_data, observed, actual):
    renamed = actual.rename(columns={'E': 'F'})
    with pytest.raises(AlignmentError, match="Taxon"):
        align_tables(sample_data, observed, renamed)


def test_duplicate_labels_raise(sample_data, observed, actual):
    doubled = pd.concat([observed, observed.iloc[[0]]])
    with pytest.raises(AlignmentError, match="Duplicate"):
        check_alignment(sample_data, doubled, actual)


def test_alignment_error_is_value_error():
    assert issubclass(AlignmentError, ValueError)


def test_negative_counts_raise(sample_data, observed, actual):
    bad = observed.copy()
    bad.iloc[0, 0] = -1
    with pytest.raises(ValueError, match="non-negative"):
        align_tables(sample_data, bad, actual)


def test_unnormalized_actual_rejected(sample_data, observed, actual):
    with pytest.raises(ValueError, match="sum to 1"):
        align_tables(sample_data, observed, actual * 2, normalize=False)


def test_calibration_data_subset(calibration_data):
    subset = calibration_data.subset(['s3', 's1'])
    assert list(subset.samples) == ['s3', 's1']
    assert list(subset.sample_data.index) == ['s3', 's1']


def test_observed_proportions(calibration_data):
    props = calibration_data.observed_proportions()
    np.testing.assert_allclose(props.sum(axis=1), 1.0)


def test_error_matrix_missing_pattern(observed, actual, true_bias):
    errors = error_matrix(observed, actual)
    assert errors.isna().equals(actual == 0)
    # Within a sample every error is proportional to the bias
    row = errors.loc['s1']
    np.testing.assert_allclose(row / row.sum(), true_bias.values)


def test_error_matrix_and_zero_observations(observed, actual):
    dropped = observed.copy()
    dropped.loc['s1', 'E'] = 0
    errors = error_matrix(dropped, actual)
    assert np.isnan(errors.loc['s1', 'E'])

    zeros = zero_observations(dropped, actual)
    assert len(zeros) == 1
    assert zeros.iloc[0]['sample'] == 's1'
    assert zeros.iloc[0]['taxon'] == 'E'
    assert zeros.iloc[0]['actual'] == pytest.approx(0.2)


def test_missing_counts_rejected(sample_data, observed, actual):
    blank = observed.copy()
    blank.loc['s2', 'C'] = np.nan
    with pytest.raises(ValueError, match="Missing values in observed"):
        align_tables(sample_data, blank, actual)


def test_missing_actual_rejected(sample_data, observed, actual):
    blank = actual.copy()
    blank.loc['s2', 'C'] = np.nan
    with pytest.raises(ValueError, match="Missing values in actual"):
        align_tables(sample_data, observed, blank)


def test_empty_csv_cell_rejected(tmp_path, csv_files):
    observed_path = csv_files[1]
    lines = observed_path.read_text().splitlines()
    cells = lines[2].split(',')
    cells[3] = ''
    lines[2] = ','.join(cells)
    observed_path.write_text('\n'.join(lines) + '\n')
    with pytest.raises(ValueError, match="Missing values"):
        load_calibration_data(*csv_files)
