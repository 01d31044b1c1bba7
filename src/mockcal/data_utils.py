"""
Data loading and alignment utilities for mock community calibration analysis.

Three tables describe a calibration experiment:

- sample data: one row per sequenced sample (identifier, plate, number of
  taxa in the mock, ...)
- observed: read counts, samples x taxa
- actual: nominal proportions of each taxon in each mock, samples x taxa

Every downstream estimator assumes the three tables share labels and
order; `align_tables` enforces that once, up front.
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd

from .compositions import close


class AlignmentError(ValueError):
    """Raised when the sample table and abundance matrices do not line up."""


def load_sample_data(data_path, sample_column=None):
    """
    Load the sample metadata table.

    Args:
        data_path: Path to the sample CSV
        sample_column: Column holding sample identifiers (default: first column)

    Returns:
        DataFrame indexed by sample identifier
    """
    df = pd.read_csv(data_path)
    sample_column = sample_column or df.columns[0]
    df[sample_column] = df[sample_column].astype(str)
    return df.set_index(sample_column)


def load_abundance_matrix(data_path, samples_as_rows=True):
    """
    Load an abundance matrix with labels in the first column and header.

    Args:
        data_path: Path to the CSV
        samples_as_rows: False if the file has taxa as rows

    Returns:
        DataFrame of floats, samples x taxa
    """
    df = pd.read_csv(data_path, index_col=0)
    if not samples_as_rows:
        df = df.T
    df.index = df.index.astype(str)
    df.columns = df.columns.astype(str)
    df.index.name = 'sample'
    df.columns.name = 'taxon'
    return df.astype(float)


def _label_difference(kind, left_name, left, right_name, right):
    only_left = sorted(set(left) - set(right))
    only_right = sorted(set(right) - set(left))
    parts = []
    if only_left:
        parts.append(f"{len(only_left)} only in {left_name} ({', '.join(only_left[:5])})")
    if only_right:
        parts.append(f"{len(only_right)} only in {right_name} ({', '.join(only_right[:5])})")
    return f"{kind} labels differ: " + "; ".join(parts)


def check_alignment(sample_data, observed, actual, tol=1e-6):
    """
    Check that the three tables describe the same samples and taxa.

    Raises:
        AlignmentError: on duplicate or mismatching labels
        ValueError: on missing or negative values, or actual rows not summing to 1
    """
    for name, df in [('sample data', sample_data), ('observed', observed), ('actual', actual)]:
        if df.index.has_duplicates:
            dups = df.index[df.index.duplicated()].unique().tolist()
            raise AlignmentError(f"Duplicate sample labels in {name}: {dups[:5]}")
    for name, df in [('observed', observed), ('actual', actual)]:
        if df.columns.has_duplicates:
            dups = df.columns[df.columns.duplicated()].unique().tolist()
            raise AlignmentError(f"Duplicate taxon labels in {name}: {dups[:5]}")

    if set(observed.index) != set(actual.index):
        raise AlignmentError(_label_difference('Sample', 'observed', observed.index,
                                               'actual', actual.index))
    if set(sample_data.index) != set(observed.index):
        raise AlignmentError(_label_difference('Sample', 'sample data', sample_data.index,
                                               'observed', observed.index))
    if set(observed.columns) != set(actual.columns):
        raise AlignmentError(_label_difference('Taxon', 'observed', observed.columns,
                                               'actual', actual.columns))

    for name, df in [('observed', observed), ('actual', actual)]:
        if df.isna().any().any():
            cells = df.isna().stack()
            cells = cells[cells].index.tolist()
            raise ValueError(f"Missing values in {name} (use 0 for absent taxa): {cells[:5]}")
    if (observed < 0).any().any():
        raise ValueError("Observed counts must be non-negative")
    if (actual < 0).any().any():
        raise ValueError("Actual proportions must be non-negative")

    row_sums = actual.sum(axis=1)
    bad = row_sums[np.abs(row_sums - 1) > tol]
    if len(bad) > 0:
        raise ValueError(f"Actual proportions do not sum to 1 for samples: {bad.index.tolist()[:5]}")


@dataclass
class CalibrationData:
    """Aligned tables for one calibration experiment."""
    sample_data: pd.DataFrame
    observed: pd.DataFrame
    actual: pd.DataFrame

    @property
    def samples(self):
        return self.observed.index

    @property
    def taxa(self):
        return self.observed.columns

    @property
    def n_samples(self):
        return self.observed.shape[0]

    @property
    def n_taxa(self):
        return self.observed.shape[1]

    def subset(self, samples):
        """Restrict to the given samples, keeping the current order of `samples`."""
        samples = list(samples)
        return CalibrationData(
            sample_data=self.sample_data.loc[samples],
            observed=self.observed.loc[samples],
            actual=self.actual.loc[samples],
        )

    def observed_proportions(self):
        return pd.DataFrame(close(self.observed.values, axis=1),
                            index=self.observed.index, columns=self.observed.columns)


def align_tables(sample_data, observed, actual, normalize=True, tol=1e-6):
    """
    Validate and reorder the three tables to a common sample and taxon order.

    Args:
        sample_data: Sample metadata indexed by sample
        observed: Read counts, samples x taxa
        actual: Nominal abundances, samples x taxa
        normalize: Close the actual rows before checking they sum to 1
        tol: Tolerance on the actual row sums

    Returns:
        CalibrationData in the observed table's sample and taxon order
    """
    if normalize:
        actual = pd.DataFrame(close(actual.values, axis=1),
                              index=actual.index, columns=actual.columns)

    check_alignment(sample_data, observed, actual, tol=tol)

    samples = observed.index
    taxa = observed.columns
    return CalibrationData(
        sample_data=sample_data.loc[samples],
        observed=observed.loc[samples, taxa],
        actual=actual.loc[samples, taxa],
    )


def load_calibration_data(sample_path, observed_path, actual_path,
                          samples_as_rows=True, sample_column=None, normalize=True):
    """
    Load and align sample data, observed counts and actual proportions.

    Returns:
        CalibrationData
    """
    sample_data = load_sample_data(sample_path, sample_column=sample_column)
    observed = load_abundance_matrix(observed_path, samples_as_rows=samples_as_rows)
    actual = load_abundance_matrix(actual_path, samples_as_rows=samples_as_rows)
    return align_tables(sample_data, observed, actual, normalize=normalize)


def error_matrix(observed, actual):
    """
    Per-sample ratio of observed to actual proportions.

    Entries are NaN where the taxon is absent from the mock, and where the
    taxon is expected but received no reads (no ratio information).

    Args:
        observed: Counts or proportions, samples x taxa
        actual: Actual proportions, samples x taxa (same labels)

    Returns:
        DataFrame, samples x taxa
    """
    observed = observed.loc[actual.index, actual.columns]
    present = (actual > 0) & (observed > 0)
    obs_prop = observed.where(actual > 0)
    obs_prop = obs_prop.div(obs_prop.sum(axis=1), axis=0)
    return (obs_prop / actual).where(present)


def zero_observations(observed, actual):
    """
    List taxa that were expected in a sample but received zero reads.

    Returns:
        DataFrame with columns sample, taxon, actual
    """
    observed = observed.loc[actual.index, actual.columns]
    mask = (actual > 0) & (observed <= 0)
    rows = []
    for i, j in zip(*np.nonzero(mask.values)):
        rows.append({
            'sample': actual.index[i],
            'taxon': actual.columns[j],
            'actual': actual.iat[i, j],
        })
    return pd.DataFrame(rows, columns=['sample', 'taxon', 'actual'])
