"""
Bias estimation from mock communities with the center estimator.

Model: observed_ij = close(actual_ij * bias_j)

Where:
- actual = nominal composition of mock i
- bias = taxon-specific measurement efficiency, shared by all samples

The per-sample error observed/actual equals the bias up to a sample-specific
constant, so the bias is estimated as the compositional center of the error
matrix. Uncertainty comes from a bootstrap over samples, by default the
Bayesian bootstrap (Dirichlet weights).
"""

from itertools import combinations

import numpy as np
import pandas as pd

from .compositions import center, close, gm_mean, gm_sd
from .data_utils import error_matrix, zero_observations


N_BOOTSTRAP = 1000
CI_LEVEL = 0.95


def normalize_bias(bias, to='sum'):
    """
    Rescale a bias vector (or a replicates x taxa table of them).

    Bias is only defined up to a constant; this picks the representative.

    Args:
        bias: Series or DataFrame indexed/columned by taxon
        to: 'sum' (unit total), 'gm' (geometric mean 1) or a taxon name
            (that taxon's bias set to 1)
    """
    if isinstance(bias, pd.DataFrame):
        return bias.apply(lambda row: normalize_bias(row, to), axis=1)
    if to == 'sum':
        scale = bias.sum()
    elif to == 'gm':
        scale = gm_mean(bias.values)
    elif to in bias.index:
        scale = bias[to]
    else:
        raise ValueError(f"Unknown bias normalization: {to!r}")
    return bias / scale


def estimate_bias(observed, actual, method='auto', weights=None):
    """
    Estimate taxon bias as the center of the observed/actual error matrix.

    Args:
        observed: Read counts or proportions, samples x taxa
        actual: Actual proportions, samples x taxa
        method: 'gm', 'proj' or 'auto' (gm when every error is observed)
        weights: Optional per-sample weights

    Returns:
        Series of bias, indexed by taxon, summing to 1
    """
    errors = error_matrix(observed, actual)
    if method == 'auto':
        method = 'gm' if not errors.isna().any().any() else 'proj'
    bias = center(errors.values, weights=weights, method=method)
    return pd.Series(bias, index=errors.columns, name='bias')


def bootstrap_bias(observed, actual, times=N_BOOTSTRAP, dist='dirichlet', seed=None):
    """
    Bootstrap replicates of the bias estimate.

    Args:
        observed: Read counts or proportions, samples x taxa
        actual: Actual proportions, samples x taxa
        times: Number of replicates
        dist: 'dirichlet' (Bayesian bootstrap) or 'multinomial' (classical)
        seed: Random seed

    Returns:
        DataFrame, replicates x taxa; each row sums to 1
    """
    rng = np.random.default_rng(seed)
    errors = error_matrix(observed, actual)
    n_samples = errors.shape[0]
    values = errors.values

    replicates = np.empty((times, errors.shape[1]))
    for b in range(times):
        if dist == 'dirichlet':
            weights = rng.dirichlet(np.ones(n_samples)) * n_samples
        elif dist == 'multinomial':
            weights = rng.multinomial(n_samples, np.full(n_samples, 1.0 / n_samples)).astype(float)
        else:
            raise ValueError(f"Unknown bootstrap distribution: {dist!r}")
        replicates[b] = center(values, weights=weights, method='proj')

    return pd.DataFrame(replicates, columns=errors.columns).rename_axis('replicate')


def match_scale(replicates, reference):
    """
    Rescale each replicate to the scale of `reference`.

    A replicate that is missing some taxa was closed over the rest, so its
    scale is set by the geometric mean ratio to `reference` over the taxa
    both have.
    """
    log_ratio = np.log(replicates) - np.log(reference)
    shift = log_ratio.mean(axis=1, skipna=True)
    return replicates.div(np.exp(shift), axis=0)


def summarize_bias(estimate, replicates, level=CI_LEVEL, to='sum'):
    """
    Per-taxon summary of a bias estimate and its bootstrap replicates.

    Args:
        estimate: Series of bias
        replicates: DataFrame, replicates x taxa
        level: Interval coverage
        to: Normalization of the estimate; replicates are put on its scale

    Returns:
        DataFrame indexed by taxon with estimate, gm_mean, gm_se,
        ci_low, ci_high
    """
    estimate = normalize_bias(estimate, to)
    replicates = match_scale(replicates[estimate.index], estimate)
    alpha = (1 - level) / 2

    summary = pd.DataFrame({
        'estimate': estimate,
        'gm_mean': gm_mean(replicates.values, axis=0),
        'gm_se': gm_sd(replicates.values, axis=0),
        'ci_low': replicates.quantile(alpha),
        'ci_high': replicates.quantile(1 - alpha),
    })
    summary.index.name = 'taxon'
    return summary


def fitted(actual, bias):
    """Expected observed proportions: actual perturbed by bias."""
    bias = bias[actual.columns]
    values = close(actual.values * bias.values[None, :], axis=1)
    return pd.DataFrame(values, index=actual.index, columns=actual.columns)


def calibrate(observed, bias, normalize=True):
    """
    Remove bias from observed abundances.

    Args:
        observed: Counts or proportions, samples x taxa
        bias: Series of bias indexed by taxon
        normalize: Close each calibrated sample to proportions

    Returns:
        DataFrame, samples x taxa
    """
    calibrated = observed.div(bias[observed.columns], axis=1)
    if normalize:
        calibrated = calibrated.div(calibrated.sum(axis=1), axis=0)
    return calibrated


def bias_ratios(bias):
    """
    Pairwise bias ratios between taxa.

    Returns:
        DataFrame with columns taxon_1, taxon_2, ratio (= bias_1 / bias_2)
    """
    rows = []
    for t1, t2 in combinations(bias.index, 2):
        rows.append({'taxon_1': t1, 'taxon_2': t2, 'ratio': bias[t1] / bias[t2]})
    return pd.DataFrame(rows, columns=['taxon_1', 'taxon_2', 'ratio'])


def fit_residuals(observed, actual, bias):
    """
    CLR-scale residuals of observed vs fitted proportions.

    Each sample is compared over the taxa present in the mock with at least
    one read; other entries are NaN.
    """
    observed = observed.loc[actual.index, actual.columns]
    present = (actual > 0) & (observed > 0)
    log_ratio = np.log(observed.where(present)) - np.log(fitted(actual, bias).where(present))
    return log_ratio.sub(log_ratio.mean(axis=1), axis=0)


def analyze_bias(data, times=N_BOOTSTRAP, dist='dirichlet', seed=None, level=CI_LEVEL):
    """
    Run the center/bootstrap bias analysis for one experiment.

    Args:
        data: CalibrationData
        times: Number of bootstrap replicates
        dist: Bootstrap weight distribution
        seed: Random seed
        level: Interval coverage

    Returns:
        Tuple of (summary DataFrame, replicates DataFrame)
    """
    print(f"\n{'='*60}")
    print("Center estimator - bias from mock communities")
    print("Model: observed = close(actual * bias)")
    print(f"{'='*60}")
    print(f"  {data.n_samples} samples, {data.n_taxa} taxa")

    zeros = zero_observations(data.observed, data.actual)
    if len(zeros) > 0:
        print(f"  WARNING: {len(zeros)} expected taxon observations with zero reads (ignored)")

    estimate = estimate_bias(data.observed, data.actual)
    replicates = bootstrap_bias(data.observed, data.actual, times=times, dist=dist, seed=seed)
    summary = summarize_bias(estimate, replicates, level=level, to='gm')

    print(f"\n  Bias relative to geometric mean ({times} {dist} bootstrap replicates):")
    for taxon, row in summary.sort_values('estimate').iterrows():
        print(f"  {taxon:<30} {row['estimate']:8.3f} [{row['ci_low']:.3f}, {row['ci_high']:.3f}]")

    resid = fit_residuals(data.observed, data.actual, estimate)
    print(f"\n  Residual SD (clr scale): {np.nanstd(resid.values):.3f}")

    return summary, replicates
