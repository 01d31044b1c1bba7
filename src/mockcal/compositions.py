"""
Compositional data helpers.

Relative abundances only carry information in their ratios, so every
estimator in this package works on closed compositions and log-ratios.
All functions operate on numpy arrays (pandas objects are accepted and
converted); callers that want labels back re-wrap the result.
"""

import numpy as np


def close(x, axis=-1):
    """
    Rescale compositions so that each one sums to 1.

    NaN entries are ignored when computing the total and stay NaN.

    Args:
        x: Array of non-negative values
        axis: Axis along which each composition lies

    Returns:
        Array of the same shape with unit totals
    """
    x = np.asarray(x, dtype=float)
    total = np.nansum(x, axis=axis, keepdims=True)
    if np.any(total <= 0):
        raise ValueError("Cannot close a composition with a zero total")
    return x / total


def clr(x, axis=-1):
    """Centered log-ratio transform of strictly positive compositions."""
    logx = np.log(np.asarray(x, dtype=float))
    return logx - np.mean(logx, axis=axis, keepdims=True)


def alr(x, denom=-1, axis=-1):
    """
    Additive log-ratio transform against a reference component.

    Args:
        x: Strictly positive compositions
        denom: Index of the reference component
        axis: Axis along which each composition lies

    Returns:
        Array with one fewer component along `axis`
    """
    x = np.moveaxis(np.asarray(x, dtype=float), axis, -1)
    denom = denom % x.shape[-1]
    ratios = np.log(x) - np.log(x[..., [denom]])
    out = np.delete(ratios, denom, axis=-1)
    return np.moveaxis(out, -1, axis)


def alr_inv(y, denom=-1, axis=-1):
    """
    Inverse of `alr`: re-insert the reference component and close.

    `denom` is the position the reference takes in the output, so
    ``alr_inv(alr(x, d), d)`` returns ``close(x)``.
    """
    y = np.moveaxis(np.asarray(y, dtype=float), axis, -1)
    n_out = y.shape[-1] + 1
    denom = denom % n_out
    expanded = np.insert(y, denom, 0.0, axis=-1)
    # Subtract the max for numerical stability before exponentiating
    expanded = expanded - np.max(expanded, axis=-1, keepdims=True)
    out = close(np.exp(expanded), axis=-1)
    return np.moveaxis(out, -1, axis)


def perturb(x, y, inverse=False, axis=-1):
    """
    Compositional perturbation: x * y (or x / y), closed.

    `y` broadcasts against `x`, so a single bias vector can be applied to
    a whole samples x taxa matrix.
    """
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    out = x / y if inverse else x * y
    return close(out, axis=axis)


def gm_mean(x, axis=None):
    """Geometric mean, ignoring NaN."""
    return np.exp(np.nanmean(np.log(np.asarray(x, dtype=float)), axis=axis))


def gm_sd(x, axis=None):
    """Geometric standard deviation, ignoring NaN."""
    return np.exp(np.nanstd(np.log(np.asarray(x, dtype=float)), axis=axis, ddof=1))


def center(x, weights=None, method='gm'):
    """
    Compositional mean of the rows of a matrix.

    Two methods are available:

    - 'gm': weighted geometric mean of each column. Requires complete
      (NaN-free) data.
    - 'proj': least-squares fit of ``log x_ij = b_j + c_i`` over the
      observed entries, where c_i absorbs the arbitrary scale of each row.
      This allows rows that only observe a subcomposition, as happens when
      each mock community contains a different subset of taxa. For
      complete data it agrees with 'gm'.

    Args:
        x: Matrix (rows x components) of positive values, NaN for missing
        weights: Optional non-negative row weights
        method: 'gm' or 'proj'

    Returns:
        Closed composition of length n_components. Components with no
        observation (or only zero-weight observations) are NaN.
    """
    x = np.asarray(x, dtype=float)
    if x.ndim != 2:
        raise ValueError(f"center expects a 2-d matrix, got {x.ndim} dimensions")
    n_rows, n_cols = x.shape

    if weights is None:
        weights = np.ones(n_rows)
    weights = np.asarray(weights, dtype=float)
    if weights.shape != (n_rows,):
        raise ValueError(f"Expected {n_rows} weights, got {weights.shape}")
    if np.any(weights < 0) or weights.sum() <= 0:
        raise ValueError("Weights must be non-negative with a positive sum")

    if np.any(x[~np.isnan(x)] <= 0):
        raise ValueError("center requires strictly positive values")

    logx = np.log(x)
    observed = ~np.isnan(logx) & (weights[:, None] > 0)

    if method == 'gm':
        if np.isnan(x).any():
            raise ValueError("method='gm' requires complete data; use method='proj'")
        b = (weights @ logx) / weights.sum()
    elif method == 'proj':
        b = _projection_center(logx, weights, observed)
    else:
        raise ValueError(f"Unknown center method: {method!r}")

    b = np.where(observed.any(axis=0), b, np.nan)
    b = b - np.nanmax(b)
    return close(np.exp(b))


def _projection_center(logx, weights, observed):
    n_rows, n_cols = logx.shape
    rows, cols = np.nonzero(observed)
    n_eq = len(rows)

    # Unknowns are [b_1..b_D, c_1..c_N]
    design = np.zeros((n_eq, n_cols + n_rows))
    design[np.arange(n_eq), cols] = 1.0
    design[np.arange(n_eq), n_cols + rows] = 1.0
    sqrt_w = np.sqrt(weights[rows])

    solution, *_ = np.linalg.lstsq(design * sqrt_w[:, None],
                                   logx[rows, cols] * sqrt_w, rcond=None)
    return solution[:n_cols]
