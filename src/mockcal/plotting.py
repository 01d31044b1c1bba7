"""
Plotting utilities for bias estimates and model fit.

Each function returns the matplotlib Figure and optionally saves it.
"""

import numpy as np
import matplotlib.pyplot as plt

from .bias_estimation import calibrate, fitted


def _save(fig, save_path):
    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')


def plot_bias_estimates(summaries, save_path=None, title="Bias estimates"):
    """
    Point estimates and intervals per taxon for one or more methods.

    Args:
        summaries: Dict mapping method name to a summary table
            (index taxon; columns estimate, ci_low, ci_high)
        save_path: Optional path to save the plot
        title: Plot title
    """
    methods = list(summaries)
    taxa = list(summaries[methods[0]].sort_values('estimate').index)
    colors = plt.cm.Set1(np.linspace(0, 1, max(len(methods), 2)))
    offsets = np.linspace(-0.2, 0.2, len(methods)) if len(methods) > 1 else [0.0]

    fig, ax = plt.subplots(figsize=(8, 0.4 * len(taxa) + 1.5))
    y = np.arange(len(taxa))
    for i, method in enumerate(methods):
        summary = summaries[method].loc[taxa]
        xerr = np.vstack([summary['estimate'] - summary['ci_low'],
                          summary['ci_high'] - summary['estimate']]).clip(min=0)
        ax.errorbar(summary['estimate'], y + offsets[i], xerr=xerr, fmt='o',
                    color=colors[i], label=method, capsize=3)

    ax.axvline(1.0, color='grey', linestyle='--', linewidth=1)
    ax.set_xscale('log')
    ax.set_yticks(y)
    ax.set_yticklabels(taxa)
    ax.set_xlabel("Bias (relative to geometric mean)")
    ax.set_title(title)
    ax.legend()

    _save(fig, save_path)
    return fig


def plot_observed_vs_fitted(observed, actual, bias, save_path=None):
    """
    Observed proportions against proportions predicted from actual and bias.
    """
    present = actual > 0
    obs_prop = observed.div(observed.sum(axis=1), axis=0)
    pred = fitted(actual, bias)

    fig, ax = plt.subplots(figsize=(6, 6))
    x = pred.where(present).values.ravel()
    y = obs_prop.where(present).values.ravel()
    keep = ~np.isnan(x) & ~np.isnan(y) & (x > 0) & (y > 0)
    ax.scatter(x[keep], y[keep], alpha=0.6, s=20)

    lims = [min(x[keep].min(), y[keep].min()), 1.0]
    ax.plot(lims, lims, color='grey', linestyle='--', linewidth=1)
    ax.set_xscale('log')
    ax.set_yscale('log')
    ax.set_xlabel("Fitted proportion")
    ax.set_ylabel("Observed proportion")
    ax.set_title("Observed vs fitted")

    _save(fig, save_path)
    return fig


def plot_calibration(observed, actual, bias, save_path=None):
    """
    Observed and calibrated proportions against actual proportions.
    """
    present = actual > 0
    obs_prop = observed.div(observed.sum(axis=1), axis=0)
    calibrated = calibrate(observed.where(present, 0.0), bias)

    fig, (ax1, ax2) = plt.subplots(1, 2, figsize=(12, 6), sharex=True, sharey=True)
    x = actual.where(present).values.ravel()
    for ax, values, label in [(ax1, obs_prop, "Observed"), (ax2, calibrated, "Calibrated")]:
        y = values.where(present).values.ravel()
        keep = ~np.isnan(x) & ~np.isnan(y) & (y > 0)
        ax.scatter(x[keep], y[keep], alpha=0.6, s=20)
        ax.plot([x[keep].min(), 1.0], [x[keep].min(), 1.0],
                color='grey', linestyle='--', linewidth=1)
        ax.set_xscale('log')
        ax.set_yscale('log')
        ax.set_xlabel("Actual proportion")
        ax.set_title(label)
    ax1.set_ylabel("Measured proportion")

    _save(fig, save_path)
    return fig
