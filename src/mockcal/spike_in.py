"""
Absolute abundance from spike-ins.

A spike-in of known amount added to each sample turns relative read counts
into absolute abundances:

    absolute_ij = (reads_ij / bias_j) * spike_amount_i / (reads_is / bias_s)

where s is the spike-in taxon. Without a bias estimate the spike-in is
implicitly assumed to be measured as efficiently as every other taxon.
"""

import pandas as pd


def spike_in_scale(observed, spike_taxon, spike_amount, bias=None):
    """
    Per-sample factor converting (calibrated) reads to absolute abundance.

    Args:
        observed: Read counts, samples x taxa
        spike_taxon: Column of the spike-in
        spike_amount: Scalar or Series (indexed by sample) of spike amount added
        bias: Optional Series of bias indexed by taxon

    Returns:
        Series indexed by sample
    """
    if spike_taxon not in observed.columns:
        raise ValueError(f"Spike-in taxon {spike_taxon!r} not in observed table")

    spike_reads = observed[spike_taxon].astype(float)
    if bias is not None:
        spike_reads = spike_reads / bias[spike_taxon]

    missing = spike_reads.index[spike_reads <= 0].tolist()
    if missing:
        raise ValueError(f"Spike-in has no reads in samples: {missing[:5]}")

    if isinstance(spike_amount, pd.Series):
        spike_amount = spike_amount.loc[observed.index]
    scale = spike_amount / spike_reads
    scale.name = 'scale'
    return scale


def absolute_abundance(observed, spike_taxon, spike_amount, bias=None, drop_spike=True):
    """
    Absolute abundance of every taxon in every sample.

    Args:
        observed: Read counts, samples x taxa
        spike_taxon: Column of the spike-in
        spike_amount: Scalar or Series of spike amount added per sample
        bias: Optional Series of bias indexed by taxon
        drop_spike: Drop the spike-in column from the result

    Returns:
        DataFrame, samples x taxa, in the units of spike_amount
    """
    scale = spike_in_scale(observed, spike_taxon, spike_amount, bias=bias)
    calibrated = observed.astype(float)
    if bias is not None:
        calibrated = calibrated.div(bias[observed.columns], axis=1)
    absolute = calibrated.mul(scale, axis=0)
    if drop_spike:
        absolute = absolute.drop(columns=spike_taxon)
    return absolute
