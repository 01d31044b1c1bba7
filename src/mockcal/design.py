"""
Checks on the design of a mock community experiment.

Bias is only identified up to a constant within a group of taxa that are
linked by co-occurrence in some mock: if taxa A and B never appear in the
same sample (directly or through a chain of shared taxa), their relative
bias cannot be estimated. This module finds those groups and summarizes
how well the mocks cover the taxa.
"""

import numpy as np
import pandas as pd
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import connected_components


MIN_SAMPLES_PER_TAXON = 2


def cooccurrence_matrix(actual):
    """
    Count the samples in which each pair of taxa is present together.

    Args:
        actual: Actual proportions, samples x taxa

    Returns:
        DataFrame, taxa x taxa; the diagonal holds each taxon's prevalence
    """
    present = (actual > 0).astype(int)
    return present.T @ present


def bias_identifiable_groups(actual):
    """
    Connected components of the taxon co-occurrence graph.

    Returns:
        List of taxon lists, largest group first
    """
    cooc = cooccurrence_matrix(actual)
    n_components, labels = connected_components(csr_matrix(cooc.values > 0), directed=False)

    groups = [list(cooc.index[labels == k]) for k in range(n_components)]
    return sorted(groups, key=len, reverse=True)


def check_design(actual, min_samples=MIN_SAMPLES_PER_TAXON):
    """
    Summarize coverage of the mock community design.

    Args:
        actual: Actual proportions, samples x taxa
        min_samples: Taxa present in fewer samples than this are flagged

    Returns:
        Dictionary with design statistics and a list of warnings
    """
    present = actual > 0
    taxa_per_sample = present.sum(axis=1)
    samples_per_taxon = present.sum(axis=0)
    groups = bias_identifiable_groups(actual)

    warnings = []
    absent = samples_per_taxon[samples_per_taxon == 0].index.tolist()
    if absent:
        warnings.append(f"Taxa absent from every mock: {', '.join(absent)}")
    rare = samples_per_taxon[(samples_per_taxon > 0) & (samples_per_taxon < min_samples)]
    if len(rare) > 0:
        warnings.append(f"Taxa in fewer than {min_samples} mocks: {', '.join(rare.index)}")
    if len(groups) > 1:
        warnings.append(f"Co-occurrence graph has {len(groups)} components; "
                        f"bias is only comparable within each")

    return {
        'n_samples': int(actual.shape[0]),
        'n_taxa': int(actual.shape[1]),
        'n_components': len(groups),
        'connected': len(groups) == 1,
        'groups': groups,
        'taxa_per_sample_min': int(taxa_per_sample.min()),
        'taxa_per_sample_max': int(taxa_per_sample.max()),
        'samples_per_taxon_min': int(samples_per_taxon.min()),
        'samples_per_taxon_max': int(samples_per_taxon.max()),
        'warnings': warnings,
    }


def design_table(actual):
    """Per-taxon prevalence and mean nominal abundance when present."""
    present = actual > 0
    table = pd.DataFrame({
        'n_samples': present.sum(axis=0),
        'mean_actual': actual.where(present).mean(axis=0),
        'max_actual': actual.max(axis=0),
    })
    table.index.name = 'taxon'
    return table.fillna({'mean_actual': 0.0}).astype({'n_samples': np.int64})


def report_design(actual):
    """Print the design summary. Returns the summary dictionary."""
    summary = check_design(actual)

    print(f"\n{'='*60}")
    print("Mock community design")
    print(f"{'='*60}")
    print(f"  {summary['n_samples']} samples, {summary['n_taxa']} taxa")
    print(f"  Taxa per mock: {summary['taxa_per_sample_min']} - {summary['taxa_per_sample_max']}")
    print(f"  Mocks per taxon: {summary['samples_per_taxon_min']} - {summary['samples_per_taxon_max']}")
    print(f"  Identifiable groups: {summary['n_components']}")

    print(f"\n  {'Taxon':<30} {'Mocks':>6} {'Mean':>8} {'Max':>8}")
    for taxon, row in design_table(actual).iterrows():
        print(f"  {taxon:<30} {int(row['n_samples']):>6d} {row['mean_actual']:8.3f} {row['max_actual']:8.3f}")

    for warning in summary['warnings']:
        print(f"  WARNING: {warning}")

    return summary
