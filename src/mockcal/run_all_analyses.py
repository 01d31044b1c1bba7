"""
Run all analyses for a mock community calibration experiment.

This script runs the complete analysis pipeline:
1. Load and align sample data, observed counts and actual proportions
2. Mock community design check
3. Center estimator with bootstrap
4. Multinomial logistic-normal regression
5. Comparison table and figures

Usage:
    mockcal-run samples.csv observed.csv actual.csv [--output-dir DIR]
"""

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import pandas as pd

from .bias_estimation import N_BOOTSTRAP, analyze_bias, estimate_bias
from .data_utils import load_calibration_data
from .design import design_table, report_design


@dataclass
class AnalysisConfig:
    """Settings for one run of the pipeline."""
    output_dir: str = "."
    times: int = N_BOOTSTRAP
    dist: str = "dirichlet"
    level: float = 0.95
    seed: int = 42
    run_pibble: bool = True
    method: str = "nuts"
    draws: int = 1000
    tune: int = 1000
    n_iter: int = 20000
    reference: Optional[str] = None
    samples_as_rows: bool = True
    plots: bool = True


def compare_estimates(summaries):
    """
    Stack per-method summary tables into one long table.

    Args:
        summaries: Dict mapping method name to a summary table indexed by taxon

    Returns:
        DataFrame with a method column and one row per method and taxon
    """
    frames = []
    for method, summary in summaries.items():
        frame = summary.reset_index()
        frame.insert(0, 'method', method)
        frames.append(frame)
    return pd.concat(frames, ignore_index=True)


def run_pipeline(sample_path, observed_path, actual_path, config=None):
    """
    Run every analysis step and write results to config.output_dir.

    Returns:
        DataFrame comparing the bias estimates of each method
    """
    config = config or AnalysisConfig()
    output_dir = Path(config.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    print("="*70)
    print("MOCK COMMUNITY BIAS ESTIMATION - FULL ANALYSIS")
    print("="*70)

    print("\nLoading data...")
    data = load_calibration_data(sample_path, observed_path, actual_path,
                                 samples_as_rows=config.samples_as_rows)

    # 1. Design
    print("\n" + "#"*70)
    print("# STEP 1: MOCK COMMUNITY DESIGN")
    print("#"*70)
    report_design(data.actual)
    design_table(data.actual).to_csv(output_dir / "design.csv")

    # 2. Center estimator
    print("\n" + "#"*70)
    print("# STEP 2: CENTER ESTIMATOR WITH BOOTSTRAP")
    print("#"*70)
    center_summary, replicates = analyze_bias(data, times=config.times, dist=config.dist,
                                              seed=config.seed, level=config.level)
    replicates.to_csv(output_dir / "bias_bootstrap.csv")
    summaries = {'center': center_summary}

    # 3. Bayesian regression
    if config.run_pibble:
        from .pibble_model import analyze_pibble

        print("\n" + "#"*70)
        print("# STEP 3: MULTINOMIAL LOGISTIC-NORMAL REGRESSION")
        print("#"*70)
        pibble_summary, draws, _ = analyze_pibble(
            data, reference=config.reference, method=config.method,
            n_samples=config.draws, n_tune=config.tune, n_iter=config.n_iter,
            seed=config.seed, level=config.level,
        )
        draws.to_csv(output_dir / "bias_posterior.csv")
        summaries['pibble'] = pibble_summary

    results = compare_estimates(summaries)
    results.to_csv(output_dir / "bias_estimates.csv", index=False)

    if config.plots:
        import matplotlib.pyplot as plt
        from .plotting import plot_bias_estimates, plot_calibration, plot_observed_vs_fitted

        bias = estimate_bias(data.observed, data.actual)
        figures = [
            plot_bias_estimates(summaries, save_path=output_dir / "bias_estimates.png"),
            plot_observed_vs_fitted(data.observed, data.actual, bias,
                                    save_path=output_dir / "observed_vs_fitted.png"),
            plot_calibration(data.observed, data.actual, bias,
                             save_path=output_dir / "calibration.png"),
        ]
        for fig in figures:
            plt.close(fig)

    # Final summary
    print("\n" + "="*70)
    print("ANALYSIS COMPLETE")
    print("="*70)
    print(f"\nResults saved to: {output_dir.absolute()}")
    print("  - design.csv")
    print("  - bias_estimates.csv")
    print("  - bias_bootstrap.csv")
    if config.run_pibble:
        print("  - bias_posterior.csv")
    if config.plots:
        print("  - bias_estimates.png, observed_vs_fitted.png, calibration.png")

    return results


def main(argv=None):
    parser = argparse.ArgumentParser(description='Estimate taxonomic bias from mock communities')
    parser.add_argument('sample_path', type=str, help='Path to sample data CSV')
    parser.add_argument('observed_path', type=str, help='Path to observed read counts CSV')
    parser.add_argument('actual_path', type=str, help='Path to actual proportions CSV')
    parser.add_argument('--output-dir', type=str, default='.', help='Output directory')
    parser.add_argument('--times', type=int, default=N_BOOTSTRAP, help='Bootstrap replicates')
    parser.add_argument('--dist', choices=['dirichlet', 'multinomial'], default='dirichlet',
                        help='Bootstrap weight distribution')
    parser.add_argument('--method', choices=['nuts', 'advi'], default='nuts',
                        help='Posterior inference method')
    parser.add_argument('--draws', type=int, default=1000, help='Posterior draws')
    parser.add_argument('--tune', type=int, default=1000, help='NUTS tuning steps')
    parser.add_argument('--reference', type=str, default=None, help='ALR reference taxon')
    parser.add_argument('--seed', type=int, default=42)
    parser.add_argument('--skip-pibble', action='store_true',
                        help='Skip the Bayesian regression')
    parser.add_argument('--no-plots', action='store_true', help='Do not write figures')
    parser.add_argument('--taxa-as-rows', action='store_true',
                        help='Abundance files have taxa as rows')

    args = parser.parse_args(argv)
    config = AnalysisConfig(
        output_dir=args.output_dir,
        times=args.times,
        dist=args.dist,
        seed=args.seed,
        run_pibble=not args.skip_pibble,
        method=args.method,
        draws=args.draws,
        tune=args.tune,
        reference=args.reference,
        samples_as_rows=not args.taxa_as_rows,
        plots=not args.no_plots,
    )
    return run_pipeline(args.sample_path, args.observed_path, args.actual_path, config)


if __name__ == "__main__":
    main()
