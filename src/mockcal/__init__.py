"""
Taxonomic Bias Estimation from Mock Community Calibration Experiments

This package estimates taxon-specific measurement bias in microbiome
sequencing from mock communities of known composition, and uses it to
calibrate relative and (with spike-ins) absolute abundances.

Modules:
- compositions: Closure, log-ratio transforms and compositional centers
- data_utils: Data loading, alignment and the observed/actual error matrix
- bias_estimation: Center estimator with bootstrap, calibration, fit residuals
- pibble_model: Bayesian multinomial logistic-normal regression (PyMC)
- design: Co-occurrence and coverage checks on the mock design
- spike_in: Absolute abundance from spike-ins
- synthetic_validation: Method validation on simulated mocks
- plotting: Figures for estimates and model fit
- run_all_analyses: Full pipeline and command-line entry point
"""

__version__ = "1.0.0"
