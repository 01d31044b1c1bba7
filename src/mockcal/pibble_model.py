"""
Bayesian multinomial logistic-normal regression for bias estimation.

Model, for sample j with read counts Y_j over D taxa:

    Y_j    ~ Multinomial(n_j, Pi_j)
    Pi_j   = alr_inv(eta_j)
    eta_j  ~ Normal(Lambda X_j, Sigma)
    Lambda ~ MatrixNormal(Theta, Sigma, Gamma)
    Sigma  ~ LKJ-Cholesky covariance

Where:
- eta = additive log-ratio of the true sample composition
- X_j = [1, alr(actual_j)]
- Theta = [0 | I] centers the slope on the identity, so the intercept column
  of Lambda is alr(bias)

Interpretation:
- Intercept > 0: taxon is measured more efficiently than the reference taxon
- Intercept < 0: taxon is measured less efficiently than the reference taxon
"""

from dataclasses import dataclass

import numpy as np
import pandas as pd
import pymc as pm
import pytensor.tensor as pt
from pytensor.tensor.special import softmax

from .bias_estimation import normalize_bias
from .compositions import alr, alr_inv, close, gm_mean, gm_sd


PSEUDOCOUNT = 1e-3
GAMMA_INTERCEPT = 1.0
GAMMA_SLOPE = 0.01
LKJ_ETA = 2.0
SIGMA_SCALE = 1.0
CI_LEVEL = 0.95


@dataclass
class PibblePrior:
    """Prior parameters: Lambda ~ MatrixNormal(theta, Sigma, gamma)."""
    theta: np.ndarray
    gamma: np.ndarray
    lkj_eta: float = LKJ_ETA
    sigma_scale: float = SIGMA_SCALE

    def __post_init__(self):
        self.theta = np.asarray(self.theta, dtype=float)
        self.gamma = np.asarray(self.gamma, dtype=float)
        if self.theta.ndim != 2:
            raise ValueError("theta must be a (D-1) x Q matrix")
        q = self.theta.shape[1]
        if self.gamma.shape != (q, q):
            raise ValueError(f"gamma must be {q} x {q}, got {self.gamma.shape}")


def choose_reference(actual):
    """
    Pick the reference taxon for the ALR: the most prevalent taxon in the
    mocks, ties broken by mean actual abundance.
    """
    prevalence = (actual > 0).sum(axis=0)
    ranking = pd.DataFrame({'prevalence': prevalence, 'mean': actual.mean(axis=0)})
    return ranking.sort_values(['prevalence', 'mean'], ascending=False).index[0]


def _taxa_order(taxa, reference):
    taxa = list(taxa)
    if reference not in taxa:
        raise ValueError(f"Reference taxon {reference!r} not among taxa")
    return [t for t in taxa if t != reference] + [reference]


def build_design_matrix(actual, reference=None, pseudocount=PSEUDOCOUNT):
    """
    Design matrix for bias estimation: intercept plus alr(actual).

    Args:
        actual: Actual proportions, samples x taxa
        reference: ALR reference taxon (default: choose_reference)
        pseudocount: Added to actual proportions before the log-ratio

    Returns:
        DataFrame, samples x (1 + D-1) with columns intercept, alr_<taxon>
    """
    reference = reference if reference is not None else choose_reference(actual)
    order = _taxa_order(actual.columns, reference)
    values = close(actual[order].values + pseudocount, axis=1)
    alr_values = alr(values, denom=-1, axis=1)

    X = pd.DataFrame(alr_values, index=actual.index,
                     columns=[f"alr_{t}" for t in order[:-1]])
    X.insert(0, 'intercept', 1.0)
    return X


def default_prior(n_taxa, n_covariates=None, gamma_intercept=GAMMA_INTERCEPT,
                  gamma_slope=GAMMA_SLOPE, lkj_eta=LKJ_ETA, sigma_scale=SIGMA_SCALE):
    """
    Prior for the bias design: Theta = [0 | I], Gamma = diag(intercept, slopes).

    Args:
        n_taxa: Number of taxa D
        n_covariates: Columns of X (default D: intercept + D-1 slopes)

    Returns:
        PibblePrior
    """
    d = n_taxa - 1
    q = n_covariates if n_covariates is not None else n_taxa
    theta = np.zeros((d, q))
    if q == d + 1:
        theta[:, 1:] = np.eye(d)
    gamma = np.diag([gamma_intercept] + [gamma_slope] * (q - 1))
    return PibblePrior(theta=theta, gamma=gamma, lkj_eta=lkj_eta, sigma_scale=sigma_scale)


def build_model(counts, X, prior, reference=None):
    """
    Build the PyMC model.

    Args:
        counts: Read counts, samples x taxa
        X: Design matrix, samples x covariates (same sample order)
        prior: PibblePrior
        reference: ALR reference taxon (default: last column of counts)

    Returns:
        pm.Model with variables Lambda, Sigma_chol, eta, obs
    """
    reference = reference if reference is not None else counts.columns[-1]
    order = _taxa_order(counts.columns, reference)
    counts = counts.loc[X.index, order]
    Y = np.rint(counts.values).astype(int)
    n_samples, n_taxa = Y.shape
    d = n_taxa - 1

    if n_taxa < 3:
        raise ValueError(f"Need at least 3 taxa to fit the model, got {n_taxa}")
    if prior.theta.shape != (d, X.shape[1]):
        raise ValueError(f"theta must be {d} x {X.shape[1]}, got {prior.theta.shape}")

    coords = {
        'sample': list(counts.index),
        'alr': order[:-1],
        'covariate': list(X.columns),
        'taxon': order,
    }
    gamma_chol = np.linalg.cholesky(prior.gamma)

    with pm.Model(coords=coords) as model:
        X_data = pm.Data('X', X.values, dims=('sample', 'covariate'))

        # Priors
        sigma_chol, _, _ = pm.LKJCholeskyCov(
            'Sigma_chol', n=d, eta=prior.lkj_eta,
            sd_dist=pm.HalfNormal.dist(sigma=prior.sigma_scale, shape=d),
            compute_corr=True,
        )
        pm.Deterministic('Sigma', sigma_chol @ sigma_chol.T)

        # Lambda = Theta + L_Sigma Z L_Gamma^T (non-centered matrix normal)
        z_lambda = pm.Normal('z_Lambda', 0, 1, dims=('alr', 'covariate'))
        Lambda = pm.Deterministic(
            'Lambda', pt.as_tensor_variable(prior.theta) + sigma_chol @ z_lambda @ gamma_chol.T,
            dims=('alr', 'covariate'),
        )

        # eta_j = Lambda X_j + L_Sigma z_j
        z_eta = pm.Normal('z_eta', 0, 1, dims=('sample', 'alr'))
        eta = pm.Deterministic('eta', X_data @ Lambda.T + z_eta @ sigma_chol.T,
                               dims=('sample', 'alr'))

        # Reference taxon has eta = 0
        logits = pt.concatenate([eta, pt.zeros((n_samples, 1))], axis=1)
        Pi = pm.Deterministic('Pi', softmax(logits, axis=1), dims=('sample', 'taxon'))

        # Likelihood
        pm.Multinomial('obs', n=Y.sum(axis=1), p=Pi, observed=Y, dims=('sample', 'taxon'))

    return model


def run_inference(counts, X, prior, reference=None, method='nuts', n_samples=1000,
                  n_tune=1000, n_chains=2, n_iter=20000, seed=None, progressbar=True):
    """
    Fit the multinomial logistic-normal regression.

    Args:
        counts: Read counts, samples x taxa
        X: Design matrix, samples x covariates
        prior: PibblePrior
        reference: ALR reference taxon
        method: 'nuts' (MCMC) or 'advi' (mean-field variational)
        n_samples: Number of posterior draws (per chain for NUTS)
        n_tune: Number of tuning samples (NUTS)
        n_chains: Number of chains (NUTS)
        n_iter: Number of optimization steps (ADVI)
        seed: Random seed

    Returns:
        ArviZ InferenceData object with posterior samples
    """
    model = build_model(counts, X, prior, reference=reference)
    with model:
        if method == 'nuts':
            trace = pm.sample(n_samples, tune=n_tune, chains=n_chains, cores=1,
                              random_seed=seed, progressbar=progressbar,
                              return_inferencedata=True)
        elif method == 'advi':
            approx = pm.fit(n=n_iter, method='advi', random_seed=seed,
                            progressbar=progressbar)
            trace = approx.sample(n_samples, random_seed=seed)
        else:
            raise ValueError(f"Unknown inference method: {method!r}")
    return trace


def posterior_bias(trace, taxa=None):
    """
    Convert posterior intercept draws to bias compositions.

    Args:
        trace: InferenceData from run_inference
        taxa: Output column order (default: model order, reference last)

    Returns:
        DataFrame, draws x taxa; each row sums to 1
    """
    intercept = (trace.posterior['Lambda']
                 .sel(covariate='intercept')
                 .stack(draw_idx=('chain', 'draw'))
                 .transpose('draw_idx', 'alr'))
    alr_taxa = [str(t) for t in intercept['alr'].values]
    reference = [str(t) for t in trace.posterior['taxon'].values][-1]

    values = alr_inv(intercept.values, denom=-1, axis=1)
    draws = pd.DataFrame(values, columns=alr_taxa + [reference]).rename_axis('draw')
    if taxa is not None:
        draws = draws[list(taxa)]
    return draws


def summarize_posterior_bias(draws, level=CI_LEVEL, to='sum'):
    """
    Per-taxon posterior summary in the same layout as `summarize_bias`.

    The point estimate is the posterior geometric mean.
    """
    draws = normalize_bias(draws, to)
    alpha = (1 - level) / 2
    estimate = gm_mean(draws.values, axis=0)
    if to == 'sum':
        estimate = estimate / estimate.sum()

    summary = pd.DataFrame({
        'estimate': estimate,
        'gm_mean': gm_mean(draws.values, axis=0),
        'gm_se': gm_sd(draws.values, axis=0),
        'ci_low': draws.quantile(alpha).values,
        'ci_high': draws.quantile(1 - alpha).values,
    }, index=draws.columns)
    summary.index.name = 'taxon'
    return summary


def analyze_pibble(data, reference=None, prior=None, method='nuts', n_samples=1000,
                   n_tune=1000, n_iter=20000, seed=None, level=CI_LEVEL, progressbar=True):
    """
    Run the Bayesian bias analysis for one experiment.

    Args:
        data: CalibrationData
        reference: ALR reference taxon
        prior: PibblePrior (default: default_prior)
        method: 'nuts' or 'advi'

    Returns:
        Tuple of (summary DataFrame, posterior draws DataFrame, InferenceData)
    """
    reference = reference if reference is not None else choose_reference(data.actual)

    print(f"\n{'='*60}")
    print("Multinomial logistic-normal regression - bias from mock communities")
    print("Model: eta = alr(bias) + alr(actual), Y ~ Multinomial(alr_inv(eta))")
    print(f"{'='*60}")
    print(f"  {data.n_samples} samples, {data.n_taxa} taxa, reference taxon: {reference}")

    X = build_design_matrix(data.actual, reference=reference)
    prior = prior if prior is not None else default_prior(data.n_taxa, X.shape[1])

    trace = run_inference(data.observed, X, prior, reference=reference, method=method,
                          n_samples=n_samples, n_tune=n_tune, n_iter=n_iter,
                          seed=seed, progressbar=progressbar)

    draws = posterior_bias(trace, taxa=data.taxa)
    summary = summarize_posterior_bias(draws, level=level, to='gm')

    print(f"\n  Bias relative to geometric mean ({len(draws)} posterior draws, {method}):")
    for taxon, row in summary.sort_values('estimate').iterrows():
        print(f"  {taxon:<30} {row['estimate']:8.3f} [{row['ci_low']:.3f}, {row['ci_high']:.3f}]")

    return summary, draws, trace
