import numpy as np
import pandas as pd
import pytest

from mockcal.pibble_model import (
    PibblePrior,
    analyze_pibble,
    build_design_matrix,
    build_model,
    choose_reference,
    default_prior,
    posterior_bias,
    run_inference,
    summarize_posterior_bias,
)


def test_choose_reference_prefers_prevalent_taxon(actual):
    # A, B, C and D are each in 4 mocks; D has the highest mean abundance
    assert choose_reference(actual) == 'D'


def test_design_matrix(actual):
    X = build_design_matrix(actual, reference='D')
    assert list(X.columns) == ['intercept', 'alr_A', 'alr_B', 'alr_C', 'alr_E']
    assert (X['intercept'] == 1.0).all()
    # s1 is an even mock, so every log-ratio is zero
    np.testing.assert_allclose(X.loc['s1'].values[1:], 0.0, atol=1e-12)
    # Absent taxa get large negative log-ratios
    assert X.loc['s3', 'alr_A'] < -5


def test_default_prior_shapes():
    prior = default_prior(5)
    assert prior.theta.shape == (4, 5)
    np.testing.assert_allclose(prior.theta[:, 0], 0.0)
    np.testing.assert_allclose(prior.theta[:, 1:], np.eye(4))
    assert prior.gamma.shape == (5, 5)
    assert prior.gamma[0, 0] == pytest.approx(1.0)


def test_prior_rejects_mismatched_gamma():
    with pytest.raises(ValueError, match="gamma"):
        PibblePrior(theta=np.zeros((2, 3)), gamma=np.eye(2))


def test_build_model_variables(observed, actual):
    X = build_design_matrix(actual, reference='D')
    model = build_model(observed, X, default_prior(5), reference='D')
    for name in ['Lambda', 'Sigma_chol', 'eta', 'Pi', 'obs']:
        assert name in model.named_vars
    assert list(model.coords['taxon']) == ['A', 'B', 'C', 'E', 'D']
    logp = model.compile_logp()(model.initial_point())
    assert np.isfinite(logp)


def test_build_model_rejects_wrong_prior(observed, actual):
    X = build_design_matrix(actual, reference='D')
    with pytest.raises(ValueError, match="theta"):
        build_model(observed, X, default_prior(4, 5), reference='D')


def test_build_model_needs_three_taxa(observed, actual):
    X = build_design_matrix(actual[['A', 'B']], reference='A')
    with pytest.raises(ValueError, match="at least 3"):
        build_model(observed[['A', 'B']], X, default_prior(2), reference='A')


def test_advi_posterior_bias(observed, actual):
    X = build_design_matrix(actual, reference='D')
    trace = run_inference(observed, X, default_prior(5), reference='D', method='advi',
                          n_samples=50, n_iter=200, seed=1, progressbar=False)
    draws = posterior_bias(trace, taxa=list(actual.columns))
    assert draws.shape == (50, 5)
    assert list(draws.columns) == list(actual.columns)
    np.testing.assert_allclose(draws.sum(axis=1), 1.0)
    # Without taxa the reference comes last
    default = posterior_bias(trace)
    assert list(default.columns)[-1] == 'D'
    pd.testing.assert_frame_equal(default[list(actual.columns)], draws)

    summary = summarize_posterior_bias(draws)
    assert list(summary.columns) == ['estimate', 'gm_mean', 'gm_se', 'ci_low', 'ci_high']
    assert summary['estimate'].sum() == pytest.approx(1.0)


def test_run_inference_unknown_method(observed, actual):
    X = build_design_matrix(actual, reference='D')
    with pytest.raises(ValueError, match="Unknown"):
        run_inference(observed, X, default_prior(5), reference='D', method='laplace')


def test_analyze_pibble(calibration_data, capsys):
    summary, draws, trace = analyze_pibble(calibration_data, method='advi', n_samples=30,
                                           n_iter=200, seed=2, progressbar=False)
    assert list(summary.index) == list(calibration_data.taxa)
    assert len(draws) == 30
    assert "reference taxon: D" in capsys.readouterr().out
