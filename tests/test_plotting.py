import matplotlib.pyplot as plt

from mockcal.bias_estimation import bootstrap_bias, estimate_bias, summarize_bias
from mockcal.plotting import plot_bias_estimates, plot_calibration, plot_observed_vs_fitted


def _summary(observed, actual):
    estimate = estimate_bias(observed, actual)
    replicates = bootstrap_bias(observed, actual, times=20, seed=0)
    return summarize_bias(estimate, replicates, to='gm')


def test_plot_bias_estimates_saves(tmp_path, observed, actual):
    summary = _summary(observed, actual)
    path = tmp_path / "bias.png"
    fig = plot_bias_estimates({'center': summary, 'other': summary}, save_path=path)
    assert path.exists()
    assert len(fig.axes) == 1
    assert [t.get_text() for t in fig.axes[0].get_yticklabels()] == list(
        summary.sort_values('estimate').index)
    plt.close(fig)


def test_plot_observed_vs_fitted(observed, actual, true_bias):
    fig = plot_observed_vs_fitted(observed, actual, true_bias)
    assert fig.axes[0].get_xlabel() == "Fitted proportion"
    plt.close(fig)


def test_plot_calibration(tmp_path, observed, actual, true_bias):
    path = tmp_path / "calibration.png"
    fig = plot_calibration(observed, actual, true_bias, save_path=path)
    assert path.exists()
    assert len(fig.axes) == 2
    plt.close(fig)
