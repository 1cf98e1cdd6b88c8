import math
import os
from pathlib import Path

import matplotlib.pyplot as plt
import seaborn as sns

import config
import diagnostics
from errors import ConfigError


def get_plots_dir():
    """
    Returns the absolute path to the plots directory.
    Creates the directory if it doesn't exist.

    Returns:
    --------
    Path: Absolute path to plots directory
    """
    plots_dir = Path(config.PLOTS_DIR)
    if not plots_dir.exists():
        plots_dir.mkdir(parents=True, exist_ok=True)
        print(f"Created directory: {plots_dir}/")
    return plots_dir


def _save(fig, filename, label):
    if not os.path.isabs(filename):
        filename = str(get_plots_dir() / Path(filename).name)
    fig.savefig(filename, dpi=300, bbox_inches="tight")
    print(f"Saved {label} to {filename}")


def _draw_smooth_scatter(ax, df, predictor, response):
    # LOWESS line shows curvature a straight fit would hide
    sns.regplot(
        x=predictor,
        y=response,
        data=df,
        lowess=True,
        scatter_kws={"s": 10, "alpha": 0.4},
        line_kws={"color": "red", "linewidth": 2},
        ax=ax,
    )
    ax.set_title(f"{response} vs {predictor}", fontsize=11, fontweight="bold")
    ax.grid(linestyle="--", alpha=0.5)


def _check_pair(df, predictor, response):
    missing = [col for col in (predictor, response) if col not in df.columns]
    if missing:
        raise ConfigError(f"Cannot plot unknown column(s) {missing}")


def plot_smooth_scatter(df, predictor, response=None, filename=None):
    """
    Scatter of the response against one predictor with a LOWESS smoother,
    used to judge whether a linear term is adequate.

    Returns:
    --------
    matplotlib.figure.Figure
    """
    if response is None:
        response = config.RESPONSE
    _check_pair(df, predictor, response)

    fig, ax = plt.subplots(figsize=(config.PLOT_FIGSIZE_WIDTH, config.PLOT_FIGSIZE_HEIGHT))
    _draw_smooth_scatter(ax, df, predictor, response)
    plt.tight_layout()

    if filename:
        _save(fig, filename, f"{predictor} scatter")
    return fig


def plot_predictor_grid(df, pairs, filename=None):
    """
    Combined multi-panel figure with one smoothed scatter per (predictor, response) pair.
    """
    pairs = list(pairs)
    if not pairs:
        raise ConfigError("plot_predictor_grid needs at least one (predictor, response) pair")
    for predictor, response in pairs:
        _check_pair(df, predictor, response)

    ncols = min(config.GRID_COLUMNS, len(pairs))
    nrows = math.ceil(len(pairs) / ncols)
    fig, axes = plt.subplots(
        nrows,
        ncols,
        figsize=(config.PLOT_FIGSIZE_WIDTH * ncols / 2, config.PLOT_FIGSIZE_HEIGHT * nrows / 2),
        squeeze=False,
    )

    flat_axes = axes.ravel()
    for ax, (predictor, response) in zip(flat_axes, pairs):
        _draw_smooth_scatter(ax, df, predictor, response)
    for ax in flat_axes[len(pairs):]:
        ax.set_visible(False)

    fig.suptitle("Response vs Numeric Predictors", fontsize=13, fontweight="bold")
    plt.tight_layout()

    if filename:
        _save(fig, filename, "predictor grid")
    return fig


def plot_qq(artifact, filename=None):
    """Normal Q-Q plot of the model residuals."""
    pairs = diagnostics.qq_pairs(artifact)

    fig, ax = plt.subplots(figsize=(config.PLOT_FIGSIZE_HEIGHT, config.PLOT_FIGSIZE_HEIGHT))
    ax.scatter(pairs["theoretical"], pairs["sample"], s=12, alpha=0.6, color="#1f77b4")

    # Reference line through the quartiles, as in R's qqline
    q1, q3 = pairs["sample"].quantile([0.25, 0.75])
    t1, t3 = pairs["theoretical"].quantile([0.25, 0.75])
    if t3 != t1:
        slope = (q3 - q1) / (t3 - t1)
        intercept = q1 - slope * t1
        ax.axline((0, intercept), slope=slope, color="red", linestyle="--", linewidth=1.5)

    ax.set_xlabel("Theoretical Quantiles", fontsize=11)
    ax.set_ylabel("Sample Residuals", fontsize=11)
    ax.set_title(f"Normal Q-Q: {artifact.formula}", fontsize=11, fontweight="bold")
    ax.grid(linestyle="--", alpha=0.5)
    plt.tight_layout()

    if filename:
        _save(fig, filename, "Q-Q plot")
    return fig


def plot_residuals_vs_fitted(artifact, filename=None):
    """Residuals against fitted values; a funnel shape signals heteroscedasticity."""
    pairs = diagnostics.residuals_vs_fitted(artifact)

    fig, ax = plt.subplots(figsize=(config.PLOT_FIGSIZE_WIDTH, config.PLOT_FIGSIZE_HEIGHT))
    sns.regplot(
        x="fitted",
        y="residual",
        data=pairs,
        lowess=True,
        scatter_kws={"s": 10, "alpha": 0.4},
        line_kws={"color": "red", "linewidth": 2},
        ax=ax,
    )
    ax.axhline(0, color="black", linestyle="--", linewidth=1)
    ax.set_xlabel("Fitted Values", fontsize=11)
    ax.set_ylabel("Residuals", fontsize=11)
    ax.set_title(f"Residuals vs Fitted: {artifact.formula}", fontsize=11, fontweight="bold")
    ax.grid(linestyle="--", alpha=0.5)
    plt.tight_layout()

    if filename:
        _save(fig, filename, "residuals vs fitted")
    return fig


def plot_cooks_distance(artifact, filename=None):
    """Cook's distance per observation with the 4/n influence threshold."""
    distances = diagnostics.cooks_distance(artifact)
    threshold = config.COOKS_DISTANCE_FACTOR / artifact.nobs
    positions = range(len(distances))

    fig, ax = plt.subplots(figsize=(config.PLOT_FIGSIZE_WIDTH, config.PLOT_FIGSIZE_HEIGHT))
    ax.vlines(positions, 0, distances.to_numpy(), color="gray", alpha=0.7)
    flagged = distances.to_numpy() > threshold
    ax.scatter(
        [p for p, hit in zip(positions, flagged) if hit],
        distances.to_numpy()[flagged],
        color="red",
        s=14,
        label=f"Influential (n={int(flagged.sum())})",
    )
    ax.axhline(
        threshold,
        color="red",
        linestyle="--",
        linewidth=1.5,
        label=f"{config.COOKS_DISTANCE_FACTOR:g}/n = {threshold:.4f}",
    )

    ax.set_xlabel("Observation", fontsize=11)
    ax.set_ylabel("Cook's Distance", fontsize=11)
    ax.set_title(f"Influence: {artifact.formula}", fontsize=11, fontweight="bold")
    ax.legend(loc="upper right", fontsize=9)
    ax.grid(axis="y", linestyle="--", alpha=0.5)
    plt.tight_layout()

    if filename:
        _save(fig, filename, "Cook's distance plot")
    return fig
