import argparse

import matplotlib.pyplot as plt
import pandas as pd

import config
import data_preprocessing
import diagnostics
import plotting
import regression_model
import remediation
from errors import ConfigError


def prepare_datasets(raw, processing_date=None, top_territories=None):
    """
    Threads the raw data through every transformation stage.

    Each stage produces a new frame, so all snapshots stay available for
    comparison (e.g. residuals of the first model against the last).

    Returns:
    --------
    dict with keys 'raw', 'clean', 'reduced', 'log' and 'centered'
    """
    if top_territories is None:
        top_territories = config.TOP_TERRITORIES_COUNT

    clean = data_preprocessing.clean_data(raw, processing_date)
    reduced = data_preprocessing.reduce_categories(clean, "territory", top_territories)

    # Premiums are right-skewed with spread growing in the mean; the log
    # response stabilises the variance, centering tames interaction collinearity
    log = remediation.log_transform_response(reduced, config.RESPONSE, config.LOG_RESPONSE)
    centered = remediation.mean_center(log, config.CENTERED_FEATURES)

    return {
        "raw": raw,
        "clean": clean,
        "reduced": reduced,
        "log": log,
        "centered": centered,
    }


def fit_model_sequence(datasets, sequence=None):
    """
    Fits each configured model on the dataset snapshot it names.

    Returns:
    --------
    dict: model name -> ModelArtifact, in fitting order
    """
    if sequence is None:
        sequence = config.MODEL_SEQUENCE
    if not sequence:
        raise ConfigError("Model sequence is empty")

    models = {}
    for step in sequence:
        if step["data"] not in datasets:
            raise ConfigError(
                f"Model {step['name']!r} refers to unknown dataset {step['data']!r}; "
                f"available: {list(datasets)}"
            )
        models[step["name"]] = regression_model.fit_ols(datasets[step["data"]], step["formula"])
    return models


def diagnose(artifact):
    """Collects every diagnostic for one model."""
    return {
        "qq": diagnostics.qq_pairs(artifact),
        "cooks_distance": diagnostics.cooks_distance(artifact),
        "influential": diagnostics.influential_points(artifact),
        "residuals_vs_fitted": diagnostics.residuals_vs_fitted(artifact),
        "vif": diagnostics.variance_inflation_table(artifact),
    }


def format_coefficients(artifact, alpha=None):
    """
    Renders the coefficient table with a significance marker per term.
    """
    if alpha is None:
        alpha = config.ALPHA
    table = artifact.coefficients[["estimate", "std_error", "p_value"]].copy()
    table["signif"] = table["p_value"].map(lambda p: "*" if p < alpha else "")
    return table.to_string(float_format=lambda v: f"{v:.4f}")


def save_plots(datasets, models):
    """
    Writes the exploratory and diagnostic charts to the plots directory.
    """
    plots_dir = plotting.get_plots_dir()
    reduced = datasets["reduced"]
    numeric = [col for col in config.NUMERICAL_FEATURES if col in reduced.columns]

    for predictor in numeric:
        plotting.plot_smooth_scatter(
            reduced, predictor, config.RESPONSE, filename=str(plots_dir / f"scatter_{predictor}.png")
        )
        plt.close()

    plotting.plot_predictor_grid(
        reduced,
        [(predictor, config.RESPONSE) for predictor in numeric],
        filename=str(plots_dir / "predictor_grid.png"),
    )
    plt.close()

    for name, artifact in models.items():
        plotting.plot_qq(artifact, filename=str(plots_dir / f"qq_{name}.png"))
        plt.close()
        plotting.plot_residuals_vs_fitted(
            artifact, filename=str(plots_dir / f"residuals_fitted_{name}.png")
        )
        plt.close()
        plotting.plot_cooks_distance(artifact, filename=str(plots_dir / f"cooks_{name}.png"))
        plt.close()


def run_analysis_pipeline(source=None, processing_date=None, top_territories=None, make_plots=False):
    """
    Runs the complete analysis and returns every intermediate result.

    Parameters:
    -----------
    source : str, optional
        URL or path of the data archive (default: config.DATA_SOURCE)
    processing_date : date-like, optional
        Date ages are computed at (default: today)
    top_territories : int, optional
        Territories retained by category reduction (default: config.TOP_TERRITORIES_COUNT)
    make_plots : bool, default False
        If True, saves exploratory and diagnostic charts to plots/

    Returns:
    --------
    dict containing:
        - datasets: dict of DataFrame snapshots
        - models: dict of ModelArtifact
        - comparison: pd.DataFrame of fit statistics per model
        - diagnostics: dict of diagnostics per model
        - holdout: dict of out-of-sample metrics for the final model (a centered
          model is centered with training-split means)
    """
    raw = data_preprocessing.fetch_raw_data(source)
    datasets = prepare_datasets(raw, processing_date, top_territories)
    models = fit_model_sequence(datasets)

    final_step = config.MODEL_SEQUENCE[-1]
    holdout_data, center = final_step["data"], ()
    # Centering means for the holdout come from the training rows only
    if holdout_data == "centered":
        holdout_data, center = "log", config.CENTERED_FEATURES
    holdout = regression_model.evaluate_holdout(
        datasets[holdout_data], final_step["formula"], center=center
    )

    if make_plots:
        save_plots(datasets, models)

    return {
        "datasets": datasets,
        "models": models,
        "comparison": regression_model.compare_models(models),
        "diagnostics": {name: diagnose(artifact) for name, artifact in models.items()},
        "holdout": holdout,
    }


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Insurance premium regression analysis")
    parser.add_argument("--source", default=None, help="URL or path of the data archive")
    parser.add_argument(
        "--top-territories",
        type=int,
        default=None,
        help=f"Territories to keep (default: {config.TOP_TERRITORIES_COUNT})",
    )
    parser.add_argument(
        "--processing-date", default=None, help="Date ages are computed at (YYYY-MM-DD)"
    )
    parser.add_argument("--no-plots", action="store_true", help="Skip saving charts")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    processing_date = pd.Timestamp(args.processing_date) if args.processing_date else None

    print("Loading data...")
    result = run_analysis_pipeline(
        source=args.source,
        processing_date=processing_date,
        top_territories=args.top_territories,
        make_plots=not args.no_plots,
    )

    clean = result["datasets"]["clean"]
    print(f"\nCleaned data: {len(clean):,} rows, columns {list(clean.columns)}")

    for name, artifact in result["models"].items():
        print("\n" + "=" * 50)
        print(f"MODEL: {name}")
        print("=" * 50)
        print(artifact.formula)
        print(format_coefficients(artifact))
        print(f"\nAIC: {artifact.aic:.2f}   BIC: {artifact.bic:.2f}   Adj R²: {artifact.rsquared_adj:.4f}")

        model_diagnostics = result["diagnostics"][name]
        print(
            f"Influential observations (Cook's D > {config.COOKS_DISTANCE_FACTOR:g}/n): "
            f"{len(model_diagnostics['influential'])}"
        )
        print("\nVariance Inflation (GVIF):")
        print(model_diagnostics["vif"].to_string(float_format=lambda v: f"{v:.3f}"))

    print("\n" + "=" * 50)
    print("MODEL COMPARISON")
    print("=" * 50)
    print(result["comparison"].to_string(float_format=lambda v: f"{v:.4f}"))

    holdout = result["holdout"]
    print("\n" + "-" * 50)
    print(f"HOLDOUT VALIDATION ({holdout['n_test']:,} test rows)")
    print("-" * 50)
    print(f"Formula: {holdout['formula']}")
    print(f"RMSE: {holdout['rmse']:.4f}   MAE: {holdout['mae']:.4f}   R²: {holdout['r2']:.4f}")
    print("-" * 50 + "\n")

    if not args.no_plots:
        print("All visualizations saved to plots/ directory.")


if __name__ == "__main__":
    main()
