import matplotlib.pyplot as plt
import numpy as np
import pytest

import analysis_engine
import config
from conftest import PROCESSING_DATE, zip_bytes
from errors import ConfigError, ParseError


@pytest.fixture
def pipeline_result(policy_archive):
    return analysis_engine.run_analysis_pipeline(
        source=str(policy_archive), processing_date=PROCESSING_DATE, top_territories=4
    )


def test_pipeline_runs_model_sequence(pipeline_result):
    models = pipeline_result["models"]

    assert list(models) == [step["name"] for step in config.MODEL_SEQUENCE]
    assert models["main_effects"].response == config.RESPONSE
    assert models["centered"].response == config.LOG_RESPONSE
    assert models["interactions"].rsquared >= models["main_effects"].rsquared
    assert list(pipeline_result["comparison"].index) == list(models)


def test_pipeline_snapshots_are_independent(pipeline_result, raw_policies):
    datasets = pipeline_result["datasets"]

    assert list(datasets) == ["raw", "clean", "reduced", "log", "centered"]
    assert "birthdate" in datasets["raw"].columns
    assert datasets["reduced"]["territory"].nunique() == 4
    assert config.LOG_RESPONSE not in datasets["reduced"].columns
    assert datasets["log"]["age"].equals(datasets["reduced"]["age"])
    for col in config.CENTERED_FEATURES:
        assert datasets["centered"][col].mean() == pytest.approx(0.0, abs=1e-9)


def test_centering_keeps_log_model_fit(pipeline_result):
    models = pipeline_result["models"]

    assert models["centered"].rsquared == pytest.approx(models["log_response"].rsquared)
    np.testing.assert_allclose(
        models["centered"].residuals.to_numpy(), models["log_response"].residuals.to_numpy(), atol=1e-8
    )


def test_pipeline_diagnostics_and_holdout(pipeline_result):
    for name, artifact in pipeline_result["models"].items():
        model_diagnostics = pipeline_result["diagnostics"][name]
        assert len(model_diagnostics["cooks_distance"]) == artifact.nobs
        assert len(model_diagnostics["qq"]) == artifact.nobs
        assert "age:ypc" in model_diagnostics["vif"].index or name == "main_effects"

    holdout = pipeline_result["holdout"]
    assert holdout["formula"] == config.MODEL_SEQUENCE[-1]["formula"]
    assert holdout["n_test"] > 0


def test_pipeline_aborts_on_stage_failure(tmp_path):
    path = tmp_path / "broken.csv"
    path.write_text("territory;gender\n1;F\n")

    with pytest.raises(ParseError):
        analysis_engine.run_analysis_pipeline(source=str(path))


def test_fit_model_sequence_validates_steps(reduced_policies):
    with pytest.raises(ConfigError, match="unknown dataset"):
        analysis_engine.fit_model_sequence(
            {"reduced": reduced_policies},
            [{"name": "m", "data": "log", "formula": "current_premium ~ age"}],
        )
    with pytest.raises(ConfigError):
        analysis_engine.fit_model_sequence({"reduced": reduced_policies}, [])


def test_format_coefficients_marks_significance(pipeline_result):
    text = analysis_engine.format_coefficients(pipeline_result["models"]["main_effects"])

    assert "Intercept" in text
    assert "cgr_factor" in text
    assert "*" in text


def test_save_plots(pipeline_result, plots_dir):
    analysis_engine.save_plots(pipeline_result["datasets"], {"main_effects": pipeline_result["models"]["main_effects"]})
    plt.close("all")

    saved = {path.name for path in plots_dir.iterdir()}
    assert {"predictor_grid.png", "scatter_age.png", "qq_main_effects.png", "cooks_main_effects.png"} <= saved


def test_main_prints_report(policy_archive, capsys):
    analysis_engine.main(
        ["--source", str(policy_archive), "--top-territories", "3", "--processing-date", "2024-06-30", "--no-plots"]
    )

    out = capsys.readouterr().out
    assert "MODEL COMPARISON" in out
    assert "HOLDOUT VALIDATION" in out
    for step in config.MODEL_SEQUENCE:
        assert f"MODEL: {step['name']}" in out


def test_holdout_centers_with_training_split(pipeline_result):
    means = pipeline_result["holdout"]["centering_means"]
    log = pipeline_result["datasets"]["log"]

    assert set(means) == set(config.CENTERED_FEATURES)
    # Means of the uncentered training rows, not of the already-centered snapshot
    assert means["age"] > 1
    assert means["age"] == pytest.approx(log["age"].mean(), rel=0.1)


def test_pipeline_survives_thin_territory(tmp_path, raw_policies):
    raw = raw_policies.copy()
    raw.loc[[0, 1, 2], "territory"] = "099"
    path = tmp_path / "premium_data.zip"
    path.write_bytes(zip_bytes({"premium_data.csv": raw.to_csv(index=False)}))

    result = analysis_engine.run_analysis_pipeline(
        source=str(path), processing_date=PROCESSING_DATE, top_territories=7
    )

    assert result["datasets"]["reduced"]["territory"].nunique() == 7
    assert result["holdout"]["n_train"] + result["holdout"]["n_test"] == len(result["datasets"]["reduced"])
