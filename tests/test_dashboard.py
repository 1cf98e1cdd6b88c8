import pytest

import config
import dashboard
from errors import RankDeficient
import regression_model


def test_interaction_options():
    assert dashboard.interaction_options(["territory", "age", "ypc"]) == [
        "territory:age",
        "territory:ypc",
        "age:ypc",
    ]
    assert dashboard.interaction_options(["age"]) == []


def test_prepare_lab_data_applies_remediations(clean_policies):
    df, response = dashboard.prepare_lab_data(clean_policies, 3, log_response=True, centered=["age"])

    assert response == config.LOG_RESPONSE
    assert df["territory"].nunique() == 3
    assert df["age"].mean() == pytest.approx(0.0, abs=1e-9)


def test_prepare_lab_data_defaults(clean_policies):
    df, response = dashboard.prepare_lab_data(clean_policies, 2)

    assert response == config.RESPONSE
    assert config.LOG_RESPONSE not in df.columns


def test_single_territory_selection_cannot_be_fitted(clean_policies):
    df, response = dashboard.prepare_lab_data(clean_policies, 1)
    formula = regression_model.build_formula(response, dashboard.PREDICTOR_OPTIONS)

    with pytest.raises(RankDeficient):
        regression_model.fit_ols(df, formula)


def test_territory_slider_bounds(clean_policies):
    assert dashboard.territory_slider_bounds(clean_policies) == (6, config.TOP_TERRITORIES_COUNT)

    two = clean_policies[clean_policies["territory"].isin(["007", "012"])]
    assert dashboard.territory_slider_bounds(two) == (2, 2)


def test_territory_slider_rejects_single_territory(clean_policies):
    single = clean_policies[clean_policies["territory"] == "007"]

    with pytest.raises(RankDeficient, match="at least two"):
        dashboard.territory_slider_bounds(single)
