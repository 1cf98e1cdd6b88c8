"""
Streamlit Dashboard for the Premium Model Lab

Interactive dashboard to refit the premium regression with different
predictors, interactions and remediations, and inspect the diagnostics.

Run with: streamlit run src/dashboard.py
"""

from itertools import combinations

import matplotlib.pyplot as plt
import streamlit as st

import config
import data_preprocessing
import diagnostics
import plotting
import regression_model
import remediation
from errors import PremiumAnalysisError, RankDeficient

PREDICTOR_OPTIONS = config.CATEGORICAL_FEATURES + config.NUMERICAL_FEATURES


def interaction_options(predictors):
    """All two-way interactions between the selected predictors, as 'a:b' terms."""
    return [f"{a}:{b}" for a, b in combinations(predictors, 2)]


def territory_slider_bounds(clean):
    """
    Returns (max_value, default) for the territories slider.

    A model needs at least two territories, and the slider needs a range.
    """
    n_territories = int(clean["territory"].nunique())
    if n_territories < 2:
        raise RankDeficient(
            f"The data has {n_territories} territory level(s); at least two are needed to fit a model"
        )
    return n_territories, min(config.TOP_TERRITORIES_COUNT, n_territories)


def prepare_lab_data(clean, top_territories, log_response=False, centered=()):
    """
    Applies the sidebar choices to the cleaned data.

    Returns:
    --------
    tuple: (DataFrame to fit on, response column name)
    """
    df = data_preprocessing.reduce_categories(clean, "territory", top_territories)
    response = config.RESPONSE
    if log_response:
        df = remediation.log_transform_response(df, config.RESPONSE, config.LOG_RESPONSE)
        response = config.LOG_RESPONSE
    if centered:
        df = remediation.mean_center(df, list(centered))
    return df, response


# ============================================================================
# CACHED FUNCTIONS - Heavy lifting happens here
# ============================================================================


@st.cache_data
def load_clean_data(source):
    """
    Load and clean the policy data.
    This is cached so the archive is only downloaded once per source.
    """
    with st.spinner("Loading and cleaning data..."):
        raw = data_preprocessing.fetch_raw_data(source)
        return data_preprocessing.clean_data(raw)


def render_model(artifact):
    col1, col2, col3, col4 = st.columns(4)
    with col1:
        st.metric(label="Observations", value=f"{artifact.nobs:,}")
    with col2:
        st.metric(label="Adjusted R²", value=f"{artifact.rsquared_adj:.4f}")
    with col3:
        st.metric(label="AIC", value=f"{artifact.aic:,.1f}")
    with col4:
        st.metric(label="BIC", value=f"{artifact.bic:,.1f}")

    tab1, tab2, tab3 = st.tabs(["Coefficients", "Diagnostics", "Collinearity"])

    with tab1:
        st.subheader("Coefficient Table")
        st.dataframe(artifact.coefficients, use_container_width=True)
        st.info(
            f"Terms with p-value below {config.ALPHA} are significant at the "
            f"{(1 - config.ALPHA) * 100:.0f}% level."
        )

    with tab2:
        col1, col2 = st.columns(2)
        with col1:
            st.pyplot(plotting.plot_qq(artifact), use_container_width=True)
        with col2:
            st.pyplot(plotting.plot_residuals_vs_fitted(artifact), use_container_width=True)
        st.pyplot(plotting.plot_cooks_distance(artifact), use_container_width=True)
        plt.close("all")

        influential = diagnostics.influential_points(artifact)
        st.markdown(f"**Influential observations:** {len(influential)}")
        st.dataframe(influential.head(15).to_frame(), use_container_width=True)

    with tab3:
        st.subheader("Generalized Variance Inflation")
        st.dataframe(diagnostics.variance_inflation_table(artifact), use_container_width=True)
        st.info(
            "GVIF^(1/(2*df)) above roughly 2.2 (VIF 5) signals collinearity. "
            "Mean-centering the predictors in an interaction usually brings it down."
        )


def main():
    st.set_page_config(page_title="Premium Model Lab", layout="wide", initial_sidebar_state="expanded")
    st.title("Premium Model Lab")
    st.markdown("Refit the premium regression and check its assumptions interactively.")

    # ========================================================================
    # SIDEBAR - Model Controls
    # ========================================================================

    st.sidebar.header("Model Controls")
    source = st.sidebar.text_input("Data source", value=config.DATA_SOURCE)

    try:
        clean = load_clean_data(source)
        max_territories, default_territories = territory_slider_bounds(clean)
    except PremiumAnalysisError as exc:
        st.error(str(exc))
        st.stop()

    top_territories = st.sidebar.slider(
        "Territories retained",
        min_value=1,
        max_value=max_territories,
        value=default_territories,
        help="Keep only the most frequent territories",
    )

    st.sidebar.markdown("---")
    predictors = st.sidebar.multiselect("Predictors", PREDICTOR_OPTIONS, default=PREDICTOR_OPTIONS)
    interactions = st.sidebar.multiselect("Interactions", interaction_options(predictors))

    st.sidebar.markdown("---")
    st.sidebar.subheader("Remediation")
    log_response = st.sidebar.checkbox("Log-transform premium", value=False)
    numeric_selected = [col for col in predictors if col in config.NUMERICAL_FEATURES]
    centered = st.sidebar.multiselect("Mean-center", numeric_selected)

    try:
        df, response = prepare_lab_data(clean, top_territories, log_response, centered)
        formula = regression_model.build_formula(response, predictors, interactions)
        artifact = regression_model.fit_ols(df, formula)
    except PremiumAnalysisError as exc:
        st.error(str(exc))
        st.stop()

    st.code(formula)
    render_model(artifact)


if __name__ == "__main__":
    main()
