from dataclasses import dataclass, field

import numpy as np
import pandas as pd
import patsy
import statsmodels.api as sm
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score
from sklearn.model_selection import train_test_split

import config
import remediation
from errors import ConfigError, RankDeficient


@dataclass(frozen=True)
class ModelArtifact:
    """
    Immutable result of one OLS fit.

    Coefficients are indexed by the design column name (e.g. 'territory[T.B]',
    'age:ypc'); fitted values and residuals keep the row labels of the data
    the model was fitted on, in row order.
    """

    formula: str
    response: str
    coefficients: pd.DataFrame
    fitted: pd.Series
    residuals: pd.Series
    aic: float
    bic: float
    rsquared: float
    rsquared_adj: float
    nobs: int
    design_matrix: pd.DataFrame = field(repr=False)
    design_info: object = field(repr=False)
    response_design_info: object = field(repr=False)
    results: object = field(repr=False)

    @property
    def df_model(self):
        return int(self.results.df_model)

    def term_columns(self):
        """Maps every non-intercept formula term to the design columns it expands into."""
        columns = list(self.design_matrix.columns)
        return {
            name: columns[span]
            for name, span in self.design_info.term_name_slices.items()
            if name != "Intercept"
        }

    def coefficient_table(self):
        return {
            term: {
                "estimate": float(row["estimate"]),
                "std_error": float(row["std_error"]),
                "p_value": float(row["p_value"]),
            }
            for term, row in self.coefficients.iterrows()
        }

    def to_report(self):
        """Plain-dict summary so consumers never depend on printed output."""
        return {
            "formula": self.formula,
            "response": self.response,
            "nobs": self.nobs,
            "aic": self.aic,
            "bic": self.bic,
            "rsquared": self.rsquared,
            "rsquared_adj": self.rsquared_adj,
            "coefficients": self.coefficient_table(),
        }


def build_formula(response, main_effects, interactions=()):
    """
    Assembles a patsy formula from a response, main effects and interactions.

    Interactions may be given as 'a:b' strings or as tuples of column names.
    """
    if not response:
        raise ConfigError("A response column is required")

    terms = list(main_effects)
    for interaction in interactions:
        if isinstance(interaction, str):
            terms.append(interaction)
        else:
            terms.append(":".join(interaction))

    if not terms:
        raise ConfigError(f"Formula for {response!r} has no predictor terms")

    return f"{response} ~ " + " + ".join(terms)


def _parse_formula(formula):
    if not formula or not str(formula).strip():
        raise ConfigError("Formula is empty")
    try:
        desc = patsy.ModelDesc.from_formula(formula)
    except patsy.PatsyError as exc:
        raise ConfigError(f"Cannot parse formula {formula!r}: {exc}") from exc

    if len(desc.lhs_termlist) != 1 or len(desc.lhs_termlist[0].factors) != 1:
        raise ConfigError(f"Formula {formula!r} needs exactly one response on the left of '~'")
    if not any(term.factors for term in desc.rhs_termlist):
        raise ConfigError(f"Formula {formula!r} has no predictor terms")

    response = desc.lhs_termlist[0].factors[0].code
    predictors = {factor.code for term in desc.rhs_termlist for factor in term.factors}
    return response, sorted(predictors)


def _check_response(df, response):
    if response not in df.columns:
        raise ConfigError(f"Response column {response!r} not found; available: {list(df.columns)}")
    if not pd.api.types.is_numeric_dtype(df[response]) or pd.api.types.is_bool_dtype(df[response]):
        raise ConfigError(f"Response column {response!r} must be numeric, got {df[response].dtype}")
    missing = df[response].isna()
    if missing.any():
        raise ConfigError(
            f"Response column {response!r} has {int(missing.sum())} missing value(s), "
            f"e.g. rows {df.index[missing][:10].tolist()}"
        )


def _is_categorical(series):
    return (
        isinstance(series.dtype, pd.CategoricalDtype)
        or pd.api.types.is_object_dtype(series)
        or pd.api.types.is_string_dtype(series)
    )


def _check_categorical_levels(df, predictors):
    for col in predictors:
        # Expressions like np.log(age) are left to patsy
        if col not in df.columns:
            continue
        series = df[col]
        if _is_categorical(series):
            observed = series.dropna().unique()
            if len(observed) < 2:
                raise RankDeficient(
                    f"Categorical predictor {col!r} has {len(observed)} observed level(s); "
                    f"at least two are needed"
                )


def fit_ols(df, formula):
    """
    Fits an ordinary-least-squares model described by a patsy formula.

    Categorical predictors are treatment-coded against their first level;
    interaction terms are elementwise products of the encoded columns.

    Parameters:
    -----------
    df : pd.DataFrame
        Data to fit on (left untouched)
    formula : str
        e.g. 'current_premium ~ territory + ypc + territory:ypc'

    Returns:
    --------
    ModelArtifact
    """
    response, predictors = _parse_formula(formula)
    if response in df.columns:
        _check_response(df, response)
    _check_categorical_levels(df, predictors)

    try:
        y, X = patsy.dmatrices(formula, df, return_type="dataframe", NA_action="raise")
    except patsy.PatsyError as exc:
        raise ConfigError(f"Cannot build design matrix for {formula!r}: {exc}") from exc

    rank = np.linalg.matrix_rank(X.values)
    if rank < X.shape[1]:
        empty = [col for col in X.columns if not X[col].ne(0).any()]
        detail = f"; columns with no observations: {empty}" if empty else ""
        raise RankDeficient(
            f"Design matrix for {formula!r} has rank {rank} but {X.shape[1]} columns "
            f"({len(X)} rows){detail}"
        )

    print(f"Fitting OLS: {formula} ({len(X):,} rows, {X.shape[1]} columns)")
    results = sm.OLS(y.iloc[:, 0], X).fit()

    coefficients = pd.DataFrame(
        {
            "estimate": results.params,
            "std_error": results.bse,
            "t_value": results.tvalues,
            "p_value": results.pvalues,
        }
    )

    return ModelArtifact(
        formula=formula,
        response=response,
        coefficients=coefficients,
        fitted=results.fittedvalues.rename("fitted"),
        residuals=results.resid.rename("residual"),
        aic=float(results.aic),
        bic=float(results.bic),
        rsquared=float(results.rsquared),
        rsquared_adj=float(results.rsquared_adj),
        nobs=int(results.nobs),
        design_matrix=X,
        design_info=X.design_info,
        response_design_info=y.design_info,
        results=results,
    )


def compare_models(models):
    """
    Side-by-side fit statistics for a sequence of models.

    Parameters:
    -----------
    models : dict
        Model name -> ModelArtifact, in fitting order

    Returns:
    --------
    pd.DataFrame indexed by model name
    """
    rows = [
        {
            "model": name,
            "nobs": artifact.nobs,
            "df_model": artifact.df_model,
            "aic": artifact.aic,
            "bic": artifact.bic,
            "rsquared": artifact.rsquared,
            "rsquared_adj": artifact.rsquared_adj,
        }
        for name, artifact in models.items()
    ]
    return pd.DataFrame(rows).set_index("model")


def _split_holdout(df, categorical, test_size, random_state):
    """
    Splits rows into training and test sets, stratified on the categorical predictors.

    Rows of thin category levels (fewer than config.HOLDOUT_MIN_LEVEL_ROWS) and of
    level combinations seen only once stay in the training split. Test rows whose
    level never reached the training split are moved back into it, so the
    training fit can estimate every observed level.
    """
    if not categorical:
        return train_test_split(df, test_size=test_size, random_state=random_state)

    labels = df[categorical].astype(str)
    strata = labels.agg("|".join, axis=1)
    keep_in_train = strata.map(strata.value_counts()) < 2
    for col in categorical:
        keep_in_train |= labels[col].map(labels[col].value_counts()) < config.HOLDOUT_MIN_LEVEL_ROWS

    splittable = df[~keep_in_train]
    strata = strata[~keep_in_train]
    if len(splittable) < 2:
        raise ConfigError(f"Only {len(splittable)} row(s) can be held out; need at least 2")

    if isinstance(test_size, float):
        n_test = int(np.ceil(test_size * len(splittable)))
    else:
        n_test = int(test_size)
    n_classes = strata.nunique()
    stratify = strata if min(n_test, len(splittable) - n_test) >= n_classes else None

    train, test = train_test_split(
        splittable, test_size=test_size, random_state=random_state, stratify=stratify
    )
    train = pd.concat([df[keep_in_train], train])

    for col in categorical:
        absent = test[col].notna() & ~test[col].isin(train[col].dropna().unique())
        if absent.any():
            train = pd.concat([train, test[absent]])
            test = test[~absent]

    if test.empty:
        raise ConfigError("Every held-out row was needed for training; no test rows remain")
    return train, test


def evaluate_holdout(df, formula, test_size=None, random_state=None, center=()):
    """
    Fits on a training split and scores the model on the held-out rows.

    The split is stratified on the categorical predictors of the formula.
    Columns listed in `center` are mean-centered with the training-split means,
    and the same means are subtracted from the test rows.

    Metrics are in the scale of the modeled response, so a log-response model
    reports errors in log units.
    """
    if test_size is None:
        test_size = config.TEST_SIZE
    if random_state is None:
        random_state = config.RANDOM_STATE
    if isinstance(center, str):
        center = [center]

    _, predictors = _parse_formula(formula)
    categorical = [col for col in predictors if col in df.columns and _is_categorical(df[col])]
    train, test = _split_holdout(df, categorical, test_size, random_state)

    means = {}
    if center:
        means = remediation.column_means(train, center)
        train = remediation.mean_center(train, center, means)
        test = remediation.mean_center(test, center, means)

    artifact = fit_ols(train, formula)

    y_test, X_test = patsy.build_design_matrices(
        [artifact.response_design_info, artifact.design_info],
        test,
        return_type="dataframe",
        NA_action="raise",
    )
    predicted = artifact.results.predict(X_test)
    actual = y_test.iloc[:, 0]

    return {
        "formula": formula,
        "n_train": len(train),
        "n_test": len(test),
        "rmse": float(np.sqrt(mean_squared_error(actual, predicted))),
        "mae": float(mean_absolute_error(actual, predicted)),
        "r2": float(r2_score(actual, predicted)),
        "centering_means": means,
    }
