"""
Read-only diagnostics over a fitted ModelArtifact.

Normality (normal-quantile pairs), influence (Cook's distance),
homoscedasticity (residuals vs fitted) and multicollinearity (GVIF).
None of these functions modify the artifact.
"""

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.outliers_influence import OLSInfluence

import config


def qq_pairs(artifact):
    """
    Sorted residuals paired with the matching standard-normal quantiles.
    """
    theoretical, sample = stats.probplot(artifact.residuals.to_numpy(), dist="norm", fit=False)
    return pd.DataFrame({"theoretical": theoretical, "sample": sample})


def cooks_distance(artifact):
    """Cook's distance per observation, indexed like the fitted rows."""
    distances = OLSInfluence(artifact.results).cooks_distance[0]
    return pd.Series(np.asarray(distances), index=artifact.residuals.index, name="cooks_distance")


def influential_points(artifact, threshold=None):
    """
    Observations whose Cook's distance exceeds `threshold` (default 4 / n),
    largest first.
    """
    if threshold is None:
        threshold = config.COOKS_DISTANCE_FACTOR / artifact.nobs
    distances = cooks_distance(artifact)
    return distances[distances > threshold].sort_values(ascending=False)


def residuals_vs_fitted(artifact):
    return pd.DataFrame({"fitted": artifact.fitted, "residual": artifact.residuals})


def _correlation_determinant(corr, columns):
    if not columns:
        return 1.0
    return float(np.linalg.det(corr.loc[columns, columns].to_numpy()))


def variance_inflation(artifact):
    """
    Generalized variance inflation factor per formula term.

    GVIF = det(R11) * det(R22) / det(R), where R is the correlation matrix of
    the non-intercept design columns, R11 the block of the term's own columns
    and R22 the block of all other columns (Fox & Monette, 1992). For a term
    that expands into a single column this equals the classic 1 / (1 - R^2).
    """
    term_columns = artifact.term_columns()
    predictors = [col for cols in term_columns.values() for col in cols]

    if len(term_columns) < 2:
        return pd.Series({term: 1.0 for term in term_columns}, name="gvif", dtype=float)

    corr = artifact.design_matrix[predictors].corr()
    det_all = _correlation_determinant(corr, predictors)

    gvif = {}
    for term, cols in term_columns.items():
        others = [col for col in predictors if col not in cols]
        gvif[term] = (
            _correlation_determinant(corr, cols) * _correlation_determinant(corr, others) / det_all
        )

    return pd.Series(gvif, name="gvif")


def variance_inflation_table(artifact):
    """
    GVIF with its degrees of freedom and the GVIF^(1/(2*df)) scaling, which
    makes multi-column terms comparable to sqrt(VIF) of single columns.
    """
    gvif = variance_inflation(artifact)
    dof = pd.Series({term: len(cols) for term, cols in artifact.term_columns().items()})
    table = pd.DataFrame({"gvif": gvif, "df": dof.reindex(gvif.index)})
    table["gvif_adjusted"] = table["gvif"] ** (1 / (2 * table["df"]))
    return table
