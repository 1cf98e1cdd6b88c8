"""
Fixes applied after reading the diagnostics: a log response for skewed,
heteroscedastic premiums and mean-centering for collinear interaction terms.
"""

import numpy as np
import pandas as pd

import config
from errors import ConfigError, InvalidTransform


def log_transform_response(df, response=None, target=None):
    """
    Adds the natural log of the response as a new column.

    Parameters:
    -----------
    df : pd.DataFrame
        Policy data
    response : str, optional
        Column to transform (default: config.RESPONSE)
    target : str, optional
        Name of the new column (default: 'log_' + response)

    Returns:
    --------
    pd.DataFrame: copy of df with the log column added; the original response
    column is kept so both scales stay available.
    """
    if response is None:
        response = config.RESPONSE
    if target is None:
        target = f"log_{response}"
    if response not in df.columns:
        raise ConfigError(f"Unknown response column {response!r}")

    values = pd.to_numeric(df[response], errors="coerce")
    invalid = ~(values > 0)
    if invalid.any():
        rows = df.index[invalid][:10].tolist()
        raise InvalidTransform(
            f"Log transform of {response!r} needs strictly positive values; "
            f"{int(invalid.sum())} row(s) are <= 0 or missing, e.g. rows {rows}"
        )

    df = df.copy()
    df[target] = np.log(values.astype(float))
    return df


def _numeric_columns(df, columns):
    if isinstance(columns, str):
        columns = [columns]
    if not columns:
        raise ConfigError("mean_center needs at least one column")

    for col in columns:
        if col not in df.columns:
            raise ConfigError(f"Unknown column {col!r}; available: {list(df.columns)}")
        if not pd.api.types.is_numeric_dtype(df[col]) or pd.api.types.is_bool_dtype(df[col]):
            raise ConfigError(f"Cannot center non-numeric column {col!r} ({df[col].dtype})")
    return list(columns)


def column_means(df, columns):
    """Returns {column: mean} for the columns to be centered."""
    return {col: float(df[col].mean()) for col in _numeric_columns(df, columns)}


def mean_center(df, columns, means=None):
    """
    Subtracts each column's mean from every value, leaving the scale unchanged.

    Pass `means` to subtract previously computed means instead, e.g. training
    means applied to held-out rows.
    """
    columns = _numeric_columns(df, columns)
    if means is None:
        means = column_means(df, columns)
    missing = [col for col in columns if col not in means]
    if missing:
        raise ConfigError(f"No mean given for column(s) {missing}")

    df = df.copy()
    for col in columns:
        df[col] = df[col].astype(float) - means[col]

    return df
