import io
import zipfile
from datetime import date
from pathlib import Path

import numpy as np
import pandas as pd
import requests

import config
from errors import ConfigError, MalformedDate, ParseError, SourceUnavailable


def _read_source(source, timeout):
    """
    Returns the raw bytes behind a URL or a local path.
    """
    source = str(source)
    if source.startswith(("http://", "https://")):
        try:
            response = requests.get(source, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise SourceUnavailable(f"Could not fetch {source}: {exc}") from exc
        return response.content

    try:
        return Path(source).read_bytes()
    except OSError as exc:
        raise SourceUnavailable(f"Could not read {source}: {exc}") from exc


def _extract_csv(payload, source):
    """
    Pulls the single CSV member out of a zip archive.
    Payloads that are not zip archives are treated as a bare CSV.
    """
    buffer = io.BytesIO(payload)
    if not zipfile.is_zipfile(buffer):
        return payload

    try:
        with zipfile.ZipFile(buffer) as archive:
            # macOS archivers add resource-fork copies of every member
            members = [
                name
                for name in archive.namelist()
                if name.lower().endswith(".csv") and not name.startswith("__MACOSX/")
            ]
            if len(members) != 1:
                raise ParseError(
                    f"Expected exactly one CSV in {source}, found {len(members)}: {members}"
                )
            return archive.read(members[0])
    except zipfile.BadZipFile as exc:
        raise ParseError(f"Corrupt archive {source}: {exc}") from exc


def fetch_raw_data(source=None, timeout=None):
    """
    Loads the policy dataset from a compressed CSV.

    Parameters:
    -----------
    source : str or Path, optional
        URL or local path of a zip archive holding one CSV (a bare CSV also works).
        Defaults to config.DATA_SOURCE.
    timeout : float, optional
        Seconds to wait on a remote source (default: config.DOWNLOAD_TIMEOUT)

    Returns:
    --------
    pd.DataFrame with columns as present in the file. Territory, gender and
    birthdate are kept as raw strings.
    """
    if source is None:
        source = config.DATA_SOURCE
    if timeout is None:
        timeout = config.DOWNLOAD_TIMEOUT

    print(f"Downloading dataset from {source}...")
    payload = _read_source(source, timeout)
    csv_bytes = _extract_csv(payload, source)

    try:
        df = pd.read_csv(
            io.BytesIO(csv_bytes),
            sep=",",
            dtype={col: str for col in config.STRING_COLUMNS},
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise ParseError(f"Could not parse CSV from {source}: {exc}") from exc

    # A file with the wrong delimiter parses into a single wide column,
    # so missing columns are the signal that the format is off
    missing = [col for col in config.REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ParseError(
            f"CSV from {source} is missing required columns {missing}; "
            f"found {list(df.columns)}"
        )

    print(f"Loaded {len(df):,} policies with {df.shape[1]} columns")
    return df


def derive_age(birthdates, processing_date=None):
    """
    Converts MM/DD/YYYY birthdates into whole years of age at processing_date.

    A birthday not yet reached in the processing year does not count, so the
    result is the floor of the exact elapsed years.
    """
    if processing_date is None:
        processing_date = date.today()
    as_of = pd.Timestamp(processing_date).normalize()

    parsed = pd.to_datetime(birthdates, format=config.BIRTHDATE_FORMAT, errors="coerce")

    malformed = parsed.isna()
    if malformed.any():
        row = malformed.idxmax()
        raise MalformedDate(
            f"Row {row}: birthdate {birthdates.loc[row]!r} does not match MM/DD/YYYY "
            f"({int(malformed.sum())} malformed value(s) in total)"
        )

    future = parsed > as_of
    if future.any():
        row = future.idxmax()
        raise MalformedDate(
            f"Row {row}: birthdate {birthdates.loc[row]!r} is after the processing date "
            f"{as_of.date()}"
        )

    birthday_pending = (parsed.dt.month > as_of.month) | (
        (parsed.dt.month == as_of.month) & (parsed.dt.day > as_of.day)
    )
    age = as_of.year - parsed.dt.year - birthday_pending.astype(int)

    return age.astype(np.int64).rename("age")


def clean_data(df, processing_date=None):
    """
    Prepares the raw policy data for modeling.

    Drops the premium-adjacent columns, recasts the categorical codes,
    replaces birthdate with an integer age and moves the response first.
    The input frame is left untouched.
    """
    missing = [col for col in config.REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise ConfigError(f"Cannot clean data without columns {missing}")

    df = df.drop(columns=config.DROPPED_COLUMNS, errors="ignore").copy()

    for col in config.CATEGORICAL_FEATURES:
        df[col] = df[col].astype("category")

    df["age"] = derive_age(df["birthdate"], processing_date)
    df = df.drop(columns=["birthdate"])

    # Response first so printed frames read naturally
    ordered = [config.RESPONSE] + [col for col in df.columns if col != config.RESPONSE]
    return df[ordered]


def top_categories(series, keep):
    """
    Returns the `keep` most frequent labels of a series.

    Ranking is by count descending, ties broken by the label's string form so
    the retained set never depends on row order.
    """
    counts = series.value_counts(dropna=True)
    # Categorical columns report unused levels with a zero count
    counts = counts[counts > 0]

    if isinstance(keep, bool) or not isinstance(keep, (int, np.integer)):
        raise ConfigError(f"Retention count must be an integer, got {keep!r}")
    if keep <= 0 or keep > len(counts):
        raise ConfigError(
            f"Retention count for {series.name!r} must be between 1 and "
            f"{len(counts)} (distinct categories present), got {keep}"
        )

    ranked = sorted(counts.items(), key=lambda item: (-item[1], str(item[0])))
    return [label for label, _ in ranked[:keep]]


def reduce_categories(df, column, keep):
    """
    Keeps only the rows whose `column` value is among its `keep` most frequent categories.

    Parameters:
    -----------
    df : pd.DataFrame
        Cleaned policy data
    column : str
        Categorical column to reduce (e.g., 'territory')
    keep : int
        Number of categories to retain

    Returns:
    --------
    pd.DataFrame: filtered copy; for categorical columns the level set is
    narrowed to the retained categories.
    """
    if column not in df.columns:
        raise ConfigError(f"Unknown column {column!r}; available: {list(df.columns)}")

    retained = top_categories(df[column], keep)

    reduced = df[df[column].isin(retained)].copy()
    if isinstance(reduced[column].dtype, pd.CategoricalDtype):
        reduced[column] = reduced[column].cat.remove_unused_categories()

    print(
        f"Keeping top {keep} {column} levels {retained}: "
        f"{len(reduced):,} of {len(df):,} rows retained"
    )
    return reduced
