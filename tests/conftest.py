import io
import zipfile

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

import config

PROCESSING_DATE = pd.Timestamp("2024-06-30")

TERRITORIES = ["007", "012", "031", "044", "058", "063"]
TERRITORY_WEIGHTS = [0.30, 0.24, 0.18, 0.14, 0.08, 0.06]
TERRITORY_EFFECT = {"007": 0.0, "012": 40.0, "031": -25.0, "044": 60.0, "058": 15.0, "063": -10.0}


def make_raw_policies(n=200, seed=0):
    """Synthetic policy extract shaped like the source CSV."""
    rng = np.random.default_rng(seed)

    territory = rng.choice(TERRITORIES, size=n, p=TERRITORY_WEIGHTS)
    gender = rng.choice(["F", "M"], size=n)
    years = rng.integers(1950, 2001, size=n)
    months = rng.integers(1, 13, size=n)
    days = rng.integers(1, 29, size=n)
    birthdate = [f"{m:02d}/{d:02d}/{y}" for m, d, y in zip(months, days, years)]
    age = 2024 - years
    ypc = rng.integers(0, 15, size=n)
    cgr_factor = rng.uniform(0.5, 2.0, size=n).round(3)

    premium = (
        400
        + np.array([TERRITORY_EFFECT[t] for t in territory])
        + np.where(gender == "M", 35.0, 0.0)
        + 2.5 * age
        - 6.0 * ypc
        + 120.0 * cgr_factor
        + rng.normal(0, 25, size=n)
    ).round(2)

    return pd.DataFrame(
        {
            "territory": territory,
            "gender": gender,
            "birthdate": birthdate,
            "ypc": ypc,
            "current_premium": premium,
            "cgr_factor": cgr_factor,
            "indicated_premium": premium * 1.05,
            "selected_premium": premium * 1.02,
            "underlying_premium": premium * 0.9,
            "underlying_total_premium": premium * 0.95,
            "fixed_expenses": 25.0,
            "cgr": cgr_factor * 10,
        }
    )


def zip_bytes(members):
    """Builds an in-memory zip archive from {name: text}."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, text in members.items():
            archive.writestr(name, text)
    return buffer.getvalue()


@pytest.fixture
def raw_policies():
    return make_raw_policies()


@pytest.fixture
def policy_archive(tmp_path, raw_policies):
    path = tmp_path / "premium_data.zip"
    path.write_bytes(zip_bytes({"premium_data.csv": raw_policies.to_csv(index=False)}))
    return path


@pytest.fixture
def clean_policies(raw_policies):
    import data_preprocessing

    return data_preprocessing.clean_data(raw_policies, PROCESSING_DATE)


@pytest.fixture
def reduced_policies(clean_policies):
    import data_preprocessing

    return data_preprocessing.reduce_categories(clean_policies, "territory", 4)


@pytest.fixture
def five_policies():
    """Smallest end-to-end case: two territories, one gender column, no gaps."""
    return pd.DataFrame(
        {
            "current_premium": [510.0, 545.0, 600.0, 640.0, 700.0],
            "territory": pd.Categorical(["A", "A", "B", "B", "B"]),
            "gender": pd.Categorical(["F", "M", "F", "M", "F"]),
            "ypc": [2.0, 5.0, 1.0, 4.0, 9.0],
        }
    )


@pytest.fixture
def plots_dir(tmp_path, monkeypatch):
    target = tmp_path / "plots"
    monkeypatch.setattr(config, "PLOTS_DIR", target)
    return target
