"""
Configuration file for Insurance Premium Regression Analysis.

This module centralizes all hardcoded parameters and constants used throughout
the project to improve maintainability and configurability.
"""

import os
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parent.parent

# ============================================================================
# DATA SOURCES
# ============================================================================

# URL or local path of the archive holding the policy CSV
DATA_SOURCE = os.environ.get(
    "PREMIUM_DATA_SOURCE", str(ROOT_DIR / "data" / "premium_data.zip")
)

# Seconds to wait on the remote archive before giving up
DOWNLOAD_TIMEOUT = 60

# ============================================================================
# SCHEMA
# ============================================================================

RESPONSE = "current_premium"

REQUIRED_COLUMNS = ["territory", "gender", "birthdate", "ypc", "current_premium", "cgr_factor"]

# Read as raw strings so codes like "007" survive parsing
STRING_COLUMNS = ["territory", "gender", "birthdate"]

# Premium-adjacent columns that leak the response - dropped before modeling
DROPPED_COLUMNS = [
    "indicated_premium",
    "selected_premium",
    "underlying_premium",
    "underlying_total_premium",
    "fixed_expenses",
    "cgr",
]

BIRTHDATE_FORMAT = "%m/%d/%Y"

CATEGORICAL_FEATURES = ["territory", "gender"]
NUMERICAL_FEATURES = ["age", "ypc", "cgr_factor"]

# ============================================================================
# CATEGORY REDUCTION
# ============================================================================

# Territory has many sparse codes; keep only the most populated ones
TOP_TERRITORIES_COUNT = 5

# ============================================================================
# MODEL SEQUENCE
# ============================================================================

LOG_RESPONSE = "log_" + RESPONSE

# Numeric predictors mean-centered before the final refit
CENTERED_FEATURES = ["age", "ypc", "cgr_factor"]

_MAIN_EFFECTS = "territory + gender + age + ypc + cgr_factor"
_INTERACTIONS = "age:ypc + territory:cgr_factor"

# Each step is fitted on the dataset produced by its "data" stage:
# "reduced" (after category reduction), "log" (log response added),
# "centered" (log response plus centered predictors)
MODEL_SEQUENCE = [
    {
        "name": "main_effects",
        "data": "reduced",
        "formula": f"{RESPONSE} ~ {_MAIN_EFFECTS}",
    },
    {
        "name": "interactions",
        "data": "reduced",
        "formula": f"{RESPONSE} ~ {_MAIN_EFFECTS} + {_INTERACTIONS}",
    },
    {
        "name": "log_response",
        "data": "log",
        "formula": f"{LOG_RESPONSE} ~ {_MAIN_EFFECTS} + {_INTERACTIONS}",
    },
    {
        "name": "centered",
        "data": "centered",
        "formula": f"{LOG_RESPONSE} ~ {_MAIN_EFFECTS} + {_INTERACTIONS}",
    },
]

# ============================================================================
# VALIDATION
# ============================================================================

TEST_SIZE = 0.2
RANDOM_STATE = 42

# Category levels with fewer rows than this stay entirely in the training split
HOLDOUT_MIN_LEVEL_ROWS = 10

# Observations with Cook's distance above FACTOR / n are flagged as influential
COOKS_DISTANCE_FACTOR = 4.0

# Significance level used when printing coefficient tables
ALPHA = 0.05

# ============================================================================
# VISUALIZATION PARAMETERS
# ============================================================================

PLOTS_DIR = ROOT_DIR / "plots"

PLOT_FIGSIZE_WIDTH = 10
PLOT_FIGSIZE_HEIGHT = 6

# Panels per row in the combined predictor grid
GRID_COLUMNS = 3

# Fraction of points used by each LOWESS local fit
LOWESS_FRAC = 0.6
