"""
Shared fixtures: small synthetic tables laid out like the activity data.

Raw training table: 7 metadata columns, informative sensor columns, a
mostly-missing column, a mostly-empty text column, then ``classe``.
The evaluation table repeats the layout with ``problem_id`` last.
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

LEVELS = ["A", "B", "C", "D", "E"]
SENSOR_COLUMNS = ["roll_belt", "pitch_belt", "yaw_belt", "gyros_arm_x", "accel_dumbbell_y", "magnet_forearm_z"]
METADATA_COLUMNS = ["X", "user_name", "raw_timestamp_part_1", "raw_timestamp_part_2",
                    "cvtd_timestamp", "new_window", "num_window"]


def make_raw_table(n_rows: int, seed: int, labelled: bool = True) -> pd.DataFrame:
    rng = np.random.RandomState(seed)
    labels = rng.choice(LEVELS, n_rows)
    codes = pd.Series(labels).map({level: i for i, level in enumerate(LEVELS)}).values

    data = {
        "X": np.arange(1, n_rows + 1),
        "user_name": rng.choice(["adelmo", "carlitos", "charles", "eurico", "jeremy", "pedro"], n_rows),
        "raw_timestamp_part_1": rng.randint(1322489605, 1323095081, n_rows),
        "raw_timestamp_part_2": rng.randint(0, 999999, n_rows),
        "cvtd_timestamp": ["05/12/2011 11:23"] * n_rows,
        "new_window": np.where(rng.rand(n_rows) < 0.02, "yes", "no"),
        "num_window": rng.randint(1, 864, n_rows),
    }

    for i, col in enumerate(SENSOR_COLUMNS):
        direction = 1 if i % 2 == 0 else -1
        data[col] = direction * 3.0 * codes + rng.randn(n_rows) + i

    n_present = max(1, n_rows // 50)

    max_roll = np.full(n_rows, np.nan)
    max_roll[:n_present] = rng.randn(n_present)
    data["max_roll_belt"] = max_roll

    kurtosis = np.array([""] * n_rows, dtype=object)
    kurtosis[:n_present] = "#DIV/0!"
    data["kurtosis_roll_belt"] = kurtosis

    df = pd.DataFrame(data)
    if labelled:
        df["classe"] = labels
    else:
        df["max_roll_belt"] = np.nan
        df["problem_id"] = np.arange(1, n_rows + 1)

    return df


@pytest.fixture
def raw_train():
    """Raw labelled table (500 rows)."""
    return make_raw_table(500, seed=7)


@pytest.fixture
def raw_eval():
    """Raw evaluation table (20 rows)."""
    return make_raw_table(20, seed=11, labelled=False)


@pytest.fixture
def small_config():
    """Configuration with tiny grids so models train quickly."""
    return {
        'models': {
            'enabled': ['random_forest', 'gradient_boosting', 'linear_svm'],
            'cv_folds': 3,
            'pca_variance': 0.99,
            'random_state': 50,
            'random_forest': {'params': {'n_estimators': 20}, 'grid': {'max_features': [0.5, 1.0]}},
            'gradient_boosting': {'params': {'n_estimators': 10}, 'grid': {'max_depth': [1, 2]}},
            'linear_svm': {'grid': {'C': [0.1, 1.0]}}
        }
    }


def make_reference_table(n_rows: int, seed: int, labelled: bool = True) -> pd.DataFrame:
    """
    Table in the full activity-data layout: an unnamed row-number column
    and six more metadata columns, 67 summary columns that are almost all
    NA, 33 summary columns that are almost all empty or ``#DIV/0!``,
    52 sensor readings and the label (160 columns).
    """
    rng = np.random.RandomState(seed)
    labels = rng.choice(LEVELS, n_rows)
    codes = pd.Series(labels).map({level: i for i, level in enumerate(LEVELS)}).values
    n_present = max(1, n_rows // 50)

    metadata = make_raw_table(n_rows, seed, labelled=True)[METADATA_COLUMNS].rename(columns={"X": ""})

    columns = {}
    for i in range(52):
        direction = 1 if i % 2 == 0 else -1
        columns[f"sensor_{i:02d}"] = direction * 2.0 * codes * (i % 4 != 3) + rng.randn(n_rows) + i

    for i in range(67):
        values = np.full(n_rows, np.nan)
        if labelled:
            values[:n_present] = rng.randn(n_present)
        columns[f"summary_na_{i:02d}"] = values

    for i in range(33):
        if labelled:
            values = np.array([""] * n_rows, dtype=object)
            values[:n_present] = "#DIV/0!"
            values[n_present:2 * n_present] = [f"{v:.4f}" for v in rng.randn(n_present)]
        else:
            values = np.full(n_rows, np.nan)
        columns[f"summary_text_{i:02d}"] = values

    # Summary columns sit between the sensor readings, as in the recorded files
    order = list(columns)
    np.random.RandomState(0).shuffle(order)

    df = pd.concat([metadata, pd.DataFrame(columns)[order]], axis=1)
    if labelled:
        df["classe"] = labels
    else:
        df["problem_id"] = np.arange(1, n_rows + 1)

    return df


@pytest.fixture
def reference_csvs(tmp_path):
    """Training (400 rows) and evaluation (20 rows) CSVs in the full layout."""
    train_path = tmp_path / "pml-training.csv"
    eval_path = tmp_path / "pml-testing.csv"
    make_reference_table(400, seed=3).to_csv(train_path, index=False, na_rep="NA")
    make_reference_table(20, seed=5, labelled=False).to_csv(eval_path, index=False, na_rep="NA")
    return str(train_path), str(eval_path)
