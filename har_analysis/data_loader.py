"""
Data Loader Module
==================

Handles CSV ingestion, configuration loading and schema checks for the
training / evaluation table pair.

Functions:
    - load_config: Load YAML configuration file
    - load_data: Load a single CSV table
    - validate_schema: Check that training and evaluation tables line up
    - load_datasets: Load both tables and validate their schemas
    - print_data_summary: Console summary of a table
"""

import os
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Sequence, Tuple

import pandas as pd
import numpy as np
import yaml

logger = logging.getLogger(__name__)

# Tokens read as missing. Empty strings and "#DIV/0!" are left as text so
# the cleaner can count them separately.
DEFAULT_NA_VALUES = ("NA",)


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Dictionary containing configuration parameters

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f) or {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def load_data(
    file_path: str,
    na_values: Sequence[str] = DEFAULT_NA_VALUES,
    expected_columns: Optional[int] = None
) -> pd.DataFrame:
    """
    Load a delimited table with a header row.

    Only ``na_values`` are parsed as missing; every other token (including
    the empty string) is kept as-is.

    Args:
        file_path: Path to the CSV file
        na_values: Tokens to treat as missing values
        expected_columns: Expected number of columns (optional validation)

    Returns:
        DataFrame containing the loaded data

    Raises:
        FileNotFoundError: If data file doesn't exist
        pandas.errors.ParserError: If rows have inconsistent column counts
        ValueError: If the column count doesn't match ``expected_columns``
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    df = pd.read_csv(
        file_path,
        na_values=list(na_values),
        keep_default_na=False,
        low_memory=False
    )
    logger.info(f"Loaded data from {file_path}: {df.shape[0]} rows × {df.shape[1]} columns")

    if expected_columns is not None and df.shape[1] != expected_columns:
        raise ValueError(
            f"Expected {expected_columns} columns, but found {df.shape[1]}. "
            f"Columns: {list(df.columns)}"
        )

    return df


def validate_schema(
    train_df: pd.DataFrame,
    eval_df: pd.DataFrame,
    label_column: str = "classe",
    id_column: str = "problem_id",
    strict: bool = True
) -> Tuple[bool, Dict[str, Any]]:
    """
    Check that the evaluation table mirrors the training table.

    Both tables must share the same feature columns in the same order;
    the last column is the label in the training table and the row
    identifier in the evaluation table.

    Args:
        train_df: Labelled training table
        eval_df: Unlabelled evaluation table
        label_column: Name of the label column
        id_column: Name of the evaluation row identifier
        strict: If True, raise on any mismatch

    Returns:
        Tuple of (is_valid, validation_report)
    """
    report = {
        "train_columns": int(train_df.shape[1]),
        "eval_columns": int(eval_df.shape[1]),
        "issues": []
    }

    if label_column not in train_df.columns:
        report["issues"].append(f"Label column '{label_column}' missing from training data")
    elif train_df.columns[-1] != label_column:
        report["issues"].append(f"Label column '{label_column}' is not the last training column")

    if id_column not in eval_df.columns:
        report["issues"].append(f"Identifier column '{id_column}' missing from evaluation data")
    elif eval_df.columns[-1] != id_column:
        report["issues"].append(f"Identifier column '{id_column}' is not the last evaluation column")

    train_features = [c for c in train_df.columns if c != label_column]
    eval_features = [c for c in eval_df.columns if c != id_column]

    if train_features != eval_features:
        only_train = sorted(set(train_features) - set(eval_features))
        only_eval = sorted(set(eval_features) - set(train_features))
        issue = "Feature columns differ between training and evaluation data"
        if not only_train and not only_eval:
            issue += " (same names, different order)"
        report["issues"].append(issue)
        report["only_in_train"] = only_train
        report["only_in_eval"] = only_eval

    is_valid = len(report["issues"]) == 0
    report["is_valid"] = is_valid

    for issue in report["issues"]:
        logger.warning(issue)

    if strict and not is_valid:
        raise ValueError(f"Schema validation failed: {report['issues']}")

    return is_valid, report


def load_datasets(
    train_path: str,
    eval_path: str,
    label_column: str = "classe",
    id_column: str = "problem_id",
    na_values: Sequence[str] = DEFAULT_NA_VALUES
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Load the training and evaluation tables and validate their schemas.

    Args:
        train_path: Path to the labelled training CSV
        eval_path: Path to the unlabelled evaluation CSV
        label_column: Name of the label column
        id_column: Name of the evaluation row identifier
        na_values: Tokens to treat as missing values

    Returns:
        Tuple of (train_df, eval_df)
    """
    train_df = load_data(train_path, na_values=na_values)
    eval_df = load_data(eval_path, na_values=na_values)

    validate_schema(train_df, eval_df, label_column, id_column, strict=True)

    return train_df, eval_df


def print_data_summary(
    df: pd.DataFrame,
    name: str = "DATASET",
    label_column: Optional[str] = "classe"
) -> None:
    """
    Print a formatted summary of a table to console.

    Args:
        df: DataFrame to summarize
        name: Heading for the summary
        label_column: Label column to tabulate, if present
    """
    print("\n" + "=" * 60)
    print(f"{name.upper()} SUMMARY")
    print("=" * 60)
    print(f"Shape: {df.shape[0]} rows × {df.shape[1]} columns")
    print(f"Memory Usage: {df.memory_usage(deep=True).sum() / 1024 / 1024:.2f} MB")

    dtype_counts = df.dtypes.astype(str).value_counts()
    print("\nColumn types:")
    print("-" * 40)
    for dtype, count in dtype_counts.items():
        print(f"  {dtype}: {count}")

    missing_share = df.isna().mean()
    print("\nMissing values:")
    print("-" * 40)
    print(f"  Columns without missing values: {int((missing_share == 0).sum())}")
    print(f"  Columns with missing values: {int((missing_share > 0).sum())}")
    if (missing_share > 0).any():
        print(f"  Highest missing share: {missing_share.max() * 100:.1f}%")

    if label_column and label_column in df.columns:
        print(f"\nLabel distribution ({label_column}):")
        print("-" * 40)
        counts = df[label_column].value_counts().sort_index()
        for level, count in counts.items():
            print(f"  {level}: {count} ({count / len(df) * 100:.1f}%)")

    print("=" * 60 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    try:
        config = load_config()
        print("Configuration loaded successfully!")
        print(f"Split fraction: {config['split']['train_fraction']}")
    except FileNotFoundError as e:
        print(f"Config not found: {e}")

    data_path = "data/raw/pml-training.csv"
    if os.path.exists(data_path):
        df = load_data(data_path)
        print_data_summary(df, name="training")
        print(f"Numeric columns: {len(df.select_dtypes(include=[np.number]).columns)}")
    else:
        print(f"No data file found at {data_path}")
        print("Place your CSV file there to test the data loader.")
