"""
Data Preprocessing Module - Phase 2
====================================

Handles column cleaning, label casting and the fit / validation split.

Functions:
    - near_zero_variance: Frequency-ratio / unique-share diagnostics
    - ActivityDataCleaner: Training-derived column filter applied to both tables
    - stratified_split: Seeded, label-stratified fit / validation partition
    - label_proportions: Class shares used for the stratification check
"""

import logging
from pathlib import Path
from typing import Dict, Any, Tuple, Optional, List, Sequence

import pandas as pd
import numpy as np
from sklearn.model_selection import train_test_split
import joblib

logger = logging.getLogger(__name__)

LABEL_LEVELS = ["A", "B", "C", "D", "E"]


def near_zero_variance(
    df: pd.DataFrame,
    freq_cut: float = 95 / 5,
    unique_cut: float = 10.0
) -> pd.DataFrame:
    """
    Flag columns whose values are concentrated on a single value.

    A column is near-zero variance when it has a single distinct value, or
    when the most common value is more than ``freq_cut`` times as frequent
    as the second most common AND distinct values make up no more than
    ``unique_cut`` percent of the rows.

    Args:
        df: DataFrame of candidate predictors
        freq_cut: Cutoff for the most-common / second-most-common ratio
        unique_cut: Cutoff for the percentage of distinct values

    Returns:
        DataFrame indexed by column with freq_ratio, percent_unique,
        zero_var and nzv
    """
    n_rows = len(df)
    rows = []

    for col in df.columns:
        counts = df[col].value_counts(dropna=True)

        if len(counts) > 1:
            freq_ratio = counts.iloc[0] / counts.iloc[1]
        else:
            freq_ratio = 0.0

        percent_unique = 100.0 * len(counts) / n_rows if n_rows else 0.0
        zero_var = len(counts) <= 1
        nzv = zero_var or (freq_ratio > freq_cut and percent_unique <= unique_cut)

        rows.append({
            "column": col,
            "freq_ratio": float(freq_ratio),
            "percent_unique": float(percent_unique),
            "zero_var": bool(zero_var),
            "nzv": bool(nzv)
        })

    return pd.DataFrame(
        rows, columns=["column", "freq_ratio", "percent_unique", "zero_var", "nzv"]
    ).set_index("column")


def _empty_string_counts(df: pd.DataFrame) -> pd.Series:
    """Count cells holding an empty (or whitespace-only) string per column."""
    counts = {}
    for col in df.columns:
        series = df[col]
        if pd.api.types.is_numeric_dtype(series):
            counts[col] = 0
        else:
            counts[col] = int(series.astype(str).str.strip().eq("").sum())
    return pd.Series(counts, dtype=int)


class ActivityDataCleaner:
    """
    Column cleaner for the activity tables.

    All decisions are learned from the training table in ``fit`` and then
    applied unchanged to any table passed to ``transform``, so the
    training and evaluation tables stay aligned.
    """

    def __init__(
        self,
        label_column: str = "classe",
        id_column: str = "problem_id",
        max_missing_fraction: float = 0.95,
        max_empty_fraction: float = 0.95,
        metadata_columns: int = 7,
        label_levels: Optional[Sequence[str]] = None,
        drop_near_zero_variance: bool = False,
        freq_cut: float = 95 / 5,
        unique_cut: float = 10.0
    ):
        """
        Initialize the cleaner.

        Args:
            label_column: Name of the label column in the training table
            id_column: Name of the row identifier in the evaluation table
            max_missing_fraction: Drop columns whose missing share exceeds this
            max_empty_fraction: Drop columns whose empty-string share exceeds this
            metadata_columns: Number of leading identifier / timestamp columns to drop
            label_levels: Ordered label levels (default A-E)
            drop_near_zero_variance: Drop near-zero-variance columns instead of
                only reporting them
            freq_cut: Frequency-ratio cutoff for the near-zero-variance check
            unique_cut: Percent-unique cutoff for the near-zero-variance check
        """
        self.label_column = label_column
        self.id_column = id_column
        self.max_missing_fraction = max_missing_fraction
        self.max_empty_fraction = max_empty_fraction
        self.metadata_columns = metadata_columns
        self.label_levels = list(label_levels) if label_levels else list(LABEL_LEVELS)
        self.drop_near_zero_variance = drop_near_zero_variance
        self.freq_cut = freq_cut
        self.unique_cut = unique_cut

        self.missing_fraction_: Optional[pd.Series] = None
        self.empty_fraction_: Optional[pd.Series] = None
        self.dropped_missing_: List[str] = []
        self.dropped_empty_: List[str] = []
        self.dropped_metadata_: List[str] = []
        self.dropped_near_zero_variance_: List[str] = []
        self.nzv_report_: Optional[pd.DataFrame] = None
        self.feature_columns: Optional[List[str]] = None
        self._is_fitted = False

    def fit(self, df: pd.DataFrame) -> 'ActivityDataCleaner':
        """
        Learn which columns to keep from the training table.

        Args:
            df: Raw training table including the label column

        Returns:
            Self for method chaining
        """
        if self.label_column not in df.columns:
            raise ValueError(f"Label column '{self.label_column}' not found in training data")

        n_rows = len(df)
        candidates = [c for c in df.columns if c != self.label_column]

        self.missing_fraction_ = df[candidates].isna().sum() / n_rows
        self.empty_fraction_ = _empty_string_counts(df[candidates]) / n_rows

        missing_mask = self.missing_fraction_ > self.max_missing_fraction
        empty_mask = self.empty_fraction_ > self.max_empty_fraction

        self.dropped_missing_ = missing_mask[missing_mask].index.tolist()
        self.dropped_empty_ = [
            c for c in empty_mask[empty_mask].index if c not in self.dropped_missing_
        ]
        logger.info(
            f"Dropping {len(self.dropped_missing_)} mostly-missing and "
            f"{len(self.dropped_empty_)} mostly-empty columns"
        )

        self.dropped_metadata_ = [
            c for c in df.columns[:self.metadata_columns] if c != self.label_column
        ]
        logger.info(f"Dropping metadata columns: {self.dropped_metadata_}")

        dropped = set(self.dropped_missing_) | set(self.dropped_empty_) | set(self.dropped_metadata_)
        kept = [c for c in candidates if c not in dropped]

        numeric = df[kept].apply(pd.to_numeric, errors="coerce")
        self.nzv_report_ = near_zero_variance(
            numeric, freq_cut=self.freq_cut, unique_cut=self.unique_cut
        )
        flagged = self.nzv_report_.index[self.nzv_report_["nzv"]].tolist()

        if flagged:
            logger.warning(f"Near-zero-variance columns: {flagged}")
        else:
            logger.info("No near-zero-variance columns found")

        if self.drop_near_zero_variance and flagged:
            self.dropped_near_zero_variance_ = flagged
            kept = [c for c in kept if c not in flagged]
            logger.info(f"Dropped {len(flagged)} near-zero-variance columns")
        else:
            self.dropped_near_zero_variance_ = []

        self.feature_columns = kept
        self._is_fitted = True

        logger.info(f"Keeping {len(kept)} predictor columns")
        return self

    def cast_label(self, labels: pd.Series) -> pd.Series:
        """
        Cast labels to an ordered categorical with the fixed level set.

        Raises:
            ValueError: If a label falls outside the level set
        """
        values = labels.astype(str).str.strip().where(labels.notna())
        cast = pd.Series(
            pd.Categorical(values, categories=self.label_levels, ordered=True),
            index=labels.index,
            name=labels.name
        )

        unknown = cast.isna() & labels.notna()
        if unknown.any():
            bad = sorted(labels[unknown].astype(str).unique().tolist())
            raise ValueError(f"Unknown label values {bad}; expected one of {self.label_levels}")

        return cast

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Apply the learned column selection to a table.

        The output holds the kept predictors (as numbers) followed by the
        label (training table) or identifier (evaluation table).

        Args:
            df: Raw training or evaluation table

        Returns:
            Cleaned DataFrame
        """
        if not self._is_fitted:
            raise ValueError("Cleaner must be fitted before transform. Call fit() first.")

        missing = [c for c in self.feature_columns if c not in df.columns]
        if missing:
            raise ValueError(f"Columns missing from table: {missing}")

        cleaned = df[self.feature_columns].apply(pd.to_numeric, errors="coerce")

        if self.label_column in df.columns:
            cleaned[self.label_column] = self.cast_label(df[self.label_column])
        elif self.id_column in df.columns:
            cleaned[self.id_column] = df[self.id_column].values
        else:
            raise ValueError(
                f"Table has neither label column '{self.label_column}' "
                f"nor identifier column '{self.id_column}'"
            )

        return cleaned

    def fit_transform(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Fit and transform in one step.

        Args:
            df: Raw training table

        Returns:
            Cleaned training DataFrame
        """
        self.fit(df)
        return self.transform(df)

    def get_dropped_columns(self) -> Dict[str, List[str]]:
        """Columns removed by each rule."""
        if not self._is_fitted:
            raise ValueError("Cleaner must be fitted first.")

        return {
            "missing": list(self.dropped_missing_),
            "empty": list(self.dropped_empty_),
            "metadata": list(self.dropped_metadata_),
            "near_zero_variance": list(self.dropped_near_zero_variance_)
        }

    def save(self, filepath: str) -> None:
        """
        Save the cleaner state to disk.

        Args:
            filepath: Path to save the cleaner
        """
        state = {
            'params': {
                'label_column': self.label_column,
                'id_column': self.id_column,
                'max_missing_fraction': self.max_missing_fraction,
                'max_empty_fraction': self.max_empty_fraction,
                'metadata_columns': self.metadata_columns,
                'label_levels': self.label_levels,
                'drop_near_zero_variance': self.drop_near_zero_variance,
                'freq_cut': self.freq_cut,
                'unique_cut': self.unique_cut
            },
            'missing_fraction_': self.missing_fraction_,
            'empty_fraction_': self.empty_fraction_,
            'dropped_missing_': self.dropped_missing_,
            'dropped_empty_': self.dropped_empty_,
            'dropped_metadata_': self.dropped_metadata_,
            'dropped_near_zero_variance_': self.dropped_near_zero_variance_,
            'nzv_report_': self.nzv_report_,
            'feature_columns': self.feature_columns,
            '_is_fitted': self._is_fitted
        }
        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, filepath)
        logger.info(f"Cleaner saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'ActivityDataCleaner':
        """
        Load a cleaner from disk.

        Args:
            filepath: Path to the saved cleaner

        Returns:
            Loaded ActivityDataCleaner instance
        """
        state = joblib.load(filepath)

        cleaner = cls(**state['params'])
        for key, value in state.items():
            if key != 'params':
                setattr(cleaner, key, value)

        logger.info(f"Cleaner loaded from {filepath}")
        return cleaner


def label_proportions(df: pd.DataFrame, label_column: str = "classe") -> pd.Series:
    """Share of each label level in ``df``, sorted by level."""
    return df[label_column].value_counts(normalize=True, sort=False).sort_index()


def stratified_split(
    df: pd.DataFrame,
    label_column: str = "classe",
    train_fraction: float = 0.7,
    seed: int = 50
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Partition a cleaned table into fit and validation subsets.

    Rows keep their original index labels, so membership can be compared
    across runs. Both subsets come back in the shuffled order produced by
    the seeded split.

    Args:
        df: Cleaned training table
        label_column: Column to stratify on
        train_fraction: Share of rows in the fit subset
        seed: Random seed for reproducibility

    Returns:
        Tuple of (fit_df, validation_df)
    """
    if not 0 < train_fraction < 1:
        raise ValueError(f"train_fraction must be in (0, 1), got {train_fraction}")

    fit_df, validation_df = train_test_split(
        df,
        train_size=train_fraction,
        stratify=df[label_column],
        random_state=seed
    )

    logger.info(
        f"Stratified split: {len(fit_df)} fit rows, {len(validation_df)} validation rows "
        f"(seed={seed})"
    )

    return fit_df, validation_df


def split_features_labels(
    df: pd.DataFrame,
    label_column: str = "classe"
) -> Tuple[pd.DataFrame, pd.Series]:
    """Separate predictors from the label."""
    return df.drop(columns=[label_column]), df[label_column]


def preprocess_pipeline(
    train_df: pd.DataFrame,
    eval_df: pd.DataFrame,
    config: Optional[Dict[str, Any]] = None,
    save_cleaner: Optional[str] = None
) -> Dict[str, Any]:
    """
    Clean both tables and split the training table.

    Args:
        train_df: Raw training table
        eval_df: Raw evaluation table
        config: Configuration dictionary
        save_cleaner: Path to save the fitted cleaner

    Returns:
        Dictionary containing:
            - train_clean, eval_clean: Cleaned tables
            - fit, validation: Split training subsets
            - cleaner: Fitted ActivityDataCleaner
            - nzv_report: Near-zero-variance diagnostics
            - dropped_columns: Columns removed by each rule
            - proportions: Label shares for full / fit / validation
    """
    config = config or {}
    data_config = config.get('data', {})
    clean_config = config.get('cleaning', {})
    split_config = config.get('split', {})

    label_column = data_config.get('label_column', 'classe')

    logger.info("=" * 60)
    logger.info("STARTING DATA PREPROCESSING (Phase 2)")
    logger.info("=" * 60)

    cleaner = ActivityDataCleaner(
        label_column=label_column,
        id_column=data_config.get('id_column', 'problem_id'),
        max_missing_fraction=clean_config.get('max_missing_fraction', 0.95),
        max_empty_fraction=clean_config.get('max_empty_fraction', 0.95),
        metadata_columns=clean_config.get('metadata_columns', 7),
        label_levels=data_config.get('label_levels', LABEL_LEVELS),
        drop_near_zero_variance=clean_config.get('drop_near_zero_variance', False),
        freq_cut=clean_config.get('freq_cut', 95 / 5),
        unique_cut=clean_config.get('unique_cut', 10.0)
    )

    train_clean = cleaner.fit_transform(train_df)
    eval_clean = cleaner.transform(eval_df)

    fit_df, validation_df = stratified_split(
        train_clean,
        label_column=label_column,
        train_fraction=split_config.get('train_fraction', 0.7),
        seed=split_config.get('seed', 50)
    )

    if save_cleaner:
        cleaner.save(save_cleaner)

    proportions = pd.DataFrame({
        'full': label_proportions(train_clean, label_column),
        'fit': label_proportions(fit_df, label_column),
        'validation': label_proportions(validation_df, label_column)
    })

    result = {
        'train_clean': train_clean,
        'eval_clean': eval_clean,
        'fit': fit_df,
        'validation': validation_df,
        'cleaner': cleaner,
        'nzv_report': cleaner.nzv_report_,
        'dropped_columns': cleaner.get_dropped_columns(),
        'proportions': proportions,
        'label_column': label_column
    }

    logger.info("=" * 60)
    logger.info("PREPROCESSING COMPLETE")
    logger.info(f"  Cleaned training table: {train_clean.shape}")
    logger.info(f"  Cleaned evaluation table: {eval_clean.shape}")
    logger.info(f"  Fit rows: {len(fit_df)}")
    logger.info(f"  Validation rows: {len(validation_df)}")
    logger.info("=" * 60)

    return result


def print_preprocessing_summary(result: Dict[str, Any]) -> None:
    """
    Print a summary of the preprocessing results.

    Args:
        result: Dictionary from preprocess_pipeline
    """
    dropped = result['dropped_columns']
    nzv = result['nzv_report']

    print("\n" + "=" * 50)
    print("PREPROCESSING SUMMARY")
    print("=" * 50)
    print(f"Dropped (mostly missing): {len(dropped['missing'])}")
    print(f"Dropped (mostly empty): {len(dropped['empty'])}")
    print(f"Dropped (metadata): {', '.join(dropped['metadata'])}")
    print(f"Near-zero-variance flagged: {int(nzv['nzv'].sum())}")
    print(f"Near-zero-variance dropped: {len(dropped['near_zero_variance'])}")
    print(f"\nCleaned training table: {result['train_clean'].shape[0]} rows × "
          f"{result['train_clean'].shape[1]} columns")
    print(f"Cleaned evaluation table: {result['eval_clean'].shape[0]} rows × "
          f"{result['eval_clean'].shape[1]} columns")
    print(f"Fit subset: {len(result['fit'])} rows")
    print(f"Validation subset: {len(result['validation'])} rows")

    print("\nLabel proportions:")
    print(result['proportions'].round(4).to_string())
    print("=" * 50 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    np.random.seed(42)
    n_samples = 500

    sample_df = pd.DataFrame({
        'row': np.arange(n_samples),
        'user_name': np.random.choice(['adelmo', 'carlitos', 'pedro'], n_samples),
        'roll_belt': np.random.randn(n_samples),
        'pitch_belt': np.random.randn(n_samples),
        'kurtosis_roll_belt': [''] * (n_samples - 5) + ['0.1'] * 5,
        'max_roll_belt': [np.nan] * (n_samples - 5) + [1.0] * 5,
        'classe': np.random.choice(LABEL_LEVELS, n_samples)
    })

    cleaner = ActivityDataCleaner(metadata_columns=2)
    cleaned = cleaner.fit_transform(sample_df)
    print(cleaned.head())
    print(cleaner.get_dropped_columns())

    fit_df, validation_df = stratified_split(cleaned)
    print(pd.DataFrame({
        'full': label_proportions(cleaned),
        'fit': label_proportions(fit_df),
        'validation': label_proportions(validation_df)
    }))
