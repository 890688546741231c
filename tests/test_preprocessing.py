"""
Test Suite for Preprocessing Module
=====================================

Tests for the ActivityDataCleaner class, near-zero-variance diagnostics
and the stratified split.
"""

import pytest
import numpy as np
import pandas as pd
import tempfile
import os

from har_analysis.preprocessing import (
    ActivityDataCleaner,
    near_zero_variance,
    stratified_split,
    label_proportions,
    preprocess_pipeline,
    LABEL_LEVELS
)
from conftest import SENSOR_COLUMNS, METADATA_COLUMNS


class TestNearZeroVariance:
    """Tests for near_zero_variance."""

    def test_constant_column_is_zero_var(self):
        df = pd.DataFrame({'const': [1.0] * 100, 'varied': np.arange(100, dtype=float)})
        report = near_zero_variance(df)

        assert report.loc['const', 'zero_var'] == True
        assert report.loc['const', 'nzv'] == True
        assert report.loc['varied', 'nzv'] == False

    def test_dominant_value_with_few_uniques(self):
        values = [0.0] * 980 + [1.0] * 20
        report = near_zero_variance(pd.DataFrame({'spiky': values}))

        assert report.loc['spiky', 'freq_ratio'] == pytest.approx(49.0)
        assert report.loc['spiky', 'percent_unique'] == pytest.approx(0.2)
        assert report.loc['spiky', 'nzv'] == True

    def test_balanced_binary_is_not_flagged(self):
        values = [0.0, 1.0] * 50
        report = near_zero_variance(pd.DataFrame({'binary': values}))

        assert report.loc['binary', 'freq_ratio'] == pytest.approx(1.0)
        assert report.loc['binary', 'nzv'] == False

    def test_continuous_sensor_columns(self, raw_train):
        report = near_zero_variance(raw_train[SENSOR_COLUMNS])
        assert not report['nzv'].any()


class TestActivityDataCleaner:
    """Tests for ActivityDataCleaner class."""

    @pytest.fixture
    def cleaner(self):
        """Create a cleaner instance."""
        return ActivityDataCleaner()

    def test_init(self, cleaner):
        """Test cleaner initialization."""
        assert cleaner.label_column == 'classe'
        assert cleaner.id_column == 'problem_id'
        assert cleaner.metadata_columns == 7
        assert cleaner.label_levels == LABEL_LEVELS
        assert cleaner._is_fitted == False

    def test_transform_before_fit(self, cleaner, raw_train):
        """Test that transform raises error before fit."""
        with pytest.raises(ValueError, match="must be fitted"):
            cleaner.transform(raw_train)

    def test_fit_requires_label(self, cleaner, raw_eval):
        with pytest.raises(ValueError, match="Label column"):
            cleaner.fit(raw_eval)

    def test_drops_expected_columns(self, cleaner, raw_train):
        cleaner.fit(raw_train)
        dropped = cleaner.get_dropped_columns()

        assert dropped['missing'] == ['max_roll_belt']
        assert dropped['empty'] == ['kurtosis_roll_belt']
        assert dropped['metadata'] == METADATA_COLUMNS
        assert dropped['near_zero_variance'] == []
        assert cleaner.feature_columns == SENSOR_COLUMNS

    def test_cleaned_columns_within_thresholds(self, cleaner, raw_train):
        cleaned = cleaner.fit_transform(raw_train)
        features = cleaned.drop(columns=['classe'])

        assert (features.isna().mean() <= cleaner.max_missing_fraction).all()
        assert list(cleaned.columns) == SENSOR_COLUMNS + ['classe']
        assert all(pd.api.types.is_numeric_dtype(features[c]) for c in features.columns)

    def test_label_is_ordered_categorical(self, cleaner, raw_train):
        cleaned = cleaner.fit_transform(raw_train)
        label = cleaned['classe']

        assert isinstance(label.dtype, pd.CategoricalDtype)
        assert label.cat.ordered
        assert list(label.cat.categories) == LABEL_LEVELS

    def test_unknown_label_raises(self, cleaner, raw_train):
        raw_train.loc[0, 'classe'] = 'F'
        with pytest.raises(ValueError, match="Unknown label"):
            cleaner.fit_transform(raw_train)

    def test_eval_table_aligned(self, cleaner, raw_train, raw_eval):
        train_clean = cleaner.fit_transform(raw_train)
        eval_clean = cleaner.transform(raw_eval)

        assert list(train_clean.columns[:-1]) == list(eval_clean.columns[:-1])
        assert train_clean.columns[-1] == 'classe'
        assert eval_clean.columns[-1] == 'problem_id'
        assert len(eval_clean) == len(raw_eval)

    def test_masks_come_from_training_table(self, cleaner, raw_train, raw_eval):
        """An evaluation column that is fully populated is still dropped."""
        raw_eval['max_roll_belt'] = 1.0
        eval_clean = cleaner.fit(raw_train).transform(raw_eval)

        assert 'max_roll_belt' not in eval_clean.columns

    def test_missing_feature_in_eval_raises(self, cleaner, raw_train, raw_eval):
        cleaner.fit(raw_train)
        with pytest.raises(ValueError, match="missing from table"):
            cleaner.transform(raw_eval.drop(columns=['roll_belt']))

    def test_threshold_is_exclusive(self, raw_train):
        """A column exactly at the threshold is kept."""
        raw_train['half_missing'] = np.where(np.arange(len(raw_train)) % 2 == 0, np.nan, 1.5)
        cleaner = ActivityDataCleaner(max_missing_fraction=0.5)
        cleaner.fit(raw_train)

        assert 'half_missing' in cleaner.feature_columns
        assert 'max_roll_belt' in cleaner.get_dropped_columns()['missing']

    def test_near_zero_variance_reported_not_dropped(self, raw_train):
        raw_train['mostly_zero'] = 0.0
        raw_train.loc[:4, 'mostly_zero'] = 1.0
        cleaner = ActivityDataCleaner()
        cleaner.fit(raw_train)

        assert cleaner.nzv_report_.loc['mostly_zero', 'nzv'] == True
        assert 'mostly_zero' in cleaner.feature_columns

    def test_near_zero_variance_enforced(self, raw_train):
        raw_train['mostly_zero'] = 0.0
        raw_train.loc[:4, 'mostly_zero'] = 1.0
        cleaner = ActivityDataCleaner(drop_near_zero_variance=True)
        cleaner.fit(raw_train)

        assert 'mostly_zero' not in cleaner.feature_columns
        assert cleaner.get_dropped_columns()['near_zero_variance'] == ['mostly_zero']

    def test_save_load(self, cleaner, raw_train, raw_eval):
        """Test saving and loading the cleaner."""
        cleaner.fit(raw_train)

        with tempfile.NamedTemporaryFile(suffix='.joblib', delete=False) as f:
            temp_path = f.name

        try:
            cleaner.save(temp_path)
            loaded = ActivityDataCleaner.load(temp_path)

            assert loaded._is_fitted == True
            assert loaded.feature_columns == cleaner.feature_columns
            pd.testing.assert_frame_equal(loaded.transform(raw_eval), cleaner.transform(raw_eval))
        finally:
            os.unlink(temp_path)


class TestStratifiedSplit:
    """Tests for stratified_split."""

    @pytest.fixture
    def cleaned(self, raw_train):
        return ActivityDataCleaner().fit_transform(raw_train)

    def test_sizes(self, cleaned):
        fit_df, validation_df = stratified_split(cleaned, train_fraction=0.7, seed=50)

        assert len(fit_df) + len(validation_df) == len(cleaned)
        assert len(fit_df) == pytest.approx(0.7 * len(cleaned), abs=5)

    def test_disjoint_and_complete(self, cleaned):
        fit_df, validation_df = stratified_split(cleaned)

        assert set(fit_df.index).isdisjoint(validation_df.index)
        assert set(fit_df.index) | set(validation_df.index) == set(cleaned.index)

    def test_deterministic(self, cleaned):
        first_fit, first_val = stratified_split(cleaned, seed=50)
        second_fit, second_val = stratified_split(cleaned, seed=50)

        assert list(first_fit.index) == list(second_fit.index)
        assert list(first_val.index) == list(second_val.index)

    def test_different_seed_changes_membership(self, cleaned):
        first_fit, _ = stratified_split(cleaned, seed=50)
        other_fit, _ = stratified_split(cleaned, seed=51)

        assert set(first_fit.index) != set(other_fit.index)

    def test_proportions_preserved(self, cleaned):
        fit_df, validation_df = stratified_split(cleaned)
        full = label_proportions(cleaned)

        for subset in (fit_df, validation_df):
            diff = (label_proportions(subset) - full).abs()
            assert diff.max() < 0.02

    def test_invalid_fraction(self, cleaned):
        with pytest.raises(ValueError, match="train_fraction"):
            stratified_split(cleaned, train_fraction=1.0)


class TestPreprocessPipeline:
    """Tests for the preprocess_pipeline function."""

    def test_pipeline_returns_expected_keys(self, raw_train, raw_eval):
        """Test that pipeline returns all expected keys."""
        result = preprocess_pipeline(raw_train, raw_eval)

        expected_keys = [
            'train_clean', 'eval_clean', 'fit', 'validation', 'cleaner',
            'nzv_report', 'dropped_columns', 'proportions', 'label_column'
        ]

        for key in expected_keys:
            assert key in result, f"Missing key: {key}"

    def test_pipeline_uses_config(self, raw_train, raw_eval):
        config = {'split': {'train_fraction': 0.6, 'seed': 3}}
        result = preprocess_pipeline(raw_train, raw_eval, config)

        assert len(result['fit']) == 300
        assert len(result['validation']) == 200
        assert list(result['proportions'].columns) == ['full', 'fit', 'validation']
