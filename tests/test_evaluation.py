"""
Test Suite for Evaluation Module
=================================
"""

import json

import pytest
import numpy as np
import pandas as pd

from har_analysis.evaluation import (
    calculate_metrics,
    compare_models,
    select_best_model,
    evaluate_models,
    plot_search_curve
)
from har_analysis.model import build_classifier, train_classifiers
from har_analysis.preprocessing import ActivityDataCleaner, stratified_split, split_features_labels


@pytest.fixture
def split_tables(raw_train):
    cleaned = ActivityDataCleaner().fit_transform(raw_train)
    return stratified_split(cleaned)


@pytest.fixture
def trained_models(split_tables, small_config):
    fit_df, _ = split_tables
    small_config['models']['enabled'] = ['random_forest', 'linear_svm']
    X_fit, y_fit = split_features_labels(fit_df)
    return train_classifiers(X_fit, y_fit, small_config)


class TestCalculateMetrics:
    """Tests for calculate_metrics."""

    def test_perfect_predictions(self):
        y = ['A', 'B', 'C', 'D', 'E'] * 4
        metrics = calculate_metrics(y, y, labels=list("ABCDE"))

        assert metrics['accuracy'] == 1.0
        assert metrics['error'] == 0.0
        assert np.array_equal(np.array(metrics['confusion_matrix']), np.eye(5, dtype=int) * 4)

    def test_known_confusion(self):
        y_true = ['A', 'A', 'B', 'B']
        y_pred = ['A', 'B', 'B', 'B']
        metrics = calculate_metrics(y_true, y_pred, labels=['A', 'B'])

        assert metrics['accuracy'] == pytest.approx(0.75)
        assert metrics['error'] == pytest.approx(0.25)
        assert metrics['confusion_matrix'] == [[1, 1], [0, 2]]
        assert metrics['per_class']['A']['recall'] == pytest.approx(0.5)
        assert metrics['per_class']['B']['precision'] == pytest.approx(2 / 3)
        assert metrics['per_class']['B']['support'] == 2

    def test_absent_class_has_zero_support(self):
        metrics = calculate_metrics(['A', 'B'], ['A', 'B'], labels=list("ABCDE"))

        assert len(metrics['confusion_matrix']) == 5
        assert metrics['per_class']['E']['support'] == 0

    def test_categorical_input(self):
        y = pd.Series(pd.Categorical(['A', 'C'], categories=list("ABCDE")))
        metrics = calculate_metrics(y, np.array(['A', 'C']))

        assert metrics['labels'] == ['A', 'C']
        assert metrics['accuracy'] == 1.0


class TestCompareModels:
    """Tests for compare_models and select_best_model."""

    def test_comparison_table(self, trained_models, split_tables):
        fit_df, validation_df = split_tables
        X_fit, y_fit = split_features_labels(fit_df)
        X_val, y_val = split_features_labels(validation_df)

        comparison, metrics = compare_models(trained_models, X_fit, y_fit, X_val, y_val, list("ABCDE"))

        assert set(comparison.index) == {'random_forest', 'linear_svm'}
        np.testing.assert_allclose(
            comparison['out_of_sample_error'], 1 - comparison['validation_accuracy']
        )
        assert comparison['validation_accuracy'].is_monotonic_decreasing
        assert metrics['random_forest']['validation']['n_samples'] == len(validation_df)

    def test_select_best_model(self):
        comparison = pd.DataFrame(
            {'validation_accuracy': [0.95, 0.985, 0.80]},
            index=pd.Index(['gradient_boosting', 'random_forest', 'linear_svm'], name='model')
        )
        assert select_best_model(comparison) == 'random_forest'

    def test_select_best_model_tie_goes_to_first(self):
        comparison = pd.DataFrame(
            {'validation_accuracy': [0.9, 0.9]},
            index=pd.Index(['random_forest', 'linear_svm'], name='model')
        )
        assert select_best_model(comparison) == 'random_forest'

    def test_select_from_empty(self):
        with pytest.raises(ValueError):
            select_best_model(pd.DataFrame({'validation_accuracy': []}))


def test_evaluate_models_writes_reports(trained_models, split_tables, tmp_path):
    fit_df, validation_df = split_tables

    result = evaluate_models(trained_models, fit_df, validation_df, output_dir=str(tmp_path))

    assert result['selected_model'] in trained_models
    assert (tmp_path / "metrics" / "model_comparison.csv").exists()
    for name in result['figures']:
        assert (tmp_path / "figures" / name).exists()
    assert 'eval_search_random_forest.png' in result['figures']
    assert 'eval_confusion_linear_svm.png' in result['figures']

    with open(result['metrics_file']) as f:
        saved = json.load(f)
    assert saved['selected_model'] == result['selected_model']
    assert saved['models']['random_forest']['validation']['labels'] == list("ABCDE")


class TestSearchCurve:
    """Tests for plot_search_curve."""

    def test_numeric_grid(self, trained_models, tmp_path):
        fig = plot_search_curve(trained_models['linear_svm'], save_path=str(tmp_path / "svm.png"))

        assert fig.axes[0].get_xscale() == 'log'
        assert (tmp_path / "svm.png").exists()

    def test_string_grid(self, split_tables, small_config, tmp_path):
        fit_df, _ = split_tables
        small_config['models']['random_forest']['grid'] = {'max_features': ['sqrt', 'log2']}
        model = build_classifier('random_forest', small_config).fit(*split_features_labels(fit_df))

        fig = plot_search_curve(model, save_path=str(tmp_path / "forest.png"))

        ticks = [label.get_text() for label in fig.axes[0].get_xticklabels()]
        assert ticks == ['sqrt', 'log2']
        assert (tmp_path / "forest.png").exists()
