"""
Model Evaluation Module - Phase 4
==================================

Scores the trained classifiers and compares them.

Features:
    - Accuracy, error and confusion matrix per model and subset
    - Per-class precision / recall / F1
    - Model comparison table and best-model selection
    - Confusion matrix heatmaps and hyperparameter search curves
    - Evaluation report generation
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from sklearn.metrics import accuracy_score, confusion_matrix, precision_recall_fscore_support

from .model import ActivityClassifier

logger = logging.getLogger(__name__)


def calculate_metrics(
    y_true,
    y_pred,
    labels: Optional[List[str]] = None
) -> Dict[str, Any]:
    """
    Calculate accuracy, error, confusion matrix and per-class statistics.

    Args:
        y_true: Ground truth labels
        y_pred: Predicted labels
        labels: Ordered label set (default: sorted union of both)

    Returns:
        Dictionary containing overall and per-class metrics
    """
    y_true = np.asarray(y_true).astype(str)
    y_pred = np.asarray(y_pred).astype(str)

    if labels is None:
        labels = sorted(set(y_true) | set(y_pred))
    labels = [str(label) for label in labels]

    accuracy = accuracy_score(y_true, y_pred)
    matrix = confusion_matrix(y_true, y_pred, labels=labels)
    precision, recall, f1, support = precision_recall_fscore_support(
        y_true, y_pred, labels=labels, zero_division=0
    )

    per_class = {}
    for i, label in enumerate(labels):
        per_class[label] = {
            'precision': float(precision[i]),
            'recall': float(recall[i]),
            'f1': float(f1[i]),
            'support': int(support[i])
        }

    return {
        'accuracy': float(accuracy),
        'error': float(1.0 - accuracy),
        'n_samples': int(len(y_true)),
        'labels': labels,
        'confusion_matrix': matrix.tolist(),
        'per_class': per_class
    }


def compare_models(
    models: Dict[str, ActivityClassifier],
    X_fit: pd.DataFrame,
    y_fit: pd.Series,
    X_val: pd.DataFrame,
    y_val: pd.Series,
    labels: Optional[List[str]] = None
) -> Tuple[pd.DataFrame, Dict[str, Dict[str, Any]]]:
    """
    Score every model on the fit and validation subsets.

    Args:
        models: Trained classifiers keyed by name
        X_fit, y_fit: Fit subset
        X_val, y_val: Held-out validation subset
        labels: Ordered label set

    Returns:
        Tuple of (comparison DataFrame sorted by validation accuracy,
        per-model metrics dictionary)
    """
    rows = []
    metrics = {}

    for name, model in models.items():
        train_metrics = calculate_metrics(y_fit, model.predict(X_fit), labels)
        val_metrics = calculate_metrics(y_val, model.predict(X_val), labels)

        metrics[name] = {
            'train': train_metrics,
            'validation': val_metrics,
            'best_params': model.best_params_,
            'cv_accuracy': model.cv_accuracy_,
            'n_components': model.n_components_
        }

        rows.append({
            'model': name,
            'train_accuracy': train_metrics['accuracy'],
            'validation_accuracy': val_metrics['accuracy'],
            'out_of_sample_error': 1.0 - val_metrics['accuracy'],
            'cv_accuracy': model.cv_accuracy_,
            'n_components': model.n_components_,
            'best_params': json.dumps(model.best_params_, default=str)
        })

        logger.info(
            f"{name}: train accuracy {train_metrics['accuracy']:.4f}, "
            f"validation accuracy {val_metrics['accuracy']:.4f}"
        )

    comparison = pd.DataFrame(rows).set_index('model')
    comparison = comparison.sort_values('validation_accuracy', ascending=False, kind='mergesort')

    return comparison, metrics


def select_best_model(comparison: pd.DataFrame) -> str:
    """
    Name of the model with the highest validation accuracy.

    Ties go to the model listed first.
    """
    if comparison.empty:
        raise ValueError("No models to select from.")
    return str(comparison['validation_accuracy'].idxmax())


def plot_confusion_matrix(
    metrics: Dict[str, Any],
    title: str = 'Confusion Matrix',
    figsize: Tuple[int, int] = (7, 6),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Heatmap of a confusion matrix from calculate_metrics.

    Args:
        metrics: Metrics dictionary from calculate_metrics
        title: Plot title
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    labels = metrics['labels']
    matrix = np.array(metrics['confusion_matrix'])

    fig, ax = plt.subplots(figsize=figsize)
    sns.heatmap(
        matrix,
        annot=True,
        fmt='d',
        cmap='Blues',
        xticklabels=labels,
        yticklabels=labels,
        cbar=False,
        ax=ax
    )
    ax.set_xlabel('Predicted')
    ax.set_ylabel('Actual')
    ax.set_title(f"{title}\nAccuracy={metrics['accuracy']:.4f}", fontsize=12, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Confusion matrix saved to {save_path}")

    return fig


def _is_number(value) -> bool:
    return isinstance(value, (int, float, np.number)) and not isinstance(value, bool)


def plot_search_curve(
    model: ActivityClassifier,
    figsize: Tuple[int, int] = (8, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Plot CV accuracy against the searched hyperparameter.

    With more than one searched parameter, one line is drawn per value of
    the remaining parameters.

    Args:
        model: Trained classifier
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    results = model.search_results_
    params = list(model.param_grid.keys())
    x_param = params[0]

    fig, ax = plt.subplots(figsize=figsize)

    if len(params) == 1:
        groups = [(None, results)]
    else:
        groups = list(results.groupby(params[1:]))

    grid_values = list(model.param_grid[x_param])
    numeric = all(_is_number(v) for v in grid_values)
    # Non-numeric values (e.g. 'sqrt', None) go on categorical positions in grid order
    positions = {str(v): i for i, v in enumerate(grid_values)}

    for key, group in groups:
        if numeric:
            group = group.sort_values(x_param)
            x = group[x_param].astype(float).values
        else:
            group = group.assign(_pos=group[x_param].map(lambda v: positions[str(v)]))
            group = group.sort_values('_pos')
            x = group['_pos'].values
        label = None if key is None else f"{params[1:]}={key}"
        ax.errorbar(
            x, group['cv_accuracy'].values, yerr=group['cv_accuracy_std'].values,
            marker='o', capsize=3, label=label
        )

    if x_param in model.best_params_:
        best = model.best_params_[x_param]
        best_x = float(best) if numeric else positions[str(best)]
        ax.axvline(best_x, color='red', linestyle='--', alpha=0.5,
                   label=f'Selected: {best}')

    if not numeric:
        ax.set_xticks(range(len(grid_values)))
        ax.set_xticklabels([str(v) for v in grid_values])
    elif x_param == 'C':
        ax.set_xscale('log')

    ax.set_xlabel(x_param)
    ax.set_ylabel(f'CV accuracy ({model.cv_folds}-fold)')
    ax.set_title(f'Hyperparameter Search - {model.name}', fontsize=12, fontweight='bold')
    ax.legend(fontsize=8)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Search curve saved to {save_path}")

    return fig


def plot_model_comparison(
    comparison: pd.DataFrame,
    figsize: Tuple[int, int] = (9, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart of train and validation accuracy per model.

    Args:
        comparison: Output of compare_models
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    names = comparison.index.tolist()
    x = np.arange(len(names))
    width = 0.35

    fig, ax = plt.subplots(figsize=figsize)
    ax.bar(x - width / 2, comparison['train_accuracy'], width, label='Train', color='steelblue', alpha=0.8)
    ax.bar(x + width / 2, comparison['validation_accuracy'], width, label='Validation', color='coral', alpha=0.8)

    for i, acc in enumerate(comparison['validation_accuracy']):
        ax.text(i + width / 2, acc, f"{acc:.3f}", ha='center', va='bottom', fontsize=8)

    ax.set_xticks(x)
    ax.set_xticklabels(names)
    ax.set_ylabel('Accuracy')
    ax.set_ylim([0, 1.05])
    ax.set_title('Model Comparison', fontsize=14, fontweight='bold')
    ax.legend()
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Model comparison plot saved to {save_path}")

    return fig


def evaluate_models(
    models: Dict[str, ActivityClassifier],
    fit_df: pd.DataFrame,
    validation_df: pd.DataFrame,
    label_column: str = "classe",
    labels: Optional[List[str]] = None,
    output_dir: str = "reports/",
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Run the model comparison and generate all reports.

    Args:
        models: Trained classifiers keyed by name
        fit_df: Fit subset including the label
        validation_df: Validation subset including the label
        label_column: Name of the label column
        labels: Ordered label set
        output_dir: Directory for output files
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing the comparison table, metrics, selected
        model name and file paths
    """
    output_dir = Path(output_dir)
    figures_dir = output_dir / "figures"
    metrics_dir = output_dir / "metrics"

    figures_dir.mkdir(parents=True, exist_ok=True)
    metrics_dir.mkdir(parents=True, exist_ok=True)

    logger.info("=" * 60)
    logger.info("STARTING MODEL EVALUATION (Phase 4)")
    logger.info("=" * 60)

    X_fit = fit_df.drop(columns=[label_column])
    y_fit = fit_df[label_column]
    X_val = validation_df.drop(columns=[label_column])
    y_val = validation_df[label_column]

    if labels is None and isinstance(y_fit.dtype, pd.CategoricalDtype):
        labels = [str(c) for c in y_fit.cat.categories]

    comparison, metrics = compare_models(models, X_fit, y_fit, X_val, y_val, labels)
    best_name = select_best_model(comparison)

    comparison_file = metrics_dir / "model_comparison.csv"
    comparison.to_csv(comparison_file)
    logger.info(f"Comparison saved to {comparison_file}")

    metrics_file = metrics_dir / "evaluation_metrics.json"
    with open(metrics_file, 'w') as f:
        json.dump({'selected_model': best_name, 'models': metrics}, f, indent=2, default=str)
    logger.info(f"Metrics saved to {metrics_file}")

    figures = []
    for name, model in models.items():
        filename = f"eval_confusion_{name}.png"
        plot_confusion_matrix(
            metrics[name]['validation'],
            title=f"{name} (validation)",
            save_path=str(figures_dir / filename)
        )
        figures.append(filename)

        filename = f"eval_search_{name}.png"
        plot_search_curve(model, save_path=str(figures_dir / filename))
        figures.append(filename)

    plot_model_comparison(comparison, save_path=str(figures_dir / "eval_model_comparison.png"))
    figures.append("eval_model_comparison.png")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    result = {
        'comparison': comparison,
        'metrics': metrics,
        'selected_model': best_name,
        'figures': figures,
        'metrics_file': str(metrics_file),
        'comparison_file': str(comparison_file)
    }

    best = comparison.loc[best_name]
    logger.info("=" * 60)
    logger.info("EVALUATION COMPLETE")
    logger.info(f"  Selected model: {best_name}")
    logger.info(f"  Validation accuracy: {best['validation_accuracy']:.4f}")
    logger.info(f"  Out-of-sample error: {best['out_of_sample_error']:.4f}")
    logger.info("=" * 60)

    return result


def print_evaluation_report(result: Dict[str, Any]) -> None:
    """
    Print the model comparison and the selected model's confusion matrix.

    Args:
        result: Result dictionary from evaluate_models
    """
    comparison = result['comparison']
    best_name = result['selected_model']

    print("\n" + "=" * 70)
    print("MODEL COMPARISON REPORT")
    print("=" * 70)
    print(f"{'Model':<20} {'Train acc':<12} {'Valid acc':<12} {'OOS error':<12} {'CV acc':<12}")
    print("-" * 70)

    for name, row in comparison.iterrows():
        marker = " *" if name == best_name else ""
        print(f"{name:<20} {row['train_accuracy']:<12.4f} {row['validation_accuracy']:<12.4f} "
              f"{row['out_of_sample_error']:<12.4f} {row['cv_accuracy']:<12.4f}{marker}")

    print("-" * 70)

    for name, model_metrics in result['metrics'].items():
        validation = model_metrics['validation']
        labels = validation['labels']
        matrix = pd.DataFrame(
            validation['confusion_matrix'],
            index=[f"true {label}" for label in labels],
            columns=[f"pred {label}" for label in labels]
        )
        print(f"\n{name} - validation confusion matrix "
              f"(selected: {model_metrics['best_params']}):")
        print(matrix.to_string())

        print(f"\n  {'Class':<8} {'Precision':<11} {'Recall':<11} {'F1':<11} {'Support':<8}")
        for label, stats in validation['per_class'].items():
            print(f"  {label:<8} {stats['precision']:<11.4f} {stats['recall']:<11.4f} "
                  f"{stats['f1']:<11.4f} {stats['support']:<8}")

    best = comparison.loc[best_name]
    print("\nSelected model:")
    print(f"  • {best_name}")
    print(f"  • Validation accuracy: {best['validation_accuracy']:.4f}")
    print(f"  • Expected out-of-sample error: {best['out_of_sample_error']:.4f}")
    print("=" * 70 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    np.random.seed(42)
    labels = list("ABCDE")
    y_true = np.random.choice(labels, 200)
    y_pred = np.where(np.random.rand(200) < 0.9, y_true, np.random.choice(labels, 200))

    metrics = calculate_metrics(y_true, y_pred, labels)
    print(f"Accuracy: {metrics['accuracy']:.4f}")
    print(pd.DataFrame(metrics['confusion_matrix'], index=labels, columns=labels))
