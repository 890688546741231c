"""
Exploratory Data Analysis (EDA) Module
======================================

Descriptive analysis of the cleaned fit subset. Nothing computed here
feeds the models.

Functions:
    - encode_label: Numeric encoding of the ordered label
    - compute_correlation_matrix: Pearson matrix over predictors and label
    - rank_label_correlations: Predictors ranked by |r| with the label
    - plot_correlation_matrix: Correlation heatmap
    - plot_label_distribution: Class counts
    - plot_top_feature_distributions: Per-class box plots of the top predictors
    - generate_eda_report: Full EDA report with all visualizations
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd
import numpy as np
import matplotlib.pyplot as plt
import seaborn as sns

logger = logging.getLogger(__name__)

# Set style for all plots
plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")


def encode_label(labels: pd.Series) -> pd.Series:
    """
    Encode an ordered categorical label as 1..K.

    Args:
        labels: Label series (categorical or plain)

    Returns:
        Float series with A=1, B=2, ...
    """
    if not isinstance(labels.dtype, pd.CategoricalDtype):
        labels = labels.astype('category')
    codes = labels.cat.codes.astype(float) + 1
    return codes.where(labels.notna())


def find_constant_columns(df: pd.DataFrame) -> List[str]:
    """Numeric columns with fewer than two distinct non-missing values."""
    numeric = df.select_dtypes(include=[np.number])
    return [c for c in numeric.columns if numeric[c].nunique(dropna=True) < 2]


def compute_correlation_matrix(
    df: pd.DataFrame,
    label_column: str = "classe",
    method: str = 'pearson'
) -> pd.DataFrame:
    """
    Compute the pairwise correlation matrix of predictors and label.

    Constant columns have no defined correlation; they are left out of
    the matrix and logged.

    Args:
        df: Cleaned table including the label column
        label_column: Name of the label column
        method: Correlation method ('pearson', 'spearman', 'kendall')

    Returns:
        Square correlation DataFrame with the label as the last row/column
    """
    numeric = df.drop(columns=[label_column]).select_dtypes(include=[np.number]).copy()
    numeric[label_column] = encode_label(df[label_column])

    constant = find_constant_columns(numeric)
    if constant:
        logger.warning(f"Excluding constant columns from correlation: {constant}")
        numeric = numeric.drop(columns=constant)

    corr_matrix = numeric.corr(method=method)
    logger.info(f"Computed {method} correlation matrix: {corr_matrix.shape}")

    return corr_matrix


def rank_label_correlations(
    corr_matrix: pd.DataFrame,
    label_column: str = "classe",
    top_n: Optional[int] = None
) -> pd.DataFrame:
    """
    Rank predictors by the magnitude of their correlation with the label.

    Args:
        corr_matrix: Output of compute_correlation_matrix
        label_column: Name of the label column
        top_n: Keep only the strongest ``top_n`` predictors

    Returns:
        DataFrame with columns feature, correlation, abs_correlation
    """
    label_corr = corr_matrix[label_column].drop(labels=[label_column])

    ranking = pd.DataFrame({
        'feature': label_corr.index,
        'correlation': label_corr.values,
        'abs_correlation': label_corr.abs().values
    })
    ranking = ranking.sort_values('abs_correlation', ascending=False, kind='mergesort')
    ranking = ranking.reset_index(drop=True)

    if top_n is not None:
        ranking = ranking.head(top_n)

    return ranking


def find_strong_pairs(
    corr_matrix: pd.DataFrame,
    threshold: float = 0.8,
    exclude: Optional[List[str]] = None
) -> List[Dict[str, Any]]:
    """
    List predictor pairs with |r| >= threshold, strongest first.

    Args:
        corr_matrix: Correlation matrix
        threshold: Correlation threshold for "strong" correlation
        exclude: Columns to ignore (typically the label)

    Returns:
        List of dicts with col1, col2, correlation
    """
    exclude = set(exclude or [])
    columns = [c for c in corr_matrix.columns if c not in exclude]
    sub = corr_matrix.loc[columns, columns]

    strong_corr = []
    for i in range(len(columns)):
        for j in range(i + 1, len(columns)):
            corr_val = sub.iloc[i, j]
            if abs(corr_val) >= threshold:
                strong_corr.append({
                    "col1": columns[i],
                    "col2": columns[j],
                    "correlation": float(corr_val)
                })

    return sorted(strong_corr, key=lambda x: abs(x["correlation"]), reverse=True)


def plot_correlation_matrix(
    corr_matrix: pd.DataFrame,
    figsize: Tuple[int, int] = (16, 14),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Create a correlation heatmap.

    Args:
        corr_matrix: Correlation matrix DataFrame
        figsize: Figure size (width, height)
        save_path: Path to save the figure (optional)

    Returns:
        Matplotlib Figure object
    """
    fig, ax = plt.subplots(figsize=figsize)

    mask = np.triu(np.ones_like(corr_matrix, dtype=bool), k=1)
    sns.heatmap(
        corr_matrix,
        mask=mask,
        cmap='RdYlBu_r',
        center=0,
        square=True,
        linewidths=0.2,
        cbar_kws={"shrink": 0.8, "label": "Correlation"},
        ax=ax,
        vmin=-1,
        vmax=1,
        xticklabels=True,
        yticklabels=True
    )
    ax.tick_params(labelsize=6)
    ax.set_title('Correlation Matrix (Pearson)', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Correlation matrix saved to {save_path}")

    return fig


def plot_label_distribution(
    labels: pd.Series,
    figsize: Tuple[int, int] = (8, 5),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Bar chart of class counts.

    Args:
        labels: Label series
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    counts = labels.value_counts(sort=False).sort_index()

    fig, ax = plt.subplots(figsize=figsize)
    ax.bar(counts.index.astype(str), counts.values, color='steelblue', alpha=0.8)

    for x, count in enumerate(counts.values):
        ax.text(x, count, f"{count}", ha='center', va='bottom', fontsize=9)

    ax.set_xlabel('Class')
    ax.set_ylabel('Count')
    ax.set_title('Class Distribution', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Label distribution saved to {save_path}")

    return fig


def plot_top_feature_distributions(
    df: pd.DataFrame,
    features: List[str],
    label_column: str = "classe",
    figsize: Tuple[int, int] = (14, 10),
    save_path: Optional[str] = None
) -> plt.Figure:
    """
    Per-class box plots for the given predictors.

    Args:
        df: Cleaned table including the label
        features: Predictors to plot
        label_column: Name of the label column
        figsize: Figure size
        save_path: Path to save the figure

    Returns:
        Matplotlib Figure object
    """
    n_cols = len(features)
    n_rows = max((n_cols + 1) // 2, 1)

    fig, axes = plt.subplots(n_rows, 2, figsize=figsize)
    axes = np.atleast_1d(axes).flatten()

    for idx, col in enumerate(features):
        ax = axes[idx]
        sns.boxplot(data=df, x=label_column, y=col, ax=ax)
        ax.set_title(col, fontsize=10, fontweight='bold')
        ax.set_xlabel('')

    for idx in range(len(features), len(axes)):
        axes[idx].set_visible(False)

    plt.suptitle('Top Label-Correlated Predictors by Class', fontsize=14, fontweight='bold')
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        logger.info(f"Feature distributions saved to {save_path}")

    return fig


def generate_eda_report(
    df: pd.DataFrame,
    label_column: str = "classe",
    output_dir: str = "reports/figures/",
    top_n: int = 10,
    show_plots: bool = False
) -> Dict[str, Any]:
    """
    Generate the EDA report with all visualizations.

    Args:
        df: Cleaned table to analyze (normally the fit subset)
        label_column: Name of the label column
        output_dir: Directory to save figures
        top_n: Number of label-correlated predictors to report
        show_plots: Whether to display plots interactively

    Returns:
        Dictionary containing EDA results and file paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    report = {
        "data_shape": df.shape,
        "columns": list(df.columns),
        "figures": [],
        "correlation_matrix": None,
        "label_ranking": None,
        "class_proportions": {}
    }

    logger.info("=" * 60)
    logger.info("STARTING EXPLORATORY DATA ANALYSIS")
    logger.info("=" * 60)

    logger.info("Plotting class distribution...")
    plot_label_distribution(
        df[label_column],
        save_path=str(output_dir / "01_class_distribution.png")
    )
    report["figures"].append("01_class_distribution.png")
    report["class_proportions"] = {
        str(k): float(v)
        for k, v in df[label_column].value_counts(normalize=True, sort=False).sort_index().items()
    }

    logger.info("Computing correlation matrix...")
    corr_matrix = compute_correlation_matrix(df, label_column)
    plot_correlation_matrix(
        corr_matrix,
        save_path=str(output_dir / "02_correlation_matrix.png")
    )
    report["figures"].append("02_correlation_matrix.png")
    report["correlation_matrix"] = corr_matrix.to_dict()

    ranking = rank_label_correlations(corr_matrix, label_column)
    report["label_ranking"] = ranking.to_dict(orient='records')

    top_features = ranking['feature'].head(min(top_n, 6)).tolist()
    if top_features:
        logger.info("Plotting top predictors by class...")
        plot_top_feature_distributions(
            df, top_features, label_column,
            save_path=str(output_dir / "03_top_predictors.png")
        )
        report["figures"].append("03_top_predictors.png")

    if show_plots:
        plt.show()
    else:
        plt.close('all')

    logger.info("=" * 60)
    logger.info("EDA COMPLETE - All figures saved to: %s", output_dir)
    logger.info("=" * 60)

    return report


def print_correlation_insights(
    corr_matrix: pd.DataFrame,
    label_column: str = "classe",
    top_n: int = 10,
    threshold: float = 0.8
) -> None:
    """
    Print the label-correlation ranking and strongly correlated predictor pairs.

    Args:
        corr_matrix: Correlation matrix DataFrame
        label_column: Name of the label column
        top_n: Number of ranked predictors to print
        threshold: Correlation threshold for "strong" predictor pairs
    """
    print("\n" + "=" * 50)
    print("CORRELATION INSIGHTS")
    print("=" * 50)

    ranking = rank_label_correlations(corr_matrix, label_column, top_n=top_n)
    print(f"\nPredictors most correlated with '{label_column}':")
    for _, row in ranking.iterrows():
        print(f"  • {row['feature']:<25} {row['correlation']:+.3f}")

    strong_corr = find_strong_pairs(corr_matrix, threshold, exclude=[label_column])
    if strong_corr:
        print(f"\nStrongly correlated predictor pairs (|r| >= {threshold}): {len(strong_corr)}")
        for item in strong_corr[:top_n]:
            print(f"  • {item['col1']} ↔ {item['col2']}: {item['correlation']:.3f}")
        print("\n  Redundant predictors like these are what PCA compresses.")
    else:
        print(f"\nNo strongly correlated predictor pairs (|r| >= {threshold})")

    print("=" * 50 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    np.random.seed(42)
    n_samples = 300
    labels = np.random.choice(list("ABCDE"), n_samples)
    signal = pd.Series(labels).map({'A': 0, 'B': 1, 'C': 2, 'D': 3, 'E': 4}).values

    sample_df = pd.DataFrame({
        'roll_belt': signal + np.random.randn(n_samples) * 0.5,
        'pitch_forearm': -signal + np.random.randn(n_samples),
        'yaw_arm': np.random.randn(n_samples),
        'classe': pd.Categorical(labels, categories=list("ABCDE"), ordered=True)
    })

    report = generate_eda_report(sample_df, show_plots=False)
    print_correlation_insights(pd.DataFrame(report["correlation_matrix"]))
    print(f"Generated {len(report['figures'])} figures")
