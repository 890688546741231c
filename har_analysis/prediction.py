"""
Prediction Module - Phase 5
============================

Applies the selected classifier to the unlabelled evaluation table.

Features:
    - One predicted label per evaluation row, in row order
    - Export predictions to CSV
    - One answer file per problem id
    - Prediction report generation
"""

import logging
import json
from pathlib import Path
from typing import Dict, Any, List, Optional
from datetime import datetime

import pandas as pd

from .model import ActivityClassifier

logger = logging.getLogger(__name__)


def predict_labels(
    model: ActivityClassifier,
    eval_df: pd.DataFrame,
    id_column: str = "problem_id",
    label_column: str = "classe"
) -> pd.Series:
    """
    Predict a label for every evaluation row.

    Args:
        model: Trained classifier
        eval_df: Cleaned evaluation table (predictors + identifier)
        id_column: Name of the row identifier
        label_column: Name given to the returned series

    Returns:
        Series of labels indexed by identifier, in input row order
    """
    features = eval_df.drop(columns=[id_column])

    if model.feature_names_ is not None:
        missing = [c for c in model.feature_names_ if c not in features.columns]
        if missing:
            raise ValueError(f"Evaluation table is missing model features: {missing}")
        features = features[model.feature_names_]

    predictions = model.predict(features)

    return pd.Series(
        predictions,
        index=pd.Index(eval_df[id_column].values, name=id_column),
        name=label_column
    )


def export_predictions(
    predictions: pd.Series,
    output_path: str,
    include_timestamp: bool = False
) -> str:
    """
    Export predictions to CSV file.

    Args:
        predictions: Labels indexed by identifier
        output_path: Directory to save the file
        include_timestamp: Whether to add timestamp to filename

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    output_path.mkdir(parents=True, exist_ok=True)

    if include_timestamp:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = f"predictions_{timestamp}.csv"
    else:
        filename = "predictions.csv"

    filepath = output_path / filename
    predictions.to_frame().to_csv(filepath)

    logger.info(f"Predictions exported to {filepath}")
    return str(filepath)


def write_answer_files(
    predictions: pd.Series,
    output_path: str,
    prefix: str = "problem_id_"
) -> List[str]:
    """
    Write one text file per evaluation row holding its predicted label.

    Args:
        predictions: Labels indexed by identifier
        output_path: Directory to write into
        prefix: File name prefix

    Returns:
        Paths of the written files, in row order
    """
    output_path = Path(output_path)
    output_path.mkdir(parents=True, exist_ok=True)

    paths = []
    for problem_id, label in predictions.items():
        filepath = output_path / f"{prefix}{problem_id}.txt"
        filepath.write_text(str(label))
        paths.append(str(filepath))

    logger.info(f"Wrote {len(paths)} answer files to {output_path}")
    return paths


def generate_prediction_report(
    predictions: pd.Series,
    model: ActivityClassifier,
    evaluation: Optional[Dict[str, Any]] = None,
    output_path: Optional[str] = None
) -> Dict[str, Any]:
    """
    Generate a prediction report.

    Args:
        predictions: Labels indexed by identifier
        model: Classifier that produced the predictions
        evaluation: Result from evaluate_models (optional)
        output_path: Path to save the report (optional)

    Returns:
        Report dictionary
    """
    report = {
        'generated_at': datetime.now().isoformat(),
        'model': model.name,
        'best_params': model.best_params_,
        'n_components': model.n_components_,
        'n_predictions': int(len(predictions)),
        'predictions': {str(k): str(v) for k, v in predictions.items()},
        'label_counts': {str(k): int(v) for k, v in predictions.value_counts().sort_index().items()}
    }

    if evaluation is not None and model.name in evaluation['comparison'].index:
        row = evaluation['comparison'].loc[model.name]
        report['validation_accuracy'] = float(row['validation_accuracy'])
        report['out_of_sample_error'] = float(row['out_of_sample_error'])

    if output_path:
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)

        with open(output_path, 'w') as f:
            json.dump(report, f, indent=2, default=str)
        logger.info(f"Prediction report saved to {output_path}")

    return report


def run_final_prediction(
    model: ActivityClassifier,
    eval_df: pd.DataFrame,
    evaluation: Optional[Dict[str, Any]] = None,
    id_column: str = "problem_id",
    label_column: str = "classe",
    output_dir: str = "data/predictions/",
    answer_files: bool = True
) -> Dict[str, Any]:
    """
    Execute the final prediction workflow.

    This function:
    1. Predicts a label for every evaluation row
    2. Exports the labels to CSV
    3. Optionally writes one answer file per row
    4. Writes a JSON report

    Args:
        model: Selected classifier
        eval_df: Cleaned evaluation table
        evaluation: Result from evaluate_models (optional)
        id_column: Name of the row identifier
        label_column: Name of the label column
        output_dir: Directory for output files
        answer_files: Whether to write per-row answer files

    Returns:
        Dictionary containing predictions and file paths
    """
    logger.info("=" * 60)
    logger.info("STARTING FINAL PREDICTION (Phase 5)")
    logger.info("=" * 60)
    logger.info(f"Model: {model.name}, evaluation rows: {len(eval_df)}")

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    predictions = predict_labels(model, eval_df, id_column, label_column)

    csv_path = export_predictions(predictions, str(output_dir))

    answer_paths = []
    if answer_files:
        answer_paths = write_answer_files(predictions, str(output_dir / "answers"))

    report_path = output_dir / "prediction_report.json"
    report = generate_prediction_report(
        predictions, model, evaluation, output_path=str(report_path)
    )

    result = {
        'predictions': predictions,
        'model_name': model.name,
        'csv_path': csv_path,
        'answer_paths': answer_paths,
        'report_path': str(report_path),
        'report': report
    }

    logger.info("=" * 60)
    logger.info("PREDICTION COMPLETE")
    logger.info(f"  Labels: {''.join(predictions.astype(str).tolist())}")
    logger.info(f"  Output: {csv_path}")
    logger.info("=" * 60)

    return result


def print_prediction_results(result: Dict[str, Any]) -> None:
    """
    Print formatted prediction results to console.

    Args:
        result: Result dictionary from run_final_prediction
    """
    predictions = result['predictions']
    report = result['report']

    print("\n" + "=" * 50)
    print(f"PREDICTION RESULTS - {result['model_name']}")
    print("=" * 50)

    print(f"\n{'Problem id':<15} {'Predicted classe':<18}")
    print("-" * 50)
    for problem_id, label in predictions.items():
        print(f"{str(problem_id):<15} {str(label):<18}")

    print("-" * 50)
    print("Label counts: " + ", ".join(f"{k}={v}" for k, v in report['label_counts'].items()))
    if 'out_of_sample_error' in report:
        print(f"Expected out-of-sample error: {report['out_of_sample_error']:.4f}")

    print(f"\nPredictions exported to: {result['csv_path']}")
    if result['answer_paths']:
        print(f"Answer files: {len(result['answer_paths'])} written")
    print(f"Full report saved to: {result['report_path']}")
    print("=" * 50 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    print("Prediction module loaded successfully.")
    print("This module requires a trained classifier and a cleaned evaluation table.")
    print("Use the main.py pipeline script to execute the full workflow.")
