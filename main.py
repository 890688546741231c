#!/usr/bin/env python3
"""
Human Activity Recognition Report - Main Pipeline
==================================================

Orchestrates the analysis of the weight-lifting exercise dataset.

Phases:
    1. Load - Read training and evaluation tables
    2. Preprocessing - Column cleaning and stratified split
    3. EDA - Correlation analysis on the fit subset
    4. Training - PCA + grid-searched random forest, boosting and linear SVM
    5. Evaluation - Accuracy comparison and model selection
    6. Prediction - Labels for the evaluation table

Usage:
    # Run complete pipeline
    python main.py --train data/raw/pml-training.csv --test data/raw/pml-testing.csv

    # Run specific phase
    python main.py --train data/raw/pml-training.csv --test data/raw/pml-testing.csv --phase eda

    # Run with custom config
    python main.py --train ... --test ... --config config/custom.yaml
"""

import argparse
import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional

import pandas as pd

from har_analysis.data_loader import load_config, load_datasets, print_data_summary
from har_analysis.eda import generate_eda_report, print_correlation_insights
from har_analysis.preprocessing import preprocess_pipeline, print_preprocessing_summary, split_features_labels
from har_analysis.model import train_classifiers, print_model_summary, ActivityClassifier
from har_analysis.evaluation import evaluate_models, print_evaluation_report
from har_analysis.prediction import run_final_prediction, print_prediction_results

PHASES = ['load', 'preprocess', 'eda', 'train', 'evaluate', 'predict', 'all']


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None) -> None:
    """Configure logging for the pipeline."""
    handlers = [logging.StreamHandler(sys.stdout)]

    if log_dir is not None:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        log_file = Path(log_dir) / f'pipeline_{datetime.now().strftime("%Y%m%d_%H%M%S")}.log'
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def run_load(
    train_path: str,
    eval_path: str,
    config: Dict[str, Any]
) -> Dict[str, pd.DataFrame]:
    """
    Execute Phase 1: load both tables.

    Args:
        train_path: Path to the labelled training CSV
        eval_path: Path to the unlabelled evaluation CSV
        config: Configuration dictionary

    Returns:
        Dictionary with 'train' and 'eval' DataFrames
    """
    print("\n" + "=" * 70)
    print("PHASE 1: LOAD DATA")
    print("=" * 70)

    data_config = config.get('data', {})
    label_column = data_config.get('label_column', 'classe')

    train_df, eval_df = load_datasets(
        train_path,
        eval_path,
        label_column=label_column,
        id_column=data_config.get('id_column', 'problem_id'),
        na_values=data_config.get('na_values', ['NA'])
    )

    print_data_summary(train_df, name="training", label_column=label_column)
    print_data_summary(eval_df, name="evaluation", label_column=None)

    return {'train': train_df, 'eval': eval_df}


def run_preprocessing(
    data: Dict[str, pd.DataFrame],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 2: Data Preprocessing.

    Args:
        data: Output of run_load
        config: Configuration dictionary

    Returns:
        Preprocessing result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 2: DATA PREPROCESSING")
    print("=" * 70)

    models_dir = config.get('output', {}).get('models_path', 'models/')

    result = preprocess_pipeline(
        data['train'],
        data['eval'],
        config,
        save_cleaner=str(Path(models_dir) / 'cleaner.joblib')
    )

    print_preprocessing_summary(result)

    return result


def run_eda(prep_result: Dict[str, Any], config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Execute Phase 3: Exploratory Data Analysis on the fit subset.

    Args:
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        EDA report dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 3: EXPLORATORY DATA ANALYSIS")
    print("=" * 70)

    eda_config = config.get('eda', {})
    output_dir = config.get('output', {}).get('figures_path', 'reports/figures/')
    label_column = prep_result['label_column']

    report = generate_eda_report(
        prep_result['fit'],
        label_column=label_column,
        output_dir=output_dir,
        top_n=eda_config.get('top_n', 10),
        show_plots=False
    )

    corr_df = pd.DataFrame(report["correlation_matrix"])
    print_correlation_insights(
        corr_df,
        label_column=label_column,
        top_n=eda_config.get('top_n', 10),
        threshold=eda_config.get('strong_correlation', 0.8)
    )

    print(f"\n✓ EDA complete. {len(report['figures'])} figures saved to {output_dir}")

    return report


def run_training(
    prep_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, ActivityClassifier]:
    """
    Execute Phase 4: Model Training.

    Args:
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Trained classifiers keyed by name
    """
    print("\n" + "=" * 70)
    print("PHASE 4: MODEL TRAINING")
    print("=" * 70)

    models_dir = config.get('output', {}).get('models_path', 'models/')
    X_fit, y_fit = split_features_labels(prep_result['fit'], prep_result['label_column'])

    models = train_classifiers(X_fit, y_fit, config, save_dir=models_dir)

    for model in models.values():
        print_model_summary(model)

    return models


def run_evaluation(
    models: Dict[str, ActivityClassifier],
    prep_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 5: Model Evaluation.

    Args:
        models: Trained classifiers
        prep_result: Preprocessing result dictionary
        config: Configuration dictionary

    Returns:
        Evaluation result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 5: MODEL EVALUATION")
    print("=" * 70)

    output_dir = config.get('output', {}).get('reports_path', 'reports/')

    result = evaluate_models(
        models,
        prep_result['fit'],
        prep_result['validation'],
        label_column=prep_result['label_column'],
        labels=config.get('data', {}).get('label_levels'),
        output_dir=output_dir,
        show_plots=False
    )

    print_evaluation_report(result)

    return result


def run_final_prediction_phase(
    models: Dict[str, ActivityClassifier],
    prep_result: Dict[str, Any],
    eval_result: Dict[str, Any],
    config: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Execute Phase 6: Final Prediction with the selected model.

    Args:
        models: Trained classifiers
        prep_result: Preprocessing result dictionary
        eval_result: Evaluation result dictionary
        config: Configuration dictionary

    Returns:
        Prediction result dictionary
    """
    print("\n" + "=" * 70)
    print("PHASE 6: FINAL PREDICTION")
    print("=" * 70)

    data_config = config.get('data', {})
    output_dir = data_config.get('predictions_path', 'data/predictions/')

    model = models[eval_result['selected_model']]

    result = run_final_prediction(
        model=model,
        eval_df=prep_result['eval_clean'],
        evaluation=eval_result,
        id_column=data_config.get('id_column', 'problem_id'),
        label_column=prep_result['label_column'],
        output_dir=output_dir,
        answer_files=config.get('output', {}).get('answer_files', True)
    )

    print_prediction_results(result)

    return result


def run_full_pipeline(
    train_path: str,
    eval_path: str,
    config_path: str = "config/config.yaml",
    verbose: bool = False
) -> Dict[str, Any]:
    """
    Execute the complete pipeline.

    Args:
        train_path: Path to the labelled training CSV
        eval_path: Path to the unlabelled evaluation CSV
        config_path: Path to configuration file
        verbose: Log at DEBUG level

    Returns:
        Dictionary containing all phase results
    """
    config = load_config(config_path)
    _configure_logging(config, verbose)

    print("\n" + "=" * 70)
    print("HUMAN ACTIVITY RECOGNITION PIPELINE")
    print(f"Started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70)

    results = {'config': config}

    results['data'] = run_load(train_path, eval_path, config)
    results['preprocessing'] = run_preprocessing(results['data'], config)
    results['eda'] = run_eda(results['preprocessing'], config)
    results['models'] = run_training(results['preprocessing'], config)
    results['evaluation'] = run_evaluation(results['models'], results['preprocessing'], config)
    results['prediction'] = run_final_prediction_phase(
        results['models'], results['preprocessing'], results['evaluation'], config
    )

    evaluation = results['evaluation']
    best = evaluation['comparison'].loc[evaluation['selected_model']]
    prep = results['preprocessing']

    print("\n" + "=" * 70)
    print("PIPELINE COMPLETE")
    print("=" * 70)
    print(f"  • Raw training data: {results['data']['train'].shape[0]} rows × "
          f"{results['data']['train'].shape[1]} columns")
    print(f"  • Cleaned: {prep['train_clean'].shape[1]} columns "
          f"({prep['train_clean'].shape[1] - 1} predictors + label)")
    print(f"  • Fit / validation: {len(prep['fit'])} / {len(prep['validation'])} rows")
    print(f"  • Selected model: {evaluation['selected_model']}")
    print(f"  • Validation accuracy: {best['validation_accuracy']:.4f}")
    print(f"  • Out-of-sample error: {best['out_of_sample_error']:.4f}")
    print(f"  • Output: {results['prediction']['csv_path']}")
    print(f"Completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print("=" * 70 + "\n")

    return results


def run_single_phase(
    phase: str,
    train_path: str,
    eval_path: str,
    config_path: str = "config/config.yaml",
    verbose: bool = False
) -> Dict[str, Any]:
    """
    Execute a single phase of the pipeline, re-running the phases it needs.

    Args:
        phase: Phase to run ('load', 'preprocess', 'eda', 'train', 'evaluate', 'predict')
        train_path: Path to the labelled training CSV
        eval_path: Path to the unlabelled evaluation CSV
        config_path: Path to configuration file
        verbose: Log at DEBUG level

    Returns:
        Phase result dictionary
    """
    if phase == 'all':
        return run_full_pipeline(train_path, eval_path, config_path, verbose)

    if phase not in PHASES:
        raise ValueError(f"Unknown phase: {phase}. Choose from: {', '.join(PHASES)}")

    config = load_config(config_path)
    _configure_logging(config, verbose)

    data = run_load(train_path, eval_path, config)
    if phase == 'load':
        return data

    prep_result = run_preprocessing(data, config)
    if phase == 'preprocess':
        return prep_result

    if phase == 'eda':
        return run_eda(prep_result, config)

    models = run_training(prep_result, config)
    if phase == 'train':
        return {'models': models, 'preprocessing': prep_result}

    eval_result = run_evaluation(models, prep_result, config)
    if phase == 'evaluate':
        return eval_result

    return run_final_prediction_phase(models, prep_result, eval_result, config)


def _configure_logging(config: Dict[str, Any], verbose: bool) -> None:
    log_config = config.get('logging', {})
    level = 'DEBUG' if verbose else log_config.get('level', 'INFO')
    setup_logging(level, log_config.get('log_dir', 'logs/'))


def main():
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description="Human Activity Recognition analysis and model comparison",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --train data/raw/pml-training.csv --test data/raw/pml-testing.csv
  python main.py --train data/raw/pml-training.csv --test data/raw/pml-testing.csv --phase eda
  python main.py --train ... --test ... --config config/custom.yaml
        """
    )

    parser.add_argument(
        '--train', '-t',
        type=str,
        default='data/raw/pml-training.csv',
        help='Path to the labelled training CSV (default: data/raw/pml-training.csv)'
    )

    parser.add_argument(
        '--test', '-e',
        type=str,
        default='data/raw/pml-testing.csv',
        help='Path to the unlabelled evaluation CSV (default: data/raw/pml-testing.csv)'
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default='config/config.yaml',
        help='Path to configuration file (default: config/config.yaml)'
    )

    parser.add_argument(
        '--phase', '-p',
        type=str,
        choices=PHASES,
        default='all',
        help='Phase to run (default: all)'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output'
    )

    args = parser.parse_args()

    for label, path in (('Training', args.train), ('Evaluation', args.test)):
        if not Path(path).exists():
            print(f"Error: {label} data file not found: {path}")
            print("\nPlace the pml-training.csv / pml-testing.csv files in the specified location.")
            sys.exit(1)

    if not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}")
        sys.exit(1)

    try:
        run_single_phase(args.phase, args.train, args.test, args.config, args.verbose)
        return 0

    except Exception as e:
        logging.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
