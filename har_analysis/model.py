"""
Model Training Module - Phase 3
================================

Trains activity classifiers behind one uniform wrapper.

Every classifier is a scikit-learn pipeline of StandardScaler, PCA
(keeping 99% of the variance) and an estimator, tuned with GridSearchCV
over k-fold cross-validation and refit on the whole fit subset.

Families:
    - random_forest: RandomForestClassifier, grid over max_features
    - gradient_boosting: GradientBoostingClassifier, grid over max_depth
    - linear_svm: LinearSVC, grid over C
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional, List, Callable, Union
from datetime import datetime

import numpy as np
import pandas as pd
import joblib
from sklearn.base import BaseEstimator, clone
from sklearn.decomposition import PCA
from sklearn.ensemble import RandomForestClassifier, GradientBoostingClassifier
from sklearn.metrics import accuracy_score
from sklearn.model_selection import GridSearchCV, KFold, RepeatedKFold
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler
from sklearn.svm import LinearSVC

logger = logging.getLogger(__name__)

STEP_PREFIX = "classifier__"


def _random_forest(params: Dict[str, Any], random_state: int, n_jobs: Optional[int]) -> BaseEstimator:
    return RandomForestClassifier(
        n_estimators=params.get('n_estimators', 100),
        random_state=random_state,
        n_jobs=n_jobs
    )


def _gradient_boosting(params: Dict[str, Any], random_state: int, n_jobs: Optional[int]) -> BaseEstimator:
    return GradientBoostingClassifier(
        n_estimators=params.get('n_estimators', 100),
        learning_rate=params.get('learning_rate', 0.1),
        subsample=params.get('subsample', 1.0),
        random_state=random_state
    )


def _linear_svm(params: Dict[str, Any], random_state: int, n_jobs: Optional[int]) -> BaseEstimator:
    return LinearSVC(
        dual=False,
        max_iter=params.get('max_iter', 5000),
        random_state=random_state
    )


CLASSIFIER_FAMILIES: Dict[str, Dict[str, Any]] = {
    'random_forest': {
        'factory': _random_forest,
        'description': 'Random forest (bagged decision trees)',
        'param_grid': {'max_features': [0.1, 0.5, 1.0]}
    },
    'gradient_boosting': {
        'factory': _gradient_boosting,
        'description': 'Gradient-boosted decision trees',
        'param_grid': {'max_depth': [1, 2, 3]}
    },
    'linear_svm': {
        'factory': _linear_svm,
        'description': 'Linear support-vector machine',
        'param_grid': {'C': [0.01, 0.1, 1.0, 10.0, 100.0]}
    }
}


class ActivityClassifier:
    """
    PCA-preprocessed classifier tuned by cross-validated grid search.

    ``fit`` searches ``param_grid`` with k-fold cross-validation on the
    data it is given, keeps the combination with the highest CV accuracy
    and refits the whole pipeline on all of that data. The fitted
    pipeline is not modified afterwards.
    """

    def __init__(
        self,
        name: str,
        estimator: BaseEstimator,
        param_grid: Dict[str, List[Any]],
        cv_folds: int = 3,
        cv_repeats: int = 1,
        pca_variance: float = 0.99,
        random_state: int = 50,
        n_jobs: Optional[int] = None
    ):
        """
        Initialize the classifier.

        Args:
            name: Identifier used in reports and file names
            estimator: Unfitted scikit-learn classifier
            param_grid: Estimator hyperparameters to search
            cv_folds: Number of cross-validation folds
            cv_repeats: Number of cross-validation repeats (1 = plain k-fold)
            pca_variance: Fraction of variance the PCA step must retain
            random_state: Random seed for reproducibility
            n_jobs: Parallel jobs for the grid search
        """
        self.name = name
        self.estimator = estimator
        self.param_grid = param_grid
        self.cv_folds = cv_folds
        self.cv_repeats = cv_repeats
        self.pca_variance = pca_variance
        self.random_state = random_state
        self.n_jobs = n_jobs

        self.model: Optional[Pipeline] = None
        self.best_params_: Dict[str, Any] = {}
        self.cv_accuracy_: Optional[float] = None
        self.search_results_: Optional[pd.DataFrame] = None
        self.n_components_: Optional[int] = None
        self.n_features_in_: Optional[int] = None
        self.feature_names_: Optional[List[str]] = None
        self.classes_: Optional[np.ndarray] = None
        self.training_info: Dict[str, Any] = {}
        self._is_fitted = False

    def build_pipeline(self) -> Pipeline:
        """Create the unfitted scale -> PCA -> classifier pipeline."""
        return Pipeline([
            ('scale', StandardScaler()),
            ('pca', PCA(n_components=self.pca_variance, svd_solver='full')),
            ('classifier', clone(self.estimator))
        ])

    def build_cv(self) -> Union[KFold, RepeatedKFold]:
        """Contiguous k-fold, or seeded repeated k-fold when repeats > 1."""
        if self.cv_repeats > 1:
            return RepeatedKFold(
                n_splits=self.cv_folds,
                n_repeats=self.cv_repeats,
                random_state=self.random_state
            )
        return KFold(n_splits=self.cv_folds, shuffle=False)

    def fit(self, X: pd.DataFrame, y: pd.Series) -> 'ActivityClassifier':
        """
        Search hyperparameters and refit on all of ``X``.

        Args:
            X: Predictor table of shape (n_samples, n_features)
            y: Class labels

        Returns:
            Self for method chaining
        """
        start_time = datetime.now()

        logger.info("=" * 60)
        logger.info(f"TRAINING {self.name.upper()}")
        logger.info("=" * 60)
        logger.info(f"Training data shape: X={X.shape}, y={len(y)}")
        logger.info(f"Search grid: {self.param_grid}")
        logger.info(f"CV: {self.cv_folds} folds × {self.cv_repeats} repeat(s)")

        X_values = np.asarray(X, dtype=float)
        y_values = np.asarray(y).astype(str)

        grid = {STEP_PREFIX + key: list(values) for key, values in self.param_grid.items()}

        search = GridSearchCV(
            self.build_pipeline(),
            param_grid=grid,
            scoring='accuracy',
            cv=self.build_cv(),
            refit=True,
            n_jobs=self.n_jobs
        )
        search.fit(X_values, y_values)

        self.model = search.best_estimator_
        self.best_params_ = {
            key[len(STEP_PREFIX):]: value for key, value in search.best_params_.items()
        }
        self.cv_accuracy_ = float(search.best_score_)
        self.search_results_ = self._summarize_search(search.cv_results_)
        self.n_components_ = int(self.model.named_steps['pca'].n_components_)
        self.n_features_in_ = X_values.shape[1]
        self.feature_names_ = list(X.columns) if hasattr(X, 'columns') else None
        self.classes_ = self.model.classes_

        end_time = datetime.now()
        training_duration = (end_time - start_time).total_seconds()

        self.training_info = {
            'training_duration_seconds': training_duration,
            'n_samples': int(X_values.shape[0]),
            'n_features': int(X_values.shape[1]),
            'n_components': self.n_components_,
            'cv_accuracy': self.cv_accuracy_,
            'best_params': self.best_params_,
            'trained_at': end_time.isoformat()
        }
        self._is_fitted = True

        logger.info(f"Selected hyperparameters: {self.best_params_}")
        logger.info(f"CV accuracy: {self.cv_accuracy_:.4f}")
        logger.info(f"PCA components retained: {self.n_components_} of {self.n_features_in_}")
        logger.info(f"{self.name} trained in {training_duration:.2f} seconds")

        return self

    def _summarize_search(self, cv_results: Dict[str, Any]) -> pd.DataFrame:
        results = pd.DataFrame(cv_results)
        param_cols = [c for c in results.columns if c.startswith('param_' + STEP_PREFIX)]
        summary = results[param_cols + ['mean_test_score', 'std_test_score', 'rank_test_score']].copy()
        summary.columns = [
            c.replace('param_' + STEP_PREFIX, '') for c in param_cols
        ] + ['cv_accuracy', 'cv_accuracy_std', 'rank']
        summary['cv_error'] = 1.0 - summary['cv_accuracy']
        return summary

    def _check_input(self, X) -> np.ndarray:
        if not self._is_fitted:
            raise ValueError("Model must be trained before prediction. Call fit() first.")

        X_values = np.asarray(X, dtype=float)
        if X_values.shape[1] != self.n_features_in_:
            raise ValueError(
                f"Expected {self.n_features_in_} features, but got {X_values.shape[1]}"
            )
        return X_values

    def predict(self, X: pd.DataFrame) -> np.ndarray:
        """
        Predict class labels.

        Args:
            X: Predictor table with the training columns

        Returns:
            Array of predicted labels, one per row
        """
        X_values = self._check_input(X)
        return self.model.predict(X_values)

    def score(self, X: pd.DataFrame, y: pd.Series) -> float:
        """Accuracy of the fitted pipeline on (X, y)."""
        return float(accuracy_score(np.asarray(y).astype(str), self.predict(X)))

    def save(self, filepath: str) -> None:
        """
        Save the trained model to disk.

        Args:
            filepath: Path to save the model
        """
        if not self._is_fitted:
            raise ValueError("Cannot save untrained model.")

        state = {
            'params': {
                'name': self.name,
                'estimator': self.estimator,
                'param_grid': self.param_grid,
                'cv_folds': self.cv_folds,
                'cv_repeats': self.cv_repeats,
                'pca_variance': self.pca_variance,
                'random_state': self.random_state,
                'n_jobs': self.n_jobs
            },
            'model': self.model,
            'best_params_': self.best_params_,
            'cv_accuracy_': self.cv_accuracy_,
            'search_results_': self.search_results_,
            'n_components_': self.n_components_,
            'n_features_in_': self.n_features_in_,
            'feature_names_': self.feature_names_,
            'classes_': self.classes_,
            'training_info': self.training_info,
            '_is_fitted': self._is_fitted
        }

        Path(filepath).parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(state, filepath)
        logger.info(f"Model saved to {filepath}")

    @classmethod
    def load(cls, filepath: str) -> 'ActivityClassifier':
        """
        Load a trained model from disk.

        Args:
            filepath: Path to the saved model

        Returns:
            Loaded ActivityClassifier instance
        """
        state = joblib.load(filepath)

        model = cls(**state['params'])
        for key, value in state.items():
            if key != 'params':
                setattr(model, key, value)

        logger.info(f"Model loaded from {filepath}")
        return model


def build_classifier(name: str, config: Optional[Dict[str, Any]] = None) -> ActivityClassifier:
    """
    Create an unfitted classifier of the named family.

    Args:
        name: One of CLASSIFIER_FAMILIES
        config: Configuration dictionary (reads the ``models`` section)

    Returns:
        Unfitted ActivityClassifier

    Raises:
        ValueError: If ``name`` is not a known family
    """
    if name not in CLASSIFIER_FAMILIES:
        raise ValueError(
            f"Unknown classifier: {name}. Choose from: {', '.join(CLASSIFIER_FAMILIES)}"
        )

    models_config = (config or {}).get('models', {})
    family_config = models_config.get(name, {}) or {}
    family = CLASSIFIER_FAMILIES[name]

    random_state = models_config.get('random_state', 50)
    n_jobs = models_config.get('n_jobs', None)
    factory: Callable[..., BaseEstimator] = family['factory']

    return ActivityClassifier(
        name=name,
        estimator=factory(family_config.get('params', {}) or {}, random_state, n_jobs),
        param_grid=family_config.get('grid', family['param_grid']),
        cv_folds=models_config.get('cv_folds', 3),
        cv_repeats=models_config.get('cv_repeats', 1),
        pca_variance=models_config.get('pca_variance', 0.99),
        random_state=random_state,
        n_jobs=n_jobs
    )


def train_classifiers(
    X_train: pd.DataFrame,
    y_train: pd.Series,
    config: Optional[Dict[str, Any]] = None,
    save_dir: Optional[str] = None
) -> Dict[str, ActivityClassifier]:
    """
    Train every enabled classifier family on the same data.

    Args:
        X_train: Fit-subset predictors
        y_train: Fit-subset labels
        config: Configuration dictionary
        save_dir: Directory to save each trained model (optional)

    Returns:
        Dictionary of trained classifiers keyed by family name
    """
    models_config = (config or {}).get('models', {})
    enabled = models_config.get('enabled', list(CLASSIFIER_FAMILIES))

    logger.info("=" * 60)
    logger.info("STARTING MODEL TRAINING (Phase 3)")
    logger.info("=" * 60)
    logger.info(f"Classifier families: {enabled}")

    models = {}
    for name in enabled:
        model = build_classifier(name, config)
        model.fit(X_train, y_train)

        if save_dir:
            model.save(str(Path(save_dir) / f"{name}.joblib"))

        models[name] = model

    logger.info("=" * 60)
    logger.info(f"MODEL TRAINING COMPLETE ({len(models)} classifiers)")
    logger.info("=" * 60)

    return models


def print_model_summary(model: ActivityClassifier) -> None:
    """
    Print a summary of a trained model.

    Args:
        model: Trained model instance
    """
    description = CLASSIFIER_FAMILIES.get(model.name, {}).get('description', model.name)

    print("\n" + "=" * 50)
    print(f"MODEL SUMMARY - {model.name}")
    print("=" * 50)
    print(f"Model Type: {description}")
    print(f"Pipeline: StandardScaler -> PCA({model.pca_variance:.0%} variance) -> "
          f"{type(model.estimator).__name__}")
    print(f"Input features: {model.n_features_in_}")
    print(f"PCA components: {model.n_components_}")
    print(f"CV: {model.cv_folds}-fold × {model.cv_repeats}")

    print("\nHyperparameter search:")
    if model.search_results_ is not None:
        print(model.search_results_.round(4).to_string(index=False))
    print(f"\nSelected: {model.best_params_} (CV accuracy {model.cv_accuracy_:.4f})")

    if model.training_info:
        print(f"Training duration: {model.training_info.get('training_duration_seconds', 0):.2f}s")

    print("=" * 50 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    np.random.seed(42)
    n_samples = 600
    n_features = 12

    labels = np.random.choice(list("ABCDE"), n_samples)
    offsets = pd.Series(labels).map({'A': 0, 'B': 1, 'C': 2, 'D': 3, 'E': 4}).values
    X = pd.DataFrame(
        np.random.randn(n_samples, n_features) + offsets[:, None],
        columns=[f"feature_{i + 1}" for i in range(n_features)]
    )
    y = pd.Series(labels, name='classe')

    config = {
        'models': {
            'gradient_boosting': {'params': {'n_estimators': 20}},
            'random_forest': {'params': {'n_estimators': 50}}
        }
    }

    models = train_classifiers(X, y, config)
    for trained in models.values():
        print_model_summary(trained)
