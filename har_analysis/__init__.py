"""
Human Activity Recognition Analysis
====================================

Exploratory analysis and classifier comparison for the weight-lifting
exercise dataset.

Modules:
    - data_loader: CSV ingestion, configuration and schema checks
    - preprocessing: Column cleaning and stratified splitting
    - eda: Correlation analysis and exploratory figures
    - model: PCA + grid-searched classifiers
    - evaluation: Accuracy, confusion matrices and model comparison
    - prediction: Labels for the unlabelled evaluation table
"""

__version__ = "1.0.0"
__author__ = "Activity Analytics Team"
