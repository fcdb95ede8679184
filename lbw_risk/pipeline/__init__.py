"""Preparation stages and shared model-side preprocessing."""

from .exceptions import (
    PipelineError,
    InvalidFieldError,
    MissingDependencyError,
    UnmappedCategoryError,
    UnresolvedValueError,
)
from .preprocessing import (
    ImputationStatistics,
    MissingValueHandler,
    DataValidator,
    DataScaler,
)
from .feature_engineering import (
    CategoricalBinner,
    RiskScorer,
    FeatureSelector,
    CategoricalEncoder,
    create_preparation_pipeline,
    create_preprocessing_pipeline,
)
from .prepare_dataset import DatasetPreparer, load_table, write_table

__all__ = [
    'PipelineError',
    'InvalidFieldError',
    'MissingDependencyError',
    'UnmappedCategoryError',
    'UnresolvedValueError',
    'ImputationStatistics',
    'MissingValueHandler',
    'DataValidator',
    'DataScaler',
    'CategoricalBinner',
    'RiskScorer',
    'FeatureSelector',
    'CategoricalEncoder',
    'create_preparation_pipeline',
    'create_preprocessing_pipeline',
    'DatasetPreparer',
    'load_table',
    'write_table',
]
