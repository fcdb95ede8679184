"""
Low Birth Weight Risk Pipeline

Prepares perinatal birth records into a modeling table of clinical risk indicators
(rule-based imputation, categorical binning, KPI risk tiers) and compares
classifiers that predict low birth weight from it.
"""

__version__ = "1.0.0"

from .pipeline import (
    MissingValueHandler,
    CategoricalBinner,
    RiskScorer,
    FeatureSelector,
    CategoricalEncoder,
    DataValidator,
    create_preparation_pipeline,
    PipelineError,
)
from .data_generation import PerinatalDataGenerator
from .utils import (
    ExperimentTracker,
    ThresholdOptimizer,
    ModelEvaluator,
    ModelComparator,
)

__all__ = [
    'MissingValueHandler',
    'CategoricalBinner',
    'RiskScorer',
    'FeatureSelector',
    'CategoricalEncoder',
    'DataValidator',
    'create_preparation_pipeline',
    'PipelineError',
    'PerinatalDataGenerator',
    'ExperimentTracker',
    'ThresholdOptimizer',
    'ModelEvaluator',
    'ModelComparator',
]
