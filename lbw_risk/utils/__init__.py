"""Utility modules for evaluation, tracking and exploratory statistics."""

from .experiment_tracking import ExperimentTracker, setup_experiment_tracking
from .model_utils import (
    ThresholdOptimizer,
    ModelEvaluator,
    ModelComparator,
    lift,
)
from .statistical_tests import (
    categorical_association,
    numeric_association,
    missing_value_report,
    association_summary,
)

__all__ = [
    'ExperimentTracker',
    'setup_experiment_tracking',
    'ThresholdOptimizer',
    'ModelEvaluator',
    'ModelComparator',
    'lift',
    'categorical_association',
    'numeric_association',
    'missing_value_report',
    'association_summary',
]
