"""
Model utilities for threshold tuning, evaluation and model comparison.
"""

import numpy as np
import pandas as pd
from typing import Dict, Optional
from sklearn.metrics import (
    roc_auc_score, average_precision_score, f1_score,
    precision_score, recall_score, accuracy_score,
    precision_recall_curve, roc_curve, confusion_matrix,
)
import logging

logger = logging.getLogger(__name__)


class ThresholdOptimizer:
    """Choose the probability cut that turns scores into low birth weight alerts."""

    METHODS = ('fixed', 'f1_optimal', 'precision_recall_curve', 'youden_j', 'recall_target')

    def __init__(self, method: str = 'fixed', value: float = 0.47, target_recall: float = 0.7):
        """
        Initialize threshold optimizer.

        Args:
            method: One of 'fixed', 'f1_optimal', 'precision_recall_curve',
                'youden_j', 'recall_target'
            value: Threshold returned by the 'fixed' method
            target_recall: Minimum recall required by the 'recall_target' method
        """
        if method not in self.METHODS:
            raise ValueError(f"Unknown optimization method: {method}")
        self.method = method
        self.value = value
        self.target_recall = target_recall

    def optimize(self, y_true: np.ndarray, y_proba: np.ndarray) -> float:
        """
        Find the decision threshold.

        Args:
            y_true: True binary labels
            y_proba: Predicted probabilities of the positive class

        Returns:
            Threshold value in [0, 1]
        """
        if self.method == 'fixed':
            logger.info(f"Using fixed threshold: {self.value:.3f}")
            return float(self.value)
        if self.method == 'f1_optimal':
            return self._optimize_f1(y_true, y_proba)
        if self.method == 'precision_recall_curve':
            return self._optimize_precision_recall(y_true, y_proba)
        if self.method == 'youden_j':
            return self._optimize_youden_j(y_true, y_proba)
        return self._optimize_recall_target(y_true, y_proba)

    def _optimize_f1(self, y_true: np.ndarray, y_proba: np.ndarray) -> float:
        """Grid search for the threshold that maximizes F1."""
        best_f1 = 0.0
        best_threshold = 0.5

        for threshold in np.linspace(0.1, 0.9, 81):
            f1 = f1_score(y_true, (y_proba >= threshold).astype(int), zero_division=0)
            if f1 > best_f1:
                best_f1 = f1
                best_threshold = float(threshold)

        logger.info(f"Optimal threshold for F1: {best_threshold:.3f} (F1: {best_f1:.3f})")
        return best_threshold

    def _optimize_precision_recall(self, y_true: np.ndarray, y_proba: np.ndarray) -> float:
        """Best-F1 point of the precision-recall curve."""
        precision, recall, thresholds = precision_recall_curve(y_true, y_proba)
        f1_scores = 2 * (precision * recall) / (precision + recall + 1e-8)
        best_idx = int(np.argmax(f1_scores[:-1])) if len(thresholds) else 0

        best_threshold = float(thresholds[best_idx]) if len(thresholds) else 0.5
        logger.info(f"Optimal threshold from PR curve: {best_threshold:.3f}")
        return best_threshold

    def _optimize_youden_j(self, y_true: np.ndarray, y_proba: np.ndarray) -> float:
        """Threshold maximizing sensitivity + specificity - 1."""
        fpr, tpr, thresholds = roc_curve(y_true, y_proba)
        best_idx = int(np.argmax(tpr - fpr))

        best_threshold = float(min(thresholds[best_idx], 1.0))
        logger.info(f"Optimal threshold from Youden's J: {best_threshold:.3f}")
        return best_threshold

    def _optimize_recall_target(self, y_true: np.ndarray, y_proba: np.ndarray) -> float:
        """Highest threshold whose recall still reaches ``target_recall``."""
        fpr, tpr, thresholds = roc_curve(y_true, y_proba)
        reaching = np.where(tpr >= self.target_recall)[0]
        best_threshold = float(min(thresholds[reaching[0]], 1.0)) if len(reaching) else 0.0
        logger.info(f"Threshold reaching recall {self.target_recall:.2f}: {best_threshold:.3f}")
        return best_threshold


def lift(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """Positive rate among flagged records divided by the base positive rate."""
    y_true = np.asarray(y_true)
    y_pred = np.asarray(y_pred)
    base_rate = y_true.mean() if len(y_true) else 0.0
    flagged = y_pred == 1
    if base_rate == 0 or not flagged.any():
        return 0.0
    return float(y_true[flagged].mean() / base_rate)


class ModelEvaluator:
    """Classification metrics for a set of predictions."""

    def calculate_metrics(self,
                          y_true: np.ndarray,
                          y_pred: np.ndarray,
                          y_proba: np.ndarray) -> Dict[str, float]:
        """
        Calculate evaluation metrics.

        Args:
            y_true: True binary labels
            y_pred: Predicted binary labels
            y_proba: Predicted probabilities

        Returns:
            Dictionary of metrics
        """
        metrics = {
            'accuracy': accuracy_score(y_true, y_pred),
            'precision': precision_score(y_true, y_pred, zero_division=0),
            'recall': recall_score(y_true, y_pred, zero_division=0),
            'f1_score': f1_score(y_true, y_pred, zero_division=0),
            'roc_auc': roc_auc_score(y_true, y_proba),
            'pr_auc': average_precision_score(y_true, y_proba),
        }

        tn, fp, fn, tp = confusion_matrix(y_true, y_pred, labels=[0, 1]).ravel()
        metrics['true_negatives'] = int(tn)
        metrics['false_positives'] = int(fp)
        metrics['false_negatives'] = int(fn)
        metrics['true_positives'] = int(tp)

        metrics['specificity'] = tn / (tn + fp) if (tn + fp) > 0 else 0.0
        metrics['sensitivity'] = metrics['recall']
        metrics['lift'] = lift(y_true, y_pred)

        return {k: float(v) if not isinstance(v, int) else v for k, v in metrics.items()}


class ModelComparator:
    """Collect test-set metrics per model and rank them."""

    def __init__(self, primary_metric: str = 'roc_auc'):
        self.primary_metric = primary_metric
        self.results: Dict[str, Dict[str, float]] = {}

    def add_model(self,
                  name: str,
                  y_true: np.ndarray,
                  y_pred: np.ndarray,
                  y_proba: np.ndarray,
                  extra: Optional[Dict[str, float]] = None):
        """Add model results for comparison."""
        metrics = ModelEvaluator().calculate_metrics(y_true, y_pred, y_proba)
        metrics.update(extra or {})
        self.results[name] = metrics

    def compare_models(self) -> pd.DataFrame:
        """Comparison table, best model first."""
        if not self.results:
            return pd.DataFrame()

        comparison_df = pd.DataFrame(self.results).T
        comparison_df.index.name = 'model'
        if self.primary_metric in comparison_df.columns:
            comparison_df = comparison_df.sort_values(self.primary_metric, ascending=False)
        return comparison_df

    def get_best_model(self, metric: Optional[str] = None) -> Optional[str]:
        """Name of the best model for ``metric`` (defaults to the primary metric)."""
        metric = metric or self.primary_metric
        scored = {name: m[metric] for name, m in self.results.items() if metric in m}
        if not scored:
            return None
        return max(scored, key=scored.get)
