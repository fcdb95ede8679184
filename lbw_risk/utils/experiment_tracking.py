"""
Experiment tracking utilities using MLflow.

Tracking is best-effort: a failing MLflow call is logged and never stops a run.
"""

import time
import mlflow
import mlflow.sklearn
import logging
from contextlib import nullcontext
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


class ExperimentTracker:
    """MLflow experiment tracking wrapper."""

    def __init__(self, config: Dict[str, Any]):
        """Initialize from a config holding an ``mlflow`` section."""
        self.config = config
        mlflow_config = config.get('mlflow', {})
        self.tracking_uri = mlflow_config.get('tracking_uri', 'file:./mlruns')
        self.experiment_name = mlflow_config.get('experiment_name', 'low_birth_weight')
        self.enabled = True

        try:
            mlflow.set_tracking_uri(self.tracking_uri)
            self._set_experiment()
        except Exception as e:
            logger.warning(f"MLflow unavailable, tracking disabled: {e}")
            self.enabled = False

    def _set_experiment(self):
        experiment = mlflow.get_experiment_by_name(self.experiment_name)
        if experiment is not None and experiment.lifecycle_stage == "deleted":
            # A deleted experiment keeps its name reserved
            self.experiment_name = f"{self.experiment_name}_{int(time.time())}"
        mlflow.set_experiment(self.experiment_name)

    def start_run(self, run_name: Optional[str] = None, nested: bool = False):
        """Start an MLflow run (a no-op context when tracking is disabled)."""
        if not self.enabled:
            return nullcontext()
        return mlflow.start_run(run_name=run_name, nested=nested)

    def log_params(self, params: Dict[str, Any], prefix: str = ""):
        """Log (flattened) parameters."""
        if not self.enabled:
            return
        for key, value in self._flatten_dict(params, prefix).items():
            try:
                mlflow.log_param(key, value)
            except Exception as e:
                logger.warning(f"Failed to log param {key}: {e}")

    def log_metrics(self, metrics: Dict[str, float], step: Optional[int] = None):
        """Log numeric metrics."""
        if not self.enabled:
            return
        for key, value in metrics.items():
            try:
                mlflow.log_metric(key, value, step=step)
            except Exception as e:
                logger.warning(f"Failed to log metric {key}: {e}")

    def log_artifacts(self, artifact_path: str):
        if not self.enabled:
            return
        try:
            mlflow.log_artifacts(artifact_path)
        except Exception as e:
            logger.warning(f"Failed to log artifacts: {e}")

    def log_dict(self, dictionary: Dict[str, Any], artifact_file: str):
        """Log a dictionary as a YAML or JSON artifact."""
        if not self.enabled:
            return
        try:
            mlflow.log_dict(dictionary, artifact_file)
            logger.info(f"Dictionary logged as {artifact_file}")
        except Exception as e:
            logger.warning(f"Failed to log dictionary to MLflow: {e}")

    def log_model(self, model, model_name: str, input_example=None):
        """Log a fitted scikit-learn pipeline."""
        if not self.enabled:
            return
        try:
            mlflow.sklearn.log_model(model, model_name, input_example=input_example)
        except Exception as e:
            logger.warning(f"Failed to log model: {e}")

    def _flatten_dict(self, d: Dict[str, Any], prefix: str = "") -> Dict[str, str]:
        """Flatten nested dictionary into dotted keys with string values."""
        items = {}
        for key, value in d.items():
            new_key = f"{prefix}.{key}" if prefix else key
            if isinstance(value, dict):
                items.update(self._flatten_dict(value, new_key))
            else:
                items[new_key] = str(value)
        return items


def setup_experiment_tracking(config: Dict[str, Any]) -> Optional[ExperimentTracker]:
    """Create a tracker unless ``experiment_tracking.backend`` disables it."""
    backend = config.get('experiment_tracking', {}).get('backend', 'mlflow')
    if backend == 'mlflow':
        return ExperimentTracker(config)
    logger.warning("No experiment tracking configured")
    return None
