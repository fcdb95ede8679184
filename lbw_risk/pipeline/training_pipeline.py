"""
Model Comparison Pipeline

Trains the five candidate classifiers on the prepared modeling table through one
shared preprocessing pipeline, tunes each with Optuna, compares them on a held-out
test split and fixes the decision threshold of the chosen model.
"""

from __future__ import annotations

import warnings
# sklearn deprecation noise from the penalized logistic regressions
warnings.filterwarnings("ignore", category=FutureWarning)

import sys
import argparse
import logging
from contextlib import nullcontext
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import joblib
import numpy as np
import pandas as pd
import yaml

import optuna
from optuna.samplers import TPESampler
import xgboost as xgb
from sklearn.ensemble import RandomForestClassifier
from sklearn.linear_model import LogisticRegression
from sklearn.model_selection import (
    StratifiedKFold, cross_val_predict, cross_validate, train_test_split,
)
from sklearn.pipeline import Pipeline

from lbw_risk.pipeline.feature_engineering import create_preprocessing_pipeline
from lbw_risk.pipeline.prepare_dataset import load_table
from lbw_risk.pipeline.schema import TARGET
from lbw_risk.utils.experiment_tracking import setup_experiment_tracking
from lbw_risk.utils.model_utils import ModelComparator, ModelEvaluator, ThresholdOptimizer


logger = logging.getLogger(__name__)

# Optuna / sklearn scorer names
SCORERS = {
    'recall': 'recall',
    'precision': 'precision',
    'accuracy': 'accuracy',
    'f1': 'f1',
    'roc_auc': 'roc_auc',
    'pr_auc': 'average_precision',
}


# =====================
# Model strategies
# =====================
@dataclass(frozen=True)
class ModelStrategy:
    """A pluggable classifier: how to build it and which hyperparameters to tune."""

    name: str
    build: Callable[[Dict[str, Any], int], Any]
    search_space: Callable[[optuna.Trial], Dict[str, Any]]


def _penalty_space(trial: optuna.Trial) -> Dict[str, Any]:
    # lambda in [1e-4, 1] expressed as sklearn's inverse strength
    return {'C': 1.0 / trial.suggest_float('penalty', 1e-4, 1.0, log=True)}


def _elastic_net_space(trial: optuna.Trial) -> Dict[str, Any]:
    return {**_penalty_space(trial), 'l1_ratio': trial.suggest_float('l1_ratio', 0.0, 1.0)}


def _random_forest_space(trial: optuna.Trial) -> Dict[str, Any]:
    return {
        'max_features': trial.suggest_float('max_features', 0.1, 1.0),
        'min_samples_leaf': trial.suggest_int('min_samples_leaf', 1, 40),
    }


def _xgboost_space(trial: optuna.Trial) -> Dict[str, Any]:
    return {
        'n_estimators': trial.suggest_int('n_estimators', 100, 1000, step=100),
        'max_depth': trial.suggest_int('max_depth', 1, 15),
        'learning_rate': trial.suggest_float('learning_rate', 0.01, 0.3, log=True),
        'gamma': trial.suggest_float('gamma', 1e-8, 30.0, log=True),
        'subsample': trial.suggest_float('subsample', 0.1, 1.0),
        'colsample_bytree': trial.suggest_float('colsample_bytree', 0.1, 1.0),
    }


def _logistic(penalty: str) -> Callable[[Dict[str, Any], int], LogisticRegression]:
    def build(params: Dict[str, Any], seed: int) -> LogisticRegression:
        defaults = {'penalty': penalty, 'solver': 'saga', 'max_iter': 5000, 'random_state': seed}
        if penalty == 'elasticnet':
            defaults['l1_ratio'] = 0.5
        return LogisticRegression(**{**defaults, **params})
    return build


MODEL_REGISTRY: Dict[str, ModelStrategy] = {
    'random_forest': ModelStrategy(
        'random_forest',
        lambda params, seed: RandomForestClassifier(
            **{'n_estimators': 500, 'n_jobs': -1, 'random_state': seed, **params}),
        _random_forest_space,
    ),
    'xgboost': ModelStrategy(
        'xgboost',
        lambda params, seed: xgb.XGBClassifier(
            **{'tree_method': 'hist', 'eval_metric': 'logloss', 'n_jobs': -1,
               'random_state': seed, **params}),
        _xgboost_space,
    ),
    'elastic_net': ModelStrategy('elastic_net', _logistic('elasticnet'), _elastic_net_space),
    'ridge': ModelStrategy('ridge', _logistic('l2'), _penalty_space),
    'lasso': ModelStrategy('lasso', _logistic('l1'), _penalty_space),
}


def convert_numpy_types(obj):
    """Convert numpy types to native Python types for YAML serialization."""
    if isinstance(obj, dict):
        return {k: convert_numpy_types(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [convert_numpy_types(v) for v in obj]
    if hasattr(obj, 'item'):
        return obj.item()
    return obj


# =====================
# ModelComparisonPipeline
# =====================
class ModelComparisonPipeline:
    """Train, tune and compare the candidate classifiers on the modeling table."""

    def __init__(self, config: Dict):
        self.config = config
        self.seed = int(config.get("random_seed", 42))
        self.models: Dict[str, Pipeline] = {}
        self.best_params: Dict[str, Dict[str, Any]] = {}
        self.cv_metrics: Dict[str, Dict[str, float]] = {}
        self.best_model_name: Optional[str] = None
        self.best_threshold: float = 0.5

        selection_cfg = config.get("selection", {})
        self.comparator = ModelComparator(primary_metric=selection_cfg.get("metric", "roc_auc"))

        threshold_cfg = config.get("threshold", {})
        self.threshold_optimizer = ThresholdOptimizer(
            method=threshold_cfg.get("method", "fixed"),
            value=threshold_cfg.get("value", 0.47),
            target_recall=threshold_cfg.get("target_recall", 0.7),
        )
        self.experiment_tracker = setup_experiment_tracking(config)

    # ---------- Data ----------
    def load_data(self, data_path: str) -> pd.DataFrame:
        df = load_table(data_path)
        if TARGET in df.columns:
            logger.info(f"Target prevalence: {df[TARGET].mean():.3f}")
        return df

    def prepare_features(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, pd.Series]:
        if TARGET not in df.columns:
            raise ValueError(f"Target column '{TARGET}' not found")
        y = df[TARGET].astype(int)
        X = df.drop(columns=[TARGET])
        logger.info(f"Prepared features: {list(X.columns)}")
        return X, y

    def split_data(self, X: pd.DataFrame, y: pd.Series):
        test_size = self.config.get("split", {}).get("test_size", 0.2)
        return train_test_split(X, y, test_size=test_size, stratify=y, random_state=self.seed)

    def _cv(self) -> StratifiedKFold:
        n_splits = self.config.get("cross_validation", {}).get("n_splits", 5)
        return StratifiedKFold(n_splits=n_splits, shuffle=True, random_state=self.seed)

    # ---------- Model ----------
    def enabled_models(self) -> List[str]:
        enabled = self.config.get("models", {}).get("enabled", list(MODEL_REGISTRY))
        unknown = [name for name in enabled if name not in MODEL_REGISTRY]
        if unknown:
            raise ValueError(f"Unknown models: {unknown}")
        return list(enabled)

    def build_pipeline(self, name: str, params: Optional[Dict[str, Any]] = None) -> Pipeline:
        """Shared preprocessing followed by the named classifier."""
        fixed = self.config.get("models", {}).get(name, {})
        estimator = MODEL_REGISTRY[name].build({**fixed, **(params or {})}, self.seed)

        steps: List[Tuple[str, Any]] = []
        for i, transformer in enumerate(create_preprocessing_pipeline(self.config)):
            steps.append((f"step_{i}_{transformer.__class__.__name__.lower()}", transformer))
        steps.append(("model", estimator))
        return Pipeline(steps)

    # ---------- HPO ----------
    def hyperparameter_search(self, name: str, X: pd.DataFrame, y: pd.Series) -> Dict[str, Any]:
        hpo_cfg = self.config.get("hpo", {})
        if not hpo_cfg.get("enabled", False):
            return {}

        metric_name = hpo_cfg.get("opt_metric", "recall")
        scoring = SCORERS[metric_name]
        strategy = MODEL_REGISTRY[name]
        cv = self._cv()

        def objective(trial: optuna.Trial) -> float:
            pipe = self.build_pipeline(name, strategy.search_space(trial))
            scores = cross_validate(pipe, X, y, cv=cv, scoring=scoring)
            return float(np.mean(scores["test_score"]))

        optuna.logging.set_verbosity(optuna.logging.WARNING)
        study = optuna.create_study(
            direction="maximize",
            sampler=TPESampler(seed=self.seed),
            study_name=f"{name}_hpo",
        )
        study.optimize(objective, n_trials=int(hpo_cfg.get("n_trials", 20)),
                       timeout=hpo_cfg.get("timeout_sec"), show_progress_bar=False)

        # Re-derive model params from the winning trial
        best = strategy.search_space(optuna.trial.FixedTrial(study.best_trial.params))
        logger.info(f"[HPO] {name}: best cv {metric_name}={study.best_value:.4f} params={best}")
        return best

    # ---------- Training ----------
    def train_model(self, name: str, X: pd.DataFrame, y: pd.Series) -> Pipeline:
        logger.info(f"Training {name}...")
        params = self.hyperparameter_search(name, X, y)
        self.best_params[name] = params

        pipe = self.build_pipeline(name, params)
        scores = cross_validate(pipe, X, y, cv=self._cv(), scoring=SCORERS)
        self.cv_metrics[name] = {f"cv_{m}": float(np.mean(scores[f"test_{m}"])) for m in SCORERS}
        logger.info(f"{name} cv: {self.cv_metrics[name]}")

        pipe.fit(X, y)
        self.models[name] = pipe
        return pipe

    def compare_models(self, X_train, y_train, X_test, y_test) -> pd.DataFrame:
        """Train every enabled model and evaluate it on the test split at 0.5."""
        for name in self.enabled_models():
            pipe = self.train_model(name, X_train, y_train)
            proba = pipe.predict_proba(X_test)[:, 1]
            self.comparator.add_model(name, y_test.to_numpy(), (proba >= 0.5).astype(int), proba,
                                      extra=self.cv_metrics[name])

        comparison = self.comparator.compare_models()
        self.best_model_name = self.comparator.get_best_model()
        logger.info(f"Model comparison:\n{comparison[['accuracy', 'recall', 'precision', 'f1_score', 'roc_auc']]}")
        logger.info(f"Selected model: {self.best_model_name}")
        return comparison

    # ---------- Threshold ----------
    def tune_threshold(self, X_train: pd.DataFrame, y_train: pd.Series) -> float:
        """Threshold of the selected model, from out-of-fold training predictions."""
        pipe = self.build_pipeline(self.best_model_name, self.best_params.get(self.best_model_name))
        oof = cross_val_predict(pipe, X_train, y_train, cv=self._cv(), method="predict_proba")[:, 1]
        self.best_threshold = float(self.threshold_optimizer.optimize(y_train.to_numpy(), oof))
        return self.best_threshold

    def evaluate_model(self, X: pd.DataFrame, y: pd.Series) -> Dict[str, float]:
        if self.best_model_name is None:
            raise ValueError("Model not trained yet")

        proba = self.models[self.best_model_name].predict_proba(X)[:, 1]
        y_pred = (proba >= self.best_threshold).astype(int)
        metrics = ModelEvaluator().calculate_metrics(y.to_numpy(), y_pred, proba)
        metrics["optimal_threshold"] = float(self.best_threshold)
        logger.info(f"{self.best_model_name} at threshold {self.best_threshold:.3f}: "
                    f"recall={metrics['recall']:.3f} precision={metrics['precision']:.3f} "
                    f"lift={metrics['lift']:.2f}")
        return metrics

    # ---------- Artifacts ----------
    def save_artifacts(self, output_dir: str, comparison: pd.DataFrame, metrics: Dict[str, float]):
        out = Path(output_dir)
        out.mkdir(parents=True, exist_ok=True)
        logger.info(f"Saving artifacts to {out}")

        joblib.dump(self.models[self.best_model_name], out / "best_model.joblib")
        (out / "optimal_threshold.txt").write_text(str(self.best_threshold), encoding="utf-8")
        comparison.to_csv(out / "model_comparison.csv")

        clean_metrics = convert_numpy_types({"model": self.best_model_name, **metrics})
        clean_params = convert_numpy_types(self.best_params)
        clean_config = convert_numpy_types(self.config)
        (out / "metrics.yaml").write_text(yaml.dump(clean_metrics), encoding="utf-8")
        (out / "best_params.yaml").write_text(yaml.dump(clean_params), encoding="utf-8")
        (out / "training_config.yaml").write_text(yaml.dump(clean_config), encoding="utf-8")

        if self.experiment_tracker:
            self.experiment_tracker.log_dict(clean_metrics, "metrics.yaml")
            self.experiment_tracker.log_dict(clean_params, "best_params.yaml")
            self.experiment_tracker.log_artifacts(str(out))

    # ---------- Orchestration ----------
    def run_pipeline(self, data_path: str, output_dir: str) -> Dict[str, float]:
        logger.info("Starting model comparison pipeline...")
        tracker = self.experiment_tracker
        run_name = self.config.get("mlflow", {}).get("run_name", "model_comparison")

        with (tracker.start_run(run_name) if tracker else nullcontext()):
            if tracker:
                tracker.log_params(self.config)

            df = self.load_data(data_path)
            X, y = self.prepare_features(df)
            X_train, X_test, y_train, y_test = self.split_data(X, y)
            logger.info(f"Train: {len(X_train)} records, test: {len(X_test)} records")

            comparison = self.compare_models(X_train, y_train, X_test, y_test)
            self.tune_threshold(X_train, y_train)
            metrics = self.evaluate_model(X_test, y_test)

            if tracker:
                for name, row in comparison.iterrows():
                    tracker.log_metrics({f"{name}.{k}": float(v) for k, v in row.items()})
                tracker.log_metrics(metrics)

            self.save_artifacts(output_dir, comparison, metrics)
            if tracker:
                tracker.log_model(self.models[self.best_model_name], "model",
                                  input_example=X_test.head(5))

        logger.info(f"Pipeline completed: {self.best_model_name} "
                    f"ROC-AUC={metrics['roc_auc']:.4f} recall={metrics['recall']:.4f}")
        return metrics


# =====================
# CLI entrypoint
# =====================

def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="Compare low birth weight classifiers")
    parser.add_argument("--config", type=str, required=True, help="Path to pipeline configuration file")
    parser.add_argument("--data", type=str, required=True, help="Prepared modeling dataset")
    parser.add_argument("--output", type=str, default="./models", help="Output directory for artifacts")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)

    with open(args.config, "r", encoding="utf-8") as f:
        config = yaml.safe_load(f)

    np.random.seed(config.get("random_seed", 42))

    pipeline = ModelComparisonPipeline(config)
    pipeline.run_pipeline(args.data, args.output)

    print("Training completed! Artifacts in:", args.output)


if __name__ == "__main__":
    sys.exit(main())
