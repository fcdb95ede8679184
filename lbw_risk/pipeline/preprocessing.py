"""
Data preprocessing utilities: rule-based missing value resolution, validation and scaling.
"""

import pandas as pd
import numpy as np
import logging
import time
from dataclasses import dataclass, asdict
from typing import Callable, Dict, List, Optional, Tuple, Union
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.preprocessing import StandardScaler, MinMaxScaler, RobustScaler

from .exceptions import InvalidFieldError, MissingDependencyError, UnresolvedValueError
from .schema import DROPPED_COLUMNS, GESTATIONAL_FLAGS, ORGANIC_FLAGS, TARGET

logger = logging.getLogger(__name__)

# Every field read or written by the resolver rules
RESOLVER_FIELDS = [
    'maternal_age',
    'maternal_schooling',
    'total_pregnancies',
    'prenatal_start_month',
    'prior_stillbirths',
    'prior_abortions',
    'living_children',
    'last_birth_outcome',
    'cigarettes_per_day',
    'alcohol_per_week',
    'drinks',
    'smokes',
]


def require_columns(X: pd.DataFrame, columns: List[str], error=InvalidFieldError, stage: str = ''):
    """Raise ``error`` naming the first column of ``columns`` absent from ``X``."""
    for column in columns:
        if column not in X.columns:
            prefix = f"{stage}: " if stage else ''
            raise error(f"{prefix}required column is not present", field=column)


def first_null_index(series: pd.Series):
    """Index label of the first null in ``series`` (None when there is none)."""
    nulls = series.index[series.isna()]
    return nulls[0] if len(nulls) else None


@dataclass(frozen=True)
class ImputationStatistics:
    """Dataset-wide aggregates used by the resolver, computed once from pre-imputation columns."""

    maternal_age_mean: float
    maternal_schooling_mean: float
    total_pregnancies_median: float
    smoker_cigarettes_median: float
    drinker_alcohol_median: float
    drinks_median: float
    smokes_median: float

    @classmethod
    def from_frame(cls, X: pd.DataFrame) -> 'ImputationStatistics':
        """Compute the aggregates, ignoring missing values."""
        smokers = X.loc[X['smokes'] == 1, 'cigarettes_per_day']
        drinkers = X.loc[X['drinks'] == 1, 'alcohol_per_week']
        return cls(
            maternal_age_mean=float(X['maternal_age'].mean()),
            maternal_schooling_mean=float(X['maternal_schooling'].mean()),
            total_pregnancies_median=float(X['total_pregnancies'].median()),
            smoker_cigarettes_median=float(smokers.median()),
            drinker_alcohol_median=float(drinkers.median()),
            drinks_median=float(X['drinks'].median()),
            smokes_median=float(X['smokes'].median()),
        )

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


class MissingValueHandler(BaseEstimator, TransformerMixin):
    """Resolve missing values with a fixed rule per field.

    ``fit`` computes :class:`ImputationStatistics` over the full dataset; ``transform``
    applies the rules in a fixed order, each rule seeing the fields already resolved
    by the rules before it. Paternal fields and the years-since fields are dropped.
    """

    def __init__(self, drop_columns: Optional[List[str]] = None):
        """
        Initialize missing value handler.

        Args:
            drop_columns: Fields removed instead of imputed (defaults to the paternal
                and years-since fields)
        """
        self.drop_columns = drop_columns
        self.statistics_: Optional[ImputationStatistics] = None
        self.imputed_counts_: Dict[str, int] = {}

    def _drop_columns(self) -> List[str]:
        return list(DROPPED_COLUMNS if self.drop_columns is None else self.drop_columns)

    def _required_fields(self) -> List[str]:
        return self._drop_columns() + RESOLVER_FIELDS

    def fit(self, X: pd.DataFrame, y=None):
        """Compute the aggregate statistics (first phase)."""
        start_time = time.time()
        logger.info("Fitting missing value handler...")

        require_columns(X, self._required_fields(), stage='missing value handler')
        self.statistics_ = ImputationStatistics.from_frame(X)

        elapsed_time = time.time() - start_time
        logger.info(f"Computed imputation statistics in {elapsed_time:.2f} seconds: "
                    f"{self.statistics_.to_dict()}")
        return self

    def _rules(self) -> List[Tuple[str, Callable[[pd.DataFrame], Union[float, pd.Series]]]]:
        """Ordered (field, replacement) rules. Later rules read fields resolved earlier."""
        stats = self.statistics_

        def conditional(frame: pd.DataFrame, column: str, value: float) -> pd.Series:
            return pd.Series(np.where(frame[column] == 0, 0.0, value), index=frame.index)

        return [
            ('maternal_age', lambda f: stats.maternal_age_mean),
            ('maternal_schooling', lambda f: stats.maternal_schooling_mean),
            ('total_pregnancies', lambda f: stats.total_pregnancies_median),
            ('prenatal_start_month', lambda f: 0.0),
            ('prior_stillbirths', lambda f: 0.0),
            ('prior_abortions', lambda f: 0.0),
            ('living_children',
             lambda f: pd.Series(np.where(f['last_birth_outcome'] == 1, 1.0, 0.0), index=f.index)),
            ('cigarettes_per_day', lambda f: conditional(f, 'smokes', stats.smoker_cigarettes_median)),
            ('alcohol_per_week', lambda f: conditional(f, 'drinks', stats.drinker_alcohol_median)),
            ('drinks', lambda f: conditional(f, 'alcohol_per_week', stats.drinks_median)),
            ('smokes', lambda f: conditional(f, 'cigarettes_per_day', stats.smokes_median)),
        ]

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """Apply the resolver rules (second phase)."""
        if self.statistics_ is None:
            raise MissingDependencyError("missing value handler must be fitted before transform")

        start_time = time.time()
        logger.info("Resolving missing values...")

        require_columns(X, self._required_fields(), stage='missing value handler')
        X_transformed = X.drop(columns=self._drop_columns()).copy()

        self.imputed_counts_ = {}
        for column, replacement in self._rules():
            missing = X_transformed[column].isna()
            self.imputed_counts_[column] = int(missing.sum())
            if missing.any():
                X_transformed[column] = (
                    X_transformed[column].where(~missing, replacement(X_transformed)).infer_objects())

        for column in X_transformed.columns:
            index = first_null_index(X_transformed[column])
            if index is not None:
                raise UnresolvedValueError("missing value survived imputation",
                                           field=column, record_index=index)

        elapsed_time = time.time() - start_time
        imputed = {k: v for k, v in self.imputed_counts_.items() if v}
        logger.info(f"Imputed {sum(imputed.values())} values across {len(imputed)} fields "
                    f"in {elapsed_time:.2f} seconds: {imputed}")
        return X_transformed


class DataValidator:
    """Validate data quality and consistency."""

    def __init__(self):
        self.validation_rules = {}

    def add_rule(self, feature: str, rule_type: str, **kwargs):
        """Add validation rule for a feature."""
        self.validation_rules.setdefault(feature, []).append({
            'type': rule_type,
            'params': kwargs
        })

    def validate(self, df: pd.DataFrame) -> Dict[str, List[str]]:
        """Validate dataframe against rules; returns messages per violating feature."""
        violations = {}

        for feature, rules in self.validation_rules.items():
            if feature not in df.columns:
                continue

            feature_violations = []
            values = df[feature]

            for rule in rules:
                if rule['type'] == 'range':
                    min_val = rule['params'].get('min')
                    max_val = rule['params'].get('max')

                    if min_val is not None:
                        violation_count = (values < min_val).sum()
                        if violation_count > 0:
                            feature_violations.append(f"{violation_count} values below minimum {min_val}")

                    if max_val is not None:
                        violation_count = (values > max_val).sum()
                        if violation_count > 0:
                            feature_violations.append(f"{violation_count} values above maximum {max_val}")

                elif rule['type'] == 'categorical':
                    allowed_values = rule['params'].get('allowed_values', [])
                    violation_count = (values.notna() & ~values.isin(allowed_values)).sum()
                    if violation_count > 0:
                        feature_violations.append(f"{violation_count} invalid categorical values")

                elif rule['type'] == 'missing_rate':
                    max_missing_rate = rule['params'].get('max_rate', 0.1)
                    missing_rate = values.isnull().mean()
                    if missing_rate > max_missing_rate:
                        feature_violations.append(f"Missing rate {missing_rate:.2%} exceeds {max_missing_rate:.2%}")

            if feature_violations:
                violations[feature] = feature_violations

        return violations

    def setup_perinatal_rules(self):
        """Setup validation rules for the perinatal source schema."""
        self.add_rule('maternal_age', 'range', min=10, max=60)
        self.add_rule('maternal_schooling', 'range', min=0, max=30)
        self.add_rule('total_pregnancies', 'range', min=1, max=30)
        self.add_rule('prenatal_start_month', 'range', min=0, max=9)
        self.add_rule('cigarettes_per_day', 'range', min=0, max=100)
        self.add_rule('alcohol_per_week', 'range', min=0, max=50)
        for count in ['prior_stillbirths', 'prior_abortions', 'living_children']:
            self.add_rule(count, 'range', min=0, max=20)

        self.add_rule('last_birth_outcome', 'categorical', allowed_values=[1, 2, 9])
        self.add_rule('marital_status', 'categorical', allowed_values=[1, 2])

        flags = list(ORGANIC_FLAGS) + list(GESTATIONAL_FLAGS) + [
            'smokes', 'drinks', 'amniocentesis', 'ultrasound', TARGET
        ]
        for flag in flags:
            self.add_rule(flag, 'categorical', allowed_values=[0, 1])

        # Every record needs a label
        self.add_rule(TARGET, 'missing_rate', max_rate=0.0)


class DataScaler(BaseEstimator, TransformerMixin):
    """Scale numeric predictors while leaving categorical columns untouched."""

    SCALERS = {
        'standard': StandardScaler,
        'minmax': MinMaxScaler,
        'robust': RobustScaler,
    }

    def __init__(self, method: str = 'standard'):
        """
        Initialize scaler.

        Args:
            method: Scaling method ('standard', 'minmax', 'robust')
        """
        self.method = method
        self.scaler_ = None
        self.numeric_features_ = []

    def fit(self, X: pd.DataFrame, y=None):
        """Fit the scaler on the numeric columns of ``X``."""
        if self.method not in self.SCALERS:
            raise ValueError(f"Unknown scaling method: {self.method}")

        self.numeric_features_ = X.select_dtypes(include=[np.number]).columns.tolist()
        self.scaler_ = self.SCALERS[self.method]()
        if self.numeric_features_:
            self.scaler_.fit(X[self.numeric_features_])

        logger.debug(f"Fitted {self.method} scaler for {self.numeric_features_}")
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """Transform by scaling numeric features."""
        X_transformed = X.copy()
        if self.numeric_features_:
            X_transformed[self.numeric_features_] = self.scaler_.transform(X_transformed[self.numeric_features_])
        return X_transformed
