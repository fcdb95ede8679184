"""
Feature Engineering Pipeline

This module turns resolved perinatal records into ordinal categories, composite
risk scores (KPIs) with their risk tiers, and the fixed modeling projection.
It also holds the encoder shared by every model in the comparison stage.
"""

import pandas as pd
import numpy as np
import logging
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple
from sklearn.base import BaseEstimator, TransformerMixin
from sklearn.pipeline import Pipeline

from .exceptions import InvalidFieldError, MissingDependencyError, UnmappedCategoryError
from .preprocessing import MissingValueHandler, DataScaler, require_columns, first_null_index
from .schema import (
    GESTATIONAL_FLAGS, HIGH_RISK, LOW_RISK, MODELING_COLUMNS, MODERATE_RISK, ORGANIC_FLAGS,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NumericBin:
    """Right-closed cutpoints over a numeric field: value <= upper_bounds[i] -> labels[i]."""

    source: str
    output: str
    upper_bounds: Tuple[float, ...]
    labels: Tuple[str, ...]
    minimum: float = 0

    def apply(self, values: pd.Series) -> pd.Series:
        below = values < self.minimum
        if below.any():
            raise UnmappedCategoryError(f"value below {self.minimum} has no bin",
                                        field=self.source, record_index=values.index[below][0])
        edges = [-np.inf, *self.upper_bounds, np.inf]
        binned = pd.cut(values, bins=edges, labels=list(self.labels), right=True, ordered=False)
        return binned.astype(object)


@dataclass(frozen=True)
class CodeBin:
    """Explicit code -> label mapping for a categorical code field."""

    source: str
    output: str
    codes: Dict[int, str]

    def apply(self, values: pd.Series) -> pd.Series:
        mapped = values.map(self.codes)
        unmapped = mapped.isna()
        if unmapped.any():
            index = values.index[unmapped][0]
            raise UnmappedCategoryError(f"unexpected code {values[index]!r}",
                                        field=self.source, record_index=index)
        return mapped.astype(object)


NUMERIC_BINS = [
    NumericBin('maternal_schooling', 'maternal_schooling_cat', (9, 15), ('low', 'medium', 'high')),
    NumericBin('total_pregnancies', 'total_pregnancies_cat', (1, 3),
               ('first-pregnancy', 'second-to-third', 'four-plus'), minimum=1),
    NumericBin('prenatal_start_month', 'prenatal_start_cat', (3, 5), ('early', 'medium', 'late')),
    NumericBin('prior_abortions', 'prior_abortions_cat', (0, 2), ('none', 'one-to-two', 'three-plus')),
    NumericBin('living_children', 'living_children_cat', (0, 2), ('zero', 'one-to-two', 'three-plus')),
    NumericBin('cigarettes_per_day', 'smoking_cat', (0, 20),
               ('non-smoker', 'light-smoker', 'heavy-smoker')),
    NumericBin('alcohol_per_week', 'alcohol_cat', (0, 2),
               ('non-drinker', 'light-drinker', 'heavy-drinker')),
]

CODE_BINS = [
    CodeBin('last_birth_outcome', 'last_birth_outcome_cat',
            {1: 'live', 2: 'fetal-death', 9: 'not-applicable'}),
    CodeBin('marital_status', 'marital_status_cat', {1: 'married', 2: 'unmarried'}),
]


class CategoricalBinner(BaseEstimator, TransformerMixin):
    """Map numeric and coded fields to ordinal category labels with fixed cutpoints.

    Source columns are kept; each label lands in a new ``*_cat`` column. Rules whose
    output column already exists are passed through, so re-running the binner on its
    own output changes nothing.
    """

    def __init__(self, rules: Optional[List[Any]] = None):
        self.rules = rules

    def _rules(self) -> List[Any]:
        return list(NUMERIC_BINS + CODE_BINS if self.rules is None else self.rules)

    def fit(self, X: pd.DataFrame, y=None):
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """Add one labeled column per binning rule."""
        start_time = time.time()
        X_transformed = X.copy()
        passthrough = []

        for rule in self._rules():
            if rule.output in X_transformed.columns:
                passthrough.append(rule.output)
                continue

            require_columns(X_transformed, [rule.source], stage='categorical binner')
            values = X_transformed[rule.source]
            if not pd.api.types.is_numeric_dtype(values):
                raise InvalidFieldError("binner expects a numeric source column", field=rule.source)

            index = first_null_index(values)
            if index is not None:
                raise MissingDependencyError("missing value found; resolve missing values before binning",
                                             field=rule.source, record_index=index)

            X_transformed[rule.output] = rule.apply(values)
            logger.debug(f"{rule.output}: {X_transformed[rule.output].value_counts().to_dict()}")

        if passthrough:
            logger.info(f"Already binned, left unchanged: {passthrough}")

        elapsed_time = time.time() - start_time
        logger.info(f"Binned {len(self._rules()) - len(passthrough)} fields in {elapsed_time:.2f} seconds")
        return X_transformed


# Behavioral risk decision table over (smoking level, drinking level)
BEHAVIORAL_SCORES: Dict[Tuple[str, str], int] = {
    ('none', 'none'): 0,
    ('light', 'none'): 1,
    ('heavy', 'none'): 2,
    ('none', 'light'): 1,
    ('none', 'heavy'): 2,
    ('light', 'light'): 2,
    ('heavy', 'light'): 3,
    ('heavy', 'heavy'): 4,
    # Not covered by the clinical scoring rules; keeps their default weight of 1
    ('light', 'heavy'): 1,
}

# Score for any state outside the table, e.g. a median-imputed flag of 0.5
BEHAVIORAL_FALLBACK = 1
UNMATCHED = 'unmatched'

# Tier cutpoints: score <= first bound -> low, <= second -> moderate, else high
TIER_BOUNDS: Dict[str, Tuple[int, int]] = {
    'kpi1_organic': (0, 2),
    'kpi2_gestational': (0, 1),
    'kpi3_behavioral': (0, 2),
    'kpi4_prenatal': (0, 2),
}

SCHOOLING_POINTS = {'low': 2, 'medium': 1, 'high': 0}
PRENATAL_POINTS = {'late': 2, 'medium': 1, 'early': 0}


def habit_level(flag: pd.Series, binned: pd.Series, heavy_label: str) -> np.ndarray:
    """none / light / heavy from the habit flag and its binned amount; other flag values are unmatched."""
    return np.select(
        [flag == 0, flag != 1, binned == heavy_label],
        ['none', UNMATCHED, 'heavy'],
        default='light',
    )


def risk_tier(scores: pd.Series, bounds: Tuple[int, int]) -> pd.Series:
    """Map non-negative integer scores to low / moderate / high."""
    edges = [-np.inf, bounds[0], bounds[1], np.inf]
    tiers = pd.cut(scores, bins=edges, labels=[LOW_RISK, MODERATE_RISK, HIGH_RISK],
                   right=True, ordered=False)
    return tiers.astype(object)


class RiskScorer(BaseEstimator, TransformerMixin):
    """Compute the four composite KPI scores and their risk tiers."""

    BINNED_INPUTS = ['maternal_schooling_cat', 'marital_status_cat', 'prenatal_start_cat',
                     'smoking_cat', 'alcohol_cat']
    BINARY_FLAGS = list(ORGANIC_FLAGS) + list(GESTATIONAL_FLAGS) + ['ultrasound']
    FLAG_INPUTS = BINARY_FLAGS + ['smokes', 'drinks']

    def fit(self, X: pd.DataFrame, y=None):
        return self

    def _check_flags(self, X: pd.DataFrame):
        for flag in self.FLAG_INPUTS:
            values = X[flag]
            index = first_null_index(values)
            if index is not None:
                raise MissingDependencyError("missing flag; resolve missing values before scoring",
                                             field=flag, record_index=index)
            if flag not in self.BINARY_FLAGS:
                continue
            invalid = ~values.isin([0, 1])
            if invalid.any():
                index = values.index[invalid][0]
                raise UnmappedCategoryError(f"flag value {values[index]!r} is not 0 or 1",
                                            field=flag, record_index=index)

    @staticmethod
    def organic_score(X: pd.DataFrame) -> pd.Series:
        """KPI1: weighted organic comorbidities."""
        return sum(X[flag] * weight for flag, weight in ORGANIC_FLAGS.items()).astype(int)

    @staticmethod
    def gestational_score(X: pd.DataFrame) -> pd.Series:
        """KPI2: weighted gestational comorbidities."""
        return sum(X[flag] * weight for flag, weight in GESTATIONAL_FLAGS.items()).astype(int)

    @staticmethod
    def behavioral_score(X: pd.DataFrame) -> pd.Series:
        """KPI3: table lookup on smoking and drinking intensity."""
        smoking = habit_level(X['smokes'], X['smoking_cat'], 'heavy-smoker')
        drinking = habit_level(X['drinks'], X['alcohol_cat'], 'heavy-drinker')
        scores = [BEHAVIORAL_SCORES.get(state, BEHAVIORAL_FALLBACK) for state in zip(smoking, drinking)]
        return pd.Series(scores, index=X.index, dtype=int)

    @staticmethod
    def prenatal_score(X: pd.DataFrame) -> pd.Series:
        """KPI4: schooling + marital + prenatal start + ultrasound not performed."""
        score = (
            X['maternal_schooling_cat'].map(SCHOOLING_POINTS)
            + (X['marital_status_cat'] == 'unmarried').astype(int)
            + X['prenatal_start_cat'].map(PRENATAL_POINTS)
            + (X['ultrasound'] == 0).astype(int)
        )
        return score.astype(int)

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        """Add ``kpi*`` score columns and ``kpi*_tier`` columns."""
        start_time = time.time()
        logger.info("Computing composite risk scores...")

        require_columns(X, self.BINNED_INPUTS, error=MissingDependencyError, stage='risk scorer')
        require_columns(X, self.FLAG_INPUTS, stage='risk scorer')
        self._check_flags(X)

        X_transformed = X.copy()
        scores = {
            'kpi1_organic': self.organic_score(X),
            'kpi2_gestational': self.gestational_score(X),
            'kpi3_behavioral': self.behavioral_score(X),
            'kpi4_prenatal': self.prenatal_score(X),
        }
        for name, score in scores.items():
            X_transformed[name] = score
            X_transformed[f'{name}_tier'] = risk_tier(score, TIER_BOUNDS[name])
            logger.info(f"{name} tiers: {X_transformed[f'{name}_tier'].value_counts().to_dict()}")

        elapsed_time = time.time() - start_time
        logger.info(f"Computed {len(scores)} KPIs in {elapsed_time:.2f} seconds")
        return X_transformed


class FeatureSelector(BaseEstimator, TransformerMixin):
    """Project a fully transformed dataset onto the fixed modeling schema."""

    def __init__(self, columns: Optional[List[str]] = None):
        self.columns = columns

    def _columns(self) -> List[str]:
        return list(MODELING_COLUMNS if self.columns is None else self.columns)

    def fit(self, X: pd.DataFrame, y=None):
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        columns = self._columns()
        require_columns(X, columns, error=MissingDependencyError, stage='feature selector')
        logger.info(f"Selected {len(columns)} modeling columns from {X.shape[1]}")
        return X[columns].copy()

    def get_feature_names_out(self, input_features=None):
        return self._columns()


class CategoricalEncoder(BaseEstimator, TransformerMixin):
    """One-hot encode categorical columns with the categories seen at fit time."""

    def __init__(self, drop_first: bool = True, handle_unknown: str = 'ignore'):
        """
        Initialize categorical encoder.

        Args:
            drop_first: Drop the first level of each feature (reference coding)
            handle_unknown: 'ignore' encodes unseen categories as all zeros, 'error' raises
        """
        self.drop_first = drop_first
        self.handle_unknown = handle_unknown
        self.categories_: Dict[str, List[str]] = {}

    def fit(self, X: pd.DataFrame, y=None):
        categorical = X.select_dtypes(include=['object', 'category', 'string']).columns.tolist()
        self.categories_ = {
            feature: sorted(X[feature].dropna().astype(str).unique().tolist())
            for feature in categorical
        }
        logger.debug(f"Encoder categories: {self.categories_}")
        return self

    def transform(self, X: pd.DataFrame) -> pd.DataFrame:
        X_transformed = X.copy()

        for feature, categories in self.categories_.items():
            values = X_transformed[feature].astype(str)
            if self.handle_unknown == 'error':
                unknown = ~values.isin(categories)
                if unknown.any():
                    index = values.index[unknown][0]
                    raise UnmappedCategoryError(f"category {values[index]!r} not seen during fit",
                                                field=feature, record_index=index)

            kept = categories[1:] if self.drop_first else categories
            dummies = pd.DataFrame(
                {f'{feature}_{category}': (values == category).astype(int) for category in kept},
                index=X_transformed.index,
            )
            X_transformed = pd.concat([X_transformed.drop(columns=[feature]), dummies], axis=1)

        return X_transformed

    def get_feature_names_out(self, input_features=None):
        names = []
        for feature, categories in self.categories_.items():
            kept = categories[1:] if self.drop_first else categories
            names.extend(f'{feature}_{category}' for category in kept)
        return names


def create_preparation_pipeline(config: Optional[Dict] = None) -> Pipeline:
    """Chain resolver -> binner -> scorer -> selector in their required order."""
    config = config or {}
    return Pipeline([
        ('resolve', MissingValueHandler()),
        ('bin', CategoricalBinner()),
        ('score', RiskScorer()),
        ('select', FeatureSelector(columns=config.get('modeling_columns'))),
    ])


def create_preprocessing_pipeline(config: Dict) -> List[Any]:
    """Create the model-side preprocessing steps shared by every model."""
    scaling_config = config.get('feature_engineering', {}).get('scaling', {})
    encoding_config = config.get('feature_engineering', {}).get('categorical_encoding', {})

    pipeline_steps = []
    if scaling_config.get('enabled', True):
        pipeline_steps.append(DataScaler(method=scaling_config.get('method', 'standard')))

    # Encoding after scaling so dummy columns stay 0/1
    pipeline_steps.append(CategoricalEncoder(
        drop_first=encoding_config.get('drop_first', True),
        handle_unknown=encoding_config.get('handle_unknown', 'ignore'),
    ))

    logger.info(f"Created preprocessing pipeline with {len(pipeline_steps)} steps")
    return pipeline_steps
