"""Test configuration and fixtures."""

import pytest
import pandas as pd
import numpy as np
import tempfile
from pathlib import Path

from lbw_risk.data_generation import PerinatalDataGenerator
from lbw_risk.pipeline.schema import GESTATIONAL_FLAGS, ORGANIC_FLAGS, TARGET


def baseline_record(**overrides):
    """A complete, low-risk perinatal record with canonical field names."""
    record = {
        TARGET: 0,
        'paternal_age': 30.0,
        'maternal_age': 28.0,
        'paternal_schooling': 12.0,
        'maternal_schooling': 12.0,
        'total_pregnancies': 1.0,
        'prenatal_start_month': 2.0,
        'prior_stillbirths': 0.0,
        'prior_abortions': 0.0,
        'last_birth_outcome': 9,
        'years_since_fetal_death': 0.0,
        'years_since_live_birth': 0.0,
        'marital_status': 1,
        'living_children': 0.0,
        'cigarettes_per_day': 0.0,
        'alcohol_per_week': 0.0,
        'drinks': 0.0,
        'smokes': 0.0,
        'amniocentesis': 0,
        'ultrasound': 1,
    }
    for flag in list(ORGANIC_FLAGS) + list(GESTATIONAL_FLAGS):
        record[flag] = 0
    record.update(overrides)
    return record


def make_frame(*records):
    """DataFrame from record dicts, all fields numeric (``None`` becomes NaN)."""
    return pd.DataFrame(list(records)).astype(float)


@pytest.fixture
def record_factory():
    return baseline_record


@pytest.fixture
def frame_factory():
    return make_frame


@pytest.fixture
def raw_perinatal_data():
    """Synthetic raw extract with canonical column names and missing values."""
    generator = PerinatalDataGenerator(seed=42)
    return generator.generate_dataset(400, target_prevalence=0.5, source_names=False)


@pytest.fixture
def raw_source_data():
    """Synthetic raw extract with the upper-case source column names."""
    generator = PerinatalDataGenerator(seed=7)
    return generator.generate_dataset(200, target_prevalence=0.5)


@pytest.fixture
def temp_directory():
    """Create temporary directory for testing."""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def sample_config():
    """Sample configuration for testing."""
    return {
        'random_seed': 42,
        'split': {'test_size': 0.2},
        'cross_validation': {'n_splits': 3},
        'feature_engineering': {
            'scaling': {'enabled': True, 'method': 'standard'},
            'categorical_encoding': {'drop_first': True, 'handle_unknown': 'ignore'},
        },
        'models': {
            'enabled': ['random_forest', 'ridge'],
            'random_forest': {'n_estimators': 20},
        },
        'hpo': {'enabled': False, 'n_trials': 2, 'opt_metric': 'recall'},
        'selection': {'metric': 'roc_auc'},
        'threshold': {'method': 'fixed', 'value': 0.47},
        'experiment_tracking': {'backend': 'none'},
        'mlflow': {
            'experiment_name': 'test_experiment',
            'tracking_uri': 'file:./test_mlruns',
        },
    }
