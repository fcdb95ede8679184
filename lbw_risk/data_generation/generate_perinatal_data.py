"""
Synthetic Perinatal Data Generator

Generates birth records in the raw extract layout (upper-case source column names)
so the preparation and training pipelines can be exercised without the registry data.
Maternal history, behavior and clinical flags are drawn with simple correlations and the
low birth weight outcome is sampled from a logistic risk built on the KPI drivers.
"""

import argparse
import logging
import time
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
import yaml

from lbw_risk.pipeline.prepare_dataset import write_table
from lbw_risk.pipeline.schema import GESTATIONAL_FLAGS, ORGANIC_FLAGS, RAW_COLUMN_MAP, TARGET

logger = logging.getLogger(__name__)

# Approximate prevalence of each clinical flag
FLAG_RATES: Dict[str, float] = {
    'anemia': 0.06,
    'cardiac_disease': 0.02,
    'pulmonary_disease': 0.02,
    'diabetes': 0.04,
    'herpes': 0.02,
    'hydramnios': 0.01,
    'hemoglobinopathy': 0.005,
    'renal_disease': 0.01,
    'rh_sensitization': 0.01,
    'chronic_hypertension': 0.03,
    'pregnancy_hypertension': 0.06,
    'eclampsia': 0.01,
    'incompetent_cervix': 0.01,
    'risk_medication': 0.03,
    'prior_preterm_birth': 0.04,
    'uterine_bleeding': 0.03,
    'amniocentesis': 0.05,
    'ultrasound': 0.70,
}


class PerinatalDataGenerator:
    """Generate synthetic perinatal records with source-style missing values."""

    def __init__(self, seed: int = 42, missing_value_rates: Optional[Dict[str, float]] = None):
        """Initialize the generator with a random seed and missing value configuration.

        Args:
            seed: Random seed for reproducibility
            missing_value_rates: Fraction of nulls per canonical field.
                Default covers the fields the resolver knows how to fill.
        """
        self.seed = seed
        self.rng = np.random.default_rng(seed)

        self.missing_value_rates = missing_value_rates if missing_value_rates is not None else {
            'maternal_age': 0.01,
            'maternal_schooling': 0.03,
            'total_pregnancies': 0.01,
            'prenatal_start_month': 0.02,
            'prior_stillbirths': 0.01,
            'prior_abortions': 0.01,
            'living_children': 0.02,
            'cigarettes_per_day': 0.02,
            'alcohol_per_week': 0.02,
            'smokes': 0.01,
            'drinks': 0.01,
            'paternal_age': 0.15,
            'paternal_schooling': 0.20,
        }

    def _binary(self, p, n: int) -> np.ndarray:
        return (self.rng.random(n) < p).astype(int)

    def generate_records(self, num_records: int) -> pd.DataFrame:
        """Draw complete records (canonical column names, no missing values)."""
        n = num_records
        rng = self.rng

        maternal_age = rng.integers(15, 46, size=n)
        maternal_schooling = np.clip(np.round(rng.normal(11, 3.5, size=n)), 0, 17).astype(int)

        # Older mothers have had more pregnancies
        total_pregnancies = 1 + rng.poisson(np.clip((maternal_age - 15) / 8, 0.1, None))
        prior = total_pregnancies - 1
        prior_abortions = rng.binomial(prior, 0.15)
        prior_stillbirths = rng.binomial(prior - prior_abortions, 0.03)
        living_children = prior - prior_abortions - prior_stillbirths

        # 1 live birth, 2 fetal death, 9 first pregnancy
        last_birth_outcome = np.where(
            prior == 0, 9, np.where(self._binary(0.05, n) == 1, 2, 1))

        smokes = self._binary(0.15, n)
        cigarettes = np.where(smokes == 1, rng.integers(1, 41, size=n), 0)
        drinks = self._binary(0.10, n)
        alcohol = np.where(drinks == 1, rng.integers(1, 8, size=n), 0)

        # Later start of prenatal care with less schooling
        prenatal_start = np.clip(
            np.round(rng.normal(3.0 + (11 - maternal_schooling) * 0.1, 1.5, size=n)), 1, 9).astype(int)

        data = {
            'paternal_age': np.clip(maternal_age + rng.integers(-3, 10, size=n), 15, 70),
            'maternal_age': maternal_age,
            'paternal_schooling': np.clip(maternal_schooling + rng.integers(-3, 4, size=n), 0, 17),
            'maternal_schooling': maternal_schooling,
            'total_pregnancies': total_pregnancies,
            'prenatal_start_month': prenatal_start,
            'prior_stillbirths': prior_stillbirths,
            'prior_abortions': prior_abortions,
            'last_birth_outcome': last_birth_outcome,
            'years_since_fetal_death': np.where(last_birth_outcome == 2, rng.integers(0, 10, size=n), 0),
            'years_since_live_birth': np.where(last_birth_outcome == 1, rng.integers(1, 15, size=n), 0),
            'marital_status': rng.choice([1, 2], size=n, p=[0.6, 0.4]),
            'living_children': living_children,
            'cigarettes_per_day': cigarettes,
            'alcohol_per_week': alcohol,
            'drinks': drinks,
            'smokes': smokes,
        }
        for flag, rate in FLAG_RATES.items():
            data[flag] = self._binary(rate, n)

        df = pd.DataFrame(data)
        logger.info(f"Generated {n} complete records")
        return df

    def generate_target_variable(self, data: pd.DataFrame, prevalence: float = 0.5) -> pd.Series:
        """Sample the low birth weight outcome from a logistic risk on the KPI drivers."""
        organic = sum(data[flag] * weight for flag, weight in ORGANIC_FLAGS.items())
        gestational = sum(data[flag] * weight for flag, weight in GESTATIONAL_FLAGS.items())
        behavior = (data['cigarettes_per_day'] > 20) * 1.0 + (data['alcohol_per_week'] > 2) * 1.0

        risk = (
            0.6 * organic
            + 0.8 * gestational
            + 0.5 * behavior
            + 0.3 * data['smokes']
            + 0.2 * (data['prenatal_start_month'] > 5)
            + 0.03 * (data['maternal_age'] - 28).abs()
            + 0.25 * data['prior_abortions']
            + self.rng.normal(0, 0.5, size=len(data))
        )

        # Center so that roughly ``prevalence`` of records are positive
        offset = float(np.quantile(risk, 1 - prevalence))
        probabilities = 1 / (1 + np.exp(-(risk - offset) * 3))
        target = pd.Series((self.rng.random(len(data)) < probabilities).astype(int), index=data.index)
        logger.info(f"Target prevalence: {target.mean():.3f}")
        return target

    def add_missing_values(self, data: pd.DataFrame) -> pd.DataFrame:
        """Blank out values at the configured per-field rates."""
        df = data.copy()
        for column, rate in self.missing_value_rates.items():
            if column not in df.columns or rate <= 0:
                continue
            mask = self.rng.random(len(df)) < rate
            df[column] = df[column].astype(float).mask(mask)
            logger.debug(f"{column}: {int(mask.sum())} values set missing")
        return df

    def generate_dataset(self, num_records: int, target_prevalence: float = 0.5,
                         source_names: bool = True) -> pd.DataFrame:
        """
        Generate a full raw extract.

        Args:
            num_records: Number of birth records
            target_prevalence: Approximate share of low birth weight outcomes
            source_names: Use the upper-case source column names

        Returns:
            DataFrame with the 36 source columns
        """
        start_time = time.time()
        df = self.generate_records(num_records)
        df[TARGET] = self.generate_target_variable(df, target_prevalence)
        df = self.add_missing_values(df)

        columns: List[str] = list(RAW_COLUMN_MAP.values())
        df = df[columns]
        if source_names:
            df = df.rename(columns={v: k for k, v in RAW_COLUMN_MAP.items()})

        logger.info(f"Dataset of {len(df)} records generated in {time.time() - start_time:.2f} seconds")
        return df


def main(argv: Optional[List[str]] = None):
    """Main function for command-line usage."""
    parser = argparse.ArgumentParser(description="Generate synthetic perinatal records")
    parser.add_argument("--num_records", type=int, default=5000,
                        help="Number of birth records to generate")
    parser.add_argument("--output", type=str, default="./data/raw/perinatal_data.csv",
                        help="Output file (csv or parquet)")
    parser.add_argument("--prevalence", type=float, default=0.5,
                        help="Approximate low birth weight prevalence")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--config", type=str, default=None,
                        help="Optional YAML file with a data_generation section")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)

    num_records = args.num_records
    prevalence = args.prevalence
    missing_rates = None
    if args.config and Path(args.config).exists():
        with open(args.config, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f) or {}

        data_config = config.get('data_generation', {})
        num_records = data_config.get('num_records', num_records)
        prevalence = data_config.get('target_prevalence', prevalence)
        missing_config = data_config.get('missing_values', {})
        if missing_config.get('enabled', True):
            missing_rates = missing_config.get('rates')
        else:
            missing_rates = {}

    generator = PerinatalDataGenerator(seed=args.seed, missing_value_rates=missing_rates)

    df = generator.generate_dataset(num_records, target_prevalence=prevalence)
    write_table(df, args.output)

    summary = {
        'total_records': len(df),
        'target_prevalence': float(df['ABAIXOPESO'].mean()),
        'missing_values': {k: int(v) for k, v in df.isnull().sum().items() if v},
        'seed': generator.seed,
    }
    summary_path = Path(args.output).with_name("data_summary.yaml")
    with open(summary_path, 'w', encoding='utf-8') as f:
        yaml.dump(summary, f, default_flow_style=False)

    logger.info(f"Summary saved to {summary_path}")


if __name__ == "__main__":
    main()
