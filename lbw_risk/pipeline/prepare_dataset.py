"""
Dataset preparation: raw perinatal extract -> modeling table.

Runs the four preparation stages (resolve -> bin -> score -> select) over the whole
dataset and writes the modeling table. Any stage error aborts the run before the
output file is written.
"""

import argparse
import logging
import os
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from .exceptions import PipelineError
from .feature_engineering import create_preparation_pipeline
from .preprocessing import DataValidator
from .schema import CATEGORICAL_PREDICTORS, NUMERIC_PREDICTORS, TARGET, canonicalize_columns
from lbw_risk.utils.statistical_tests import association_summary

logger = logging.getLogger(__name__)

READERS = {
    '.csv': pd.read_csv,
    '.parquet': pd.read_parquet,
    '.sas7bdat': pd.read_sas,
    '.xlsx': pd.read_excel,
}


def load_table(path: str) -> pd.DataFrame:
    """Load a tabular file based on its suffix and canonicalize source column names."""
    p = Path(path)
    reader = READERS.get(p.suffix.lower())
    if reader is None:
        raise ValueError(f"Unsupported input format: {p.suffix}")

    logger.info(f"Loading data from {p}")
    df = reader(p)
    renames = canonicalize_columns(df.columns)
    if renames:
        logger.info(f"Renamed {len(renames)} source columns to canonical names")
        df = df.rename(columns=renames)

    logger.info(f"Loaded data shape: {df.shape}")
    return df


def write_table(df: pd.DataFrame, path: str):
    """Write ``df`` next to ``path`` first, then move it into place."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    partial = p.with_name(f".{p.stem}.partial{p.suffix}")

    suffix = p.suffix.lower()
    if suffix not in ('.csv', '.parquet', '.xlsx'):
        raise ValueError(f"Unsupported output format: {p.suffix}")

    try:
        if suffix == '.csv':
            df.to_csv(partial, index=False)
        elif suffix == '.parquet':
            df.to_parquet(partial, index=False)
        else:
            df.to_excel(partial, index=False)
        os.replace(partial, p)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise
    logger.info(f"Wrote {df.shape[0]} rows x {df.shape[1]} columns to {p}")


class DatasetPreparer:
    """Prepare the modeling dataset from a raw extract."""

    def __init__(self, config: Optional[Dict] = None):
        self.config = config or {}
        self.pipeline = create_preparation_pipeline(self.config)
        self.analysis_frame: Optional[pd.DataFrame] = None
        self.associations: Optional[pd.DataFrame] = None

    def validate_data(self, df: pd.DataFrame) -> Dict[str, List[str]]:
        logger.info("Validating data quality...")
        validator = DataValidator()
        validator.setup_perinatal_rules()
        violations = validator.validate(df)
        for feature, messages in violations.items():
            logger.warning(f"{feature}: {'; '.join(messages)}")
        if not violations:
            logger.info("Data validation passed")
        return violations

    @staticmethod
    def recode_target(target: pd.Series) -> pd.Series:
        """1 is low birth weight; every other label is normal weight."""
        other = ~target.isin([0, 1])
        if other.any():
            logger.warning(f"Recoded {int(other.sum())} target labels outside 0/1 as normal weight: "
                           f"{sorted(target[other].unique().tolist())}")
        return (target == 1).astype(int)

    def summarize_associations(self, frame: pd.DataFrame) -> Optional[pd.DataFrame]:
        """Association of each modeling predictor with the target, logged most significant first."""
        if frame[TARGET].nunique() != 2:
            logger.info("Single target class; association tests skipped")
            return None
        summary = association_summary(frame, CATEGORICAL_PREDICTORS, NUMERIC_PREDICTORS)
        logger.info(f"Predictor associations with {TARGET}:\n"
                    f"{summary[['variable', 'test', 'p_value', 'effect_size']].to_string(index=False)}")
        return summary

    def prepare(self, df: pd.DataFrame) -> pd.DataFrame:
        """Run every stage on ``df``; keeps the pre-selection frame in ``analysis_frame``."""
        start_time = time.time()
        self.validate_data(df)

        # All stages but the projection, so the full frame stays available for analysis
        self.analysis_frame = self.pipeline[:-1].fit_transform(df)
        self.analysis_frame[TARGET] = self.recode_target(self.analysis_frame[TARGET])
        self.associations = self.summarize_associations(self.analysis_frame)
        modeling = self.pipeline[-1].fit_transform(self.analysis_frame)

        elapsed_time = time.time() - start_time
        prevalence = modeling[TARGET].mean()
        logger.info(f"Prepared {len(modeling)} records in {elapsed_time:.2f} seconds "
                    f"(low birth weight prevalence: {prevalence:.3f})")
        return modeling

    def run(self, input_path: str, output_path: str) -> pd.DataFrame:
        modeling = self.prepare(load_table(input_path))
        write_table(modeling, output_path)
        return modeling


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Prepare the low birth weight modeling dataset")
    parser.add_argument("--input", type=str, required=True,
                        help="Raw dataset (csv, parquet, sas7bdat or xlsx)")
    parser.add_argument("--output", type=str, required=True,
                        help="Modeling dataset to write (csv, parquet or xlsx)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)

    try:
        DatasetPreparer().run(args.input, args.output)
    except PipelineError as e:
        logger.error(f"Preparation aborted: {e}")
        return 1

    print("Dataset prepared:", args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
