#!/usr/bin/env python
"""
Setup script for the low birth weight risk pipeline.
"""

from pathlib import Path

from setuptools import find_packages, setup


def read_requirements(path="requirements.txt"):
    """Read requirement lines, skipping comments and blanks."""
    req_file = Path(__file__).parent / path
    if not req_file.exists():
        return []
    lines = req_file.read_text(encoding="utf-8").splitlines()
    return [line.strip() for line in lines if line.strip() and not line.startswith("#")]


setup(
    name="lbw-risk",
    version="1.0.0",
    description="Perinatal data preparation and low birth weight risk model comparison",
    python_requires=">=3.9",
    packages=find_packages(include=["lbw_risk", "lbw_risk.*"]),
    install_requires=read_requirements() or [
        "pandas>=2.0",
        "numpy>=1.24",
        "scikit-learn>=1.3",
        "scipy>=1.10",
        "xgboost>=2.0",
        "optuna>=3.4",
        "mlflow>=2.9",
        "pyyaml>=6.0",
        "joblib>=1.3",
        "pyarrow>=14.0",
        "openpyxl>=3.1",
    ],
    extras_require={
        "test": ["pytest>=7.4"],
    },
    entry_points={
        "console_scripts": [
            "lbw-prepare=lbw_risk.pipeline.prepare_dataset:main",
            "lbw-train=lbw_risk.pipeline.training_pipeline:main",
            "lbw-generate=lbw_risk.data_generation.generate_perinatal_data:main",
        ],
    },
)
