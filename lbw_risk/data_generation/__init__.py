"""Synthetic perinatal data generation."""

from .generate_perinatal_data import PerinatalDataGenerator

__all__ = ['PerinatalDataGenerator']
