"""
Errors raised by the dataset preparation stages.

Every error is fatal to a preparation run: there is no per-record recovery.
"""

from typing import Any, Optional


class PipelineError(Exception):
    """Base class for preparation errors; carries the failing field and record."""

    def __init__(self, message: str, field: Optional[str] = None, record_index: Any = None):
        self.field = field
        self.record_index = record_index
        details = []
        if field is not None:
            details.append(f"field={field!r}")
        if record_index is not None:
            details.append(f"record={record_index!r}")
        if details:
            message = f"{message} ({', '.join(details)})"
        super().__init__(message)


class InvalidFieldError(PipelineError):
    """A rule references a field that does not exist in the input schema."""


class MissingDependencyError(PipelineError):
    """A stage ran on data that has not completed a prerequisite stage."""


class UnmappedCategoryError(PipelineError):
    """A value falls outside every defined bin or code."""


class UnresolvedValueError(PipelineError):
    """A missing value survived imputation in a retained field."""
