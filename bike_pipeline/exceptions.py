"""Exceptions raised by the bike pipeline.

Errors coming from DuckDB, scikit-learn or MLflow are never wrapped; these
types only cover checks the pipeline makes itself.
"""


class PipelineError(Exception):
    """Base exception for bike pipeline errors."""


class ConfigurationError(PipelineError):
    """Required settings (e.g. platform credentials) are missing."""


class DataShapeError(PipelineError):
    """A source table or expected column is missing."""


class InsufficientDataError(DataShapeError):
    """Not enough distinct dates to build the train/test windows."""
