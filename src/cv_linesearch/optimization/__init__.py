"""Coordinate-ascent search over discrete hyperparameters."""

from .engine import LineSearchEngine, SearchResult, SearchState, SearchStatus
from .parameter_space import (
    ParameterDefinition,
    ParameterSpace,
    not_greater_than,
    read_parameter_file,
    write_parameter_file,
)
from .reporting import SearchReporter
from .results_store import EvaluationLog, EvaluationResult, ResultCache

__all__ = [
    "EvaluationLog",
    "EvaluationResult",
    "LineSearchEngine",
    "ParameterDefinition",
    "ParameterSpace",
    "ResultCache",
    "SearchReporter",
    "SearchResult",
    "SearchState",
    "SearchStatus",
    "not_greater_than",
    "read_parameter_file",
    "write_parameter_file",
]
