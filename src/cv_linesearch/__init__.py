"""Line-search tuning of model hyperparameters against a cross-validation oracle."""

from .config import LineSearchConfig, LoggingConfig, OracleConfig
from .errors import (
    ConfigurationError,
    EvaluationError,
    LineSearchError,
    OracleContractError,
    ResourceError,
    SearchInterrupted,
)
from .evaluation import CallableEvaluator, CommandEvaluator, Evaluator
from .optimization import (
    EvaluationLog,
    EvaluationResult,
    LineSearchEngine,
    ParameterDefinition,
    ParameterSpace,
    ResultCache,
    SearchReporter,
    SearchResult,
)

__version__ = "0.1.0"

__all__ = [
    "CallableEvaluator",
    "CommandEvaluator",
    "ConfigurationError",
    "EvaluationError",
    "EvaluationLog",
    "EvaluationResult",
    "Evaluator",
    "LineSearchConfig",
    "LineSearchEngine",
    "LineSearchError",
    "LoggingConfig",
    "OracleConfig",
    "OracleContractError",
    "ParameterDefinition",
    "ParameterSpace",
    "ResourceError",
    "ResultCache",
    "SearchInterrupted",
    "SearchReporter",
    "SearchResult",
]
