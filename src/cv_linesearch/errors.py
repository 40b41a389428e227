"""Exception hierarchy shared by the line-search components."""

from __future__ import annotations


class LineSearchError(Exception):
    """Base class for every error raised by the package."""


class ConfigurationError(LineSearchError):
    """Mandatory input is missing or invalid; the search never starts."""


class EvaluationError(LineSearchError):
    """A single candidate could not be scored.

    The engine recovers from this locally by excluding the candidate.
    """


class OracleContractError(LineSearchError):
    """The oracle produced output that cannot be interpreted at all."""


class ResourceError(LineSearchError):
    """A scratch workspace could not be created or removed."""


class SearchInterrupted(LineSearchError):
    """The process received a termination signal mid-search."""

    def __init__(self, signal_name: str) -> None:
        super().__init__(f"signal {signal_name} caught")
        self.signal_name = signal_name


__all__ = [
    "LineSearchError",
    "ConfigurationError",
    "EvaluationError",
    "OracleContractError",
    "ResourceError",
    "SearchInterrupted",
]
