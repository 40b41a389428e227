"""Parsing of the score file written by the cross-validation oracle."""

from __future__ import annotations

import math
from dataclasses import dataclass

from ..errors import EvaluationError, OracleContractError

CORRELATION_LABEL = "Cross Validation Squared correlation coefficient"
ERROR_LABEL = "Cross Validation Mean squared error"


@dataclass(frozen=True)
class CvScore:
    correlation: float
    error: float | None = None


def parse_cv_output(text: str) -> CvScore:
    """
    Extract the correlation (and, if reported, the error) from oracle output.

    Two conventions are accepted: a single numeric line, or a labelled block
    such as::

        Cross Validation Mean squared error = 0.21
        Cross Validation Squared correlation coefficient = 0.64

    Raises:
        OracleContractError: if the output matches neither convention.
        EvaluationError: if the reported correlation is not a finite number.
    """
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if not lines:
        raise OracleContractError("cross-validation output is empty")

    correlation_line = _find_labelled(lines, CORRELATION_LABEL)
    if correlation_line is not None:
        correlation = _last_number(correlation_line)
        error_line = _find_labelled(lines, ERROR_LABEL)
        error = _last_number(error_line) if error_line is not None else None
    elif any(ERROR_LABEL in line for line in lines):
        raise OracleContractError(f"cross-validation output lacks '{CORRELATION_LABEL}': {lines[-1]!r}")
    else:
        correlation = _last_number(lines[0])
        error = None

    if not math.isfinite(correlation):
        raise EvaluationError(f"oracle reported a non-finite correlation: {correlation}")
    return CvScore(correlation=correlation, error=error)


def _find_labelled(lines: list[str], label: str) -> str | None:
    for line in reversed(lines):
        if label in line:
            return line
    return None


def _last_number(line: str) -> float:
    token = line.split()[-1]
    try:
        return float(token)
    except ValueError:
        raise OracleContractError(f"could not parse a score from {line!r}") from None
