"""Reporting utilities for line-search runs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

import numpy as np
import pandas as pd

from .engine import SearchResult
from .results_store import EvaluationLog


@dataclass
class SearchReporter:
    """Produce tabular and aggregated views of a search."""

    store: EvaluationLog

    def to_table(self) -> pd.DataFrame:
        """One row per evaluation (fresh, cached or failed) in the order they happened."""
        return pd.DataFrame(self.store.rows())

    def rounds_table(self, result: SearchResult) -> pd.DataFrame:
        """
        Best score after each sweep and its gain over the previous sweep.

        The first row is the sentinel the search started from.
        """
        scores = np.asarray(result.best_per_round, dtype=float)
        with np.errstate(invalid="ignore"):
            improvement = np.concatenate(([np.nan], np.diff(scores)))
        return pd.DataFrame(
            {
                "round": np.arange(len(scores)),
                "best_score": scores,
                "improvement": improvement,
            }
        )

    def summary(self, result: SearchResult) -> Dict[str, Any]:
        table = self.to_table()
        per_parameter: dict[str, int] = {}
        if not table.empty and "parameter" in table.columns:
            per_parameter = {str(key): int(value) for key, value in table["parameter"].value_counts().items()}
        best = self.store.best()
        return {
            "parameters": dict(result.parameters),
            "best_score": result.best_score,
            "rounds": result.rounds,
            "stop_reason": result.stop_reason,
            "evaluations": result.evaluations,
            "cache_hits": result.cache_hits,
            "failures": result.failures,
            "skipped_invalid": result.skipped_invalid,
            "evaluations_per_parameter": per_parameter,
            "best_evaluation": best.to_dict() if best is not None else None,
        }
