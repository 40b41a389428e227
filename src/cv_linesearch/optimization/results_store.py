"""Result caching and evaluation history for line-search runs."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterator, List, Mapping, MutableMapping, MutableSequence

import pandas as pd

logger = logging.getLogger(__name__)


@dataclass
class EvaluationResult:
    """Outcome of scoring one parameter vector."""

    parameters: dict[str, Any]
    score: float | None
    error_metric: float | None = None
    cached: bool = False
    duration_seconds: float | None = None
    error: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.score is not None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def failure(cls, parameters: Mapping[str, Any], error: str, **metadata: Any) -> "EvaluationResult":
        return cls(parameters=dict(parameters), score=None, error=error, metadata=dict(metadata))


class ResultCache:
    """
    Map canonical parameter keys to previously observed scores.

    A disabled cache reports every lookup as a miss and ignores writes, which
    is required when the oracle itself varies results for the same request.
    """

    def __init__(self, *, enabled: bool = True) -> None:
        self.enabled = enabled
        self.hits = 0
        self.misses = 0
        self._scores: MutableMapping[str, float] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._scores)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return self.enabled and key in self._scores

    def get(self, key: str) -> float | None:
        with self._lock:
            if not self.enabled or key not in self._scores:
                self.misses += 1
                return None
            self.hits += 1
            score = self._scores[key]
        logger.debug("cache hit for %s", key)
        return score

    def put(self, key: str, score: float) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._scores[key] = score

    def clear(self) -> None:
        with self._lock:
            self._scores.clear()
            self.hits = 0
            self.misses = 0


class EvaluationLog:
    """Thread-safe, append-only record of every evaluation made during a run."""

    def __init__(self) -> None:
        self._items: MutableSequence[EvaluationResult] = []
        self._lock = Lock()

    def __iter__(self) -> Iterator[EvaluationResult]:
        return iter(self._snapshot())

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def append(self, result: EvaluationResult) -> None:
        with self._lock:
            self._items.append(result)

    def best(self) -> EvaluationResult | None:
        scored = [item for item in self._snapshot() if item.succeeded]
        if not scored:
            return None
        return max(scored, key=lambda item: item.score)

    def failures(self) -> List[EvaluationResult]:
        return [item for item in self._snapshot() if item.error is not None]

    def rows(self) -> List[Dict[str, Any]]:
        rows: list[Dict[str, Any]] = []
        for item in self._snapshot():
            row: Dict[str, Any] = {}
            row.update(item.metadata)
            for key, value in item.parameters.items():
                row[f"param_{key}"] = value
            row["score"] = item.score
            row["error_metric"] = item.error_metric
            row["cached"] = item.cached
            row["duration_seconds"] = item.duration_seconds
            row["error"] = item.error
            row["timestamp"] = item.timestamp
            rows.append(row)
        return rows

    def export_csv(self, destination: str | Path) -> Path:
        destination_path = Path(destination)
        destination_path.parent.mkdir(parents=True, exist_ok=True)
        pd.DataFrame(self.rows()).to_csv(destination_path, index=False)
        return destination_path

    def export_json(self, destination: str | Path) -> Path:
        destination_path = Path(destination)
        destination_path.parent.mkdir(parents=True, exist_ok=True)
        payload = [item.to_dict() for item in self._snapshot()]
        destination_path.write_text(json.dumps(payload, indent=2, default=str), encoding="utf-8")
        return destination_path

    def _snapshot(self) -> List[EvaluationResult]:
        with self._lock:
            return list(self._items)
