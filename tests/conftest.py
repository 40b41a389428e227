"""
Shared fixtures: in-process evaluators with call recording, and a stub
``make`` that emulates the cross-validation oracle's targets.
"""

import os
import stat
import sys
from pathlib import Path
from threading import Lock

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from cv_linesearch.errors import EvaluationError
from cv_linesearch.optimization.results_store import EvaluationResult


class RecordingEvaluator:
    """Score vectors with ``score_fn`` and remember every request."""

    def __init__(self, score_fn):
        self.score_fn = score_fn
        self.calls = []
        self._lock = Lock()

    def evaluate(self, vector):
        with self._lock:
            self.calls.append(dict(vector))
            call_number = len(self.calls)
        outcome = self.score_fn(dict(vector), call_number)
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, EvaluationResult):
            return outcome
        return EvaluationResult(parameters=dict(vector), score=outcome)


def by_value(name, scores):
    """Score function looking up the value of a single parameter."""

    def _score(vector, call_number):
        value = vector[name]
        if value not in scores:
            return EvaluationError(f"no score for {name}={value}")
        return scores[value]

    return _score


def by_call(scores):
    """Score function returning the n-th score on the n-th call."""

    def _score(vector, call_number):
        return scores[call_number - 1]

    return _score


@pytest.fixture
def recording_evaluator():
    return RecordingEvaluator


STUB_MAKE = """#!/bin/sh
# Emulates the oracle's make targets for tests.
echo "ARGS $*" >> "$STUB_LOG"
echo "PWD $(pwd)" >> "$STUB_LOG"
if [ "$1" = "cv" ]; then
  for arg in "$@"; do
    case "$arg" in CV_FILES=*) cv="${arg#CV_FILES=}" ;; esac
  done
  echo "FILES $(ls | tr '\\n' ' ')" >> "$STUB_LOG"
  for pfile in ./*.param; do
    sed "s/^/PARAM /" "$pfile" >> "$STUB_LOG"
  done
  if [ -n "$KILL_PARENT" ]; then
    kill -TERM "$PPID"
    sleep 5
  fi
  if [ -n "$CV_SLEEP" ]; then
    sleep "$CV_SLEEP"
  fi
  if [ -z "$CV_SKIP" ]; then
    printf '%s\\n' "$CV_SCORE" > "$cv"
  fi
  exit "${CV_EXIT:-0}"
fi
for target; do :; done
if [ -n "$REWRITE" ]; then
  printf '%s\\n' "$REWRITE" > "$target"
fi
exit 0
"""


@pytest.fixture
def stub_make(tmp_path, monkeypatch):
    """Write the stub make into ``tmp_path`` and point its log there."""
    if os.name == "nt":
        pytest.skip("stub make requires a POSIX shell")
    script = tmp_path / "stub-make"
    script.write_text(STUB_MAKE, encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    log = tmp_path / "stub.log"
    monkeypatch.setenv("STUB_LOG", str(log))
    monkeypatch.setenv("CV_SCORE", "0.42")
    for name in ("CV_SKIP", "CV_EXIT", "CV_SLEEP", "REWRITE", "KILL_PARENT"):
        monkeypatch.delenv(name, raising=False)
    return script


@pytest.fixture
def oracle_files(tmp_path):
    """Data file, makefile and scratch root laid out like a real run."""
    data = tmp_path / "train.fa"
    data.write_text(">seq1\nACGU\n", encoding="utf-8")
    bindir = tmp_path / "bin"
    bindir.mkdir()
    (bindir / "Makefile").write_text("cv:\n\ttrue\n", encoding="utf-8")
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    return {"data": data, "bindir": bindir, "makefile": "Makefile", "scratch": scratch}


def read_log(tmp_path: Path) -> list[str]:
    log = tmp_path / "stub.log"
    if not log.exists():
        return []
    return log.read_text(encoding="utf-8").splitlines()
