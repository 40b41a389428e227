"""Adapters that turn a parameter vector into a score."""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import Any, Callable, Mapping, Protocol, Sequence

from ..config import OracleConfig
from ..errors import ConfigurationError, EvaluationError, OracleContractError
from ..optimization.parameter_space import format_value, read_parameter_file, write_parameter_file
from ..optimization.results_store import EvaluationResult
from .cv_output import parse_cv_output
from .workspace import scratch_workspace, stage_files

logger = logging.getLogger(__name__)

_OUTPUT_TAIL = 500
_POSIX = os.name == "posix"


class Evaluator(Protocol):
    """Anything able to score a parameter vector."""

    def evaluate(self, vector: Mapping[str, Any]) -> EvaluationResult:
        """Return the score for ``vector`` or raise ``EvaluationError``."""


ScoreFunction = Callable[[Mapping[str, Any]], "float | EvaluationResult"]


class CallableEvaluator:
    """Wrap a plain function returning a score (or a full result) as an evaluator."""

    def __init__(self, function: ScoreFunction) -> None:
        self.function = function

    def evaluate(self, vector: Mapping[str, Any]) -> EvaluationResult:
        started = time.perf_counter()
        outcome = self.function(dict(vector))
        duration = time.perf_counter() - started
        if isinstance(outcome, EvaluationResult):
            if outcome.duration_seconds is None:
                outcome.duration_seconds = duration
            return outcome
        try:
            score = float(outcome)
        except (TypeError, ValueError) as exc:
            raise EvaluationError(f"score function returned non-numeric value {outcome!r}") from exc
        return EvaluationResult(parameters=dict(vector), score=score, duration_seconds=duration)


class CommandEvaluator:
    """
    Score a vector by running the make-driven cross-validation in a scratch directory.

    Each call stages the input files, writes the parameter file, runs the
    prepare and ``cv`` targets and parses the score file. Under external
    optimisation the oracle rewrites the prepared parameter file, and the
    values found there are returned as the evaluated parameters.

    ``cancel()`` may be called from any thread: it kills the running make
    process groups and makes every later step fail, so evaluations still in
    flight unwind through their workspace cleanup.
    """

    def __init__(
        self,
        oracle: OracleConfig,
        *,
        parameter_order: Sequence[str] | None = None,
        formatter: Callable[[str, Any], str] | None = None,
    ) -> None:
        self.oracle = oracle
        self.parameter_order = list(parameter_order) if parameter_order is not None else None
        self.formatter = formatter or (lambda name, value: format_value(value))
        self._data_file = oracle.data_file.resolve()
        self._makefile = oracle.makefile_path.resolve()
        self._bindir = oracle.bindir.resolve() if oracle.bindir is not None else None
        self._staged = [Path(name).resolve() for name in oracle.staged_files]
        self._make = shlex.split(oracle.make_command)
        self._cancelled = threading.Event()
        self._processes: set[subprocess.Popen] = set()
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop every running and future oracle invocation of this evaluator."""
        with self._lock:
            self._cancelled.set()
            running = list(self._processes)
        for process in running:
            _kill(process)
        if running:
            logger.warning("killed %d running oracle process(es)", len(running))

    def evaluate(self, vector: Mapping[str, Any]) -> EvaluationResult:
        started = time.perf_counter()
        with scratch_workspace(self.oracle.scratch_root) as workspace:
            stage_files(workspace, [self._data_file], required=True)
            stage_files(workspace, self._staged)

            parameter_path = workspace / self.oracle.parameter_filename
            lines = [f"{name} {self.formatter(name, vector[name])}" for name in self._ordered(vector)]
            write_parameter_file(parameter_path, lines)
            logger.info("parameters: %s", "; ".join(lines))

            self._run(self.prepare_command(), workspace, "parameter preparation")
            self._run(self.cv_command(), workspace, "cross validation")

            score = parse_cv_output(self._read_output(workspace / self.oracle.cv_filename))
            resolved = dict(vector)
            if self.oracle.external_optimization:
                resolved.update(self._read_back(workspace, vector))

        if score.error is not None:
            logger.info("correlation: %s, error: %s", score.correlation, score.error)
        else:
            logger.info("correlation: %s", score.correlation)
        return EvaluationResult(
            parameters=resolved,
            score=score.correlation,
            error_metric=score.error,
            duration_seconds=time.perf_counter() - started,
        )

    def prepare_command(self) -> list[str]:
        command = [*self._make, "-f", str(self._makefile)]
        if self._bindir is not None:
            command += ["-e", f"BINDIR={self._bindir}"]
        command.append(self.oracle.prepared_filename)
        return command

    def cv_command(self) -> list[str]:
        command = [*self._make, "cv", "-f", str(self._makefile), "-e", f"CV_FILES={self.oracle.cv_filename}"]
        if self._bindir is not None:
            command += ["-e", f"BINDIR={self._bindir}"]
        return command

    def _ordered(self, vector: Mapping[str, Any]) -> list[str]:
        if self.parameter_order is None:
            return list(vector)
        return [name for name in self.parameter_order if name in vector]

    def _run(self, command: list[str], workspace: Path, label: str) -> None:
        logger.debug("%s: %s", label, shlex.join(command))
        with self._lock:
            if self._cancelled.is_set():
                raise EvaluationError(f"{label} cancelled")
            try:
                process = subprocess.Popen(
                    command,
                    cwd=workspace,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    start_new_session=_POSIX,
                )
            except FileNotFoundError as exc:
                raise ConfigurationError(f"could not execute '{command[0]}': {exc}") from exc
            self._processes.add(process)

        try:
            with process:
                try:
                    stdout, stderr = process.communicate(timeout=self.oracle.timeout_seconds)
                except subprocess.TimeoutExpired as exc:
                    _kill(process)
                    process.communicate()
                    raise EvaluationError(f"{label} timed out after {exc.timeout}s") from exc
                except BaseException:
                    # Interrupted while waiting; take the whole process group down.
                    _kill(process)
                    raise
        finally:
            with self._lock:
                self._processes.discard(process)

        if self._cancelled.is_set():
            raise EvaluationError(f"{label} cancelled")
        if stdout:
            logger.debug("%s stdout:\n%s", label, stdout[-_OUTPUT_TAIL:])
        if process.returncode != 0:
            raise EvaluationError(
                f"{label} failed with exit status {process.returncode}: "
                f"{stderr[-_OUTPUT_TAIL:].strip()}"
            )

    def _read_output(self, cv_path: Path) -> str:
        try:
            return cv_path.read_text(encoding="utf-8")
        except OSError as exc:
            raise OracleContractError(f"oracle did not produce '{cv_path.name}': {exc}") from exc

    def _read_back(self, workspace: Path, vector: Mapping[str, Any]) -> dict[str, Any]:
        rewritten = workspace / self.oracle.prepared_filename
        try:
            values = read_parameter_file(rewritten)
        except OSError as exc:
            raise OracleContractError(f"error opening file '{rewritten.name}': {exc}") from exc
        logger.debug("oracle-optimised parameters: %s", values)
        return {name: value for name, value in values.items() if name in vector}


def _kill(process: subprocess.Popen) -> None:
    """Kill ``process`` and, on POSIX, every child make started in its session."""
    try:
        if _POSIX:
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except ProcessLookupError:
        # already reaped
        return
