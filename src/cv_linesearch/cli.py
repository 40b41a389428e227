"""
Command-line entry point for the cross-validation line search.

Usage:
    line-search --fa train.fa --param ls.param.def --mf Makefile \
                --bindir /opt/oracle/bin --of model.param [--sgdopt] [--debug]

Diagnostics go to stderr. The optimised parameters are written to --of only
when the search completes; any fatal error or termination signal exits
non-zero without touching it.
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Callable, Sequence

from .config import LineSearchConfig, LoggingConfig, OracleConfig
from .errors import LineSearchError, SearchInterrupted
from .evaluation.evaluator import CommandEvaluator
from .logging_config import configure_logging
from .optimization.engine import LineSearchEngine
from .optimization.parameter_space import ParameterSpace
from .optimization.reporting import SearchReporter

logger = logging.getLogger("cv_linesearch.cli")

HANDLED_SIGNALS = ("SIGINT", "SIGTERM", "SIGABRT", "SIGUSR1", "SIGUSR2")
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="line-search",
        description="Tune model hyperparameters by coordinate-ascent line search over cross-validation runs",
    )
    parser.add_argument("--fa", "--data", dest="data", type=Path, required=True, help="Input data (fasta) optimised for")
    parser.add_argument("--param", type=Path, required=True, help="Parameter definition for the line search")
    parser.add_argument("--mf", type=str, required=True, help="Makefile driving the cross-validation")
    parser.add_argument("--bindir", type=Path, default=None, help="Directory holding the makefile and oracle binaries")
    parser.add_argument("--of", type=Path, required=True, help="Write optimal parameters to this file")
    parser.add_argument(
        "--sgdopt",
        action="store_true",
        help="Let the oracle's SGD optimise R, D, EPOCHS and LAMBDA (disables result caching)",
    )
    parser.add_argument("--max-rounds", type=int, default=5, help="Maximum number of sweeps")
    parser.add_argument("--min-improvement", type=float, default=0.01, help="Stop when a sweep gains less than this")
    parser.add_argument("--initial-score", type=float, default=0.0, help="Best-score sentinel the search starts from")
    parser.add_argument("--workers", type=int, default=1, help="Concurrent evaluations per parameter")
    parser.add_argument("--no-cache", action="store_true", help="Re-evaluate repeated parameter vectors")
    parser.add_argument("--tmpdir", type=Path, default=Path("/var/tmp"), help="Root for scratch workspaces")
    parser.add_argument("--make", type=str, default="make", help="make executable (and fixed options)")
    parser.add_argument("--history", type=Path, default=None, help="Export every evaluation to <history>.csv/.json")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write diagnostics to this file")
    parser.add_argument("--debug", action="store_true", help="Enable debug output")
    return parser


def install_signal_handlers() -> Callable[[], None]:
    """Turn termination signals into ``SearchInterrupted``; returns a restore function."""

    def _handler(signum, frame):
        raise SearchInterrupted(signal.Signals(signum).name)

    previous = {}
    for name in HANDLED_SIGNALS:
        signum = getattr(signal, name, None)
        if signum is None:
            continue
        previous[signum] = signal.signal(signum, _handler)

    def _restore() -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    return _restore


def run_search(args: argparse.Namespace) -> int:
    search_config = LineSearchConfig(
        max_rounds=args.max_rounds,
        min_improvement=args.min_improvement,
        initial_best_score=args.initial_score,
        use_cache=not args.no_cache,
        external_optimization=args.sgdopt,
        max_workers=args.workers,
    )
    oracle = OracleConfig(
        data_file=args.data,
        makefile=args.mf,
        output_file=args.of,
        bindir=args.bindir,
        scratch_root=args.tmpdir,
        make_command=args.make,
        external_optimization=args.sgdopt,
    )
    oracle.validate()
    delegated = search_config.externally_optimized if args.sgdopt else ()
    space = ParameterSpace.from_file(args.param, externally_optimized=delegated)

    engine = LineSearchEngine(
        parameter_space=space,
        evaluator=CommandEvaluator(oracle, parameter_order=space.names(), formatter=space.format),
        config=search_config,
    )
    result = engine.run()

    space.write(args.of, result.parameters)
    logger.info("final parameters: %s", "; ".join(space.to_lines(result.parameters)))
    logger.info(
        "best score %s after %d rounds (%d evaluations, %d cache hits, %d failures)",
        result.best_score,
        result.rounds,
        result.evaluations,
        result.cache_hits,
        result.failures,
    )

    if args.history is not None:
        reporter = SearchReporter(engine.results_store)
        engine.results_store.export_csv(args.history.with_suffix(".csv"))
        engine.results_store.export_json(args.history.with_suffix(".json"))
        summary_path = args.history.with_name(args.history.stem + "_summary.json")
        summary_path.write_text(json.dumps(reporter.summary(result), indent=2, default=str), encoding="utf-8")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(
        LoggingConfig(level="DEBUG" if args.debug else "INFO", log_file=args.log_file),
        force=True,
    )
    restore_signals = install_signal_handlers()
    try:
        return run_search(args)
    except SearchInterrupted as exc:
        logger.error("%s, cleaning up temporary files", exc)
        return EXIT_INTERRUPTED
    except LineSearchError as exc:
        logger.error("error: %s", exc)
        return 1
    finally:
        restore_signals()


if __name__ == "__main__":
    sys.exit(main())
