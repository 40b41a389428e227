from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError

# Parameters the oracle's stochastic gradient descent tunes by itself.
SGD_OPTIMIZED_PARAMETERS = ("R", "D", "EPOCHS", "LAMBDA")


@dataclass
class LineSearchConfig:
    # Stopping rule
    max_rounds: int = 5
    min_improvement: float = 0.01
    # Sentinel below any valid score; 0 suits squared correlations in [0, 1]
    initial_best_score: float = 0.0
    # Result reuse across identical parameter vectors
    use_cache: bool = True
    # Delegate some parameters to the oracle's internal optimizer
    external_optimization: bool = False
    externally_optimized: tuple[str, ...] = SGD_OPTIMIZED_PARAMETERS
    # (lower, upper) pairs: lower must not exceed upper
    constraints: tuple[tuple[str, str], ...] = (("R", "D"),)
    # Concurrent evaluations of one parameter's candidates
    max_workers: int = 1
    # Seconds running evaluations get to clean up after an interruption
    cancel_timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.max_rounds < 1:
            raise ConfigurationError("max_rounds must be at least 1")
        if self.min_improvement < 0:
            raise ConfigurationError("min_improvement must be non-negative")
        if self.max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1")
        if self.cancel_timeout < 0:
            raise ConfigurationError("cancel_timeout must be non-negative")

    @property
    def cache_enabled(self) -> bool:
        # The oracle's own optimizer makes repeated vectors non-deterministic.
        return self.use_cache and not self.external_optimization


@dataclass
class OracleConfig:
    data_file: Path
    makefile: str
    output_file: Path
    bindir: Path | None = None
    staged_files: tuple[str, ...] = ("PARAMETERS", "EXPERIMENT_SPECIFIC_RULES")
    scratch_root: Path | None = Path("/var/tmp")
    make_command: str = "make"
    external_optimization: bool = False
    timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        self.data_file = Path(self.data_file)
        self.output_file = Path(self.output_file)
        if self.bindir is not None:
            self.bindir = Path(self.bindir)
        if self.scratch_root is not None:
            self.scratch_root = Path(self.scratch_root)

    @property
    def stem(self) -> str:
        name = self.output_file.name
        return name[: -len(".param")] if name.endswith(".param") else name

    @property
    def basename(self) -> str:
        name = self.data_file.name
        return name[: -len(".fa")] if name.endswith(".fa") else self.data_file.stem

    @property
    def parameter_filename(self) -> str:
        """File the current vector is written to inside the scratch workspace."""
        if self.external_optimization:
            return f"{self.stem}.ls_sgdopt.param"
        return f"{self.stem}.ls.param"

    @property
    def prepared_filename(self) -> str:
        """Make target preparing (and, under SGD optimisation, rewriting) the parameters."""
        return f"{self.stem}.ls.param"

    @property
    def cv_filename(self) -> str:
        return f"{self.basename}.cv"

    @property
    def makefile_path(self) -> Path:
        if self.bindir is not None:
            return self.bindir / self.makefile
        return Path(self.makefile)

    def validate(self) -> None:
        """Fail fast on missing mandatory inputs."""
        if not self.data_file.is_file():
            raise ConfigurationError(f"could not find file '{self.data_file}'")
        if not self.makefile_path.is_file():
            raise ConfigurationError(f"could not find file '{self.makefile_path}'")
        if self.bindir is not None and not self.bindir.is_dir():
            raise ConfigurationError(f"could not find directory '{self.bindir}'")
        if self.scratch_root is not None and not self.scratch_root.is_dir():
            raise ConfigurationError(f"scratch root '{self.scratch_root}' is not a directory")


@dataclass
class LoggingConfig:
    level: str = "INFO"
    log_file: Path | None = None
    fmt: str = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    datefmt: str = "%Y-%m-%d %H:%M:%S"

    @property
    def normalized_level(self) -> str:
        return self.level.upper()
