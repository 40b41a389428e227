"""Parameter space definitions and mutable search position for the line search."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, Mapping, MutableMapping, Sequence

from ..errors import ConfigurationError

Constraint = Callable[[Mapping[str, Any]], bool]
KEY_SEPARATOR = ";"


@dataclass(frozen=True)
class ParameterDefinition:
    """Immutable description of a single tunable parameter."""

    name: str
    default: Any
    values: Sequence[Any] = ()
    externally_optimized: bool = False
    description: str = ""
    # (value, token) pairs recording how each value was spelled in the definition file
    tokens: tuple[tuple[Any, str], ...] = ()

    def candidates(self) -> tuple[Any, ...]:
        """
        Return the ordered candidate values.

        A parameter declared without values is fixed at its default.
        """
        if not self.values:
            return (self.default,)
        return tuple(self.values)

    def has_multiple_candidates(self) -> bool:
        return len(self.candidates()) > 1

    @property
    def maximum(self) -> Any | None:
        """Largest candidate, defined only for numeric parameters."""
        if not _is_number(self.default):
            return None
        numeric = [value for value in self.candidates() if _is_number(value)]
        if not numeric:
            return None
        return max(numeric)

    def format(self, value: Any) -> str:
        """Spell ``value`` the way the definition did, falling back to ``str``."""
        for known, token in self.tokens:
            if type(known) is type(value) and known == value:
                return token
        return format_value(value)


@dataclass
class ParameterSpace:
    """Ordered parameter definitions plus the current and best-so-far value of each."""

    parameters: MutableMapping[str, ParameterDefinition] = field(default_factory=dict)
    constraints: list[Constraint] = field(default_factory=list)
    _current: Dict[str, Any] = field(default_factory=dict, init=False, repr=False)
    _best: Dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        self.reset()

    @classmethod
    def from_definitions(cls, definitions: Sequence[ParameterDefinition]) -> "ParameterSpace":
        """Construct a parameter space from an ordered sequence of definitions."""
        parameters: Dict[str, ParameterDefinition] = {}
        for definition in definitions:
            if definition.name in parameters:
                raise ValueError(f"Duplicate parameter definition: {definition.name}")
            parameters[definition.name] = definition
        return cls(parameters=parameters)

    @classmethod
    def parse_definitions(
        cls,
        lines: Iterable[str],
        *,
        externally_optimized: Iterable[str] = (),
    ) -> "ParameterSpace":
        """
        Build a space from the textual definition format.

        Each non-comment line reads ``name default value1 value2 ...``.

        Raises:
            ConfigurationError: on malformed lines, duplicates or an empty definition.
        """
        delegated = set(externally_optimized)
        definitions: list[ParameterDefinition] = []
        for line_number, raw_line in enumerate(lines, start=1):
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            fields = line.split()
            if len(fields) < 2:
                raise ConfigurationError(
                    f"line {line_number}: expected 'name default [values...]', got {raw_line.rstrip()!r}"
                )
            name, default, *values = fields
            tokens: list[tuple[Any, str]] = []
            for token in (default, *values):
                value = _coerce_token(token)
                if not any(type(known) is type(value) and known == value for known, _ in tokens):
                    tokens.append((value, token))
            definitions.append(
                ParameterDefinition(
                    name=name,
                    default=_coerce_token(default),
                    values=tuple(_coerce_token(value) for value in values),
                    externally_optimized=name in delegated,
                    tokens=tuple(tokens),
                )
            )
        if not definitions:
            raise ConfigurationError("parameter definition does not declare any parameters")
        try:
            return cls.from_definitions(definitions)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        *,
        externally_optimized: Iterable[str] = (),
    ) -> "ParameterSpace":
        """Load a parameter definition file."""
        source = Path(path)
        try:
            text = source.read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"could not read parameter file '{source}': {exc}") from exc
        return cls.parse_definitions(text.splitlines(), externally_optimized=externally_optimized)

    # Iteration and lookup ----------------------------------------------

    def __iter__(self) -> Iterator[str]:
        return iter(list(self.parameters))

    def __len__(self) -> int:
        return len(self.parameters)

    def __contains__(self, name: object) -> bool:
        return name in self.parameters

    def names(self) -> list[str]:
        return list(self.parameters)

    def definition(self, name: str) -> ParameterDefinition:
        try:
            return self.parameters[name]
        except KeyError:
            raise KeyError(f"Unknown parameter: {name}") from None

    def current(self, name: str) -> Any:
        self.definition(name)
        return self._current[name]

    def best(self, name: str) -> Any:
        self.definition(name)
        return self._best[name]

    def has_multiple_candidates(self, name: str) -> bool:
        return self.definition(name).has_multiple_candidates()

    def is_externally_optimized(self, name: str) -> bool:
        return self.definition(name).externally_optimized

    def format(self, name: str, value: Any) -> str:
        """Text written for ``value`` in parameter files and cache keys."""
        return self.definition(name).format(value)

    # Mutation ----------------------------------------------------------

    def reset(self) -> None:
        """Put every parameter back to its default."""
        self._current = {name: definition.default for name, definition in self.parameters.items()}
        self._best = dict(self._current)

    def set_current(self, name: str, value: Any) -> None:
        definition = self.definition(name)
        if not definition.externally_optimized and value not in definition.candidates():
            allowed = ", ".join(map(repr, definition.candidates()))
            raise ValueError(f"Value {value!r} is not permitted for parameter {name}. Allowed: {allowed}")
        self._current[name] = value

    def record_best(self, values: Mapping[str, Any]) -> None:
        """Remember ``values`` as the best setting; missing names keep their current value."""
        for name in self.parameters:
            self._best[name] = values.get(name, self._current[name])

    def restore_best(self) -> None:
        self._current = dict(self._best)

    # Vectors -----------------------------------------------------------

    def vector(self) -> dict[str, Any]:
        """Current value of every parameter, in declaration order."""
        return {name: self._current[name] for name in self.parameters}

    def best_vector(self) -> dict[str, Any]:
        return {name: self._best[name] for name in self.parameters}

    def cache_key(self, vector: Mapping[str, Any] | None = None) -> str:
        """Canonical serialisation of a vector; equal keys mean identical evaluation requests."""
        values = self.vector() if vector is None else vector
        parts: list[str] = []
        for name in self.parameters:
            parts.append(f"{name}{KEY_SEPARATOR}{self.format(name, values[name])}{KEY_SEPARATOR}")
        return "".join(parts)

    def delegated(self, extra: Iterable[str] = ()) -> list[str]:
        """Names left to the oracle's optimizer: flagged definitions plus declared ``extra`` names."""
        requested = set(extra)
        return [
            name
            for name, definition in self.parameters.items()
            if definition.externally_optimized or name in requested
        ]

    def materialize(self, vector: Mapping[str, Any], *, delegated: Iterable[str] = ()) -> dict[str, Any]:
        """
        Return the vector handed to the oracle.

        Delegated parameters are submitted at their maximum and the oracle's
        own optimizer searches below it.
        """
        submitted = {name: vector[name] for name in self.parameters}
        for name in delegated:
            maximum = self.definition(name).maximum
            if maximum is not None:
                submitted[name] = maximum
        return submitted

    # Constraints -------------------------------------------------------

    def add_constraint(self, constraint: Constraint) -> None:
        self.constraints.append(constraint)

    def add_ordering_constraint(self, lower: str, upper: str) -> bool:
        """Require ``lower <= upper``; ignored unless both parameters are declared."""
        if lower not in self.parameters or upper not in self.parameters:
            return False
        self.add_constraint(not_greater_than(lower, upper))
        return True

    def is_valid(self, vector: Mapping[str, Any] | None = None) -> bool:
        values = self.vector() if vector is None else vector
        return all(constraint(values) for constraint in self.constraints)

    # Output ------------------------------------------------------------

    def to_lines(self, vector: Mapping[str, Any] | None = None) -> list[str]:
        values = self.vector() if vector is None else vector
        return [f"{name} {self.format(name, values[name])}" for name in self.parameters]

    def write(self, destination: str | Path, vector: Mapping[str, Any] | None = None) -> Path:
        """Atomically write ``name value`` lines in declaration order."""
        return write_parameter_file(destination, self.to_lines(vector))


def not_greater_than(lower: str, upper: str) -> Constraint:
    """Constraint satisfied when the value of ``lower`` does not exceed ``upper``."""

    def _check(values: Mapping[str, Any]) -> bool:
        return not values[lower] > values[upper]

    _check.__name__ = f"{lower}_le_{upper}"
    return _check


def read_parameter_file(path: str | Path) -> dict[str, Any]:
    """Parse a ``name value`` file; blank lines and ``#`` comments are skipped."""
    values: dict[str, Any] = {}
    for raw_line in Path(path).read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        fields = line.split()
        if len(fields) < 2:
            continue
        values[fields[0]] = _coerce_token(fields[1])
    return values


def write_parameter_file(destination: str | Path, lines: Sequence[str]) -> Path:
    destination_path = Path(destination)
    if destination_path.parent != Path(""):
        destination_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = destination_path.with_name(destination_path.name + ".tmp")
    tmp_path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
    os.replace(tmp_path, destination_path)
    return destination_path


def format_value(value: Any) -> str:
    return str(value)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _coerce_token(token: str) -> Any:
    """Convert a text token to int or float where possible, keeping it as text otherwise."""
    try:
        return int(token)
    except ValueError:
        pass
    try:
        number = Decimal(token)
    except InvalidOperation:
        return token
    if not number.is_finite():
        return token
    return float(number)
