"""
Run configuration for security log analysis.
"""

import json
import multiprocessing
import os
from dataclasses import dataclass, field, fields, replace
from functools import cached_property
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from .exceptions import ConfigurationError
from .patterns import DEFAULT_TRUSTED_COUNTRIES

MODE_ANALYZE = "analyze"
MODE_PARSE = "parse"
MODES = (MODE_ANALYZE, MODE_PARSE)


def _default_concurrency() -> int:
    return os.cpu_count() or 1


def _as_tuple(name: str, value: Any) -> Tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    try:
        return tuple(value)
    except TypeError:
        raise ConfigurationError(f"{name} must be a string or a list of strings") from None


@dataclass(frozen=True)
class AnalysisConfig:
    """Options recognized by the analyzer, the scheduler and the exporter."""
    mode: str = MODE_ANALYZE
    output_dir: str = "output"
    trusted_countries: Tuple[str, ...] = DEFAULT_TRUSTED_COUNTRIES
    min_connection_threshold: int = 10
    max_concurrency: int = field(default_factory=_default_concurrency)
    task_timeout: float = 30 * 60.0  # seconds
    poll_interval: float = 0.5
    reconcile_timeout: float = 5.0
    top_n: int = 10
    file_patterns: Tuple[str, ...] = ("*.log", "*.txt")
    recursive: bool = False
    start_method: Optional[str] = None
    progress_every: int = 100

    def __post_init__(self) -> None:
        # Lists from JSON/CLI become tuples so the config stays hashable and picklable;
        # a lone string is one entry, not a sequence of characters
        object.__setattr__(self, "trusted_countries", _as_tuple("trusted_countries", self.trusted_countries))
        object.__setattr__(self, "file_patterns", _as_tuple("file_patterns", self.file_patterns))
        self.validate()

    def validate(self) -> None:
        if self.mode not in MODES:
            raise ConfigurationError(f"Unknown mode {self.mode!r}; expected one of {', '.join(MODES)}")
        if self.min_connection_threshold < 1:
            raise ConfigurationError("min_connection_threshold must be at least 1")
        if self.max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be at least 1")
        if self.task_timeout <= 0:
            raise ConfigurationError("task_timeout must be positive")
        if self.poll_interval <= 0:
            raise ConfigurationError("poll_interval must be positive")
        if self.reconcile_timeout < 0:
            raise ConfigurationError("reconcile_timeout must not be negative")
        if self.top_n < 1:
            raise ConfigurationError("top_n must be at least 1")
        if not self.file_patterns:
            raise ConfigurationError("file_patterns must not be empty")
        for name in ("trusted_countries", "file_patterns"):
            if not all(isinstance(v, str) and v.strip() for v in getattr(self, name)):
                raise ConfigurationError(f"{name} entries must be non-empty strings")
        if (
            self.start_method is not None
            and self.start_method not in multiprocessing.get_all_start_methods()
        ):
            raise ConfigurationError(f"Unsupported multiprocessing start method {self.start_method!r}")

    @cached_property
    def trusted_set(self) -> FrozenSet[str]:
        return frozenset(c.strip().lower() for c in self.trusted_countries)

    def is_trusted(self, country: str) -> bool:
        return country.strip().lower() in self.trusted_set

    def with_overrides(self, **overrides: Any) -> "AnalysisConfig":
        """Copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigurationError(f"Unknown configuration option(s): {', '.join(sorted(unknown))}")
        return replace(self, **changes)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AnalysisConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration option(s): {', '.join(sorted(unknown))}")
        try:
            return cls(**dict(data))
        except TypeError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e


def load_config(path: str, overrides: Optional[Dict[str, Any]] = None) -> AnalysisConfig:
    """Load an AnalysisConfig from a JSON file, then apply overrides."""
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in configuration file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file {path} must contain a JSON object")

    config = AnalysisConfig.from_mapping(data)
    if overrides:
        config = config.with_overrides(**overrides)
    return config
