"""Update configuration and deterministic merge order.

Merge order: defaults -> ``[tool.kgsync]`` in the project's
``pyproject.toml`` (or an explicit TOML file) -> CLI overrides.
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, replace
from pathlib import Path

from kgsync.errors import ConfigError
from kgsync.fingerprint import DEFAULT_INCLUDE_GLOBS, SKIP_DIRS

MAX_WORKERS_CAP = 64
DEFAULT_MAX_REPORTED_ERRORS = 5
DEFAULT_MAX_LISTED_FILES = 10

_KNOWN_KEYS = frozenset(
    {
        "include_globs",
        "exclude_dirs",
        "exclude_globs",
        "exclude_tests",
        "workers",
        "keep_stale_on_error",
        "max_reported_errors",
    }
)


@dataclass(slots=True, frozen=True)
class UpdateConfig:
    """Settings for one update run."""

    include_globs: tuple[str, ...] = DEFAULT_INCLUDE_GLOBS
    exclude_dirs: tuple[str, ...] = tuple(sorted(SKIP_DIRS))
    exclude_globs: tuple[str, ...] = ()
    exclude_tests: bool = True
    workers: int = 1
    keep_stale_on_error: bool = False
    max_reported_errors: int = DEFAULT_MAX_REPORTED_ERRORS

    def to_dict(self) -> dict[str, object]:
        """Return a serializable snapshot."""
        return {
            "include_globs": list(self.include_globs),
            "exclude_dirs": list(self.exclude_dirs),
            "exclude_globs": list(self.exclude_globs),
            "exclude_tests": self.exclude_tests,
            "workers": self.workers,
            "keep_stale_on_error": self.keep_stale_on_error,
            "max_reported_errors": self.max_reported_errors,
        }


@dataclass(slots=True, frozen=True)
class CliOverrides:
    """Optional command-line overrides applied at highest precedence."""

    exclude_tests: bool | None = None
    workers: int | None = None
    keep_stale_on_error: bool | None = None


def load_config_file(path: Path) -> dict[str, object]:
    """
    Load the kgsync table from a TOML file.

    A ``pyproject.toml`` contributes its ``[tool.kgsync]`` table; any other
    file is read as a bare kgsync table (optionally wrapped the same way).
    """
    try:
        with path.open("rb") as handle:
            payload = tomllib.load(handle)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc

    tool = payload.get("tool", {})
    if isinstance(tool, dict) and "kgsync" in tool:
        table = tool["kgsync"]
        if not isinstance(table, dict):
            raise ConfigError("Config section 'tool.kgsync' must be a table.")
        return table
    if path.name == "pyproject.toml":
        return {}
    return {k: v for k, v in payload.items() if k != "tool"}


def _tuple_of_strings(value: object, name: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ConfigError(f"Config field '{name}' must be a list of strings.")
    output: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ConfigError(f"Config field '{name}' must contain only strings.")
        output.append(item)
    return tuple(output)


def _bool(value: object, name: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"Config field '{name}' must be a boolean.")
    return value


def _positive_int(value: object, name: str, cap: int | None = None) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise ConfigError(f"Config field '{name}' must be a positive integer.")
    if cap is not None and value > cap:
        raise ConfigError(f"Config field '{name}' must be <= {cap}.")
    return value


def merge_config(base: UpdateConfig, payload: dict[str, object]) -> UpdateConfig:
    """Merge a kgsync TOML table over *base*."""
    unknown = sorted(set(payload) - _KNOWN_KEYS)
    if unknown:
        raise ConfigError(f"Unknown config field(s): {', '.join(unknown)}")

    changes: dict[str, object] = {}
    for key in ("include_globs", "exclude_dirs", "exclude_globs"):
        if key in payload:
            changes[key] = _tuple_of_strings(payload[key], key)
    for key in ("exclude_tests", "keep_stale_on_error"):
        if key in payload:
            changes[key] = _bool(payload[key], key)
    if "workers" in payload:
        changes["workers"] = _positive_int(payload["workers"], "workers", MAX_WORKERS_CAP)
    if "max_reported_errors" in payload:
        changes["max_reported_errors"] = _positive_int(
            payload["max_reported_errors"], "max_reported_errors"
        )
    if changes.get("include_globs") == ():
        raise ConfigError("Config field 'include_globs' must not be empty.")
    return replace(base, **changes)


def apply_cli_overrides(config: UpdateConfig, overrides: CliOverrides) -> UpdateConfig:
    """Apply command-line overrides at highest precedence."""
    changes: dict[str, object] = {}
    if overrides.exclude_tests is not None:
        changes["exclude_tests"] = overrides.exclude_tests
    if overrides.keep_stale_on_error is not None:
        changes["keep_stale_on_error"] = overrides.keep_stale_on_error
    if overrides.workers is not None:
        changes["workers"] = _positive_int(overrides.workers, "workers", MAX_WORKERS_CAP)
    return replace(config, **changes)


def load_effective_config(
    repo_root: Path,
    config_path: Path | None = None,
    overrides: CliOverrides | None = None,
) -> UpdateConfig:
    """Load config using merge order defaults -> file -> overrides."""
    if config_path is not None:
        payload = load_config_file(config_path)
    else:
        pyproject = repo_root / "pyproject.toml"
        payload = load_config_file(pyproject) if pyproject.is_file() else {}
    merged = merge_config(UpdateConfig(), payload)
    return apply_cli_overrides(merged, overrides or CliOverrides())
