"""
test_config.py

Tests for configuration loading and merge precedence.
"""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from kgsync.config import (
    MAX_WORKERS_CAP,
    CliOverrides,
    UpdateConfig,
    load_config_file,
    load_effective_config,
    merge_config,
)
from kgsync.errors import ConfigError


def _write(path: Path, text: str) -> Path:
    path.write_text(textwrap.dedent(text))
    return path


def test_defaults_without_pyproject(tmp_path):
    assert load_effective_config(tmp_path) == UpdateConfig()


def test_pyproject_without_table_uses_defaults(tmp_path):
    _write(tmp_path / "pyproject.toml", '[project]\nname = "x"\n')
    assert load_effective_config(tmp_path) == UpdateConfig()


def test_pyproject_tool_table(tmp_path):
    _write(
        tmp_path / "pyproject.toml",
        """
        [tool.kgsync]
        include_globs = ["*.py", "*.pyi"]
        exclude_globs = ["gen/*"]
        workers = 4
        keep_stale_on_error = true
        """,
    )
    cfg = load_effective_config(tmp_path)
    assert cfg.include_globs == ("*.py", "*.pyi")
    assert cfg.exclude_globs == ("gen/*",)
    assert cfg.workers == 4
    assert cfg.keep_stale_on_error is True
    assert cfg.exclude_tests is True


def test_explicit_file_is_bare_table(tmp_path):
    path = _write(tmp_path / "kgsync.toml", "workers = 2\nexclude_tests = false\n")
    cfg = load_effective_config(tmp_path, path)
    assert (cfg.workers, cfg.exclude_tests) == (2, False)


def test_cli_overrides_win(tmp_path):
    _write(tmp_path / "pyproject.toml", "[tool.kgsync]\nworkers = 4\n")
    cfg = load_effective_config(
        tmp_path, overrides=CliOverrides(workers=8, exclude_tests=False, keep_stale_on_error=True)
    )
    assert (cfg.workers, cfg.exclude_tests, cfg.keep_stale_on_error) == (8, False, True)


def test_missing_config_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config_file(tmp_path / "nope.toml")


def test_invalid_toml(tmp_path):
    path = _write(tmp_path / "bad.toml", "workers = [\n")
    with pytest.raises(ConfigError):
        load_config_file(path)


@pytest.mark.parametrize(
    "payload",
    [
        {"colour": "blue"},
        {"workers": 0},
        {"workers": True},
        {"workers": MAX_WORKERS_CAP + 1},
        {"include_globs": "*.py"},
        {"include_globs": []},
        {"exclude_dirs": [1]},
        {"exclude_tests": "yes"},
        {"max_reported_errors": -1},
    ],
)
def test_merge_rejects_bad_values(payload):
    with pytest.raises(ConfigError):
        merge_config(UpdateConfig(), payload)


def test_config_error_is_value_error():
    with pytest.raises(ValueError):
        merge_config(UpdateConfig(), {"workers": "many"})


def test_to_dict():
    d = UpdateConfig().to_dict()
    assert d["include_globs"] == ["*.py"]
    assert d["workers"] == 1


def test_non_utf8_config_file(tmp_path):
    path = tmp_path / "latin.toml"
    path.write_bytes(b"workers = 2 # caf\xe9\n")
    with pytest.raises(ConfigError, match="Invalid TOML"):
        load_config_file(path)


def test_unreadable_config_path(tmp_path):
    with pytest.raises(ConfigError, match="Cannot read config file"):
        load_config_file(tmp_path)
