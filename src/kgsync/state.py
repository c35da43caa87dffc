#!/usr/bin/env python3
"""
state.py

AnalysisStateStore — the fingerprint snapshot persisted beside a graph.

The state file travels with its graph: for ``graph.sqlite`` it is
``graph.sqlite.state``.  It is a versioned JSON record::

    {
      "version": "1.0",
      "project": {"path": ..., "name": ..., "version": ...},
      "files": [{"path": ..., "mtime": ..., "size": ...}, ...],
      "metadata": {"file_count": N, "last_analysis": "<iso8601>", ...}
    }

Readers ignore unknown fields.  A missing file and an unparsable file are
reported as different errors so callers can log them differently; both
mean "no usable previous snapshot".

Author: Eric G. Suchanek, PhD
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import tomllib
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from types import MappingProxyType

from kgsync.errors import StateCorruptError, StateNotFoundError, StateWriteError
from kgsync.fingerprint import FileFingerprint

logger = logging.getLogger(__name__)

STATE_VERSION = "1.0"
STATE_SUFFIX = ".state"

# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProjectInfo:
    """
    Project descriptor stored in the state file.

    :param path: Absolute project root
    :param name: Project name
    :param version: Project version, if known
    """

    path: str
    name: str
    version: str | None = None

    @classmethod
    def detect(cls, root: str | Path) -> ProjectInfo:
        """
        Describe the project at *root*.

        Name and version come from ``[project]`` in ``pyproject.toml`` when
        present, otherwise the name is the directory name.
        """
        root = Path(root).resolve()
        name, version = root.name, None
        pyproject = root / "pyproject.toml"
        if pyproject.is_file():
            try:
                data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
                logger.debug("ignoring unreadable %s: %s", pyproject, exc)
            else:
                proj = data.get("project", {})
                if isinstance(proj, dict):
                    if isinstance(proj.get("name"), str):
                        name = proj["name"]
                    if isinstance(proj.get("version"), str):
                        version = proj["version"]
        return cls(path=str(root), name=name, version=version)

    def to_dict(self) -> dict:
        return {"path": self.path, "name": self.name, "version": self.version}


@dataclass(frozen=True)
class AnalysisState:
    """
    Immutable snapshot of one successful run.

    :param timestamp: When the run finished (UTC), if known
    :param fingerprints: ``{path: FileFingerprint}``
    :param project: Project descriptor
    :param metadata: Free-form bag (counts, failed files, collaborator data)
    """

    timestamp: datetime | None
    fingerprints: Mapping[str, FileFingerprint]
    project: ProjectInfo | None = None
    metadata: Mapping[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fingerprints", MappingProxyType(dict(self.fingerprints)))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @classmethod
    def capture(
        cls,
        fingerprints: Iterable[FileFingerprint],
        *,
        project: ProjectInfo | None = None,
        metadata: Mapping[str, object] | None = None,
        timestamp: datetime | None = None,
    ) -> AnalysisState:
        """Build a snapshot from freshly scanned fingerprints."""
        return cls(
            timestamp=timestamp or datetime.now(UTC),
            fingerprints={fp.path: fp for fp in fingerprints},
            project=project,
            metadata=dict(metadata or {}),
        )

    @property
    def paths(self) -> set[str]:
        return set(self.fingerprints)

    @property
    def failed_files(self) -> list[str]:
        """Paths whose analysis failed on the run that wrote this state."""
        failed = self.metadata.get("failed_files", [])
        if not isinstance(failed, list):
            return []
        return [p for p in failed if isinstance(p, str)]

    def to_dict(self) -> dict:
        metadata = dict(self.metadata)
        metadata["file_count"] = len(self.fingerprints)
        metadata["last_analysis"] = self.timestamp.isoformat() if self.timestamp else None
        return {
            "version": STATE_VERSION,
            "project": self.project.to_dict() if self.project else None,
            "files": [self.fingerprints[p].to_dict() for p in sorted(self.fingerprints)],
            "metadata": metadata,
        }


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def state_path_for(graph_path: str | Path) -> Path:
    """Return the state file path that belongs to *graph_path*."""
    graph_path = Path(graph_path)
    return graph_path.with_name(graph_path.name + STATE_SUFFIX)


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


def load_state(path: str | Path) -> AnalysisState:
    """
    Read a state file.

    :param path: State file path (see :func:`state_path_for`)
    :raises StateNotFoundError: the file does not exist
    :raises StateCorruptError: the file exists but is unusable
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise StateNotFoundError(f"State file not found: {path}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise StateCorruptError(f"Cannot read state file {path}: {exc}") from exc

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StateCorruptError(f"Invalid JSON in {path}: {exc}") from exc

    return _decode(raw, path)


def _decode(raw: object, path: Path) -> AnalysisState:
    if not isinstance(raw, dict):
        raise StateCorruptError(f"{path}: top-level value is not an object")

    version = raw.get("version")
    if not isinstance(version, str) or version.split(".")[0] != STATE_VERSION.split(".")[0]:
        raise StateCorruptError(f"{path}: unsupported state version {version!r}")

    files = raw.get("files")
    if not isinstance(files, list):
        raise StateCorruptError(f"{path}: 'files' is missing or not a list")

    fingerprints: dict[str, FileFingerprint] = {}
    for entry in files:
        fp = _decode_file(entry)
        if fp is None:
            raise StateCorruptError(f"{path}: malformed file entry {entry!r}")
        fingerprints[fp.path] = fp

    metadata = raw.get("metadata")
    if metadata is None:
        metadata = {}
    elif not isinstance(metadata, dict):
        raise StateCorruptError(f"{path}: 'metadata' is not an object")

    return AnalysisState(
        timestamp=_parse_time(metadata.get("last_analysis")),
        fingerprints=fingerprints,
        project=_decode_project(raw.get("project")),
        metadata=metadata,
    )


def _decode_file(entry: object) -> FileFingerprint | None:
    if not isinstance(entry, dict):
        return None
    p, mtime, size = entry.get("path"), entry.get("mtime"), entry.get("size")
    if not isinstance(p, str) or not p:
        return None
    # bool is an int subclass; reject it explicitly
    if not isinstance(mtime, int) or isinstance(mtime, bool):
        return None
    if not isinstance(size, int) or isinstance(size, bool) or size < 0:
        return None
    return FileFingerprint(path=p, mtime=mtime, size=size)


def _decode_project(raw: object) -> ProjectInfo | None:
    if not isinstance(raw, dict):
        return None
    p, name = raw.get("path"), raw.get("name")
    if not isinstance(p, str) or not isinstance(name, str):
        return None
    version = raw.get("version")
    return ProjectInfo(path=p, name=name, version=version if isinstance(version, str) else None)


def _parse_time(value: object) -> datetime | None:
    if not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Save
# ---------------------------------------------------------------------------


def save_state(path: str | Path, state: AnalysisState) -> None:
    """
    Write *state* to *path*, replacing any previous file atomically.

    :raises StateWriteError: on any I/O failure
    """
    path = Path(path)
    text = json.dumps(state.to_dict(), indent=2, ensure_ascii=False, default=str)
    tmp_name: str | None = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=path.parent)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(text)
            fh.write("\n")
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as exc:
        raise StateWriteError(f"Failed to write state file {path}: {exc}") from exc
    finally:
        if tmp_name is not None:
            Path(tmp_name).unlink(missing_ok=True)
