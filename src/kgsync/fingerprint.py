#!/usr/bin/env python3
"""
fingerprint.py

FingerprintScanner — cheap per-file change signatures.

Walks a project's tracked source files and records ``(path, mtime, size)``
for each.  No content is read and nothing about the file's meaning is
known here.

Author: Eric G. Suchanek, PhD
"""

from __future__ import annotations

import fnmatch
import logging
import os
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from kgsync.errors import ProjectNotFoundError

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================

DEFAULT_INCLUDE_GLOBS: tuple[str, ...] = ("*.py",)

SKIP_DIRS: frozenset[str] = frozenset(
    {
        ".git",
        ".venv",
        "venv",
        "__pycache__",
        ".mypy_cache",
        ".pytest_cache",
    }
)

TEST_DIRS: tuple[str, ...] = ("tests", "test")


# ============================================================================
# FileFingerprint
# ============================================================================


@dataclass(frozen=True, order=True)
class FileFingerprint:
    """
    Change signature for one file.

    :param path: Repo-relative POSIX path (unique within a scan)
    :param mtime: Modification time in integer nanoseconds
    :param size: Size in bytes
    """

    path: str
    mtime: int
    size: int

    def signature(self) -> tuple[int, int]:
        """The ``(mtime, size)`` pair compared by the change tracker."""
        return (self.mtime, self.size)

    def to_dict(self) -> dict:
        return {"path": self.path, "mtime": self.mtime, "size": self.size}


# ============================================================================
# Scanner
# ============================================================================


def rel_module_path(path: Path, repo_root: Path) -> str:
    """
    Convert a file path to a repo-relative POSIX path.

    :param path: Absolute file path
    :param repo_root: Repo root
    """
    return str(path.relative_to(repo_root)).replace("\\", "/")


def _matches(rel: str, name: str, globs: Iterable[str]) -> bool:
    return any(fnmatch.fnmatch(name, g) or fnmatch.fnmatch(rel, g) for g in globs)


def iter_source_files(
    repo_root: Path,
    include_globs: Sequence[str] = DEFAULT_INCLUDE_GLOBS,
    *,
    exclude_dirs: Iterable[str] = SKIP_DIRS,
    exclude_globs: Sequence[str] = (),
    exclude_tests: bool = False,
) -> Iterable[Path]:
    """
    Yield tracked source files under *repo_root*.

    Directory symlinks are never followed, so link cycles cannot recurse.

    :param repo_root: Repository root
    :param include_globs: File name or relative-path globs to keep
    :param exclude_dirs: Directory names to prune anywhere in the tree
    :param exclude_globs: Relative-path globs to drop
    :param exclude_tests: Prune top-level ``tests/`` and ``test/`` trees
    """
    skip = set(exclude_dirs)
    for root, dirs, files in os.walk(repo_root, followlinks=False):
        at_top = Path(root) == repo_root
        dirs[:] = sorted(
            d
            for d in dirs
            if d not in skip
            and not d.startswith(".")
            and not (exclude_tests and at_top and d in TEST_DIRS)
        )
        for f in sorted(files):
            if f.startswith("."):
                continue
            p = Path(root) / f
            rel = rel_module_path(p, repo_root)
            if not _matches(rel, f, include_globs):
                continue
            if exclude_globs and _matches(rel, f, exclude_globs):
                continue
            yield p


def scan(
    root: str | Path,
    include_globs: Sequence[str] = DEFAULT_INCLUDE_GLOBS,
    *,
    exclude_dirs: Iterable[str] = SKIP_DIRS,
    exclude_globs: Sequence[str] = (),
    exclude_tests: bool = False,
) -> set[FileFingerprint]:
    """
    Fingerprint every tracked source file under *root*.

    Files that disappear between listing and ``stat`` are skipped, as are
    entries that turn out not to be regular files (e.g. dangling links).

    :param root: Project root directory
    :param include_globs: Globs selecting tracked files (default ``*.py``)
    :raises ProjectNotFoundError: if *root* is missing or not a directory
    :return: set of :class:`FileFingerprint`
    """
    repo_root = Path(root).resolve()
    if not repo_root.is_dir():
        raise ProjectNotFoundError(f"Project path not found: {root}")

    out: set[FileFingerprint] = set()
    for p in iter_source_files(
        repo_root,
        include_globs,
        exclude_dirs=exclude_dirs,
        exclude_globs=exclude_globs,
        exclude_tests=exclude_tests,
    ):
        try:
            st = p.stat()
        except OSError as exc:
            logger.debug("skipping %s: %s", p, exc)
            continue
        if not p.is_file():
            continue
        out.add(
            FileFingerprint(
                path=rel_module_path(p, repo_root),
                mtime=st.st_mtime_ns,
                size=st.st_size,
            )
        )

    logger.debug("scanned %d files under %s", len(out), repo_root)
    return out
