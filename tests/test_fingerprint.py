"""
test_fingerprint.py

Tests for the fingerprint scanner: which files are tracked and what is
recorded for them.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

from kgsync.errors import ProjectNotFoundError
from kgsync.fingerprint import FileFingerprint, iter_source_files, scan


def _write_repo(tmp_path: Path, files: dict) -> Path:
    for rel, src in files.items():
        p = tmp_path / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(src)
    return tmp_path


def _paths(fps) -> list[str]:
    return sorted(fp.path for fp in fps)


# ---------------------------------------------------------------------------
# FileFingerprint
# ---------------------------------------------------------------------------


def test_fingerprint_signature_and_dict():
    fp = FileFingerprint("a.py", 100, 10)
    assert fp.signature() == (100, 10)
    assert fp.to_dict() == {"path": "a.py", "mtime": 100, "size": 10}


# ---------------------------------------------------------------------------
# scan()
# ---------------------------------------------------------------------------


def test_scan_records_mtime_and_size(tmp_path):
    repo = _write_repo(tmp_path, {"pkg/a.py": "x = 1\n"})
    os.utime(repo / "pkg/a.py", ns=(1_000_000_000, 2_000_000_000))
    (fp,) = scan(repo)
    assert fp == FileFingerprint("pkg/a.py", 2_000_000_000, 6)


def test_scan_uses_posix_relative_paths(tmp_path):
    repo = _write_repo(tmp_path, {"a.py": "", "pkg/sub/b.py": ""})
    assert _paths(scan(repo)) == ["a.py", "pkg/sub/b.py"]


def test_scan_skips_untracked_and_hidden(tmp_path):
    repo = _write_repo(
        tmp_path,
        {
            "a.py": "",
            "notes.txt": "",
            ".hidden.py": "",
            ".git/hooks/x.py": "",
            ".venv/lib/site.py": "",
            "pkg/__pycache__/a.cpython-312.py": "",
            ".cache/c.py": "",
        },
    )
    assert _paths(scan(repo)) == ["a.py"]


def test_scan_exclude_tests_only_at_top_level(tmp_path):
    repo = _write_repo(
        tmp_path,
        {"a.py": "", "tests/test_a.py": "", "test/t.py": "", "pkg/tests/helper.py": ""},
    )
    assert _paths(scan(repo, exclude_tests=True)) == ["a.py", "pkg/tests/helper.py"]
    assert "tests/test_a.py" in _paths(scan(repo, exclude_tests=False))


def test_scan_custom_globs(tmp_path):
    repo = _write_repo(tmp_path, {"a.py": "", "b.pyi": "", "gen/c_pb2.py": ""})
    assert _paths(scan(repo, ("*.py", "*.pyi"))) == ["a.py", "b.pyi", "gen/c_pb2.py"]
    assert _paths(scan(repo, exclude_globs=("gen/*",))) == ["a.py"]


def test_scan_exclude_dirs(tmp_path):
    repo = _write_repo(tmp_path, {"a.py": "", "build/b.py": ""})
    assert _paths(scan(repo, exclude_dirs={"build"})) == ["a.py"]


@pytest.mark.skipif(sys.platform == "win32", reason="symlinks need privileges on Windows")
def test_scan_skips_dangling_symlink(tmp_path):
    repo = _write_repo(tmp_path, {"a.py": ""})
    os.symlink(repo / "missing.py", repo / "link.py")
    assert _paths(scan(repo)) == ["a.py"]


@pytest.mark.skipif(sys.platform == "win32", reason="symlinks need privileges on Windows")
def test_scan_survives_symlink_cycles(tmp_path):
    repo = _write_repo(tmp_path, {"pkg/a.py": ""})
    os.symlink(repo / "pkg", repo / "pkg" / "loop", target_is_directory=True)
    os.symlink("self.py", repo / "self.py")
    assert _paths(scan(repo)) == ["pkg/a.py"]


def test_scan_missing_root_raises(tmp_path):
    with pytest.raises(ProjectNotFoundError):
        scan(tmp_path / "nope")


def test_scan_file_as_root_raises(tmp_path):
    f = tmp_path / "a.py"
    f.write_text("")
    with pytest.raises(ProjectNotFoundError):
        scan(f)


def test_iter_source_files_is_sorted(tmp_path):
    repo = _write_repo(tmp_path, {"b.py": "", "a.py": "", "z/c.py": ""})
    rels = [p.relative_to(repo).as_posix() for p in iter_source_files(repo)]
    assert rels == ["a.py", "b.py", "z/c.py"]
