"""
test_analyzer.py

Tests for the per-file analyzer: extract_module() and PythonAnalyzer.
"""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from kgsync.analyzer import (
    CALLS,
    CONTAINS,
    DOC,
    IMPORTS,
    INHERITS,
    NAME,
    TYPE,
    PythonAnalyzer,
    expr_to_name,
    extract_module,
    node_id,
)
from kgsync.errors import AnalysisError
from kgsync.facts import Fact

SOURCE = textwrap.dedent(
    '''
    """Util module."""
    import os
    from pathlib import Path


    class Base:
        pass


    class Foo(Base):
        """A foo."""

        def run(self):
            self.helper()
            return bar()

        def helper(self):
            return os.getcwd()


    def bar():
        return Path(".")
    '''
)

MOD = "pkg/util.py"


def _write_repo(tmp_path: Path, files: dict) -> Path:
    for rel, src in files.items():
        p = tmp_path / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(src, bytes):
            p.write_bytes(src)
        else:
            p.write_text(textwrap.dedent(src))
    return tmp_path


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def test_node_id_shapes():
    assert node_id("module", MOD, None) == "mod:pkg/util.py"
    assert node_id("class", MOD, "Foo") == "cls:pkg/util.py:Foo"
    assert node_id("function", MOD, "bar") == "fn:pkg/util.py:bar"
    assert node_id("method", MOD, "Foo.run") == "m:pkg/util.py:Foo.run"


def test_expr_to_name():
    import ast

    assert expr_to_name(ast.parse("a.b.c", mode="eval").body) == "a.b.c"
    assert expr_to_name(ast.parse("f(x)", mode="eval").body) == "f"
    assert expr_to_name(ast.parse("List[int]", mode="eval").body) == "List"
    assert expr_to_name(ast.parse("1", mode="eval").body) is None


# ---------------------------------------------------------------------------
# extract_module
# ---------------------------------------------------------------------------


def test_module_node_facts():
    facts = extract_module(SOURCE, MOD)
    assert Fact("mod:pkg/util.py", TYPE, "Module") in facts
    assert Fact("mod:pkg/util.py", NAME, "util") in facts
    assert Fact("mod:pkg/util.py", DOC, "Util module.") in facts


def test_containment():
    facts = extract_module(SOURCE, MOD)
    assert Fact("mod:pkg/util.py", CONTAINS, "cls:pkg/util.py:Foo") in facts
    assert Fact("mod:pkg/util.py", CONTAINS, "fn:pkg/util.py:bar") in facts
    assert Fact("cls:pkg/util.py:Foo", CONTAINS, "m:pkg/util.py:Foo.run") in facts
    assert Fact("m:pkg/util.py:Foo.run", TYPE, "Method") in facts
    assert Fact("cls:pkg/util.py:Foo", DOC, "A foo.") in facts


def test_imports_and_inheritance():
    facts = extract_module(SOURCE, MOD)
    assert Fact("mod:pkg/util.py", IMPORTS, "sym:os") in facts
    assert Fact("mod:pkg/util.py", IMPORTS, "sym:pathlib.Path") in facts
    assert Fact("cls:pkg/util.py:Foo", INHERITS, "sym:Base") in facts
    assert Fact("sym:pathlib.Path", NAME, "Path") in facts


def test_call_resolution():
    facts = extract_module(SOURCE, MOD)
    assert Fact("m:pkg/util.py:Foo.run", CALLS, "m:pkg/util.py:Foo.helper") in facts
    assert Fact("m:pkg/util.py:Foo.run", CALLS, "fn:pkg/util.py:bar") in facts
    assert Fact("m:pkg/util.py:Foo.helper", CALLS, "sym:os.getcwd") in facts
    assert Fact("fn:pkg/util.py:bar", CALLS, "sym:Path") in facts


def test_module_level_calls_are_ignored():
    facts = extract_module("print('hi')\n", "script.py")
    assert not any(f.predicate == CALLS for f in facts)


def test_extraction_is_deterministic():
    assert extract_module(SOURCE, MOD) == extract_module(SOURCE, MOD)


def test_ids_are_scoped_by_path():
    a = extract_module("def f(): pass\n", "a.py")
    b = extract_module("def f(): pass\n", "b.py")
    assert Fact("fn:a.py:f", TYPE, "Function") in a
    assert Fact("fn:b.py:f", TYPE, "Function") in b
    assert not ({f.subject for f in a} & {f.subject for f in b})


def test_syntax_error_propagates():
    with pytest.raises(SyntaxError):
        extract_module("def broken(:\n", "bad.py")


# ---------------------------------------------------------------------------
# PythonAnalyzer
# ---------------------------------------------------------------------------


def test_analyzer_reads_relative_path(tmp_path):
    repo = _write_repo(tmp_path, {MOD: SOURCE})
    analyzer = PythonAnalyzer(repo)
    facts = analyzer(MOD)
    assert facts == extract_module(SOURCE, MOD)


def test_analyzer_syntax_error(tmp_path):
    repo = _write_repo(tmp_path, {"bad.py": "def broken(:\n"})
    with pytest.raises(AnalysisError) as exc_info:
        PythonAnalyzer(repo).analyze("bad.py")
    assert exc_info.value.reason == "syntax_error"
    assert exc_info.value.path == "bad.py"
    assert exc_info.value.detail == "line 1"


def test_analyzer_missing_file(tmp_path):
    with pytest.raises(AnalysisError) as exc_info:
        PythonAnalyzer(tmp_path).analyze("ghost.py")
    assert exc_info.value.reason == "not_found"


def test_analyzer_decode_error(tmp_path):
    repo = _write_repo(tmp_path, {"latin.py": b"x = '\xff\xfe'\n"})
    with pytest.raises(AnalysisError) as exc_info:
        PythonAnalyzer(repo).analyze("latin.py")
    assert exc_info.value.reason == "decode_error"


def test_analyzer_null_bytes(tmp_path):
    repo = _write_repo(tmp_path, {"nul.py": b"x = 1\x00\n"})
    with pytest.raises(AnalysisError) as exc_info:
        PythonAnalyzer(repo).analyze("nul.py")
    assert exc_info.value.reason == "syntax_error"


def test_analyzer_repr(tmp_path):
    assert "PythonAnalyzer" in repr(PythonAnalyzer(tmp_path))
