#!/usr/bin/env python3
"""
analyzer.py

Default per-file analyzer: one Python source file -> set of facts.

Pure, deterministic AST pass over a single module:
    file -> facts

NO persistence
NO cross-file resolution (every id is scoped by the owning file's path)
NO guessing beyond explicit rules

Because every identifier embeds the repo-relative module path, the facts a
file produces depend only on that file's content, which is what lets the
reconciler recompute files independently.

Author: Eric G. Suchanek, PhD
"""

from __future__ import annotations

import ast
from pathlib import Path

from kgsync.errors import AnalysisError
from kgsync.facts import Fact

# ============================================================================
# Vocabulary
# ============================================================================

TYPE = "type"
NAME = "name"
QUALNAME = "qualname"
LINENO = "lineno"
DOC = "doc"

CONTAINS = "CONTAINS"
IMPORTS = "IMPORTS"
INHERITS = "INHERITS"
CALLS = "CALLS"

NODE_TYPES = {
    "module": "Module",
    "class": "Class",
    "function": "Function",
    "method": "Method",
    "symbol": "Symbol",
}


# ============================================================================
# Utility helpers
# ============================================================================


def node_id(kind: str, module: str, qualname: str | None) -> str:
    """
    Construct a stable node id.

    :param kind: Node kind
    :param module: Repo-relative module path
    :param qualname: Qualified name
    """
    if kind == "module":
        return f"mod:{module}"

    prefix = {
        "class": "cls",
        "function": "fn",
        "method": "m",
        "symbol": "sym",
    }[kind]

    return f"{prefix}:{module}:{qualname}" if qualname else f"{prefix}:{module}"


def expr_to_name(expr: ast.AST) -> str | None:
    """
    Convert AST expression to dotted name (best effort).

    :param expr: AST node
    """
    if isinstance(expr, ast.Name):
        return expr.id
    if isinstance(expr, ast.Attribute):
        left = expr_to_name(expr.value)
        return f"{left}.{expr.attr}" if left else expr.attr
    if isinstance(expr, ast.Call):
        return expr_to_name(expr.func)
    if isinstance(expr, ast.Subscript):
        return expr_to_name(expr.value)
    return None


def _first_line(doc: str | None) -> str | None:
    if not doc:
        return None
    stripped = doc.strip()
    return stripped.splitlines()[0] if stripped else None


# ============================================================================
# Core extraction logic
# ============================================================================


class _FactSink:
    """Accumulates facts for one module."""

    def __init__(self) -> None:
        self.facts: set[Fact] = set()

    def add(self, s: str, p: str, o: str) -> None:
        self.facts.add(Fact(s, p, o))

    def node(
        self,
        nid: str,
        kind: str,
        name: str,
        *,
        qualname: str | None = None,
        lineno: int | None = None,
        doc: str | None = None,
    ) -> None:
        self.add(nid, TYPE, NODE_TYPES[kind])
        self.add(nid, NAME, name)
        if qualname:
            self.add(nid, QUALNAME, qualname)
        if lineno is not None:
            self.add(nid, LINENO, str(lineno))
        first = _first_line(doc)
        if first:
            self.add(nid, DOC, first)

    def symbol(self, dotted: str) -> str:
        sym_id = f"sym:{dotted}"
        self.add(sym_id, TYPE, NODE_TYPES["symbol"])
        self.add(sym_id, NAME, dotted.split(".")[-1])
        return sym_id


def extract_module(source: str, module: str) -> set[Fact]:
    """
    Extract facts from one module's source text.

    This function is:
    - pure
    - deterministic
    - side-effect free

    :param source: Python source text
    :param module: Repo-relative module path (used in every id)
    :raises SyntaxError: if *source* does not parse
    :return: set of facts
    """
    tree = ast.parse(source, filename=module)
    sink = _FactSink()

    # ------------------------------------------------------------------
    # PASS 1: module, classes, functions, methods, imports
    # ------------------------------------------------------------------

    mod_id = node_id("module", module, None)
    sink.node(
        mod_id,
        "module",
        Path(module).stem,
        lineno=1,
        doc=ast.get_docstring(tree),
    )

    module_locals: dict[str, str] = {}
    class_methods: dict[str, str] = {}

    # traverse module body only (NOT ast.walk)
    for stmt in tree.body:
        if isinstance(stmt, ast.ClassDef):
            cls_id = node_id("class", module, stmt.name)
            sink.node(
                cls_id,
                "class",
                stmt.name,
                qualname=stmt.name,
                lineno=stmt.lineno,
                doc=ast.get_docstring(stmt),
            )
            sink.add(mod_id, CONTAINS, cls_id)
            module_locals[stmt.name] = cls_id

            for base in stmt.bases:
                bname = expr_to_name(base)
                if bname:
                    sink.add(cls_id, INHERITS, sink.symbol(bname))

            for cstmt in stmt.body:
                if isinstance(cstmt, ast.FunctionDef | ast.AsyncFunctionDef):
                    m_qn = f"{stmt.name}.{cstmt.name}"
                    m_id = node_id("method", module, m_qn)
                    sink.node(
                        m_id,
                        "method",
                        cstmt.name,
                        qualname=m_qn,
                        lineno=cstmt.lineno,
                        doc=ast.get_docstring(cstmt),
                    )
                    sink.add(cls_id, CONTAINS, m_id)
                    class_methods[cstmt.name] = m_id
                    module_locals[m_qn] = m_id

        elif isinstance(stmt, ast.FunctionDef | ast.AsyncFunctionDef):
            fn_id = node_id("function", module, stmt.name)
            sink.node(
                fn_id,
                "function",
                stmt.name,
                qualname=stmt.name,
                lineno=stmt.lineno,
                doc=ast.get_docstring(stmt),
            )
            sink.add(mod_id, CONTAINS, fn_id)
            module_locals[stmt.name] = fn_id

        elif isinstance(stmt, ast.Import):
            for alias in stmt.names:
                sink.add(mod_id, IMPORTS, sink.symbol(alias.name))

        elif isinstance(stmt, ast.ImportFrom):
            mod = stmt.module or ""
            for alias in stmt.names:
                full = f"{mod}.{alias.name}" if mod else alias.name
                sink.add(mod_id, IMPORTS, sink.symbol(full))

    # ------------------------------------------------------------------
    # PASS 2: call graph (best-effort, honest)
    # ------------------------------------------------------------------

    parent: dict[ast.AST, ast.AST] = {}
    for p in ast.walk(tree):
        for c in ast.iter_child_nodes(p):
            parent[c] = p

    def enclosing_def(n: ast.AST) -> ast.AST | None:
        cur = parent.get(n)
        while cur:
            if isinstance(cur, ast.FunctionDef | ast.AsyncFunctionDef):
                return cur
            cur = parent.get(cur)
        return None

    def owner_id(fn: ast.AST) -> str | None:
        p = parent.get(fn)
        if isinstance(p, ast.ClassDef):
            return module_locals.get(f"{p.name}.{fn.name}")
        return module_locals.get(fn.name)

    for n in ast.walk(tree):
        if not isinstance(n, ast.Call):
            continue

        fn = enclosing_def(n)
        if fn is None:
            continue

        src_id = owner_id(fn)
        if not src_id:
            continue

        callee = expr_to_name(n.func)
        if not callee:
            continue

        # resolution rules (LOCKED)
        if callee in module_locals:
            dst_id = module_locals[callee]
        elif callee.startswith("self."):
            meth = callee.split(".", 1)[1]
            dst_id = class_methods.get(meth) or sink.symbol(callee)
        else:
            dst_id = sink.symbol(callee)

        sink.add(src_id, CALLS, dst_id)

    return sink.facts


# ============================================================================
# Analyzer collaborator
# ============================================================================


class PythonAnalyzer:
    """
    Analyzer collaborator over a project root.

    Callable as ``analyzer(rel_path) -> set[Fact]`` so it can be handed to
    the reconciler as its ``recompute`` function.  Failures raise
    :class:`~kgsync.errors.AnalysisError`.

    :param repo_root: Project root; paths passed to :meth:`analyze` are
                      relative to it.
    """

    def __init__(self, repo_root: str | Path) -> None:
        self.repo_root: Path = Path(repo_root).resolve()

    def analyze(self, rel_path: str) -> set[Fact]:
        """
        Analyze one file.

        :param rel_path: Repo-relative POSIX path.
        :raises AnalysisError: ``not_found``, ``read_error``,
                               ``decode_error`` or ``syntax_error``.
        """
        path = self.repo_root / rel_path
        try:
            src = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise AnalysisError(rel_path, "not_found") from exc
        except UnicodeDecodeError as exc:
            raise AnalysisError(rel_path, "decode_error", str(exc)) from exc
        except OSError as exc:
            raise AnalysisError(rel_path, "read_error", str(exc)) from exc

        try:
            return extract_module(src, rel_path)
        except SyntaxError as exc:
            raise AnalysisError(rel_path, "syntax_error", f"line {exc.lineno}") from exc
        except ValueError as exc:
            # ast.parse rejects source containing null bytes with ValueError
            raise AnalysisError(rel_path, "syntax_error", str(exc)) from exc

    __call__ = analyze

    def __repr__(self) -> str:
        return f"PythonAnalyzer(repo_root={self.repo_root!r})"
