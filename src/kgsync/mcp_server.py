#!/usr/bin/env python3
"""
mcp_server.py — kgsync MCP Server

Exposes the incremental update engine and read access to the resulting
fact graph as Model Context Protocol (MCP) tools, so an MCP-compatible
agent can keep a project's graph current while it edits the code.

Tools
-----
update_graph(force_full)
    Run one incremental update.  Returns the run report as JSON.

preview_changes()
    Classify changed / new / deleted / unchanged files without writing.

graph_stats()
    Fact counts by predicate.  Returns JSON.

file_facts(path)
    Facts owned by one repo-relative file.  Returns JSON.

describe_subject(subject)
    Every fact about one subject id, with its owning file.  Returns JSON.

Usage
-----
Install the package with the ``mcp`` extra, build the graph once, then::

    kgsync-mcp --repo /path/to/repo --graph .kgsync/graph.sqlite

Author: Eric G. Suchanek, PhD
"""

from __future__ import annotations

import argparse
import json
import sys
import threading
from pathlib import Path

# ---------------------------------------------------------------------------
# Lazy MCP import: mcp is an optional dependency
# ---------------------------------------------------------------------------

try:
    from mcp.server.fastmcp import FastMCP
except ImportError:
    print(
        "ERROR: 'mcp' package not found.\n"
        "Install it with:  pip install 'kgsync[mcp]'",
        file=sys.stderr,
    )
    sys.exit(1)

from kgsync.config import load_effective_config
from kgsync.driver import UpdateDriver
from kgsync.errors import ConfigError, FatalUpdateError, GraphLoadError
from kgsync.store import GraphStore

# ---------------------------------------------------------------------------
# Global state, initialised in main() before the server starts
# ---------------------------------------------------------------------------

_driver: UpdateDriver | None = None
# one update per graph at a time; the persisted pair has no locking of its own
_update_lock = threading.Lock()


def _get_driver() -> UpdateDriver:
    if _driver is None:
        raise RuntimeError(
            "kgsync not initialised.  Run the server via 'kgsync-mcp --repo ... --graph ...'"
        )
    return _driver


def _open_store() -> GraphStore:
    return GraphStore(_get_driver().output_path, create=False)


# ---------------------------------------------------------------------------
# MCP server
# ---------------------------------------------------------------------------

mcp = FastMCP(
    "kgsync",
    instructions=(
        "kgsync keeps a fact graph of a Python codebase current. Call update_graph "
        "after editing files so the graph reflects the edits, preview_changes to see "
        "what an update would touch, and file_facts or describe_subject to read facts."
    ),
)


@mcp.tool()
def update_graph(force_full: bool = False) -> str:
    """
    Bring the graph up to date with the project tree.

    Only files whose modification time or size changed since the last run
    are re-analyzed; facts of deleted files are removed.

    :param force_full: Ignore the saved state and re-analyze every file.
    :return: JSON report (mode, per-class counts, per-file errors), or an
             ``error`` object on fatal failure.
    """
    with _update_lock:
        try:
            report = _get_driver().run(force_full=force_full)
        except FatalUpdateError as exc:
            return json.dumps({"error": str(exc)})
    return report.to_json()


@mcp.tool()
def preview_changes() -> str:
    """
    Classify project files against the last saved state without writing.

    :return: JSON with ``changed``, ``new``, ``deleted`` path lists and the
             ``unchanged`` count.
    """
    try:
        cs = _get_driver().preview()
    except FatalUpdateError as exc:
        return json.dumps({"error": str(exc)})
    return json.dumps(
        {
            "changed": list(cs.changed),
            "new": list(cs.new),
            "deleted": list(cs.deleted),
            "unchanged": len(cs.unchanged),
        },
        indent=2,
    )


@mcp.tool()
def graph_stats() -> str:
    """
    Return fact counts broken down by predicate.

    :return: JSON string with db_path, total_facts, total_owners and
             predicate_counts.
    """
    try:
        with _open_store() as store:
            stats = store.stats()
    except GraphLoadError as exc:
        return json.dumps({"error": str(exc)})
    return json.dumps(stats, indent=2, ensure_ascii=False)


@mcp.tool()
def file_facts(path: str) -> str:
    """
    Facts owned by one source file.

    :param path: Repo-relative POSIX path, e.g. ``src/pkg/util.py``.
    :return: JSON list of ``[subject, predicate, object]`` triples.
    """
    try:
        with _open_store() as store:
            facts = store.facts_owned_by(path)
    except GraphLoadError as exc:
        return json.dumps({"error": str(exc)})
    return json.dumps([list(f.as_tuple()) for f in facts], indent=2, ensure_ascii=False)


@mcp.tool()
def describe_subject(subject: str) -> str:
    """
    Every fact whose subject is *subject*.

    Subject ids follow the pattern ``<kind>:<module_path>[:<qualname>]``,
    e.g. ``fn:src/pkg/util.py:parse_file`` or ``mod:src/pkg/util.py``.

    :param subject: Subject identifier.
    :return: JSON list of ``{predicate, object, owner}`` objects.
    """
    try:
        with _open_store() as store:
            rows = store.facts_about(subject)
    except GraphLoadError as exc:
        return json.dumps({"error": str(exc)})
    if not rows:
        return json.dumps({"error": f"Subject not found: {subject!r}"})
    return json.dumps(rows, indent=2, ensure_ascii=False)


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def _parse_args(argv: list | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="kgsync-mcp",
        description="kgsync MCP server — keeps a codebase fact graph current for AI agents.",
    )
    p.add_argument(
        "--repo",
        default=".",
        help="Project root directory (default: current directory)",
    )
    p.add_argument(
        "--graph",
        default=".kgsync/graph.sqlite",
        help="Path to the graph (default: .kgsync/graph.sqlite)",
    )
    p.add_argument("--config", default=None, help="TOML config file")
    return p.parse_args(argv)


def main(argv: list | None = None) -> None:
    """
    CLI entry point for the kgsync MCP server (stdio transport).
    """
    global _driver

    args = _parse_args(argv)

    repo = Path(args.repo).resolve()
    graph = Path(args.graph) if Path(args.graph).is_absolute() else repo / args.graph

    if not graph.exists():
        print(
            f"WARNING: graph not found at '{graph}'.\n"
            "Run 'kgsync-build' first; update_graph will fail until it exists.",
            file=sys.stderr,
        )

    try:
        config = load_effective_config(repo, Path(args.config) if args.config else None)
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)

    print(
        f"kgsync MCP server starting\n"
        f"  repo     : {repo}\n"
        f"  graph    : {graph}\n"
        f"  workers  : {config.workers}",
        file=sys.stderr,
    )

    _driver = UpdateDriver(graph, repo, config=config)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
