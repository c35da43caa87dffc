#!/usr/bin/env python3
"""
build_kg.py

CLI entry point: project tree → fresh graph + state (first run)

Creates the graph file if needed, then performs a full analysis so the
state file exists for later incremental updates.

Author: Eric G. Suchanek, PhD
"""

from __future__ import annotations

import argparse
import sys

from kgsync.errors import FatalUpdateError
from kgsync.store import create_graph
from kgsync.update_kg import run


def main(argv: list | None = None) -> None:
    p = argparse.ArgumentParser(
        description="Analyze a whole project into a new fact graph (SQLite)."
    )
    p.add_argument("--repo", default=".", help="Path to project root (default: .)")
    p.add_argument(
        "--graph",
        default=".kgsync/graph.sqlite",
        help="Graph path (default: .kgsync/graph.sqlite)",
    )
    p.add_argument("--include-tests", action="store_true", default=None)
    p.add_argument("--workers", type=int, default=None)
    p.add_argument("--config", default=None, help="TOML config file")
    p.add_argument("--json", action="store_true", help="Print the report as JSON")
    p.add_argument("--quiet", "-q", action="store_true")
    p.add_argument("--verbose", "-v", action="count", default=0)
    args = p.parse_args(argv)

    # fields the shared runner expects but build does not expose
    args.output = None
    args.keep_stale = None
    args.force_full = True
    args.initial_build = True

    try:
        create_graph(args.graph)
    except FatalUpdateError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)

    sys.exit(run(args))


if __name__ == "__main__":
    main()
