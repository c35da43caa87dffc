#!/usr/bin/env python3
"""
update_kg.py

CLI entry point: existing graph + project tree → updated graph + state

Exit status is 0 on success, including runs where some files failed to
analyze, and 1 on any fatal failure.

Author: Eric G. Suchanek, PhD
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from kgsync.config import CliOverrides, load_effective_config
from kgsync.driver import UpdateDriver
from kgsync.errors import ConfigError, FatalUpdateError
from kgsync.logs import configure_logging


def build_parser(prog: str | None = None) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog=prog,
        description="Incrementally update a fact graph from a project's changed files.",
    )
    p.add_argument("--graph", "-i", required=True, help="Existing graph file to update")
    p.add_argument(
        "--output",
        "-o",
        default=None,
        help="Output graph path (default: overwrite --graph)",
    )
    p.add_argument("--repo", default=".", help="Path to project root (default: .)")
    p.add_argument(
        "--force-full",
        action="store_true",
        help="Ignore the state file and re-analyze every file",
    )
    p.add_argument(
        "--include-tests",
        action="store_true",
        default=None,
        help="Also analyze top-level tests/ and test/ trees",
    )
    p.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Analyze changed files on this many threads",
    )
    p.add_argument(
        "--keep-stale",
        action="store_true",
        default=None,
        help="Keep a changed file's old facts when it fails to analyze",
    )
    p.add_argument("--config", default=None, help="TOML config file (default: repo pyproject.toml)")
    p.add_argument("--json", action="store_true", help="Print the report as JSON")
    p.add_argument("--quiet", "-q", action="store_true", help="Suppress the summary")
    p.add_argument("--verbose", "-v", action="count", default=0, help="More logging (-v, -vv)")
    p.set_defaults(initial_build=False)
    return p


def _log_level(verbose: int) -> int:
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return logging.WARNING


def run(args: argparse.Namespace) -> int:
    """Run an update from parsed arguments and return the exit status."""
    configure_logging(_log_level(args.verbose))
    repo_root = Path(args.repo).resolve()

    try:
        config = load_effective_config(
            repo_root,
            Path(args.config) if args.config else None,
            CliOverrides(
                exclude_tests=False if args.include_tests else None,
                workers=args.workers,
                keep_stale_on_error=True if args.keep_stale else None,
            ),
        )
    except ConfigError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    driver = UpdateDriver(args.graph, repo_root, output_path=args.output, config=config)
    try:
        report = driver.run(force_full=args.force_full, initial=args.initial_build)
    except FatalUpdateError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.json:
        print(report.to_json())
    elif not args.quiet:
        print(report.format(max_errors=config.max_reported_errors))
    if report.errors:
        print(
            f"warning: {len(report.errors)} file(s) could not be analyzed",
            file=sys.stderr,
        )
    return 0


def main(argv: list | None = None) -> None:
    args = build_parser().parse_args(argv)
    sys.exit(run(args))


if __name__ == "__main__":
    main()
