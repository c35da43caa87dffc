#!/usr/bin/env python3
"""
driver.py

UpdateDriver — one incremental update run, start to finish.

Owns the pipeline:
    LOAD_GRAPH -> LOAD_STATE -> DETECT_CHANGES -> RECONCILE -> PERSIST

and the failure policy:

* fatal (raise :class:`~kgsync.errors.FatalUpdateError`): missing project
  root, unreadable input graph, failure to write graph or state
* recoverable (logged, reported, run continues): missing or corrupt state
  file (falls back to a full run), per-file analysis failures

Also defines the structured result type :class:`UpdateReport`.

Author: Eric G. Suchanek, PhD
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from kgsync import changes as change_tracker
from kgsync import reconcile
from kgsync.analyzer import PythonAnalyzer
from kgsync.changes import ChangeSet
from kgsync.config import DEFAULT_MAX_LISTED_FILES, UpdateConfig
from kgsync.errors import (
    GraphLoadError,
    PersistError,
    ProjectNotFoundError,
    StateCorruptError,
    StateNotFoundError,
    StateWriteError,
)
from kgsync.facts import FactGraph
from kgsync.fingerprint import FileFingerprint, scan
from kgsync.logs import set_run_id, stage_scope
from kgsync.reconcile import FileError, Recompute
from kgsync.state import (
    AnalysisState,
    ProjectInfo,
    load_state,
    save_state,
    state_path_for,
)
from kgsync.store import load_graph, save_graph

logger = logging.getLogger(__name__)

GraphLoader = Callable[[Path], FactGraph]
GraphSaver = Callable[[FactGraph, Path], None]

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Stage(str, Enum):
    """Driver stages, in execution order."""

    LOAD_GRAPH = "load_graph"
    LOAD_STATE = "load_state"
    DETECT_CHANGES = "detect_changes"
    RECONCILE = "reconcile"
    PERSIST = "persist"


class RunMode(str, Enum):
    INCREMENTAL = "incremental"
    FULL = "full"


class FallbackReason(str, Enum):
    """Why a run was downgraded to full mode."""

    FORCED = "forced"
    STATE_NOT_FOUND = "state_not_found"
    STATE_CORRUPT = "state_corrupt"


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------


@dataclass
class UpdateReport:
    """
    Outcome of a successful :meth:`UpdateDriver.run`.

    A report is only produced when the run succeeded; per-file failures
    are listed in ``errors`` and do not change that.

    :param graph_path: Input graph.
    :param output_path: Graph actually written.
    :param state_path: State file written beside ``output_path``.
    :param project_root: Analyzed project root.
    :param mode: ``incremental`` or ``full``.
    :param fallback_reason: Why the run is full (``None`` if incremental).
    :param changes: Classification that was reconciled.
    :param errors: Per-file analysis failures.
    :param warnings: Non-fatal conditions worth telling the user about.
    :param retried: Previously failed paths re-analyzed despite being unchanged.
    :param restored: Changed paths whose old facts were kept after a failure.
    :param total_facts: Distinct facts in the written graph.
    :param total_owners: Files owning at least one fact.
    :param duration_s: Wall-clock run time.
    :param run_id: Log correlation id.
    """

    graph_path: str
    output_path: str
    state_path: str
    project_root: str
    mode: RunMode
    fallback_reason: FallbackReason | None
    changes: ChangeSet
    errors: list[FileError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    retried: list[str] = field(default_factory=list)
    restored: list[str] = field(default_factory=list)
    total_facts: int = 0
    total_owners: int = 0
    duration_s: float = 0.0
    run_id: str = "-"

    def to_dict(self) -> dict:
        return {
            "graph_path": self.graph_path,
            "output_path": self.output_path,
            "state_path": self.state_path,
            "project_root": self.project_root,
            "mode": self.mode.value,
            "fallback_reason": self.fallback_reason.value if self.fallback_reason else None,
            "changes": {
                "changed": list(self.changes.changed),
                "new": list(self.changes.new),
                "deleted": list(self.changes.deleted),
                "unchanged": len(self.changes.unchanged),
            },
            "summary": self.changes.summary(),
            "errors": [e.to_dict() for e in self.errors],
            "warnings": list(self.warnings),
            "retried": list(self.retried),
            "restored": list(self.restored),
            "total_facts": self.total_facts,
            "total_owners": self.total_owners,
            "duration_s": round(self.duration_s, 3),
            "run_id": self.run_id,
        }

    def to_json(self, *, indent: int = 2) -> str:
        """Serialise to JSON string."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def format(
        self,
        *,
        max_errors: int = 5,
        max_files: int = DEFAULT_MAX_LISTED_FILES,
    ) -> str:
        """
        Render a human-readable summary.

        :param max_errors: Per-file errors to list before "... and K more".
        :param max_files: Paths to list per change class.
        """
        out: list[str] = []
        s = self.changes.summary()
        mode = self.mode.value
        if self.fallback_reason:
            mode += f" ({self.fallback_reason.value})"
        out.append(f"Mode: {mode}")
        out.append("Changes detected:")
        out.append(f"  - Changed: {s['changed']} file(s)")
        out.append(f"  - New: {s['new']} file(s)")
        out.append(f"  - Deleted: {s['deleted']} file(s)")
        out.append(f"  - Unchanged: {s['unchanged']} file(s)")

        for title, paths in (
            ("Changed files:", self.changes.changed),
            ("New files:", self.changes.new),
            ("Deleted files:", self.changes.deleted),
        ):
            if paths:
                out.append(title)
                out.extend(_capped([f"  - {p}" for p in paths], max_files))

        if self.errors:
            out.append(f"{len(self.errors)} file(s) had errors:")
            out.extend(_capped([f"  {e}" for e in self.errors], max_errors))

        out.append(f"Graph: {self.total_facts} facts from {self.total_owners} file(s)")
        out.append(f"Output written to {self.output_path}")
        out.append(f"State saved to {self.state_path}")
        return "\n".join(out)

    def __str__(self) -> str:
        return self.format()


def _capped(lines: list[str], limit: int) -> list[str]:
    if len(lines) <= limit:
        return lines
    return lines[:limit] + [f"  ... and {len(lines) - limit} more"]


# ---------------------------------------------------------------------------
# UpdateDriver
# ---------------------------------------------------------------------------


class UpdateDriver:
    """
    Orchestrates one update of a persisted graph against a project tree.

    Typical usage::

        driver = UpdateDriver("graph.sqlite", "/path/to/repo")
        report = driver.run()
        print(report)

    Concurrent runs against the same graph/state pair are not supported;
    callers must serialise them.

    :param graph_path: Existing graph to update.
    :param project_root: Project root directory.
    :param output_path: Where to write the updated graph (default: in place).
    :param config: :class:`~kgsync.config.UpdateConfig` (default settings if omitted).
    :param analyzer: ``rel_path -> facts`` callable (default
                     :class:`~kgsync.analyzer.PythonAnalyzer`).
    :param load: Graph loader (default :func:`kgsync.store.load_graph`).
    :param save: Graph saver (default :func:`kgsync.store.save_graph`).
    """

    def __init__(
        self,
        graph_path: str | Path,
        project_root: str | Path = ".",
        *,
        output_path: str | Path | None = None,
        config: UpdateConfig | None = None,
        analyzer: Recompute | None = None,
        load: GraphLoader = load_graph,
        save: GraphSaver = save_graph,
    ) -> None:
        self.graph_path = Path(graph_path)
        self.project_root = Path(project_root).resolve()
        self.output_path = Path(output_path) if output_path is not None else self.graph_path
        self.config = config or UpdateConfig()
        self.analyzer: Recompute = analyzer or PythonAnalyzer(self.project_root)
        self._load = load
        self._save = save

    @property
    def input_state_path(self) -> Path:
        return state_path_for(self.graph_path)

    @property
    def output_state_path(self) -> Path:
        return state_path_for(self.output_path)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, *, force_full: bool = False, initial: bool = False) -> UpdateReport:
        """
        Execute the full pipeline.

        :param force_full: Skip state loading; treat every file as new.
        :param initial: First build of a fresh graph.  A forced full run is
                        then expected and is logged at info, not reported
                        as a warning.
        :raises ProjectNotFoundError: project root missing.
        :raises GraphLoadError: input graph missing or unreadable.
        :raises PersistError: graph or state could not be written.
        :return: :class:`UpdateReport`.
        """
        started = time.perf_counter()
        run_id = set_run_id()
        self._check_project_root()
        warnings: list[str] = []

        with stage_scope(Stage.LOAD_GRAPH.value):
            try:
                graph = self._load(self.graph_path)
            except OSError as exc:
                raise GraphLoadError(f"Failed to load graph {self.graph_path}: {exc}") from exc
            logger.info("loaded %d facts from %s", len(graph), self.graph_path)

        with stage_scope(Stage.LOAD_STATE.value):
            previous, reason = self._load_previous_state(force_full, initial, warnings)

        with stage_scope(Stage.DETECT_CHANGES.value):
            current = self._scan()
            change_set = change_tracker.diff(previous, current)
            retried: list[str] = []
            if previous is not None:
                before = set(change_set.unchanged)
                change_set = change_set.promote(previous.failed_files)
                retried = sorted(before - set(change_set.unchanged))
                if retried:
                    logger.info("retrying %d previously failed file(s)", len(retried))
            else:
                # full mode rebuilds from nothing; old owners are not in any bucket
                graph = FactGraph()
            logger.info("changes: %s", change_set)

        with stage_scope(Stage.RECONCILE.value):
            result = reconcile.apply(
                graph,
                change_set,
                self.analyzer,
                workers=self.config.workers,
                keep_stale_on_error=self.config.keep_stale_on_error,
            )
            for err in result.errors:
                logger.info("analysis failed: %s", err)

        with stage_scope(Stage.PERSIST.value):
            new_state = AnalysisState.capture(
                current,
                project=ProjectInfo.detect(self.project_root),
                metadata=self._state_metadata(previous, change_set, result, run_id),
                timestamp=datetime.now(UTC),
            )
            self._persist(result.graph, new_state)

        stats = result.graph.stats()
        return UpdateReport(
            graph_path=str(self.graph_path),
            output_path=str(self.output_path),
            state_path=str(self.output_state_path),
            project_root=str(self.project_root),
            mode=RunMode.INCREMENTAL if reason is None else RunMode.FULL,
            fallback_reason=reason,
            changes=change_set,
            errors=result.errors,
            warnings=warnings,
            retried=retried,
            restored=result.restored,
            total_facts=stats["total_facts"],
            total_owners=stats["total_owners"],
            duration_s=time.perf_counter() - started,
            run_id=run_id,
        )

    def preview(self) -> ChangeSet:
        """
        Classify changes against the current state file without writing.

        A missing or corrupt state yields the full (all-new) classification.
        """
        self._check_project_root()
        try:
            previous: AnalysisState | None = load_state(self.input_state_path)
        except (StateNotFoundError, StateCorruptError):
            previous = None
        change_set = change_tracker.diff(previous, self._scan())
        if previous is not None:
            change_set = change_set.promote(previous.failed_files)
        return change_set

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _check_project_root(self) -> None:
        if not self.project_root.is_dir():
            raise ProjectNotFoundError(f"Project path not found: {self.project_root}")

    def _load_previous_state(
        self, force_full: bool, initial: bool, warnings: list[str]
    ) -> tuple[AnalysisState | None, FallbackReason | None]:
        if force_full:
            msg = "full re-analysis requested, state file not consulted"
            if initial:
                logger.info(msg)
            else:
                logger.warning(msg)
                warnings.append(msg)
            return None, FallbackReason.FORCED
        try:
            state = load_state(self.input_state_path)
        except StateNotFoundError:
            msg = f"state file not found ({self.input_state_path}), performing full analysis"
            logger.warning(msg)
            warnings.append(msg)
            return None, FallbackReason.STATE_NOT_FOUND
        except StateCorruptError as exc:
            msg = f"failed to load state ({exc}), performing full analysis"
            logger.warning(msg)
            warnings.append(msg)
            return None, FallbackReason.STATE_CORRUPT
        logger.info(
            "loaded state with %d fingerprints from %s",
            len(state.fingerprints),
            self.input_state_path,
        )
        return state, None

    def _scan(self) -> set[FileFingerprint]:
        return scan(
            self.project_root,
            self.config.include_globs,
            exclude_dirs=self.config.exclude_dirs,
            exclude_globs=self.config.exclude_globs,
            exclude_tests=self.config.exclude_tests,
        )

    def _state_metadata(
        self,
        previous: AnalysisState | None,
        change_set: ChangeSet,
        result: reconcile.ReconcileResult,
        run_id: str,
    ) -> dict[str, object]:
        summary = change_set.summary()
        return {
            "run_id": run_id,
            "previous_analysis": (
                previous.timestamp.isoformat() if previous and previous.timestamp else None
            ),
            "changed_count": summary["changed"],
            "new_count": summary["new"],
            "deleted_count": summary["deleted"],
            "unchanged_count": summary["unchanged"],
            "error_count": len(result.errors),
            "failed_files": sorted(result.failed_paths),
        }

    def _persist(self, graph: FactGraph, state: AnalysisState) -> None:
        # the graph is written first; a state that no longer matches it must not survive
        try:
            self._save(graph, self.output_path)
        except OSError as exc:
            raise PersistError(f"Failed to write graph {self.output_path}: {exc}") from exc
        logger.info("graph written to %s", self.output_path)
        try:
            save_state(self.output_state_path, state)
        except StateWriteError as exc:
            try:
                self.output_state_path.unlink(missing_ok=True)
            except OSError:
                logger.error("stale state file left at %s", self.output_state_path)
            raise PersistError(str(exc)) from exc
        logger.info("state written to %s", self.output_state_path)

    def __repr__(self) -> str:
        return (
            f"UpdateDriver(graph_path={self.graph_path!r}, "
            f"project_root={self.project_root!r}, "
            f"output_path={self.output_path!r})"
        )
