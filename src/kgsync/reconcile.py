#!/usr/bin/env python3
"""
reconcile.py

Reconciler — bring a fact graph in line with a classified set of changes.

Retract-then-insert, by provenance:

1. ``deleted``   retract the file's facts; no recompute
2. ``changed``   retract the file's facts, recompute, insert the result
3. ``new``       recompute, insert the result
4. ``unchanged`` nothing at all; recompute is never called

A recompute failure is recorded against its path and never aborts the
batch.  Recompute calls are independent and may run on a bounded thread
pool; merging into the graph is single-writer and happens in path order
after all calls return.

Author: Eric G. Suchanek, PhD
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from kgsync.changes import ChangeSet
from kgsync.errors import AnalysisError
from kgsync.facts import Fact, FactGraph

logger = logging.getLogger(__name__)

Recompute = Callable[[str], Iterable[Fact]]

# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileError:
    """
    A per-file recompute failure.

    :param path: Repo-relative path
    :param reason: Short reason code (e.g. ``syntax_error``)
    :param detail: Optional human-readable detail
    """

    path: str
    reason: str
    detail: str | None = None

    def to_dict(self) -> dict:
        return {"path": self.path, "reason": self.reason, "detail": self.detail}

    def __str__(self) -> str:
        if self.detail:
            return f"{self.path}: {self.reason} ({self.detail})"
        return f"{self.path}: {self.reason}"


@dataclass
class ReconcileResult:
    """
    Outcome of :func:`apply`.

    :param graph: The updated graph (a new object; the input is untouched)
    :param errors: Per-file failures, in path order within each bucket
    :param retracted: Facts removed (deleted + changed owners)
    :param inserted: Facts added by successful recomputes
    :param recomputed: Paths whose recompute succeeded
    :param restored: Changed paths whose old facts were put back after a
                     failed recompute (only with ``keep_stale_on_error``)
    """

    graph: FactGraph
    errors: list[FileError] = field(default_factory=list)
    retracted: int = 0
    inserted: int = 0
    recomputed: list[str] = field(default_factory=list)
    restored: list[str] = field(default_factory=list)

    @property
    def failed_paths(self) -> list[str]:
        return [e.path for e in self.errors]


# ---------------------------------------------------------------------------
# Recompute
# ---------------------------------------------------------------------------


def _recompute_one(recompute: Recompute, path: str) -> frozenset[Fact] | FileError:
    try:
        return frozenset(recompute(path))
    except AnalysisError as exc:
        logger.debug("analysis failed for %s: %s", path, exc)
        return FileError(path, exc.reason, exc.detail)
    except Exception as exc:  # a single bad file must not abort the batch
        logger.warning("unexpected error analyzing %s", path, exc_info=True)
        return FileError(path, type(exc).__name__, str(exc) or None)


def recompute_all(
    paths: Sequence[str],
    recompute: Recompute,
    *,
    workers: int = 1,
) -> dict[str, frozenset[Fact] | FileError]:
    """
    Run *recompute* over *paths*.

    :param workers: ``1`` runs inline; more uses a thread pool of that size
    :return: ``{path: facts | FileError}``
    """
    if workers <= 1 or len(paths) <= 1:
        return {p: _recompute_one(recompute, p) for p in paths}

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="kgsync") as pool:
        results = pool.map(lambda p: _recompute_one(recompute, p), paths)
        return dict(zip(paths, results))


# ---------------------------------------------------------------------------
# Apply
# ---------------------------------------------------------------------------


def apply(
    previous_graph: FactGraph,
    change_set: ChangeSet,
    recompute: Recompute,
    *,
    workers: int = 1,
    keep_stale_on_error: bool = False,
) -> ReconcileResult:
    """
    Reconcile *previous_graph* with *change_set*.

    When a *changed* file fails to recompute its old facts stay retracted
    by default; pass ``keep_stale_on_error=True`` to put them back.

    :param previous_graph: Graph from the last run (not mutated)
    :param change_set: Classification from :func:`kgsync.changes.diff`
    :param recompute: ``path -> facts``; raise
                      :class:`~kgsync.errors.AnalysisError` on failure
    :param workers: Recompute pool size
    :param keep_stale_on_error: Restore old facts on changed-file failure
    :return: :class:`ReconcileResult`
    """
    graph = previous_graph.copy()
    result = ReconcileResult(graph=graph)

    outcomes = recompute_all(change_set.to_recompute, recompute, workers=workers)

    # 1. deleted
    for path in change_set.deleted:
        result.retracted += len(graph.retract(path))

    # 2. changed
    for path in change_set.changed:
        old = graph.retract(path)
        result.retracted += len(old)
        outcome = outcomes[path]
        if isinstance(outcome, FileError):
            result.errors.append(outcome)
            if keep_stale_on_error and old:
                graph.insert(path, old)
                result.retracted -= len(old)
                result.restored.append(path)
            continue
        result.inserted += graph.insert(path, outcome)
        result.recomputed.append(path)

    # 3. new
    for path in change_set.new:
        leftover = graph.retract(path)
        if leftover:
            logger.debug("dropping %d stray facts owned by new file %s", len(leftover), path)
            result.retracted += len(leftover)
        outcome = outcomes[path]
        if isinstance(outcome, FileError):
            result.errors.append(outcome)
            continue
        result.inserted += graph.insert(path, outcome)
        result.recomputed.append(path)

    # 4. unchanged: nothing

    logger.info(
        "reconciled: retracted=%d inserted=%d recomputed=%d errors=%d",
        result.retracted,
        result.inserted,
        len(result.recomputed),
        len(result.errors),
    )
    return result
