#!/usr/bin/env python3
"""
changes.py

ChangeTracker — classify files as changed / new / deleted / unchanged.

Compares a previous fingerprint snapshot against a fresh scan.  A file
present in both is *changed* when its mtime **or** size differs, in
either direction.  A touch without an edit therefore recomputes the file.

Author: Eric G. Suchanek, PhD
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from kgsync.fingerprint import FileFingerprint

if TYPE_CHECKING:
    from kgsync.state import AnalysisState


@dataclass(frozen=True)
class ChangeSet:
    """
    Four-way partition of every known path.

    The buckets are pairwise disjoint, each sorted, and together cover
    ``previous_paths | current_paths``.

    :param changed: In both snapshots, fingerprint differs
    :param new: Only in the current scan
    :param deleted: Only in the previous snapshot
    :param unchanged: In both snapshots, fingerprint identical
    """

    changed: tuple[str, ...] = ()
    new: tuple[str, ...] = ()
    deleted: tuple[str, ...] = ()
    unchanged: tuple[str, ...] = ()

    @property
    def to_recompute(self) -> tuple[str, ...]:
        """Paths the reconciler must analyze (changed, then new)."""
        return self.changed + self.new

    def is_empty(self) -> bool:
        """True when nothing needs retracting or recomputing."""
        return not (self.changed or self.new or self.deleted)

    def summary(self) -> dict[str, int]:
        return {
            "changed": len(self.changed),
            "new": len(self.new),
            "deleted": len(self.deleted),
            "unchanged": len(self.unchanged),
        }

    def promote(self, paths: Iterable[str]) -> ChangeSet:
        """
        Move *paths* from ``unchanged`` to ``changed``.

        Paths not currently unchanged are ignored, so the partition is
        preserved.
        """
        wanted = set(paths) & set(self.unchanged)
        if not wanted:
            return self
        return replace(
            self,
            changed=tuple(sorted(set(self.changed) | wanted)),
            unchanged=tuple(p for p in self.unchanged if p not in wanted),
        )

    def __str__(self) -> str:
        s = self.summary()
        return (
            f"changed={s['changed']} new={s['new']} "
            f"deleted={s['deleted']} unchanged={s['unchanged']}"
        )


def full_change_set(current: Iterable[FileFingerprint]) -> ChangeSet:
    """Fallback classification: every scanned path is new."""
    return ChangeSet(new=tuple(sorted({fp.path for fp in current})))


def diff(
    previous: AnalysisState | None,
    current: Iterable[FileFingerprint],
) -> ChangeSet:
    """
    Classify every path in ``previous | current``.

    :param previous: Prior snapshot, or ``None`` when there is none
    :param current: Fingerprints from a fresh scan
    :return: :class:`ChangeSet`
    """
    if previous is None:
        return full_change_set(current)

    old = previous.fingerprints
    cur = {fp.path: fp for fp in current}

    changed: list[str] = []
    unchanged: list[str] = []
    for path in sorted(old.keys() & cur.keys()):
        if old[path].signature() != cur[path].signature():
            changed.append(path)
        else:
            unchanged.append(path)

    return ChangeSet(
        changed=tuple(changed),
        new=tuple(sorted(cur.keys() - old.keys())),
        deleted=tuple(sorted(old.keys() - cur.keys())),
        unchanged=tuple(unchanged),
    )
