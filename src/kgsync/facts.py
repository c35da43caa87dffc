#!/usr/bin/env python3
"""
facts.py

Graph primitives for kgsync.

A :class:`Fact` is a plain ``(subject, predicate, object)`` triple.  Facts
carry no source path; ownership is tracked by :class:`FactGraph`, which
keeps a provenance index ``path -> set(Fact)`` alongside the triples.

The graph is the union of every owner's facts.  Two files may produce the
same triple (a shared imported symbol, for instance); each owner keeps its
own copy, so retracting one file never removes a fact another file still
asserts.

Author: Eric G. Suchanek, PhD
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

# ============================================================================
# Fact (LOCKED contract)
# ============================================================================


@dataclass(frozen=True, order=True)
class Fact:
    """
    One subject-predicate-object triple.

    Equality is exact structural equality.

    :param subject: Subject identifier (e.g. ``mod:pkg/util.py``)
    :param predicate: Predicate name (e.g. ``CONTAINS``)
    :param object: Object identifier or literal
    """

    subject: str
    predicate: str
    object: str

    def as_tuple(self) -> tuple[str, str, str]:
        return (self.subject, self.predicate, self.object)


# ============================================================================
# FactGraph
# ============================================================================


class FactGraph:
    """
    In-memory fact graph with per-file provenance.

    Example::

        g = FactGraph()
        g.insert("pkg/a.py", {Fact("mod:pkg/a.py", "type", "Module")})
        g.retract("pkg/a.py")
        assert len(g) == 0

    :param owned: Optional initial ``{path: facts}`` mapping.
    """

    def __init__(self, owned: dict[str, Iterable[Fact]] | None = None) -> None:
        self._owned: dict[str, frozenset[Fact]] = {}
        for path, facts in (owned or {}).items():
            self.insert(path, facts)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def insert(self, path: str, facts: Iterable[Fact]) -> int:
        """
        Add *facts* under ownership of *path*.

        :return: Number of facts now owned by *path*.
        """
        new = frozenset(facts)
        if not new:
            return len(self._owned.get(path, ()))
        merged = self._owned.get(path, frozenset()) | new
        self._owned[path] = merged
        return len(merged)

    def retract(self, path: str) -> frozenset[Fact]:
        """
        Remove every fact owned by *path*.

        :return: The retracted facts (empty if *path* owned nothing).
        """
        return self._owned.pop(path, frozenset())

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def owned_by(self, path: str) -> frozenset[Fact]:
        """Facts owned by *path* (empty if none)."""
        return self._owned.get(path, frozenset())

    def owners(self) -> list[str]:
        """Sorted list of paths that own at least one fact."""
        return sorted(self._owned)

    def items(self) -> Iterator[tuple[str, frozenset[Fact]]]:
        """Yield ``(path, facts)`` pairs in path order."""
        for path in sorted(self._owned):
            yield path, self._owned[path]

    def facts(self) -> set[Fact]:
        """The graph proper: union of all owned facts."""
        out: set[Fact] = set()
        for facts in self._owned.values():
            out |= facts
        return out

    def subjects(self) -> set[str]:
        return {f.subject for f in self.facts()}

    def copy(self) -> FactGraph:
        """Shallow copy; fact sets are immutable so this is safe to mutate."""
        g = FactGraph()
        g._owned = dict(self._owned)
        return g

    def stats(self) -> dict:
        """
        Return a summary of facts by predicate.

        :return: dict with ``total_facts``, ``total_owners`` and
                 ``predicate_counts``.
        """
        facts = self.facts()
        counts: Counter = Counter(f.predicate for f in facts)
        return {
            "total_facts": len(facts),
            "total_owners": len(self._owned),
            "predicate_counts": dict(sorted(counts.items())),
        }

    def __len__(self) -> int:
        return len(self.facts())

    def __contains__(self, fact: object) -> bool:
        return any(fact in facts for facts in self._owned.values())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FactGraph):
            return NotImplemented
        return self._owned == other._owned

    def __repr__(self) -> str:
        return f"FactGraph(owners={len(self._owned)}, facts={len(self)})"
