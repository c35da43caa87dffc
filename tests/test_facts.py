"""
test_facts.py

Tests for Fact and FactGraph — triples with per-file provenance.
"""

from __future__ import annotations

from kgsync.facts import Fact, FactGraph

A = "pkg/a.py"
B = "pkg/b.py"

MOD_A = Fact("mod:pkg/a.py", "type", "Module")
SHARED = Fact("sym:os", "type", "Symbol")


# ---------------------------------------------------------------------------
# Fact
# ---------------------------------------------------------------------------


def test_fact_structural_equality():
    assert Fact("s", "p", "o") == Fact("s", "p", "o")
    assert Fact("s", "p", "o") != Fact("s", "p", "x")
    assert len({Fact("s", "p", "o"), Fact("s", "p", "o")}) == 1


def test_fact_as_tuple_and_ordering():
    facts = [Fact("b", "p", "o"), Fact("a", "q", "o"), Fact("a", "p", "z")]
    assert sorted(facts)[0].as_tuple() == ("a", "p", "z")


# ---------------------------------------------------------------------------
# insert / retract
# ---------------------------------------------------------------------------


def test_insert_and_owned_by():
    g = FactGraph()
    assert g.insert(A, {MOD_A, SHARED}) == 2
    assert g.owned_by(A) == frozenset({MOD_A, SHARED})
    assert g.owners() == [A]
    assert len(g) == 2


def test_insert_empty_is_noop():
    g = FactGraph()
    assert g.insert(A, []) == 0
    assert g.owners() == []


def test_insert_merges_with_existing():
    g = FactGraph({A: {MOD_A}})
    assert g.insert(A, {SHARED}) == 2


def test_retract_returns_removed_facts():
    g = FactGraph({A: {MOD_A}})
    removed = g.retract(A)
    assert removed == frozenset({MOD_A})
    assert MOD_A not in g
    assert g.retract(A) == frozenset()


def test_shared_fact_survives_other_owner_retraction():
    g = FactGraph({A: {MOD_A, SHARED}, B: {SHARED}})
    g.retract(A)
    assert SHARED in g
    assert MOD_A not in g
    assert len(g) == 1


# ---------------------------------------------------------------------------
# Read helpers
# ---------------------------------------------------------------------------


def test_items_in_path_order():
    g = FactGraph({B: {SHARED}, A: {MOD_A}})
    assert [p for p, _ in g.items()] == [A, B]


def test_facts_is_union_and_subjects():
    g = FactGraph({A: {MOD_A, SHARED}, B: {SHARED}})
    assert g.facts() == {MOD_A, SHARED}
    assert g.subjects() == {"mod:pkg/a.py", "sym:os"}


def test_copy_is_independent():
    g = FactGraph({A: {MOD_A}})
    c = g.copy()
    c.retract(A)
    c.insert(B, {SHARED})
    assert g.owned_by(A) == frozenset({MOD_A})
    assert g.owners() == [A]


def test_equality_compares_ownership():
    assert FactGraph({A: {MOD_A}}) == FactGraph({A: {MOD_A}})
    assert FactGraph({A: {MOD_A}}) != FactGraph({B: {MOD_A}})


def test_stats():
    g = FactGraph({A: {MOD_A, SHARED}, B: {SHARED, Fact("mod:pkg/b.py", "IMPORTS", "sym:os")}})
    s = g.stats()
    assert s["total_facts"] == 3
    assert s["total_owners"] == 2
    assert s["predicate_counts"] == {"IMPORTS": 1, "type": 2}


def test_repr():
    assert "FactGraph" in repr(FactGraph())
