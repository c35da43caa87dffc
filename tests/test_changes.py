"""
test_changes.py

Tests for change classification: diff(), full_change_set() and ChangeSet.
"""

from __future__ import annotations

from kgsync.changes import ChangeSet, diff, full_change_set
from kgsync.fingerprint import FileFingerprint
from kgsync.state import AnalysisState


def _state(*fps: FileFingerprint) -> AnalysisState:
    return AnalysisState.capture(fps)


def _assert_partition(cs: ChangeSet, universe: set[str]) -> None:
    buckets = [cs.changed, cs.new, cs.deleted, cs.unchanged]
    flat = [p for b in buckets for p in b]
    assert len(flat) == len(set(flat)), "buckets overlap"
    assert set(flat) == universe
    for b in buckets:
        assert list(b) == sorted(b)


# ---------------------------------------------------------------------------
# diff()
# ---------------------------------------------------------------------------


def test_no_previous_state_everything_new():
    current = {FileFingerprint(p, 1, 1) for p in ("c", "a", "b")}
    cs = diff(None, current)
    assert cs == ChangeSet(new=("a", "b", "c"))


def test_mixed_classification():
    previous = _state(
        FileFingerprint("a", 100, 10),
        FileFingerprint("b", 200, 20),
        FileFingerprint("d", 50, 5),
    )
    current = {
        FileFingerprint("a", 100, 10),
        FileFingerprint("b", 210, 20),
        FileFingerprint("c", 300, 30),
    }
    cs = diff(previous, current)
    assert cs == ChangeSet(changed=("b",), new=("c",), deleted=("d",), unchanged=("a",))
    _assert_partition(cs, {"a", "b", "c", "d"})


def test_size_change_alone_is_a_change():
    previous = _state(FileFingerprint("a", 100, 10))
    cs = diff(previous, {FileFingerprint("a", 100, 11)})
    assert cs.changed == ("a",)


def test_older_mtime_is_still_a_change():
    previous = _state(FileFingerprint("a", 100, 10))
    cs = diff(previous, {FileFingerprint("a", 90, 10)})
    assert cs.changed == ("a",)


def test_identical_scan_is_empty():
    fps = [FileFingerprint("a", 1, 1), FileFingerprint("b", 2, 2)]
    cs = diff(_state(*fps), set(fps))
    assert cs.is_empty()
    assert cs.unchanged == ("a", "b")


def test_full_change_set():
    cs = full_change_set([FileFingerprint("b", 1, 1), FileFingerprint("a", 1, 1)])
    assert cs.new == ("a", "b")
    assert not cs.changed and not cs.deleted and not cs.unchanged


# ---------------------------------------------------------------------------
# ChangeSet
# ---------------------------------------------------------------------------


def test_to_recompute_and_summary():
    cs = ChangeSet(changed=("b",), new=("c",), deleted=("d",), unchanged=("a",))
    assert cs.to_recompute == ("b", "c")
    assert cs.summary() == {"changed": 1, "new": 1, "deleted": 1, "unchanged": 1}
    assert str(cs) == "changed=1 new=1 deleted=1 unchanged=1"


def test_promote_moves_unchanged_to_changed():
    cs = ChangeSet(changed=("c",), unchanged=("a", "b"))
    promoted = cs.promote(["a", "zzz"])
    assert promoted.changed == ("a", "c")
    assert promoted.unchanged == ("b",)
    _assert_partition(promoted, {"a", "b", "c"})


def test_promote_ignores_paths_in_other_buckets():
    cs = ChangeSet(new=("a",), deleted=("b",))
    assert cs.promote(["a", "b"]) is cs
