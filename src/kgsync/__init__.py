"""
kgsync: keep a derived code fact graph current as a repository changes.

Fingerprint scan → change classification → retract-then-insert
reconciliation → SQLite graph + JSON state side-file.

Public API
----------
Primary entry point::

    from kgsync import UpdateDriver

    driver = UpdateDriver("graph.sqlite", "/path/to/repo")
    report = driver.run()
    print(report)

Individual layers::

    from kgsync import scan, diff, apply, load_state, save_state, GraphStore

Result and data types::

    from kgsync import ChangeSet, UpdateReport, ReconcileResult, AnalysisState

Primitives::

    from kgsync import Fact, FactGraph, FileFingerprint
"""

__version__ = "0.1.0"
__author__ = "Eric G. Suchanek, PhD"

# Primitives
from kgsync.facts import Fact, FactGraph
from kgsync.fingerprint import FileFingerprint, scan

# Layers
from kgsync.analyzer import PythonAnalyzer
from kgsync.changes import ChangeSet, diff, full_change_set
from kgsync.config import UpdateConfig, load_effective_config
from kgsync.reconcile import FileError, ReconcileResult, apply
from kgsync.state import AnalysisState, ProjectInfo, load_state, save_state, state_path_for
from kgsync.store import GraphStore, load_graph, save_graph

# Orchestrator + result types
from kgsync.driver import RunMode, Stage, UpdateDriver, UpdateReport
from kgsync.errors import (
    AnalysisError,
    FatalUpdateError,
    GraphLoadError,
    KgSyncError,
    PersistError,
    ProjectNotFoundError,
    StateCorruptError,
    StateNotFoundError,
)

__all__ = [
    # primitives
    "Fact",
    "FactGraph",
    "FileFingerprint",
    "scan",
    # layers
    "PythonAnalyzer",
    "ChangeSet",
    "diff",
    "full_change_set",
    "UpdateConfig",
    "load_effective_config",
    "FileError",
    "ReconcileResult",
    "apply",
    "AnalysisState",
    "ProjectInfo",
    "load_state",
    "save_state",
    "state_path_for",
    "GraphStore",
    "load_graph",
    "save_graph",
    # orchestrator
    "UpdateDriver",
    "UpdateReport",
    "RunMode",
    "Stage",
    # errors
    "KgSyncError",
    "FatalUpdateError",
    "GraphLoadError",
    "PersistError",
    "ProjectNotFoundError",
    "StateNotFoundError",
    "StateCorruptError",
    "AnalysisError",
]
