"""
errors.py

Exception hierarchy for kgsync.

Fatal errors abort an update run; everything else is recoverable and is
reported alongside a successful result.
"""

from __future__ import annotations


class KgSyncError(Exception):
    """Base class for all kgsync errors."""


# ---------------------------------------------------------------------------
# Fatal
# ---------------------------------------------------------------------------


class FatalUpdateError(KgSyncError):
    """An update run cannot complete and must report failure."""


class GraphLoadError(FatalUpdateError):
    """The input graph is missing or unreadable."""


class PersistError(FatalUpdateError):
    """The output graph or its state file could not be written."""


class ProjectNotFoundError(FatalUpdateError):
    """The project root does not exist or is not a directory."""


# ---------------------------------------------------------------------------
# State file
# ---------------------------------------------------------------------------


class StateError(KgSyncError):
    """Problem with the persisted analysis state."""


class StateNotFoundError(StateError):
    """No state file beside the graph (first run, or it was removed)."""


class StateCorruptError(StateError):
    """A state file exists but cannot be parsed."""


class StateWriteError(StateError):
    """Writing the state file failed."""


# ---------------------------------------------------------------------------
# Recoverable
# ---------------------------------------------------------------------------


class AnalysisError(KgSyncError):
    """
    A single file could not be analyzed.

    :param path: Project-relative path of the file.
    :param reason: Short machine-friendly reason (e.g. ``syntax_error``).
    """

    def __init__(self, path: str, reason: str, detail: str | None = None) -> None:
        self.path = path
        self.reason = reason
        self.detail = detail
        msg = f"{path}: {reason}" if detail is None else f"{path}: {reason} ({detail})"
        super().__init__(msg)


class ConfigError(KgSyncError, ValueError):
    """Invalid configuration value or file."""
