"""Core watchnode modules."""

from watchnode.core.config import Config, WatcherConfig, load_config
from watchnode.core.diff import Diff, diff
from watchnode.core.errors import (
    BadStatusError,
    ConfigError,
    FilesystemError,
    ReportError,
    SchedulingError,
    TransportError,
    WatchNodeError,
)
from watchnode.core.protocol import OutgoingReport, decode_report, encode_report
from watchnode.core.reporter import Reporter
from watchnode.core.runtime import Watcher, WatcherStats
from watchnode.core.scheduler import TickScheduler
from watchnode.core.snapshot import Entry, EntryKind, Snapshot, capture_snapshot, read_snapshot
from watchnode.core.state import ReportPhase, ReportState, TickContext

__all__ = [
    # Snapshot primitives
    "Entry",
    "EntryKind",
    "Snapshot",
    "read_snapshot",
    "capture_snapshot",
    # Diff
    "Diff",
    "diff",
    # Errors
    "WatchNodeError",
    "ConfigError",
    "FilesystemError",
    "ReportError",
    "TransportError",
    "BadStatusError",
    "SchedulingError",
    # Report state
    "ReportPhase",
    "ReportState",
    "TickContext",
    # Wire protocol
    "OutgoingReport",
    "encode_report",
    "decode_report",
    "Reporter",
    # Config
    "Config",
    "WatcherConfig",
    "load_config",
    # Runtime
    "TickScheduler",
    "Watcher",
    "WatcherStats",
]
