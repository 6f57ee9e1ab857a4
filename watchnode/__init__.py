"""watchnode - folder watcher node.

Polls a single folder, diffs successive listings and reports the changes to
a collector over HTTP.
"""

__version__ = "0.2.0"

from watchnode.core import (
    Config,
    Diff,
    Entry,
    EntryKind,
    OutgoingReport,
    Reporter,
    Watcher,
    diff,
)

__all__ = [
    "__version__",
    "Config",
    "Diff",
    "Entry",
    "EntryKind",
    "OutgoingReport",
    "Reporter",
    "Watcher",
    "diff",
]
