"""Directory snapshot primitives.

A snapshot is the set of immediate children of the watched folder at one
tick, each classified as a file or a folder. Snapshots are plain frozensets
so they can be diffed with set arithmetic.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from watchnode.core.errors import FilesystemError
from watchnode.core.logging_setup import get_logger

logger = get_logger(__name__)


class EntryKind(str, Enum):
    """Kind of a directory entry (wire values match the collector's)."""

    FILE = "File"
    FOLDER = "Folder"


@dataclass(frozen=True, slots=True)
class Entry:
    """One immediate child of the watched folder.

    Attributes:
        name: File name of the child (not a full path).
        kind: Whether the child is a file or a folder.
    """

    name: str
    kind: EntryKind

    def to_dict(self) -> dict[str, Any]:
        """Convert entry to its wire representation."""
        return {"name": self.name, "ty": self.kind.value}


Snapshot = frozenset[Entry]

EMPTY_SNAPSHOT: Snapshot = frozenset()


def read_snapshot(folder: Path | str) -> Snapshot:
    """List the immediate children of a folder.

    Args:
        folder: Folder to list.

    Returns:
        Snapshot with one Entry per child.

    Raises:
        FilesystemError: If the folder cannot be listed, or a child's
            metadata cannot be read while iterating.
    """
    folder_path = Path(folder)
    entries: set[Entry] = set()
    try:
        with os.scandir(folder_path) as it:
            for dir_entry in it:
                # is_dir() follows symlinks, so a link to a folder is a Folder
                kind = EntryKind.FOLDER if dir_entry.is_dir() else EntryKind.FILE
                entries.add(Entry(name=_lossy_name(dir_entry.name), kind=kind))
    except OSError as e:
        raise FilesystemError(folder_path, e) from e
    return frozenset(entries)


def _lossy_name(name: str) -> str:
    """Replace undecodable bytes in a file name with U+FFFD.

    scandir hands such names back with surrogate escapes, which cannot be
    written as valid JSON.
    """
    return os.fsencode(name).decode("utf-8", "replace")


def capture_snapshot(folder: Path | str) -> Snapshot:
    """Read a snapshot, treating any listing failure as an empty folder.

    The loop must never stall on a transient filesystem problem. An empty
    snapshot makes the next diff report everything as removed; the following
    successful listing reports it all as added again.
    """
    try:
        return read_snapshot(folder)
    except FilesystemError as e:
        logger.warning(f"{e}; treating as empty for this tick")
        return EMPTY_SNAPSHOT
