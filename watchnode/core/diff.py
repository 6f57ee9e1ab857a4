"""Set difference between two directory snapshots."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from watchnode.core.snapshot import Entry


@dataclass(frozen=True, slots=True)
class Diff:
    """Entries added and removed between an old and a new snapshot.

    Attributes:
        added: Entries present in the new snapshot only.
        removed: Entries present in the old snapshot only.
    """

    added: frozenset[Entry] = field(default_factory=frozenset)
    removed: frozenset[Entry] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        """True when nothing was added or removed."""
        return not self.added and not self.removed

    def to_dict(self) -> dict[str, Any]:
        """Convert diff to its wire representation.

        Entries are sorted by (name, kind) so identical diffs encode identically.
        """
        return {
            "added": [entry.to_dict() for entry in _sorted_entries(self.added)],
            "removed": [entry.to_dict() for entry in _sorted_entries(self.removed)],
        }


def diff(old: Iterable[Entry], new: Iterable[Entry]) -> Diff:
    """Compute added and removed entries between two snapshots.

    Entries compare by (name, kind), so a name that switches from file to
    folder shows up in both lists, as two different entries.

    Args:
        old: Previous snapshot (empty on the first observation).
        new: Current snapshot.

    Returns:
        Diff with ``added = new - old`` and ``removed = old - new``.
    """
    old_set = old if isinstance(old, frozenset) else frozenset(old)
    new_set = new if isinstance(new, frozenset) else frozenset(new)
    return Diff(added=new_set - old_set, removed=old_set - new_set)


def _sorted_entries(entries: Iterable[Entry]) -> list[Entry]:
    return sorted(entries, key=lambda entry: (entry.name, entry.kind.value))
