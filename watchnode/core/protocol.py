"""Watcher → collector wire protocol.

Body of every report POST::

    {"id": "<agent id>",
     "diff": {"added": [{"name": "a.txt", "ty": "File"}], "removed": []},
     "first": true}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from watchnode.core.diff import Diff
from watchnode.core.snapshot import Entry, EntryKind

CONTENT_TYPE = "application/json"


@dataclass(frozen=True, slots=True)
class OutgoingReport:
    """One tick's report, immutable once built.

    Attributes:
        agent_id: Identity of the reporting watcher.
        diff: Changes since the baseline.
        first: True when ``diff.added`` is the complete folder contents.
    """

    agent_id: str
    diff: Diff
    first: bool

    def to_dict(self) -> dict[str, Any]:
        """Convert report to its wire representation."""
        return {
            "id": self.agent_id,
            "diff": self.diff.to_dict(),
            "first": self.first,
        }


class WireEntry(BaseModel):
    """Entry as it appears on the wire."""

    name: str
    ty: EntryKind


class WireDiff(BaseModel):
    """Diff as it appears on the wire."""

    added: list[WireEntry] = Field(default_factory=list)
    removed: list[WireEntry] = Field(default_factory=list)


class WireReport(BaseModel):
    """Report body as received by a collector."""

    id: str
    diff: WireDiff
    first: bool

    model_config = {"extra": "forbid"}


def encode_report(report: OutgoingReport) -> bytes:
    """Serialize a report to compact UTF-8 JSON."""
    return json.dumps(report.to_dict(), separators=(",", ":")).encode("utf-8")


def decode_report(raw: bytes | str) -> OutgoingReport:
    """Parse and validate a report body.

    Args:
        raw: JSON body as sent by a watcher.

    Returns:
        The decoded report.

    Raises:
        ValueError: If the JSON is invalid or does not match the schema.
    """
    try:
        wire = WireReport.model_validate_json(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid report body: {e}") from e

    return OutgoingReport(
        agent_id=wire.id,
        diff=Diff(
            added=frozenset(Entry(name=e.name, kind=e.ty) for e in wire.diff.added),
            removed=frozenset(Entry(name=e.name, kind=e.ty) for e in wire.diff.removed),
        ),
        first=wire.first,
    )
