"""Report state machine.

Tracks the last observed snapshot and whether the next report must be
flagged as a "first" report (a full re-declaration of the folder contents).

States:
- INITIAL: No report acknowledged yet, or the last report failed
- REPORTING: At least one report is in flight
- STABLE: The most recent completed report was acknowledged

Transitions:
- INITIAL/STABLE + tick → REPORTING (baseline replaced by the new snapshot)
- REPORTING + success → STABLE (is_first cleared)
- REPORTING + failure → INITIAL (is_first set, baseline emptied)

All reads and writes go through one lock, held only for the read-then-update
step and never across network I/O.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum, auto
from typing import Literal

from watchnode.core.snapshot import EMPTY_SNAPSHOT, Snapshot

BaselinePolicy = Literal["eager", "acknowledged"]


class ReportPhase(Enum):
    """Report state machine phases."""

    INITIAL = auto()
    REPORTING = auto()
    STABLE = auto()


@dataclass(frozen=True, slots=True)
class TickContext:
    """What one tick read from (and wrote to) the report state.

    Attributes:
        previous: Baseline the tick diffed against.
        current: Snapshot captured by the tick.
        is_first: Value of the first-report flag when the tick began.
    """

    previous: Snapshot
    current: Snapshot
    is_first: bool


class ReportState:
    """Lock-guarded last snapshot plus first-report flag."""

    def __init__(self, baseline_policy: BaselinePolicy = "eager") -> None:
        """Initialize report state in the INITIAL phase.

        Args:
            baseline_policy: "eager" stores each captured snapshot as the new
                baseline as soon as the tick reads it. "acknowledged" only
                installs it once its report has been acknowledged.
        """
        if baseline_policy not in ("eager", "acknowledged"):
            raise ValueError(f"Unknown baseline policy: {baseline_policy}")
        self.baseline_policy = baseline_policy
        self._lock = threading.Lock()
        self._last_snapshot: Snapshot = EMPTY_SNAPSHOT
        self._is_first = True
        self._in_flight = 0

    @property
    def last_snapshot(self) -> Snapshot:
        """Current diff baseline."""
        with self._lock:
            return self._last_snapshot

    @property
    def is_first(self) -> bool:
        """Whether the next report will be flagged as first."""
        with self._lock:
            return self._is_first

    @property
    def in_flight(self) -> int:
        """Number of ticks begun but not yet completed."""
        with self._lock:
            return self._in_flight

    @property
    def phase(self) -> ReportPhase:
        """Current phase derived from the flag and in-flight count."""
        with self._lock:
            if self._in_flight > 0:
                return ReportPhase.REPORTING
            return ReportPhase.INITIAL if self._is_first else ReportPhase.STABLE

    def begin_tick(self, current: Snapshot) -> TickContext:
        """Read the baseline and flag, and record the newly captured snapshot.

        Under the eager policy the new snapshot becomes the baseline right
        away, so the next tick diffs against it even while this tick's report
        is still in flight.

        Args:
            current: Snapshot captured by this tick.

        Returns:
            TickContext describing what this tick will report.
        """
        with self._lock:
            ctx = TickContext(
                previous=self._last_snapshot,
                current=current,
                is_first=self._is_first,
            )
            if self.baseline_policy == "eager":
                self._last_snapshot = current
            self._in_flight += 1
            return ctx

    def complete_success(self, ctx: TickContext) -> None:
        """Record that the report built from ``ctx`` was acknowledged."""
        with self._lock:
            self._is_first = False
            if self.baseline_policy == "acknowledged":
                self._last_snapshot = ctx.current
            self._in_flight = max(0, self._in_flight - 1)

    def complete_failure(self, ctx: TickContext) -> None:
        """Record that the report built from ``ctx`` did not reach the collector.

        The baseline is emptied so the next report re-declares the whole
        folder as added, flagged as first.
        """
        with self._lock:
            self._is_first = True
            self._last_snapshot = EMPTY_SNAPSHOT
            self._in_flight = max(0, self._in_flight - 1)
