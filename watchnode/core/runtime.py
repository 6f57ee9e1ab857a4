"""Watcher runtime: the watch-diff-report loop.

Per tick:
- the scheduler thread hands a unit of work to the worker pool and returns
- a worker lists the folder, diffs it against the baseline, updates the
  report state and encodes the report
- the encoded report is handed to the network pool, which POSTs it and
  records success or failure in the report state

Units of work may overlap. With ``max_in_flight`` unset nothing bounds the
overlap, so under a persistently slow collector pending units pile up.
"""

from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from rich.console import Console

from watchnode.core.config import WatcherConfig
from watchnode.core.diff import diff
from watchnode.core.errors import ReportError
from watchnode.core.identity import resolve_agent_id
from watchnode.core.logging_setup import get_logger
from watchnode.core.protocol import OutgoingReport, encode_report
from watchnode.core.reporter import Reporter
from watchnode.core.scheduler import TickScheduler
from watchnode.core.snapshot import capture_snapshot
from watchnode.core.state import ReportState, TickContext

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PreparedReport:
    """A tick's report, encoded and ready to send."""

    ctx: TickContext
    report: OutgoingReport
    body: bytes


@dataclass
class WatcherStats:
    """Counters describing what the loop has done so far."""

    ticks: int = 0
    ticks_dropped: int = 0
    reports_sent: int = 0
    reports_failed: int = 0
    last_error: str | None = None


class Watcher:
    """Observes one folder and reports its changes to the collector."""

    def __init__(
        self,
        config: WatcherConfig,
        reporter: Reporter | None = None,
        console: Console | None = None,
    ) -> None:
        """Initialize watcher.

        Args:
            config: Watcher configuration.
            reporter: Optional reporter (defaults to one built from config).
            console: Optional rich console for the startup banner.
        """
        self.config = config
        self.console = console or Console()
        self.agent_id = resolve_agent_id(config.agent_id)
        self.folder = Path(config.folder)
        self.state = ReportState(config.baseline_policy)
        self.reporter = reporter or Reporter(config.collector_url, config.timeout_s)
        self.stats = WatcherStats()

        self._stats_lock = threading.Lock()
        self._pending_units = 0
        self._stopping = False
        self._scheduler: TickScheduler | None = None
        self._work_pool: ThreadPoolExecutor | None = None
        self._network_pool: ThreadPoolExecutor | None = None

    # --- pipeline steps -------------------------------------------------

    def prepare(self) -> PreparedReport:
        """Capture a snapshot, diff it, update state and encode the report."""
        current = capture_snapshot(self.folder)
        ctx = self.state.begin_tick(current)
        try:
            report = OutgoingReport(
                agent_id=self.agent_id,
                diff=diff(ctx.previous, ctx.current),
                first=ctx.is_first,
            )
            body = encode_report(report)
        except Exception:
            self.state.complete_failure(ctx)
            raise
        return PreparedReport(ctx=ctx, report=report, body=body)

    def deliver(self, prepared: PreparedReport) -> bool:
        """Send a prepared report and record the outcome.

        Returns:
            True if the collector acknowledged the report.
        """
        try:
            self.reporter.send_encoded(prepared.body)
        except ReportError as e:
            self._record_failure(prepared.ctx, f"{e.kind}: {e}")
            logger.warning(f"Report failed ({e.kind}): {e}")
            return False
        except Exception as e:
            self._record_failure(prepared.ctx, f"unexpected: {e}")
            logger.exception("Unexpected error while sending report")
            return False

        self.state.complete_success(prepared.ctx)
        with self._stats_lock:
            self.stats.reports_sent += 1
        return True

    def process_tick(self) -> bool:
        """Run one complete unit of work on the calling thread.

        Returns:
            True if the report was acknowledged.
        """
        with self._stats_lock:
            self.stats.ticks += 1
        return self.deliver(self.prepare())

    def _record_failure(self, ctx: TickContext, detail: str) -> None:
        self.state.complete_failure(ctx)
        with self._stats_lock:
            self.stats.reports_failed += 1
            self.stats.last_error = detail

    # --- concurrent loop ------------------------------------------------

    def run(self, max_ticks: int | None = None) -> None:
        """Run the loop until stopped.

        Args:
            max_ticks: Stop after this many ticks and wait for their reports
                (None: run until ``stop()`` or process exit).

        Raises:
            SchedulingError: If the tick scheduler fails.
        """
        self._print_banner()

        self._work_pool = ThreadPoolExecutor(
            max_workers=self.config.worker_threads, thread_name_prefix="watchnode-work"
        )
        self._network_pool = ThreadPoolExecutor(
            max_workers=self.config.network_threads, thread_name_prefix="watchnode-net"
        )
        self._scheduler = TickScheduler(
            self.config.interval_s, self._on_tick, max_ticks=max_ticks
        )

        drain = max_ticks is not None
        try:
            self._scheduler.start()
            self._scheduler.wait()
        except KeyboardInterrupt:
            self.console.print("\n[yellow]Shutting down...[/yellow]")
            drain = False
        finally:
            self._shutdown(drain=drain and not self._stopping)

    def stop(self) -> None:
        """Stop ticking. In-flight reports are abandoned."""
        self._stopping = True
        if self._scheduler is not None:
            self._scheduler.stop()

    def _on_tick(self, tick_number: int) -> None:
        work_pool = self._work_pool
        if work_pool is None or self._stopping:
            return

        with self._stats_lock:
            self.stats.ticks += 1
            limit = self.config.max_in_flight
            if limit is not None and self._pending_units >= limit:
                self.stats.ticks_dropped += 1
                logger.debug(f"Tick {tick_number} dropped: {self._pending_units} unit(s) pending")
                return
            self._pending_units += 1

        try:
            future = work_pool.submit(self.prepare)
        except RuntimeError:
            # Pool closed between the check above and the submit
            self._unit_finished()
            return
        future.add_done_callback(self._on_prepared)

    def _on_prepared(self, future: Future[PreparedReport]) -> None:
        if future.cancelled():
            self._unit_finished()
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Tick work failed: {error}", exc_info=error)
            with self._stats_lock:
                self.stats.reports_failed += 1
                self.stats.last_error = f"unexpected: {error}"
            self._unit_finished()
            return

        prepared = future.result()
        network_pool = self._network_pool
        try:
            if network_pool is None:
                raise RuntimeError("network pool is not running")
            network_pool.submit(self._deliver_unit, prepared)
        except RuntimeError:
            # Only happens while shutting down; the report is abandoned
            logger.debug("Network pool closed; abandoning report")
            self._record_failure(prepared.ctx, "abandoned at shutdown")
            self._unit_finished()

    def _deliver_unit(self, prepared: PreparedReport) -> None:
        try:
            self.deliver(prepared)
        finally:
            self._unit_finished()

    def _unit_finished(self) -> None:
        with self._stats_lock:
            self._pending_units = max(0, self._pending_units - 1)

    def _shutdown(self, drain: bool) -> None:
        """Stop the pools and close the reporter.

        When draining, wait for every pending report first.
        """
        if self._scheduler is not None:
            self._scheduler.stop()
        if self._work_pool is not None:
            self._work_pool.shutdown(wait=drain, cancel_futures=not drain)
        if self._network_pool is not None:
            self._network_pool.shutdown(wait=drain, cancel_futures=not drain)
        # Abandoned sends on a closed client fail as transport errors
        self.reporter.close()

    def _print_banner(self) -> None:
        self.console.print("[bold green]Starting watcher:[/bold green]")
        self.console.print(f"- ID:        {self.agent_id}")
        self.console.print(f"- collector: {self.config.collector_url}")
        self.console.print(f"- folder:    {self.folder}")
        self.console.print(f"- interval:  {self.config.interval_s}s")
