"""End-to-end tests for the watch-diff-report loop."""

from __future__ import annotations

import os
import shutil
import threading
import time
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest
from rich.console import Console

from tests.helpers.collector import COLLECTOR_URL, RecordingCollector
from watchnode.core.config import WatcherConfig
from watchnode.core.reporter import Reporter
from watchnode.core import runtime
from watchnode.core.protocol import OutgoingReport
from watchnode.core.runtime import Watcher
from watchnode.core.snapshot import Entry, EntryKind
from watchnode.core.state import ReportPhase

A_TXT = Entry("a.txt", EntryKind.FILE)
B_TXT = Entry("b.txt", EntryKind.FILE)


def _make_watcher(
    folder: Path, collector: RecordingCollector, **overrides: object
) -> Watcher:
    config = WatcherConfig(
        folder=str(folder),
        collector_url=COLLECTOR_URL,
        agent_id="node-test",
        interval_s=0.02,
        **overrides,
    )
    return Watcher(config, reporter=collector.reporter(), console=Console(quiet=True))


def test_first_tick_reports_full_contents(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("a", encoding="utf-8")
    collector = RecordingCollector()
    watcher = _make_watcher(tmp_path, collector)

    assert watcher.process_tick() is True

    report = collector.reports[0]
    assert report.agent_id == "node-test"
    assert report.first is True
    assert report.diff.added == {A_TXT}
    assert report.diff.removed == frozenset()
    assert watcher.state.is_first is False
    assert watcher.state.phase == ReportPhase.STABLE


def test_unchanged_folder_still_reports_empty_diff(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("a", encoding="utf-8")
    collector = RecordingCollector()
    watcher = _make_watcher(tmp_path, collector)

    watcher.process_tick()
    watcher.process_tick()

    second = collector.reports[1]
    assert second.first is False
    assert second.diff.is_empty


def test_added_and_removed_between_ticks(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("a", encoding="utf-8")
    collector = RecordingCollector()
    watcher = _make_watcher(tmp_path, collector)
    watcher.process_tick()

    (tmp_path / "a.txt").unlink()
    (tmp_path / "b.txt").write_text("b", encoding="utf-8")
    watcher.process_tick()

    second = collector.reports[1]
    assert second.first is False
    assert second.diff.added == {B_TXT}
    assert second.diff.removed == {A_TXT}


def test_bad_status_forces_full_resync(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("a", encoding="utf-8")
    collector = RecordingCollector()
    collector.queue(200, 500)
    watcher = _make_watcher(tmp_path, collector)

    assert watcher.process_tick() is True
    assert watcher.process_tick() is False
    assert watcher.state.is_first is True
    assert watcher.stats.reports_failed == 1
    assert watcher.stats.last_error is not None
    assert watcher.stats.last_error.startswith("bad_status")

    # Nothing changed, yet the whole folder is declared again
    assert watcher.process_tick() is True
    third = collector.reports[2]
    assert third.first is True
    assert third.diff.added == {A_TXT}
    assert third.diff.removed == frozenset()


def test_transport_failure_forces_full_resync(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("a", encoding="utf-8")
    collector = RecordingCollector()
    collector.queue(httpx.ConnectError("refused"))
    watcher = _make_watcher(tmp_path, collector)

    assert watcher.process_tick() is False
    assert watcher.stats.last_error is not None
    assert watcher.stats.last_error.startswith("transport")

    watcher.process_tick()
    assert collector.reports[1].first is True
    assert collector.reports[1].diff.added == {A_TXT}


def test_listing_failure_reports_everything_removed(tmp_path: Path) -> None:
    folder = tmp_path / "watch"
    folder.mkdir()
    (folder / "a.txt").write_text("a", encoding="utf-8")
    (folder / "docs").mkdir()
    collector = RecordingCollector()
    watcher = _make_watcher(folder, collector)
    watcher.process_tick()

    shutil.rmtree(folder)
    assert watcher.process_tick() is True

    report = collector.reports[1]
    assert report.diff.added == frozenset()
    assert report.diff.removed == {A_TXT, Entry("docs", EntryKind.FOLDER)}


def test_generated_agent_id_is_stable(tmp_path: Path) -> None:
    collector = RecordingCollector()
    config = WatcherConfig(folder=str(tmp_path), collector_url=COLLECTOR_URL)
    watcher = Watcher(config, reporter=collector.reporter(), console=Console(quiet=True))

    watcher.process_tick()
    watcher.process_tick()

    assert len(watcher.agent_id) == 10
    assert watcher.agent_id.isalnum()
    assert {r.agent_id for r in collector.reports} == {watcher.agent_id}


def test_run_sends_one_report_per_tick(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("a", encoding="utf-8")
    collector = RecordingCollector()
    watcher = _make_watcher(tmp_path, collector)

    watcher.run(max_ticks=3)

    assert watcher.stats.ticks == 3
    assert watcher.stats.reports_sent == 3
    assert len(collector.reports) == 3
    assert sum(1 for r in collector.reports if r.diff.added == {A_TXT}) == 1
    assert watcher.state.in_flight == 0


def test_slow_collector_does_not_block_ticks(tmp_path: Path) -> None:
    release = threading.Event()
    collector = RecordingCollector()

    def _slow_handler(request: httpx.Request) -> httpx.Response:
        release.wait(timeout=5.0)
        return collector.handle(request)

    client = httpx.Client(transport=httpx.MockTransport(_slow_handler))
    config = WatcherConfig(
        folder=str(tmp_path),
        collector_url=COLLECTOR_URL,
        agent_id="node-test",
        interval_s=0.02,
        network_threads=8,
    )
    watcher = Watcher(
        config,
        reporter=Reporter(COLLECTOR_URL, client=client),
        console=Console(quiet=True),
    )

    runner = threading.Thread(target=watcher.run, kwargs={"max_ticks": 4})
    runner.start()
    # All ticks fire while every report is still blocked in the collector
    deadline_ok = _wait_for(lambda: watcher.stats.ticks == 4)
    release.set()
    runner.join(timeout=10.0)

    assert deadline_ok
    assert len(collector.reports) == 4
    assert watcher.stats.reports_sent == 4


def test_max_in_flight_drops_ticks(tmp_path: Path) -> None:
    release = threading.Event()
    collector = RecordingCollector()

    def _slow_handler(request: httpx.Request) -> httpx.Response:
        release.wait(timeout=5.0)
        return collector.handle(request)

    client = httpx.Client(transport=httpx.MockTransport(_slow_handler))
    config = WatcherConfig(
        folder=str(tmp_path),
        collector_url=COLLECTOR_URL,
        agent_id="node-test",
        interval_s=0.02,
        max_in_flight=1,
    )
    watcher = Watcher(
        config,
        reporter=Reporter(COLLECTOR_URL, client=client),
        console=Console(quiet=True),
    )

    runner = threading.Thread(target=watcher.run, kwargs={"max_ticks": 5})
    runner.start()
    ticked = _wait_for(lambda: watcher.stats.ticks == 5)
    release.set()
    runner.join(timeout=10.0)

    assert ticked
    assert watcher.stats.ticks_dropped == 4
    assert len(collector.reports) == 1


def test_stop_ends_run(tmp_path: Path) -> None:
    collector = RecordingCollector()
    watcher = _make_watcher(tmp_path, collector)

    runner = threading.Thread(target=watcher.run)
    runner.start()
    assert _wait_for(lambda: watcher.stats.ticks >= 2)
    watcher.stop()
    runner.join(timeout=5.0)

    assert not runner.is_alive()


def _wait_for(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return bool(predicate())


def test_undecodable_name_does_not_block_reports(tmp_path: Path) -> None:
    (tmp_path / "ok.txt").write_text("ok", encoding="utf-8")
    try:
        with open(os.path.join(os.fsencode(tmp_path), b"bad\xffname"), "wb"):
            pass
    except OSError:
        pytest.skip("filesystem rejects names that are not valid UTF-8")
    collector = RecordingCollector()
    watcher = _make_watcher(tmp_path, collector)

    assert [watcher.process_tick() for _ in range(3)] == [True, True, True]

    assert collector.reports[0].diff.added == {
        Entry("ok.txt", EntryKind.FILE),
        Entry("bad\ufffdname", EntryKind.FILE),
    }
    assert collector.reports[2].first is False
    assert watcher.state.phase == ReportPhase.STABLE


def test_unexpected_send_error_forces_full_resync(tmp_path: Path) -> None:
    (tmp_path / "a.txt").write_text("a", encoding="utf-8")
    collector = RecordingCollector()
    collector.queue(ValueError("collector exploded"))
    watcher = _make_watcher(tmp_path, collector)

    assert watcher.process_tick() is False
    assert watcher.state.is_first is True
    assert watcher.state.last_snapshot == frozenset()
    assert watcher.stats.last_error == "unexpected: collector exploded"

    assert watcher.process_tick() is True
    assert collector.reports[1].first is True
    assert collector.reports[1].diff.added == {A_TXT}


def test_failed_encode_does_not_stop_run(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    (tmp_path / "a.txt").write_text("a", encoding="utf-8")
    real_encode = runtime.encode_report
    calls = 0
    lock = threading.Lock()

    def _encode_failing_once(report: OutgoingReport) -> bytes:
        nonlocal calls
        with lock:
            calls += 1
            current = calls
        if current == 1:
            raise RuntimeError("encoder broke")
        return real_encode(report)

    monkeypatch.setattr(runtime, "encode_report", _encode_failing_once)
    collector = RecordingCollector()
    watcher = _make_watcher(tmp_path, collector)

    watcher.run(max_ticks=3)

    assert len(collector.reports) == 2
    assert collector.reports[0].first is True
    assert collector.reports[0].diff.added == {A_TXT}
    assert watcher.stats.reports_failed == 1
    assert watcher.stats.last_error == "unexpected: encoder broke"
    assert watcher.state.in_flight == 0


def _owned_reporter(collector: RecordingCollector) -> Reporter:
    """A reporter that owns its client, wired to the in-process collector."""
    reporter = Reporter(COLLECTOR_URL)
    reporter.client.close()
    reporter.client = collector.client()
    return reporter


def test_stop_closes_owned_reporter(tmp_path: Path) -> None:
    collector = RecordingCollector()
    reporter = _owned_reporter(collector)
    config = WatcherConfig(
        folder=str(tmp_path), collector_url=COLLECTOR_URL, agent_id="node-test", interval_s=0.02
    )
    watcher = Watcher(config, reporter=reporter, console=Console(quiet=True))

    runner = threading.Thread(target=watcher.run)
    runner.start()
    assert _wait_for(lambda: len(collector.reports) >= 1)
    watcher.stop()
    runner.join(timeout=5.0)

    assert not runner.is_alive()
    assert reporter.client.is_closed is True


def test_send_after_close_is_a_transport_error(tmp_path: Path) -> None:
    collector = RecordingCollector()
    reporter = _owned_reporter(collector)
    reporter.close()
    config = WatcherConfig(folder=str(tmp_path), collector_url=COLLECTOR_URL)
    watcher = Watcher(config, reporter=reporter, console=Console(quiet=True))

    assert watcher.process_tick() is False
    assert watcher.stats.last_error is not None
    assert watcher.stats.last_error.startswith("transport")
    assert collector.reports == []
