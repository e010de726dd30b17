import threading

import pytest

from conftest import touch
from protonshelf.events import EventBus
from protonshelf.library import LibraryStore
from protonshelf.models import ScanProgress
from protonshelf.orchestrator import ScanOrchestrator


@pytest.fixture
def store(tmp_path):
    return LibraryStore(tmp_path / "library.json", tmp_path / "prefixes")


@pytest.fixture
def bus():
    return EventBus()


def _games(tmp_path):
    root = tmp_path / "Games"
    touch(root / "Alpha" / "Alpha.exe")
    touch(root / "Beta" / "bin" / "Beta.exe")
    return root


def test_inline_scan_reaches_done(tmp_path, store, bus):
    root = _games(tmp_path)
    sub = bus.subscribe()
    orch = ScanOrchestrator(store, bus)

    assert orch.start([str(root)], run_in_thread=False).accepted
    state = orch.snapshot()
    assert state.status == "done"
    assert state.last_error is None
    assert state.last_run is not None
    assert (state.last_result.added, state.last_result.total) == (2, 2)
    assert state.progress.total == 2

    types = [e["type"] for e in sub.drain()]
    assert types == ["scan_started", "scan_progress", "scan_progress", "scan_complete"]


def test_background_scan_and_rescan(tmp_path, store, bus):
    root = _games(tmp_path)
    orch = ScanOrchestrator(store, bus)
    assert orch.start([str(root)]).accepted
    assert orch.wait(5)
    assert orch.status == "done"

    assert orch.start([str(root)]).accepted
    assert orch.wait(5)
    result = orch.snapshot().last_result
    assert (result.added, result.skipped, result.relinked) == (0, 2, 0)


def test_no_paths_is_rejected(store, bus):
    orch = ScanOrchestrator(store, bus)
    result = orch.start([])
    assert not result.accepted
    assert result.reason == "no_scan_paths"
    assert orch.status == "idle"


def test_overlapping_scan_is_rejected_without_resetting_progress(store, bus):
    progressed = threading.Event()
    release = threading.Event()

    def slow_scanner(paths, on_progress, excluded=()):
        on_progress(ScanProgress(current="Alpha", found=1, total=3))
        progressed.set()
        release.wait(5)
        return []

    orch = ScanOrchestrator(store, bus, scanner=slow_scanner)
    assert orch.start(["/games"]).accepted
    assert progressed.wait(5)

    second = orch.start(["/games"])
    assert not second.accepted
    assert second.reason == "already_running"
    assert second.progress == ScanProgress(current="Alpha", found=1, total=3)
    assert orch.snapshot().progress == ScanProgress(current="Alpha", found=1, total=3)
    assert orch.status == "running"

    release.set()
    assert orch.wait(5)
    assert orch.status == "done"


def test_failure_moves_to_error_and_allows_new_scan(tmp_path, store, bus):
    calls = []

    def scanner(paths, on_progress, excluded=()):
        calls.append(paths)
        if len(calls) == 1:
            raise RuntimeError("disk on fire")
        return []

    sub = bus.subscribe()
    orch = ScanOrchestrator(store, bus, scanner=scanner)
    orch.start(["/games"], run_in_thread=False)

    state = orch.snapshot()
    assert state.status == "error"
    assert state.last_error == "disk on fire"
    errors = [e for e in sub.drain() if e["type"] == "scan_error"]
    assert errors and errors[0]["message"] == "disk on fire"

    assert orch.start(["/games"], run_in_thread=False).accepted
    state = orch.snapshot()
    assert state.status == "done"
    assert state.last_error is None


def test_enrichment_failure_does_not_flip_status(tmp_path, store, bus):
    root = _games(tmp_path)
    seen = []

    def broken_enricher(game_ids):
        seen.extend(game_ids)
        raise RuntimeError("artwork service down")

    orch = ScanOrchestrator(store, bus, enricher=broken_enricher)
    orch.start([str(root)])
    assert orch.wait(5)

    assert len(seen) == 2
    assert orch.status == "done"
    assert orch.snapshot().last_error is None


def test_enrichment_only_sees_new_games(tmp_path, store, bus):
    root = _games(tmp_path)
    batches = []
    orch = ScanOrchestrator(store, bus, enricher=lambda ids: batches.append(list(ids)) or len(ids))

    orch.start([str(root)])
    orch.wait(5)
    orch.start([str(root)])
    orch.wait(5)

    assert len(batches) == 1
    assert len(batches[0]) == 2


def test_snapshot_is_a_copy(store, bus):
    orch = ScanOrchestrator(store, bus)
    snap = orch.snapshot()
    snap.status = "running"
    assert orch.status == "idle"
    assert snap.to_dict()["progress"] == {"current": "", "found": 0, "total": 0}
