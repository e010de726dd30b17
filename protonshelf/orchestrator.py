"""Single-flight scan runner.

idle -> running -> done | error; a fresh request from done/error goes back
to running. Requests made while running are rejected with the current
progress, never queued.
"""
from __future__ import annotations

import copy
import logging
import threading
from dataclasses import asdict, dataclass
from typing import Callable, Iterable, List, Optional, Sequence

from .events import EventBus
from .library import LibraryStore, reconcile
from .models import ScanProgress, ScanResult, ScanState
from .scanning import DEFAULT_EXCLUDED_FOLDERS, scan_paths
from .utils import now_ms

logger = logging.getLogger(__name__)

Enricher = Callable[[List[str]], int]

@dataclass
class StartScanResult:
    accepted: bool
    reason: Optional[str] = None
    progress: Optional[ScanProgress] = None

class ScanOrchestrator:
    def __init__(self, store: LibraryStore, bus: EventBus, *,
                 enricher: Optional[Enricher] = None,
                 scanner: Callable = scan_paths,
                 excluded: Iterable[str] = DEFAULT_EXCLUDED_FOLDERS):
        self.store = store
        self.bus = bus
        self.enricher = enricher
        self.scanner = scanner
        self.excluded = list(excluded)
        self._state = ScanState()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._enrich_thread: Optional[threading.Thread] = None

    @property
    def status(self) -> str:
        return self._state.status

    def snapshot(self) -> ScanState:
        with self._lock:
            return copy.deepcopy(self._state)

    def start(self, root_paths: Sequence[str], *, run_in_thread: bool = True) -> StartScanResult:
        paths = [str(p) for p in root_paths or []]
        with self._lock:
            if self._state.status == "running":
                return StartScanResult(False, "already_running", copy.deepcopy(self._state.progress))
            if not paths:
                return StartScanResult(False, "no_scan_paths")
            self._state.status = "running"
            self._state.progress = ScanProgress()
            self._state.last_error = None

        self.bus.publish("scan_started", paths=paths)
        if run_in_thread:
            self._thread = threading.Thread(target=self._run, args=(paths,),
                                            name="library-scan", daemon=True)
            self._thread.start()
        else:
            self._run(paths)
        return StartScanResult(True)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the background scan (and its enrichment) finished."""
        if self._thread is not None:
            self._thread.join(timeout)
        # only known once the scan thread is done
        if self._enrich_thread is not None:
            self._enrich_thread.join(timeout)
        return self._state.status != "running"

    def _on_progress(self, progress: ScanProgress) -> None:
        with self._lock:
            self._state.progress = progress
        self.bus.publish("scan_progress", **asdict(progress))

    def _run(self, paths: List[str]) -> None:
        try:
            scanned = self.scanner(paths, self._on_progress, excluded=self.excluded)
            outcome = reconcile(scanned, self.store)
        except Exception as e:
            message = str(e) or e.__class__.__name__
            with self._lock:
                self._state.status = "error"
                self._state.last_error = message
            self.bus.publish("scan_error", message=message)
            logger.exception("Scan failed")
            return

        result = ScanResult(added=outcome.added, skipped=outcome.skipped,
                            relinked=outcome.relinked, total=len(scanned))
        with self._lock:
            self._state.status = "done"
            self._state.last_run = now_ms()
            self._state.last_result = result
        self.bus.publish("scan_complete", **asdict(result))
        logger.info("Scan complete: total=%d added=%d skipped=%d relinked=%d",
                    result.total, result.added, result.skipped, result.relinked)

        if outcome.new_game_ids and self.enricher is not None:
            self._enrich_thread = threading.Thread(target=self._enrich, args=(list(outcome.new_game_ids),),
                                                   name="library-enrich", daemon=True)
            self._enrich_thread.start()

    def _enrich(self, game_ids: List[str]) -> None:
        # outside the scan's failure domain: never touches scan state
        try:
            count = self.enricher(game_ids)
        except Exception:
            logger.warning("Background enrichment failed", exc_info=True)
            return
        self.bus.publish("artwork_complete", count=count)
