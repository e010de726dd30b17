# protonshelf/launch.py
from __future__ import annotations

import logging
import signal
import subprocess
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .environment import build_runtime_env
from .errors import AlreadyRunning, NotRunning, RuntimeNotFound, SpawnFailed
from .models import LaunchConfig, LaunchRecord
from .runtimes import launcher_script
from .utils import now_ms

logger = logging.getLogger(__name__)

LAUNCH_LOG = "launch.log"

# (game_id, exit_code, signal_name, started_at)
ExitCallback = Callable[[str, Optional[int], Optional[str], int], None]

# ──────────────────────────────────────────────────────────────────────────────
# Small helpers
# ──────────────────────────────────────────────────────────────────────────────

def _describe_exit(returncode: Optional[int]):
    """Popen returncode -> (exit_code, signal_name). Negative means killed by a signal."""
    if returncode is None:
        return None, None
    if returncode < 0:
        try:
            return None, signal.Signals(-returncode).name
        except ValueError:
            return None, f"SIG{-returncode}"
    return returncode, None

def _ensure_dir(path: str) -> None:
    # first launch of a game initialises its own prefix inside this directory
    Path(path).mkdir(parents=True, exist_ok=True)

# ──────────────────────────────────────────────────────────────────────────────
# Registry
# ──────────────────────────────────────────────────────────────────────────────

class LaunchRegistry:
    """Running games, at most one live process per game id."""

    def __init__(self, steam_root_finder: Optional[Callable[[], Optional[str]]] = None,
                 on_exit: Optional[ExitCallback] = None):
        self._records: Dict[str, LaunchRecord] = {}
        self._lock = threading.Lock()
        self._steam_root_finder = steam_root_finder or (lambda: None)
        self._on_exit = on_exit

    def set_on_exit(self, cb: Optional[ExitCallback]) -> None:
        self._on_exit = cb

    def launch(self, game_id: str, config: LaunchConfig,
               on_start: Optional[Callable[[LaunchRecord], None]] = None) -> subprocess.Popen:
        """Run `<runtime>/proton run <exe>` and watch it until it exits.

        `on_start` runs before the watcher thread exists, so whatever it
        reports always precedes the exit callback for the same process.
        """
        with self._lock:
            existing = self._records.get(game_id)
            if existing is not None:
                raise AlreadyRunning(f'Game "{game_id}" is already running (pid {existing.pid})')

            _ensure_dir(config.compat_data_path)

            script = launcher_script(config.runtime_path)
            if not script.exists():
                raise RuntimeNotFound(
                    f'Proton script not found at "{script}". '
                    f'Verify the Proton installation at "{config.runtime_path}".'
                )

            env = build_runtime_env(config, self._steam_root_finder())
            argv = [str(script), "run", str(config.exe_path)]
            cwd = str(Path(config.exe_path).parent)

            try:
                with open(Path(config.compat_data_path) / LAUNCH_LOG, "ab") as log_file:
                    p = subprocess.Popen(argv, cwd=cwd, env=env, stdin=subprocess.DEVNULL,
                                         stdout=log_file, stderr=subprocess.STDOUT)
            except OSError as e:
                raise SpawnFailed(f'Failed to launch game "{game_id}": {e}') from e

            if not getattr(p, "pid", None):
                raise SpawnFailed(f'Failed to obtain PID for game "{game_id}"')

            record = LaunchRecord(game_id=game_id, process=p, pid=p.pid, started_at=now_ms())
            self._records[game_id] = record

        logger.info("Launched %s (pid %s): %s", game_id, record.pid, argv)
        if on_start is not None:
            try:
                on_start(record)
            except Exception:
                logger.exception("Start callback failed for %s", game_id)
        threading.Thread(target=self._watch, args=(record,), name=f"watch-{game_id}",
                         daemon=True).start()
        return p

    def _watch(self, record: LaunchRecord) -> None:
        try:
            record.process.wait()
            exit_code, sig = _describe_exit(record.process.returncode)
        except Exception:
            logger.warning("Waiting on %s failed", record.game_id, exc_info=True)
            exit_code, sig = None, None

        # deregister before notifying so a relaunch from the callback sees "stopped"
        with self._lock:
            if self._records.get(record.game_id) is record:
                del self._records[record.game_id]

        logger.info("Game %s exited (code=%s, signal=%s)", record.game_id, exit_code, sig)
        cb = self._on_exit
        if cb is None:
            return
        try:
            cb(record.game_id, exit_code, sig, record.started_at)
        except Exception:
            logger.exception("Exit callback failed for %s", record.game_id)

    def kill(self, game_id: str) -> None:
        """Ask the game to stop (SIGTERM). The exit callback reports when it did."""
        with self._lock:
            record = self._records.get(game_id)
        if record is None:
            raise NotRunning(f'Game "{game_id}" is not currently running')
        record.process.terminate()

    def status(self, game_id: str) -> str:
        with self._lock:
            return "running" if game_id in self._records else "stopped"

    def get_running(self, game_id: str) -> Optional[LaunchRecord]:
        with self._lock:
            return self._records.get(game_id)

    def list_running(self) -> List[LaunchRecord]:
        with self._lock:
            return list(self._records.values())
