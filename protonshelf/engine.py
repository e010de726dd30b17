from __future__ import annotations

import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .covers import LocalCoverEnricher
from .errors import (
    AlreadyRunning, GameNotFound, InvalidGameData, InvalidPath, NoExecutableFound,
    NotInstalled, RuntimeNotConfigured, RuntimeNotFound,
)
from .events import EventBus
from .launch import LaunchRegistry
from .library import EDITABLE_FIELDS, LibraryStore
from .models import LaunchConfig, LaunchRecord, LibraryEntry, RuntimeVersion
from .orchestrator import ScanOrchestrator, StartScanResult
from .runtimes import RuntimeResolver
from .scanning import detect_exe_in_directory
from .settings import load_settings, save_settings, validate_settings
from .utils import now_ms

logger = logging.getLogger(__name__)

def _check_game_fields(changes: Dict[str, Any]) -> None:
    if "name" in changes and (not isinstance(changes["name"], str) or not changes["name"].strip()):
        raise InvalidGameData("name must be a non-empty string")
    if "exe_path" in changes and (not isinstance(changes["exe_path"], str) or not changes["exe_path"]):
        raise InvalidGameData("exe_path must be a non-empty string")
    for key in ("runtime_id", "steam_app_id"):
        if changes.get(key) is not None and not isinstance(changes[key], str):
            raise InvalidGameData(f"{key} must be a string or null")
    if "hidden" in changes and not isinstance(changes["hidden"], bool):
        raise InvalidGameData("hidden must be true or false")

class Engine:
    """The operations the request layer calls, wired to one set of collaborators."""

    def __init__(self, data_dir: Path, *, resolver: Optional[RuntimeResolver] = None,
                 bus: Optional[EventBus] = None, enrich: bool = True):
        self.data_dir = Path(data_dir)
        self.settings_file = self.data_dir / "settings.json"
        self.bus = bus or EventBus()
        self.store = LibraryStore(self.data_dir / "library.json", self.data_dir / "prefixes")
        self.resolver = resolver or RuntimeResolver()
        self.registry = LaunchRegistry(steam_root_finder=self.resolver.detect_steam_root,
                                       on_exit=self._on_game_exit)
        self.orchestrator = ScanOrchestrator(
            self.store, self.bus,
            enricher=LocalCoverEnricher(self.store) if enrich else None,
        )

    def settings(self) -> Dict:
        return load_settings(self.settings_file)

    # -- scanning ------------------------------------------------------------

    def start_scan(self, root_paths: Optional[Sequence[str]] = None, *,
                   run_in_thread: bool = True) -> StartScanResult:
        settings = self.settings()
        paths = list(root_paths or settings["scan_paths"])
        self.orchestrator.excluded = list(settings["excluded_folders"])
        return self.orchestrator.start(paths, run_in_thread=run_in_thread)

    def get_scan_status(self) -> Dict[str, Any]:
        return self.orchestrator.snapshot().to_dict()

    # -- library -------------------------------------------------------------

    def list_games(self, include_hidden: bool = False) -> List[LibraryEntry]:
        entries = self.store.all_entries()
        return entries if include_hidden else [e for e in entries if not e.hidden]

    def _require_game(self, game_id: str) -> LibraryEntry:
        entry = self.store.get(game_id)
        if entry is None:
            raise GameNotFound(f'Game "{game_id}" not found')
        return entry

    def get_game(self, game_id: str) -> LibraryEntry:
        return self._require_game(game_id)

    def add_game(self, name: str, root_path: str, exe_path: str, *,
                 runtime_id: Optional[str] = None,
                 steam_app_id: Optional[str] = None) -> LibraryEntry:
        """Manually add a game the scanner did not find."""
        _check_game_fields({"name": name, "runtime_id": runtime_id, "steam_app_id": steam_app_id})
        for label, path in (("root_path", root_path), ("exe_path", exe_path)):
            if not isinstance(path, str) or not Path(path).is_absolute():
                raise InvalidPath(f"{label} must be an absolute path: {path!r}")
        entry = self.store.insert(name, root_path, exe_path,
                                  runtime_id=runtime_id or None, steam_app_id=steam_app_id or None)
        logger.info("Added game %s (%s) manually", name, entry.id)
        return entry

    def update_game(self, game_id: str, changes: Dict[str, Any]) -> LibraryEntry:
        entry = self._require_game(game_id)
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise InvalidGameData(f"Fields cannot be edited: {', '.join(sorted(unknown))}")
        _check_game_fields(changes)
        if "exe_path" in changes:
            exe_path = changes["exe_path"]
            if not Path(exe_path).is_absolute():
                raise InvalidPath(f"exe_path must be an absolute path: {exe_path!r}")
            if entry.root_path is None:
                raise NotInstalled(f'Game "{entry.name}" has no directory; set its path first')
        changes = dict(changes)
        for key in ("runtime_id", "steam_app_id"):
            if key in changes:
                changes[key] = changes[key] or None
        return self.store.update(game_id, changes)

    def delete_game(self, game_id: str) -> None:
        entry = self._require_game(game_id)
        if self.registry.get_running(game_id) is not None:
            raise AlreadyRunning(f'Game "{entry.name}" is running; stop it before removing it')
        self.store.delete(game_id)

    def set_game_path(self, game_id: str, root_path: str) -> LibraryEntry:
        self._require_game(game_id)
        if not Path(root_path).is_dir():
            raise InvalidPath(f"Directory does not exist: {root_path}")
        exe_path = detect_exe_in_directory(root_path)
        if not exe_path:
            raise NoExecutableFound(f"No valid .exe files found in {root_path}")
        return self.store.link(game_id, str(root_path), exe_path)

    def update_settings(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Check the whole change set, then save it. Nothing is written on error."""
        validate_settings(changes)
        settings = self.settings()
        for key in ("default_runtime", "excluded_folders", "extra_env"):
            if key in changes:
                settings[key] = changes[key]
        save_settings(self.settings_file, settings)

        unlinked = 0
        if "scan_paths" in changes:
            unlinked = self.update_scan_paths(changes["scan_paths"])
        return {"settings": self.settings(), "unlinked": unlinked}

    def update_scan_paths(self, scan_paths: Sequence[str]) -> int:
        paths = [str(p) for p in scan_paths]
        for p in paths:
            if not p or not Path(p).is_absolute():
                raise InvalidPath(f"Scan path must be an absolute path: {p!r}")
        settings = self.settings()
        settings["scan_paths"] = paths
        save_settings(self.settings_file, settings)

        count = self.store.unlink_outside(paths)
        if count:
            self.bus.publish("games_unlinked", count=count)
        return count

    # -- runtimes ------------------------------------------------------------

    def list_runtime_versions(self) -> List[RuntimeVersion]:
        return self.resolver.detect_all()

    def _resolve_runtime(self, entry: LibraryEntry, override: Optional[str]) -> RuntimeVersion:
        # per-launch override -> game preference -> global default
        runtime_id = override or entry.runtime_id or self.settings()["default_runtime"]
        if not runtime_id:
            raise RuntimeNotConfigured(
                "No Proton version configured. Set a default in settings "
                "or assign one to this game."
            )
        version = self.resolver.find_by_id(runtime_id)
        if version is None:
            raise RuntimeNotFound(f'Proton version "{runtime_id}" was not found on disk.')
        return version

    # -- launching -----------------------------------------------------------

    def launch(self, game_id: str, runtime_override: Optional[str] = None) -> Dict[str, Any]:
        entry = self._require_game(game_id)
        if not entry.exe_path or not entry.root_path:
            raise NotInstalled(f'Game "{entry.name}" is not installed (no path configured)')

        running = self.registry.get_running(game_id)
        if running is not None:
            raise AlreadyRunning(f'Game "{entry.name}" is already running (pid {running.pid})')

        version = self._resolve_runtime(entry, runtime_override)
        config = LaunchConfig(
            exe_path=entry.exe_path,
            runtime_path=version.path,
            compat_data_path=entry.compat_data_path,
            steam_app_id=entry.steam_app_id,
            extra_env=self.settings().get("extra_env") or None,
        )
        p = self.registry.launch(game_id, config, on_start=self._on_game_start)
        return {"pid": p.pid, "runtime_id": version.id}

    def _on_game_start(self, record: LaunchRecord) -> None:
        try:
            self.store.record_launch(record.game_id, record.started_at)
        except (OSError, KeyError):
            logger.exception("Failed to record last-played for %s", record.game_id)
        self.bus.publish("launch_status", game_id=record.game_id, status="running", pid=record.pid)

    def kill(self, game_id: str) -> Dict[str, bool]:
        self.registry.kill(game_id)
        return {"stopped": True}

    def get_launch_status(self, game_id: str) -> Dict[str, Any]:
        record = self.registry.get_running(game_id)
        return {
            "status": "running" if record else "stopped",
            "pid": record.pid if record else None,
            "started_at": record.started_at if record else None,
        }

    def list_running(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self.registry.list_running()]

    def _on_game_exit(self, game_id: str, exit_code: Optional[int],
                      signal_name: Optional[str], started_at: int) -> None:
        elapsed = max(0, (now_ms() - started_at) // 1000)
        try:
            self.store.add_play_time(game_id, elapsed)
        except (OSError, KeyError):
            logger.exception("Failed to update play time for %s", game_id)
        self.bus.publish("launch_status", game_id=game_id, status="stopped",
                         exit_code=exit_code, signal=signal_name)

    def describe(self, entry: LibraryEntry) -> Dict[str, Any]:
        data = asdict(entry)
        data["status"] = self.registry.status(entry.id)
        return data

    def set_game_runtime(self, game_id: str, runtime_id: Optional[str]) -> LibraryEntry:
        self._require_game(game_id)
        self.store.set_runtime(game_id, runtime_id)
        return self.store.get(game_id)
