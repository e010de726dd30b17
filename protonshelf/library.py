"""Persisted game library and scan reconciliation.

Entries live in a single JSON file. The store only exposes narrow updates:
``link`` sets root and exe path together, ``unlink_outside`` clears them
together and ``update`` only replaces an exe path that already has a root,
so an entry is either fully linked or fully unlinked.
"""
from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .models import LibraryEntry, ReconcileResult, ScannedGame
from .utils import is_under, now_ms

logger = logging.getLogger(__name__)

_ENTRY_FIELDS = {f.name for f in fields(LibraryEntry)}
EDITABLE_FIELDS = {"name", "exe_path", "runtime_id", "steam_app_id", "hidden"}


class LibraryStore:
    def __init__(self, library_file: Path, prefix_root: Path):
        self.library_file = Path(library_file)
        self.prefix_root = Path(prefix_root)
        self._lock = threading.RLock()
        self._entries: Dict[str, LibraryEntry] = self._load()

    # -- persistence ---------------------------------------------------------

    def _load(self) -> Dict[str, LibraryEntry]:
        if not self.library_file.exists():
            return {}
        data = json.loads(self.library_file.read_text("utf-8"))
        entries: Dict[str, LibraryEntry] = {}
        for item in data.get("games", []):
            if not isinstance(item, dict) or not item.get("id"):
                continue
            entry = LibraryEntry(**{k: v for k, v in item.items() if k in _ENTRY_FIELDS})
            if not entry.root_path or not entry.exe_path:
                entry.root_path = entry.exe_path = None
            entries[entry.id] = entry
        return entries

    def _save(self) -> None:
        self.library_file.parent.mkdir(parents=True, exist_ok=True)
        payload = {"games": [asdict(e) for e in self._entries.values()]}
        tmp = self.library_file.with_suffix(self.library_file.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        os.replace(tmp, self.library_file)

    # -- reads ---------------------------------------------------------------

    def all_entries(self) -> List[LibraryEntry]:
        with self._lock:
            return list(self._entries.values())

    def unlinked_entries(self) -> List[LibraryEntry]:
        with self._lock:
            return [e for e in self._entries.values() if e.root_path is None]

    def find_by_root_path(self, root_path: str) -> Optional[LibraryEntry]:
        with self._lock:
            for e in self._entries.values():
                if e.root_path == root_path:
                    return e
        return None

    def get(self, entry_id: str) -> Optional[LibraryEntry]:
        with self._lock:
            return self._entries.get(entry_id)

    # -- writes --------------------------------------------------------------

    def insert(self, name: str, root_path: str, exe_path: str, *,
               runtime_id: Optional[str] = None, steam_app_id: Optional[str] = None) -> LibraryEntry:
        if not root_path or not exe_path:
            raise ValueError("root_path and exe_path are both required")
        entry_id = str(uuid.uuid4())
        entry = LibraryEntry(
            id=entry_id,
            name=name,
            root_path=root_path,
            exe_path=exe_path,
            compat_data_path=str(self.prefix_root / entry_id),
            runtime_id=runtime_id,
            steam_app_id=steam_app_id,
            created_at=now_ms(),
        )
        with self._lock:
            self._entries[entry_id] = entry
            self._save()
        return entry

    def link(self, entry_id: str, root_path: str, exe_path: str) -> LibraryEntry:
        if not root_path or not exe_path:
            raise ValueError("root_path and exe_path are both required")
        with self._lock:
            entry = self._require(entry_id)
            entry.root_path = root_path
            entry.exe_path = exe_path
            self._save()
            return entry

    def unlink_outside(self, scan_paths: Iterable[str]) -> int:
        """Soft-unlink every entry no longer under an active scan path."""
        paths = [str(p) for p in scan_paths]
        count = 0
        with self._lock:
            for e in self._entries.values():
                if e.root_path is None:
                    continue
                if any(is_under(e.root_path, p) for p in paths):
                    continue
                e.root_path = None
                e.exe_path = None
                count += 1
            if count:
                self._save()
        if count:
            logger.info("Soft-unlinked %d games not under any active scan path", count)
        return count

    def record_launch(self, entry_id: str, when: int) -> None:
        with self._lock:
            self._require(entry_id).last_played = when
            self._save()

    def add_play_time(self, entry_id: str, seconds: int) -> None:
        with self._lock:
            entry = self._require(entry_id)
            entry.play_time_seconds += max(0, int(seconds))
            self._save()

    def set_cover(self, entry_id: str, cover_image: Optional[str]) -> None:
        with self._lock:
            self._require(entry_id).cover_image = cover_image
            self._save()

    def set_runtime(self, entry_id: str, runtime_id: Optional[str]) -> None:
        with self._lock:
            self._require(entry_id).runtime_id = runtime_id or None
            self._save()

    def update(self, entry_id: str, changes: Dict[str, Any]) -> LibraryEntry:
        """Apply user edits. `exe_path` can only be replaced on a linked entry."""
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"not editable: {', '.join(sorted(unknown))}")
        with self._lock:
            entry = self._require(entry_id)
            if "exe_path" in changes:
                if not changes["exe_path"]:
                    raise ValueError("exe_path cannot be cleared, unlink the game instead")
                if entry.root_path is None:
                    raise ValueError("exe_path needs a root_path, link the game first")
            for key, value in changes.items():
                setattr(entry, key, value)
            self._save()
            return entry

    def delete(self, entry_id: str) -> LibraryEntry:
        with self._lock:
            entry = self._require(entry_id)
            del self._entries[entry_id]
            self._save()
        logger.info("Removed game %s (%s)", entry.name, entry_id)
        return entry

    def _require(self, entry_id: str) -> LibraryEntry:
        entry = self._entries.get(entry_id)
        if entry is None:
            raise KeyError(entry_id)
        return entry


def reconcile(scanned: Iterable[ScannedGame], store: LibraryStore) -> ReconcileResult:
    """Persist a scan: duplicates are skipped, unlinked entries re-linked by name, the rest added."""
    result = ReconcileResult()

    # fetched once; an entry leaves the pool when re-linked so it can only match once
    unlinked_by_name: Dict[str, str] = {}
    for e in store.unlinked_entries():
        unlinked_by_name.setdefault(e.name.lower(), e.id)

    for game in scanned:
        if store.find_by_root_path(game.root_path) is not None:
            result.skipped += 1
            continue

        unlinked_id = unlinked_by_name.pop(game.name.lower(), None)
        if unlinked_id is not None:
            store.link(unlinked_id, game.root_path, game.exe_path)
            logger.info("Re-linked unlinked game %s (%s)", game.name, unlinked_id)
            result.relinked += 1
            continue

        entry = store.insert(game.name, game.root_path, game.exe_path)
        result.new_game_ids.append(entry.id)
        result.added += 1

    return result
