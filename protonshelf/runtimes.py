"""Proton installation discovery.

Versions are read from disk on every call, never cached, so installs and
removals made outside this process show up on the next query.
"""
import logging
import re
from pathlib import Path
from typing import List, Optional, Sequence

from .models import RuntimeVersion

logger = logging.getLogger(__name__)

LAUNCHER_SCRIPT = "proton"
NAME_MARKER = "proton"

# checked in order
DEFAULT_STEAM_ROOTS = (
    Path.home() / ".steam" / "steam",
    Path.home() / ".local" / "share" / "Steam",
    Path.home() / ".var" / "app" / "com.valvesoftware.Steam" / ".local" / "share" / "Steam",
)

# relative to a Steam root: Valve builds, then community builds (GE-Proton etc.)
INSTALL_SUBDIRS = (
    Path("steamapps") / "common",
    Path("compatibilitytools.d"),
)

_NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")
_VERSION_PAIR = re.compile(r"(\d+)[.\-](\d+)")
_NUMBER = re.compile(r"(\d+)")

def build_id(dir_name: str) -> str:
    """'Proton 9.0' -> 'proton-9-0', 'Proton - Experimental' -> 'proton-experimental'"""
    return _NON_ALNUM_RUN.sub("-", dir_name.lower()).strip("-")

def build_label(dir_name: str) -> str:
    return dir_name

def sort_key(dir_name: str) -> int:
    """'Proton 9.0' -> 9000, 'Proton 8.0-5' -> 8000, 'GE-Proton9-20' -> 9020, no digits -> 0"""
    m = _VERSION_PAIR.search(dir_name)
    if m:
        return int(m.group(1)) * 1000 + int(m.group(2))
    single = _NUMBER.search(dir_name)
    return int(single.group(1)) * 1000 if single else 0

def is_valid_installation(path) -> bool:
    return (Path(path) / LAUNCHER_SCRIPT).exists()

def launcher_script(runtime_path) -> Path:
    return Path(runtime_path) / LAUNCHER_SCRIPT

class RuntimeResolver:
    def __init__(self, steam_roots: Optional[Sequence[Path]] = None):
        self.steam_roots = [Path(p) for p in (steam_roots if steam_roots is not None else DEFAULT_STEAM_ROOTS)]

    def _scan_install_dir(self, install_dir: Path) -> List[RuntimeVersion]:
        if not install_dir.is_dir():
            return []
        try:
            entries = sorted(install_dir.iterdir(), key=lambda p: p.name)
        except OSError as e:
            logger.debug("Cannot list %s: %s", install_dir, e)
            return []

        versions: List[RuntimeVersion] = []
        for entry in entries:
            if NAME_MARKER not in entry.name.lower():
                continue
            try:
                if not entry.is_dir() or not is_valid_installation(entry):
                    continue
            except OSError:
                continue
            versions.append(RuntimeVersion(id=build_id(entry.name), path=str(entry),
                                           label=build_label(entry.name)))
        return versions

    def detect_all(self) -> List[RuntimeVersion]:
        """All installations across known Steam roots, deduplicated by path, newest first."""
        seen = set()
        versions: List[RuntimeVersion] = []
        for steam_root in self.steam_roots:
            for sub in INSTALL_SUBDIRS:
                for v in self._scan_install_dir(steam_root / sub):
                    key = str(Path(v.path).resolve())
                    if key in seen:
                        continue
                    seen.add(key)
                    versions.append(v)
        versions.sort(key=lambda v: sort_key(v.label), reverse=True)
        return versions

    def find_by_id(self, runtime_id: str) -> Optional[RuntimeVersion]:
        for v in self.detect_all():
            if v.id == runtime_id:
                return v
        return None

    def detect_steam_root(self) -> Optional[str]:
        for root in self.steam_roots:
            if root.exists():
                return str(root)
        return None
