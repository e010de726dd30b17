import logging
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from .models import ExecutableCandidate, ScannedGame, ScanProgress
from .ranking import EXE_SUFFIX, rank_candidates
from .utils import load_ignore_patterns, is_dir_ignored

logger = logging.getLogger(__name__)

# depth below the game root we are willing to descend
MAX_EXE_DEPTH = 5

# top-level folder names that are never games (case-insensitive)
DEFAULT_EXCLUDED_FOLDERS = frozenset({"prefixes"})

ProgressCallback = Callable[[ScanProgress], None]

def _list_dir(directory: Path) -> Optional[List[Path]]:
    try:
        return sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError as e:
        # permission denied, deleted mid-walk, not a directory...
        logger.debug("Skipping unreadable directory %s: %s", directory, e)
        return None

def collect_executables(directory: Path, game_root: Path, depth: int = 0,
                        max_depth: int = MAX_EXE_DEPTH,
                        results: Optional[List[ExecutableCandidate]] = None) -> List[ExecutableCandidate]:
    """Depth-bounded walk collecting .exe files; files of a directory come before its subdirectories.

    Symlinks are never followed and unreadable directories are skipped, so a
    single bad directory never fails the whole walk.
    """
    if results is None:
        results = []
    if depth > max_depth:
        return results

    entries = _list_dir(Path(directory))
    if entries is None:
        return results

    subdirs: List[Path] = []
    for entry in entries:
        try:
            if entry.is_symlink():
                continue
            if entry.is_dir():
                subdirs.append(entry)
            elif entry.is_file() and entry.name.lower().endswith(EXE_SUFFIX):
                size = entry.stat().st_size
                results.append(ExecutableCandidate(
                    absolute_path=str(entry),
                    relative_path=entry.relative_to(game_root).as_posix(),
                    size_bytes=size,
                ))
        except OSError as e:
            logger.debug("Skipping %s: %s", entry, e)
            continue

    for sub in subdirs:
        collect_executables(sub, game_root, depth + 1, max_depth, results)
    return results

def list_game_dirs(scan_path: Path, excluded: Iterable[str] = DEFAULT_EXCLUDED_FOLDERS) -> List[Path]:
    """Immediate child directories of a scan root; each one is a candidate game."""
    scan_path = Path(scan_path)
    if not scan_path.is_dir():
        logger.warning("Scan path does not exist, skipping: %s", scan_path)
        return []

    entries = _list_dir(scan_path)
    if entries is None:
        logger.warning("Cannot read scan path: %s", scan_path)
        return []

    excluded_lower = {e.lower() for e in excluded}
    patterns = load_ignore_patterns(scan_path)
    dirs: List[Path] = []
    for p in entries:
        try:
            if p.is_symlink() or not p.is_dir():
                continue
        except OSError:
            continue
        if p.name.lower() in excluded_lower:
            continue
        if is_dir_ignored(scan_path, p, patterns):
            logger.debug("Ignored by %s pattern: %s", scan_path, p.name)
            continue
        dirs.append(p)
    return dirs

def best_executable(game_root: Path) -> Optional[ScannedGame]:
    """Walk and rank one game directory; None when nothing acceptable was found."""
    game_root = Path(game_root)
    candidates = collect_executables(game_root, game_root)
    if not candidates:
        return None
    ranked = rank_candidates(candidates, game_root.name)
    # every candidate negative: almost certainly a setup/utility folder
    if ranked[0].score < 0:
        return None
    return ScannedGame(
        name=game_root.name,
        root_path=str(game_root),
        exe_path=ranked[0].absolute_path,
        exe_candidates=[c.absolute_path for c in ranked],
    )

def detect_exe_in_directory(root_path: str) -> Optional[str]:
    root = Path(root_path)
    if not root.is_dir():
        return None
    game = best_executable(root)
    return game.exe_path if game else None

def scan_paths(root_paths: Iterable[str], on_progress: Optional[ProgressCallback] = None,
               excluded: Iterable[str] = DEFAULT_EXCLUDED_FOLDERS) -> List[ScannedGame]:
    excluded = list(excluded)
    game_dirs: List[Path] = []
    for root in root_paths:
        game_dirs.extend(list_game_dirs(Path(root), excluded))

    results: List[ScannedGame] = []
    total = len(game_dirs)
    for game_root in game_dirs:
        game = best_executable(game_root)
        if game is None:
            logger.debug("No acceptable executable in %s", game_root)
        else:
            results.append(game)
        if on_progress is not None:
            on_progress(ScanProgress(current=game_root.name, found=len(results), total=total))

    logger.info("Scanned %d directories, %d games found", total, len(results))
    return results
