import fnmatch
import logging
import time
from pathlib import Path
from typing import Optional, List
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

IGNORE_FILE = ".protonshelfignore"
ALLOWED_IMG_EXT = {".png", ".jpg", ".jpeg", ".webp"}

def now_ms() -> int:
    return int(time.time() * 1000)

def is_under(path: str, root: str) -> bool:
    root = root.rstrip("/") or "/"
    if path == root:
        return True
    prefix = root if root.endswith("/") else root + "/"
    return path.startswith(prefix)

def detect_root_files(game_dir: Path, exts: set) -> List[str]:
    items: List[str] = []
    try:
        for p in game_dir.iterdir():
            if p.is_file() and not p.is_symlink() and p.suffix.lower() in exts:
                items.append(p.name)
    except OSError:
        pass
    return sorted(items, key=lambda n: n.lower())

def pick_best_image(game_dir: Path, candidates: List[str], target_ar: float) -> Optional[str]:
    """Closest aspect ratio to target_ar wins; larger area breaks ties."""
    best = None
    best_score = float("inf")
    best_area = -1
    for name in candidates:
        f = game_dir / name
        try:
            with Image.open(f) as im:
                w, h = im.size
        except (OSError, UnidentifiedImageError) as e:
            logger.debug("Skipping unreadable image %s: %s", f, e)
            continue
        if w <= 0 or h <= 0:
            continue
        score = abs(w / h - target_ar)
        area = w * h
        if score < best_score or (abs(score - best_score) < 1e-6 and area > best_area):
            best, best_score, best_area = name, score, area
    return best

# --- ignore patterns (gitignore-ish) ---

def load_ignore_patterns(root: Path, ignore_filename: str = IGNORE_FILE) -> List[str]:
    p = root / ignore_filename
    try:
        if not p.is_file():
            return []
        raw = p.read_text(encoding="utf-8", errors="ignore").splitlines()
    except OSError as e:
        logger.warning("Cannot read ignore file %s: %s", p, e)
        return []
    patterns = []
    for line in raw:
        s = line.strip()
        if not s or s.startswith("#"):
            continue
        patterns.append(s.replace("\\", "/"))
    return patterns

def _match_any(path_rel: str, patterns: List[str]) -> bool:
    """Basic gitignore-like matching with !negations and dir patterns.

    - 'GameB/' matches 'GameB' and everything under it
    - 'foo' matches 'foo' and 'foo/...'
    - '!keepme/' re-include a previously ignored path
    - Globs allowed via fnmatch
    """
    pr = path_rel.replace("\\", "/").lstrip("/")
    decided: Optional[bool] = None  # last matching rule wins

    for raw in patterns:
        neg = raw.startswith("!")
        pat = raw[1:] if neg else raw
        pat = pat.lstrip("/")

        if pat.endswith("/"):
            base = pat[:-1]
            hit = (pr == base) or pr.startswith(base + "/")
        else:
            hit = (pr == pat) or pr.startswith(pat + "/") or fnmatch.fnmatch(pr, pat)

        if hit:
            decided = (not neg)

    return bool(decided)

def is_dir_ignored(root: Path, dir_path: Path, patterns: List[str]) -> bool:
    if not patterns:
        return False
    rel = dir_path.relative_to(root).as_posix()
    return _match_any(rel, patterns)
