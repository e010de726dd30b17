"""Local cover art for newly added games.

Picks the image in the game folder whose aspect ratio is closest to a
portrait box cover. Runs as the post-scan enrichment step.
"""
import logging
from pathlib import Path
from typing import Iterable

from .library import LibraryStore
from .utils import ALLOWED_IMG_EXT, detect_root_files, pick_best_image

logger = logging.getLogger(__name__)

DEFAULT_TARGET_AR = 0.75

class LocalCoverEnricher:
    def __init__(self, store: LibraryStore, target_ar: float = DEFAULT_TARGET_AR):
        self.store = store
        self.target_ar = target_ar

    def __call__(self, game_ids: Iterable[str]) -> int:
        assigned = 0
        for gid in game_ids:
            entry = self.store.get(gid)
            if entry is None or entry.root_path is None or entry.cover_image:
                continue
            folder = Path(entry.root_path)
            try:
                images = detect_root_files(folder, ALLOWED_IMG_EXT)
                chosen = pick_best_image(folder, images, self.target_ar) if images else None
                if chosen:
                    self.store.set_cover(gid, str(folder / chosen))
                    assigned += 1
            except Exception:
                # one game's artwork never stops the others
                logger.warning("Cover lookup failed for %s", entry.name, exc_info=True)
        logger.info("Assigned covers to %d of the new games", assigned)
        return assigned
