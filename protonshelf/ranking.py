"""Heuristic scoring used to pick a game's main executable.

Scoring rubric (additive):
  +40  exe stem matches, contains, or is contained in the game directory name
  +20  exe sits in the game root or one directory below it
  +15  exe is larger than 1 MB (filters out tiny stub launchers)
  -50  per heavy-penalty keyword found in the stem
  -30  per light-penalty keyword found in the stem
"""
import re
from pathlib import PurePosixPath
from typing import Iterable, List

from .models import ExecutableCandidate, ScoredCandidate

EXE_SUFFIX = ".exe"

NAME_BONUS = 40
SHALLOW_BONUS = 20
SIZE_BONUS = 15
SIZE_THRESHOLD = 1_000_000
MIN_CONTAINED_LEN = 3

# Installers, uninstallers and redistributables
HEAVY_PENALTY_KEYWORDS = (
    "launcher",
    "setup",
    "unins",
    "redist",
    "install",
    "uninst",
    "vcredist",
    "directx",
    "dxsetup",
    "dotnet",
)
HEAVY_PENALTY = 50

# Crash reporters, updaters, anti-cheat and other helpers
LIGHT_PENALTY_KEYWORDS = (
    "crash",
    "update",
    "report",
    "helper",
    "service",
    "config",
    "register",
    "easyanticheat",
    "battleye",
    "bethesdanet",
    "galaxyclient",
)
LIGHT_PENALTY = 30

_NON_ALNUM = re.compile(r"[^a-z0-9]")

def normalize_name(s: str) -> str:
    return _NON_ALNUM.sub("", s.lower())

def _stem(candidate: ExecutableCandidate) -> str:
    name = PurePosixPath(candidate.absolute_path.replace("\\", "/")).name
    if name.lower().endswith(EXE_SUFFIX):
        name = name[: -len(EXE_SUFFIX)]
    return name

def path_depth(relative_path: str) -> int:
    """'game.exe' -> 0, 'bin/game.exe' -> 1, 'bin/x64/game.exe' -> 2"""
    return relative_path.count("/")

def names_match(stem: str, reference: str) -> bool:
    if stem == reference:
        return True
    if len(reference) >= MIN_CONTAINED_LEN and reference in stem:
        return True
    return len(stem) >= MIN_CONTAINED_LEN and stem in reference

def score_candidate(candidate: ExecutableCandidate, reference_name: str) -> int:
    score = 0
    stem = normalize_name(_stem(candidate))
    reference = normalize_name(reference_name)

    if names_match(stem, reference):
        score += NAME_BONUS
    if path_depth(candidate.relative_path) <= 1:
        score += SHALLOW_BONUS
    if candidate.size_bytes > SIZE_THRESHOLD:
        score += SIZE_BONUS

    # every keyword counts, so "vcredist" costs both vcredist and redist
    for kw in HEAVY_PENALTY_KEYWORDS:
        if kw in stem:
            score -= HEAVY_PENALTY
    for kw in LIGHT_PENALTY_KEYWORDS:
        if kw in stem:
            score -= LIGHT_PENALTY
    return score

def rank_candidates(candidates: Iterable[ExecutableCandidate], reference_name: str) -> List[ScoredCandidate]:
    """Score all candidates, highest first. Ties keep walk order."""
    scored = [
        ScoredCandidate(
            absolute_path=c.absolute_path,
            relative_path=c.relative_path,
            size_bytes=c.size_bytes,
            score=score_candidate(c, reference_name),
        )
        for c in candidates
    ]
    scored.sort(key=lambda s: s.score, reverse=True)
    return scored
