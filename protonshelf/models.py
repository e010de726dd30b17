from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

@dataclass
class ExecutableCandidate:
    absolute_path: str
    relative_path: str      # forward slashes, relative to the game root
    size_bytes: int

@dataclass
class ScoredCandidate(ExecutableCandidate):
    score: int = 0

@dataclass
class ScannedGame:
    name: str
    root_path: str
    exe_path: str
    exe_candidates: List[str]

@dataclass
class LibraryEntry:
    id: str
    name: str
    root_path: Optional[str]        # None=unlinked
    exe_path: Optional[str]         # None=unlinked
    compat_data_path: str
    runtime_id: Optional[str] = None
    steam_app_id: Optional[str] = None
    cover_image: Optional[str] = None
    last_played: Optional[int] = None
    play_time_seconds: int = 0
    created_at: int = 0
    hidden: bool = False

    @property
    def linked(self) -> bool:
        return self.root_path is not None

@dataclass
class ScanProgress:
    current: str = ""
    found: int = 0
    total: int = 0

@dataclass
class ScanResult:
    added: int
    skipped: int
    relinked: int
    total: int

@dataclass
class ReconcileResult:
    added: int = 0
    skipped: int = 0
    relinked: int = 0
    new_game_ids: List[str] = field(default_factory=list)

@dataclass
class ScanState:
    status: str = "idle"            # idle, running, done, error
    progress: ScanProgress = field(default_factory=ScanProgress)
    last_run: Optional[int] = None
    last_result: Optional[ScanResult] = None
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

@dataclass
class RuntimeVersion:
    id: str
    path: str
    label: str

@dataclass
class LaunchConfig:
    exe_path: str
    runtime_path: str
    compat_data_path: str
    steam_app_id: Optional[str] = None
    extra_env: Optional[Dict[str, str]] = None

@dataclass
class LaunchRecord:
    game_id: str
    process: Any
    pid: int
    started_at: int                 # unix ms

    def to_dict(self) -> Dict[str, Any]:
        return {"game_id": self.game_id, "pid": self.pid, "started_at": self.started_at}
