from __future__ import annotations

import os
import stat
import sys
from pathlib import Path

import pytest

# Ensure project root import
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from protonshelf.engine import Engine
from protonshelf.events import EventBus
from protonshelf.runtimes import RuntimeResolver


def touch(p: Path, size: int = 0) -> Path:
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "wb") as f:
        if size:
            f.truncate(size)
        else:
            f.write(b"stub")
    return p


def make_runtime(install_dir: Path, name: str, body: str = "exit 0") -> Path:
    """A fake Proton directory whose `proton` script runs `body`."""
    rt = install_dir / name
    rt.mkdir(parents=True, exist_ok=True)
    script = rt / "proton"
    script.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return rt


@pytest.fixture
def steam_root(tmp_path):
    root = tmp_path / "Steam"
    (root / "steamapps" / "common").mkdir(parents=True)
    return root


@pytest.fixture
def engine(tmp_path, steam_root):
    eng = Engine(tmp_path / "data", resolver=RuntimeResolver([steam_root]), bus=EventBus())
    yield eng
    for record in eng.registry.list_running():
        try:
            record.process.kill()
        except OSError:
            pass
