#!/usr/bin/env python3
"""
Smoke test for protonshelf.

Checks:
- scan picks the main exe and skips installer-only folders
- rescan only skips, soft-unlink + re-link by name
- launch through a fake `proton` script, kill, exit notification
- runtime detection newest-first
"""
import os, shutil, stat, sys, tempfile
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from protonshelf import create_app, ensure_root
from protonshelf.engine import Engine
from protonshelf.runtimes import RuntimeResolver


def _touch(p: Path, size: int = 0):
    p.parent.mkdir(parents=True, exist_ok=True)
    with open(p, "wb") as f:
        f.truncate(size) if size else f.write(b"stub")


def _runtime(common: Path, name: str, body: str) -> Path:
    rt = common / name
    rt.mkdir(parents=True, exist_ok=True)
    script = rt / "proton"
    script.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return rt


def main():
    tmp = Path(tempfile.mkdtemp(prefix="protonshelf_smoke_"))
    try:
        data = tmp / "data"
        ensure_root(str(data))
        steam = tmp / "Steam"
        common = steam / "steamapps" / "common"
        _runtime(common, "Proton 8.0-5", "exit 0")
        _runtime(common, "Proton 9.0", "exec sleep 30")

        engine = Engine(data, resolver=RuntimeResolver([steam]))
        app = create_app(str(data), engine=engine)
        client = app.test_client()
        sub = engine.bus.subscribe()

        games = tmp / "Games"
        _touch(games / "GameA" / "GameA.exe", 5_000_000)
        _touch(games / "GameA" / "redist" / "vcredist_x64.exe")
        _touch(games / "GameB" / "bin" / "x64" / "gameb.exe", 2_000_000)
        _touch(games / "Installer" / "setup.exe")

        # Initial scan
        resp = client.post("/api/scan", json={"paths": [str(games)]})
        assert resp.status_code == 202, resp.get_json()
        assert engine.orchestrator.wait(10), "scan did not finish"
        status = client.get("/api/scan/status").get_json()
        assert status["status"] == "done", status
        assert status["last_result"]["added"] == 2, status

        listed = {g["name"]: g for g in client.get("/api/games").get_json()}
        assert sorted(listed) == ["GameA", "GameB"]
        assert listed["GameA"]["exe_path"].endswith("GameA.exe")

        # Rescan: everything already known
        engine.start_scan([str(games)], run_in_thread=False)
        assert engine.get_scan_status()["last_result"]["skipped"] == 2

        # Move GameA away, narrow scan paths, re-link after moving it back under a root
        moved = tmp / "Moved"
        moved.mkdir()
        shutil.move(str(games / "GameA"), str(moved / "gamea"))
        unlinked = engine.update_scan_paths([str(moved)])
        assert unlinked == 2, unlinked
        engine.start_scan([str(moved)], run_in_thread=False)
        assert engine.get_scan_status()["last_result"]["relinked"] == 1

        # Runtimes newest first
        ids = [v["id"] for v in client.get("/api/runtimes").get_json()]
        assert ids == ["proton-9-0", "proton-8-0-5"], ids

        # Launch GameA, kill it, observe the stop notification
        game_a = listed["GameA"]["id"]
        resp = client.post(f"/api/games/{game_a}/launch", json={"runtime_id": "proton-9-0"})
        assert resp.status_code == 200, resp.get_json()
        assert client.get(f"/api/games/{game_a}/status").get_json()["status"] == "running"
        assert client.post(f"/api/games/{game_a}/launch").status_code == 409
        client.post(f"/api/games/{game_a}/kill")

        while True:
            event = sub.get(timeout=10)
            assert event is not None, "no stop event"
            if event["type"] == "launch_status" and event["status"] == "stopped":
                break
        assert client.get(f"/api/games/{game_a}/status").get_json()["status"] == "stopped"

        print("[OK] Games scanned:", sorted(listed))
        print("[OK] Rescan skipped known games.")
        print("[OK] Soft-unlink + re-link by name.")
        print("[OK] Runtimes:", ids)
        print("[OK] Launch / kill / exit notification.")

    finally:
        shutil.rmtree(tmp, ignore_errors=True)


if __name__ == "__main__":
    main()
