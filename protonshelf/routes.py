from __future__ import annotations
import json
from dataclasses import asdict
from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context

from .engine import Engine
from .errors import (
    AlreadyRunning, EngineError, GameNotFound, InvalidGameData, InvalidPath,
    InvalidSettings, NoExecutableFound, NotInstalled, NotRunning, RuntimeNotFound,
    SpawnFailed,
)

bp = Blueprint("protonshelf", __name__)

# most specific first
_ERROR_STATUS = (
    (GameNotFound, 404),
    (NotRunning, 404),
    (AlreadyRunning, 409),
    (NotInstalled, 400),
    (RuntimeNotFound, 400),
    (InvalidPath, 400),
    (NoExecutableFound, 400),
    (InvalidSettings, 400),
    (InvalidGameData, 400),
    (SpawnFailed, 500),
)

def _engine() -> Engine:
    return current_app.extensions["protonshelf"]

def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}

@bp.errorhandler(EngineError)
def engine_error(e: EngineError):
    for cls, status in _ERROR_STATUS:
        if isinstance(e, cls):
            break
    else:
        status = 500
    payload = {"error": str(e), "kind": e.__class__.__name__}
    if isinstance(e, RuntimeNotFound):
        payload["hint"] = "GET /api/runtimes to see installed versions."
    return jsonify(payload), status

# ──────────────────────────────────────────────────────────────────────────────
# Scanning
# ──────────────────────────────────────────────────────────────────────────────

@bp.post("/api/scan")
def start_scan():
    paths = _body().get("paths")
    if paths is not None and (not isinstance(paths, list)
                              or not all(isinstance(p, str) and p.startswith("/") for p in paths)):
        return jsonify({"error": "paths must be a list of absolute paths"}), 400

    result = _engine().start_scan(paths)
    if result.accepted:
        return jsonify({"status": "started"}), 202
    if result.reason == "already_running":
        return jsonify({
            "error": "A scan is already in progress",
            "progress": asdict(result.progress) if result.progress else None,
        }), 409
    return jsonify({
        "error": "No scan paths provided. Pass paths or configure scan_paths in settings.",
    }), 400

@bp.get("/api/scan/status")
def scan_status():
    return jsonify(_engine().get_scan_status())

# ──────────────────────────────────────────────────────────────────────────────
# Games
# ──────────────────────────────────────────────────────────────────────────────

@bp.get("/api/games")
def list_games():
    eng = _engine()
    include_hidden = request.args.get("include_hidden", "").lower() in ("1", "true", "yes")
    return jsonify([eng.describe(g) for g in eng.list_games(include_hidden)])

@bp.post("/api/games")
def add_game():
    body = _body()
    for key in ("name", "root_path", "exe_path"):
        if not isinstance(body.get(key), str) or not body[key]:
            return jsonify({"error": f"{key} is required"}), 400
    eng = _engine()
    entry = eng.add_game(body["name"], body["root_path"], body["exe_path"],
                         runtime_id=body.get("runtime_id"),
                         steam_app_id=body.get("steam_app_id"))
    return jsonify(eng.describe(entry)), 201

@bp.get("/api/games/<game_id>")
def get_game(game_id):
    eng = _engine()
    return jsonify(eng.describe(eng.get_game(game_id)))

@bp.put("/api/games/<game_id>")
def update_game(game_id):
    eng = _engine()
    return jsonify(eng.describe(eng.update_game(game_id, _body())))

@bp.delete("/api/games/<game_id>")
def delete_game(game_id):
    _engine().delete_game(game_id)
    return "", 204

@bp.put("/api/games/<game_id>/path")
def set_game_path(game_id):
    root_path = _body().get("root_path")
    if not isinstance(root_path, str) or not root_path:
        return jsonify({"error": "root_path is required"}), 400
    eng = _engine()
    return jsonify(eng.describe(eng.set_game_path(game_id, root_path)))

@bp.put("/api/games/<game_id>/runtime")
def set_game_runtime(game_id):
    runtime_id = _body().get("runtime_id")
    if runtime_id is not None and not isinstance(runtime_id, str):
        return jsonify({"error": "runtime_id must be a string or null"}), 400
    eng = _engine()
    return jsonify(eng.describe(eng.set_game_runtime(game_id, runtime_id)))

@bp.post("/api/games/<game_id>/launch")
def launch_game(game_id):
    override = _body().get("runtime_id") or None
    return jsonify(_engine().launch(game_id, override))

@bp.post("/api/games/<game_id>/kill")
def kill_game(game_id):
    return jsonify(_engine().kill(game_id))

@bp.get("/api/games/<game_id>/status")
def game_status(game_id):
    return jsonify(_engine().get_launch_status(game_id))

@bp.get("/api/running")
def running_games():
    return jsonify(_engine().list_running())

# ──────────────────────────────────────────────────────────────────────────────
# Runtimes, settings, notifications
# ──────────────────────────────────────────────────────────────────────────────

@bp.get("/api/runtimes")
def runtimes():
    return jsonify([asdict(v) for v in _engine().list_runtime_versions()])

@bp.get("/api/settings")
def get_settings():
    return jsonify(_engine().settings())

@bp.put("/api/settings")
def put_settings():
    return jsonify(_engine().update_settings(_body()))

@bp.get("/api/events")
def events():
    eng = _engine()
    keepalive = float(current_app.config.get("EVENT_KEEPALIVE", 15.0))
    sub = eng.bus.subscribe()

    def _stream():
        try:
            while True:
                event = sub.get(timeout=keepalive)
                if event is None:
                    yield ": keepalive\n\n"
                    continue
                yield f"event: {event['type']}\ndata: {json.dumps(event)}\n\n"
        finally:
            sub.close()

    return Response(stream_with_context(_stream()), mimetype="text/event-stream")
