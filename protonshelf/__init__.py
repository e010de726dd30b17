import logging
import os
from pathlib import Path
from flask import Flask
from .engine import Engine
from .routes import bp as routes_bp

# Bind only localhost unless overridden
BIND = os.environ.get("BIND", "127.0.0.1")
PORT = int(os.environ.get("PORT", "5000"))
LOG_LEVEL = os.environ.get("PROTONSHELF_LOG_LEVEL", "INFO")
DEFAULT_DATA_DIR = Path.home() / ".local" / "share" / "protonshelf"

def ensure_root(data_dir: str) -> None:
    try:
        Path(data_dir).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise SystemExit(f"Cannot create data directory {data_dir}: {e}")

def create_app(data_dir: str, engine: Engine = None) -> Flask:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = Flask(__name__)
    app.config["EVENT_KEEPALIVE"] = 15.0
    app.extensions["protonshelf"] = engine or Engine(Path(data_dir))

    app.register_blueprint(routes_bp)
    return app
