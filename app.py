#!/usr/bin/env python3
import os
import sys
from protonshelf import create_app, ensure_root, BIND, PORT, DEFAULT_DATA_DIR

def _resolve_data_dir() -> str:
    if len(sys.argv) >= 2:
        return os.path.abspath(sys.argv[1])
    return os.path.abspath(os.environ.get("PROTONSHELF_DATA", str(DEFAULT_DATA_DIR)))

if __name__ == "__main__":
    data_dir = _resolve_data_dir()
    ensure_root(data_dir)
    app = create_app(data_dir)
    app.run(host=BIND, port=PORT, debug=False, threaded=True)
