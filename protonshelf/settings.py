import json
import logging
import os
from typing import Any, Dict
from pathlib import Path

from .errors import InvalidSettings

logger = logging.getLogger(__name__)

def default_settings() -> Dict:
    return {
        "scan_paths": [],
        "default_runtime": "",
        "excluded_folders": ["prefixes"],
        "extra_env": {},
    }

def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)

def validate_settings(changes: Dict[str, Any]) -> None:
    """Raise InvalidSettings unless every known key in `changes` is well typed."""
    if "scan_paths" in changes:
        paths = changes["scan_paths"]
        if not _is_str_list(paths) or not all(p and os.path.isabs(p) for p in paths):
            raise InvalidSettings("scan_paths must be a list of absolute paths")
    if "excluded_folders" in changes and not _is_str_list(changes["excluded_folders"]):
        raise InvalidSettings("excluded_folders must be a list of folder names")
    if "default_runtime" in changes and not isinstance(changes["default_runtime"], str):
        raise InvalidSettings("default_runtime must be a string")
    if "extra_env" in changes:
        env = changes["extra_env"]
        if not isinstance(env, dict) or not all(
                isinstance(k, str) and isinstance(v, str) for k, v in env.items()):
            raise InvalidSettings("extra_env must map variable names to string values")

def load_settings(settings_file: Path) -> Dict:
    default = default_settings()
    try:
        if settings_file.exists():
            data = json.loads(settings_file.read_text("utf-8"))
            if not isinstance(data, dict):
                raise ValueError("settings file must hold a JSON object")
            for k in default:
                if k not in data:
                    continue
                try:
                    validate_settings({k: data[k]})
                except InvalidSettings as e:
                    logger.warning("Ignoring %s in %s: %s", k, settings_file, e)
                    continue
                default[k] = data[k]
    except (OSError, ValueError) as e:
        logger.warning("Could not read settings %s: %s", settings_file, e)
    return default

def save_settings(settings_file: Path, settings: dict) -> None:
    settings_file.parent.mkdir(parents=True, exist_ok=True)
    merged = default_settings()
    merged.update({k: settings.get(k, merged[k]) for k in merged})
    settings_file.write_text(json.dumps(merged, indent=2), encoding="utf-8")
