import os
from typing import Dict, Mapping, Optional

from .models import LaunchConfig

# Proton accepts "0" for non-Steam games
DEFAULT_APP_ID = "0"

def build_runtime_env(config: LaunchConfig, steam_root: Optional[str],
                      base_env: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Environment for `proton run`.

    Precedence, highest wins: config.extra_env > generated Proton vars > inherited
    environment. STEAM_COMPAT_CLIENT_INSTALL_PATH is left out entirely when no
    Steam root was detected.
    """
    inherited = os.environ if base_env is None else base_env
    env: Dict[str, str] = {str(k): str(v) for k, v in inherited.items() if v is not None}

    env["STEAM_COMPAT_DATA_PATH"] = str(config.compat_data_path)
    env["STEAM_COMPAT_APP_ID"] = str(config.steam_app_id) if config.steam_app_id else DEFAULT_APP_ID
    env["PROTON_LOG"] = "1"
    if steam_root:
        env["STEAM_COMPAT_CLIENT_INSTALL_PATH"] = str(steam_root)

    for k, v in (config.extra_env or {}).items():
        if v is None:
            continue
        env[str(k)] = str(v)
    return env
