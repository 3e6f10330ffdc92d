from pathlib import Path

import platformdirs


APP_NAME = "oa_accounts"


def get_xdg_config_home() -> Path:
    """Get the XDG_CONFIG_HOME directory using platformdirs.

    Returns:
        Path to the user config directory (cross-platform).
    """
    return Path(platformdirs.user_config_dir())


def get_xdg_data_home() -> Path:
    """Get the XDG_DATA_HOME directory using platformdirs.

    Returns:
        Path to the user data directory (cross-platform).
    """
    return Path(platformdirs.user_data_dir())


def get_oa_config_dir() -> Path:
    """Directory holding oa's config file, repositories and file secrets."""
    return get_xdg_config_home() / APP_NAME
