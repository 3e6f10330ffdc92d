from pathlib import Path

from oa_accounts.core.system import get_oa_config_dir


def find_toml_config_file() -> Path | None:
    """Find the TOML configuration file for oa.

    Searches in the following order:
    1. .oa_accounts.toml in current directory
    2. oa_accounts.toml in current directory
    3. config.toml in user config directory/oa_accounts/ (platform-specific)
    """
    candidates = [
        Path(".oa_accounts.toml").resolve(),
        Path("oa_accounts.toml").resolve(),
        get_oa_config_dir() / "config.toml",
    ]

    for candidate in candidates:
        if candidate.exists() and candidate.is_file():
            return candidate

    return None
