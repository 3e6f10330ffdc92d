"""Secret backends and the primary/fallback chain."""

from .base import SecretStore
from .chain import ChainSecretStore
from .file_store import FileSecretStore
from .keyring_store import KeyringSecretStore
from .pass_store import PassSecretStore


__all__ = [
    "SecretStore",
    "ChainSecretStore",
    "FileSecretStore",
    "KeyringSecretStore",
    "PassSecretStore",
]
