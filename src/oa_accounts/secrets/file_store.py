"""Plain-file secret backend protected by file permissions."""

import os
from pathlib import Path

from structlog import get_logger

from oa_accounts.core.async_utils import run_in_executor
from oa_accounts.exceptions import (
    SecretNotFoundError,
    SecretStoreError,
    ValidationError,
)
from oa_accounts.secrets.base import SecretStore


logger = get_logger(__name__)


class FileSecretStore(SecretStore):
    """Stores each secret as a file below ``root``.

    Directories are created with mode 0700 and files with mode 0600.
    """

    name = "file"

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser()

    def path_for(self, key: str) -> Path:
        """Map a secret key to a file below the root.

        Raises:
            ValidationError: If the key is empty or escapes the root
        """
        if not key.strip():
            raise ValidationError("secret key is required")
        cleaned = os.path.normpath(key)
        if (
            os.path.isabs(cleaned)
            or cleaned == "."
            or cleaned == ".."
            or cleaned.startswith(".." + os.sep)
        ):
            raise ValidationError(f"invalid secret key: {key!r}")
        return self.root / cleaned

    async def get(self, key: str) -> str:
        path = self.path_for(key)
        return await run_in_executor(self._read, key, path)

    async def put(self, key: str, value: str) -> None:
        path = self.path_for(key)
        await run_in_executor(self._write, key, path, value)
        logger.debug("file_secret_written", key=key)

    async def delete(self, key: str) -> None:
        path = self.path_for(key)
        await run_in_executor(self._remove, key, path)

    def _read(self, key: str, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise SecretNotFoundError(key) from e
        except OSError as e:
            raise SecretStoreError(f"read secret file: {e}", key=key) from e

    def _write(self, key: str, path: Path, value: str) -> None:
        try:
            path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.chmod(path, 0o600)
        except OSError as e:
            raise SecretStoreError(f"write secret file: {e}", key=key) from e

    def _remove(self, key: str, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise SecretStoreError(f"delete secret file: {e}", key=key) from e
