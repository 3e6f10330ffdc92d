"""Versioned JSON document files shared by the file-backed repositories.

Each document looks like ``{"version": 1, "<collection>": [...]}``. One lock
per resolved path is shared by every repository opened on that path, and
writes land in a temporary file that atomically replaces the destination.
"""

import os
import tempfile
import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generic, TypeVar

import orjson
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from structlog import get_logger

from oa_accounts.exceptions import StorageError


logger = get_logger(__name__)

DOCUMENT_VERSION = 1

ModelT = TypeVar("ModelT", bound=BaseModel)

_registry_lock = threading.Lock()
_path_locks: dict[Path, threading.Lock] = {}


def lock_for_path(path: Path) -> threading.Lock:
    """Return the process-wide lock for a backing file."""
    key = path.expanduser().resolve()
    with _registry_lock:
        lock = _path_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _path_locks[key] = lock
        return lock


class JsonDocument(Generic[ModelT]):
    """A list of pydantic records persisted under one collection key."""

    def __init__(self, path: Path, collection: str, model: type[ModelT]) -> None:
        self.path = Path(path).expanduser()
        self.collection = collection
        self.model = model
        self._lock = lock_for_path(self.path)

    def read(self) -> list[ModelT]:
        """Load all records."""
        with self._lock:
            return self._read_unlocked()

    def update(self, mutate: Callable[[list[ModelT]], list[ModelT]]) -> None:
        """Run a read-modify-write cycle under the path lock."""
        with self._lock:
            records = mutate(self._read_unlocked())
            self._write_unlocked(records)

    def _read_unlocked(self) -> list[ModelT]:
        try:
            raw = self.path.read_bytes()
        except FileNotFoundError:
            return []
        except OSError as e:
            raise StorageError(f"read {self.path}: {e}") from e

        if not raw.strip():
            return []

        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError as e:
            raise StorageError(f"decode {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise StorageError(f"decode {self.path}: expected object")

        version = data.get("version", DOCUMENT_VERSION)
        if not isinstance(version, int) or version > DOCUMENT_VERSION:
            raise StorageError(
                f"{self.path}: unsupported version {version!r} "
                f"(max {DOCUMENT_VERSION})"
            )

        items: list[Any] = data.get(self.collection) or []
        try:
            return [self.model.model_validate(item) for item in items]
        except PydanticValidationError as e:
            raise StorageError(f"decode {self.path}: {e}") from e

    def _write_unlocked(self, records: list[ModelT]) -> None:
        payload = {
            "version": DOCUMENT_VERSION,
            self.collection: [record.model_dump(mode="json") for record in records],
        }
        atomic_write_bytes(
            self.path, orjson.dumps(payload, option=orjson.OPT_INDENT_2)
        )
        logger.debug(
            "document_saved",
            path=str(self.path),
            collection=self.collection,
            count=len(records),
        )


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` through a synced temp file and rename.

    Raises:
        StorageError: If the file cannot be written
    """
    try:
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
        )
    except OSError as e:
        raise StorageError(f"write {path}: {e}") from e

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(temp_name, 0o600)
        os.replace(temp_name, path)
    except OSError as e:
        Path(temp_name).unlink(missing_ok=True)
        raise StorageError(f"write {path}: {e}") from e
