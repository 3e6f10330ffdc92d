"""Abstract base class for secret backends."""

from abc import ABC, abstractmethod


class SecretStore(ABC):
    """Key/value storage for credential material."""

    name: str = "secret-store"

    @abstractmethod
    async def get(self, key: str) -> str:
        """Read the value stored under ``key``.

        Raises:
            SecretNotFoundError: If the key does not exist
            SecretBackendUnavailableError: If the backend cannot be used
        """

    @abstractmethod
    async def put(self, key: str, value: str) -> None:
        """Create or overwrite the value stored under ``key``."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``. Deleting a missing key succeeds."""
