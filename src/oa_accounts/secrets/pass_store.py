"""Secret backend driving the ``pass`` password manager."""

import asyncio
import shutil
from collections.abc import Awaitable, Callable

from structlog import get_logger

from oa_accounts.exceptions import (
    SecretBackendUnavailableError,
    SecretNotFoundError,
    SecretStoreError,
)
from oa_accounts.secrets.base import SecretStore


logger = get_logger(__name__)

# (stdin, args) -> (returncode, stdout, stderr)
PassRunner = Callable[[str, list[str]], Awaitable[tuple[int, str, str]]]


async def run_pass_command(stdin: str, args: list[str]) -> tuple[int, str, str]:
    """Run ``pass`` with ``args`` and return its exit code and output.

    Raises:
        SecretBackendUnavailableError: If the ``pass`` binary is not installed
    """
    binary = shutil.which("pass")
    if binary is None:
        raise SecretBackendUnavailableError("pass command unavailable")

    process = await asyncio.create_subprocess_exec(
        binary,
        *args,
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await process.communicate(stdin.encode() if stdin else None)
    except asyncio.CancelledError:
        process.kill()
        await process.wait()
        raise
    return (
        process.returncode or 0,
        stdout.decode(errors="replace"),
        stderr.decode(errors="replace").strip(),
    )


class PassSecretStore(SecretStore):
    name = "pass"

    def __init__(self, runner: PassRunner | None = None) -> None:
        self._run = runner or run_pass_command

    async def get(self, key: str) -> str:
        code, stdout, stderr = await self._run("", ["show", key])
        if code != 0:
            raise self._error("get", key, code, stderr)
        return stdout.removesuffix("\n").removesuffix("\r")

    async def put(self, key: str, value: str) -> None:
        code, _, stderr = await self._run(value + "\n", ["insert", "-m", "-f", key])
        if code != 0:
            raise self._error("put", key, code, stderr)
        logger.debug("pass_secret_written", key=key)

    async def delete(self, key: str) -> None:
        code, _, stderr = await self._run("", ["rm", "-f", key])
        if code != 0:
            raise self._error("delete", key, code, stderr)

    @staticmethod
    def _error(operation: str, key: str, code: int, stderr: str) -> SecretStoreError:
        if "is not in the password store" in stderr:
            return SecretNotFoundError(key)
        detail = stderr or f"exit status {code}"
        return SecretStoreError(f"pass {operation} {key}: {detail}", key=key)
