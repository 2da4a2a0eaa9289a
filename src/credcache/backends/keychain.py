"""macOS Keychain backend.

Wraps the macOS ``security`` CLI tool to store secrets as generic passwords
in the user's login keychain. The credcache service maps to the keychain
service (``-s``) and the credential key to the account (``-a``).
"""

from __future__ import annotations

import asyncio
import logging

from credcache.backends.base import SecretBackend
from credcache.errors import BackendError, BackendErrorCode

logger = logging.getLogger(__name__)

# Exit code when a duplicate item already exists in Keychain
_ERR_DUPLICATE_ITEM = 45
# Exit code when an item is not found in Keychain
_ERR_ITEM_NOT_FOUND = 44
# Exit code when the user cancels the keychain access prompt
_ERR_USER_CANCELED = 128


def _error_for(returncode: int, stderr: bytes, action: str) -> BackendError:
    detail = stderr.decode("utf-8", errors="replace").strip()
    if returncode == _ERR_ITEM_NOT_FOUND:
        code = BackendErrorCode.ENTRY_NOT_FOUND
    elif returncode == _ERR_USER_CANCELED:
        code = BackendErrorCode.ACCESS_DENIED_BY_USER
    else:
        code = BackendErrorCode.OTHER_ERROR
    return BackendError(code, f"{action} failed (exit {returncode}): {detail}")


class KeychainBackend(SecretBackend):
    """Stores secrets in macOS Keychain via the ``security`` CLI.

    Parameters
    ----------
    command:
        The ``security`` executable. Overridable for tests and unusual
        installs.
    """

    def __init__(self, command: str = "security") -> None:
        self._command = command

    async def _run(self, *args: str) -> tuple[int, bytes, bytes]:
        """Run a ``security`` subcommand and return (returncode, stdout, stderr)."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self._command,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise BackendError(
                BackendErrorCode.NO_BACKEND_AVAILABLE,
                f"cannot run {self._command}: {exc}",
            ) from exc
        stdout, stderr = await proc.communicate()
        return proc.returncode or 0, stdout, stderr

    async def read(self, service: str, key: str, *, insecure_fallback: bool = False) -> str:
        returncode, stdout, stderr = await self._run(
            "find-generic-password",
            "-s", service,
            "-a", key,
            "-w",
        )
        if returncode != 0:
            raise _error_for(returncode, stderr, "find-generic-password")
        # -w prints the bare password followed by a newline
        return stdout.decode("utf-8", errors="replace").removesuffix("\n")

    async def write(
        self, service: str, key: str, payload: str, *, insecure_fallback: bool = False
    ) -> None:
        returncode, _, stderr = await self._run(
            "add-generic-password",
            "-s", service,
            "-a", key,
            "-w", payload,
            "-U",
        )
        if returncode == _ERR_DUPLICATE_ITEM:
            # Delete existing and re-add
            logger.debug("Keychain item %s/%s exists, replacing", service, key)
            await self._run(
                "delete-generic-password",
                "-s", service,
                "-a", key,
            )
            returncode, _, stderr = await self._run(
                "add-generic-password",
                "-s", service,
                "-a", key,
                "-w", payload,
            )
        if returncode != 0:
            raise _error_for(returncode, stderr, "add-generic-password")

    async def delete(self, service: str, key: str, *, insecure_fallback: bool = False) -> None:
        returncode, _, stderr = await self._run(
            "delete-generic-password",
            "-s", service,
            "-a", key,
        )
        if returncode != 0:
            raise _error_for(returncode, stderr, "delete-generic-password")
