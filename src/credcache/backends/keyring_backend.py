"""Secret Service / Windows Credential Manager backend via ``keyring``.

``keyring`` is synchronous, so every call is pushed to a worker thread
with ``asyncio.to_thread``. When the host has no usable keyring (a
headless Linux box without a Secret Service daemon, say) the backend can
delegate to a fallback store, but only when the caller allows an insecure
fallback for that job.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import keyring
import keyring.errors
from keyring.backend import KeyringBackend as _Keyring
from keyring.backends import fail

from credcache.backends.base import SecretBackend
from credcache.errors import BackendError, BackendErrorCode

logger = logging.getLogger(__name__)


class KeyringBackend(SecretBackend):
    """Stores secrets with the ``keyring`` library.

    Parameters
    ----------
    backend:
        A specific ``keyring`` backend instance. Defaults to whatever
        ``keyring.get_keyring()`` resolves at first use.
    fallback:
        Store used when no viable keyring exists and the job allows an
        insecure fallback.
    """

    def __init__(
        self,
        backend: _Keyring | None = None,
        fallback: SecretBackend | None = None,
    ) -> None:
        self._backend = backend
        self._fallback = fallback
        self._warned_fallback = False

    def _keyring(self) -> _Keyring:
        if self._backend is None:
            self._backend = keyring.get_keyring()
        return self._backend

    def _is_viable(self) -> bool:
        return not isinstance(self._keyring(), fail.Keyring)

    def _fallback_for(self, insecure_fallback: bool) -> SecretBackend | None:
        """Return the fallback store if this job must use it, else None."""
        if self._is_viable():
            return None
        if insecure_fallback and self._fallback is not None:
            if not self._warned_fallback:
                logger.warning("No secure keyring available, using insecure fallback store")
                self._warned_fallback = True
            return self._fallback
        raise BackendError(
            BackendErrorCode.NO_BACKEND_AVAILABLE,
            "no secure keyring backend is available",
        )

    async def _call(self, func: Any, *args: str) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except keyring.errors.PasswordDeleteError as exc:
            raise BackendError(BackendErrorCode.COULD_NOT_DELETE_ENTRY, str(exc)) from exc
        except keyring.errors.NoKeyringError as exc:
            raise BackendError(BackendErrorCode.NO_BACKEND_AVAILABLE, str(exc)) from exc
        except keyring.errors.KeyringLocked as exc:
            raise BackendError(BackendErrorCode.ACCESS_DENIED, str(exc)) from exc
        except keyring.errors.KeyringError as exc:
            raise BackendError(BackendErrorCode.OTHER_ERROR, str(exc)) from exc

    async def read(self, service: str, key: str, *, insecure_fallback: bool = False) -> str:
        fallback = self._fallback_for(insecure_fallback)
        if fallback is not None:
            return await fallback.read(service, key, insecure_fallback=insecure_fallback)
        payload = await self._call(self._keyring().get_password, service, key)
        if payload is None:
            raise BackendError(
                BackendErrorCode.ENTRY_NOT_FOUND, f"no entry for {service}/{key}"
            )
        return payload

    async def write(
        self, service: str, key: str, payload: str, *, insecure_fallback: bool = False
    ) -> None:
        fallback = self._fallback_for(insecure_fallback)
        if fallback is not None:
            await fallback.write(service, key, payload, insecure_fallback=insecure_fallback)
            return
        await self._call(self._keyring().set_password, service, key, payload)

    async def delete(self, service: str, key: str, *, insecure_fallback: bool = False) -> None:
        fallback = self._fallback_for(insecure_fallback)
        if fallback is not None:
            await fallback.delete(service, key, insecure_fallback=insecure_fallback)
            return
        await self._call(self._keyring().delete_password, service, key)
