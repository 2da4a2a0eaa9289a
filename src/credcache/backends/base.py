"""Abstract interface for the platform secret store."""

from __future__ import annotations

from abc import ABC, abstractmethod


class SecretBackend(ABC):
    """Asynchronous key/value secret store, namespaced by service.

    Failures raise ``BackendError``. ``insecure_fallback`` tells the backend
    whether it may use a less secure store when no secure one is available.
    """

    @abstractmethod
    async def read(self, service: str, key: str, *, insecure_fallback: bool = False) -> str:
        """Return the stored payload. Raises ``ENTRY_NOT_FOUND`` if missing."""

    @abstractmethod
    async def write(
        self, service: str, key: str, payload: str, *, insecure_fallback: bool = False
    ) -> None:
        """Store or replace a payload."""

    @abstractmethod
    async def delete(self, service: str, key: str, *, insecure_fallback: bool = False) -> None:
        """Delete a payload. Raises ``ENTRY_NOT_FOUND`` if missing."""
