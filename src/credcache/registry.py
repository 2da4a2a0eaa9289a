"""Registry of services and the credential keys each one owns."""

from __future__ import annotations

from typing import Iterable


class ServiceRegistry:
    """Maps a service name to its ordered, de-duplicated key identifiers."""

    def __init__(self) -> None:
        self._services: dict[str, tuple[str, ...]] = {}

    def register(self, service: str, keys: Iterable[str]) -> tuple[str, ...]:
        """Replace the key set for *service* and return the stored keys.

        Duplicates collapse onto their first occurrence. Empty service names
        or key identifiers raise ``ValueError``.
        """
        if not service:
            raise ValueError("service name must not be empty")
        ordered: dict[str, None] = {}
        for key in keys:
            if not key:
                raise ValueError(f"empty key identifier for service {service!r}")
            ordered.setdefault(key, None)
        self._services[service] = tuple(ordered)
        return self._services[service]

    def keys(self, service: str) -> tuple[str, ...]:
        return self._services.get(service, ())

    def services(self) -> set[str]:
        return set(self._services)

    def __contains__(self, service: object) -> bool:
        return service in self._services

    def clear(self) -> None:
        self._services.clear()
