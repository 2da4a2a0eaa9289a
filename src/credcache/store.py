"""In-memory credential cache.

Once a service has loaded, this cache is the source of truth for
synchronous reads. Absence is represented by a missing entry, never by a
stored empty value.
"""

from __future__ import annotations

from typing import Any, Iterator, Union

from credcache.keys import StorageKey

# None (absent) | opaque string | key/value bundle
CredentialValue = Union[str, dict[str, Any], None]


def is_absent(value: Any) -> bool:
    """True for the values that mean "no credential": None, "" and {}."""
    if value is None:
        return True
    if isinstance(value, (str, dict)):
        return len(value) == 0
    return False


class CredentialStore:
    """Mapping of ``StorageKey`` to the current credential value.

    Every caller-driven mutation bumps a per-key fence counter. Read jobs
    remember the fence they were issued under so a read that completes
    after a newer local write can be recognised as stale.
    """

    def __init__(self) -> None:
        self._entries: dict[StorageKey, str | dict[str, Any]] = {}
        self._fences: dict[StorageKey, int] = {}

    def get(self, key: StorageKey) -> CredentialValue:
        value = self._entries.get(key)
        if isinstance(value, dict):
            return dict(value)
        return value

    def put(self, key: StorageKey, value: str | dict[str, Any]) -> None:
        """Insert or overwrite an entry. Empty values are rejected."""
        if is_absent(value):
            raise ValueError(f"refusing to cache an empty credential for {key}")
        if not isinstance(value, (str, dict)):
            raise TypeError(
                f"credential for {key} must be str or dict, got {type(value).__name__}"
            )
        self._entries[key] = dict(value) if isinstance(value, dict) else value

    def remove(self, key: StorageKey) -> bool:
        """Drop an entry. Returns whether one existed."""
        return self._entries.pop(key, None) is not None

    def fence(self, key: StorageKey) -> int:
        return self._fences.get(key, 0)

    def bump_fence(self, key: StorageKey) -> int:
        self._fences[key] = self._fences.get(key, 0) + 1
        return self._fences[key]

    def keys_for(self, service: str) -> set[str]:
        """Keys currently cached for *service*."""
        return {k.key for k in self._entries if k.service == service}

    def clear(self) -> None:
        self._entries.clear()
        self._fences.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[StorageKey]:
        return iter(list(self._entries))
