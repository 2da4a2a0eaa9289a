"""Compound identifier naming one credential slot."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class StorageKey:
    """A ``(service, key)`` pair.

    Equality and hashing are structural over both fields, so instances can
    be used as cache keys and to correlate in-flight backend jobs.
    """

    service: str
    key: str

    def __str__(self) -> str:
        return f"{self.service}/{self.key}"
