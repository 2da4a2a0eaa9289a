"""Shared test fixtures for credcache tests."""

from __future__ import annotations

import asyncio
import pathlib

import pytest

from credcache.backends.base import SecretBackend
from credcache.errors import BackendError, BackendErrorCode

REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]


class FakeBackend(SecretBackend):
    """In-memory secret backend that records every call.

    ``failures`` maps ``(op, service, key)`` to the error that op raises.
    ``gates`` maps ``(service, key)`` to an ``asyncio.Event`` a read waits
    on, so tests can control the order in which reads complete.
    """

    def __init__(self, secrets: dict[tuple[str, str], str] | None = None) -> None:
        self.secrets: dict[tuple[str, str], str] = dict(secrets or {})
        self.calls: list[tuple[str, str, str, str | None, bool]] = []
        self.failures: dict[tuple[str, str, str], BackendError] = {}
        self.gates: dict[tuple[str, str], asyncio.Event] = {}

    def gate(self, service: str, key: str) -> asyncio.Event:
        event = asyncio.Event()
        self.gates[(service, key)] = event
        return event

    def fail(self, op: str, service: str, key: str,
             code: BackendErrorCode = BackendErrorCode.OTHER_ERROR) -> None:
        self.failures[(op, service, key)] = BackendError(code, f"{op} failed")

    def ops(self, op: str) -> list[tuple[str, str, str, str | None, bool]]:
        return [c for c in self.calls if c[0] == op]

    def _check(self, op: str, service: str, key: str) -> None:
        error = self.failures.get((op, service, key))
        if error is not None:
            raise error

    async def read(self, service: str, key: str, *, insecure_fallback: bool = False) -> str:
        self.calls.append(("read", service, key, None, insecure_fallback))
        gate = self.gates.get((service, key))
        if gate is not None:
            await gate.wait()
        self._check("read", service, key)
        try:
            return self.secrets[(service, key)]
        except KeyError:
            raise BackendError(BackendErrorCode.ENTRY_NOT_FOUND, "not found") from None

    async def write(
        self, service: str, key: str, payload: str, *, insecure_fallback: bool = False
    ) -> None:
        self.calls.append(("write", service, key, payload, insecure_fallback))
        self._check("write", service, key)
        self.secrets[(service, key)] = payload

    async def delete(self, service: str, key: str, *, insecure_fallback: bool = False) -> None:
        self.calls.append(("delete", service, key, None, insecure_fallback))
        self._check("delete", service, key)
        if self.secrets.pop((service, key), None) is None:
            raise BackendError(BackendErrorCode.ENTRY_NOT_FOUND, "not found")


@pytest.fixture
def repo_root() -> pathlib.Path:
    return REPO_ROOT


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()
