"""Credentials manager: in-memory credential cache over an async secret store.

Lifecycle of a service:
1. ``add_service`` registers the service's keys and starts a load cycle
2. One read job per key is dispatched to the secret backend
3. Each completed read is decoded (bundle, else opaque text) and cached
4. When the cycle's last read completes, ``credentials.service_ready`` fires

Writes and deletes update the cache immediately and are persisted in the
background. Backend and codec failures are logged, never raised to callers.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, Callable, Iterable

from credcache.backends.base import SecretBackend
from credcache.codec import Codec, JsonCodec
from credcache.config import insecure_fallback_default
from credcache.errors import BackendError, BackendErrorCode, CodecError
from credcache.events import EventBus, EventType, Subscription
from credcache.jobs import (
    DeleteJob,
    DeleteResult,
    Job,
    JobResult,
    JobTracker,
    ReadJob,
    ReadResult,
    WriteJob,
    WriteResult,
)
from credcache.keys import StorageKey
from credcache.registry import ServiceRegistry
from credcache.store import CredentialStore, CredentialValue, is_absent

logger = logging.getLogger(__name__)


def _failed(job: Job, error: BackendError) -> JobResult:
    match job:
        case ReadJob():
            return ReadResult(job, error=error)
        case WriteJob():
            return WriteResult(job, error=error)
        case DeleteJob():
            return DeleteResult(job, error=error)
    raise TypeError(f"unknown job type {type(job).__name__}")


class CredentialsManager:
    """Caches credentials per ``(service, key)`` and persists changes.

    The manager is owned by one asyncio event loop: backend jobs run as
    tasks on it and their completions are handled there. Queries never
    touch the backend. ``set_credentials`` may also be called from other
    threads; its compare-and-update step is serialised by a lock.

    Parameters
    ----------
    backend:
        The secret store credentials are read from and written to.
    codec:
        Serializer for bundle credentials. Defaults to ``JsonCodec``.
    event_bus:
        Bus on which ``service_ready`` and ``job_finished`` events are
        published. A private bus is created when omitted.
    allow_insecure_fallback:
        Passed to every backend job. ``None`` applies the platform rule:
        allowed on Unix-like systems other than macOS.
    """

    def __init__(
        self,
        backend: SecretBackend,
        codec: Codec | None = None,
        *,
        event_bus: EventBus | None = None,
        allow_insecure_fallback: bool | None = None,
    ) -> None:
        self._backend = backend
        self._codec: Codec = codec if codec is not None else JsonCodec()
        self._events = event_bus if event_bus is not None else EventBus()
        if allow_insecure_fallback is None:
            allow_insecure_fallback = insecure_fallback_default()
        self._insecure_fallback = allow_insecure_fallback

        self._registry = ServiceRegistry()
        self._store = CredentialStore()
        self._tracker = JobTracker()

        self._lock = threading.RLock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def allow_insecure_fallback(self) -> bool:
        return self._insecure_fallback

    def on_service_ready(self, callback: Callable[[str], Any]) -> Subscription:
        """Call ``callback(service)`` every time a service finishes loading."""
        return self._events.subscribe(
            [EventType.SERVICE_READY],
            lambda event: callback(event["payload"]["service"]),
        )

    # ------------------------------------------------------------------
    # Registration and loading
    # ------------------------------------------------------------------

    def add_service(self, service: str, keys: Iterable[str]) -> None:
        """Register *service* with *keys* and (re)load its credentials.

        Re-registering always starts a fresh load cycle, even when the keys
        are unchanged.
        """
        self._check_open()
        with self._lock:
            self._registry.register(service, keys)
        self.load_credentials(service)

    def load_credentials(self, service: str) -> None:
        """Dispatch one read job per registered key of *service*.

        With no keys registered, ``service_ready`` fires before returning.
        """
        with self._lock:
            keys = self._registry.keys(service)
            logger.debug("Keys for service %s: %s", service, list(keys))
            if not keys:
                self._tracker.begin_cycle(service)
            else:
                loop = self._owner_loop()
                generation = self._tracker.begin_cycle(service)
                for key in keys:
                    storage_key = StorageKey(service, key)
                    job = ReadJob(storage_key, generation, self._store.fence(storage_key))
                    self._tracker.add(job)
                    logger.debug("Launching read job for %s", storage_key)
                    self._dispatch(loop, job)

        if not keys:
            # No read job launched, so the service is ready already
            self._emit_ready(service)

    def is_loading(self, service: str) -> bool:
        return self._tracker.is_loading(service)

    async def wait_for_service(self, service: str) -> None:
        """Wait until *service* has finished its current load cycle.

        Returns immediately if the service is registered and not loading.
        """
        if service in self._registry and not self._tracker.is_loading(service):
            return
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        def _on_ready(event: dict[str, Any]) -> None:
            if event["payload"]["service"] == service and not future.done():
                future.set_result(None)

        sub = self._events.subscribe([EventType.SERVICE_READY], _on_ready)
        try:
            await future
        finally:
            self._events.unsubscribe(sub)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def credentials(self, service: str | StorageKey, key: str | None = None) -> CredentialValue:
        """Return the cached credential, or ``None`` if there is none.

        Accepts either a ``StorageKey`` or a ``(service, key)`` pair. Never
        triggers a load.
        """
        return self._store.get(self._storage_key(service, key))

    def keys(self, service: str) -> set[str]:
        """Keys of *service* that currently hold a cached credential."""
        return self._store.keys_for(service)

    def services(self) -> set[str]:
        return self._registry.services()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def set_credentials(
        self,
        key: StorageKey,
        value: CredentialValue,
        prefer_opaque: bool = False,
    ) -> None:
        """Set, replace or delete the credential stored under *key*.

        An empty value (``None``, ``""`` or ``{}``) deletes the credential;
        nothing happens if none is cached. A value equal to the cached one
        is a no-op. Otherwise the cache is updated at once and the change
        is persisted in the background; persistence failures are only
        logged.
        """
        if value is not None and not isinstance(value, (str, dict)):
            raise TypeError(
                f"credential value must be str, dict or None, got {type(value).__name__}"
            )

        with self._lock:
            job: Job
            previous = self._store.get(key)
            if is_absent(value):
                if previous is None:
                    return
                loop = self._owner_loop()
                self._store.remove(key)
                job = DeleteJob(key)
            else:
                if value == previous:
                    return
                loop = self._owner_loop()
                payload = self._serialize(key, value, prefer_opaque)
                self._store.put(key, value)
                job = WriteJob(key, payload)
            try:
                self._dispatch(loop, job)
            except RuntimeError:
                # The owning loop stopped accepting work; nothing was persisted
                if previous is None:
                    self._store.remove(key)
                else:
                    self._store.put(key, previous)
                raise
            self._store.bump_fence(key)

    def set_bundle(self, service: str, key: str, bundle: dict[str, Any]) -> None:
        """Store a structured credential; always written through the codec."""
        self.set_credentials(StorageKey(service, key), bundle)

    def set_text(self, service: str, key: str, text: str) -> None:
        """Store an opaque string credential as raw text."""
        self.set_credentials(StorageKey(service, key), text, prefer_opaque=True)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def drain(self) -> None:
        """Wait for every in-flight backend job to complete."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel in-flight jobs and forget all cached credentials."""
        self._closed = True
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        with self._lock:
            self._tracker.clear()
            self._store.clear()
            self._registry.clear()
        logger.debug("Credentials manager closed, %d jobs cancelled", len(tasks))

    async def __aenter__(self) -> CredentialsManager:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Job dispatch
    # ------------------------------------------------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("CredentialsManager is closed")

    def _owner_loop(self) -> asyncio.AbstractEventLoop:
        """Return the event loop backend jobs run on, binding it on first use."""
        self._check_open()
        if self._loop is None:
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError:
                raise RuntimeError(
                    "CredentialsManager must first be used from a running event loop"
                ) from None
        if self._loop.is_closed():
            raise RuntimeError("the event loop owning this CredentialsManager is closed")
        return self._loop

    def _dispatch(self, loop: asyncio.AbstractEventLoop, job: Job) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._spawn(job)
        else:
            loop.call_soon_threadsafe(self._spawn, job)

    def _spawn(self, job: Job) -> None:
        if self._closed or self._loop is None:
            logger.debug("Dropping job for %s, manager is closed", job.key)
            return
        task = self._loop.create_task(self._run(job))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, job: Job) -> None:
        result = await self._execute(job)
        self._job_finished(result)

    async def _execute(self, job: Job) -> JobResult:
        service, key = job.key.service, job.key.key
        fallback = self._insecure_fallback
        try:
            match job:
                case ReadJob():
                    payload = await self._backend.read(service, key, insecure_fallback=fallback)
                    return ReadResult(job, payload=payload)
                case WriteJob(payload=payload):
                    await self._backend.write(service, key, payload, insecure_fallback=fallback)
                    return WriteResult(job)
                case DeleteJob():
                    await self._backend.delete(service, key, insecure_fallback=fallback)
                    return DeleteResult(job)
            raise TypeError(f"unknown job type {type(job).__name__}")
        except BackendError as exc:
            return _failed(job, exc)
        except Exception as exc:
            logger.exception("Unexpected error from secret backend for %s", job.key)
            return _failed(
                job, BackendError(BackendErrorCode.OTHER_ERROR, str(exc) or type(exc).__name__)
            )

    # ------------------------------------------------------------------
    # Completion handling
    # ------------------------------------------------------------------

    def _job_finished(self, result: JobResult) -> None:
        ready_service: str | None = None
        with self._lock:
            match result:
                case ReadResult():
                    ready_service = self._read_finished(result)
                    kind = "read"
                case WriteResult(job=job, error=error):
                    kind = "write"
                    self._log_persisted(kind, job.key, error)
                case DeleteResult(job=job, error=error):
                    kind = "delete"
                    self._log_persisted(kind, job.key, error)

        error = result.error
        self._events.publish(
            EventType.JOB_FINISHED,
            {
                "kind": kind,
                "service": result.job.key.service,
                "key": result.job.key.key,
                "ok": error is None,
                "error": error.code.name if error is not None else None,
            },
        )
        if ready_service is not None:
            self._emit_ready(ready_service)

    def _read_finished(self, result: ReadResult) -> str | None:
        """Apply a read result. Returns the service name if it drained."""
        job = result.job
        if not self._tracker.is_current(job):
            logger.info(
                "Discarding read for %s from superseded load cycle %d",
                job.key, job.generation,
            )
            return None

        if result.error is None:
            logger.debug("Read job for %s finished without errors", job.key)
            if self._store.fence(job.key) != job.fence:
                logger.info("Discarding read for %s, changed locally since it was issued", job.key)
            else:
                try:
                    value = self._deserialize(job.key, result.payload or "")
                    if is_absent(value):
                        self._store.remove(job.key)
                    else:
                        self._store.put(job.key, value)
                except Exception:
                    # The job still counts as completed for the load cycle
                    logger.exception("Cannot apply credentials read for %s", job.key)
        elif result.error.code is BackendErrorCode.ENTRY_NOT_FOUND:
            logger.info("No stored credential for %s", job.key)
        else:
            logger.warning(
                "Read job for %s finished with error %s: %s",
                job.key, result.error.code.name, result.error.message,
            )

        if self._tracker.finish(job):
            return job.key.service
        return None

    def _log_persisted(self, kind: str, key: StorageKey, error: BackendError | None) -> None:
        if error is None:
            logger.info("%s job for %s finished without error", kind.capitalize(), key)
        else:
            logger.warning(
                "%s job for %s finished with error %s: %s",
                kind.capitalize(), key, error.code.name, error.message,
            )

    def _emit_ready(self, service: str) -> None:
        logger.debug("Service %s is ready", service)
        self._events.publish(EventType.SERVICE_READY, {"service": service})

    # ------------------------------------------------------------------
    # Serialization policy
    # ------------------------------------------------------------------

    def _deserialize(self, key: StorageKey, payload: str) -> CredentialValue:
        """Decode *payload* as a bundle, falling back to the raw text.

        There is no type tag on stored secrets, so a successful decode to a
        non-empty mapping is what marks a bundle.
        """
        try:
            decoded = self._codec.decode(payload.encode("utf-8", errors="surrogatepass"))
        except CodecError:
            logger.debug("Credential for %s is not a bundle, keeping it as text", key)
            return payload
        if isinstance(decoded, dict) and decoded:
            return decoded
        return payload

    def _serialize(self, key: StorageKey, value: str | dict[str, Any], prefer_opaque: bool) -> str:
        if isinstance(value, str):
            if not prefer_opaque:
                logger.debug("Writing string credential for %s as raw text", key)
            return value
        try:
            data = self._codec.encode(value)
            logger.debug("About to write credentials for %s", key)
        except CodecError as exc:
            # Best effort: the write still goes out with the empty payload
            logger.warning("Cannot serialize credentials for %s: %s", key, exc)
            data = b""
        return data.decode("utf-8", errors="replace")

    @staticmethod
    def _storage_key(service: str | StorageKey, key: str | None) -> StorageKey:
        if isinstance(service, StorageKey):
            if key is not None:
                raise TypeError("key must be omitted when passing a StorageKey")
            return service
        if key is None:
            raise TypeError("key is required when passing a service name")
        return StorageKey(service, key)
