"""Backend job types and the per-service read job tracker.

Each backend operation is described by a small frozen dataclass and its
outcome by a matching result dataclass. The manager dispatches on both
with ``match``.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Union

from credcache.errors import BackendError
from credcache.keys import StorageKey

logger = logging.getLogger(__name__)

_job_ids = itertools.count(1)


def _next_job_id() -> int:
    return next(_job_ids)


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReadJob:
    """Read one credential as part of a service load cycle.

    ``generation`` identifies the load cycle, ``fence`` the cache fence of
    the key at issuance time.
    """

    key: StorageKey
    generation: int
    fence: int
    job_id: int = field(default_factory=_next_job_id)


@dataclass(frozen=True)
class WriteJob:
    key: StorageKey
    payload: str
    job_id: int = field(default_factory=_next_job_id)


@dataclass(frozen=True)
class DeleteJob:
    key: StorageKey
    job_id: int = field(default_factory=_next_job_id)


Job = Union[ReadJob, WriteJob, DeleteJob]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReadResult:
    job: ReadJob
    payload: str | None = None
    error: BackendError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class WriteResult:
    job: WriteJob
    error: BackendError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class DeleteResult:
    job: DeleteJob
    error: BackendError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


JobResult = Union[ReadResult, WriteResult, DeleteResult]


# ---------------------------------------------------------------------------
# Tracker
# ---------------------------------------------------------------------------

class JobTracker:
    """Tracks the outstanding read jobs of each service's current load cycle.

    Starting a new cycle for a service supersedes the previous one: its
    jobs are forgotten, and when they complete ``finish`` reports them as
    stale so they neither touch the cache nor drain the new cycle.
    """

    def __init__(self) -> None:
        self._pending: dict[str, set[ReadJob]] = {}
        self._generations: dict[str, int] = {}

    def begin_cycle(self, service: str) -> int:
        """Start a new load cycle for *service* and return its generation."""
        superseded = self._pending.get(service)
        if superseded:
            logger.info(
                "Superseding %d in-flight read jobs for service %s",
                len(superseded), service,
            )
        generation = self._generations.get(service, 0) + 1
        self._generations[service] = generation
        self._pending[service] = set()
        return generation

    def generation(self, service: str) -> int:
        return self._generations.get(service, 0)

    def add(self, job: ReadJob) -> None:
        if job.generation != self.generation(job.key.service):
            raise ValueError(f"job {job.job_id} does not belong to the current cycle")
        self._pending[job.key.service].add(job)

    def is_current(self, job: ReadJob) -> bool:
        return job in self._pending.get(job.key.service, ())

    def finish(self, job: ReadJob) -> bool:
        """Remove *job*. Returns True if this drained its service's cycle."""
        pending = self._pending.get(job.key.service)
        if pending is None or job not in pending:
            return False
        pending.remove(job)
        return not pending

    def is_loading(self, service: str) -> bool:
        return bool(self._pending.get(service))

    def pending(self, service: str) -> frozenset[ReadJob]:
        return frozenset(self._pending.get(service, ()))

    def clear(self) -> None:
        self._pending.clear()
