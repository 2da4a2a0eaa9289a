"""Tests for the service registry and the read job tracker."""

from __future__ import annotations

import pytest

from credcache.errors import BackendError, BackendErrorCode
from credcache.jobs import DeleteJob, JobTracker, ReadJob, ReadResult, WriteJob, WriteResult
from credcache.keys import StorageKey
from credcache.registry import ServiceRegistry


class TestServiceRegistry:
    def test_register_preserves_order_and_collapses_duplicates(self) -> None:
        registry = ServiceRegistry()
        keys = registry.register("email", ["user", "pass", "user"])
        assert keys == ("user", "pass")
        assert registry.keys("email") == ("user", "pass")

    def test_reregister_replaces_keys(self) -> None:
        registry = ServiceRegistry()
        registry.register("email", ["user", "pass"])
        registry.register("email", ["token"])
        assert registry.keys("email") == ("token",)

    def test_unknown_service_has_no_keys(self) -> None:
        assert ServiceRegistry().keys("nope") == ()

    def test_services(self) -> None:
        registry = ServiceRegistry()
        registry.register("email", ["user"])
        registry.register("chat", [])
        assert registry.services() == {"email", "chat"}
        assert "chat" in registry

    def test_rejects_empty_identifiers(self) -> None:
        registry = ServiceRegistry()
        with pytest.raises(ValueError):
            registry.register("email", ["user", ""])
        with pytest.raises(ValueError):
            registry.register("", ["user"])


class TestJobs:
    def test_jobs_are_distinct(self) -> None:
        key = StorageKey("s", "k")
        assert ReadJob(key, 1, 0) != ReadJob(key, 1, 0)
        assert WriteJob(key, "x").job_id != DeleteJob(key).job_id

    def test_result_ok(self) -> None:
        key = StorageKey("s", "k")
        assert ReadResult(ReadJob(key, 1, 0), payload="x").ok
        failed = WriteResult(
            WriteJob(key, "x"), error=BackendError(BackendErrorCode.ACCESS_DENIED)
        )
        assert not failed.ok


class TestJobTracker:
    def _jobs(self, tracker: JobTracker, service: str, *keys: str) -> list[ReadJob]:
        generation = tracker.begin_cycle(service)
        jobs = [ReadJob(StorageKey(service, k), generation, 0) for k in keys]
        for job in jobs:
            tracker.add(job)
        return jobs

    def test_drains_only_on_last_job(self) -> None:
        tracker = JobTracker()
        first, second = self._jobs(tracker, "email", "user", "pass")
        assert tracker.is_loading("email")
        assert tracker.finish(second) is False
        assert tracker.is_loading("email")
        assert tracker.finish(first) is True
        assert not tracker.is_loading("email")

    def test_finish_twice_does_not_drain_again(self) -> None:
        tracker = JobTracker()
        (job,) = self._jobs(tracker, "email", "user")
        assert tracker.finish(job) is True
        assert tracker.finish(job) is False

    def test_services_are_independent(self) -> None:
        tracker = JobTracker()
        (a,) = self._jobs(tracker, "svcA", "k")
        (b,) = self._jobs(tracker, "svcB", "k")
        assert tracker.finish(a) is True
        assert tracker.is_loading("svcB")
        assert tracker.pending("svcB") == frozenset({b})

    def test_new_cycle_supersedes_old_jobs(self) -> None:
        tracker = JobTracker()
        (old,) = self._jobs(tracker, "email", "user")
        (new,) = self._jobs(tracker, "email", "user")
        assert tracker.generation("email") == 2
        assert not tracker.is_current(old)
        assert tracker.finish(old) is False
        assert tracker.is_loading("email")
        assert tracker.finish(new) is True

    def test_add_rejects_stale_generation(self) -> None:
        tracker = JobTracker()
        tracker.begin_cycle("email")
        tracker.begin_cycle("email")
        with pytest.raises(ValueError):
            tracker.add(ReadJob(StorageKey("email", "user"), 1, 0))

    def test_empty_cycle_is_not_loading(self) -> None:
        tracker = JobTracker()
        tracker.begin_cycle("email")
        assert not tracker.is_loading("email")
