"""Tests for StorageKey and the in-memory credential store."""

from __future__ import annotations

import pytest

from credcache.keys import StorageKey
from credcache.store import CredentialStore, is_absent


class TestStorageKey:
    def test_structural_equality(self) -> None:
        assert StorageKey("email", "user") == StorageKey("email", "user")
        assert StorageKey("email", "user") != StorageKey("email", "pass")
        assert StorageKey("email", "user") != StorageKey("chat", "user")

    def test_hash_matches_equality(self) -> None:
        mapping = {StorageKey("email", "user"): 1}
        assert mapping[StorageKey("email", "user")] == 1

    def test_concatenation_does_not_collide(self) -> None:
        assert StorageKey("ab", "c") != StorageKey("a", "bc")

    def test_immutable(self) -> None:
        key = StorageKey("email", "user")
        with pytest.raises(AttributeError):
            key.service = "chat"  # type: ignore[misc]


class TestIsAbsent:
    @pytest.mark.parametrize("value", [None, "", {}])
    def test_empty_values(self, value: object) -> None:
        assert is_absent(value)

    @pytest.mark.parametrize("value", ["x", {"a": "1"}])
    def test_present_values(self, value: object) -> None:
        assert not is_absent(value)


class TestCredentialStore:
    def test_get_missing_returns_none(self) -> None:
        assert CredentialStore().get(StorageKey("s", "k")) is None

    def test_put_and_get(self) -> None:
        store = CredentialStore()
        store.put(StorageKey("s", "k"), "secret")
        assert store.get(StorageKey("s", "k")) == "secret"
        assert StorageKey("s", "k") in store
        assert len(store) == 1

    def test_put_rejects_empty(self) -> None:
        store = CredentialStore()
        with pytest.raises(ValueError):
            store.put(StorageKey("s", "k"), "")
        with pytest.raises(ValueError):
            store.put(StorageKey("s", "k"), {})
        assert len(store) == 0

    def test_put_rejects_other_types(self) -> None:
        with pytest.raises(TypeError):
            CredentialStore().put(StorageKey("s", "k"), 42)  # type: ignore[arg-type]

    def test_bundles_are_copied(self) -> None:
        store = CredentialStore()
        bundle = {"token": "abc"}
        store.put(StorageKey("s", "k"), bundle)
        bundle["token"] = "changed"
        fetched = store.get(StorageKey("s", "k"))
        fetched["token"] = "changed again"  # type: ignore[index]
        assert store.get(StorageKey("s", "k")) == {"token": "abc"}

    def test_remove(self) -> None:
        store = CredentialStore()
        store.put(StorageKey("s", "k"), "secret")
        assert store.remove(StorageKey("s", "k")) is True
        assert store.remove(StorageKey("s", "k")) is False
        assert StorageKey("s", "k") not in store

    def test_keys_for_is_scoped_to_service(self) -> None:
        store = CredentialStore()
        store.put(StorageKey("svcA", "one"), "1")
        store.put(StorageKey("svcA", "two"), "2")
        store.put(StorageKey("svcB", "three"), "3")
        assert store.keys_for("svcA") == {"one", "two"}
        assert store.keys_for("svcB") == {"three"}
        assert store.keys_for("svcC") == set()

    def test_fences_count_per_key(self) -> None:
        store = CredentialStore()
        key = StorageKey("s", "k")
        assert store.fence(key) == 0
        assert store.bump_fence(key) == 1
        assert store.bump_fence(key) == 2
        assert store.fence(StorageKey("s", "other")) == 0
