"""Unit tests for the customer store and compare-and-swap sync state."""

import pytest

from dagens_pipeline.errors import StaleSyncStateError
from dagens_pipeline.store import CustomerStore, lock_for


class TestCustomerStore:
    """Tests for CustomerStore."""

    def test_empty_when_missing(self, store: CustomerStore) -> None:
        assert store.list_customers() == []
        assert store.get(1) is None

    def test_upsert_and_get(self, store: CustomerStore, make_customer) -> None:
        store.upsert(make_customer(2))
        store.upsert(make_customer(1))
        assert [c.id for c in store.list_customers()] == [1, 2]
        assert store.get(2).knowledge_base_id == "kb-2"

    def test_upsert_replaces(self, store: CustomerStore, make_customer) -> None:
        store.upsert(make_customer(1))
        store.upsert(make_customer(1, name="Nytt namn"))
        assert len(store.list_customers()) == 1
        assert store.get(1).name == "Nytt namn"

    def test_persists_across_instances(self, store: CustomerStore, make_customer) -> None:
        store.upsert(make_customer(1))
        assert CustomerStore(store.path).get(1) is not None


class TestCompareAndSwap:
    """Tests for CustomerStore.compare_and_swap."""

    def test_first_sync(self, store: CustomerStore, make_customer) -> None:
        store.upsert(make_customer(1))
        state = store.compare_and_swap(1, None, "fp-1")
        assert state.last_fingerprint == "fp-1"
        assert state.version == 1
        assert state.last_sync_at is not None
        assert store.get(1).sync_state == state

    def test_advances_version(self, store: CustomerStore, make_customer) -> None:
        store.upsert(make_customer(1))
        store.compare_and_swap(1, None, "fp-1")
        state = store.compare_and_swap(1, "fp-1", "fp-2")
        assert state.version == 2
        assert state.last_fingerprint == "fp-2"

    def test_stale_expected_fingerprint(self, store: CustomerStore, make_customer) -> None:
        store.upsert(make_customer(1))
        store.compare_and_swap(1, None, "fp-1")
        with pytest.raises(StaleSyncStateError):
            store.compare_and_swap(1, None, "fp-other")
        assert store.get(1).sync_state.last_fingerprint == "fp-1"

    def test_unknown_customer(self, store: CustomerStore) -> None:
        with pytest.raises(KeyError):
            store.compare_and_swap(99, None, "fp")


class TestLockFor:
    """Tests for lock_for."""

    def test_same_slug_same_lock(self) -> None:
        assert lock_for("torstens") is lock_for("torstens")

    def test_different_slugs(self) -> None:
        assert lock_for("a") is not lock_for("b")
