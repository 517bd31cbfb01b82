"""Seed catalog parsing and in-memory event store tests."""

import json

import pytest

from services.common.event_store import ConcurrencyError, EventStore
from services.inventory.app.catalog import DEFAULT_CATALOG, load_catalog


class TestCatalog:
    def test_default_catalog(self):
        assert load_catalog(None) == {
            "ITEM-001": 100,
            "ITEM-002": 50,
            "ITEM-003": 200,
            "ITEM-004": 75,
        }
        assert load_catalog("") is not DEFAULT_CATALOG

    def test_override_from_json(self):
        assert load_catalog(json.dumps({"ITEM-009": 3})) == {"ITEM-009": 3}

    @pytest.mark.parametrize("raw", ["[1, 2]", '{"ITEM-001": -1}', '{"ITEM-001": 1.5}', '{"ITEM-001": true}'])
    def test_invalid_seed_is_rejected(self, raw):
        with pytest.raises(ValueError):
            load_catalog(raw)


class TestEventStore:
    def test_versions_are_per_aggregate(self):
        store = EventStore()

        assert store.append_event("ORD-1", "Order", "OrderCreated", {}, 0) == 1
        assert store.append_event("ORD-2", "Order", "OrderCreated", {}, 0) == 1
        assert store.append_event("ORD-1", "Order", "OrderCancelled", {"reason": "x"}, 1) == 2

        assert [e["version"] for e in store.load_events("ORD-1")] == [1, 2]
        assert len(store.load_all_events()) == 3

    def test_stale_version_is_rejected(self):
        store = EventStore()
        store.append_event("ORD-1", "Order", "OrderCreated", {}, 0)

        with pytest.raises(ConcurrencyError) as exc_info:
            store.append_event("ORD-1", "Order", "OrderCompleted", {}, 0)

        assert exc_info.value.actual == 1
        assert len(store.load_events("ORD-1")) == 1

    def test_unknown_aggregate_has_no_events(self):
        assert EventStore().load_events("ORD-404") == []
