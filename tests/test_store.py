import pathlib
import sys

# Ensure src package is on path
sys.path.append(str(pathlib.Path(__file__).resolve().parents[1] / "src"))

import pytest

from dinner_table_match.config import Config
from dinner_table_match.exceptions import StoreConflictError
from dinner_table_match.store import InMemoryStore, create_store, merge_fields


def test_set_get_and_revision_changes():
    store = InMemoryStore()
    store.set("tables", "t1", {"name": "T1"})
    first = store.get("tables", "t1")
    store.set("tables", "t1", {"name": "T1*"})
    second = store.get("tables", "t1")
    assert second.data == {"name": "T1*"}
    assert second.revision != first.revision
    assert store.get("tables", "missing") is None


def test_reads_are_copies():
    store = InMemoryStore()
    store.set("users", "a", {"preferences": {"dietary": "vegan"}})
    store.get("users", "a").data["preferences"]["dietary"] = "none"
    assert store.get("users", "a").data["preferences"] == {"dietary": "vegan"}


def test_merge_set_keeps_other_fields():
    store = InMemoryStore()
    store.set("users", "a", {"name": "A", "role": "admin", "preferences": {"dietary": "vegan"}})
    store.set("users", "a", {"preferences": {"interests": "chess"}}, merge=True)
    assert store.get("users", "a").data == {
        "name": "A",
        "role": "admin",
        "preferences": {"dietary": "vegan", "interests": "chess"},
    }


def test_merge_fields_replaces_non_mappings():
    assert merge_fields({"a": [1], "b": {"x": 1}}, {"a": [2], "b": 3}) == {"a": [2], "b": 3}


def test_failed_batch_applies_nothing():
    store = InMemoryStore()
    store.set("tables", "t1", {"n": 1})
    stale = store.get("tables", "t1").revision
    store.set("tables", "t1", {"n": 2})

    batch = store.batch()
    batch.create("tables", "t2", {"n": 3})
    batch.set("tables", "t1", {"n": 4}, precondition=stale)
    with pytest.raises(StoreConflictError):
        batch.commit()
    assert store.get("tables", "t2") is None
    assert store.get("tables", "t1").data == {"n": 2}


def test_create_fails_on_existing_document():
    store = InMemoryStore()
    store.set("tables", "t1", {})
    with pytest.raises(StoreConflictError):
        store.batch().create("tables", "t1", {}).commit()


def test_delete_precondition_on_missing_document():
    store = InMemoryStore()
    with pytest.raises(StoreConflictError):
        store.batch().delete("tables", "gone", precondition=1).commit()


def test_subscription_receives_current_then_each_commit():
    store = InMemoryStore()
    store.set("tables", "t1", {})
    seen = []
    sub = store.subscribe("tables", lambda docs: seen.append(sorted(d.key for d in docs)))
    store.batch().create("tables", "t2", {}).delete("tables", "t1").commit()
    store.set("users", "u", {})
    sub.cancel()
    store.set("tables", "t3", {})
    assert seen == [["t1"], ["t2"]]
    assert not sub.active


def test_create_store_defaults_to_memory():
    assert isinstance(create_store(Config(store_backend="memory")), InMemoryStore)
