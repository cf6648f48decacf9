from datetime import timedelta

import orjson
import pytest

from storefront.cart import local_store
from storefront.cart.local_store import JsonFileStorage, LocalCartStore, MemoryStorage
from storefront.common.utils import now


def opt(group, option):
    return {"option_group_id": group, "option_id": option}


def item(product_id=1, quantity=1, options=None, unit_price=1000):
    return {"product_id": product_id, "quantity": quantity, "selected_options": options or [], "unit_price": unit_price}


def test_add_same_item_twice_merges_quantity():
    store = LocalCartStore(MemoryStorage())
    store.add(item(quantity=2))
    items = store.add(item(quantity=3))

    assert len(items) == 1
    assert items[0].quantity == 5


def test_add_with_reordered_options_merges():
    store = LocalCartStore(MemoryStorage())
    store.add(item(options=[opt(1, 10), opt(2, 20)]))
    items = store.add(item(options=[opt(2, 20), opt(1, 10)]))

    assert len(items) == 1
    assert items[0].quantity == 2


def test_add_different_options_appends_in_order():
    store = LocalCartStore(MemoryStorage())
    store.add(item(options=[opt(1, 10)]))
    store.add(item(options=[opt(1, 11)]))
    items = store.add(item(product_id=2))

    assert [(i.product_id, len(i.selected_options)) for i in items] == [(1, 1), (1, 1), (2, 0)]


def test_every_mutation_rewrites_the_whole_slot():
    storage = MemoryStorage()
    store = LocalCartStore(storage)
    store.add(item(product_id=1))
    store.add(item(product_id=2))

    snapshot = orjson.loads(storage.get("cart"))
    assert [s["product_id"] for s in snapshot] == [1, 2]
    assert all("timestamp" in s for s in snapshot)

    store.remove(1, [])
    snapshot = orjson.loads(storage.get("cart"))
    assert [s["product_id"] for s in snapshot] == [2]


def test_update_replaces_quantity():
    store = LocalCartStore(MemoryStorage())
    store.add(item(quantity=2, options=[opt(1, 10)]))
    items = store.update(1, [opt(1, 10)], 7)
    assert items[0].quantity == 7


def test_update_of_absent_item_is_a_silent_noop():
    store = LocalCartStore(MemoryStorage())
    store.add(item(quantity=2))
    before = store.items()

    items = store.update(99, [], 5)

    assert items == before


def test_update_to_zero_removes_item():
    store = LocalCartStore(MemoryStorage())
    store.add(item(product_id=1))
    store.add(item(product_id=2))

    items = store.update(1, None, 0)

    assert [i.product_id for i in items] == [2]


def test_remove_absent_item_is_noop():
    store = LocalCartStore(MemoryStorage())
    store.add(item())
    assert len(store.remove(1, [opt(1, 10)])) == 1


def test_clear_empties_the_cart():
    store = LocalCartStore(MemoryStorage())
    store.add(item())
    assert store.clear() == []
    assert store.is_empty()


def test_file_storage_survives_a_new_store(tmp_path):
    LocalCartStore(JsonFileStorage(tmp_path)).add(item(quantity=3))

    reopened = LocalCartStore(JsonFileStorage(tmp_path))
    items = reopened.items()

    assert len(items) == 1
    assert items[0].quantity == 3
    assert (tmp_path / "cart.json").exists()


def test_corrupt_snapshot_reads_as_empty():
    storage = MemoryStorage()
    storage.set("cart", b"{not json")
    store = LocalCartStore(storage)

    assert store.items() == []
    assert len(store.add(item())) == 1


def test_invalid_items_in_snapshot_read_as_empty():
    storage = MemoryStorage()
    storage.set("cart", orjson.dumps([{"product_id": 1, "quantity": 0, "unit_price": 10, "timestamp": "x"}]))
    assert LocalCartStore(storage).items() == []


def test_prune_drops_stale_entries():
    storage = MemoryStorage()
    fresh = now().isoformat()
    stale = (now() - timedelta(hours=200)).isoformat()
    storage.set("cart", orjson.dumps([
        {**item(product_id=1), "timestamp": stale},
        {**item(product_id=2), "timestamp": fresh},
    ]))
    store = LocalCartStore(storage)

    items = store.prune(168)

    assert [i.product_id for i in items] == [2]
    assert [s["product_id"] for s in orjson.loads(storage.get("cart"))] == [2]


def test_malformed_options_leave_the_cart_alone():
    store = LocalCartStore(MemoryStorage())
    store.add(item(quantity=2, options=[opt(1, 10)]))

    assert store.update(1, [{"option_group_id": 1}], 5)[0].quantity == 2
    assert len(store.remove(1, [{"option_id": "ten", "option_group_id": 1}])) == 1
    assert len(store.update(1, [{"option_group_id": 1}], 0)) == 1


def test_failed_file_write_leaves_no_temp_file(tmp_path, monkeypatch):
    storage = JsonFileStorage(tmp_path)
    storage.set("cart", b"[]")

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(local_store.os, "replace", broken_replace)

    with pytest.raises(OSError):
        storage.set("cart", b"[1]")

    assert sorted(p.name for p in tmp_path.iterdir()) == ["cart.json"]
    assert storage.get("cart") == b"[]"
