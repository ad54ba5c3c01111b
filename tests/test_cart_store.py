"""Tests for CartStore and its key-value backends."""

import json

from opalstore.cart_store import CART_KEY, CartStore, FileKeyValueStore, InMemoryKeyValueStore


class TestCartStore:
    def test_empty_cart(self, cart):
        assert cart.list() == []
        assert cart.count() == 0

    def test_add_new_line(self, cart):
        entries = cart.add("p1", 2, color="red", size="M")

        assert len(entries) == 1
        assert entries[0].product_id == "p1"
        assert entries[0].quantity == 2
        assert entries[0].color == "red"
        assert entries[0].size == "M"

    def test_add_same_selection_merges(self, cart):
        cart.add("p1", 1, color="red")
        entries = cart.add("p1", 3, color="red")

        assert len(entries) == 1
        assert entries[0].quantity == 4

    def test_different_options_are_separate_lines(self, cart):
        cart.add("p1", 1, color="red", size="M")
        cart.add("p1", 1, color="blue", size="M")
        cart.add("p1", 1, color="red", size="L")

        assert len(cart.list()) == 3
        assert cart.count() == 3

    def test_blank_options_match_missing_options(self, cart):
        cart.add("p1", 1)
        entries = cart.add("p1", 1, color="  ", size="")

        assert len(entries) == 1
        assert entries[0].quantity == 2
        assert entries[0].color is None

    def test_remove_only_matching_line(self, cart):
        cart.add("p1", 1, color="red")
        cart.add("p1", 1, color="blue")

        entries = cart.remove("p1", color="red")

        assert [e.color for e in entries] == ["blue"]

    def test_set_quantity(self, cart):
        cart.add("p1", 1, size="M")

        entries = cart.set_quantity("p1", 5, size="M")

        assert entries[0].quantity == 5

    def test_set_quantity_below_one_removes(self, cart):
        cart.add("p1", 1)
        cart.add("p2", 1)

        entries = cart.set_quantity("p1", 0)

        assert [e.product_id for e in entries] == ["p2"]

    def test_clear(self, cart):
        cart.add("p1", 2)

        assert cart.clear() == []
        assert cart.list() == []

    def test_persists_under_cart_key(self):
        backend = InMemoryKeyValueStore()
        CartStore(backend).add("p1", 2, color="red")

        blob = json.loads(backend.get_item(CART_KEY))
        assert blob == [{"product_id": "p1", "quantity": 2, "color": "red"}]

    def test_corrupt_blob_reads_as_empty(self):
        backend = InMemoryKeyValueStore()
        backend.set_item(CART_KEY, "{not json")

        cart = CartStore(backend)
        assert cart.list() == []

        cart.add("p1")
        assert len(cart.list()) == 1

    def test_non_list_blob_reads_as_empty(self):
        backend = InMemoryKeyValueStore()
        backend.set_item(CART_KEY, json.dumps({"product_id": "p1"}))

        assert CartStore(backend).list() == []

    def test_carts_with_different_keys_are_independent(self):
        backend = InMemoryKeyValueStore()
        alice = CartStore(backend, key=f"{CART_KEY}:alice")
        bob = CartStore(backend, key=f"{CART_KEY}:bob")

        alice.add("p1")

        assert bob.list() == []


class TestFileKeyValueStore:
    def test_round_trip_on_disk(self, temp_dir):
        path = temp_dir / "carts.json"
        CartStore(FileKeyValueStore(path)).add("p1", 2)

        reopened = CartStore(FileKeyValueStore(path))
        assert reopened.list()[0].quantity == 2

    def test_missing_file_reads_empty(self, temp_dir):
        store = FileKeyValueStore(temp_dir / "missing.json")

        assert store.get_item("anything") is None

    def test_unreadable_file_reads_empty(self, temp_dir):
        path = temp_dir / "carts.json"
        path.write_text("garbage")

        assert FileKeyValueStore(path).get_item(CART_KEY) is None
