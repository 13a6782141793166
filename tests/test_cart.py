import json

import pytest

from cart import CartStore, FileStorage, MemoryStorage
from exceptions import ValidationError

TRUCK = {"id": "p1", "name": "Toy Truck", "price": 100, "imageUrl": "https://img/truck.png", "categoryName": "Vehicles"}
DOLL = {"id": "p2", "name": "Doll", "price": 50}


def test_adding_same_product_twice_merges_into_one_line(cart):
    cart.add_item(TRUCK, 1)
    cart.add_item(TRUCK, 1)

    assert len(cart.items) == 1
    assert cart.get("p1").quantity == 2


def test_new_line_snapshots_product_fields(cart):
    line = cart.add_item(TRUCK)

    assert line.name == "Toy Truck"
    assert line.image_url == "https://img/truck.png"
    assert line.category_name == "Vehicles"
    assert line.quantity == 1


def test_missing_price_defaults_to_zero(cart):
    line = cart.add_item({"id": "p9", "name": "Sample", "price": None})
    assert line.price == 0


@pytest.mark.parametrize("quantity", [0, -5])
def test_update_quantity_to_zero_or_less_removes_line(cart, quantity):
    cart.add_item(TRUCK, 3)
    cart.update_quantity("p1", quantity)

    assert cart.get("p1") is None
    assert cart.items == []


def test_negative_add_that_empties_a_line_removes_it_and_keeps_the_rest():
    storage = MemoryStorage()
    cart = CartStore(storage)
    cart.add_item(TRUCK, 1)
    cart.add_item(DOLL, 2)

    assert cart.add_item(TRUCK, -1) is None

    saved = json.loads(storage.get_item("saaj-cart"))
    assert [line["id"] for line in saved] == ["p2"]
    reloaded = CartStore(storage)
    assert len(reloaded) == 1
    assert reloaded.get("p2").quantity == 2


def test_negative_add_that_keeps_a_positive_quantity_decrements():
    cart = CartStore(MemoryStorage())
    cart.add_item(DOLL, 3)

    line = cart.add_item(DOLL, -2)

    assert line.quantity == 1


@pytest.mark.parametrize("quantity", [0, -1])
def test_new_line_requires_positive_quantity(cart, quantity):
    with pytest.raises(ValidationError):
        cart.add_item(TRUCK, quantity)

    assert len(cart) == 0


def test_update_quantity_is_absolute(cart):
    cart.add_item(TRUCK, 3)
    cart.update_quantity("p1", 7)
    assert cart.get("p1").quantity == 7


def test_remove_unknown_item_is_noop(cart):
    cart.add_item(TRUCK)
    cart.remove_item("nope")
    assert len(cart) == 1


def test_subtotal_and_item_count_are_derived(cart):
    cart.add_item(TRUCK, 2)
    cart.add_item(DOLL, 3)

    assert cart.subtotal == 350
    assert cart.item_count == 5

    cart.remove_item("p2")
    assert cart.subtotal == 200
    assert cart.item_count == 2


def test_clear_cart_empties_everything(cart):
    cart.add_item(TRUCK)
    cart.add_item(DOLL)
    cart.clear_cart()

    assert cart.items == []
    assert cart.subtotal == 0


def test_every_mutation_is_persisted():
    storage = MemoryStorage()
    cart = CartStore(storage, key="test-cart")

    cart.add_item(TRUCK, 2)
    saved = json.loads(storage.get_item("test-cart"))
    assert saved == [{
        "id": "p1", "name": "Toy Truck", "price": 100, "imageUrl": "https://img/truck.png",
        "categoryName": "Vehicles", "quantity": 2,
    }]

    cart.update_quantity("p1", 0)
    assert json.loads(storage.get_item("test-cart")) == []


def test_cart_survives_reload():
    storage = MemoryStorage()
    CartStore(storage).add_item(DOLL, 4)

    reloaded = CartStore(storage)
    assert reloaded.get("p2").quantity == 4
    assert reloaded.subtotal == 200


@pytest.mark.parametrize("raw", ["{not json", json.dumps({"id": "p1"}), json.dumps([{"id": "p1"}])])
def test_corrupt_saved_cart_loads_empty(raw, caplog):
    storage = MemoryStorage({"saaj-cart": raw})

    cart = CartStore(storage)

    assert cart.items == []
    assert "Failed to parse saved cart" in caplog.text


def test_file_storage_round_trip(tmp_path):
    cart = CartStore(FileStorage(tmp_path / "state"))
    cart.add_item(TRUCK)

    assert (tmp_path / "state" / "saaj-cart.json").exists()
    assert CartStore(FileStorage(tmp_path / "state")).get("p1").quantity == 1


def test_drawer_flags(cart):
    assert cart.is_open is False
    cart.toggle()
    assert cart.is_open is True
    cart.close()
    assert cart.is_open is False
    cart.open()
    assert cart.is_open is True
