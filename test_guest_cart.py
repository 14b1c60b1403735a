"""
test_guest_cart.py — session-backed guest cart store.
Run: pytest test_guest_cart.py -v
"""
import json
from decimal import Decimal

import pytest

from storefront.cart.guest import GuestCartStore
from storefront.cart.items import CartLineItem

KEY = 'pharmacy_cart_guest'


def lines():
    return [
        CartLineItem('1', 'Paracetamol 500mg', Decimal('4.90'), 2, '/img/1.png'),
        CartLineItem('2', 'Ibuprofen 400mg',   Decimal('6.50'), 1),
    ]


def test_missing_key_hydrates_empty():
    assert GuestCartStore({}, KEY).hydrate() == []


def test_persist_then_hydrate_round_trip():
    storage = {}
    store = GuestCartStore(storage, KEY)
    store.persist(lines())

    assert store.hydrate() == lines()


def test_prices_are_stored_as_strings():
    storage = {}
    GuestCartStore(storage, KEY).persist(lines())

    stored = json.loads(storage[KEY])
    assert stored[0]['price'] == '4.90'
    assert stored[0]['product_id'] == '1'
    assert stored[0]['quantity'] == 2


def test_persist_overwrites_previous_value():
    storage = {}
    store = GuestCartStore(storage, KEY)
    store.persist(lines())
    store.persist(lines()[:1])
    assert len(store.hydrate()) == 1


@pytest.mark.parametrize('raw', [
    'not json at all',
    '{"product_id": "1"}',            # object, not array
    '[{"name": "no id"}]',            # missing product_id
    '[{"product_id": "1", "quantity": "many"}]',
    '[{"product_id": "1", "quantity": 1, "price": "free"}]',
    '["just a string"]',
    '[42]',
])
def test_unreadable_value_hydrates_empty(raw):
    assert GuestCartStore({KEY: raw}, KEY).hydrate() == []


def test_hydrate_restores_invariants():
    raw = json.dumps([
        {'product_id': '1', 'name': 'A', 'price': '1.00', 'quantity': 2},
        {'product_id': '1', 'name': 'A', 'price': '1.00', 'quantity': 3},
        {'product_id': '2', 'name': 'B', 'price': '2.00', 'quantity': 0},
    ])
    hydrated = GuestCartStore({KEY: raw}, KEY).hydrate()
    assert [(line.product_id, line.quantity) for line in hydrated] == [('1', 5)]


def test_hydrate_fills_missing_display_fields():
    raw = json.dumps([{'product_id': '9', 'quantity': 1}])
    line = GuestCartStore({KEY: raw}, KEY).hydrate()[0]
    assert line.name == 'Product'
    assert line.price == Decimal('0')
    assert line.image_url == ''


def test_clear_removes_only_its_key():
    storage = {KEY: '[]', 'user_id': 5}
    GuestCartStore(storage, KEY).clear()
    assert storage == {'user_id': 5}


def test_clear_without_value_is_harmless():
    GuestCartStore({}, KEY).clear()


def test_sync_item_persists_whole_collection():
    storage = {}
    store = GuestCartStore(storage, KEY)
    store.sync_item('1', lines()[0], lines())
    assert len(json.loads(storage[KEY])) == 2
