"""
test_cart_state.py — in-memory cart behaviour, independent of Flask.
Run: pytest test_cart_state.py -v
"""
from decimal import Decimal
from types import SimpleNamespace

import pytest

from storefront.cart.guest import GuestCartStore
from storefront.cart.items import CartLineItem, line_from_product, total_items, total_price
from storefront.cart.state import Cart


class RecordingStore:
    """Store double that records what the cart hands it."""

    def __init__(self, lines=None, fail=False):
        self.lines = lines
        self.fail = fail
        self.synced = []
        self.cleared = 0

    def hydrate(self):
        return self.lines

    def sync_item(self, product_id, line, items):
        if self.fail:
            raise RuntimeError('store unavailable')
        self.synced.append((product_id, line.quantity if line else 0))

    def clear(self):
        if self.fail:
            raise RuntimeError('store unavailable')
        self.cleared += 1


def product(pid='A', price='10.00', name='Paracetamol', **extra):
    data = {'id': pid, 'name': name, 'price': price, 'image_url': f'/img/{pid}.png'}
    data.update(extra)
    return data


@pytest.fixture
def cart():
    c = Cart(RecordingStore(lines=[]))
    c.hydrate()
    return c


# ── Merge on add ──────────────────────────────────────────────────

def test_repeated_adds_merge_into_one_line(cart):
    cart.add_item(product('A'), 1)
    cart.add_item(product('A'), 2)
    cart.add_item(product('A'), 4)

    assert len(cart) == 1
    assert cart.get('A').quantity == 7


def test_add_a_twice_scenario_totals(cart):
    cart.add_item(product('A', price='10.00'), 1)
    cart.add_item(product('A', price='10.00'), 2)

    assert len(cart.items) == 1
    assert cart.get('A').quantity == 3
    assert cart.total_price == Decimal('30.00')
    assert cart.total_items == 3


def test_add_syncs_post_mutation_quantity(cart):
    cart.add_item(product('A'), 1)
    cart.add_item(product('A'), 2)
    assert cart.store.synced == [('A', 1), ('A', 3)]


def test_merge_keeps_first_snapshot(cart):
    cart.add_item(product('A', price='10.00', name='Old name'), 1)
    cart.add_item(product('A', price='99.00', name='New name'), 1)

    line = cart.get('A')
    assert line.price == Decimal('10.00')
    assert line.name == 'Old name'


def test_add_resolves_alternate_product_keys(cart):
    line = cart.add_item({'productId': 7, 'title': 'Vitamin C',
                          'unitPrice': 12.5, 'imageUrl': '/c.png'})
    assert line.product_id == '7'
    assert line.name == 'Vitamin C'
    assert line.price == Decimal('12.5')
    assert line.image_url == '/c.png'


def test_add_accepts_model_like_objects(cart):
    obj = SimpleNamespace(id=3, name='Saline Spray', price=Decimal('7.20'), image_url=None)
    line = cart.add_item(obj, 2)
    assert line.product_id == '3'
    assert line.image_url == ''
    assert cart.total_price == Decimal('14.40')


def test_add_defaults_missing_display_fields(cart):
    line = cart.add_item({'id': 'X'})
    assert line.name == 'Product'
    assert line.price == Decimal('0')


def test_add_without_identifier_is_rejected(cart):
    with pytest.raises(ValueError):
        cart.add_item({'name': 'No id'})
    assert len(cart) == 0
    assert cart.store.synced == []


@pytest.mark.parametrize('qty', [0, -1, 1.5, 'abc', True])
def test_add_rejects_non_positive_or_fractional_quantity(cart, qty):
    with pytest.raises(ValueError):
        cart.add_item(product('A'), qty)
    assert len(cart) == 0


# ── Update / remove ───────────────────────────────────────────────

def test_update_to_zero_removes(cart):
    cart.add_item(product('B'), 1)
    cart.update_quantity('B', 0)

    assert cart.get('B') is None
    assert len(cart) == 0
    assert cart.total_items == 0
    assert cart.store.synced[-1] == ('B', 0)


def test_update_negative_equals_remove(cart):
    cart.add_item(product('A'), 2)
    cart.add_item(product('B'), 1)
    cart.update_quantity('A', -3)
    assert [line.product_id for line in cart.items] == ['B']


def test_update_replaces_quantity_and_keeps_snapshot(cart):
    cart.add_item(product('A', price='4.90', name='Paracetamol'), 1)
    line = cart.update_quantity('A', 5)

    assert line.quantity == 5
    assert line.price == Decimal('4.90')
    assert line.name == 'Paracetamol'
    assert cart.store.synced[-1] == ('A', 5)


def test_update_unknown_product_is_ignored(cart):
    assert cart.update_quantity('nope', 3) is None
    assert len(cart) == 0
    assert cart.store.synced == []


def test_remove_keeps_order_of_other_lines(cart):
    for pid in ('A', 'B', 'C'):
        cart.add_item(product(pid))
    cart.remove_item('B')
    assert [line.product_id for line in cart.items] == ['A', 'C']


def test_product_ids_compare_as_strings(cart):
    cart.add_item({'id': 12, 'price': '1.00'})
    cart.update_quantity(12, 4)
    assert cart.get('12').quantity == 4


# ── Clear ─────────────────────────────────────────────────────────

def test_clear_is_idempotent(cart):
    cart.add_item(product('A'), 2)
    cart.clear()
    assert len(cart) == 0
    cart.clear()
    assert len(cart) == 0
    assert cart.store.cleared == 2


# ── Totals ────────────────────────────────────────────────────────

def test_totals_match_sums(cart):
    cart.add_item(product('A', price='4.90'), 3)
    cart.add_item(product('B', price='12.00'), 1)
    cart.add_item(product('C', price='0.35'), 7)

    assert cart.total_items == sum(line.quantity for line in cart.items)
    assert cart.total_price == sum(line.price * line.quantity for line in cart.items)
    assert cart.total_price == Decimal('29.15')


def test_total_helpers_on_empty_collection():
    assert total_items([]) == 0
    assert total_price([]) == Decimal('0.00')


def test_line_total():
    line = CartLineItem('A', 'Paracetamol', Decimal('4.90'), 3)
    assert line.line_total == Decimal('14.70')


# ── Readiness and store failures ──────────────────────────────────

def test_mutations_before_hydrate_do_not_touch_the_store():
    store = RecordingStore(lines=[])
    cart = Cart(store)
    assert cart.is_ready is False

    cart.add_item(product('A'))
    cart.clear()

    assert store.synced == []
    assert store.cleared == 0


def test_hydrate_replaces_collection_and_sets_ready():
    stored = [line_from_product(product('A'), 2)]
    cart = Cart(RecordingStore(lines=stored))
    cart.hydrate()
    assert cart.is_ready
    assert cart.get('A').quantity == 2


def test_failed_hydrate_keeps_collection_but_marks_ready():
    cart = Cart(RecordingStore(lines=None))
    cart.hydrate()
    assert cart.is_ready
    assert len(cart) == 0


def test_store_failure_does_not_reach_caller_or_undo_memory():
    store = RecordingStore(lines=[], fail=True)
    cart = Cart(store)
    cart.hydrate()

    cart.add_item(product('A'), 2)
    cart.update_quantity('A', 5)
    assert cart.get('A').quantity == 5

    cart.clear()
    assert len(cart) == 0


# ── Guest store round trip through the cart ───────────────────────

def test_guest_cart_survives_reload():
    storage = {}
    first = Cart(GuestCartStore(storage, 'pharmacy_cart_guest'))
    first.hydrate()
    first.add_item(product('C', price='7.20'), 2)

    reloaded = Cart(GuestCartStore(storage, 'pharmacy_cart_guest'))
    reloaded.hydrate()

    assert reloaded.items == first.items
    assert reloaded.get('C').quantity == 2
    assert reloaded.get('C').price == Decimal('7.20')


def test_guest_clear_erases_storage_key():
    storage = {}
    cart = Cart(GuestCartStore(storage, 'k'))
    cart.hydrate()
    cart.add_item(product('A'))
    assert 'k' in storage
    cart.clear()
    assert 'k' not in storage


# ── Quantity limits ───────────────────────────────────────────────

def test_line_cannot_grow_past_max_quantity():
    store = RecordingStore(lines=[])
    cart = Cart(store, max_quantity=10)
    cart.hydrate()
    cart.add_item(product('A'), 6)

    with pytest.raises(ValueError):
        cart.add_item(product('A'), 5)
    with pytest.raises(ValueError):
        cart.add_item(product('B'), 11)
    with pytest.raises(ValueError):
        cart.update_quantity('A', 11)

    assert cart.get('A').quantity == 6
    assert cart.get('B') is None
    assert store.synced == [('A', 6)]

    cart.update_quantity('A', 10)
    assert cart.get('A').quantity == 10


@pytest.mark.parametrize('quantity', [float('inf'), float('-inf'), float('nan')])
def test_non_finite_quantity_is_rejected(cart, quantity):
    with pytest.raises(ValueError):
        cart.add_item(product('A'), quantity)
    cart.add_item(product('A'), 1)
    with pytest.raises(ValueError):
        cart.update_quantity('A', quantity)
    assert cart.get('A').quantity == 1
