"""
test_cart_routes.py — the cart HTTP API for guests and signed-in customers.
Run: pytest test_cart_routes.py -v
"""
import json
from decimal import Decimal

import pytest

from storefront import create_app, db
from storefront.auth.models import User, RoleEnum
from storefront.cart.models import CartItem
from storefront.catalog.models import Product


# ── Fixtures ──────────────────────────────────────────────────────

@pytest.fixture(scope='function')
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        customer = User(name='Ana', email='ana@pharmacy.test', role=RoleEnum.customer)
        customer.set_password('secret1')
        db.session.add(customer)
        db.session.add_all([
            Product(name='Paracetamol 500mg', price=Decimal('10.00'), stock=50, image_url='/p.png'),
            Product(name='Ibuprofen 400mg',   price=Decimal('6.50'),  stock=20),
            Product(name='Out of stock item', price=Decimal('3.00'),  stock=0),
            Product(name='Retired product',   price=Decimal('9.00'),  stock=5, is_active=False),
        ])
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def pid(name):
    return Product.query.filter_by(name=name).first().id


def login(client, email='ana@pharmacy.test', password='secret1'):
    resp = client.post('/auth/login', json={'email': email, 'password': password})
    assert resp.status_code == 200
    return resp


def add(client, product_id, quantity=1):
    return client.post('/cart/items', json={'product_id': product_id, 'quantity': quantity})


# ── Guest ─────────────────────────────────────────────────────────

def test_empty_guest_cart(client):
    data = client.get('/cart/').get_json()
    assert data['items'] == []
    assert data['total_items'] == 0
    assert data['total_price'] == '0.00'
    assert data['is_ready'] is True
    assert data['mode'] == 'guest'


def test_guest_add_merges_and_totals(client):
    p = pid('Paracetamol 500mg')
    add(client, p, 1)
    data = add(client, p, 2).get_json()

    assert len(data['items']) == 1
    assert data['items'][0]['quantity'] == 3
    assert data['items'][0]['image_url'] == '/p.png'
    assert data['total_price'] == '30.00'


def test_guest_cart_persists_across_requests(client):
    p = pid('Ibuprofen 400mg')
    add(client, p, 2)

    data = client.get('/cart/').get_json()
    assert data['items'][0]['product_id'] == str(p)
    assert data['items'][0]['quantity'] == 2
    assert data['items'][0]['price'] == '6.50'

    with client.session_transaction() as sess:
        stored = json.loads(sess['pharmacy_cart_guest'])
    assert stored[0]['quantity'] == 2


def test_guest_update_to_zero_empties_cart(client):
    p = pid('Ibuprofen 400mg')
    add(client, p, 1)
    data = client.patch(f'/cart/items/{p}', json={'quantity': 0}).get_json()
    assert data['items'] == []
    assert data['total_items'] == 0


def test_update_quantity(client):
    p = pid('Ibuprofen 400mg')
    add(client, p, 1)
    data = client.patch(f'/cart/items/{p}', json={'quantity': 4}).get_json()
    assert data['items'][0]['quantity'] == 4
    assert data['total_price'] == '26.00'


def test_update_unknown_line_is_404(client):
    resp = client.patch('/cart/items/12345', json={'quantity': 2})
    assert resp.status_code == 404


def test_update_requires_quantity(client):
    p = pid('Ibuprofen 400mg')
    add(client, p, 1)
    assert client.patch(f'/cart/items/{p}', json={}).status_code == 400
    assert client.patch(f'/cart/items/{p}', json={'quantity': 'lots'}).status_code == 400


def test_remove_item(client):
    a, b = pid('Paracetamol 500mg'), pid('Ibuprofen 400mg')
    add(client, a)
    add(client, b)
    data = client.delete(f'/cart/items/{a}').get_json()
    assert [i['product_id'] for i in data['items']] == [str(b)]


def test_clear_twice(client):
    add(client, pid('Paracetamol 500mg'), 2)
    assert client.delete('/cart/').get_json()['items'] == []
    resp = client.delete('/cart/')
    assert resp.status_code == 200
    assert resp.get_json()['items'] == []
    with client.session_transaction() as sess:
        assert 'pharmacy_cart_guest' not in sess


def test_corrupt_guest_value_reads_as_empty(client):
    with client.session_transaction() as sess:
        sess['pharmacy_cart_guest'] = '{{{ not json'
    data = client.get('/cart/').get_json()
    assert data['items'] == []
    assert data['is_ready'] is True


@pytest.mark.parametrize('name,status', [
    ('Out of stock item', 400),
    ('Retired product', 404),
])
def test_unavailable_products_are_rejected(client, name, status):
    resp = add(client, pid(name))
    assert resp.status_code == status
    assert resp.get_json()['items'] == []


def test_bad_add_payloads(client):
    assert client.post('/cart/items', json={}).status_code == 400
    assert add(client, 'abc').status_code == 400
    assert add(client, 99999).status_code == 404
    assert add(client, pid('Paracetamol 500mg'), 0).status_code == 400


# ── Signed-in customer ────────────────────────────────────────────

def test_account_cart_is_stored_in_table(app, client):
    login(client)
    p = pid('Paracetamol 500mg')
    data = add(client, p, 2).get_json()
    assert data['mode'] == 'account'

    row = CartItem.query.filter_by(product_id=str(p)).one()
    assert row.quantity == 2
    assert row.name == 'Paracetamol 500mg'

    with client.session_transaction() as sess:
        assert 'pharmacy_cart_guest' not in sess


def test_account_cart_follows_the_user_to_a_new_session(app):
    first = app.test_client()
    login(first)
    add(first, pid('Ibuprofen 400mg'), 3)

    second = app.test_client()
    login(second)
    data = second.get('/cart/').get_json()
    assert data['items'][0]['quantity'] == 3
    assert data['total_price'] == '19.50'


def test_account_clear_deletes_rows(app, client):
    login(client)
    add(client, pid('Paracetamol 500mg'))
    add(client, pid('Ibuprofen 400mg'))
    client.delete('/cart/')
    assert CartItem.query.count() == 0


def test_login_discards_guest_cart_by_default(app, client):
    add(client, pid('Paracetamol 500mg'), 2)
    login(client)
    assert client.get('/cart/').get_json()['items'] == []


def test_login_merges_guest_cart_when_enabled(app, client):
    app.config['CART_MERGE_ON_LOGIN'] = True
    p = pid('Paracetamol 500mg')

    login(client)
    add(client, p, 1)
    client.post('/auth/logout')

    add(client, p, 2)
    add(client, pid('Ibuprofen 400mg'), 1)
    login(client)

    data = client.get('/cart/').get_json()
    quantities = {i['product_id']: i['quantity'] for i in data['items']}
    assert quantities == {str(p): 3, str(pid('Ibuprofen 400mg')): 1}
    assert CartItem.query.count() == 2


def test_logout_returns_to_empty_guest_cart(app, client):
    login(client)
    add(client, pid('Paracetamol 500mg'))
    client.post('/auth/logout')

    data = client.get('/cart/').get_json()
    assert data['mode'] == 'guest'
    assert data['items'] == []


def test_stale_session_user_falls_back_to_guest(app, client):
    with client.session_transaction() as sess:
        sess['user_id'] = 4242
    data = add(client, pid('Ibuprofen 400mg')).get_json()
    assert data['mode'] == 'guest'
    assert CartItem.query.count() == 0


# ── Quantity limits ───────────────────────────────────────────────

def test_oversized_quantity_is_rejected_and_row_kept(app, client):
    login(client)
    p = pid('Paracetamol 500mg')
    add(client, p, 2)

    resp = add(client, p, 10 ** 20)
    assert resp.status_code == 400
    assert resp.get_json()['items'][0]['quantity'] == 2

    resp = client.patch(f'/cart/items/{p}', json={'quantity': 10 ** 20})
    assert resp.status_code == 400

    assert CartItem.query.filter_by(product_id=str(p)).one().quantity == 2
    assert client.get('/cart/').get_json()['total_items'] == 2


def test_infinite_quantity_is_a_bad_request(client):
    body = '{"product_id": %d, "quantity": Infinity}' % pid('Paracetamol 500mg')
    resp = client.post('/cart/items', data=body, content_type='application/json')
    assert resp.status_code == 400
    assert resp.get_json()['items'] == []
