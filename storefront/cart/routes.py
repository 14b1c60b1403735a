from flask import request, jsonify, current_app

from storefront import db
from storefront.auth.identity import current_identity
from storefront.cart import cart
from storefront.cart.loader import current_cart
from storefront.catalog.models import Product


def _cart_response(status=200, error=None):
    """Serialise the request's cart, plus who owns it and an optional error."""
    data = current_cart().to_dict()
    data['mode'] = 'guest' if current_identity().is_guest else 'account'
    if error:
        data['error'] = error
    return jsonify(data), status


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ── VIEW ──────────────────────────────────────────────────────────

@cart.route('/')
def index():
    return _cart_response()


# ── ADD ITEM ──────────────────────────────────────────────────────

@cart.route('/items', methods=['POST'])
def add_item():
    """Look up the product in the catalogue and add it to the cart."""
    data = _payload()
    product_id = data.get('product_id')
    quantity   = data.get('quantity', 1)

    try:
        product_id = int(product_id)
    except (TypeError, ValueError):
        return _cart_response(400, 'A valid product_id is required.')

    product = db.session.get(Product, product_id)
    if product is None or not product.is_active:
        return _cart_response(404, f'No product found for id {product_id}.')
    if not product.in_stock:
        return _cart_response(400, f'"{product.name}" is out of stock.')

    try:
        current_cart().add_item(product.to_dict(), quantity)
    except ValueError as exc:
        return _cart_response(400, str(exc))

    current_app.logger.info(f"Cart add: product {product_id} ×{quantity} ({current_identity()})")
    return _cart_response()


# ── UPDATE QUANTITY ───────────────────────────────────────────────

@cart.route('/items/<product_id>', methods=['PATCH'])
def update_item(product_id):
    data = _payload()
    if 'quantity' not in data:
        return _cart_response(400, 'quantity is required.')

    cart_ = current_cart()
    if cart_.get(product_id) is None:
        return _cart_response(404, f'Product {product_id} is not in the cart.')

    try:
        cart_.update_quantity(product_id, data['quantity'])
    except ValueError as exc:
        return _cart_response(400, str(exc))
    return _cart_response()


# ── REMOVE ITEM ───────────────────────────────────────────────────

@cart.route('/items/<product_id>', methods=['DELETE'])
def remove_item(product_id):
    current_cart().remove_item(product_id)
    return _cart_response()


# ── CLEAR ─────────────────────────────────────────────────────────

@cart.route('/', methods=['DELETE'])
def clear():
    current_cart().clear()
    current_app.logger.info(f"Cart cleared ({current_identity()})")
    return _cart_response()
