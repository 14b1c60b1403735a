"""
storefront/cart/loader.py
-------------------------
Builds the request's Cart: identity → store → hydrate.

    cart = current_cart()        # first call in a request loads it
    cart.add_item(product, 2)
"""
from typing import Optional

from flask import current_app, g, session

from storefront.auth.identity import Identity, current_identity
from storefront.cart.guest import GuestCartStore
from storefront.cart.remote import RemoteCartStore
from storefront.cart.state import Cart
from storefront.cart.sync import get_cart_sync


def select_store(identity: Identity):
    """Guests keep their cart in the session, accounts in cart_items."""
    if identity.is_guest:
        return GuestCartStore(session, current_app.config['CART_GUEST_KEY'])
    return RemoteCartStore(identity.user_id, get_cart_sync())


def load_cart(identity: Optional[Identity] = None) -> Cart:
    if identity is None:
        identity = current_identity()
    cart = Cart(select_store(identity), max_quantity=current_app.config['CART_MAX_QUANTITY'])
    cart.hydrate()
    current_app.logger.debug(f"Cart loaded for {identity}: {len(cart)} line(s)")
    return cart


def current_cart() -> Cart:
    """The cart for this request, loaded once and reused."""
    if 'cart' not in g:
        g.cart = load_cart()
    return g.cart
