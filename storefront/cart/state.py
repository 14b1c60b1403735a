"""
storefront/cart/state.py
------------------------
The in-memory cart for one request.

The store (GuestCartStore or RemoteCartStore) is chosen by the caller
from the visitor's identity and injected here. Every mutation updates
memory first and then hands the new state to the store; the store never
reports back, so a persistence failure cannot undo what the caller sees.
"""
import logging
from decimal import Decimal
from typing import Any, List, Optional, Tuple

from storefront.cart.items import (
    CartLineItem, line_from_product, resolve_product_id,
    total_items, total_price,
)

logger = logging.getLogger(__name__)

# Upper bound for one line; cart_items.quantity is a 32-bit INTEGER
MAX_QUANTITY = 999


class Cart:

    def __init__(self, store, max_quantity: int = MAX_QUANTITY):
        self.store = store
        self.max_quantity = max_quantity
        self._items: List[CartLineItem] = []
        # False until hydrate() ran: an empty cart may just not be loaded yet
        self.is_ready = False

    def hydrate(self) -> None:
        """Load the collection from the store, once."""
        try:
            lines = self.store.hydrate()
            if lines is not None:
                self._items = list(lines)
        finally:
            self.is_ready = True

    # ── Read ──────────────────────────────────────────────────────

    @property
    def items(self) -> Tuple[CartLineItem, ...]:
        return tuple(self._items)

    def get(self, product_id) -> Optional[CartLineItem]:
        product_id = str(product_id)
        for line in self._items:
            if line.product_id == product_id:
                return line
        return None

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    @property
    def total_items(self) -> int:
        return total_items(self._items)

    @property
    def total_price(self) -> Decimal:
        return total_price(self._items)

    def to_dict(self) -> dict:
        return {
            'items':       [line.to_dict() for line in self._items],
            'total_items': self.total_items,
            'total_price': str(self.total_price),
            'is_ready':    self.is_ready,
        }

    # ── Write ─────────────────────────────────────────────────────

    def add_item(self, product: Any, quantity: int = 1) -> CartLineItem:
        """
        Add `quantity` units of `product` (a mapping or model object).
        Merges into the existing line when the product is already in the cart.
        A line may not grow past max_quantity (ValueError, cart unchanged).
        """
        quantity = _as_quantity(quantity)
        if quantity < 1:
            raise ValueError('Quantity must be at least 1.')
        product_id = resolve_product_id(product)
        if not product_id:
            raise ValueError('Product has no identifier.')

        index = self._index_of(product_id)
        if index is None:
            line = line_from_product(product, self._within_limit(quantity))
            self._items.append(line)
        else:
            existing = self._items[index]
            line = existing.with_quantity(self._within_limit(existing.quantity + quantity))
            self._items[index] = line

        self._sync(product_id, line)
        return line

    def remove_item(self, product_id) -> None:
        product_id = str(product_id)
        self._items = [line for line in self._items if line.product_id != product_id]
        self._sync(product_id, None)

    def update_quantity(self, product_id, quantity: int) -> Optional[CartLineItem]:
        """
        Set the quantity of a line already in the cart.
        quantity <= 0 removes the line; an unknown product_id is ignored.
        """
        product_id = str(product_id)
        quantity = _as_quantity(quantity)
        if quantity <= 0:
            self.remove_item(product_id)
            return None

        index = self._index_of(product_id)
        if index is None:
            logger.debug(f"Quantity update for product {product_id} not in cart, ignored")
            return None
        line = self._items[index].with_quantity(self._within_limit(quantity))
        self._items[index] = line
        self._sync(product_id, line)
        return line

    def clear(self) -> None:
        self._items = []
        if not self.is_ready:
            logger.debug("Cart cleared before hydration, store left untouched")
            return
        try:
            self.store.clear()
        except Exception:
            logger.exception("Cart persistence failed while clearing")

    # ── Internals ─────────────────────────────────────────────────

    def _index_of(self, product_id: str) -> Optional[int]:
        for index, line in enumerate(self._items):
            if line.product_id == product_id:
                return index
        return None

    def _within_limit(self, quantity: int) -> int:
        if quantity > self.max_quantity:
            raise ValueError(f'At most {self.max_quantity} units of a product per cart.')
        return quantity

    def _sync(self, product_id: str, line: Optional[CartLineItem]) -> None:
        # Writing before hydration would overwrite the stored cart with a partial one
        if not self.is_ready:
            logger.debug(f"Cart not hydrated yet, sync of product {product_id} skipped")
            return
        try:
            self.store.sync_item(product_id, line, self.items)
        except Exception:
            # Memory stays as the caller left it; the store catches up on the next write
            logger.exception(f"Cart persistence failed for product {product_id}")


def _as_quantity(value) -> int:
    if isinstance(value, bool):
        raise ValueError('Quantity must be a whole number.')
    try:
        quantity = int(value)
    except (TypeError, ValueError, OverflowError):
        raise ValueError('Quantity must be a whole number.')
    if quantity != value and not isinstance(value, str):
        raise ValueError('Quantity must be a whole number.')
    return quantity
