"""
storefront/cart/items.py
------------------------
Cart line items and the pure helpers around them.

A line item is a snapshot: name, price and image are copied from the
product when it is first added and are not refreshed from the catalogue
afterwards. Prices are Decimal throughout and travel as strings in JSON.
"""
from __future__ import annotations
from collections.abc import Mapping
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional


Q = Decimal('0.01')   # quantize target

DEFAULT_NAME = 'Product'

# Accepted spellings, first match wins
_ID_KEYS    = ('id', 'productId', 'product_id')
_NAME_KEYS  = ('name', 'title', 'product_name')
_PRICE_KEYS = ('price', 'unit_price', 'unitPrice')
_IMAGE_KEYS = ('image_url', 'imageUrl', 'image')


@dataclass(frozen=True)
class CartLineItem:
    """One product in the cart with its quantity."""
    product_id: str
    name:       str
    price:      Decimal
    quantity:   int
    image_url:  str = ''

    @property
    def line_total(self) -> Decimal:
        return (self.price * self.quantity).quantize(Q)

    def with_quantity(self, quantity: int) -> 'CartLineItem':
        return replace(self, quantity=quantity)

    def to_dict(self) -> dict:
        return {
            'product_id': self.product_id,
            'name':       self.name,
            'price':      str(self.price),   # Decimal → str for JSON safety
            'quantity':   self.quantity,
            'image_url':  self.image_url,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'CartLineItem':
        """
        Rebuild a line from to_dict() output.
        Raises KeyError / ValueError on malformed input.
        """
        product_id = str(data['product_id'])
        if not product_id:
            raise ValueError('Line item has an empty product_id.')
        return cls(
            product_id=product_id,
            name=str(data.get('name') or DEFAULT_NAME),
            price=parse_price(data.get('price', 0)),
            quantity=int(data['quantity']),
            image_url=str(data.get('image_url') or ''),
        )


# ── Snapshot resolution ───────────────────────────────────────────

def _pick(product: Any, keys) -> Any:
    """First non-empty value among `keys`, from a mapping or an object."""
    for key in keys:
        if isinstance(product, Mapping):
            value = product.get(key)
        else:
            value = getattr(product, key, None)
        if value is not None and value != '':
            return value
    return None


def parse_price(value: Any) -> Decimal:
    """Convert a price from a number or string to a Decimal (never float)."""
    if value is None or value == '':
        return Decimal('0')
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f'Invalid price: {value!r}')
    if not price.is_finite():
        raise ValueError(f'Invalid price: {value!r}')
    return price


def resolve_product_id(product: Any) -> Optional[str]:
    value = _pick(product, _ID_KEYS)
    return str(value) if value is not None else None


def line_from_product(product: Any, quantity: int) -> CartLineItem:
    """Take a fresh snapshot of `product` as a new line item."""
    product_id = resolve_product_id(product)
    if not product_id:
        raise ValueError('Product has no identifier.')
    return CartLineItem(
        product_id=product_id,
        name=str(_pick(product, _NAME_KEYS) or DEFAULT_NAME),
        price=parse_price(_pick(product, _PRICE_KEYS)),
        quantity=quantity,
        image_url=str(_pick(product, _IMAGE_KEYS) or ''),
    )


def coalesce(lines: Iterable[CartLineItem]) -> List[CartLineItem]:
    """
    Restore the collection invariants on data read back from storage:
    one line per product_id (quantities summed, first snapshot kept)
    and no line with quantity < 1.
    """
    merged: dict = {}
    for line in lines:
        if line.quantity < 1:
            continue
        existing = merged.get(line.product_id)
        if existing is None:
            merged[line.product_id] = line
        else:
            merged[line.product_id] = existing.with_quantity(existing.quantity + line.quantity)
    return list(merged.values())


# ── Totals ────────────────────────────────────────────────────────

def total_items(lines: Iterable[CartLineItem]) -> int:
    return sum(line.quantity for line in lines)


def total_price(lines: Iterable[CartLineItem]) -> Decimal:
    """Sum of price × quantity, in cents."""
    total = Decimal('0')
    for line in lines:
        total += line.price * line.quantity
    return total.quantize(Q)
