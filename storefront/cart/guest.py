"""
storefront/cart/guest.py
------------------------
Cart store for guests: a JSON array kept under one key of the
browser-bound session.

Stored value (a string, so the session cookie never sees Decimals):
    '[{"product_id": "12", "name": "...", "price": "4.90",
       "quantity": 2, "image_url": "..."}, ...]'

Anything unreadable under the key is treated as an empty cart.
"""
import json
import logging
from collections.abc import MutableMapping
from typing import Iterable, List, Optional

from storefront.cart.items import CartLineItem, coalesce

logger = logging.getLogger(__name__)


class GuestCartStore:
    """Persists the whole cart on every change."""

    def __init__(self, storage: MutableMapping, key: str):
        self._storage = storage
        self.key = key

    def hydrate(self) -> List[CartLineItem]:
        raw = self._storage.get(self.key)
        if not raw:
            return []
        try:
            data = json.loads(raw)
            if not isinstance(data, list):
                raise ValueError(f'expected a JSON array, got {type(data).__name__}')
            return coalesce(CartLineItem.from_dict(entry) for entry in data)
        except (TypeError, KeyError, ValueError, AttributeError) as exc:
            logger.warning(f"Discarding unreadable guest cart under {self.key!r}: {exc}")
            return []

    def persist(self, items: Iterable[CartLineItem]) -> None:
        self._storage[self.key] = json.dumps([line.to_dict() for line in items])

    def sync_item(self, product_id: str, line: Optional[CartLineItem], items) -> None:
        self.persist(items)

    def clear(self) -> None:
        self._storage.pop(self.key, None)
