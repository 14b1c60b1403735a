"""
storefront/cart/remote.py
-------------------------
Cart store for authenticated users: the cart_items rows of one user.

Reads happen in the request (hydrate). Writes are handed to the sync
outbox and applied later by apply_operation(), one transaction each.
"""
import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from storefront import db
from storefront.cart.items import CartLineItem, coalesce
from storefront.cart.models import CartItem
from storefront.cart.outbox import CLEAR, DELETE, UPSERT, SyncOperation

logger = logging.getLogger(__name__)


class RemoteCartStore:
    """Persists the cart as per-user rows, through the sync outbox."""

    def __init__(self, user_id: int, sync):
        self.user_id = user_id
        self._sync = sync

    def hydrate(self) -> Optional[List[CartLineItem]]:
        """
        Saved rows with this process's pending writes laid over them.
        Returns None when the rows cannot be read.

        Pending writes are read before the rows: a write the worker commits
        in between then shows up in both, and replaying it is harmless.
        """
        pending = self._sync.pending_for(self.user_id)
        try:
            rows = (CartItem.query
                    .filter_by(user_id=self.user_id)
                    .order_by(CartItem.id)
                    .all())
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.error(f"Could not load cart for user {self.user_id}: {exc}")
            return None

        lines = [row.to_line_item() for row in rows]
        for op in pending:
            lines = overlay(lines, op)
        return coalesce(lines)

    def sync_item(self, product_id: str, line: Optional[CartLineItem], items) -> None:
        """Queue the new state of one line; `line` None means it was removed."""
        if line is None:
            self._sync.submit(SyncOperation.delete(self.user_id, product_id))
        else:
            self._sync.submit(SyncOperation.upsert(self.user_id, line))

    def clear(self) -> None:
        self._sync.submit(SyncOperation.clear(self.user_id))


def overlay(lines: List[CartLineItem], op: SyncOperation) -> List[CartLineItem]:
    """What `lines` will look like once `op` has been applied."""
    if op.kind == CLEAR:
        return []
    kept = [line for line in lines if line.product_id != op.product_id]
    if op.kind == DELETE:
        return kept
    updated = CartLineItem(op.product_id, op.name, op.price, op.quantity, op.image_url)
    for index, line in enumerate(lines):
        if line.product_id == op.product_id:
            kept.insert(index, updated)
            return kept
    kept.append(updated)
    return kept


def apply_operation(op: SyncOperation) -> None:
    """
    Write one outbox entry to cart_items and commit.

    An upsert is a single transaction (look up the (user, product) row,
    then update or insert it), so the row is never missing in between.
    Raises on failure after rolling back; the outbox schedules the retry.
    """
    try:
        if op.kind == CLEAR:
            CartItem.query.filter_by(user_id=op.user_id).delete()
        elif op.kind == DELETE:
            CartItem.query.filter_by(user_id=op.user_id, product_id=op.product_id).delete()
        elif op.kind == UPSERT:
            row = CartItem.query.filter_by(
                user_id=op.user_id, product_id=op.product_id
            ).first()
            if row is None:
                row = CartItem(user_id=op.user_id, product_id=op.product_id)
                db.session.add(row)
            row.quantity  = op.quantity
            row.name      = op.name
            row.price     = op.price
            row.image_url = op.image_url or None
        else:
            raise ValueError(f'Unknown cart sync operation: {op.kind!r}')
        db.session.commit()
    except Exception:
        # Leave the session usable for the next entry in the same drain
        db.session.rollback()
        raise
    logger.debug(f"Cart sync applied: {op.kind} user={op.user_id} product={op.product_id}")
