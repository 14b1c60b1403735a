from datetime import datetime
from decimal import Decimal
from storefront import db
from storefront.cart.items import CartLineItem, DEFAULT_NAME


class CartItem(db.Model):
    """
    One line of an authenticated user's saved cart.
    Holds the same snapshot fields as the in-memory line item, so the cart
    can be rebuilt without touching the catalogue.
    """
    __tablename__ = 'cart_items'

    id         = db.Column(db.Integer, primary_key=True)
    user_id    = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = db.Column(db.String(64), nullable=False)   # opaque, not a FK: snapshot of what was added
    quantity   = db.Column(db.Integer, nullable=False, default=1)
    name       = db.Column(db.String(200), nullable=True)
    price      = db.Column(db.Numeric(10, 2), nullable=True)
    image_url  = db.Column(db.String(500), nullable=True)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    __table_args__ = (
        db.UniqueConstraint('user_id', 'product_id', name='uq_cart_items_user_product'),
        db.CheckConstraint('quantity >= 1', name='check_cart_quantity_positive'),
    )

    def to_line_item(self) -> CartLineItem:
        """Map the row to a line item, filling defaults for missing fields."""
        return CartLineItem(
            product_id=str(self.product_id),
            name=self.name or DEFAULT_NAME,
            price=Decimal(str(self.price)) if self.price is not None else Decimal('0'),
            quantity=self.quantity if self.quantity is not None else 1,
            image_url=self.image_url or '',
        )

    def __repr__(self):
        return f"<CartItem user={self.user_id} product={self.product_id!r} qty={self.quantity}>"
