import enum
from datetime import datetime
from decimal import Decimal
from storefront import db


class OrderStatus(enum.Enum):
    pending   = "pending"
    paid      = "paid"
    shipped   = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"


# Allowed status moves; anything else is rejected by the status route
TRANSITIONS = {
    OrderStatus.pending:   {OrderStatus.paid, OrderStatus.cancelled},
    OrderStatus.paid:      {OrderStatus.shipped, OrderStatus.cancelled},
    OrderStatus.shipped:   {OrderStatus.delivered},
    OrderStatus.delivered: set(),
    OrderStatus.cancelled: set(),
}


class Order(db.Model):
    """
    An order staged from a customer's cart at checkout.
    No payment is taken here; the order starts as 'pending'.
    """
    __tablename__ = 'orders'

    id               = db.Column(db.Integer, primary_key=True)
    user_id          = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    total            = db.Column(db.Numeric(12, 2), nullable=False)
    status           = db.Column(db.Enum(OrderStatus), nullable=False, default=OrderStatus.pending)
    shipping_address = db.Column(db.String(500), nullable=False)
    payment_method   = db.Column(db.String(40), nullable=False)
    created_at       = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    # ── Relationships ─────────────────────────────────────────────
    customer = db.relationship('User', backref='orders', lazy='select')
    items    = db.relationship('OrderItem', backref='order', lazy='select',
                               cascade='all, delete-orphan')

    def can_move_to(self, status: OrderStatus) -> bool:
        return status in TRANSITIONS[self.status]

    def to_dict(self, with_items=True) -> dict:
        data = {
            'id':               self.id,
            'user_id':          self.user_id,
            'total':            str(self.total),
            'status':           self.status.value,
            'shipping_address': self.shipping_address,
            'payment_method':   self.payment_method,
            'created_at':       self.created_at.isoformat(),
        }
        if with_items:
            data['items'] = [item.to_dict() for item in self.items]
        return data

    def __repr__(self):
        return f"<Order {self.id} user={self.user_id} {self.status.value}>"


class OrderItem(db.Model):
    """
    One line of an order.
    Stores the cart's price snapshot, so later catalogue edits don't alter
    what the customer agreed to pay.
    """
    __tablename__ = 'order_items'

    id         = db.Column(db.Integer, primary_key=True)
    order_id   = db.Column(db.Integer, db.ForeignKey('orders.id'), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False)
    name       = db.Column(db.String(200), nullable=False)
    quantity   = db.Column(db.Integer, nullable=False)
    price      = db.Column(db.Numeric(10, 2), nullable=False)

    product = db.relationship('Product', lazy='select')

    @property
    def subtotal(self) -> Decimal:
        return (Decimal(str(self.price)) * self.quantity).quantize(Decimal('0.01'))

    def to_dict(self) -> dict:
        return {
            'product_id': self.product_id,
            'name':       self.name,
            'quantity':   self.quantity,
            'price':      str(self.price),
            'subtotal':   str(self.subtotal),
        }

    def __repr__(self):
        return f"<OrderItem order={self.order_id} product={self.product_id} qty={self.quantity}>"
