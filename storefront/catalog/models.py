from datetime import datetime
from storefront import db


class Product(db.Model):
    """A product in the pharmacy catalogue."""
    __tablename__ = 'products'

    id          = db.Column(db.Integer, primary_key=True)
    name        = db.Column(db.String(200), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)
    price       = db.Column(db.Numeric(10, 2), nullable=False)
    stock       = db.Column(db.Integer, nullable=False, default=0)
    image_url   = db.Column(db.String(500), nullable=True)
    # Dispensed only against a submitted prescription
    requires_prescription = db.Column(db.Boolean, nullable=False, default=False)
    is_active   = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at  = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at  = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    __table_args__ = (
        db.CheckConstraint('stock >= 0', name='check_stock_non_negative'),
        db.CheckConstraint('price > 0', name='check_price_positive'),
    )

    @property
    def in_stock(self) -> bool:
        return self.stock > 0

    def to_dict(self) -> dict:
        return {
            'id':          self.id,
            'name':        self.name,
            'description': self.description or '',
            'price':       str(self.price),
            'stock':       self.stock,
            'image_url':   self.image_url or '',
            'requires_prescription': self.requires_prescription,
        }

    def __repr__(self):
        return f"<Product {self.id} {self.name!r}>"


class ProductReview(db.Model):
    """A customer's rating and comment on a product, one per customer."""
    __tablename__ = 'product_reviews'

    id         = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey('products.id', ondelete='CASCADE'),
                           nullable=False, index=True)
    user_id    = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'),
                           nullable=False)
    rating     = db.Column(db.Integer, nullable=False)
    title      = db.Column(db.String(100), nullable=False)
    comment    = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    author = db.relationship('User', lazy='joined')

    __table_args__ = (
        db.UniqueConstraint('product_id', 'user_id', name='uq_product_reviews_product_user'),
        db.CheckConstraint('rating BETWEEN 1 AND 5', name='check_rating_range'),
    )

    def to_dict(self) -> dict:
        return {
            'id':         self.id,
            'product_id': self.product_id,
            'rating':     self.rating,
            'title':      self.title,
            'comment':    self.comment,
            'author':     self.author.name if self.author else 'Customer',
            'created_at': self.created_at.isoformat(),
        }
