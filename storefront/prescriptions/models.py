import enum
from datetime import datetime
from storefront import db


class PrescriptionStatus(enum.Enum):
    pending     = "pending"
    in_progress = "in_progress"
    approved    = "approved"
    rejected    = "rejected"
    dispensed   = "dispensed"     # consumed by an order


TRANSITIONS = {
    PrescriptionStatus.pending:     {PrescriptionStatus.in_progress,
                                     PrescriptionStatus.approved,
                                     PrescriptionStatus.rejected},
    PrescriptionStatus.in_progress: {PrescriptionStatus.approved, PrescriptionStatus.rejected},
    PrescriptionStatus.approved:    {PrescriptionStatus.rejected, PrescriptionStatus.dispensed},
    PrescriptionStatus.rejected:    set(),
    PrescriptionStatus.dispensed:   set(),
}


class PrescriptionRequest(db.Model):
    """
    A customer's prescription submitted for review by the pharmacy.

    When it names a product that requires a prescription, an approved
    request lets that customer check the product out once; checkout then
    marks it dispensed and links it to the order.
    """
    __tablename__ = 'prescription_requests'

    id           = db.Column(db.Integer, primary_key=True)
    user_id      = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    product_id   = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=True)
    name         = db.Column(db.String(100), nullable=False)
    phone        = db.Column(db.String(15), nullable=False)
    message      = db.Column(db.String(500), nullable=True)
    # Where the scanned prescription was uploaded; storage itself is external
    document_url = db.Column(db.String(500), nullable=True)
    status       = db.Column(db.Enum(PrescriptionStatus), nullable=False,
                             default=PrescriptionStatus.pending, index=True)
    review_note  = db.Column(db.String(500), nullable=True)
    reviewed_by  = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True)
    order_id     = db.Column(db.Integer, db.ForeignKey('orders.id'), nullable=True)
    created_at   = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at   = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    product = db.relationship('Product', lazy='select')

    def can_move_to(self, status: PrescriptionStatus) -> bool:
        return status in TRANSITIONS[self.status]

    def to_dict(self) -> dict:
        return {
            'id':           self.id,
            'user_id':      self.user_id,
            'product_id':   self.product_id,
            'product_name': self.product.name if self.product else None,
            'name':         self.name,
            'phone':        self.phone,
            'message':      self.message or '',
            'document_url': self.document_url or '',
            'status':       self.status.value,
            'review_note':  self.review_note or '',
            'order_id':     self.order_id,
            'created_at':   self.created_at.isoformat(),
        }

    def __repr__(self):
        return f"<PrescriptionRequest {self.id} user={self.user_id} {self.status.value}>"


def approved_prescription(user_id: int, product_id: int):
    """The user's oldest approved, unused request for the product, row-locked."""
    return (db.session.query(PrescriptionRequest)
            .filter_by(user_id=user_id, product_id=product_id,
                       status=PrescriptionStatus.approved)
            .order_by(PrescriptionRequest.id)
            .with_for_update()
            .first())
