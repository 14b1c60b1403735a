import re

from flask import request, jsonify, abort, current_app

from storefront import db
from storefront.auth.decorators import login_required, staff_required
from storefront.auth.identity import current_identity
from storefront.catalog.models import Product
from storefront.prescriptions import prescriptions
from storefront.prescriptions.models import PrescriptionRequest, PrescriptionStatus

PHONE_PATTERN = re.compile(r'^\+?[\d\s().-]+$')


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _text(data: dict, field: str) -> str:
    value = data.get(field)
    return '' if value is None else str(value).strip()


def validate_request(data: dict) -> dict:
    """field -> error_message for a new prescription request."""
    errors = {}

    name = _text(data, 'name')
    if not 2 <= len(name) <= 100:
        errors['name'] = 'Name must be between 2 and 100 characters.'

    phone = _text(data, 'phone')
    if not 10 <= len(phone) <= 15 or not PHONE_PATTERN.match(phone):
        errors['phone'] = 'Phone must be 10 to 15 digits.'

    if len(_text(data, 'message')) > 500:
        errors['message'] = 'Message must be 500 characters or fewer.'
    if len(_text(data, 'document_url')) > 500:
        errors['document_url'] = 'Document URL must be 500 characters or fewer.'

    product_id = data.get('product_id')
    if product_id is not None and (isinstance(product_id, bool) or not str(product_id).isdigit()
                                   or len(str(product_id)) > 9):
        errors['product_id'] = 'product_id must be a product identifier.'

    return errors


def _visible_or_404(request_id) -> PrescriptionRequest:
    """Owners and staff only; others are told it doesn't exist."""
    prescription = db.session.get(PrescriptionRequest, request_id)
    identity = current_identity()
    if prescription is None or (prescription.user_id != identity.user_id and not identity.is_staff):
        abort(404)
    return prescription


# ── SUBMIT ────────────────────────────────────────────────────────

@prescriptions.route('/', methods=['POST'])
@login_required
def submit():
    data   = _payload()
    errors = validate_request(data)
    if errors:
        return jsonify({'error': 'Prescription request is not valid.', 'errors': errors}), 400

    product_id = data.get('product_id')
    if product_id is not None:
        product = db.session.get(Product, int(product_id))
        if product is None or not product.is_active:
            return jsonify({'error': f'No product found for id {product_id}.'}), 404
        product_id = product.id

    user_id = current_identity().user_id
    prescription = PrescriptionRequest(
        user_id=user_id,
        product_id=product_id,
        name=_text(data, 'name'),
        phone=_text(data, 'phone'),
        message=_text(data, 'message') or None,
        document_url=_text(data, 'document_url') or None,
        status=PrescriptionStatus.pending,
    )
    db.session.add(prescription)
    db.session.commit()

    current_app.logger.info(f"Prescription request {prescription.id} submitted by user {user_id}")
    return jsonify(prescription.to_dict()), 201


# ── CUSTOMER VIEW ─────────────────────────────────────────────────

@prescriptions.route('/')
@login_required
def index():
    """The current customer's requests, newest first."""
    rows = (PrescriptionRequest.query
            .filter_by(user_id=current_identity().user_id)
            .order_by(PrescriptionRequest.created_at.desc(), PrescriptionRequest.id.desc())
            .all())
    return jsonify([p.to_dict() for p in rows])


@prescriptions.route('/<int:request_id>')
@login_required
def detail(request_id):
    return jsonify(_visible_or_404(request_id).to_dict())


# ── PHARMACY REVIEW ───────────────────────────────────────────────

@prescriptions.route('/queue')
@staff_required
def queue():
    """All requests, oldest first; ?status= narrows to one status."""
    query = PrescriptionRequest.query
    raw = request.args.get('status', '').strip().lower()
    if raw:
        try:
            query = query.filter_by(status=PrescriptionStatus(raw))
        except ValueError:
            return jsonify({'error': f'Unknown status "{raw}".'}), 400
    rows = query.order_by(PrescriptionRequest.created_at.asc(), PrescriptionRequest.id.asc()).all()
    return jsonify([p.to_dict() for p in rows])


@prescriptions.route('/<int:request_id>/status', methods=['PATCH'])
@staff_required
def update_status(request_id):
    prescription = db.session.get(PrescriptionRequest, request_id)
    if prescription is None:
        abort(404)

    data = _payload()
    raw  = _text(data, 'status').lower()
    try:
        status = PrescriptionStatus(raw)
    except ValueError:
        return jsonify({'error': f'Unknown status "{raw}".'}), 400

    if not prescription.can_move_to(status):
        return jsonify({
            'error': f'Cannot move request from {prescription.status.value} to {status.value}.'
        }), 409

    note = _text(data, 'note')
    if len(note) > 500:
        return jsonify({'error': 'Note must be 500 characters or fewer.'}), 400

    old = prescription.status
    prescription.status      = status
    prescription.reviewed_by = current_identity().user_id
    if note:
        prescription.review_note = note
    db.session.commit()

    current_app.logger.info(
        f"Prescription request {prescription.id}: {old.value} → {status.value} "
        f"by user {current_identity().user_id}"
    )
    return jsonify(prescription.to_dict())
