from flask import request, jsonify, abort, current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from storefront import db
from storefront.auth.decorators import login_required, staff_required
from storefront.auth.identity import current_identity
from storefront.catalog import catalog
from storefront.catalog.models import Product, ProductReview
from storefront.catalog.validators import (
    validate_product, parse_product, validate_review,
)


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _active_or_404(product_id) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or not product.is_active:
        abort(404)
    return product


# ── BROWSE ────────────────────────────────────────────────────────

@catalog.route('/')
def index():
    """Active products, optionally filtered by ?q= on the name."""
    q = request.args.get('q', '').strip()
    query = Product.query.filter_by(is_active=True)
    if q:
        query = query.filter(Product.name.ilike(f'%{q}%'))
    products = query.order_by(Product.name).limit(100).all()
    return jsonify([p.to_dict() for p in products])


@catalog.route('/<int:product_id>')
def detail(product_id):
    return jsonify(_active_or_404(product_id).to_dict())


# ── REVIEWS ───────────────────────────────────────────────────────

@catalog.route('/<int:product_id>/reviews')
def reviews(product_id):
    """Newest reviews first, with the average rating."""
    _active_or_404(product_id)
    rows = (ProductReview.query
            .filter_by(product_id=product_id)
            .order_by(ProductReview.created_at.desc(), ProductReview.id.desc())
            .all())
    average = (db.session.query(func.avg(ProductReview.rating))
               .filter(ProductReview.product_id == product_id)
               .scalar())
    return jsonify({
        'product_id': product_id,
        'count':      len(rows),
        'average':    round(float(average), 1) if average is not None else None,
        'reviews':    [r.to_dict() for r in rows],
    })


@catalog.route('/<int:product_id>/reviews', methods=['POST'])
@login_required
def add_review(product_id):
    _active_or_404(product_id)
    data   = _payload()
    errors = validate_review(data)
    if errors:
        return jsonify({'error': 'Review is not valid.', 'errors': errors}), 400

    user_id = current_identity().user_id
    if ProductReview.query.filter_by(product_id=product_id, user_id=user_id).first():
        return jsonify({'error': 'You have already reviewed this product.'}), 400

    review = ProductReview(
        product_id=product_id,
        user_id=user_id,
        rating=int(data['rating']),
        title=str(data['title']).strip(),
        comment=str(data['comment']).strip(),
    )
    try:
        db.session.add(review)
        db.session.commit()
    except IntegrityError:
        # A second submission won the race past the check above
        db.session.rollback()
        return jsonify({'error': 'You have already reviewed this product.'}), 400

    current_app.logger.info(f"Review {review.id} on product {product_id} by user {user_id}")
    return jsonify(review.to_dict()), 201


# ── MANAGE (sellers and admins) ───────────────────────────────────

@catalog.route('/manage')
@staff_required
def manage():
    """Every product, retired ones included, ordered by name."""
    q = request.args.get('q', '').strip()
    query = Product.query
    if q:
        query = query.filter(Product.name.ilike(f'%{q}%'))
    products = query.order_by(Product.name.asc()).all()
    return jsonify([dict(p.to_dict(), is_active=p.is_active) for p in products])


@catalog.route('/', methods=['POST'])
@staff_required
def create():
    data   = _payload()
    errors = validate_product(data)
    if errors:
        return jsonify({'error': 'Product is not valid.', 'errors': errors}), 400

    product = Product(**parse_product(data))
    db.session.add(product)
    db.session.commit()

    current_app.logger.info(
        f"Product created: {product.name} (id {product.id}) by user {current_identity().user_id}"
    )
    return jsonify(dict(product.to_dict(), is_active=product.is_active)), 201


@catalog.route('/<int:product_id>', methods=['PATCH'])
@staff_required
def update(product_id):
    """Change any subset of fields; is_active=false retires the product."""
    product = db.session.get(Product, product_id)
    if product is None:
        abort(404)

    data   = _payload()
    errors = validate_product(data, partial=True)
    if errors:
        return jsonify({'error': 'Product is not valid.', 'errors': errors}), 400

    for field, value in parse_product(data, partial=True).items():
        setattr(product, field, value)
    db.session.commit()

    current_app.logger.info(
        f"Product updated: {product.name} (id {product.id}) by user {current_identity().user_id}"
    )
    return jsonify(dict(product.to_dict(), is_active=product.is_active))
