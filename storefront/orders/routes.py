from flask import request, jsonify, abort, current_app
from sqlalchemy.exc import IntegrityError

from storefront import db
from storefront.auth.decorators import login_required, staff_required
from storefront.auth.identity import current_identity
from storefront.cart.loader import current_cart
from storefront.catalog.models import Product
from storefront.orders import orders
from storefront.orders.models import Order, OrderItem, OrderStatus
from storefront.prescriptions.models import PrescriptionStatus, approved_prescription

PAYMENT_METHODS = ('card', 'pix', 'boleto')


class OutOfStock(ValueError):
    """Raised inside checkout when a line asks for more than is on the shelf."""


class PrescriptionRequired(ValueError):
    """Raised inside checkout for a prescription-only line with no approved request."""


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


# ── CHECKOUT ──────────────────────────────────────────────────────

@orders.route('/checkout', methods=['POST'])
@login_required
def checkout():
    """
    Stage an order from the cart:
      1. Lock each product row with SELECT … FOR UPDATE
      2. Verify every product still exists, is active and in stock
      3. Find an approved prescription request for every prescription-only line
      4. Deduct stock
      5. Persist Order + OrderItems at the cart's snapshot prices and mark
         the prescriptions used as dispensed
      6. Commit
      7. Clear the cart
    """
    data             = _payload()
    shipping_address = (data.get('shipping_address') or '').strip()
    payment_method   = (data.get('payment_method') or '').strip().lower()

    if not shipping_address:
        return jsonify({'error': 'A shipping address is required.'}), 400
    if payment_method not in PAYMENT_METHODS:
        return jsonify({'error': f'Payment method must be one of: {", ".join(PAYMENT_METHODS)}.'}), 400

    cart    = current_cart()
    user_id = current_identity().user_id
    if not cart:
        return jsonify({'error': 'Cart is empty. Add products before checking out.'}), 400

    try:
        # ── Lock all product rows in a deterministic order ────────
        # Sorting by id prevents deadlocks between concurrent checkouts.
        try:
            product_ids = sorted(int(line.product_id) for line in cart.items)
        except ValueError:
            raise ValueError('Cart contains an unknown product.')

        locked = {}
        for pid in product_ids:
            product = (
                db.session.query(Product)
                .filter(Product.id == pid)
                .with_for_update()
                .first()
            )
            if product is None or not product.is_active:
                raise ValueError(f'Product ID {pid} is no longer available.')
            locked[pid] = product

        # ── Stock validation (all-or-nothing) ─────────────────────
        for line in cart.items:
            product = locked[int(line.product_id)]
            if product.stock < line.quantity:
                raise OutOfStock(
                    f'Insufficient stock for "{product.name}". '
                    f'Available: {product.stock}, requested: {line.quantity}.'
                )

        # ── Prescription check (one approved request per Rx line) ─
        dispensed = []
        for line in cart.items:
            product = locked[int(line.product_id)]
            if not product.requires_prescription:
                continue
            prescription = approved_prescription(user_id, product.id)
            if prescription is None:
                raise PrescriptionRequired(
                    f'"{product.name}" needs an approved prescription request before checkout.'
                )
            dispensed.append(prescription)

        # ── Persist order ─────────────────────────────────────────
        order = Order(
            user_id=user_id,
            total=cart.total_price,
            status=OrderStatus.pending,
            shipping_address=shipping_address,
            payment_method=payment_method,
        )
        for line in cart.items:
            product = locked[int(line.product_id)]
            product.stock -= line.quantity   # still inside the locked transaction
            order.items.append(OrderItem(
                product_id=product.id,
                name=line.name,
                quantity=line.quantity,
                price=line.price,
            ))
        db.session.add(order)
        db.session.flush()   # order.id for the prescriptions
        for prescription in dispensed:
            prescription.status   = PrescriptionStatus.dispensed
            prescription.order_id = order.id
        db.session.commit()

    except (OutOfStock, PrescriptionRequired) as exc:
        db.session.rollback()
        current_app.logger.warning(f"Checkout rejected for user {user_id}: {exc}")
        return jsonify({'error': str(exc)}), 409

    except ValueError as exc:
        db.session.rollback()
        current_app.logger.warning(f"Checkout rollback (ValueError): {exc}")
        return jsonify({'error': str(exc)}), 400

    except IntegrityError as exc:
        db.session.rollback()
        current_app.logger.error(f"Checkout rollback (IntegrityError): {exc}")
        return jsonify({'error': 'A database error occurred. Please try again.'}), 500

    cart.clear()
    current_app.logger.info(f"Order {order.id} staged by user {user_id} | Total: {order.total}")
    return jsonify(order.to_dict()), 201


# ── ORDER TRACKING ────────────────────────────────────────────────

@orders.route('/')
@login_required
def index():
    """The current customer's orders, newest first."""
    rows = (Order.query
            .filter_by(user_id=current_identity().user_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .all())
    return jsonify([o.to_dict(with_items=False) for o in rows])


@orders.route('/<int:order_id>')
@login_required
def detail(order_id):
    order = db.session.get(Order, order_id)
    if order is None:
        abort(404)
    identity = current_identity()
    if order.user_id != identity.user_id and not identity.is_staff:
        abort(404)   # don't reveal other customers' orders exist
    return jsonify(order.to_dict())


@orders.route('/<int:order_id>/status', methods=['PATCH'])
@staff_required
def update_status(order_id):
    order = db.session.get(Order, order_id)
    if order is None:
        abort(404)

    raw = (_payload().get('status') or '').strip().lower()
    try:
        status = OrderStatus(raw)
    except ValueError:
        return jsonify({'error': f'Unknown status "{raw}".'}), 400

    if not order.can_move_to(status):
        return jsonify({
            'error': f'Cannot move order from {order.status.value} to {status.value}.'
        }), 409

    old = order.status
    order.status = status
    db.session.commit()
    current_app.logger.info(
        f"Order {order.id}: {old.value} → {status.value} by user {current_identity().user_id}"
    )
    return jsonify(order.to_dict())
