from flask import request, session, jsonify, current_app, abort
from storefront import db
from storefront.auth import auth
from storefront.auth.identity import Identity, current_identity, reset_identity
from storefront.auth.models import User, RoleEnum


def _payload() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@auth.route('/register', methods=['POST'])
def register():
    """Create a customer account. Sellers and admins come from the CLI."""
    data     = _payload()
    name     = (data.get('name') or '').strip()
    email    = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if not name or not email or not password:
        return jsonify({'error': 'Name, email and password are required.'}), 400
    if '@' not in email:
        return jsonify({'error': 'Email address is not valid.'}), 400
    if len(password) < 6:
        return jsonify({'error': 'Password must be at least 6 characters.'}), 400
    if User.query.filter_by(email=email).first():
        return jsonify({'error': 'An account with this email already exists.'}), 400

    user = User(name=name, email=email, role=RoleEnum.customer)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()

    current_app.logger.info(f"Account registered: {email}")
    return jsonify(user.to_dict()), 201


@auth.route('/login', methods=['POST'])
def login():
    """
    Validate credentials and populate the session.

    The session is reset, which drops the guest cart with it unless
    CART_MERGE_ON_LOGIN is set, in which case the guest lines are added
    to the account cart (quantities merged per product).
    """
    from storefront.cart.guest import GuestCartStore
    from storefront.cart.loader import load_cart

    data     = _payload()
    email    = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if not email or not password:
        return jsonify({'error': 'Email and password are required.'}), 400

    user = User.query.filter_by(email=email).first()
    if user is None or not user.is_active or not user.check_password(password):
        # Deliberately vague — don't reveal which field was wrong
        current_app.logger.warning(f"Failed login attempt for: {email}")
        return jsonify({'error': 'Invalid email or password.'}), 401

    guest_lines = GuestCartStore(session, current_app.config['CART_GUEST_KEY']).hydrate()

    # ── Populate session (minimal — only what's needed) ──
    session.clear()
    session['user_id'] = user.id
    session.permanent  = True
    reset_identity()

    if guest_lines and current_app.config['CART_MERGE_ON_LOGIN']:
        account_cart = load_cart(Identity(user_id=user.id, is_staff=user.is_staff))
        for line in guest_lines:
            account_cart.add_item(line.to_dict(), line.quantity)
        current_app.logger.info(f"Merged {len(guest_lines)} guest cart line(s) into user {user.id}")

    current_app.logger.info(f"User {user.email} logged in successfully.")
    return jsonify(user.to_dict())


@auth.route('/logout', methods=['POST'])
def logout():
    """Clear the session; the next request starts with an empty guest cart."""
    session.clear()
    reset_identity()
    return jsonify({'message': 'Logged out.'})


@auth.route('/me')
def me():
    identity = current_identity()
    if identity.is_guest:
        return jsonify({'guest': True})
    user = db.session.get(User, identity.user_id)
    if user is None:
        abort(401)
    data = user.to_dict()
    data['guest'] = False
    return jsonify(data)
