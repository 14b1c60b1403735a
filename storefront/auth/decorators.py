"""
storefront/auth/decorators.py
-----------------------------
Reusable route-protection decorators.
Usage:
    from storefront.auth.decorators import login_required, staff_required

    @orders.route('/checkout', methods=['POST'])
    @login_required
    def checkout():
        ...

    @orders.route('/<int:order_id>/status', methods=['PATCH'])
    @staff_required
    def update_status(order_id):
        ...

Both check the identity resolved for this request, so a session pointing
at a deleted or deactivated account counts as logged out, and a role
change takes effect on the account's next request.
"""
from functools import wraps
from flask import abort

from storefront.auth.identity import current_identity


def login_required(f):
    """Respond 401 if the visitor is a guest."""
    @wraps(f)
    def decorated(*args, **kwargs):
        if current_identity().is_guest:
            abort(401)
        return f(*args, **kwargs)
    return decorated


def staff_required(f):
    """
    Allow access only to sellers and admins.
    Guests receive 401, authenticated customers receive 403.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        if current_identity().is_guest:
            abort(401)
        if not current_identity().is_staff:
            abort(403)
        return f(*args, **kwargs)
    return decorated
