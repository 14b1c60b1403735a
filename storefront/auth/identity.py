"""
storefront/auth/identity.py
---------------------------
Resolves who the current visitor is, once per request.

The result decides which cart store backs the request, so a failing
lookup must never take the cart down with it: any database error is
logged and the visitor is served as a guest.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from flask import g, session
from sqlalchemy.exc import SQLAlchemyError

from storefront import db

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """Guest when user_id is None, otherwise an authenticated account."""
    user_id: Optional[int] = None
    # Seller or admin, as stored on the account when the request began
    is_staff: bool = False

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    def __str__(self):
        return 'guest' if self.is_guest else f'user:{self.user_id}'


GUEST = Identity()


def resolve_identity() -> Identity:
    """Look up session['user_id'] against the users table (one query)."""
    from storefront.auth.models import User

    user_id = session.get('user_id')
    if user_id is None:
        return GUEST

    try:
        user = db.session.get(User, user_id)
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error(f"Identity lookup failed for user {user_id}, serving as guest: {exc}")
        return GUEST

    if user is None or not user.is_active:
        return GUEST
    return Identity(user_id=user.id, is_staff=user.is_staff)


def current_identity() -> Identity:
    """Identity for this request, resolved on first use and then cached."""
    if 'identity' not in g:
        g.identity = resolve_identity()
    return g.identity


def reset_identity() -> None:
    """Forget the cached identity (after login/logout changed the session)."""
    g.pop('identity', None)
    g.pop('cart', None)
