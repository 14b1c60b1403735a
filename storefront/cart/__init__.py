from flask import Blueprint

cart = Blueprint('cart', __name__)

from storefront.cart import routes  # noqa: F401, E402
from storefront.cart import models  # noqa: F401, E402  — registers CartItem with SQLAlchemy
