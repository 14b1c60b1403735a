"""
storefront/catalog/validators.py
--------------------------------
Validation for product and review payloads (JSON bodies).
Each validate_* returns a dict of field -> error_message;
an empty dict means the payload can be parsed.
"""
from decimal import Decimal, InvalidOperation

MAX_PRICE = Decimal('99999999.99')    # products.price is NUMERIC(10, 2)
MAX_STOCK = 1_000_000

PRODUCT_TEXT_FIELDS = {'name': 200, 'description': 5000, 'image_url': 500}
PRODUCT_FLAGS = ('requires_prescription', 'is_active')


def _text(data: dict, field: str) -> str:
    value = data.get(field)
    return '' if value is None else str(value).strip()


def _decimal(raw):
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    return value if value.is_finite() else None


def _whole(raw):
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw).strip())
    except ValueError:
        return None


def validate_product(data: dict, partial: bool = False) -> dict:
    """
    Validate a create (partial=False) or update (partial=True) payload.
    On update only the fields present are checked.
    """
    errors = {}

    # ── name ─────────────────────────────────────────────────────
    if not partial or 'name' in data:
        name = _text(data, 'name')
        if not name:
            errors['name'] = 'Product name is required.'
        elif len(name) > PRODUCT_TEXT_FIELDS['name']:
            errors['name'] = 'Product name must be 200 characters or fewer.'

    for field in ('description', 'image_url'):
        if len(_text(data, field)) > PRODUCT_TEXT_FIELDS[field]:
            errors[field] = f'{field} must be {PRODUCT_TEXT_FIELDS[field]} characters or fewer.'

    # ── price ─────────────────────────────────────────────────────
    if not partial or 'price' in data:
        if data.get('price') in (None, ''):
            errors['price'] = 'Price is required.'
        else:
            price = _decimal(data['price'])
            if price is None:
                errors['price'] = 'Price must be a valid number.'
            elif price <= 0:
                errors['price'] = 'Price must be greater than zero.'
            elif price > MAX_PRICE:
                errors['price'] = f'Price cannot exceed {MAX_PRICE}.'

    # ── stock ─────────────────────────────────────────────────────
    if 'stock' in data:
        stock = _whole(data['stock'])
        if stock is None:
            errors['stock'] = 'Stock must be a whole number.'
        elif stock < 0:
            errors['stock'] = 'Stock cannot be negative.'
        elif stock > MAX_STOCK:
            errors['stock'] = f'Stock cannot exceed {MAX_STOCK}.'

    for flag in PRODUCT_FLAGS:
        if flag in data and not isinstance(data[flag], bool):
            errors[flag] = f'{flag} must be true or false.'

    return errors


def parse_product(data: dict, partial: bool = False) -> dict:
    """
    Convert a validated payload to column values.
    Call only after validate_product returns no errors.
    """
    values = {}
    for field in PRODUCT_TEXT_FIELDS:
        if not partial or field in data:
            values[field] = _text(data, field) or None
    if not partial or 'price' in data:
        values['price'] = _decimal(data['price']).quantize(Decimal('0.01'))
    if 'stock' in data:
        values['stock'] = _whole(data['stock'])
    elif not partial:
        values['stock'] = 0
    for flag in PRODUCT_FLAGS:
        if flag in data:
            values[flag] = data[flag]
    return values


def validate_review(data: dict) -> dict:
    errors = {}

    rating = _whole(data.get('rating'))
    if rating is None or not 1 <= rating <= 5:
        errors['rating'] = 'Rating must be a whole number from 1 to 5.'

    title = _text(data, 'title')
    if not 3 <= len(title) <= 100:
        errors['title'] = 'Title must be between 3 and 100 characters.'

    comment = _text(data, 'comment')
    if not 10 <= len(comment) <= 1000:
        errors['comment'] = 'Comment must be between 10 and 1000 characters.'

    return errors
