from datetime import datetime

from flask import jsonify, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from storefront import db
from storefront.cart.sync import get_cart_sync
from storefront.main import main

# More pending cart writes than this means the database is not keeping up
OUTBOX_WARNING_THRESHOLD = 500


@main.route("/health")
def health():
    """Health check for load balancers and monitoring."""
    status = "ok"
    failures = []

    # 1. DB Check
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        db.session.rollback()
        status = "error"
        failures.append(f"DB: {e}")
        current_app.logger.error(f"Health check failed (DB): {e}")

    # 2. Cart sync backlog (this worker process only)
    sync = get_cart_sync()
    pending = len(sync.outbox)
    if pending > OUTBOX_WARNING_THRESHOLD:
        msg = f"Cart sync backlog: {pending} pending writes"
        failures.append(msg)
        current_app.logger.warning(msg)
        if status == "ok":
            status = "warning"

    response = {
        "status": status,
        "timestamp": datetime.utcnow().isoformat(),
        "details": {
            "db": "error" if any(f.startswith("DB") for f in failures) else "ok",
            "cart_sync_mode": sync.mode,
            "cart_sync_pending": pending,
        },
        "failures": failures,
    }
    return jsonify(response), 200 if status != "error" else 503
