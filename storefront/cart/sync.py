"""
storefront/cart/sync.py
-----------------------
Wires the process-wide cart outbox into the Flask app.

CART_SYNC_MODE
  background → a SyncWorker thread drains the outbox (started on the
               first write, woken on every write)
  inline     → the outbox is drained in the calling thread right after
               each write, waiting for a drain already running in
               another thread; failures are still only logged
"""
import logging
from threading import Lock

from flask import current_app

from storefront.cart.outbox import SyncOutbox, SyncWorker

logger = logging.getLogger(__name__)

BACKGROUND = 'background'
INLINE     = 'inline'


class CartSync:
    """Front door used by RemoteCartStore to submit writes."""

    def __init__(self, app, outbox: SyncOutbox, mode: str = BACKGROUND, interval: float = 2.0):
        if mode not in (BACKGROUND, INLINE):
            raise ValueError(f'Unknown CART_SYNC_MODE: {mode!r}')
        self.app = app
        self.outbox = outbox
        self.mode = mode
        self.interval = interval
        self._worker = None
        self._worker_lock = Lock()

    def submit(self, op) -> None:
        self.outbox.enqueue(op)
        if self.mode == INLINE:
            # No worker exists in this mode, so this thread must drain its own write
            self.outbox.drain(wait=True)
        else:
            self._ensure_worker().notify()

    def flush(self) -> int:
        """Drain due entries now, in the current thread (needs an app context)."""
        return self.outbox.drain()

    def pending_for(self, user_id):
        return self.outbox.pending_for(user_id)

    def stop(self) -> None:
        with self._worker_lock:
            if self._worker is not None:
                self._worker.stop()
                self._worker.join(timeout=1.0)
                self._worker = None

    def _ensure_worker(self) -> SyncWorker:
        with self._worker_lock:
            if self._worker is None or not self._worker.is_alive():
                self._worker = SyncWorker(self.app, self.outbox, self.interval)
                self._worker.start()
            return self._worker


def init_cart_sync(app) -> CartSync:
    from storefront.cart.remote import apply_operation

    outbox = SyncOutbox(
        apply_operation,
        max_attempts=app.config['CART_SYNC_MAX_ATTEMPTS'],
        backoff_base=app.config['CART_SYNC_BACKOFF_BASE'],
        backoff_max=app.config['CART_SYNC_BACKOFF_MAX'],
    )
    sync = CartSync(
        app, outbox,
        mode=app.config['CART_SYNC_MODE'],
        interval=app.config['CART_SYNC_INTERVAL'],
    )
    app.extensions['cart_sync'] = sync
    app.logger.info(f"Cart sync mode: {sync.mode}")
    return sync


def get_cart_sync() -> CartSync:
    return current_app.extensions['cart_sync']
