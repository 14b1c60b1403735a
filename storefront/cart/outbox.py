"""
storefront/cart/outbox.py
-------------------------
Pending remote cart writes for authenticated users.

Cart mutations never wait on the database. They drop a SyncOperation in
the outbox and return; the outbox is drained later (by SyncWorker, or
straight away in inline mode).

Rules
─────
  • One pending entry per (user_id, product_id). A newer write for the
    same key replaces the older one; only the latest state is sent.
  • A 'clear' for a user removes that user's pending item writes and is
    applied before any write the user makes afterwards.
  • Entries are applied in insertion order. An entry that fails or is
    still backing off blocks the later entries of the same user for that
    pass, so a user's writes never overtake each other.
  • Failures are retried with exponential backoff up to max_attempts,
    then dropped with an error log.

    base=0.5 →  attempt 1 fails: retry after 0.5s
                attempt 2 fails: retry after 1.0s
                attempt 3 fails: retry after 2.0s   … capped at backoff_max
"""
from __future__ import annotations
import itertools
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
from threading import Event, Lock, Thread
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

UPSERT = 'upsert'
DELETE = 'delete'
CLEAR  = 'clear'


@dataclass
class SyncOperation:
    """One pending write against the cart_items table."""
    kind:       str
    user_id:    int
    product_id: Optional[str] = None   # None for CLEAR
    quantity:   int = 0
    name:       str = ''
    price:      Decimal = Decimal('0')
    image_url:  str = ''
    # ── Outbox bookkeeping ────────────────────────────────────────
    seq:        int = 0
    attempts:   int = 0
    not_before: float = 0.0

    @property
    def key(self) -> Tuple[int, Optional[str]]:
        return (self.user_id, self.product_id)

    @classmethod
    def upsert(cls, user_id, line) -> 'SyncOperation':
        return cls(UPSERT, user_id, line.product_id, line.quantity,
                   line.name, line.price, line.image_url)

    @classmethod
    def delete(cls, user_id, product_id) -> 'SyncOperation':
        return cls(DELETE, user_id, product_id)

    @classmethod
    def clear(cls, user_id) -> 'SyncOperation':
        return cls(CLEAR, user_id)


class SyncOutbox:
    """Thread-safe, per-key collapsing queue of SyncOperations."""

    def __init__(self,
                 apply: Callable[[SyncOperation], None],
                 max_attempts: int = 8,
                 backoff_base: float = 0.5,
                 backoff_max: float = 60.0,
                 clock: Callable[[], float] = time.monotonic):
        self._apply = apply
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._backoff_max = backoff_max
        self._clock = clock
        self._pending: 'OrderedDict[Tuple[int, Optional[str]], SyncOperation]' = OrderedDict()
        self._lock = Lock()
        self._drain_lock = Lock()
        self._seq = itertools.count(1)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    # ── Enqueue ───────────────────────────────────────────────────

    def enqueue(self, op: SyncOperation) -> None:
        with self._lock:
            op.seq = next(self._seq)
            op.attempts = 0
            op.not_before = 0.0
            if op.kind == CLEAR:
                for key in [k for k in self._pending if k[0] == op.user_id]:
                    del self._pending[key]
                self._pending[op.key] = op
            else:
                # Replacing in place keeps the key's position, which is
                # already behind any pending clear for this user.
                self._pending[op.key] = op
        logger.debug(f"Cart sync queued: {op.kind} user={op.user_id} product={op.product_id}")

    # ── Inspection ────────────────────────────────────────────────

    def pending(self) -> List[SyncOperation]:
        with self._lock:
            return list(self._pending.values())

    def pending_for(self, user_id: int) -> List[SyncOperation]:
        """The user's pending writes, in the order they will be applied."""
        with self._lock:
            return [op for op in self._pending.values() if op.user_id == user_id]

    # ── Drain ─────────────────────────────────────────────────────

    def drain(self, wait: bool = False) -> int:
        """
        Apply every due entry once. Returns the number applied.
        A concurrent drain in another thread makes this a no-op, unless
        `wait` is set, in which case this pass runs after that one.
        """
        if not self._drain_lock.acquire(blocking=wait):
            return 0
        try:
            now = self._clock()
            applied = 0
            blocked = set()
            for op in self.pending():
                if op.user_id in blocked or not self._is_current(op):
                    continue
                if op.not_before > now:
                    blocked.add(op.user_id)
                    continue
                try:
                    self._apply(op)
                except Exception as exc:
                    self._record_failure(op, exc, now)
                    blocked.add(op.user_id)
                    continue
                self._record_success(op)
                applied += 1
            return applied
        finally:
            self._drain_lock.release()

    def _is_current(self, op: SyncOperation) -> bool:
        with self._lock:
            return self._pending.get(op.key) is op

    def _record_success(self, op: SyncOperation) -> None:
        with self._lock:
            # A newer write for the same key arrived mid-flight: keep it
            if self._pending.get(op.key) is op:
                del self._pending[op.key]

    def _record_failure(self, op: SyncOperation, exc: Exception, now: float) -> None:
        with self._lock:
            if self._pending.get(op.key) is not op:
                return
            op.attempts += 1
            if op.attempts >= self._max_attempts:
                del self._pending[op.key]
                logger.error(
                    f"Cart sync dropped after {op.attempts} attempts: {op.kind} "
                    f"user={op.user_id} product={op.product_id}: {exc}"
                )
                return
            delay = min(self._backoff_base * (2 ** (op.attempts - 1)), self._backoff_max)
            op.not_before = now + delay
        logger.warning(
            f"Cart sync failed ({op.attempts}/{self._max_attempts}), retry in {delay:.1f}s: "
            f"{op.kind} user={op.user_id} product={op.product_id}: {exc}"
        )


class SyncWorker(Thread):
    """Background thread that drains the outbox inside an app context."""

    def __init__(self, app, outbox: SyncOutbox, interval: float = 2.0):
        super().__init__(name='cart-sync', daemon=True)
        self._app = app
        self._outbox = outbox
        self._interval = interval
        self._wake = Event()
        self._running = True

    def notify(self) -> None:
        """Drain as soon as possible instead of waiting for the interval."""
        self._wake.set()

    def stop(self) -> None:
        self._running = False
        self._wake.set()

    def run(self) -> None:
        logger.info("Cart sync worker started")
        while self._running:
            self._wake.wait(self._interval)
            self._wake.clear()
            if not self._running:
                break
            try:
                with self._app.app_context():
                    self._outbox.drain()
            except Exception:
                # Keep the worker alive; the entries stay queued
                logger.exception("Cart sync worker pass failed")
        logger.info("Cart sync worker stopped")
