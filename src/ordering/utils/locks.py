"""Per-customer locks serializing cart checkout and points movements.

Locks are process-local. Across processes the cart revision check and the
points account invariants still reject conflicting writes.

The registry holds locks weakly: a customer's lock lives only while some
caller holds a reference to it, so idle customers cost nothing.
"""

import threading
import weakref
from contextlib import contextmanager

_registry_lock = threading.Lock()
_customer_locks: "weakref.WeakValueDictionary[str, threading.RLock]" = weakref.WeakValueDictionary()


def _lock_for(customer_id: str) -> threading.RLock:
    with _registry_lock:
        lock = _customer_locks.get(customer_id)
        if lock is None:
            lock = _customer_locks[customer_id] = threading.RLock()
        return lock


@contextmanager
def customer_lock(customer_id):
    lock = _lock_for(str(customer_id))
    with lock:
        yield
