"""
Per-vehicle locks for fuel ledger mutations.

A create/update/delete reads the neighbouring records, validates, writes and
then cascades.  Two mutations on the same vehicle must not interleave those
steps, so each one holds the vehicle's lock for the whole unit of work.
Moves hold both vehicles.  Locks are always taken in ascending id order.

This serializes writers inside one process; across processes the ledger store
also takes ``SELECT ... FOR UPDATE`` on the vehicle rows.
"""
import threading
from contextlib import contextmanager

from services.exceptions import LedgerStorageError


class VehicleLockRegistry:
    def __init__(self, timeout=10):
        self.timeout = timeout
        self._guard = threading.Lock()
        self._locks = {}

    def _lock_for(self, vehicle_id):
        with self._guard:
            lock = self._locks.get(vehicle_id)
            if lock is None:
                lock = self._locks[vehicle_id] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, *vehicle_ids):
        """Hold the locks of every given vehicle for the duration of the block.

        Raises LedgerStorageError if a lock cannot be taken within ``timeout``.
        """
        acquired = []
        try:
            for vehicle_id in sorted(set(v for v in vehicle_ids if v is not None)):
                lock = self._lock_for(vehicle_id)
                if not lock.acquire(timeout=self.timeout):
                    raise LedgerStorageError(
                        f'Timed out waiting for the fuel ledger of vehicle {vehicle_id}',
                        {'vehicle_id': vehicle_id, 'timeout': self.timeout}
                    )
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
