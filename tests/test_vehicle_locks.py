"""
Tests for VehicleLockRegistry.
"""
import threading

import pytest

from services.exceptions import LedgerStorageError
from utils.vehicle_locks import VehicleLockRegistry


def _hold_in_thread(locks, *vehicle_ids):
    """Hold the given vehicles from another thread until the returned event is set."""
    held, release = threading.Event(), threading.Event()

    def worker():
        with locks.hold(*vehicle_ids):
            held.set()
            release.wait(5)

    thread = threading.Thread(target=worker)
    thread.start()
    held.wait(5)
    return release, thread


def _free_elsewhere(locks, vehicle_id):
    """True if another thread can take the vehicle lock."""
    result = []

    def worker():
        try:
            with locks.hold(vehicle_id):
                result.append(True)
        except LedgerStorageError:
            result.append(False)

    thread = threading.Thread(target=worker)
    thread.start()
    thread.join()
    return result == [True]


def test_times_out_when_vehicle_is_busy():
    locks = VehicleLockRegistry(timeout=0.1)
    release, thread = _hold_in_thread(locks, 1)
    try:
        with pytest.raises(LedgerStorageError) as exc:
            with locks.hold(1):
                pass
        assert exc.value.details == {'vehicle_id': 1, 'timeout': 0.1}
    finally:
        release.set()
        thread.join()


def test_other_vehicles_are_not_blocked():
    locks = VehicleLockRegistry(timeout=0.1)
    release, thread = _hold_in_thread(locks, 1)
    try:
        with locks.hold(2):
            pass
    finally:
        release.set()
        thread.join()


def test_partial_acquisition_is_released():
    locks = VehicleLockRegistry(timeout=0.1)
    release, thread = _hold_in_thread(locks, 2)
    try:
        with pytest.raises(LedgerStorageError):
            with locks.hold(2, 1):
                pass
    finally:
        release.set()
        thread.join()

    # Vehicle 1 was taken first and must have been let go
    assert _free_elsewhere(locks, 1)


def test_lock_is_reentrant_in_one_thread():
    locks = VehicleLockRegistry(timeout=0.1)

    with locks.hold(1):
        with locks.hold(1, 2):
            pass


def test_none_and_duplicate_ids_are_ignored():
    locks = VehicleLockRegistry(timeout=0.1)

    with locks.hold(3, None, 3):
        pass

    assert set(locks._locks) == {3}


def test_released_after_block():
    locks = VehicleLockRegistry(timeout=0.1)

    with locks.hold(1):
        pass

    assert _free_elsewhere(locks, 1)
