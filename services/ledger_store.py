"""
Ledger Store
============
Storage contract used by the fuel ledger, with two implementations:

  SQLAlchemyLedgerStore  the real store, backed by a SQLAlchemy session
                         (normally ``extensions.db.session``).
  InMemoryLedgerStore    same contract over plain Python objects, so the
                         resolver, validator and recalculator can be tested
                         without a database.

Ordering
--------
Within one vehicle, records are ordered by ``(fueling_date, insertion_seq, id)``.
"Position" arguments below take the date plus, for a record that already
exists, its ``insertion_seq`` and ``id``.  When only a date is given the
position is "after every record on that date", which is where a brand-new
record lands because it receives the next (largest) sequence number.

Transactions
------------
``with store.transaction():`` commits when the block exits cleanly and rolls
back on any exception.  Database errors surface as ``LedgerStorageError``.
"""
import copy
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import SQLAlchemyError

from models.fuel import FuelingRecord
from models.vehicles import Vehicle
from services.exceptions import LedgerStorageError


class LedgerStore:
    """Interface shared by the ledger stores."""

    def transaction(self):
        raise NotImplementedError

    def lock_vehicles(self, vehicle_ids):
        """Lock and return ``{vehicle_id: vehicle}`` for the ids that exist."""
        raise NotImplementedError

    def get_vehicle(self, vehicle_id):
        raise NotImplementedError

    def get_record(self, record_id, refresh=False):
        raise NotImplementedError

    def vehicle_ids(self):
        """Ids of every vehicle that has at least one fueling record."""
        raise NotImplementedError

    def find_previous(self, vehicle_id, fueling_date, insertion_seq=None, record_id=None):
        """Nearest record strictly before the given position."""
        raise NotImplementedError

    def find_next(self, vehicle_id, fueling_date, insertion_seq=None, record_id=None):
        """Nearest record strictly after the given position."""
        raise NotImplementedError

    def find_last_before(self, vehicle_id, start_date):
        """Last record dated strictly before ``start_date``."""
        raise NotImplementedError

    def records_from(self, vehicle_id, start_date=None):
        """Records dated on or after ``start_date`` (all when None), in ledger order."""
        raise NotImplementedError

    def list_records(self, vehicle_id=None, start_date=None, end_date=None, limit=None):
        """Records newest first, optionally filtered."""
        raise NotImplementedError

    def max_mileage(self, vehicle_id):
        raise NotImplementedError

    def next_insertion_seq(self):
        raise NotImplementedError

    def add_record(self, **fields):
        raise NotImplementedError

    def update_record(self, record, fields):
        raise NotImplementedError

    def delete_record(self, record):
        raise NotImplementedError

    def set_efficiency(self, record, value):
        raise NotImplementedError

    def raise_vehicle_mileage(self, vehicle, mileage):
        """Set the vehicle's cached mileage to ``mileage`` if it is higher.

        Returns True when the cache moved.
        """
        if mileage is not None and mileage > (vehicle.current_mileage or 0):
            vehicle.current_mileage = mileage
            return True
        return False


# ---------------------------------------------------------------------------
# SQLAlchemy
# ---------------------------------------------------------------------------

class SQLAlchemyLedgerStore(LedgerStore):
    """Ledger store over a SQLAlchemy session."""

    def __init__(self, session):
        self.session = session

    @contextmanager
    def transaction(self):
        try:
            yield self
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise LedgerStorageError(f'Fuel ledger transaction failed: {exc}') from exc
        except Exception:
            self.session.rollback()
            raise

    def lock_vehicles(self, vehicle_ids):
        # FOR UPDATE in id order, so two movers never wait on each other.
        # SQLite renders no FOR UPDATE; the in-process locks cover it there.
        vehicles = self.session.query(Vehicle).filter(
            Vehicle.id.in_(sorted(set(vehicle_ids)))
        ).order_by(Vehicle.id).with_for_update().populate_existing().all()
        return {v.id: v for v in vehicles}

    def get_vehicle(self, vehicle_id):
        return self.session.get(Vehicle, vehicle_id)

    def get_record(self, record_id, refresh=False):
        # refresh=True re-reads the row instead of trusting the identity map
        return self.session.get(FuelingRecord, record_id, populate_existing=refresh)

    def vehicle_ids(self):
        rows = self.session.query(FuelingRecord.vehicle_id).distinct().order_by(FuelingRecord.vehicle_id).all()
        return [row[0] for row in rows]

    def _chain(self, vehicle_id):
        return self.session.query(FuelingRecord).filter(FuelingRecord.vehicle_id == vehicle_id)

    @staticmethod
    def _before(fueling_date, insertion_seq, record_id):
        R = FuelingRecord
        if insertion_seq is None:
            return R.fueling_date <= fueling_date
        return or_(
            R.fueling_date < fueling_date,
            and_(
                R.fueling_date == fueling_date,
                or_(
                    R.insertion_seq < insertion_seq,
                    and_(R.insertion_seq == insertion_seq, R.id < record_id),
                ),
            ),
        )

    @staticmethod
    def _after(fueling_date, insertion_seq, record_id):
        R = FuelingRecord
        if insertion_seq is None:
            return R.fueling_date > fueling_date
        return or_(
            R.fueling_date > fueling_date,
            and_(
                R.fueling_date == fueling_date,
                or_(
                    R.insertion_seq > insertion_seq,
                    and_(R.insertion_seq == insertion_seq, R.id > record_id),
                ),
            ),
        )

    def find_previous(self, vehicle_id, fueling_date, insertion_seq=None, record_id=None):
        query = self._chain(vehicle_id).filter(self._before(fueling_date, insertion_seq, record_id))
        if record_id is not None:
            query = query.filter(FuelingRecord.id != record_id)
        return query.order_by(
            FuelingRecord.fueling_date.desc(),
            FuelingRecord.insertion_seq.desc(),
            FuelingRecord.id.desc()
        ).first()

    def find_next(self, vehicle_id, fueling_date, insertion_seq=None, record_id=None):
        query = self._chain(vehicle_id).filter(self._after(fueling_date, insertion_seq, record_id))
        if record_id is not None:
            query = query.filter(FuelingRecord.id != record_id)
        return query.order_by(
            FuelingRecord.fueling_date.asc(),
            FuelingRecord.insertion_seq.asc(),
            FuelingRecord.id.asc()
        ).first()

    def find_last_before(self, vehicle_id, start_date):
        return self._chain(vehicle_id).filter(
            FuelingRecord.fueling_date < start_date
        ).order_by(
            FuelingRecord.fueling_date.desc(),
            FuelingRecord.insertion_seq.desc(),
            FuelingRecord.id.desc()
        ).first()

    def records_from(self, vehicle_id, start_date=None):
        query = self._chain(vehicle_id)
        if start_date is not None:
            query = query.filter(FuelingRecord.fueling_date >= start_date)
        return query.order_by(
            FuelingRecord.fueling_date.asc(),
            FuelingRecord.insertion_seq.asc(),
            FuelingRecord.id.asc()
        ).all()

    def list_records(self, vehicle_id=None, start_date=None, end_date=None, limit=None):
        query = self.session.query(FuelingRecord)
        if vehicle_id is not None:
            query = query.filter(FuelingRecord.vehicle_id == vehicle_id)
        if start_date is not None:
            query = query.filter(FuelingRecord.fueling_date >= start_date)
        if end_date is not None:
            query = query.filter(FuelingRecord.fueling_date <= end_date)
        query = query.order_by(
            FuelingRecord.fueling_date.desc(),
            FuelingRecord.insertion_seq.desc(),
            FuelingRecord.id.desc()
        )
        if limit:
            query = query.limit(limit)
        return query.all()

    def max_mileage(self, vehicle_id):
        return self.session.query(func.max(FuelingRecord.mileage_at_fueling)).filter(
            FuelingRecord.vehicle_id == vehicle_id
        ).scalar()

    def next_insertion_seq(self):
        current = self.session.query(func.max(FuelingRecord.insertion_seq)).scalar()
        return (current or 0) + 1

    def add_record(self, **fields):
        record = FuelingRecord(**fields)
        self.session.add(record)
        self.session.flush()  # Flush to get the ID
        return record

    def update_record(self, record, fields):
        for key, value in fields.items():
            setattr(record, key, value)
        self.session.flush()
        return record

    def delete_record(self, record):
        self.session.delete(record)
        self.session.flush()

    def set_efficiency(self, record, value):
        record.fuel_efficiency = value
        self.session.add(record)  # Explicitly mark for update


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------

@dataclass
class MemoryVehicle:
    id: int
    plate_number: str = ''
    current_mileage: int = 0


@dataclass
class MemoryRecord:
    id: int
    vehicle_id: int
    fueling_date: date
    mileage_at_fueling: int
    quantity_liters: Decimal
    insertion_seq: int
    fuel_efficiency: Optional[Decimal] = None
    vehicle_plate_number: Optional[str] = None
    cost_per_liter: Optional[Decimal] = None
    total_cost: Optional[Decimal] = None
    station: Optional[str] = None
    responsible: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def ledger_key(self):
        return (self.fueling_date, self.insertion_seq, self.id)


class InMemoryLedgerStore(LedgerStore):
    """Ledger store kept in dictionaries; rollback restores a snapshot."""

    def __init__(self):
        self.vehicles = {}
        self.records = {}
        self._last_id = 0
        self._last_seq = 0
        self._snapshot = None

    def add_vehicle(self, vehicle_id, plate_number='', current_mileage=0):
        vehicle = MemoryVehicle(id=vehicle_id, plate_number=plate_number, current_mileage=current_mileage)
        self.vehicles[vehicle_id] = vehicle
        return vehicle

    @contextmanager
    def transaction(self):
        if self._snapshot is not None:
            # Already inside a transaction; the outer block decides.
            yield self
            return
        self._snapshot = copy.deepcopy((self.vehicles, self.records, self._last_id, self._last_seq))
        try:
            yield self
        except Exception:
            self.vehicles, self.records, self._last_id, self._last_seq = self._snapshot
            raise
        finally:
            self._snapshot = None

    def lock_vehicles(self, vehicle_ids):
        return {vid: self.vehicles[vid] for vid in sorted(set(vehicle_ids)) if vid in self.vehicles}

    def get_vehicle(self, vehicle_id):
        return self.vehicles.get(vehicle_id)

    def get_record(self, record_id, refresh=False):
        return self.records.get(record_id)

    def vehicle_ids(self):
        return sorted({r.vehicle_id for r in self.records.values()})

    def _chain(self, vehicle_id):
        return sorted(
            (r for r in self.records.values() if r.vehicle_id == vehicle_id),
            key=lambda r: r.ledger_key
        )

    @staticmethod
    def _is_before(record, fueling_date, insertion_seq, record_id):
        if insertion_seq is None:
            return record.fueling_date <= fueling_date
        return record.ledger_key < (fueling_date, insertion_seq, record_id)

    @staticmethod
    def _is_after(record, fueling_date, insertion_seq, record_id):
        if insertion_seq is None:
            return record.fueling_date > fueling_date
        return record.ledger_key > (fueling_date, insertion_seq, record_id)

    def find_previous(self, vehicle_id, fueling_date, insertion_seq=None, record_id=None):
        candidates = [
            r for r in self._chain(vehicle_id)
            if r.id != record_id and self._is_before(r, fueling_date, insertion_seq, record_id)
        ]
        return candidates[-1] if candidates else None

    def find_next(self, vehicle_id, fueling_date, insertion_seq=None, record_id=None):
        for r in self._chain(vehicle_id):
            if r.id != record_id and self._is_after(r, fueling_date, insertion_seq, record_id):
                return r
        return None

    def find_last_before(self, vehicle_id, start_date):
        candidates = [r for r in self._chain(vehicle_id) if r.fueling_date < start_date]
        return candidates[-1] if candidates else None

    def records_from(self, vehicle_id, start_date=None):
        return [
            r for r in self._chain(vehicle_id)
            if start_date is None or r.fueling_date >= start_date
        ]

    def list_records(self, vehicle_id=None, start_date=None, end_date=None, limit=None):
        records = [
            r for r in self.records.values()
            if (vehicle_id is None or r.vehicle_id == vehicle_id)
            and (start_date is None or r.fueling_date >= start_date)
            and (end_date is None or r.fueling_date <= end_date)
        ]
        records.sort(key=lambda r: r.ledger_key, reverse=True)
        return records[:limit] if limit else records

    def max_mileage(self, vehicle_id):
        readings = [r.mileage_at_fueling for r in self.records.values() if r.vehicle_id == vehicle_id]
        return max(readings) if readings else None

    def next_insertion_seq(self):
        return self._last_seq + 1

    def add_record(self, **fields):
        self._last_id += 1
        self._last_seq = max(self._last_seq, fields.get('insertion_seq') or 0)
        record = MemoryRecord(id=self._last_id, **fields)
        self.records[record.id] = record
        return record

    def update_record(self, record, fields):
        for key, value in fields.items():
            setattr(record, key, value)
        return record

    def delete_record(self, record):
        del self.records[record.id]

    def set_efficiency(self, record, value):
        record.fuel_efficiency = value
