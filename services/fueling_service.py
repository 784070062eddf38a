"""
Fueling Service
===============
Create, edit and delete fueling records while keeping the fuel-efficiency
ledger consistent.

Every mutation is one unit of work:

  1. lock the vehicle(s) involved          (VehicleLockRegistry + FOR UPDATE)
  2. resolve neighbours and validate       (services.fuel_validation)
  3. write the record
  4. raise the vehicle's cached mileage    (never lowered)
  5. cascade efficiency forward            (services.fuel_ledger.recalculate_from)
  6. commit, or roll all of it back

Cascade windows
---------------
  create                  vehicle, from the new date
  edit, same vehicle      vehicle, from min(old date, new date)
  edit, moved vehicle     old vehicle from the old date, new vehicle from the new date
  delete                  vehicle, from the deleted record's date

Unlike the other services this one is an instance: the ledger store, lock
registry and clock are injected so tests can run it against
``InMemoryLedgerStore``.  The app factory builds the shared instance; use
``get_fueling_service()`` inside a request or CLI command.
"""
import logging
from datetime import date

from flask import current_app

from services.exceptions import (
    FuelingRecordNotFoundError,
    LedgerStorageError,
    VehicleNotFoundError,
)
from services.fuel_ledger import check_chain, recalculate_from, resolve_neighbors
from services.fuel_validation import (
    clean_fueling_data,
    default_total_cost,
    validate_against_neighbors,
    validate_fueling_date,
)
from utils.vehicle_locks import VehicleLockRegistry

logger = logging.getLogger(__name__)

# Editing either of these recomputes total_cost unless one is supplied
PRICED_FIELDS = frozenset(('quantity_liters', 'cost_per_liter'))


class FuelingService:
    """Mutation coordinator and read access for the fuel ledger."""

    def __init__(self, store, locks=None, today=None, move_retries=3):
        self.store = store
        self.locks = locks or VehicleLockRegistry()
        self.today = today or date.today
        self.move_retries = move_retries

    # ----- mutations -----

    def create_fueling_record(self, data):
        """Record a fueling event and cascade efficiency from its date.

        Raises FuelingValidationError, VehicleNotFoundError or LedgerStorageError.
        """
        fields = clean_fueling_data(data)
        vehicle_id = fields['vehicle_id']
        validate_fueling_date(fields['fueling_date'], self.today())

        with self.locks.hold(vehicle_id), self.store.transaction():
            vehicle = self.store.lock_vehicles([vehicle_id]).get(vehicle_id)
            if vehicle is None:
                raise VehicleNotFoundError(f'Vehicle {vehicle_id} not found', {'vehicle_id': vehicle_id})

            neighbors = resolve_neighbors(self.store, vehicle_id, fields['fueling_date'])
            validate_against_neighbors(fields['mileage_at_fueling'], neighbors)

            record = self.store.add_record(
                vehicle_plate_number=vehicle.plate_number,
                insertion_seq=self.store.next_insertion_seq(),
                **fields
            )
            self.store.raise_vehicle_mileage(vehicle, record.mileage_at_fueling)
            recalculate_from(self.store, vehicle_id, record.fueling_date)

        logger.info(
            "fueling record %s created: vehicle %s, %s, %s km",
            record.id, vehicle_id, fields['fueling_date'], fields['mileage_at_fueling']
        )
        return record

    def update_fueling_record(self, record_id, changes):
        """Apply ``changes`` (any subset of the editable fields) to a record.

        Changing ``vehicle_id`` moves the record to another vehicle's chain;
        both chains are repaired.
        """
        fields = clean_fueling_data(changes, partial=True)
        if 'fueling_date' in fields:
            validate_fueling_date(fields['fueling_date'], self.today())

        for _ in range(self.move_retries):
            existing = self._require_record(record_id)
            old_vehicle_id = existing.vehicle_id
            new_vehicle_id = fields.get('vehicle_id', old_vehicle_id)

            with self.locks.hold(old_vehicle_id, new_vehicle_id), self.store.transaction():
                vehicles = self.store.lock_vehicles([old_vehicle_id, new_vehicle_id])
                record = self._require_record(record_id, refresh=True)
                if record.vehicle_id != old_vehicle_id:
                    # Moved by another writer while we waited; lock the right pair
                    continue

                vehicle = vehicles.get(new_vehicle_id)
                if vehicle is None:
                    raise VehicleNotFoundError(
                        f'Vehicle {new_vehicle_id} not found', {'vehicle_id': new_vehicle_id}
                    )

                values = dict(fields)
                old_date = record.fueling_date
                new_date = values.get('fueling_date', old_date)
                new_mileage = values.get('mileage_at_fueling', record.mileage_at_fueling)
                moved = new_vehicle_id != old_vehicle_id

                neighbors = resolve_neighbors(
                    self.store, new_vehicle_id, new_date, record.insertion_seq, record.id
                )
                validate_against_neighbors(new_mileage, neighbors)

                if PRICED_FIELDS & set(values) and 'total_cost' not in values:
                    values['total_cost'] = default_total_cost(
                        values.get('quantity_liters', record.quantity_liters),
                        values.get('cost_per_liter', record.cost_per_liter)
                    )
                if moved:
                    values['vehicle_plate_number'] = vehicle.plate_number
                self.store.update_record(record, values)
                self.store.raise_vehicle_mileage(vehicle, new_mileage)

                if moved:
                    recalculate_from(self.store, old_vehicle_id, old_date)
                    recalculate_from(self.store, new_vehicle_id, new_date)
                else:
                    recalculate_from(self.store, new_vehicle_id, min(old_date, new_date))

            if moved:
                logger.info(
                    "fueling record %s moved from vehicle %s to %s", record_id, old_vehicle_id, new_vehicle_id
                )
            else:
                logger.info("fueling record %s updated: %s", record_id, sorted(values))
            return record

        raise LedgerStorageError(
            f'Fueling record {record_id} kept moving between vehicles; giving up',
            {'record_id': record_id}
        )

    def delete_fueling_record(self, record_id):
        """Delete a record and re-link its former successor to the record before it."""
        for _ in range(self.move_retries):
            existing = self._require_record(record_id)
            vehicle_id = existing.vehicle_id

            with self.locks.hold(vehicle_id), self.store.transaction():
                self.store.lock_vehicles([vehicle_id])
                record = self._require_record(record_id, refresh=True)
                if record.vehicle_id != vehicle_id:
                    continue

                fueling_date = record.fueling_date
                self.store.delete_record(record)
                recalculate_from(self.store, vehicle_id, fueling_date)

            logger.info("fueling record %s deleted from vehicle %s (%s)", record_id, vehicle_id, fueling_date)
            return

        raise LedgerStorageError(
            f'Fueling record {record_id} kept moving between vehicles; giving up',
            {'record_id': record_id}
        )

    def recalculate_efficiencies(self, vehicle_id=None, from_date=None):
        """Rebuild efficiencies for one vehicle, or every vehicle with records.

        ``from_date=None`` rebuilds whole chains.  Each vehicle is its own
        transaction.  Returns ``{vehicle_id: records_changed}``.
        """
        if vehicle_id is not None:
            if self.store.get_vehicle(vehicle_id) is None:
                raise VehicleNotFoundError(f'Vehicle {vehicle_id} not found', {'vehicle_id': vehicle_id})
            vehicle_ids = [vehicle_id]
        else:
            vehicle_ids = self.store.vehicle_ids()

        results = {}
        for vid in vehicle_ids:
            with self.locks.hold(vid), self.store.transaction():
                self.store.lock_vehicles([vid])
                results[vid] = recalculate_from(self.store, vid, from_date)
        return results

    # ----- reads -----

    def get_fueling_record(self, record_id):
        return self._require_record(record_id)

    def get_fueling_records(self, vehicle_id=None, start_date=None, end_date=None, limit=None):
        """Fueling records newest first."""
        return self.store.list_records(vehicle_id, start_date, end_date, limit)

    def get_ledger_mileage(self, vehicle_id):
        """Cached mileage next to the authoritative maximum from the ledger."""
        vehicle = self.store.get_vehicle(vehicle_id)
        if vehicle is None:
            raise VehicleNotFoundError(f'Vehicle {vehicle_id} not found', {'vehicle_id': vehicle_id})
        return {
            'vehicle_id': vehicle_id,
            'cached_mileage': vehicle.current_mileage,
            'ledger_mileage': self.store.max_mileage(vehicle_id),
        }

    def check_ledger(self, vehicle_id=None):
        """Read-only audit. Returns ``{vehicle_id: [LedgerIssue, ...]}`` for chains with issues."""
        vehicle_ids = [vehicle_id] if vehicle_id is not None else self.store.vehicle_ids()
        report = {}
        for vid in vehicle_ids:
            issues = check_chain(self.store, vid)
            if issues:
                report[vid] = issues
        return report

    def _require_record(self, record_id, refresh=False):
        record = self.store.get_record(record_id, refresh=refresh)
        if record is None:
            raise FuelingRecordNotFoundError(f'Fueling record {record_id} not found', {'record_id': record_id})
        return record


def get_fueling_service():
    """The FuelingService built by the app factory."""
    return current_app.extensions['fueling_service']
