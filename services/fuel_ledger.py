"""
Fuel Ledger
===========
Neighbour resolution and cascade recalculation of fuel efficiency.

Each FuelingRecord's ``fuel_efficiency`` is derived from its own reading and
the reading of the record immediately before it in the vehicle's chain::

    distance   = mileage_at_fueling - previous.mileage_at_fueling
    efficiency = round(distance / quantity_liters, 1)   if distance > 0 and quantity > 0
                 None                                   otherwise, or with no previous record

A change anywhere in the chain can only affect that record and the ones after
it, so ``recalculate_from()`` walks forward from the earliest touched date and
leaves everything earlier alone.
"""
import logging
from collections import namedtuple
from decimal import Decimal, ROUND_HALF_UP

logger = logging.getLogger(__name__)

EFFICIENCY_PLACES = Decimal('0.1')

Neighbors = namedtuple('Neighbors', ['previous', 'next'])
LedgerIssue = namedtuple('LedgerIssue', ['record_id', 'kind', 'message'])


def calculate_efficiency(mileage, previous_mileage, quantity_liters):
    """Distance per litre since the previous fill, rounded to one decimal.

    Returns None when there is no previous reading, when the distance is not
    positive, or when no fuel was recorded.
    """
    if previous_mileage is None or quantity_liters is None:
        return None
    distance = mileage - previous_mileage
    quantity = Decimal(str(quantity_liters))
    if distance <= 0 or quantity <= 0:
        return None
    return (Decimal(distance) / quantity).quantize(EFFICIENCY_PLACES, rounding=ROUND_HALF_UP)


def resolve_neighbors(store, vehicle_id, fueling_date, insertion_seq=None, record_id=None):
    """Find the records either side of a position in a vehicle's chain.

    For a new record pass only the date: it will sort after every record
    already on that date.  For an existing record pass its ``insertion_seq``
    and ``record_id`` too; the record itself is never returned.
    """
    return Neighbors(
        previous=store.find_previous(vehicle_id, fueling_date, insertion_seq, record_id),
        next=store.find_next(vehicle_id, fueling_date, insertion_seq, record_id),
    )


def recalculate_from(store, vehicle_id, start_date=None):
    """Re-derive fuel efficiency for ``vehicle_id`` from ``start_date`` onwards.

    ``start_date=None`` rebuilds the whole chain.  Only records whose value
    actually changes are written.  Returns the number of records changed.
    """
    baseline = None
    if start_date is not None:
        anchor = store.find_last_before(vehicle_id, start_date)
        if anchor is not None:
            baseline = anchor.mileage_at_fueling

    changed = 0
    records = store.records_from(vehicle_id, start_date)
    for record in records:
        efficiency = calculate_efficiency(record.mileage_at_fueling, baseline, record.quantity_liters)
        if _differs(record.fuel_efficiency, efficiency):
            store.set_efficiency(record, efficiency)
            changed += 1
        # The baseline follows position in the chain, not whether the value was usable
        baseline = record.mileage_at_fueling

    logger.info(
        "vehicle %s: recalculated %d fueling records from %s, %d changed",
        vehicle_id, len(records), start_date or 'start', changed
    )
    return changed


def check_chain(store, vehicle_id):
    """Audit a vehicle's chain without writing anything.

    Reports readings that do not strictly increase and stored efficiencies
    that differ from a fresh derivation.
    """
    issues = []
    previous = None
    for record in store.records_from(vehicle_id):
        if previous is not None and record.mileage_at_fueling <= previous.mileage_at_fueling:
            issues.append(LedgerIssue(
                record.id, 'mileage_order',
                f"{record.fueling_date}: {record.mileage_at_fueling} km is not above "
                f"{previous.mileage_at_fueling} km recorded on {previous.fueling_date}"
            ))
        expected = calculate_efficiency(
            record.mileage_at_fueling,
            previous.mileage_at_fueling if previous is not None else None,
            record.quantity_liters
        )
        if _differs(record.fuel_efficiency, expected):
            issues.append(LedgerIssue(
                record.id, 'stale_efficiency',
                f"{record.fueling_date}: stored efficiency {record.fuel_efficiency}, expected {expected}"
            ))
        previous = record
    return issues


def _differs(stored, computed):
    if stored is None or computed is None:
        return stored is not computed
    return Decimal(str(stored)) != computed
