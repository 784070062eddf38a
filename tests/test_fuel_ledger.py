"""
Unit tests for the neighbour resolver and cascade recalculator.

These run against InMemoryLedgerStore: no app, no database.
"""
from datetime import date
from decimal import Decimal

import pytest

from services.fuel_ledger import (
    calculate_efficiency,
    check_chain,
    recalculate_from,
    resolve_neighbors,
)


def _add(store, vehicle_id, fueling_date, mileage, liters='10', efficiency=None):
    return store.add_record(
        vehicle_id=vehicle_id,
        fueling_date=fueling_date,
        mileage_at_fueling=mileage,
        quantity_liters=Decimal(str(liters)),
        insertion_seq=store.next_insertion_seq(),
        fuel_efficiency=efficiency,
    )


def _efficiencies(store, vehicle_id):
    return [r.fuel_efficiency for r in store.records_from(vehicle_id)]


# ---------------------------------------------------------------------------
# calculate_efficiency
# ---------------------------------------------------------------------------

class TestCalculateEfficiency:
    def test_distance_over_quantity(self):
        assert calculate_efficiency(1100, 1000, Decimal('10')) == Decimal('10.0')

    def test_rounds_half_up_to_one_decimal(self):
        # 100 / 3 = 33.333...
        assert calculate_efficiency(1100, 1000, Decimal('3')) == Decimal('33.3')
        # 25 / 4 = 6.25 -> 6.3
        assert calculate_efficiency(1025, 1000, Decimal('4')) == Decimal('6.3')

    def test_no_previous_reading_gives_none(self):
        assert calculate_efficiency(1000, None, Decimal('10')) is None

    def test_zero_fuel_gives_none(self):
        assert calculate_efficiency(1500, 1000, Decimal('0')) is None

    def test_non_positive_distance_gives_none(self):
        assert calculate_efficiency(1000, 1000, Decimal('10')) is None
        assert calculate_efficiency(900, 1000, Decimal('10')) is None

    def test_accepts_float_quantity(self):
        assert calculate_efficiency(1050, 1000, 5.0) == Decimal('10.0')


# ---------------------------------------------------------------------------
# resolve_neighbors
# ---------------------------------------------------------------------------

class TestResolveNeighbors:
    def test_first_record_has_no_previous(self, memory_store):
        later = _add(memory_store, 1, date(2024, 1, 5), 1100)

        neighbors = resolve_neighbors(memory_store, 1, date(2024, 1, 1))

        assert neighbors.previous is None
        assert neighbors.next is later

    def test_last_record_has_no_next(self, memory_store):
        earlier = _add(memory_store, 1, date(2024, 1, 1), 1000)

        neighbors = resolve_neighbors(memory_store, 1, date(2024, 1, 5))

        assert neighbors.previous is earlier
        assert neighbors.next is None

    def test_new_record_sorts_after_same_day_records(self, memory_store):
        first = _add(memory_store, 1, date(2024, 1, 3), 1000)
        second = _add(memory_store, 1, date(2024, 1, 3), 1050)
        after = _add(memory_store, 1, date(2024, 1, 4), 1100)

        neighbors = resolve_neighbors(memory_store, 1, date(2024, 1, 3))

        assert neighbors.previous is second
        assert neighbors.next is after
        assert first is not neighbors.previous

    def test_existing_record_excludes_itself_and_uses_insertion_order(self, memory_store):
        first = _add(memory_store, 1, date(2024, 1, 3), 1000)
        middle = _add(memory_store, 1, date(2024, 1, 3), 1050)
        last = _add(memory_store, 1, date(2024, 1, 3), 1100)

        neighbors = resolve_neighbors(
            memory_store, 1, middle.fueling_date, middle.insertion_seq, middle.id
        )

        assert neighbors.previous is first
        assert neighbors.next is last

    def test_other_vehicles_are_ignored(self, memory_store):
        _add(memory_store, 2, date(2024, 1, 1), 50000)

        neighbors = resolve_neighbors(memory_store, 1, date(2024, 1, 2))

        assert neighbors == (None, None)


# ---------------------------------------------------------------------------
# recalculate_from
# ---------------------------------------------------------------------------

class TestRecalculateFrom:
    def test_matches_hand_computed_ratios(self, memory_store):
        _add(memory_store, 1, date(2024, 1, 1), 1000, liters='40')
        _add(memory_store, 1, date(2024, 1, 8), 1420, liters='35')     # 420 / 35 = 12.0
        _add(memory_store, 1, date(2024, 1, 15), 1777, liters='30.5')  # 357 / 30.5 = 11.70...
        _add(memory_store, 1, date(2024, 1, 22), 2100, liters='27')    # 323 / 27 = 11.96...

        changed = recalculate_from(memory_store, 1)

        assert changed == 3
        assert _efficiencies(memory_store, 1) == [
            None, Decimal('12.0'), Decimal('11.7'), Decimal('12.0')
        ]

    def test_baseline_comes_from_record_before_start_date(self, memory_store):
        _add(memory_store, 1, date(2024, 1, 1), 1000)
        target = _add(memory_store, 1, date(2024, 1, 5), 1100)

        recalculate_from(memory_store, 1, date(2024, 1, 5))

        assert target.fuel_efficiency == Decimal('10.0')

    def test_records_before_start_date_are_untouched(self, memory_store):
        # Deliberately wrong stored value before the window
        early = _add(memory_store, 1, date(2024, 1, 1), 1000, efficiency=Decimal('99.9'))
        _add(memory_store, 1, date(2024, 1, 5), 1100)

        recalculate_from(memory_store, 1, date(2024, 1, 5))

        assert early.fuel_efficiency == Decimal('99.9')

    def test_zero_fuel_record_is_none_but_still_advances_baseline(self, memory_store):
        _add(memory_store, 1, date(2024, 1, 1), 1000)
        zero = _add(memory_store, 1, date(2024, 1, 2), 1200, liters='0')
        after = _add(memory_store, 1, date(2024, 1, 3), 1300, liters='10')

        recalculate_from(memory_store, 1, date(2024, 1, 1))

        assert zero.fuel_efficiency is None
        # Measured from the zero-fuel record's reading, not the first one
        assert after.fuel_efficiency == Decimal('10.0')

    def test_is_idempotent(self, memory_store):
        _add(memory_store, 1, date(2024, 1, 1), 1000)
        _add(memory_store, 1, date(2024, 1, 5), 1100)
        _add(memory_store, 1, date(2024, 1, 9), 1250, liters='12')

        recalculate_from(memory_store, 1, date(2024, 1, 1))
        first_pass = _efficiencies(memory_store, 1)
        changed = recalculate_from(memory_store, 1, date(2024, 1, 1))

        assert changed == 0
        assert _efficiencies(memory_store, 1) == first_pass

    def test_only_writes_changed_values(self, memory_store):
        _add(memory_store, 1, date(2024, 1, 1), 1000)
        _add(memory_store, 1, date(2024, 1, 5), 1100, efficiency=Decimal('10.0'))
        stale = _add(memory_store, 1, date(2024, 1, 9), 1200, efficiency=Decimal('1.0'))

        changed = recalculate_from(memory_store, 1, date(2024, 1, 1))

        assert changed == 1
        assert stale.fuel_efficiency == Decimal('10.0')

    def test_empty_window_changes_nothing(self, memory_store):
        _add(memory_store, 1, date(2024, 1, 1), 1000)

        assert recalculate_from(memory_store, 1, date(2024, 2, 1)) == 0


# ---------------------------------------------------------------------------
# check_chain
# ---------------------------------------------------------------------------

class TestCheckChain:
    def test_clean_chain_has_no_issues(self, memory_store):
        _add(memory_store, 1, date(2024, 1, 1), 1000)
        _add(memory_store, 1, date(2024, 1, 5), 1100, efficiency=Decimal('10.0'))

        assert check_chain(memory_store, 1) == []

    def test_reports_order_violation_and_stale_value(self, memory_store):
        _add(memory_store, 1, date(2024, 1, 1), 1000)
        bad = _add(memory_store, 1, date(2024, 1, 5), 900, efficiency=Decimal('5.0'))

        issues = check_chain(memory_store, 1)

        kinds = {(i.record_id, i.kind) for i in issues}
        assert (bad.id, 'mileage_order') in kinds
        assert (bad.id, 'stale_efficiency') in kinds
