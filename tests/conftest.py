"""
Shared pytest fixtures for the fleet ledger test suite.

All tests run against an in-memory SQLite database (TestingConfig).
A single app context is pushed for the whole session so that SQLAlchemy
objects remain attached throughout.  After each test, clean_db wipes all
rows so tests are fully independent.
"""
from datetime import date
from decimal import Decimal

import pytest
from app import create_app
from extensions import db as _db
from services.fueling_service import FuelingService
from services.ledger_store import InMemoryLedgerStore, SQLAlchemyLedgerStore
from utils.vehicle_locks import VehicleLockRegistry


TODAY = date(2024, 6, 30)


# ---------------------------------------------------------------------------
# Application / database lifecycle
# ---------------------------------------------------------------------------

@pytest.fixture(scope='session')
def app():
    """Create a test Flask application with an in-memory SQLite database."""
    application = create_app('testing')
    # Freeze "today" so future-date checks are deterministic
    application.extensions['fueling_service'].today = lambda: TODAY
    ctx = application.app_context()
    ctx.push()
    _db.create_all()
    yield application
    _db.session.remove()
    _db.drop_all()
    ctx.pop()


@pytest.fixture(autouse=True)
def clean_db(app):
    """Wipe every table after each test so tests never share state."""
    yield
    _db.session.rollback()
    for table in reversed(_db.metadata.sorted_tables):
        _db.session.execute(table.delete())
    _db.session.commit()
    _db.session.expunge_all()


@pytest.fixture
def client(app):
    return app.test_client()


# ---------------------------------------------------------------------------
# Common model helpers
# ---------------------------------------------------------------------------

def make_vehicle(plate_number='M 123-456', current_mileage=0):
    from models.vehicles import Vehicle
    v = Vehicle(plate_number=plate_number, brand='Toyota', model='Hilux', year=2020,
                current_mileage=current_mileage)
    _db.session.add(v)
    _db.session.commit()
    return v


@pytest.fixture
def vehicle(app):
    return make_vehicle()


@pytest.fixture
def other_vehicle(app):
    return make_vehicle(plate_number='M 987-654')


@pytest.fixture
def service(app):
    """A FuelingService over the test database, independent of the app's instance."""
    return FuelingService(
        SQLAlchemyLedgerStore(_db.session),
        VehicleLockRegistry(timeout=1),
        today=lambda: TODAY
    )


@pytest.fixture
def memory_store():
    store = InMemoryLedgerStore()
    store.add_vehicle(1, plate_number='M 111-111')
    store.add_vehicle(2, plate_number='M 222-222')
    return store


@pytest.fixture
def memory_service(memory_store):
    return FuelingService(memory_store, VehicleLockRegistry(timeout=1), today=lambda: TODAY)


def fueling_data(vehicle_id, fueling_date, mileage, liters='10', **overrides):
    """Form-style payload for a fueling record."""
    data = {
        'vehicle_id': vehicle_id,
        'fueling_date': fueling_date,
        'mileage_at_fueling': mileage,
        'quantity_liters': Decimal(str(liters)),
        'cost_per_liter': Decimal('1.50'),
        'station': 'Puma Carretera Norte',
        'responsible': 'J. Pérez',
    }
    data.update(overrides)
    return data
