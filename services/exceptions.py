"""
Fuel ledger exceptions
======================
Two failure kinds leave the ledger:

FuelingValidationError
    The operator entered something the ledger cannot accept (future date,
    odometer out of order, bad field).  Raised before any write; the caller
    shows it to the user.

LedgerStorageError
    The database or a lock failed.  The whole mutation (write, cascades and
    mileage cache) is rolled back.
"""


class FleetLedgerError(Exception):
    """Base class for fuel ledger errors."""

    def __init__(self, message, details=None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class FuelingValidationError(FleetLedgerError, ValueError):
    """A fueling record was rejected before it was written.

    ``code`` identifies the rule that failed, ``field`` the offending input.
    For odometer conflicts ``value`` is the submitted reading and
    ``conflicting_value`` the neighbour's reading.
    """

    def __init__(self, code, message, field=None, value=None, conflicting_value=None):
        details = {'field': field}
        if value is not None:
            details['value'] = value
        if conflicting_value is not None:
            details['conflicting_value'] = conflicting_value
        super().__init__(message, details)
        self.code = code
        self.field = field
        self.value = value
        self.conflicting_value = conflicting_value

    def to_dict(self):
        return {'error': self.message, 'code': self.code, 'details': self.details}


class FuelingRecordNotFoundError(FleetLedgerError, LookupError):
    """No fueling record with the given id."""


class VehicleNotFoundError(FleetLedgerError, LookupError):
    """No vehicle with the given id."""


class LedgerStorageError(FleetLedgerError):
    """Database, transaction or lock failure; nothing was persisted."""
