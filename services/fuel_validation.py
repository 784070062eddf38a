"""
Fueling record validation.

Everything here runs before the ledger is written.  ``clean_fueling_data``
checks and coerces the submitted fields; ``validate_fueling_date`` and
``validate_against_neighbors`` enforce the ledger rules (no future dates,
odometer strictly between the neighbouring records).
"""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from urllib.parse import urlparse

from services.exceptions import FuelingValidationError


MAX_TEXT_LENGTH = 100
MAX_URL_LENGTH = 255
# Quantities and money are Numeric(10, 2)
CENTS = Decimal('0.01')
MAX_AMOUNT = Decimal('99999999.99')
# Keeps the largest efficiency (distance / 0.01 L) inside Numeric(10, 1)
MAX_MILEAGE = 9_999_999

EDITABLE_FIELDS = (
    'vehicle_id',
    'fueling_date',
    'mileage_at_fueling',
    'quantity_liters',
    'cost_per_liter',
    'total_cost',
    'station',
    'responsible',
    'image_url',
)
REQUIRED_FIELDS = (
    'vehicle_id',
    'fueling_date',
    'mileage_at_fueling',
    'quantity_liters',
    'cost_per_liter',
    'station',
    'responsible',
)


def _invalid(field, message, value=None):
    return FuelingValidationError('invalid_field', message, field=field, value=value)


def parse_date(value, field='fueling_date'):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.strptime(value.strip(), '%Y-%m-%d').date()
        except ValueError:
            pass
    raise _invalid(field, f'{field} must be a date in YYYY-MM-DD format', value)


def _parse_int(field, value, minimum=None, maximum=None):
    if isinstance(value, bool):
        raise _invalid(field, f'{field} must be a whole number', value)
    if isinstance(value, float) and not value.is_integer():
        raise _invalid(field, f'{field} must be a whole number', value)
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise _invalid(field, f'{field} must be a whole number', value)
    if minimum is not None and number < minimum:
        raise _invalid(field, f'{field} must be at least {minimum}', value)
    if maximum is not None and number > maximum:
        raise _invalid(field, f'{field} must be at most {maximum}', value)
    return number


def _parse_decimal(field, value, positive=False):
    """Parse to a Decimal rounded to the two places the columns store."""
    if isinstance(value, bool):
        raise _invalid(field, f'{field} must be a number', value)
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise _invalid(field, f'{field} must be a number', value)
    if not number.is_finite():
        raise _invalid(field, f'{field} must be a number', value)
    number = number.quantize(CENTS, rounding=ROUND_HALF_UP)
    if positive and number <= 0:
        raise _invalid(field, f'{field} must be positive', value)
    if number < 0:
        raise _invalid(field, f'{field} cannot be negative', value)
    if number > MAX_AMOUNT:
        raise _invalid(field, f'{field} must be at most {MAX_AMOUNT}', value)
    return number


def default_total_cost(quantity_liters, cost_per_liter):
    """Litres x price, as on the fueling form.  Must come out positive."""
    total = (quantity_liters * cost_per_liter).quantize(CENTS, rounding=ROUND_HALF_UP)
    if total <= 0:
        raise _invalid('total_cost', 'total_cost is required when no fuel quantity is recorded')
    return total


def _parse_text(field, value):
    text = (value or '').strip() if isinstance(value, str) else value
    if not text or not isinstance(text, str):
        raise _invalid(field, f'{field} is required', value)
    if len(text) > MAX_TEXT_LENGTH:
        raise _invalid(field, f'{field} must be at most {MAX_TEXT_LENGTH} characters', value)
    return text


def _parse_url(field, value):
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if not isinstance(value, str):
        raise _invalid(field, f'{field} must be a URL', value)
    url = value.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc or len(url) > MAX_URL_LENGTH:
        raise _invalid(field, f'{field} must be a valid http(s) URL', value)
    return url


_PARSERS = {
    'vehicle_id': lambda v: _parse_int('vehicle_id', v, minimum=1),
    'fueling_date': parse_date,
    'mileage_at_fueling': lambda v: _parse_int('mileage_at_fueling', v, minimum=0, maximum=MAX_MILEAGE),
    'quantity_liters': lambda v: _parse_decimal('quantity_liters', v),
    'cost_per_liter': lambda v: _parse_decimal('cost_per_liter', v, positive=True),
    'total_cost': lambda v: _parse_decimal('total_cost', v, positive=True),
    'station': lambda v: _parse_text('station', v),
    'responsible': lambda v: _parse_text('responsible', v),
    'image_url': lambda v: _parse_url('image_url', v),
}


def clean_fueling_data(data, partial=False):
    """Validate and coerce submitted fueling fields.

    With ``partial=True`` (edits) only the supplied fields are checked.
    ``fuel_efficiency`` is never accepted: the ledger derives it.
    """
    unknown = sorted(set(data) - set(EDITABLE_FIELDS))
    if unknown:
        field = unknown[0]
        if field == 'fuel_efficiency':
            raise FuelingValidationError(
                'read_only_field', 'fuel_efficiency is calculated by the ledger and cannot be set',
                field=field
            )
        raise FuelingValidationError('unknown_field', f'Unknown field: {field}', field=field)

    if not partial:
        for field in REQUIRED_FIELDS:
            if data.get(field) is None:
                raise _invalid(field, f'{field} is required')

    cleaned = {}
    for field, value in data.items():
        if value is None and field != 'image_url':
            if field == 'total_cost' and not partial:
                continue
            raise _invalid(field, f'{field} cannot be empty')
        cleaned[field] = _PARSERS[field](value)

    if not partial and cleaned.get('total_cost') is None:
        cleaned['total_cost'] = default_total_cost(cleaned['quantity_liters'], cleaned['cost_per_liter'])

    return cleaned


def validate_fueling_date(fueling_date, today):
    if fueling_date > today:
        raise FuelingValidationError(
            'future_date',
            f'Fueling date {fueling_date.isoformat()} is in the future (today is {today.isoformat()})',
            field='fueling_date',
            value=fueling_date.isoformat(),
            conflicting_value=today.isoformat(),
        )


def validate_against_neighbors(mileage, neighbors):
    """Reject a reading that is not strictly between the neighbouring records."""
    previous, following = neighbors
    if previous is not None and mileage <= previous.mileage_at_fueling:
        raise FuelingValidationError(
            'mileage_not_above_previous',
            f'Mileage {mileage} km must be greater than the previous record '
            f'({previous.mileage_at_fueling} km on {previous.fueling_date.isoformat()})',
            field='mileage_at_fueling',
            value=mileage,
            conflicting_value=previous.mileage_at_fueling,
        )
    if following is not None and mileage >= following.mileage_at_fueling:
        raise FuelingValidationError(
            'mileage_not_below_next',
            f'Mileage {mileage} km must be less than the next record '
            f'({following.mileage_at_fueling} km on {following.fueling_date.isoformat()})',
            field='mileage_at_fueling',
            value=mileage,
            conflicting_value=following.mileage_at_fueling,
        )
