"""
Fueling Routes
JSON endpoints for the fuel ledger: list, read, create, edit, delete and
recalculate fueling records.
"""
from flask import current_app, jsonify, request
from . import fueling_bp
from extensions import limiter
from services.exceptions import (
    FuelingRecordNotFoundError,
    FuelingValidationError,
    LedgerStorageError,
    VehicleNotFoundError,
)
from services.fuel_validation import parse_date
from services.fueling_service import get_fueling_service


def _mutation_limit():
    return current_app.config['FUELING_RATE_LIMIT']


def _json_body():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise FuelingValidationError('invalid_payload', 'Request body must be a JSON object')
    return payload


def _date_arg(name):
    value = request.args.get(name)
    return parse_date(value, field=name) if value else None


# ===== ERRORS =====

@fueling_bp.errorhandler(FuelingValidationError)
def handle_validation_error(error):
    current_app.logger.info(f'Fueling record rejected ({error.code}): {error.message}')
    return jsonify(error.to_dict()), 400


@fueling_bp.errorhandler(FuelingRecordNotFoundError)
@fueling_bp.errorhandler(VehicleNotFoundError)
def handle_not_found(error):
    return jsonify({'error': error.message, 'details': error.details}), 404


@fueling_bp.errorhandler(LedgerStorageError)
def handle_storage_error(error):
    current_app.logger.error(f'Fuel ledger storage failure: {error.message}')
    return jsonify({'error': 'The fuel ledger could not be updated. No changes were saved.'}), 503


# ===== FUELING LOG =====

@fueling_bp.route('/api/fueling', methods=['GET'])
def list_fueling():
    """Fueling records, newest first"""
    limit = request.args.get('limit', type=int) or current_app.config['FUELING_LIST_LIMIT']
    records = get_fueling_service().get_fueling_records(
        vehicle_id=request.args.get('vehicle_id', type=int),
        start_date=_date_arg('start_date'),
        end_date=_date_arg('end_date'),
        limit=limit
    )
    return jsonify([r.to_dict() for r in records])


@fueling_bp.route('/api/fueling/<int:record_id>', methods=['GET'])
def get_fueling(record_id):
    record = get_fueling_service().get_fueling_record(record_id)
    return jsonify(record.to_dict())


@fueling_bp.route('/api/vehicles/<int:vehicle_id>/fueling', methods=['GET'])
def vehicle_fueling(vehicle_id):
    """Fueling records for one vehicle, newest first"""
    records = get_fueling_service().get_fueling_records(vehicle_id=vehicle_id)
    return jsonify([r.to_dict() for r in records])


@fueling_bp.route('/api/vehicles/<int:vehicle_id>/mileage', methods=['GET'])
def vehicle_mileage(vehicle_id):
    return jsonify(get_fueling_service().get_ledger_mileage(vehicle_id))


@fueling_bp.route('/api/fueling', methods=['POST'])
@limiter.limit(_mutation_limit)
def create_fueling():
    record = get_fueling_service().create_fueling_record(_json_body())
    return jsonify(record.to_dict()), 201


@fueling_bp.route('/api/fueling/<int:record_id>', methods=['PUT', 'PATCH'])
@limiter.limit(_mutation_limit)
def update_fueling(record_id):
    record = get_fueling_service().update_fueling_record(record_id, _json_body())
    return jsonify(record.to_dict())


@fueling_bp.route('/api/fueling/<int:record_id>', methods=['DELETE'])
@limiter.limit(_mutation_limit)
def delete_fueling(record_id):
    get_fueling_service().delete_fueling_record(record_id)
    return jsonify({'status': 'success', 'message': 'Fueling record deleted'})


@fueling_bp.route('/api/fueling/recalculate', methods=['POST'])
@limiter.limit(_mutation_limit)
def recalculate_fueling():
    """Rebuild efficiencies for one vehicle (or all) from an optional date"""
    payload = request.get_json(silent=True) or {}
    vehicle_id = payload.get('vehicle_id')
    from_date = payload.get('from_date')
    if vehicle_id is not None and (isinstance(vehicle_id, bool) or not isinstance(vehicle_id, int)):
        raise FuelingValidationError('invalid_field', 'vehicle_id must be an integer', field='vehicle_id')

    results = get_fueling_service().recalculate_efficiencies(
        vehicle_id=vehicle_id,
        from_date=parse_date(from_date, field='from_date') if from_date else None
    )
    return jsonify({
        'status': 'success',
        'vehicles': len(results),
        'records_changed': {str(vid): changed for vid, changed in results.items()}
    })
