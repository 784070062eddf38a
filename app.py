import os
import logging
import click
from logging.handlers import RotatingFileHandler
from flask import Flask, jsonify
from config import config
from extensions import db, migrate, limiter


def configure_logging(app):
    """Configure application logging"""
    # Service modules log through logging.getLogger(__name__)
    service_logger = logging.getLogger('services')

    if not app.debug and not app.testing:
        log_dir = app.config['LOG_DIR']
        if not os.path.exists(log_dir):
            os.mkdir(log_dir)

        file_handler = RotatingFileHandler(
            os.path.join(log_dir, app.config['LOG_FILE']),
            maxBytes=10240000,  # 10MB
            backupCount=10
        )
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s '
            '[in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)
        service_logger.addHandler(file_handler)

        app.logger.setLevel(logging.INFO)
        service_logger.setLevel(logging.INFO)
        app.logger.info('Fleet ledger startup')
    else:
        # Development logging to console
        app.logger.setLevel(logging.DEBUG)
        service_logger.setLevel(logging.DEBUG)
        app.logger.info('Fleet ledger startup (DEBUG mode)')


def create_app(config_name=None):
    """Application factory pattern"""

    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])
    config[config_name].init_app(app)

    # Default SQLite database lives in instance/
    os.makedirs(app.instance_path, exist_ok=True)

    # Configure logging
    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    # Add security headers
    @app.after_request
    def add_security_headers(response):
        """Add security headers to all responses"""
        headers = app.config.get('SECURITY_HEADERS', {})
        for header, value in headers.items():
            response.headers[header] = value
        return response

    # Import models to ensure they're registered with SQLAlchemy
    with app.app_context():
        import models

    # Fuel ledger: one store over the request-scoped session, one lock registry per process
    from services.fueling_service import FuelingService
    from services.ledger_store import SQLAlchemyLedgerStore
    from utils.vehicle_locks import VehicleLockRegistry

    app.extensions['fueling_service'] = FuelingService(
        SQLAlchemyLedgerStore(db.session),
        VehicleLockRegistry(timeout=app.config['LEDGER_LOCK_TIMEOUT']),
        move_retries=app.config['LEDGER_MOVE_RETRIES']
    )

    # Register blueprints
    from blueprints.fueling import fueling_bp

    app.register_blueprint(fueling_bp)

    # Create database tables
    with app.app_context():
        db.create_all()

    # Register error handlers
    register_error_handlers(app)

    # Register CLI commands
    register_commands(app)

    return app


def register_error_handlers(app):
    """Register global error handlers"""

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(429)
    def rate_limited_error(error):
        return jsonify({'error': f'Too many requests: {error.description}'}), 429

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        app.logger.error(f'Internal Server Error: {error}')
        return jsonify({'error': 'Internal server error'}), 500


def register_commands(app):
    """Register Flask CLI commands."""

    @app.cli.group()
    def ledger():
        """Maintain the fuel-efficiency ledger."""
        pass

    @ledger.command('recalc')
    @click.option('--vehicle-id', type=int, default=None, help='Only this vehicle (default: all).')
    @click.option('--from-date', type=click.DateTime(formats=['%Y-%m-%d']), default=None,
                  help='Recalculate from this date (default: whole chain).')
    def recalc(vehicle_id, from_date):
        """Recalculate fuel efficiency for one or all vehicles."""
        from services.exceptions import FleetLedgerError
        from services.fueling_service import get_fueling_service
        try:
            results = get_fueling_service().recalculate_efficiencies(
                vehicle_id=vehicle_id,
                from_date=from_date.date() if from_date else None
            )
        except FleetLedgerError as e:
            click.echo(f'ERROR: {e.message}', err=True)
            raise SystemExit(1)
        if not results:
            click.echo('No fueling records found.')
            return
        for vid, changed in results.items():
            click.echo(f'Vehicle {vid}: {changed} record(s) updated')
        click.echo(f'SUCCESS: recalculated {len(results)} vehicle(s).')

    @ledger.command('check')
    @click.option('--vehicle-id', type=int, default=None, help='Only this vehicle (default: all).')
    def check(vehicle_id):
        """Report odometer ordering problems and stale efficiencies."""
        from services.fueling_service import get_fueling_service
        report = get_fueling_service().check_ledger(vehicle_id)
        if not report:
            click.echo('Ledger OK.')
            return
        click.echo(f'{"Vehicle":<9} {"Record":<8} {"Issue":<18} Detail')
        click.echo('-' * 80)
        for vid, issues in report.items():
            for issue in issues:
                click.echo(f'{vid:<9} {issue.record_id:<8} {issue.kind:<18} {issue.message}')
        raise SystemExit(1)


if __name__ == '__main__':
    app = create_app()
    # SECURITY: Only bind to localhost in development
    app.run(host='127.0.0.1', port=5000, debug=True)
