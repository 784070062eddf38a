from extensions import db
from datetime import datetime, timezone


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Vehicle(db.Model):
    __tablename__ = 'vehicles'

    id = db.Column(db.Integer, primary_key=True)
    plate_number = db.Column(db.String(20), nullable=False, unique=True)
    brand = db.Column(db.String(50), nullable=False)
    model = db.Column(db.String(50), nullable=False)
    year = db.Column(db.Integer)
    status = db.Column(db.String(20), nullable=False, default='Activo')  # Activo, En Taller, Inactivo
    # Cache of the highest odometer reading seen by the fuel ledger. Only ever
    # raised; scan FuelingRecord when an exact figure is needed.
    current_mileage = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    fueling_records = db.relationship('FuelingRecord', backref='vehicle', lazy=True)

    def __repr__(self):
        return f'<Vehicle {self.plate_number}: {self.brand} {self.model}>'
