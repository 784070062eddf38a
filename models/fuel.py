from extensions import db
from datetime import datetime, timezone


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class FuelingRecord(db.Model):
    __tablename__ = 'fueling_records'
    __table_args__ = (
        # Every ledger query is "this vehicle, in date order"
        db.Index('ix_fueling_records_vehicle_order', 'vehicle_id', 'fueling_date', 'insertion_seq', 'id'),
    )

    id = db.Column(db.Integer, primary_key=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey('vehicles.id'), nullable=False)
    vehicle_plate_number = db.Column(db.String(20))  # Denormalized for listings
    fueling_date = db.Column(db.Date, nullable=False)
    mileage_at_fueling = db.Column(db.Integer, nullable=False)  # Odometer reading (km)
    quantity_liters = db.Column(db.Numeric(10, 2), nullable=False)
    cost_per_liter = db.Column(db.Numeric(10, 2), nullable=False)
    total_cost = db.Column(db.Numeric(10, 2), nullable=False)
    station = db.Column(db.String(100), nullable=False)
    responsible = db.Column(db.String(100), nullable=False)
    image_url = db.Column(db.String(255))
    fuel_efficiency = db.Column(db.Numeric(10, 1))  # km per liter, written by the recalculator only
    insertion_seq = db.Column(db.Integer, nullable=False)  # Tie-break for records on the same date
    created_at = db.Column(db.DateTime, default=_utcnow)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    @property
    def ledger_key(self):
        """Position of this record in its vehicle's chain."""
        return (self.fueling_date, self.insertion_seq, self.id)

    def to_dict(self):
        return {
            'id': self.id,
            'vehicle_id': self.vehicle_id,
            'vehicle_plate_number': self.vehicle_plate_number,
            'fueling_date': self.fueling_date.isoformat(),
            'mileage_at_fueling': self.mileage_at_fueling,
            'quantity_liters': float(self.quantity_liters),
            'cost_per_liter': float(self.cost_per_liter),
            'total_cost': float(self.total_cost),
            'station': self.station,
            'responsible': self.responsible,
            'image_url': self.image_url,
            'fuel_efficiency': float(self.fuel_efficiency) if self.fuel_efficiency is not None else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f'<FuelingRecord {self.fueling_date}: vehicle {self.vehicle_id} @ {self.mileage_at_fueling} km>'
