# Models package - Import all models for Flask-SQLAlchemy

from models.fuel import FuelingRecord
from models.vehicles import Vehicle

__all__ = [
    'FuelingRecord',
    'Vehicle',
]
