from flask import Blueprint

fueling_bp = Blueprint('fueling', __name__)

from . import routes
