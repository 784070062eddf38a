from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address


db = SQLAlchemy()
migrate = Migrate()

# Storage URI and defaults are read from app.config (RATELIMIT_*) at init_app
limiter = Limiter(key_func=get_remote_address)
