# workledger/extensions.py
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# ======================
# Database
# ======================
db = SQLAlchemy()
migrate = Migrate()

# ======================
# Login Manager
# ======================
# The API answers 401 as JSON, so there is no login view to redirect to.
# user_loader and unauthorized_handler live in workledger/auth.py.
login_manager = LoginManager()

# ======================
# Rate Limiter
# ======================
# Storage, headers and the on/off switch are read from app config
# (RATELIMIT_STORAGE_URI, RATELIMIT_HEADERS_ENABLED, RATELIMIT_ENABLED)
# when create_app() calls init_app. Per-route limits are callables over
# LOGIN_RATE_LIMIT / PAYMENT_RATE_LIMIT.
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
)
