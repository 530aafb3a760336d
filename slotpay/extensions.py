"""
Deferred extension instances.

Created here, bound to the app in create_app() via init_app().
"""

from flask import jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from slotpay.errors import AuthenticationError

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No global limit, applied per route
    storage_uri="memory://",
)


@login_manager.request_loader
def load_user_from_request(request):
    """Resolve the caller from the Authorization: Bearer header.

    Imports lazily to avoid circular deps.
    """
    from slotpay.auth import user_from_authorization_header

    return user_from_authorization_header(request.headers.get("Authorization"))


@login_manager.unauthorized_handler
def unauthorized():
    """JSON 401 instead of a login redirect. Every caller is an API client."""
    return jsonify(AuthenticationError("Missing or invalid token").to_dict()), 401
