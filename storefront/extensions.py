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

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No global limit — we apply per-route
    storage_uri="memory://",
)


@login_manager.request_loader
def load_user_from_request(request):
    """Resolve the Authorization bearer token into a Shopper.

    Identities live in Supabase Auth, so there is no session-backed
    user_loader: every request carries its own token. Imports lazily to
    avoid circular deps.
    """
    from storefront.models.shopper import Shopper
    from storefront.services import auth_service

    token = auth_service.extract_bearer_token(request.headers.get("Authorization"))
    if not token:
        return None

    user_id = auth_service.get_user_id_from_token(token)
    if not user_id:
        return None
    return Shopper(user_id)


@login_manager.unauthorized_handler
def unauthorized():
    """JSON 401 instead of a redirect to a login page."""
    return jsonify({"error": "Authentication required"}), 401
