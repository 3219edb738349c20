# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, g

from .errors import UnauthenticatedError, error_response
from .services import session_service
from .services.ledger_service import Actor


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require authentication and establish business scope.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.business_id: The business the session was issued for
    - g.session_context: The full SessionContext object

    Returns 401 (code "unauthenticated") if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account or business deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return error_response(UnauthenticatedError("Authentication required"))

        context = session_service.validate_session(token)
        if not context:
            return error_response(UnauthenticatedError("Invalid or expired token"))

        g.current_user = context.user
        g.business_id = context.business_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def current_actor() -> Actor:
    """Actor for the request; only valid under @require_auth."""
    user = g.current_user
    return Actor(
        user_id=user.id,
        business_id=g.business_id,
        user_name=user.display_name or user.username,
    )
