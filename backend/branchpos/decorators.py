# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, g

from .errors import AuthError, PermissionDeniedError
from .services import session_service


def _bearer_token() -> str | None:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme != "Bearer" or not token.strip():
        return None
    return token.strip()


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_user (the active User) and g.auth_token.

    SECURITY: 401 when the header is missing, the token is unknown, revoked
    or expired, or the account was deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if token is None:
            raise AuthError("Authentication required")

        user = session_service.validate_session(token)
        if user is None:
            raise AuthError("Invalid or expired token")

        g.current_user = user
        g.auth_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Restrict a route to the given roles.

    Must be stacked below @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                raise AuthError("Authentication required")
            if user.role not in roles:
                raise PermissionDeniedError(
                    f"Role {user.role} is not allowed to access this route",
                    details={"allowed_roles": list(roles)},
                )
            return f(*args, **kwargs)

        return decorated_function

    return decorator
