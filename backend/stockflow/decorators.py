# Overview: Request decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .services import session_service
from .services.store_service import scope_for


def require_actor(f):
    """
    Require a bearer token and establish the actor's scope.

    Sets the following Flask g attributes:
    - g.current_user: the authenticated User
    - g.actor_scope: ActorScope (role + assigned stores)
    - g.store_scope: StoreScope resolved against the current store list

    Routes pass g.store_scope to the services explicitly.

    Returns 401 if the Authorization header is missing, or the token is
    invalid, expired or revoked.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        user = session_service.validate_session(token)

        if not user:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = user
        g.actor_scope = session_service.load_actor_scope(user)
        g.store_scope = scope_for(g.actor_scope)

        return f(*args, **kwargs)

    return decorated_function
