# Overview: Request decorators for API routes.

from functools import wraps
from flask import current_app, g, jsonify, request

ACTOR_HEADER = "X-Actor-Id"


def require_actor(f):
    """
    Establish the acting user for the request.

    Sets g.actor_id from the X-Actor-Id header. The id is recorded on
    movements, sales and notes for attribution only; it is never
    authenticated here.

    Returns 401 when the header is missing and REQUIRE_ACTOR_HEADER is on,
    and 400 when it is not an integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(ACTOR_HEADER)

        if raw is None or not raw.strip():
            if current_app.config.get("REQUIRE_ACTOR_HEADER", True):
                return jsonify({"error": f"{ACTOR_HEADER} header required"}), 401
            g.actor_id = None
            return f(*args, **kwargs)

        try:
            g.actor_id = int(raw.strip())
        except ValueError:
            return jsonify({"error": f"{ACTOR_HEADER} must be an integer"}), 400

        return f(*args, **kwargs)

    return decorated_function
