# Overview: Request decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .identity import IdentityError, identity_from_headers


def require_identity(*roles: str):
    """
    Require a resolved caller identity and establish tenant context.

    Sets g.identity (Identity) and g.merchant_id.

    Returns 401 if identity headers are missing or malformed, and 403 if the
    caller's role is not one of roles (when roles are given).
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                identity = identity_from_headers(request.headers)
            except IdentityError as e:
                return jsonify({"error": str(e)}), e.status_code

            if roles and identity.role not in roles:
                return jsonify({
                    "error": "Role not allowed",
                    "details": {"role": identity.role, "allowed": list(roles)},
                }), 403

            g.identity = identity
            g.merchant_id = identity.merchant_id
            return f(*args, **kwargs)

        return decorated_function

    return decorator
