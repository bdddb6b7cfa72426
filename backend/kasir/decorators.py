# Overview: Request decorators that establish tenant scope for API routes.

from functools import wraps
from flask import request, jsonify, g

COMPANY_HEADER = "X-Company-Id"
USER_HEADER = "X-User-Id"


def require_tenant(f):
    """
    Require the tenant scope resolved by the upstream auth layer.

    Authentication and company lookup happen before a request reaches this
    service; the gateway forwards the result as headers. Sets:
    - g.company_id: tenant scope passed explicitly to every service call
    - g.user_id: acting user (movement actor, cashier, closer)

    Returns 401 if either header is missing or blank.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        company_id = (request.headers.get(COMPANY_HEADER) or "").strip()
        user_id = (request.headers.get(USER_HEADER) or "").strip()

        if not company_id or not user_id:
            return jsonify({"error": "Tenant context required", "code": "UNAUTHENTICATED"}), 401

        g.company_id = company_id
        g.user_id = user_id

        return f(*args, **kwargs)

    return decorated_function
