# Overview: Request decorators and shared error responses for API routes.

from functools import wraps

from flask import current_app, g, jsonify

from .extensions import db
from .errors import NotFound, OrderingError
from .services import store_service
from .validation import ValidationError


def require_tenant(f):
    """
    Resolve the <org_code> path segment into the tenant context.

    MULTI-TENANT: Sets g.org and g.org_id, and removes org_code from the
    view's kwargs. Every lookup below this point is scoped by g.org_id, so
    rows of other organizations are reported as NOT_FOUND.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        org_code = kwargs.pop("org_code")
        try:
            org = store_service.get_active_org(org_code)
        except NotFound as exc:
            return jsonify(exc.to_dict()), exc.http_status

        g.org = org
        g.org_id = org.id
        return f(*args, **kwargs)

    return decorated_function


def error_response(exc: Exception, log_message: str):
    """
    Map an exception raised by a service call to a JSON response.

    Typed ordering/validation failures keep their code and status; anything
    else is logged with its traceback and answered with a generic 500.
    """
    db.session.rollback()
    if isinstance(exc, (OrderingError, ValidationError)):
        return jsonify(exc.to_dict()), exc.http_status
    current_app.logger.exception(log_message)
    return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR", "details": {}}), 500
