# Overview: Response decorators for API routes.

from functools import wraps
from flask import current_app, jsonify

from .services.stocktake_service import OperationResult
from .validation import ValidationError

# OperationResult.error_kind -> HTTP status
ERROR_STATUS = {
    "validation": 400,
    "not_found": 404,
    "conflict": 409,
    "database": 500,
    "internal": 500,
}


def result_response(result: OperationResult, success_status: int = 200):
    """Serialize an OperationResult into a (json, status) pair."""
    if result.success:
        return jsonify(result.to_dict()), success_status
    return jsonify(result.to_dict()), ERROR_STATUS.get(result.error_kind, 400)


def returns_result(success_status: int = 200):
    """
    Wrap a view that returns an OperationResult.

    A ValidationError raised by the view itself (e.g. a body that is not a
    JSON object) becomes a 400. Anything else raised outside the service
    boundary is logged and reported as a 500 with a generic message.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                result = f(*args, **kwargs)
            except ValidationError as exc:
                return jsonify({"success": False, "error": str(exc)}), 400
            except Exception:
                current_app.logger.exception("Unhandled error in %s", f.__name__)
                return jsonify({"success": False, "error": "Internal server error"}), 500
            return result_response(result, success_status)
        return decorated_function
    return decorator
