# Overview: Error-mapping decorator for API routes.

from functools import wraps
from flask import current_app, jsonify

from .extensions import db
from .validation import BusinessRuleError, ConflictError, NotFoundError, ValidationError


def _error(message: str, status: int, detail=None):
    return jsonify({"error": message, "detail": detail if detail is not None else message}), status


def api_errors(failure_message: str):
    """
    Map service exceptions raised inside a route to JSON error responses.

    - ValidationError   -> 422 with field-level detail
    - ConflictError     -> 409
    - NotFoundError     -> 404
    - BusinessRuleError -> 400 (illegal transitions and other domain rules)
    - anything else     -> 500, logged with the traceback

    The session is rolled back before any error response is returned.

    Usage:
        @orders_bp.post("/<int:order_id>/confirm")
        @api_errors("Failed to confirm order")
        def confirm_order_route(order_id):
            ...
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except ValidationError as e:
                db.session.rollback()
                return _error(str(e), 422, e.to_detail())
            except ConflictError as e:
                db.session.rollback()
                return _error(str(e), 409)
            except NotFoundError as e:
                db.session.rollback()
                return _error(str(e.args[0]) if e.args else "Not found", 404)
            except BusinessRuleError as e:
                db.session.rollback()
                return _error(str(e), 400)
            except Exception:
                db.session.rollback()
                current_app.logger.exception(failure_message)
                return jsonify({"error": failure_message, "detail": failure_message}), 500

        return decorated_function
    return decorator
