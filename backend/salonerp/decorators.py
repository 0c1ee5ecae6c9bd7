# Overview: Request decorators and request parsing helpers for API routes.

from functools import wraps
from flask import request, jsonify, current_app
from werkzeug.exceptions import HTTPException

from .extensions import db
from .context import context_from_headers
from .time_utils import parse_iso_date, parse_iso_datetime
from .validation import ValidationError, NotFoundError, ConflictError, LocationAccessError, require_positive_int


def with_request_context(f):
    """
    Build the RequestContext for this request and pass it as ``ctx``.

    Returns 400 when the identity headers are malformed. The handler
    receives the context explicitly; nothing is stored on flask.g.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            ctx = context_from_headers(request.headers)
        except ValidationError as e:
            return jsonify({"error": str(e)}), 400

        return f(*args, ctx=ctx, **kwargs)

    return decorated_function


def _error_body(e: Exception) -> dict:
    to_dict = getattr(e, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return {"error": str(e)}


def api_errors(f):
    """
    Translate service exceptions into JSON error responses.

    400 ValidationError, 403 LocationAccessError, 404 NotFoundError,
    409 ConflictError. Anything else is logged and returned as a generic 500.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except HTTPException:
            raise
        except ValidationError as e:
            return jsonify(_error_body(e)), 400
        except LocationAccessError as e:
            return jsonify(_error_body(e)), 403
        except NotFoundError as e:
            return jsonify(_error_body(e)), 404
        except ConflictError as e:
            return jsonify(_error_body(e)), 409
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
            return jsonify({"error": "Internal server error"}), 500

    return decorated_function


def json_body() -> dict:
    """Request JSON as a dict; non-object bodies raise ValidationError."""
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def query_int(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    if not raw.strip().lstrip("-").isdigit():
        raise ValidationError(f"{name} must be an integer")
    return int(raw)


def query_bool(name: str, default: bool = False) -> bool:
    raw = request.args.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes")


def query_date(name: str):
    try:
        return parse_iso_date(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date")


def query_datetime(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


def query_limit(default: int, maximum: int, name: str = "limit") -> int:
    """Positive page size from the query string, capped at ``maximum``."""
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    return min(require_positive_int(raw, name), maximum)
