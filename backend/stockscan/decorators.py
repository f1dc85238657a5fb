# Overview: Route decorators; translate domain exceptions into JSON error responses.

from functools import wraps

from flask import current_app, jsonify

from .codec import CodecError
from .scanning.arbiter import ArbiterClosed
from .services.catalog_service import CatalogError, ProductNotFound
from .services.debt_service import DebtNotFound
from .services.draft import DraftError
from .services.persistence import PersistenceFailure
from .services.scan_session import SessionClosed, SessionError, SessionNotFound
from .services.stock_ledger import CommitError, InsufficientStock, SaleLineNotFound, StockError
from .validation import ValidationError


# Most specific first
ERROR_STATUS = (
    (ValidationError, 400),
    (CodecError, 400),
    (SessionNotFound, 404),
    (SaleLineNotFound, 404),
    (ProductNotFound, 404),
    (DebtNotFound, 404),
    (SessionClosed, 409),
    (ArbiterClosed, 409),
    (InsufficientStock, 409),
    (CommitError, 400),
    (StockError, 409),
    (CatalogError, 400),
    (DraftError, 400),
    (SessionError, 400),
    (PersistenceFailure, 503),
)


def error_response(exc: Exception):
    for cls, status in ERROR_STATUS:
        if isinstance(exc, cls):
            body = {"error": str(exc)}
            details = getattr(exc, "details", None)
            if details:
                body["details"] = details
            if status == 503:
                current_app.logger.warning("Persistence failure: %s", exc)
            return jsonify(body), status
    return None


def handles_domain_errors(action: str):
    """
    Map domain exceptions to 4xx/503 JSON; anything else is logged and
    answered with a generic 500.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except Exception as e:
                response = error_response(e)
                if response is not None:
                    return response
                current_app.logger.exception("Failed to %s", action)
                return jsonify({"error": "Internal server error"}), 500
        return decorated_function
    return decorator
