"""Errors raised by the order engine.

Every error carries a stable ``code`` and the HTTP status it maps to; the
FastAPI exception handler in ``app.main`` turns them into JSON responses.
"""

from typing import Any, Dict, List, Optional


class OrderEngineError(Exception):
    """Base exception for all order engine errors."""

    status_code: int = 500
    code: str = "ORDER_ENGINE_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "code": self.code, **self.details()}


class ValidationError(OrderEngineError):
    """Malformed input. Nothing was written."""

    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(OrderEngineError):
    status_code = 404
    code = "NOT_FOUND"


class InsufficientStockError(OrderEngineError):
    """Raised when a product is missing or cannot cover the requested quantity."""

    status_code = 409
    code = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        product_id: Any,
        product_name: str,
        available: int,
        requested: int,
        code: Optional[str] = None,
        short_items: Optional[List[Dict[str, Any]]] = None,
    ):
        self.product_id = product_id
        self.short_items = list(short_items or [])
        self.product_name = product_name
        self.available = available
        self.requested = requested
        if code == "PRODUCT_NOT_FOUND":
            msg = f'Product "{product_name}" no longer exists.'
        else:
            msg = (
                f'Insufficient stock for "{product_name}": '
                f"requested {requested}, available {available}."
            )
        super().__init__(msg, code)

    def details(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "available": self.available,
            "requested": self.requested,
            **({"items": self.short_items} if self.short_items else {}),
        }


class InvalidTransitionError(OrderEngineError):
    status_code = 400
    code = "INVALID_TRANSITION"

    def __init__(
        self,
        message: str,
        current: str,
        requested: str,
        allowed: Optional[List[str]] = None,
    ):
        self.current = current
        self.requested = requested
        self.allowed = list(allowed or [])
        super().__init__(message)

    def details(self) -> Dict[str, Any]:
        return {
            "current_status": self.current,
            "requested_status": self.requested,
            "allowed": self.allowed,
        }


class AlreadyInStateError(InvalidTransitionError):
    code = "ALREADY_IN_STATE"


class TerminalStateError(OrderEngineError):
    """The order is delivered or cancelled and its status can no longer change."""

    status_code = 409
    code = "TERMINAL_STATE"

    def __init__(self, message: str, current: str):
        self.current = current
        super().__init__(message)

    def details(self) -> Dict[str, Any]:
        return {"current_status": self.current}


class ConcurrencyConflictError(OrderEngineError):
    """A concurrent write won. The atomic unit must be retried, never treated as success."""

    status_code = 409
    code = "CONCURRENCY_CONFLICT"
