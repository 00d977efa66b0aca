# pharmastock/core/errors.py
"""
Typed failures of the sales engine.

Every error carries an HTTP status, a machine readable ``code`` and a
``details`` dict, so routes can answer with enough context for the caller
to correct the request and retry:

    SalesError
      +-- ValidationError          400  VALIDATION_ERROR
      +-- Unauthorized             401  UNAUTHORIZED
      +-- Forbidden                403  FORBIDDEN
      +-- NotFound                 404  NOT_FOUND
      +-- InsufficientStock        409  INSUFFICIENT_STOCK
      +-- InvalidStateTransition   409  INVALID_STATE_TRANSITION
      +-- ConcurrencyConflict      409  CONCURRENCY_CONFLICT
      +-- DuplicateRequest         409  DUPLICATE_REQUEST
      +-- InvariantViolation       500  INVARIANT_VIOLATION
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class SalesError(RuntimeError):
    status_code: int = 400
    code: str = "SALES_ERROR"

    def __init__(self, msg: str, *, details: Optional[Dict[str, Any]] = None):
        super().__init__(msg)
        self.msg = msg
        self.details = details or {}


class ValidationError(SalesError):
    status_code = 400
    code = "VALIDATION_ERROR"


class Unauthorized(SalesError):
    status_code = 401
    code = "UNAUTHORIZED"


class Forbidden(SalesError):
    status_code = 403
    code = "FORBIDDEN"


class NotFound(SalesError):
    status_code = 404
    code = "NOT_FOUND"


class InsufficientStock(SalesError):
    status_code = 409
    code = "INSUFFICIENT_STOCK"

    def __init__(self, batch_id: int, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for batch {batch_id}. "
            f"Available: {available}, Requested: {requested}",
            details={
                "batch_id": batch_id,
                "requested": requested,
                "available": available,
            },
        )
        self.batch_id = batch_id
        self.requested = requested
        self.available = available


class InvalidStateTransition(SalesError):
    status_code = 409
    code = "INVALID_STATE_TRANSITION"

    def __init__(self, sale_id: int, status: str, action: str):
        super().__init__(
            f"Cannot {action} sale {sale_id}: current status is {status}",
            details={"sale_id": sale_id, "status": status, "action": action},
        )
        self.sale_id = sale_id
        self.status = status


class ConcurrencyConflict(SalesError):
    status_code = 409
    code = "CONCURRENCY_CONFLICT"


class DuplicateRequest(SalesError):
    status_code = 409
    code = "DUPLICATE_REQUEST"


class InvariantViolation(SalesError):
    status_code = 500
    code = "INVARIANT_VIOLATION"
