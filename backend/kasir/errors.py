# Overview: Typed error kinds raised by the stock ledger and shift services.

"""
Kasir error kinds.

Callers branch on the exception TYPE (or its stable `code`), never on message
text. Every kind below is an ordinary, recoverable business outcome except
StorageError, which marks an infrastructure failure (database unavailable,
retry budget exhausted) and maps to a 5xx response.

    KasirError
    +-- ValidationError          VALIDATION_ERROR    400
    +-- InsufficientStockError   INSUFFICIENT_STOCK  409
    +-- ConflictError            CONFLICT            409
    +-- InvalidStateError        INVALID_STATE       409
    +-- NotFoundError            NOT_FOUND           404
    +-- StorageError             INTERNAL            503

A failed operation never leaves partial writes behind: services roll the
session back before any of these propagate.
"""

from __future__ import annotations


class KasirError(Exception):
    """Base class for every error kind surfaced by kasir services."""

    code: str = "KASIR_ERROR"
    http_status: int = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(KasirError):
    """400-level input problem (non-positive quantity, negative cash, missing notes)."""

    code = "VALIDATION_ERROR"
    http_status = 400

    def __init__(self, message: str, *, field: str | None = None):
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict:
        d = super().to_dict()
        if self.field:
            d["field"] = self.field
        return d


class InsufficientStockError(KasirError):
    """A movement would drive on-hand quantity below zero."""

    code = "INSUFFICIENT_STOCK"
    http_status = 409

    def __init__(self, *, product_id: str, warehouse_id: str, available: int, requested: int):
        self.product_id = product_id
        self.warehouse_id = warehouse_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for product {product_id} in warehouse {warehouse_id}: "
            f"available {available}, requested {requested}"
        )

    def to_dict(self) -> dict:
        d = super().to_dict()
        d.update({
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "available": self.available,
            "requested": self.requested,
        })
        return d


class ConflictError(KasirError):
    """409-level uniqueness conflict (e.g., a second OPEN shift for the same scope)."""

    code = "CONFLICT"
    http_status = 409


class InvalidStateError(KasirError):
    """Operation attempted against a session or transaction in a terminal state."""

    code = "INVALID_STATE"
    http_status = 409


class NotFoundError(KasirError):
    """Referenced session, transaction or key does not exist for this company."""

    code = "NOT_FOUND"
    http_status = 404


class StorageError(KasirError):
    """Infrastructure failure; distinct from every business outcome above."""

    code = "INTERNAL"
    http_status = 503
