"""
Typed errors raised by the pharmacy engine.

Every error carries a machine-readable ``code`` and the structured fields a
caller needs to react (for instance the available amount on an
``InsufficientStockError``), so the HTTP layer never parses messages.

    PharmacyEngineError
    +-- NotFoundError              NOT_FOUND
    +-- InvalidQuantityError       INVALID_QUANTITY
    +-- InsufficientStockError     INSUFFICIENT_STOCK
    +-- ConcurrencyConflictError   CONCURRENCY_CONFLICT
    +-- OutcomeUnknownError        OUTCOME_UNKNOWN
    +-- ValidationError            VALIDATION_ERROR
"""

from typing import Any, Dict, Optional


class PharmacyEngineError(Exception):
    code: str = "PHARMACY_ENGINE_ERROR"
    # Suggested HTTP status for the API layer
    status_code: int = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class NotFoundError(PharmacyEngineError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id

    def to_payload(self) -> Dict[str, Any]:
        out = super().to_payload()
        out.update({"entity": self.entity, "entity_id": str(self.entity_id)})
        return out


class InvalidQuantityError(PharmacyEngineError):
    code = "INVALID_QUANTITY"
    status_code = 422

    def __init__(self, quantity: Any, message: Optional[str] = None):
        super().__init__(message or f"Quantity must be a positive integer, got {quantity!r}")
        self.quantity = quantity

    def to_payload(self) -> Dict[str, Any]:
        out = super().to_payload()
        out["quantity"] = self.quantity if isinstance(self.quantity, (int, float, str)) else str(self.quantity)
        return out


class InsufficientStockError(PharmacyEngineError):
    code = "INSUFFICIENT_STOCK"
    status_code = 409

    def __init__(self, item_id: Any, requested: int, available: int):
        super().__init__(f"Not enough stock. Available={available} requested={requested}")
        self.item_id = item_id
        self.requested = requested
        self.available = available

    def to_payload(self) -> Dict[str, Any]:
        out = super().to_payload()
        out.update({
            "item_id": str(self.item_id),
            "requested": self.requested,
            "available": self.available,
        })
        return out


class ConcurrencyConflictError(PharmacyEngineError):
    code = "CONCURRENCY_CONFLICT"
    status_code = 409

    def __init__(self, message: str = "A conflicting concurrent write was detected; retry with fresh state"):
        super().__init__(message)


class OutcomeUnknownError(PharmacyEngineError):
    code = "OUTCOME_UNKNOWN"
    status_code = 503

    def __init__(self, message: str = "Storage did not confirm the write; re-query state before retrying"):
        super().__init__(message)


class ValidationError(PharmacyEngineError):
    code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_payload(self) -> Dict[str, Any]:
        out = super().to_payload()
        if self.field:
            out["field"] = self.field
        return out


class ImmutableRecordError(RuntimeError):
    """Raised when code tries to update or delete an append-only record."""
