"""
Error taxonomy for the inventory service.

Every error carries a machine-readable ``kind`` and the HTTP status it maps to.
Handlers in ``app.core.error_handlers`` render them as
``{"error": kind, "message": ..., "field": ...}``.
"""
from typing import Any, Optional


class InventoryError(Exception):
    kind = "InventoryError"
    status_code = 500

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.kind, "message": self.message}
        if self.field:
            body["field"] = self.field
        return body


class ValidationError(InventoryError):
    kind = "ValidationError"
    status_code = 400


class PayloadTooLarge(ValidationError):
    status_code = 413


class Unauthorized(InventoryError):
    kind = "Unauthorized"
    status_code = 401


class NotFound(InventoryError):
    kind = "NotFound"
    status_code = 404

    @classmethod
    def entity(cls, entity: str, entity_id: Any) -> "NotFound":
        return cls(f"{entity} {entity_id} not found")


class Conflict(InventoryError):
    kind = "Conflict"
    status_code = 409


class InsufficientStock(InventoryError):
    kind = "InsufficientStock"
    status_code = 409

    def __init__(self, item_id: int, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for item {item_id}: available {available}, requested {requested}"
        )
        self.item_id = item_id
        self.available = available
        self.requested = requested

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["available"] = self.available
        body["requested"] = self.requested
        return body


class UploadError(InventoryError):
    kind = "UploadError"
    status_code = 502


class StorageError(InventoryError):
    kind = "StorageError"
    status_code = 503
