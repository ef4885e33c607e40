"""Domain exceptions for the store API.

Every exception carries the HTTP status it maps to; ``main.py`` turns them
into ``{"detail": ..., "error_type": ...}`` responses.
"""

from typing import Any, Dict, List, Optional


class StoreError(Exception):
    """Base exception for all store errors."""

    status_code = 500

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": str(self), "error_type": type(self).__name__}


class ValidationError(StoreError):
    """Raised when input is malformed."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", errors: Optional[List[Any]] = None):
        self.errors = errors or []
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.errors:
            data["errors"] = self.errors
        return data


class NotFound(StoreError):
    status_code = 404

    def __init__(self, kind: str, item_id: Any):
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"{kind} not found: {item_id}")


class OrderNotFound(NotFound):
    def __init__(self, order_id: Any):
        super().__init__("Order", order_id)


class PaymentNotFound(NotFound):
    """Raised when an intent id is not recorded against the order."""

    def __init__(self, intent_id: str):
        super().__init__("Payment", intent_id)


class ItemUnavailable(StoreError):
    """Raised when a cart item cannot be bought in the requested quantity."""

    status_code = 409

    def __init__(self, item_type: str, item_id: int, reason: str):
        self.item_type = item_type
        self.item_id = item_id
        super().__init__(reason)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["item"] = {"type": self.item_type, "id": self.item_id}
        return data


class EmptyOrder(StoreError):
    status_code = 400

    def __init__(self):
        super().__init__("No valid items found")


class AlreadyProcessed(StoreError):
    status_code = 409

    def __init__(self, item_id: int, kind: str = "Order"):
        self.item_id = item_id
        self.kind = kind
        super().__init__(f"{kind} {item_id} already processed")


class PaymentNotCompleted(StoreError):
    status_code = 402

    def __init__(self, intent_id: str, status: str):
        self.intent_id = intent_id
        self.status = status
        super().__init__(f"Payment not completed (status: {status})")


class InvalidSignature(StoreError):
    """Raised when a webhook payload fails signature verification."""

    status_code = 400

    def __init__(self, reason: str = "Invalid webhook signature"):
        super().__init__(reason)


class NotAuthenticated(StoreError):
    status_code = 401

    def __init__(self, reason: str = "Not authorized to access this route"):
        super().__init__(reason)


class Forbidden(StoreError):
    status_code = 403

    def __init__(self, role: str, reason: Optional[str] = None):
        self.role = role
        super().__init__(reason or f"User role {role} is not authorized to access this route")


class DuplicateUser(StoreError):
    status_code = 409

    def __init__(self):
        super().__init__("User already exists with this email or username")


class UploadRejected(StoreError):
    status_code = 400


class TransientStoreError(StoreError):
    """Raised when the database cannot be reached or is busy."""

    status_code = 503


class GatewayUnavailable(StoreError):
    """Raised when the payment processor fails or cannot be reached."""

    status_code = 503
