"""
Back-office: error taxonomy

Every failure carries a human-readable ``reason`` that is safe to show to
staff. Validation and not-found errors are raised before any write;
store errors abort a command; publish errors never unwind a committed write.
"""

from enum import Enum


class EntityKind(str, Enum):
    CUSTOMER = "customer"
    PRODUCT = "product"
    ORDER = "order"


class BackofficeError(Exception):
    """Base class for every error the back-office raises on purpose."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class NotFound(BackofficeError):
    def __init__(self, kind: EntityKind) -> None:
        super().__init__(f"{kind.value.capitalize()} not found.")
        self.kind = kind


# ── Validation ───────────────────────────────────


class ValidationError(BackofficeError):
    """The request was well-formed but breaks an order invariant."""


class InvalidQuantity(ValidationError):
    def __init__(self, quantity: int) -> None:
        super().__init__("Quantity must be at least 1.")
        self.quantity = quantity


class UnpricedProduct(ValidationError):
    def __init__(self) -> None:
        super().__init__("Product has no price.")


class InsufficientStock(ValidationError):
    def __init__(self, requested: int, available: int) -> None:
        super().__init__(
            f"Quantity exceeds available stock: requested={requested}, available={available}."
        )
        self.requested = requested
        self.available = available


# ── Collaborator failures ────────────────────────


class StoreError(BackofficeError):
    """The entity store rejected a read or write. ``detail`` is passed through."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ConflictError(StoreError):
    """Insert hit an existing key, or a replace saw a different version."""


class PublishError(BackofficeError):
    def __init__(self, detail: str, channel: str, event_type: str) -> None:
        super().__init__(f"Failed to publish {event_type} to {channel}: {detail}")
        self.detail = detail
        self.channel = channel
        self.event_type = event_type
