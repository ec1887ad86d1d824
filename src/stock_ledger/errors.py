"""Domain errors raised by the ledger, the sale engine, and report windows.

Every error is recoverable: the rejected operation leaves state untouched and
``str(error)`` is a message fit for showing to the operator.
"""

from __future__ import annotations


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class InvalidInputError(BusinessRuleViolation, ValueError):
    """Raised when a required field is missing or malformed."""


class InvalidQuantityError(InvalidInputError):
    """Raised when a sale quantity is not a positive whole number."""


class DuplicateNameError(BusinessRuleViolation):
    """Raised when a product name collides with an existing one."""


class MissingReferenceError(BusinessRuleViolation):
    """Raised when a referenced product or sale is unknown."""


class ProductNotFoundError(MissingReferenceError):
    """Raised when a product identifier cannot be resolved."""


class SaleNotFoundError(MissingReferenceError):
    """Raised when a sale identifier cannot be resolved."""


class InsufficientStockError(BusinessRuleViolation):
    """Raised when a sale asks for more units than are on hand."""

    def __init__(self, product_name: str, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for '{product_name}': only {available} available, {requested} requested"
        )
        self.product_name = product_name
        self.available = available
        self.requested = requested


__all__ = [
    "BusinessRuleViolation",
    "InvalidInputError",
    "InvalidQuantityError",
    "DuplicateNameError",
    "MissingReferenceError",
    "ProductNotFoundError",
    "SaleNotFoundError",
    "InsufficientStockError",
]
