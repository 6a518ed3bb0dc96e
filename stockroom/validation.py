"""
Stockroom error taxonomy and argument checks (authoritative)

- NotFoundError / InvalidArgumentError are raised before any mutation.
- InsufficientStockError rejects a single stock commit; stock is unchanged.
- TransactionFailedError means an atomic unit was rolled back entirely.
- BusyError means lock contention outlasted the configured timeout; retryable.
"""
from __future__ import annotations

# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# Largest quantity accepted in a single receive/reserve/sale item
MAX_QUANTITY = 999_999_999

# Ceiling for Product.stock; keeps stock + quantity inside a 64-bit INTEGER
MAX_STOCK = 999_999_999_999


class InventoryError(Exception):
    """Base class for engine errors; `details` carries structured context."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(InventoryError):
    """Referenced supplier/product/sale/item does not exist."""


class InvalidArgumentError(InventoryError, ValueError):
    """Bad input: non-positive quantity, negative price, empty name."""


class ConflictError(InvalidArgumentError):
    """Business rule conflict (e.g., duplicate supplier or product name)."""


class InsufficientStockError(InventoryError):
    """A stock commit would drive on-hand below zero."""


class TransactionFailedError(InventoryError):
    """The atomic unit could not complete and was rolled back."""


class BusyError(InventoryError):
    """Lock wait timed out; the caller may retry the operation."""


def _is_int(value) -> bool:
    # bool is an int subclass; reject it explicitly
    return isinstance(value, int) and not isinstance(value, bool)


def require_quantity(quantity, field: str = "quantity") -> int:
    if not _is_int(quantity):
        raise InvalidArgumentError(f"{field} must be an integer")
    if quantity <= 0:
        raise InvalidArgumentError(f"{field} must be greater than zero")
    if quantity > MAX_QUANTITY:
        raise InvalidArgumentError(f"{field} exceeds maximum of {MAX_QUANTITY}")
    return quantity


def require_price_cents(value, field: str = "price_cents") -> int:
    if not _is_int(value):
        raise InvalidArgumentError(f"{field} must be an integer number of cents")
    if value < 0:
        raise InvalidArgumentError(f"{field} cannot be negative")
    if value > MAX_PRICE_CENTS:
        raise InvalidArgumentError(f"{field} exceeds maximum of {MAX_PRICE_CENTS}")
    return value


def require_name(value, field: str = "name") -> str:
    if value is None or not str(value).strip():
        raise InvalidArgumentError(f"{field} is required")
    return str(value).strip()


def optional_text(value) -> str | None:
    """Blank optional text is stored as NULL."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None
