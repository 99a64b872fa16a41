"""
Order placement errors.

All of these are raised before any write happens; the surrounding
transaction is rolled back and the caller decides how to show them.
"""
from typing import Iterable


class OrderPlacementError(Exception):
    """Base class for errors that abort an order."""
    error_type = 'Order Error'


class CustomerValidationError(OrderPlacementError):
    """Raised when customer fields are missing or longer than their columns."""
    error_type = 'Validation Error'

    def __init__(self, missing_fields: Iterable[str] = (), too_long_fields: Iterable[str] = ()):
        self.missing_fields = list(missing_fields)
        self.too_long_fields = list(too_long_fields)
        if self.missing_fields:
            message = f"Incomplete customer data: missing {', '.join(self.missing_fields)}"
        else:
            message = f"Invalid customer data: too long {', '.join(self.too_long_fields)}"
        super().__init__(message)


class EmptyCartError(OrderPlacementError):
    """Raised when no valid lines remain after aggregation."""
    error_type = 'Empty Cart'

    def __init__(self):
        super().__init__("Cart is empty")


class ProductNotFoundError(OrderPlacementError):
    """Raised when a referenced product no longer exists."""
    error_type = 'Product Not Found'

    def __init__(self, product_ids: Iterable[int]):
        self.product_ids = sorted(product_ids)
        super().__init__(
            f"Products not found: {', '.join(str(pid) for pid in self.product_ids)}"
        )


class InsufficientStockError(OrderPlacementError):
    """Raised when there's not enough stock for an order line."""
    error_type = 'Insufficient Stock'

    def __init__(self, product_id: int, product_title: str, requested: int, available: int):
        self.product_id = product_id
        self.product_title = product_title
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for {product_title}: "
            f"requested {requested}, available {available}"
        )
