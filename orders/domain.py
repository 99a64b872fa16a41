"""
Plain records passed between the order placement steps.

These are independent of the ORM so the services can be exercised with any
repository implementation.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import List, Optional

# Column sizes of the customer snapshot stored on an order
CUSTOMER_FIELD_MAX_LENGTHS = {
    'first_name': 100,
    'last_name': 100,
    'email': 254,
    'street': 200,
    'number': 20,
    'postal_code': 20,
    'city': 100,
    'phone': 40,
    'note': 2000,
}


@dataclass(frozen=True)
class CustomerData:
    """Normalized customer snapshot embedded in an order."""
    first_name: str
    last_name: str
    street: str
    number: str
    postal_code: str
    city: str
    phone: str
    email: Optional[str] = None
    note: Optional[str] = None


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int


@dataclass(frozen=True)
class PreparedLine:
    """A cart line validated against stock, with its pricing snapshot."""
    product_id: int
    title: str
    quantity: int
    unit_price: int
    discount: int
    final_unit_price: int
    line_total: int
    remaining_stock: int


@dataclass(frozen=True)
class OrderTotals:
    total_items: int
    total_amount: int


@dataclass(frozen=True)
class NewOrder:
    """Everything the repository needs to insert an order."""
    order_number: str
    created_at: datetime
    customer: CustomerData
    lines: List[PreparedLine]
    totals: OrderTotals


@dataclass(frozen=True)
class OrderItemResult:
    product_id: int
    title: str
    quantity: int
    unit_price: int
    discount: int
    final_unit_price: int
    line_total: int


@dataclass(frozen=True)
class OrderResult:
    """What a successful placement returns to the caller."""
    order_id: int
    order_number: str
    created_at: int  # epoch milliseconds
    customer: CustomerData
    items: List[OrderItemResult]
    totals: OrderTotals

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ProductSales:
    """Sales rollup row for a single product."""
    product_id: int
    title: str
    sold_quantity: int = 0
    revenue: int = 0
    orders_count: int = 0
    last_sold_at: int = 0
    current_stock: int = 0
    category_name: str = ''


@dataclass(frozen=True)
class SalesSummary:
    orders_count: int
    total_items: int
    total_amount: int
    unique_products: int


@dataclass(frozen=True)
class SalesReport:
    summary: SalesSummary
    products: List[ProductSales] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)
