"""
Sales analytics - read-only rollup of all orders grouped by product.

Stock and category are joined from the live catalog, so a row shows today's
inventory rather than inventory at the time of sale. Products or categories
that were deleted since degrade to placeholder labels.
"""
import logging
from typing import Dict, Iterator, Tuple

from catalog.pricing import resolve_final_unit_price
from .domain import ProductSales, SalesReport, SalesSummary
from .repository import DjangoOrderRepository

logger = logging.getLogger(__name__)

DELETED_PRODUCT_TITLE = 'Deleted product'
NO_CATEGORY_NAME = 'No category'


def _order_lines(order, products) -> Iterator[Tuple[int, str, int, int]]:
    """Yield (product_id, title, quantity, line_total) for an order."""
    lines = list(order.lines.all())
    if lines:
        for line in lines:
            yield line.product_id, line.title, line.quantity, line.line_total
        return

    if order.legacy_product_id is None:
        return

    # Legacy single-item orders stored no price, so the current one is used
    product = products.get(order.legacy_product_id)
    if product is None:
        yield order.legacy_product_id, DELETED_PRODUCT_TITLE, 1, 0
    else:
        yield product.id, product.title, 1, resolve_final_unit_price(product.price, product.discount)


def sales_analytics(repository=None) -> SalesReport:
    """
    Aggregate sold quantity, revenue and order count per product.

    Rows are sorted by sold quantity, then revenue, both descending.
    """
    repository = repository or DjangoOrderRepository()

    orders = repository.list_orders()
    products = {product.id: product for product in repository.list_products()}
    categories = {category.id: category.name for category in repository.list_categories()}

    rows: Dict[int, ProductSales] = {}
    for order in orders:
        sold_at = int(order.created_at.timestamp() * 1000)
        seen_in_order = set()

        for product_id, title, quantity, line_total in _order_lines(order, products):
            row = rows.get(product_id)
            if row is None:
                row = rows[product_id] = ProductSales(product_id=product_id, title=title)
            elif title != DELETED_PRODUCT_TITLE:
                # Orders come oldest first; keep the newest snapshot
                row.title = title
            row.sold_quantity += quantity
            row.revenue += line_total
            row.last_sold_at = max(row.last_sold_at, sold_at)
            if product_id not in seen_in_order:
                seen_in_order.add(product_id)
                row.orders_count += 1

    for product_id, row in rows.items():
        product = products.get(product_id)
        if product is None:
            row.current_stock = 0
            row.category_name = NO_CATEGORY_NAME
            continue
        row.title = product.title
        row.current_stock = product.stock
        row.category_name = categories.get(product.category_id, NO_CATEGORY_NAME)

    ranked = sorted(
        rows.values(),
        key=lambda row: (row.sold_quantity, row.revenue),
        reverse=True,
    )

    summary = SalesSummary(
        orders_count=len(orders),
        total_items=sum(row.sold_quantity for row in ranked),
        total_amount=sum(row.revenue for row in ranked),
        unique_products=len(ranked),
    )
    logger.debug(f"Sales analytics built over {summary.orders_count} orders")
    return SalesReport(summary=summary, products=ranked)
