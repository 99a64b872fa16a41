"""
Order Service Layer - Atomic order placement logic.

Implements the all-or-nothing checkout:
1. Normalize and validate customer data (no database access)
2. Merge duplicate cart lines into one line per product
3. Lock product rows with select_for_update()
4. Validate ALL lines exist and have sufficient stock
5. If ANY fails: raise, nothing is written
6. If ALL pass: insert the order and patch stock in the same transaction
"""
import logging
import math
import random
from datetime import datetime, timezone as dt_timezone
from typing import Dict, Iterable, List, Mapping, Optional

from django.conf import settings
from django.utils import timezone

from catalog.pricing import resolve_final_unit_price
from .domain import (
    CUSTOMER_FIELD_MAX_LENGTHS,
    CartLine,
    CustomerData,
    NewOrder,
    OrderItemResult,
    OrderResult,
    OrderTotals,
    PreparedLine,
)
from .exceptions import (
    CustomerValidationError,
    EmptyCartError,
    InsufficientStockError,
    ProductNotFoundError,
)
from .repository import DjangoOrderRepository

logger = logging.getLogger(__name__)

REQUIRED_CUSTOMER_FIELDS = (
    'first_name', 'last_name', 'street', 'number', 'postal_code', 'city', 'phone',
)
OPTIONAL_CUSTOMER_FIELDS = ('email', 'note')


def _clean(value) -> str:
    if value is None:
        return ''
    return str(value).strip()


def normalize_customer(raw: Mapping) -> CustomerData:
    """
    Trim customer fields and check that the required ones are present.

    Empty optional fields (email, note) become ``None``.

    Raises:
        CustomerValidationError: If any required field is empty after trimming,
            or any field is longer than the column it is stored in
    """
    values = {name: _clean(raw.get(name)) for name in REQUIRED_CUSTOMER_FIELDS}
    missing = [name for name, value in values.items() if not value]
    if missing:
        raise CustomerValidationError(missing_fields=missing)

    for name in OPTIONAL_CUSTOMER_FIELDS:
        values[name] = _clean(raw.get(name)) or None

    too_long = [
        name for name, value in values.items()
        if value and len(value) > CUSTOMER_FIELD_MAX_LENGTHS[name]
    ]
    if too_long:
        raise CustomerValidationError(too_long_fields=too_long)

    return CustomerData(**values)


def _coerce_quantity(raw) -> Optional[int]:
    if isinstance(raw, bool):
        return None
    try:
        quantity = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(quantity):
        return None
    return math.floor(quantity)


def _coerce_product_id(raw) -> Optional[int]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, float) and not raw.is_integer():
        return None
    try:
        return int(raw)
    except (TypeError, ValueError, OverflowError):
        return None


def aggregate_cart_lines(items: Iterable[Mapping]) -> List[CartLine]:
    """
    Merge submitted cart entries into one line per product.

    Product ids are coerced to integers ("5" and 5 are the same product) and
    entries whose id cannot be coerced are dropped. Quantities are floored;
    zero, negative and non-numeric quantities are dropped. Output keeps the
    order in which products first appear.

    Raises:
        EmptyCartError: If no valid line remains
    """
    quantities: Dict[int, int] = {}
    for item in items:
        quantity = _coerce_quantity(item.get('quantity'))
        if quantity is None or quantity <= 0:
            continue
        product_id = _coerce_product_id(item.get('product_id'))
        if product_id is None:
            continue
        quantities[product_id] = quantities.get(product_id, 0) + quantity

    if not quantities:
        raise EmptyCartError()

    return [CartLine(product_id=pid, quantity=qty) for pid, qty in quantities.items()]


def reconcile_inventory(lines: List[CartLine], repository) -> List[PreparedLine]:
    """
    Check requested quantities against locked stock and price each line.

    Must run inside ``repository.atomic()`` so the row locks are held until
    the order is written.

    Raises:
        ProductNotFoundError: If any product no longer exists
        InsufficientStockError: For the first line whose stock is too low
    """
    products = repository.lock_products(line.product_id for line in lines)

    missing = {line.product_id for line in lines} - set(products)
    if missing:
        raise ProductNotFoundError(missing)

    # FAIL-FAST: check every line before computing anything
    for line in lines:
        product = products[line.product_id]
        if product.stock < line.quantity:
            raise InsufficientStockError(
                product_id=product.id,
                product_title=product.title,
                requested=line.quantity,
                available=product.stock,
            )

    prepared = []
    for line in lines:
        product = products[line.product_id]
        discount = product.discount or 0
        final_unit_price = resolve_final_unit_price(product.price, discount)
        prepared.append(PreparedLine(
            product_id=product.id,
            title=product.title,
            quantity=line.quantity,
            unit_price=product.price,
            discount=discount,
            final_unit_price=final_unit_price,
            line_total=final_unit_price * line.quantity,
            remaining_stock=product.stock - line.quantity,
        ))
    return prepared


def generate_order_number(now: datetime, prefix: Optional[str] = None) -> str:
    """
    Build a ``PREFIX-YYYYMMDD-RRRR`` label from the UTC date.

    The random suffix makes same-day collisions unlikely but possible; the
    database id stays the real key.
    """
    prefix = prefix or getattr(settings, 'ORDER_NUMBER_PREFIX', 'ORD')
    day = now.astimezone(dt_timezone.utc).strftime('%Y%m%d')
    return f"{prefix}-{day}-{random.randint(0, 9999):04d}"


def to_epoch_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def write_order(customer: CustomerData, lines: List[PreparedLine], repository) -> OrderResult:
    """
    Insert the order and apply the precomputed stock levels.

    Runs in the caller's transaction together with ``reconcile_inventory``.
    The result is built from the in-memory data, not re-read.
    """
    totals = OrderTotals(
        total_items=sum(line.quantity for line in lines),
        total_amount=sum(line.line_total for line in lines),
    )
    now = timezone.now()
    record = NewOrder(
        order_number=generate_order_number(now),
        created_at=now,
        customer=customer,
        lines=lines,
        totals=totals,
    )

    order = repository.insert_order(record)

    for line in lines:
        repository.patch_product_stock(line.product_id, line.remaining_stock)
        logger.debug(
            f"Order {record.order_number}: deducted {line.quantity} of {line.title}, "
            f"remaining stock: {line.remaining_stock}"
        )

    return OrderResult(
        order_id=order.id,
        order_number=record.order_number,
        created_at=to_epoch_millis(now),
        customer=customer,
        items=[
            OrderItemResult(
                product_id=line.product_id,
                title=line.title,
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount=line.discount,
                final_unit_price=line.final_unit_price,
                line_total=line.line_total,
            )
            for line in lines
        ],
        totals=totals,
    )


def place_order(items: Iterable[Mapping], customer: Mapping, repository=None) -> OrderResult:
    """
    Turn a submitted cart into a committed order.

    Args:
        items: Dicts with 'product_id' and 'quantity'
        customer: Raw customer fields
        repository: Storage backend, defaults to the Django ORM one

    Returns:
        OrderResult for receipts and notification emails

    Raises:
        OrderPlacementError: Any subclass; nothing is written in that case
    """
    repository = repository or DjangoOrderRepository()

    normalized = normalize_customer(customer)
    lines = aggregate_cart_lines(items)

    try:
        with repository.atomic():
            prepared = reconcile_inventory(lines, repository)
            result = write_order(normalized, prepared, repository)
    except (ProductNotFoundError, InsufficientStockError) as e:
        logger.warning(f"Order rejected: {e}")
        raise

    logger.info(
        f"Order {result.order_number} (#{result.order_id}) placed: "
        f"{result.totals.total_items} items, total {result.totals.total_amount} RSD"
    )
    return result


def create_order(product_id: int, customer: Mapping, repository=None) -> OrderResult:
    """
    Single-product checkout kept for older clients.

    The legacy customer form has no email or note; any such keys are ignored.
    """
    legacy_customer = {
        name: value for name, value in customer.items()
        if name not in OPTIONAL_CUSTOMER_FIELDS
    }
    return place_order(
        [{'product_id': product_id, 'quantity': 1}],
        legacy_customer,
        repository=repository,
    )
