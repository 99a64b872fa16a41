"""
Repository layer for the order engine.

Keeps the services free of ORM calls so the placement and analytics logic
only talks to this small interface. ``atomic()`` is the unit of work: the
stock check, the order insert and the stock patches all run inside it.
"""
from typing import Dict, Iterable, List

from django.db import transaction
from django.utils import timezone

from catalog.models import Category, Product
from .domain import NewOrder
from .models import Order, OrderLine


class DjangoOrderRepository:
    """Order engine storage backed by the Django ORM."""

    def atomic(self):
        return transaction.atomic()

    def get_product(self, product_id: int):
        return Product.objects.filter(pk=product_id).first()

    def lock_products(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        """
        Load and row-lock the given products for the current transaction.

        Rows are locked in id order to avoid deadlocks between concurrent
        checkouts touching the same products.
        """
        queryset = Product.objects.select_for_update().filter(
            pk__in=list(product_ids)
        ).order_by('id')
        return {product.id: product for product in queryset}

    def patch_product_stock(self, product_id: int, new_stock: int) -> None:
        Product.objects.filter(pk=product_id).update(
            stock=new_stock,
            updated_at=timezone.now()
        )

    def insert_order(self, record: NewOrder) -> Order:
        customer = record.customer
        order = Order.objects.create(
            order_number=record.order_number,
            status=Order.Status.PENDING,
            customer_first_name=customer.first_name,
            customer_last_name=customer.last_name,
            customer_email=customer.email,
            customer_street=customer.street,
            customer_number=customer.number,
            customer_postal_code=customer.postal_code,
            customer_city=customer.city,
            customer_phone=customer.phone,
            customer_note=customer.note,
            total_items=record.totals.total_items,
            total_amount=record.totals.total_amount,
            created_at=record.created_at,
        )

        OrderLine.objects.bulk_create([
            OrderLine(
                order=order,
                product_id=line.product_id,
                position=position,
                title=line.title,
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount=line.discount,
                final_unit_price=line.final_unit_price,
                line_total=line.line_total,
            )
            for position, line in enumerate(record.lines)
        ])
        return order

    def list_orders(self) -> List[Order]:
        return list(Order.objects.prefetch_related('lines').order_by('created_at', 'id'))

    def list_products(self) -> List[Product]:
        return list(Product.objects.all())

    def list_categories(self) -> List[Category]:
        return list(Category.objects.all())
