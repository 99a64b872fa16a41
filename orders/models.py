"""
Order Models - Order and OrderLine entities.

Orders are written once by the placement engine and never updated by it.
Every line snapshots the product title and pricing at order time, so later
catalog edits or deletions do not change historical orders.

Order Status Flow:
    PENDING -> PROCESSED -> COMPLETED (transitions handled outside the engine)
"""
from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator

from catalog.models import Product
from .domain import CUSTOMER_FIELD_MAX_LENGTHS


class Order(models.Model):
    """
    Customer order with an embedded customer snapshot and totals.

    ``legacy_product`` is only set on records created by the old
    single-product checkout, which stored no lines.
    """

    class Status(models.TextChoices):
        PENDING = 'pending', 'Pending'
        PROCESSED = 'processed', 'Processed'
        COMPLETED = 'completed', 'Completed'

    order_number = models.CharField(
        max_length=32,
        db_index=True,
        help_text="Human-facing order label, not guaranteed unique"
    )
    legacy_product = models.ForeignKey(
        Product,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        null=True,
        blank=True,
        related_name='+',
        help_text="Product of a legacy single-item order"
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
        help_text="Current order status"
    )

    # Customer snapshot
    customer_first_name = models.CharField(max_length=CUSTOMER_FIELD_MAX_LENGTHS['first_name'])
    customer_last_name = models.CharField(max_length=CUSTOMER_FIELD_MAX_LENGTHS['last_name'])
    customer_email = models.EmailField(
        max_length=CUSTOMER_FIELD_MAX_LENGTHS['email'],
        blank=True,
        null=True
    )
    customer_street = models.CharField(max_length=CUSTOMER_FIELD_MAX_LENGTHS['street'])
    customer_number = models.CharField(
        max_length=CUSTOMER_FIELD_MAX_LENGTHS['number'],
        help_text="House/apartment number"
    )
    customer_postal_code = models.CharField(max_length=CUSTOMER_FIELD_MAX_LENGTHS['postal_code'])
    customer_city = models.CharField(max_length=CUSTOMER_FIELD_MAX_LENGTHS['city'])
    customer_phone = models.CharField(max_length=CUSTOMER_FIELD_MAX_LENGTHS['phone'])
    customer_note = models.TextField(blank=True, null=True)

    total_items = models.PositiveIntegerField(default=0)
    total_amount = models.PositiveIntegerField(
        default=0,
        help_text="Sum of line totals in whole currency units"
    )
    created_at = models.DateTimeField(db_index=True)

    class Meta:
        verbose_name = 'Order'
        verbose_name_plural = 'Orders'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'created_at']),
        ]

    def __str__(self):
        return f"Order {self.order_number} ({self.status})"

    @property
    def customer_name(self) -> str:
        return f"{self.customer_first_name} {self.customer_last_name}".strip()

    @property
    def is_legacy(self) -> bool:
        return self.legacy_product_id is not None


class OrderLine(models.Model):
    """
    One product-and-quantity entry of an order with its pricing snapshot.

    The product reference carries no database constraint so the id survives
    product deletion; sales analytics still groups by it.
    """
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='lines',
        help_text="Parent order"
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        related_name='+',
        help_text="Ordered product"
    )
    position = models.PositiveSmallIntegerField(default=0)
    title = models.CharField(
        max_length=200,
        help_text="Product title at time of order"
    )
    quantity = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Quantity ordered"
    )
    unit_price = models.PositiveIntegerField(help_text="Price per unit at time of order")
    discount = models.PositiveSmallIntegerField(
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text="Discount percent at time of order"
    )
    final_unit_price = models.PositiveIntegerField()
    line_total = models.PositiveIntegerField()

    class Meta:
        verbose_name = 'Order Line'
        verbose_name_plural = 'Order Lines'
        ordering = ['order', 'position']

    def __str__(self):
        return f"{self.quantity}x {self.title} @ {self.final_unit_price} RSD"
