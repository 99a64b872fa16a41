"""
Catalog Models - Product data owned by the storefront admin.

Models:
    - Category: Product categorization
    - Product: Items available for sale, with price, discount and stock

The order engine reads products and only ever writes the ``stock`` column.
"""
from django.db import models
from django.core.validators import MinValueValidator, MaxValueValidator

from .pricing import resolve_final_unit_price


class Category(models.Model):
    """
    Product category for organizing products.
    """
    name = models.CharField(
        max_length=100,
        unique=True,
        db_index=True,
        help_text="Unique category name"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Category'
        verbose_name_plural = 'Categories'
        ordering = ['name']

    def __str__(self):
        return self.name


class Product(models.Model):
    """
    Product entity representing items available for sale.

    Prices are whole currency units (RSD); ``discount`` is a percentage.
    """
    title = models.CharField(
        max_length=200,
        db_index=True,
        help_text="Product title for display and search"
    )
    subtitle = models.CharField(
        max_length=200,
        blank=True,
        default='',
        help_text="Short line shown under the title"
    )
    description = models.TextField(
        blank=True,
        default='',
        help_text="Optional product description"
    )
    price = models.PositiveIntegerField(
        help_text="Unit price in whole currency units"
    )
    discount = models.PositiveSmallIntegerField(
        default=0,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
        help_text="Discount percent (0 = none)"
    )
    stock = models.PositiveIntegerField(
        default=0,
        validators=[MinValueValidator(0)],
        help_text="Units currently in stock"
    )
    category = models.ForeignKey(
        Category,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='products',
        help_text="Product category"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Product'
        verbose_name_plural = 'Products'
        ordering = ['title']
        indexes = [
            models.Index(fields=['category', 'stock']),
        ]

    def __str__(self):
        return f"{self.title} ({self.final_price} RSD)"

    @property
    def final_price(self) -> int:
        """Unit price after discount."""
        return resolve_final_unit_price(self.price, self.discount)

    @property
    def is_out_of_stock(self) -> bool:
        return self.stock == 0
