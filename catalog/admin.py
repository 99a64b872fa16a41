"""
Django Admin configuration for catalog models.
"""
from django.contrib import admin
from .models import Category, Product


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'product_count', 'created_at']
    search_fields = ['name']
    ordering = ['name']

    def product_count(self, obj):
        return obj.products.count()
    product_count.short_description = 'Products'


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['id', 'title', 'price', 'discount', 'final_price', 'stock', 'is_low_stock', 'category']
    list_filter = ['category', 'discount', 'updated_at']
    search_fields = ['title', 'subtitle', 'description']
    ordering = ['title']
    raw_id_fields = ['category']

    def final_price(self, obj):
        return f"{obj.final_price} RSD"
    final_price.short_description = 'Final price'

    def is_low_stock(self, obj):
        return obj.stock <= 5
    is_low_stock.boolean = True
    is_low_stock.short_description = 'Low Stock'
