"""
Django Admin configuration for order models.

Orders are immutable snapshots; only the status may be changed here.
"""
from django.contrib import admin
from .models import Order, OrderLine


class OrderLineInline(admin.TabularInline):
    model = OrderLine
    extra = 0
    fields = ['title', 'quantity', 'unit_price', 'discount', 'final_unit_price', 'line_total']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = [
        'order_number', 'customer_name', 'customer_city', 'status',
        'total_items', 'total_amount', 'created_at'
    ]
    list_filter = ['status', 'created_at']
    search_fields = ['order_number', 'customer_last_name', 'customer_phone', 'customer_email']
    ordering = ['-created_at']
    readonly_fields = [
        'order_number', 'legacy_product', 'customer_first_name', 'customer_last_name',
        'customer_email', 'customer_street', 'customer_number', 'customer_postal_code',
        'customer_city', 'customer_phone', 'customer_note',
        'total_items', 'total_amount', 'created_at'
    ]
    inlines = [OrderLineInline]

    def customer_name(self, obj):
        return obj.customer_name
    customer_name.short_description = 'Customer'

    def has_delete_permission(self, request, obj=None):
        return False
