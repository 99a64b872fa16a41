"""
Serializers for order models and checkout requests.

Request serializers only check the payload shape. Trimming, required
customer fields and quantity cleanup are handled by the order services.
"""
from rest_framework import serializers
from .domain import CUSTOMER_FIELD_MAX_LENGTHS
from .models import Order, OrderLine


def _customer_field(name, **kwargs):
    return serializers.CharField(
        allow_blank=True,
        trim_whitespace=False,
        max_length=CUSTOMER_FIELD_MAX_LENGTHS[name],
        **kwargs
    )


class OrderLineSerializer(serializers.ModelSerializer):
    """Serializer for an order line snapshot."""

    class Meta:
        model = OrderLine
        fields = [
            'product_id', 'title', 'quantity', 'unit_price',
            'discount', 'final_unit_price', 'line_total'
        ]


class CartItemInputSerializer(serializers.Serializer):
    """One cart entry as submitted by the client."""
    product_id = serializers.IntegerField(min_value=1)
    quantity = serializers.FloatField()


class LegacyCustomerInputSerializer(serializers.Serializer):
    first_name = _customer_field('first_name')
    last_name = _customer_field('last_name')
    street = _customer_field('street')
    number = _customer_field('number')
    postal_code = _customer_field('postal_code')
    city = _customer_field('city')
    phone = _customer_field('phone')


class CustomerInputSerializer(LegacyCustomerInputSerializer):
    email = _customer_field('email', required=False, allow_null=True)
    note = _customer_field('note', required=False, allow_null=True)


class PlaceOrderSerializer(serializers.Serializer):
    """
    Serializer for placing orders via POST /orders/

    Request format:
    {
        "items": [
            {"product_id": 1, "quantity": 2},
            {"product_id": 3, "quantity": 1}
        ],
        "customer": {
            "first_name": "Ana", "last_name": "Petrovic",
            "street": "Knez Mihailova", "number": "12",
            "postal_code": "11000", "city": "Beograd",
            "phone": "+381601234567",
            "email": "ana@example.com", "note": ""
        }
    }
    """
    items = CartItemInputSerializer(many=True, allow_empty=True)
    customer = CustomerInputSerializer()


class LegacyOrderSerializer(serializers.Serializer):
    """Serializer for the single-product checkout via POST /orders/single/"""
    product_id = serializers.IntegerField(min_value=1)
    customer = LegacyCustomerInputSerializer()


class OrderSerializer(serializers.ModelSerializer):
    """
    Serializer for Order model with nested lines and customer snapshot.
    """
    lines = OrderLineSerializer(many=True, read_only=True)
    customer = serializers.SerializerMethodField()
    totals = serializers.SerializerMethodField()
    created_at_ms = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'status', 'legacy_product_id',
            'customer', 'lines', 'totals', 'created_at', 'created_at_ms'
        ]

    def get_customer(self, obj):
        return {
            'first_name': obj.customer_first_name,
            'last_name': obj.customer_last_name,
            'email': obj.customer_email,
            'street': obj.customer_street,
            'number': obj.customer_number,
            'postal_code': obj.customer_postal_code,
            'city': obj.customer_city,
            'phone': obj.customer_phone,
            'note': obj.customer_note,
        }

    def get_totals(self, obj):
        return {'total_items': obj.total_items, 'total_amount': obj.total_amount}

    def get_created_at_ms(self, obj):
        return int(obj.created_at.timestamp() * 1000)


class OrderListSerializer(serializers.ModelSerializer):
    """
    Compact serializer for listing orders.
    """
    customer_name = serializers.CharField(read_only=True)
    line_count = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'status', 'customer_name', 'customer_city',
            'total_items', 'total_amount', 'line_count', 'created_at'
        ]

    def get_line_count(self, obj):
        # Use prefetched lines if available
        if hasattr(obj, '_prefetched_objects_cache') and 'lines' in obj._prefetched_objects_cache:
            return len(obj.lines.all())
        return obj.lines.count()
