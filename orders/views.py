"""
Order API Views.

Implements:
- GET /orders/ - List orders
- POST /orders/ - Place a multi-item order
- POST /orders/single/ - Legacy single-product order
- GET /orders/{id}/ - Order detail with lines
- GET /sales/analytics/ - Sales rollup per product
"""
import logging
from rest_framework import generics, status
from rest_framework.response import Response
from rest_framework.views import APIView

from core.rate_limiting import rate_limit
from .analytics import sales_analytics
from .exceptions import (
    OrderPlacementError,
    ProductNotFoundError,
    InsufficientStockError,
)
from .models import Order
from .serializers import (
    OrderSerializer,
    OrderListSerializer,
    PlaceOrderSerializer,
    LegacyOrderSerializer,
)
from .services import place_order, create_order
from .tasks import send_order_notification

logger = logging.getLogger(__name__)


def placement_error_response(error: OrderPlacementError) -> Response:
    """Translate an order placement error into an API response."""
    body = {'error': error.error_type, 'detail': str(error)}
    if isinstance(error, ProductNotFoundError):
        body['product_ids'] = error.product_ids
        return Response(body, status=status.HTTP_404_NOT_FOUND)
    if isinstance(error, InsufficientStockError):
        body['product_id'] = error.product_id
        body['product_title'] = error.product_title
        body['available'] = error.available
        return Response(body, status=status.HTTP_409_CONFLICT)
    return Response(body, status=status.HTTP_400_BAD_REQUEST)


def notify_order_placed(result) -> None:
    """Queue the order email; a queueing failure never fails the order."""
    try:
        send_order_notification.delay(result.to_dict())
        logger.info(f"Queued notification for order {result.order_number}")
    except Exception as e:
        logger.error(f"Failed to queue notification task: {e}")


def _placement_response(place, *args) -> Response:
    try:
        result = place(*args)
    except OrderPlacementError as e:
        logger.warning(f"Order placement failed: {e}")
        return placement_error_response(e)
    except Exception as e:
        logger.exception(f"Unexpected error placing order: {e}")
        return Response(
            {'error': 'Server Error', 'detail': 'An unexpected error occurred'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    notify_order_placed(result)
    return Response(result.to_dict(), status=status.HTTP_201_CREATED)


class OrderListCreateView(generics.ListCreateAPIView):
    """
    GET: List orders, newest first
    POST: Place an order with atomic stock reconciliation

    Query Parameters (GET):
        - status: Filter by status (pending, processed, completed)

    Request Body (POST):
    {
        "items": [{"product_id": 1, "quantity": 2}],
        "customer": {...}
    }
    """

    def get_serializer_class(self):
        if self.request.method == 'POST':
            return PlaceOrderSerializer
        return OrderListSerializer

    def get_queryset(self):
        queryset = Order.objects.prefetch_related('lines')

        status_filter = self.request.query_params.get('status', '').lower()
        if status_filter in Order.Status.values:
            queryset = queryset.filter(status=status_filter)

        return queryset.order_by('-created_at')

    @rate_limit(max_requests=10, window_seconds=60)
    def create(self, request, *args, **kwargs):
        """
        Returns:
            - 201: Order placed
            - 400: Invalid payload, incomplete customer or empty cart
            - 404: Product no longer exists
            - 409: Insufficient stock
        """
        serializer = PlaceOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        return _placement_response(
            place_order,
            serializer.validated_data['items'],
            serializer.validated_data['customer'],
        )


class LegacyOrderCreateView(APIView):
    """
    POST: Order a single unit of one product (older checkout form).
    """

    @rate_limit(max_requests=10, window_seconds=60)
    def post(self, request):
        serializer = LegacyOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        return _placement_response(
            create_order,
            serializer.validated_data['product_id'],
            serializer.validated_data['customer'],
        )


class OrderDetailView(generics.RetrieveAPIView):
    """
    GET: Retrieve order details with all lines.
    """
    serializer_class = OrderSerializer

    def get_queryset(self):
        return Order.objects.prefetch_related('lines')


class SalesAnalyticsView(APIView):
    """
    GET: Per-product sales rollup over all orders.
    """

    def get(self, request):
        report = sales_analytics()
        return Response(report.to_dict())
