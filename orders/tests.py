"""
Tests for order placement and sales analytics.

Test Cases:
1. Customer normalization and cart line aggregation
2. Order placed with sufficient stock, totals and stock conservation
3. Whole order rejected with insufficient stock or missing products
4. Sales analytics over new and legacy orders
5. HTTP endpoints and error mapping
6. Notification email task
7. Concurrent order race condition prevention
"""
import threading
from datetime import datetime, timezone as dt_timezone
from unittest.mock import MagicMock, patch

from django.core import mail
from django.db import connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from catalog.models import Category, Product
from orders.analytics import sales_analytics, DELETED_PRODUCT_TITLE, NO_CATEGORY_NAME
from orders.exceptions import (
    CustomerValidationError,
    EmptyCartError,
    InsufficientStockError,
    ProductNotFoundError,
)
from orders.models import Order, OrderLine
from orders.repository import DjangoOrderRepository
from orders.services import (
    aggregate_cart_lines,
    create_order,
    generate_order_number,
    normalize_customer,
    place_order,
)
from orders.tasks import build_html_body, build_text_body, send_order_notification
from orders.templatetags.order_formatting import format_rsd


def customer_data(**overrides):
    data = {
        'first_name': 'Ana',
        'last_name': 'Petrovic',
        'email': 'ana@example.com',
        'street': 'Knez Mihailova',
        'number': '12',
        'postal_code': '11000',
        'city': 'Beograd',
        'phone': '+381601234567',
        'note': '',
    }
    data.update(overrides)
    return data


class CustomerNormalizationTestCase(SimpleTestCase):
    """Test cases for customer field normalization."""

    def test_fields_are_trimmed(self):
        customer = normalize_customer(customer_data(first_name='  Ana ', city=' Novi Sad\n'))

        self.assertEqual(customer.first_name, 'Ana')
        self.assertEqual(customer.city, 'Novi Sad')

    def test_blank_optional_fields_become_none(self):
        customer = normalize_customer(customer_data(email='   ', note=''))

        self.assertIsNone(customer.email)
        self.assertIsNone(customer.note)

    def test_missing_optional_fields_become_none(self):
        data = customer_data()
        del data['email']
        del data['note']

        customer = normalize_customer(data)

        self.assertIsNone(customer.email)
        self.assertIsNone(customer.note)

    def test_blank_required_field_rejected(self):
        with self.assertRaises(CustomerValidationError) as context:
            normalize_customer(customer_data(city='   '))

        self.assertEqual(context.exception.missing_fields, ['city'])
        self.assertIn('Incomplete customer data', str(context.exception))

    def test_field_longer_than_column_rejected(self):
        with self.assertRaises(CustomerValidationError) as context:
            normalize_customer(customer_data(phone='1' * 50))

        self.assertEqual(context.exception.too_long_fields, ['phone'])
        self.assertEqual(context.exception.missing_fields, [])
        self.assertIn('too long phone', str(context.exception))

    def test_length_checked_after_trimming(self):
        customer = normalize_customer(customer_data(postal_code='  ' + '1' * 20 + '  '))

        self.assertEqual(customer.postal_code, '1' * 20)


class CartAggregationTestCase(SimpleTestCase):
    """Test cases for merging submitted cart lines."""

    def test_duplicates_are_summed_in_first_seen_order(self):
        lines = aggregate_cart_lines([
            {'product_id': 2, 'quantity': 1},
            {'product_id': 1, 'quantity': 2},
            {'product_id': 2, 'quantity': 3},
        ])

        self.assertEqual([(l.product_id, l.quantity) for l in lines], [(2, 4), (1, 2)])

    def test_quantities_are_floored(self):
        lines = aggregate_cart_lines([{'product_id': 1, 'quantity': 2.9}])

        self.assertEqual(lines[0].quantity, 2)

    def test_invalid_quantities_are_dropped(self):
        lines = aggregate_cart_lines([
            {'product_id': 1, 'quantity': 0},
            {'product_id': 2, 'quantity': -3},
            {'product_id': 3, 'quantity': float('nan')},
            {'product_id': 4, 'quantity': float('inf')},
            {'product_id': 5, 'quantity': 'many'},
            {'product_id': 6, 'quantity': 0.5},
            {'product_id': 7, 'quantity': 1},
        ])

        self.assertEqual([(l.product_id, l.quantity) for l in lines], [(7, 1)])

    def test_product_ids_are_coerced_before_merging(self):
        lines = aggregate_cart_lines([
            {'product_id': '5', 'quantity': 1},
            {'product_id': 5, 'quantity': 2},
            {'product_id': 5.0, 'quantity': 1},
        ])

        self.assertEqual([(l.product_id, l.quantity) for l in lines], [(5, 4)])

    def test_uncoercible_product_ids_are_dropped(self):
        lines = aggregate_cart_lines([
            {'product_id': 'abc', 'quantity': 1},
            {'product_id': None, 'quantity': 1},
            {'product_id': 2.5, 'quantity': 1},
            {'product_id': True, 'quantity': 1},
            {'product_id': 3, 'quantity': 1},
        ])

        self.assertEqual([(l.product_id, l.quantity) for l in lines], [(3, 1)])

    def test_only_uncoercible_product_ids_is_empty_cart(self):
        with self.assertRaises(EmptyCartError):
            aggregate_cart_lines([{'product_id': 'abc', 'quantity': 1}])

    def test_only_invalid_lines_is_empty_cart(self):
        with self.assertRaises(EmptyCartError):
            aggregate_cart_lines([{'product_id': 1, 'quantity': 0}])

    def test_empty_items_is_empty_cart(self):
        with self.assertRaises(EmptyCartError) as context:
            aggregate_cart_lines([])

        self.assertIn('empty', str(context.exception).lower())


class OrderNumberTestCase(SimpleTestCase):

    @patch('orders.services.random.randint', return_value=42)
    def test_format_uses_utc_date(self, _randint):
        now = datetime(2026, 3, 1, 23, 30, tzinfo=dt_timezone.utc)

        self.assertEqual(generate_order_number(now, prefix='ORD'), 'ORD-20260301-0042')

    def test_default_prefix_from_settings(self):
        now = datetime(2026, 3, 1, 12, 0, tzinfo=dt_timezone.utc)

        with self.settings(ORDER_NUMBER_PREFIX='SLG'):
            number = generate_order_number(now)

        self.assertRegex(number, r'^SLG-20260301-\d{4}$')


class OrderPlacementTestCase(TestCase):
    """Test cases for order placement logic."""

    def setUp(self):
        self.category = Category.objects.create(name='Shampoo')
        self.product_a = Product.objects.create(
            title='Repair Shampoo',
            price=500,
            discount=0,
            stock=5,
            category=self.category
        )
        self.product_b = Product.objects.create(
            title='Keratin Mask',
            price=1000,
            discount=10,
            stock=10,
            category=self.category
        )
        self.product_c = Product.objects.create(
            title='Silver Shampoo',
            price=1200,
            discount=0,
            stock=2,
            category=self.category
        )

    def _stock_levels(self):
        return dict(Product.objects.values_list('id', 'stock'))

    def test_order_placed_with_sufficient_stock(self):
        """
        Given: Products with sufficient stock
        When: Placing an order within stock limits
        Then: Order is pending, lines and totals match, stock is deducted
        """
        result = place_order(
            [
                {'product_id': self.product_a.id, 'quantity': 2},
                {'product_id': self.product_b.id, 'quantity': 3},
            ],
            customer_data()
        )

        order = Order.objects.get(id=result.order_id)
        self.assertEqual(order.status, Order.Status.PENDING)
        self.assertEqual(order.order_number, result.order_number)
        self.assertRegex(result.order_number, r'^ORD-\d{8}-\d{4}$')

        # (2 * 500) + (3 * 900) = 3700
        self.assertEqual(result.totals.total_amount, 3700)
        self.assertEqual(result.totals.total_items, 5)
        self.assertEqual(order.total_amount, 3700)
        self.assertEqual(order.total_items, 5)
        self.assertEqual(
            result.totals.total_amount,
            sum(item.line_total for item in result.items)
        )

        mask_line = result.items[1]
        self.assertEqual(mask_line.title, 'Keratin Mask')
        self.assertEqual(mask_line.unit_price, 1000)
        self.assertEqual(mask_line.discount, 10)
        self.assertEqual(mask_line.final_unit_price, 900)
        self.assertEqual(mask_line.line_total, 2700)

        self.assertEqual(order.lines.count(), 2)

        self.product_a.refresh_from_db()
        self.product_b.refresh_from_db()
        self.product_c.refresh_from_db()
        self.assertEqual(self.product_a.stock, 3)  # 5 - 2
        self.assertEqual(self.product_b.stock, 7)  # 10 - 3
        self.assertEqual(self.product_c.stock, 2)  # untouched

    def test_duplicate_lines_are_merged(self):
        """
        Given: productA stock 5, price 500
        When: Cart contains productA twice (2 + 1)
        Then: One line of quantity 3, total 1500, stock 2
        """
        result = place_order(
            [
                {'product_id': self.product_a.id, 'quantity': 2},
                {'product_id': self.product_a.id, 'quantity': 1},
            ],
            customer_data()
        )

        self.assertEqual(len(result.items), 1)
        self.assertEqual(result.items[0].quantity, 3)
        self.assertEqual(result.items[0].line_total, 1500)
        self.assertEqual(OrderLine.objects.filter(order_id=result.order_id).count(), 1)

        self.product_a.refresh_from_db()
        self.assertEqual(self.product_a.stock, 2)

    def test_result_carries_normalized_customer(self):
        result = place_order(
            [{'product_id': self.product_a.id, 'quantity': 1}],
            customer_data(last_name=' Petrovic ', note='  ')
        )

        self.assertEqual(result.customer.last_name, 'Petrovic')
        self.assertIsNone(result.customer.note)

        order = Order.objects.get(id=result.order_id)
        self.assertEqual(order.customer_last_name, 'Petrovic')
        self.assertIsNone(order.customer_note)

    def test_order_rejected_with_insufficient_stock(self):
        """
        Given: productA has only 5 units
        When: Requesting 10 units
        Then: InsufficientStockError names the product, nothing changes
        """
        with self.assertRaises(InsufficientStockError) as context:
            place_order(
                [{'product_id': self.product_a.id, 'quantity': 10}],
                customer_data()
            )

        self.assertEqual(context.exception.product_title, 'Repair Shampoo')
        self.assertEqual(context.exception.available, 5)
        self.product_a.refresh_from_db()
        self.assertEqual(self.product_a.stock, 5)
        self.assertEqual(Order.objects.count(), 0)

    def test_no_stock_deduction_on_rejection(self):
        """
        Given: Insufficient stock for the last line only
        When: Order is rejected
        Then: No product's stock changes and no order exists
        """
        original = self._stock_levels()

        with self.assertRaises(InsufficientStockError):
            place_order(
                [
                    {'product_id': self.product_a.id, 'quantity': 1},
                    {'product_id': self.product_b.id, 'quantity': 4},
                    {'product_id': self.product_c.id, 'quantity': 3},  # Only 2 available
                ],
                customer_data()
            )

        self.assertEqual(self._stock_levels(), original)
        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(OrderLine.objects.count(), 0)

    def test_merged_quantity_checked_against_stock(self):
        # 2 + 1 is fine for each line alone but exceeds stock 2 once merged
        with self.assertRaises(InsufficientStockError):
            place_order(
                [
                    {'product_id': self.product_c.id, 'quantity': 2},
                    {'product_id': self.product_c.id, 'quantity': 1},
                ],
                customer_data()
            )

        self.product_c.refresh_from_db()
        self.assertEqual(self.product_c.stock, 2)

    def test_order_with_exact_stock(self):
        place_order(
            [{'product_id': self.product_c.id, 'quantity': 2}],
            customer_data()
        )

        self.product_c.refresh_from_db()
        self.assertEqual(self.product_c.stock, 0)

    def test_missing_product_rejects_whole_order(self):
        original = self._stock_levels()

        with self.assertRaises(ProductNotFoundError) as context:
            place_order(
                [
                    {'product_id': self.product_a.id, 'quantity': 1},
                    {'product_id': 99999, 'quantity': 1},
                ],
                customer_data()
            )

        self.assertEqual(context.exception.product_ids, [99999])
        self.assertEqual(self._stock_levels(), original)
        self.assertEqual(Order.objects.count(), 0)

    def test_invalid_customer_fails_before_stock_lookup(self):
        repository = MagicMock()

        with self.assertRaises(CustomerValidationError):
            place_order(
                [{'product_id': self.product_a.id, 'quantity': 1}],
                customer_data(city=''),
                repository=repository
            )

        repository.lock_products.assert_not_called()
        repository.insert_order.assert_not_called()

    def test_empty_cart_rejected(self):
        with self.assertRaises(EmptyCartError):
            place_order([{'product_id': self.product_a.id, 'quantity': 0}], customer_data())

        self.assertEqual(Order.objects.count(), 0)

    def test_failed_write_rolls_back_stock(self):
        """
        Test: Atomic rollback when a stock patch fails mid-write.
        """
        original = self._stock_levels()

        with patch(
            'orders.repository.DjangoOrderRepository.patch_product_stock',
            side_effect=RuntimeError('database went away')
        ):
            with self.assertRaises(RuntimeError):
                place_order(
                    [{'product_id': self.product_a.id, 'quantity': 1}],
                    customer_data()
                )

        self.assertEqual(self._stock_levels(), original)
        self.assertEqual(Order.objects.count(), 0)

    def test_line_snapshot_survives_product_changes(self):
        result = place_order(
            [{'product_id': self.product_b.id, 'quantity': 1}],
            customer_data()
        )

        self.product_b.title = 'Renamed Mask'
        self.product_b.price = 5000
        self.product_b.save()

        line = OrderLine.objects.get(order_id=result.order_id)
        self.assertEqual(line.title, 'Keratin Mask')
        self.assertEqual(line.final_unit_price, 900)

    def test_legacy_single_product_order(self):
        customer = customer_data()
        del customer['email']
        del customer['note']

        result = create_order(self.product_b.id, customer)

        self.assertEqual(len(result.items), 1)
        self.assertEqual(result.items[0].quantity, 1)
        self.assertEqual(result.totals.total_amount, 900)
        self.assertIsNone(result.customer.email)

        order = Order.objects.get(id=result.order_id)
        self.assertIsNone(order.legacy_product_id)
        self.product_b.refresh_from_db()
        self.assertEqual(self.product_b.stock, 9)

    def test_repository_reads_and_patches_products(self):
        repository = DjangoOrderRepository()

        repository.patch_product_stock(self.product_a.id, 1)

        self.assertEqual(repository.get_product(self.product_a.id).stock, 1)
        self.assertIsNone(repository.get_product(99999))
        self.assertEqual(
            set(repository.lock_products([self.product_a.id, 99999])),
            {self.product_a.id}
        )

    def test_legacy_order_ignores_email_and_note(self):
        result = create_order(self.product_a.id, customer_data(note='Call first'))

        self.assertIsNone(result.customer.email)
        self.assertIsNone(result.customer.note)


class SalesAnalyticsTestCase(TestCase):
    """Test cases for the per-product sales rollup."""

    def setUp(self):
        self.category = Category.objects.create(name='Masks & Treatments')
        self.mask = Product.objects.create(
            title='Keratin Mask',
            price=1000,
            discount=10,
            stock=10,
            category=self.category
        )
        self.serum = Product.objects.create(
            title='Scalp Serum',
            price=2000,
            discount=0,
            stock=4,
            category=self.category
        )
        self.unsold = Product.objects.create(
            title='Wide Tooth Comb',
            price=300,
            stock=20
        )

    def _legacy_order(self, product_id, created_at):
        return Order.objects.create(
            order_number='ORD-20200101-0001',
            legacy_product_id=product_id,
            customer_first_name='Old',
            customer_last_name='Customer',
            customer_street='Street',
            customer_number='1',
            customer_postal_code='21000',
            customer_city='Novi Sad',
            customer_phone='060000000',
            created_at=created_at,
        )

    def _row(self, report, product_id):
        return next(row for row in report.products if row.product_id == product_id)

    def test_no_orders(self):
        report = sales_analytics()

        self.assertEqual(report.summary.orders_count, 0)
        self.assertEqual(report.summary.total_amount, 0)
        self.assertEqual(report.products, [])

    def test_single_discounted_order(self):
        """
        Given: One order of 3 units at price 1000 with 10% discount
        Then: sold 3, revenue 2700, one order; unsold product absent
        """
        result = place_order([{'product_id': self.mask.id, 'quantity': 3}], customer_data())

        report = sales_analytics()

        self.assertEqual(len(report.products), 1)
        row = report.products[0]
        self.assertEqual(row.product_id, self.mask.id)
        self.assertEqual(row.sold_quantity, 3)
        self.assertEqual(row.revenue, 2700)
        self.assertEqual(row.orders_count, 1)
        self.assertEqual(row.last_sold_at, result.created_at)
        self.assertEqual(row.current_stock, 7)
        self.assertEqual(row.category_name, 'Masks & Treatments')

        self.assertEqual(report.summary.orders_count, 1)
        self.assertEqual(report.summary.total_items, 3)
        self.assertEqual(report.summary.total_amount, 2700)
        self.assertEqual(report.summary.unique_products, 1)

    def test_rows_sorted_by_quantity_then_revenue(self):
        place_order([{'product_id': self.mask.id, 'quantity': 2}], customer_data())
        place_order(
            [
                {'product_id': self.serum.id, 'quantity': 2},
                {'product_id': self.mask.id, 'quantity': 1},
            ],
            customer_data()
        )
        place_order([{'product_id': self.unsold.id, 'quantity': 1}], customer_data())

        report = sales_analytics()

        # mask: 3 sold / 2700; serum: 2 sold / 4000; comb: 1 sold
        self.assertEqual(
            [row.product_id for row in report.products],
            [self.mask.id, self.serum.id, self.unsold.id]
        )
        self.assertEqual(self._row(report, self.mask.id).orders_count, 2)
        self.assertEqual(self._row(report, self.unsold.id).category_name, NO_CATEGORY_NAME)
        self.assertEqual(report.summary.orders_count, 3)
        self.assertEqual(report.summary.total_amount, 2700 + 4000 + 300)

    def test_revenue_breaks_quantity_ties(self):
        place_order([{'product_id': self.mask.id, 'quantity': 1}], customer_data())
        place_order([{'product_id': self.serum.id, 'quantity': 1}], customer_data())

        report = sales_analytics()

        self.assertEqual(
            [row.product_id for row in report.products],
            [self.serum.id, self.mask.id]
        )

    def test_legacy_order_uses_current_price(self):
        created_at = datetime(2024, 5, 1, 10, 0, tzinfo=dt_timezone.utc)
        self._legacy_order(self.mask.id, created_at)

        report = sales_analytics()

        row = self._row(report, self.mask.id)
        self.assertEqual(row.sold_quantity, 1)
        self.assertEqual(row.revenue, 900)
        self.assertEqual(row.orders_count, 1)
        self.assertEqual(row.last_sold_at, int(created_at.timestamp() * 1000))

    def test_deleted_product_degrades_to_placeholders(self):
        result = place_order([{'product_id': self.serum.id, 'quantity': 1}], customer_data())
        serum_id = self.serum.id
        self.serum.delete()

        report = sales_analytics()

        row = self._row(report, serum_id)
        self.assertEqual(row.title, 'Scalp Serum')
        self.assertEqual(row.revenue, 2000)
        self.assertEqual(row.current_stock, 0)
        self.assertEqual(row.category_name, NO_CATEGORY_NAME)
        self.assertTrue(Order.objects.filter(id=result.order_id).exists())

    def test_legacy_order_for_deleted_product(self):
        self._legacy_order(424242, datetime(2024, 5, 1, tzinfo=dt_timezone.utc))

        report = sales_analytics()

        row = self._row(report, 424242)
        self.assertEqual(row.title, DELETED_PRODUCT_TITLE)
        self.assertEqual(row.revenue, 0)
        self.assertEqual(row.sold_quantity, 1)

    def test_deleted_category_degrades_to_placeholder(self):
        place_order([{'product_id': self.mask.id, 'quantity': 1}], customer_data())
        self.category.delete()

        report = sales_analytics()

        self.assertEqual(self._row(report, self.mask.id).category_name, NO_CATEGORY_NAME)


@override_settings(RATE_LIMIT_ENABLED=False)
class OrderAPITestCase(APITestCase):
    """Test cases for the order HTTP endpoints."""

    def setUp(self):
        self.product = Product.objects.create(
            title='Curl Cream',
            price=1500,
            discount=20,
            stock=3
        )
        patcher = patch('orders.views.send_order_notification')
        self.notification = patcher.start()
        self.addCleanup(patcher.stop)

    def _place(self, items, **customer):
        return self.client.post(
            reverse('orders:order-list'),
            {'items': items, 'customer': customer_data(**customer)},
            format='json'
        )

    def test_place_order(self):
        response = self._place([{'product_id': self.product.id, 'quantity': 2}])

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['totals'], {'total_items': 2, 'total_amount': 2400})
        self.assertEqual(response.data['items'][0]['final_unit_price'], 1200)
        self.assertIsNone(response.data['customer']['note'])
        self.notification.delay.assert_called_once()
        payload = self.notification.delay.call_args[0][0]
        self.assertEqual(payload['order_number'], response.data['order_number'])

    def test_insufficient_stock_returns_conflict(self):
        response = self._place([{'product_id': self.product.id, 'quantity': 10}])

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['product_title'], 'Curl Cream')
        self.notification.delay.assert_not_called()
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 3)

    def test_missing_product_returns_not_found(self):
        response = self._place([{'product_id': 99999, 'quantity': 1}])

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_incomplete_customer_returns_bad_request(self):
        response = self._place([{'product_id': self.product.id, 'quantity': 1}], phone='  ')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Validation Error')

    def test_overlong_customer_field_returns_bad_request(self):
        response = self._place([{'product_id': self.product.id, 'quantity': 1}], phone='1' * 50)

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(Order.objects.count(), 0)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 3)

    def test_empty_cart_returns_bad_request(self):
        response = self._place([])

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Empty Cart')

    def test_malformed_payload_returns_bad_request(self):
        response = self.client.post(reverse('orders:order-list'), {'items': 'nope'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_notification_failure_does_not_fail_order(self):
        self.notification.delay.side_effect = ConnectionError('broker down')

        response = self._place([{'product_id': self.product.id, 'quantity': 1}])

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Order.objects.count(), 1)

    def test_legacy_single_order(self):
        response = self.client.post(
            reverse('orders:order-single'),
            {'product_id': self.product.id, 'customer': customer_data()},
            format='json'
        )

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['totals']['total_items'], 1)
        self.assertIsNone(response.data['customer']['email'])

    def test_list_and_detail(self):
        created = self._place([{'product_id': self.product.id, 'quantity': 1}])

        listing = self.client.get(reverse('orders:order-list'), {'status': 'pending'})
        detail = self.client.get(reverse('orders:order-detail', args=[created.data['order_id']]))

        self.assertEqual(listing.status_code, status.HTTP_200_OK)
        self.assertEqual(listing.data['count'], 1)
        self.assertEqual(listing.data['results'][0]['line_count'], 1)
        self.assertEqual(detail.status_code, status.HTTP_200_OK)
        self.assertEqual(detail.data['lines'][0]['title'], 'Curl Cream')
        self.assertEqual(detail.data['created_at_ms'], created.data['created_at'])
        self.assertEqual(detail.data['customer']['city'], 'Beograd')

    def test_sales_analytics_endpoint(self):
        self._place([{'product_id': self.product.id, 'quantity': 2}])

        response = self.client.get(reverse('orders:sales-analytics'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['summary']['total_amount'], 2400)
        self.assertEqual(response.data['products'][0]['sold_quantity'], 2)

    @override_settings(RATE_LIMIT_ENABLED=True)
    def test_rate_limit_exceeded(self):
        fake_redis = MagicMock()
        fake_redis.incr.return_value = 11
        fake_redis.ttl.return_value = 30

        with patch('core.rate_limiting.redis_client', fake_redis):
            response = self._place([{'product_id': self.product.id, 'quantity': 1}])

        self.assertEqual(response.status_code, status.HTTP_429_TOO_MANY_REQUESTS)
        self.assertEqual(response['Retry-After'], '30')
        self.assertEqual(Order.objects.count(), 0)


class OrderNotificationTaskTestCase(SimpleTestCase):
    """Test cases for the order notification email."""

    def setUp(self):
        self.payload = {
            'order_id': 1,
            'order_number': 'ORD-20260301-0042',
            'created_at': 1772366400000,
            'customer': {
                'first_name': 'Ana', 'last_name': 'Petrovic', 'email': 'ana@example.com',
                'street': 'Knez Mihailova', 'number': '12', 'postal_code': '11000',
                'city': 'Beograd', 'phone': '+381601234567', 'note': None,
            },
            'items': [{
                'product_id': 7, 'title': 'Keratin <Mask>', 'quantity': 2,
                'unit_price': 1000, 'discount': 10, 'final_unit_price': 900,
                'line_total': 1800,
            }],
            'totals': {'total_items': 2, 'total_amount': 1800},
        }

    def test_format_rsd(self):
        self.assertEqual(format_rsd(1234567), '1.234.567 RSD')
        self.assertEqual(format_rsd(-5), '0 RSD')

    def test_text_body_lists_items_and_skips_missing_note(self):
        body = build_text_body(self.payload)

        self.assertIn('1. Keratin <Mask> | 2 x 900 RSD = 1.800 RSD', body)
        self.assertIn('Total amount: 1.800 RSD', body)
        self.assertNotIn('Note:', body)

    def test_text_body_keeps_optional_lines_when_present(self):
        self.payload['customer']['note'] = 'Ring twice & wait'

        body = build_text_body(self.payload)

        self.assertIn('Email: ana@example.com', body)
        self.assertIn('Note: Ring twice & wait', body)
        self.assertIn('Time: 2026-03-01 12:00:00 UTC', body)
        self.assertNotIn('\n\n', body)

    def test_html_body_escapes_customer_input(self):
        self.payload['customer']['note'] = '<script>alert(1)</script>'

        html = build_html_body(self.payload)

        self.assertIn('&lt;script&gt;', html)
        self.assertNotIn('<script>', html)
        self.assertIn('1.800 RSD', html)

    @override_settings(
        ORDER_NOTIFICATION_EMAIL='admin@salon.test',
        EMAIL_BACKEND='django.core.mail.backends.locmem.EmailBackend'
    )
    def test_email_sent(self):
        result = send_order_notification(self.payload)

        self.assertEqual(result['status'], 'success')
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.subject, 'New order ORD-20260301-0042')
        self.assertEqual(message.to, ['admin@salon.test'])
        self.assertEqual(message.reply_to, ['ana@example.com'])
        html = message.alternatives[0][0]
        self.assertIn('Keratin &lt;Mask&gt;', html)

    @override_settings(ORDER_NOTIFICATION_EMAIL='')
    def test_skipped_without_recipient(self):
        result = send_order_notification(self.payload)

        self.assertEqual(result['status'], 'skipped')


class ConcurrentOrderTestCase(TransactionTestCase):
    """
    Test concurrent order handling to verify the stock check is serialized.
    Uses TransactionTestCase for proper multi-threading support.
    """

    def setUp(self):
        self.product = Product.objects.create(
            title='Limited Stock Product',
            price=5000,
            stock=10
        )

    def test_concurrent_orders_no_overselling(self):
        """
        Given: 10 units in stock
        When: Two concurrent orders of 8 units each
        Then: One is placed, the other sees the new stock and is rejected
        """
        results = {}
        start = threading.Barrier(2)

        def submit(key):
            try:
                start.wait(timeout=10)
                place_order([{'product_id': self.product.id, 'quantity': 8}], customer_data())
                results[key] = 'placed'
            except InsufficientStockError:
                results[key] = 'rejected'
            except Exception as e:
                results[key] = f"{type(e).__name__}: {e}"
            finally:
                connection.close()

        threads = [threading.Thread(target=submit, args=(key,)) for key in ('order1', 'order2')]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.product.refresh_from_db()

        self.assertEqual(sorted(results.values()), ['placed', 'rejected'])
        self.assertEqual(self.product.stock, 2)
        self.assertEqual(Order.objects.count(), 1)
