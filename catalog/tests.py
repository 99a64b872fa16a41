"""
Tests for catalog pricing and seed data.
"""
from io import StringIO

from django.core.management import call_command
from django.test import SimpleTestCase, TestCase

from catalog.models import Category, Product
from catalog.pricing import resolve_final_unit_price


class PricingTestCase(SimpleTestCase):
    """Test cases for discount resolution."""

    def test_no_discount_keeps_price(self):
        self.assertEqual(resolve_final_unit_price(1000, 0), 1000)
        self.assertEqual(resolve_final_unit_price(1000, None), 1000)

    def test_discount_applied(self):
        self.assertEqual(resolve_final_unit_price(1000, 10), 900)
        self.assertEqual(resolve_final_unit_price(999, 33), 669)

    def test_halves_round_up(self):
        # 5 * 0.5 = 2.5
        self.assertEqual(resolve_final_unit_price(5, 50), 3)
        # 1250 * 0.85 = 1062.5
        self.assertEqual(resolve_final_unit_price(1250, 15), 1063)

    def test_full_discount_is_free(self):
        self.assertEqual(resolve_final_unit_price(1000, 100), 0)

    def test_never_negative(self):
        self.assertEqual(resolve_final_unit_price(1000, 150), 0)

    def test_negative_discount_raises_price(self):
        self.assertEqual(resolve_final_unit_price(1000, -10), 1100)
        self.assertEqual(resolve_final_unit_price(999, -0.5), 1004)


class ProductModelTestCase(TestCase):

    def test_final_price_property(self):
        product = Product.objects.create(title='Matte Clay', price=1200, discount=25, stock=0)

        self.assertEqual(product.final_price, 900)
        self.assertTrue(product.is_out_of_stock)
        self.assertEqual(str(product), 'Matte Clay (900 RSD)')


class SeedCatalogCommandTestCase(TestCase):

    def test_seed_creates_catalog(self):
        out = StringIO()
        call_command('seed_catalog', '--max-stock', '5', stdout=out)

        self.assertEqual(Category.objects.count(), 5)
        self.assertTrue(Product.objects.exists())
        self.assertFalse(Product.objects.filter(stock__gt=5).exists())
        self.assertFalse(Product.objects.filter(category__isnull=True).exists())
        self.assertIn('completed successfully', out.getvalue())

    def test_clear_replaces_existing_data(self):
        Product.objects.create(title='Old Product', price=100, stock=1)

        call_command('seed_catalog', '--clear', stdout=StringIO())

        self.assertFalse(Product.objects.filter(title='Old Product').exists())
