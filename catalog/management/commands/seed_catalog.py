"""
Management command to seed the database with a sample salon catalog.

Generates:
- Hair care categories
- Products with prices, occasional discounts and stock

Usage:
    python manage.py seed_catalog
    python manage.py seed_catalog --clear  # Clear existing data first
"""
import random
from django.core.management.base import BaseCommand
from django.db import transaction

from catalog.models import Category, Product


CATALOG = {
    'Shampoo': [
        'Repair Shampoo', 'Volume Shampoo', 'Color Protect Shampoo',
        'Anti-Dandruff Shampoo', 'Silver Shampoo',
    ],
    'Conditioner': [
        'Hydrating Conditioner', 'Leave-In Conditioner', 'Detangling Conditioner',
    ],
    'Masks & Treatments': [
        'Keratin Mask', 'Argan Oil Treatment', 'Scalp Serum', 'Bond Repair Mask',
    ],
    'Styling': [
        'Texturizing Spray', 'Matte Clay', 'Heat Protect Spray', 'Curl Cream',
        'Strong Hold Hairspray',
    ],
    'Tools': [
        'Boar Bristle Brush', 'Wide Tooth Comb', 'Ionic Hair Dryer', 'Ceramic Straightener',
    ],
}

SIZES = ['100 ml', '250 ml', '500 ml', '1000 ml']


class Command(BaseCommand):
    help = 'Seed the database with sample salon categories and products'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before seeding',
        )
        parser.add_argument(
            '--max-stock',
            type=int,
            default=40,
            help='Upper bound for generated stock levels (default: 40)',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            self._clear_data()

        self.stdout.write('Starting catalog seeding...')

        with transaction.atomic():
            categories = self._create_categories()
            self._create_products(categories, options['max_stock'])

        self.stdout.write(self.style.SUCCESS('Catalog seeding completed successfully!'))

    def _clear_data(self):
        """Clear all existing data."""
        from orders.models import OrderLine, Order

        OrderLine.objects.all().delete()
        Order.objects.all().delete()
        Product.objects.all().delete()
        Category.objects.all().delete()

        self.stdout.write(self.style.WARNING('All existing data cleared.'))

    def _create_categories(self):
        categories = {}
        for name in CATALOG:
            category, created = Category.objects.get_or_create(name=name)
            categories[name] = category
            if created:
                self.stdout.write(f'  Created category: {name}')

        self.stdout.write(self.style.SUCCESS(f'Created {len(categories)} categories'))
        return categories

    def _create_products(self, categories, max_stock):
        products = []
        for category_name, titles in CATALOG.items():
            for title in titles:
                products.append(Product(
                    title=title,
                    subtitle=random.choice(SIZES),
                    description=f"Professional salon {category_name.lower()} product.",
                    # Round hundreds of dinars
                    price=random.randint(6, 60) * 100,
                    discount=random.choice([0, 0, 0, 10, 15, 20, 30]),
                    stock=random.randint(0, max_stock),
                    category=categories[category_name],
                ))

        Product.objects.bulk_create(products)
        self.stdout.write(self.style.SUCCESS(f'Created {len(products)} products'))
        return products
