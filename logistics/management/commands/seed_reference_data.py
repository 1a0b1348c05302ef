"""
Django management command to seed reference data: origin regions,
exchange rates and expense categories.

Usage:
    python manage.py seed_reference_data
"""
from django.core.management.base import BaseCommand

from logistics.models import Region
from finance.models import ExchangeRate
from expenses.models import ExpenseCategory


class Command(BaseCommand):
    help = 'Seed regions, exchange rates and expense categories'

    def handle(self, *args, **options):
        regions = Region.ensure_defaults()
        self.stdout.write(self.style.SUCCESS(f'✅ Regions created: {regions}'))

        rates = ExchangeRate.ensure_defaults()
        self.stdout.write(self.style.SUCCESS(f'✅ Exchange rates created: {rates}'))

        categories = ExpenseCategory.ensure_defaults()
        self.stdout.write(self.style.SUCCESS(f'✅ Expense categories created: {categories}'))

        self.stdout.write('')
        self.stdout.write(self.style.SUCCESS(
            f'📍 In database: {Region.objects.count()} regions, '
            f'{ExchangeRate.objects.count()} rates, '
            f'{ExpenseCategory.objects.count()} categories'
        ))
