from django.conf import settings
from django.core.management.base import BaseCommand
from umspos.meters.constants import METER_TYPES
from umspos.meters.models import MinimumStockLevel


class Command(BaseCommand):
    help = 'Ensure every meter type has a minimum stock level row'

    def add_arguments(self, parser):
        parser.add_argument(
            '--level',
            type=int,
            default=settings.DEFAULT_MINIMUM_STOCK_LEVEL,
            help='Minimum level for types that have none yet',
        )

    def handle(self, *args, **options):
        level = options['level']
        created_count = 0
        for meter_type in METER_TYPES:
            _, created = MinimumStockLevel.objects.get_or_create(
                meter_type=meter_type,
                defaults={'minimum_level': level},
            )
            if created:
                created_count += 1
                self.stdout.write(f'  ✓ {meter_type}: {level}')
            else:
                self.stdout.write(f'  - {meter_type}: already set')

        self.stdout.write(self.style.SUCCESS(f'\nCompleted: {created_count} stock levels created'))
