"""
Management command to import meters from a CSV or XLSX file
"""
import os
from datetime import datetime
from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError
from umspos.core.exceptions import InventoryError
from umspos.meters.constants import normalize_meter_type
from umspos.meters.services import add_meters, parse_meter_file

User = get_user_model()


class Command(BaseCommand):
    help = "Imports meters into stock from a .csv or .xlsx file (serial in column 1, type in column 2)"

    def add_arguments(self, parser):
        parser.add_argument('file', type=str, help='Path to the .csv or .xlsx file')
        parser.add_argument(
            '--purchase-date',
            type=str,
            help='Purchase date as YYYY-MM-DD (default: today)',
        )
        parser.add_argument(
            '--unit-cost',
            action='append',
            default=[],
            metavar='TYPE=PRICE',
            help='Unit cost for a meter type, e.g. --unit-cost split=2500 (repeatable)',
        )
        parser.add_argument(
            '--user',
            type=str,
            help='Email of the user recorded as having added the meters',
        )

    def _parse_unit_costs(self, values):
        costs = {}
        for value in values:
            meter_type, sep, price = value.partition('=')
            if not sep or normalize_meter_type(meter_type) is None:
                raise CommandError(f"Invalid --unit-cost '{value}', expected TYPE=PRICE")
            costs[normalize_meter_type(meter_type)] = price
        return costs

    def handle(self, *args, **options):
        path = options['file']
        if not os.path.exists(path):
            raise CommandError(f"File not found: {path}")

        purchase_date = None
        if options['purchase_date']:
            try:
                purchase_date = datetime.strptime(options['purchase_date'], '%Y-%m-%d').date()
            except ValueError:
                raise CommandError('--purchase-date must be YYYY-MM-DD')

        user = None
        if options['user']:
            user = User.objects.filter(email__iexact=options['user']).first()
            if user is None:
                raise CommandError(f"No user with email {options['user']}")

        unit_costs = self._parse_unit_costs(options['unit_cost'])

        with open(path, 'rb') as f:
            content = f.read()
        try:
            meters, skipped_rows = parse_meter_file(os.path.basename(path), content)
        except ValueError as e:
            raise CommandError(str(e))

        self.stdout.write(f"Parsed {len(meters)} meters from {path}")
        if skipped_rows:
            self.stdout.write(self.style.WARNING(
                f"Skipped rows (empty serial or unknown type): {', '.join(map(str, skipped_rows))}"
            ))

        try:
            batches = add_meters(user, meters, purchase_date=purchase_date, unit_costs=unit_costs)
        except InventoryError as e:
            raise CommandError(e.message)

        for batch in batches:
            self.stdout.write(f"  ✓ {batch.quantity} x {batch.meter_type} @ {batch.unit_cost}")
        self.stdout.write(self.style.SUCCESS(
            f"\nImported {sum(b.quantity for b in batches)} meters in batch {batches[0].batch_number}"
        ))
