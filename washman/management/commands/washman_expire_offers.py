"""Management command to expire vehicle offers past their offer's validity."""

from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_date

from washman.models import VehicleStats
from washman.services import LoyaltyEngine


class Command(BaseCommand):
    help = "Expire active vehicle offers whose offer validity has ended (safe to run repeatedly)"

    def add_arguments(self, parser):
        parser.add_argument(
            "--date",
            default=None,
            help="Sweep as of this date (YYYY-MM-DD) instead of today",
        )
        parser.add_argument(
            "--reconcile",
            action="store_true",
            help="Also re-derive offer counters for every vehicle",
        )

    def handle(self, *args, **options):
        today = None
        if options["date"]:
            try:
                today = parse_date(options["date"])
            except ValueError:
                today = None
            if today is None:
                raise CommandError(f"Invalid date: {options['date']}")

        expired_count = LoyaltyEngine.expire_stale_offers(today=today)
        self.stdout.write(self.style.SUCCESS(f"Expired {expired_count} vehicle offers."))

        if options["reconcile"]:
            vehicle_ids = list(VehicleStats.objects.values_list("vehicle_id", flat=True))
            for vehicle_id in vehicle_ids:
                LoyaltyEngine.reconcile_counters(vehicle_id)
            self.stdout.write(self.style.SUCCESS("Offer counters reconciled."))
