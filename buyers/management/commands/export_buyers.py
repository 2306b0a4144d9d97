from pathlib import Path

from django.core.management.base import BaseCommand
from pydantic import ValidationError

from buyers.csv_export import export_buyers_csv, export_filename
from buyers.schemas import BuyerQuerySchema
from buyers.services import filter_buyers


class Command(BaseCommand):
    help = "Export buyers to a CSV file, optionally filtered"

    def add_arguments(self, parser):
        parser.add_argument(
            '--output',
            type=str,
            default=None,
            help='Output path (defaults to buyers-export-YYYY-MM-DD.csv in the current directory)'
        )
        parser.add_argument('--search', type=str, default=None)
        parser.add_argument('--city', type=str, default=None)
        parser.add_argument('--property-type', type=str, default=None)
        parser.add_argument('--status', type=str, default=None)
        parser.add_argument('--timeline', type=str, default=None)

    def handle(self, *args, **options):
        filters = {
            "search": options['search'],
            "city": options['city'],
            "propertyType": options['property_type'],
            "status": options['status'],
            "timeline": options['timeline'],
        }
        try:
            query = BuyerQuerySchema.model_validate(
                {key: value for key, value in filters.items() if value is not None}
            )
        except ValidationError as e:
            for error in e.errors():
                self.stdout.write(
                    self.style.ERROR(f"Invalid filter {'.'.join(map(str, error['loc']))}: {error['msg']}")
                )
            return

        buyers = filter_buyers(query)
        output = Path(options['output'] or export_filename())
        output.write_text(export_buyers_csv(buyers), encoding="utf-8")

        self.stdout.write(
            self.style.SUCCESS(f"Exported {buyers.count()} buyers to {output}")
        )
