from pathlib import Path

from django.contrib.auth.models import User
from django.core.management.base import BaseCommand

from buyers.csv_import import import_buyers_csv
from buyers.exceptions import CsvImportRejected


class Command(BaseCommand):
    help = "Import buyers from a CSV file on behalf of a user"

    def add_arguments(self, parser):
        parser.add_argument(
            '--file',
            type=str,
            required=True,
            help='Path to CSV file'
        )
        parser.add_argument(
            '--owner',
            type=str,
            required=True,
            help='Username that will own the imported buyers'
        )

    def handle(self, *args, **options):
        file_path = Path(options['file'])

        if not file_path.exists():
            self.stdout.write(
                self.style.ERROR(f"CSV file not found at {file_path}")
            )
            return

        try:
            owner = User.objects.get(username=options['owner'])
        except User.DoesNotExist:
            self.stdout.write(
                self.style.ERROR(f"User '{options['owner']}' does not exist")
            )
            return

        try:
            result = import_buyers_csv(file_path.read_bytes(), owner, file_name=file_path.name)
        except CsvImportRejected as e:
            self.stdout.write(self.style.ERROR(f"Import rejected: {e.message}"))
            for detail in e.details:
                self.stdout.write(f"  - {detail}")
            return

        for row_error in result.errors:
            self.stdout.write(
                self.style.WARNING(f"Row {row_error.row}: {'; '.join(row_error.errors)}")
            )

        style = self.style.SUCCESS if result.imported else self.style.ERROR
        self.stdout.write(
            style(
                f"\nImport complete:\n"
                f"  - {result.imported} imported\n"
                f"  - {len(result.errors)} rows rejected\n"
                f"  - {result.total} rows total"
            )
        )
