"""
Tests for the import_buyers and export_buyers management commands
"""
from io import StringIO

import pytest
from django.core.management import call_command

from buyers.csv_export import EXPORT_COLUMNS
from buyers.models import Buyer

ROW = "Aarav Sharma,aarav@example.com,9876543210,Chandigarh,Apartment,2,Buy,5000000,7500000,0-3m,Website,,hot,"
BAD_ROW = "Bad Phone,,12345,Mohali,Plot,,Buy,,,>6m,Call,,,"


@pytest.mark.django_db
class TestImportBuyersCommand:

    def test_import(self, tmp_path, test_user, csv_header):
        csv_file = tmp_path / 'buyers.csv'
        csv_file.write_text("\n".join([csv_header, ROW, BAD_ROW]) + "\n", encoding='utf-8')
        out = StringIO()

        call_command('import_buyers', file=str(csv_file), owner=test_user.username, stdout=out)

        assert Buyer.objects.filter(owner=test_user).count() == 1
        output = out.getvalue()
        assert 'Row 3: phone: Phone must be 10-15 digits' in output
        assert '1 imported' in output

    def test_missing_file(self, tmp_path, test_user):
        out = StringIO()
        call_command('import_buyers', file=str(tmp_path / 'nope.csv'), owner=test_user.username, stdout=out)

        assert 'CSV file not found' in out.getvalue()

    def test_unknown_owner(self, tmp_path, csv_header):
        csv_file = tmp_path / 'buyers.csv'
        csv_file.write_text(csv_header + "\n" + ROW + "\n", encoding='utf-8')
        out = StringIO()

        call_command('import_buyers', file=str(csv_file), owner='ghost', stdout=out)

        assert "User 'ghost' does not exist" in out.getvalue()
        assert Buyer.objects.count() == 0

    def test_rejected_file(self, tmp_path, test_user, csv_header):
        csv_file = tmp_path / 'buyers.csv'
        csv_file.write_text(csv_header + "\n" + ROW + ",extra\n", encoding='utf-8')
        out = StringIO()

        call_command('import_buyers', file=str(csv_file), owner=test_user.username, stdout=out)

        assert 'Import rejected: CSV parsing failed' in out.getvalue()


@pytest.mark.django_db
class TestExportBuyersCommand:

    def test_export(self, tmp_path, create_buyer):
        create_buyer()
        create_buyer(city='Mohali')
        output = tmp_path / 'out.csv'
        out = StringIO()

        call_command('export_buyers', output=str(output), city='Mohali', stdout=out)

        lines = output.read_text(encoding='utf-8').splitlines()
        assert lines[0] == ",".join(EXPORT_COLUMNS)
        assert len(lines) == 2
        assert 'Exported 1 buyers' in out.getvalue()

    def test_invalid_filter(self, tmp_path):
        out = StringIO()
        call_command('export_buyers', output=str(tmp_path / 'out.csv'), status='Lost', stdout=out)

        assert 'Invalid filter status' in out.getvalue()
        assert not (tmp_path / 'out.csv').exists()
