"""
Bulk import of buyers from CSV.

Whole-file problems (wrong type, too large, malformed, too many rows) reject
the upload before any row is looked at. Row-level validation failures only
exclude that row: the valid rows are imported in one transaction and the
invalid ones are reported back by source row number.
"""
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
from django.conf import settings
from django.contrib.auth.models import User
from django.db import transaction

from buyers.audit import record_history
from buyers.exceptions import CsvImportRejected
from buyers.models import Buyer, BuyerHistory
from buyers.validation import CsvBuyerRow, validate_csv_row

logger = logging.getLogger(__name__)

CSV_CONTENT_TYPES = ("text/csv",)

# header line plus 1-based numbering
ROW_NUMBER_OFFSET = 2


@dataclass
class RowError:
    row: int
    errors: List[str]

    def as_dict(self) -> Dict[str, Any]:
        return {"row": self.row, "errors": self.errors}


@dataclass
class ImportResult:
    imported: int
    total: int
    errors: List[RowError] = field(default_factory=list)
    buyers: List[Buyer] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.imported:
            return "No valid rows to import"
        return f"Successfully imported {self.imported} buyers"

    def as_dict(self) -> Dict[str, Any]:
        data = {"message": self.message, "imported": self.imported, "total": self.total}
        if self.errors:
            data["errors"] = [error.as_dict() for error in self.errors]
        return data


def max_rows() -> int:
    return getattr(settings, "BUYER_IMPORT_MAX_ROWS", 200)


def max_bytes() -> int:
    return getattr(settings, "BUYER_IMPORT_MAX_BYTES", 5 * 1024 * 1024)


def is_csv_upload(file_name: Optional[str], content_type: Optional[str]) -> bool:
    if content_type and content_type.split(";")[0].strip().lower() in CSV_CONTENT_TYPES:
        return True
    return bool(file_name) and file_name.lower().endswith(".csv")


def parse_csv(raw: bytes) -> List[Dict[str, str]]:
    """
    Parse CSV bytes into one dict per data row, keyed by trimmed header names.

    Raises:
        CsvImportRejected: undecodable bytes, missing header, or rows whose
            field count differs from the header
    """
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise CsvImportRejected("File must be UTF-8 encoded")

    bad_lines: List[str] = []

    def collect_bad_line(fields: List[str]) -> None:
        bad_lines.append(f"Too many fields in line: {','.join(fields)[:80]}")
        return None

    # header=None keeps pandas from promoting an extra leading field to an
    # index; the header row is taken off by hand below
    try:
        frame = pd.read_csv(
            io.StringIO(text),
            header=None,
            dtype=object,
            keep_default_na=False,
            skip_blank_lines=True,
            engine="python",
            on_bad_lines=collect_bad_line,
        )
    except pd.errors.EmptyDataError:
        raise CsvImportRejected("CSV file is empty")
    except pd.errors.ParserError as e:
        raise CsvImportRejected("CSV parsing failed", details=[str(e)])

    header = [str(name).strip() for name in frame.iloc[0].tolist()]
    data = frame.iloc[1:]

    for position, short_row in enumerate(data.isna().any(axis=1).tolist()):
        if short_row:
            bad_lines.append(
                f"Too few fields in row {position + ROW_NUMBER_OFFSET}: expected {len(header)}"
            )
    if bad_lines:
        raise CsvImportRejected("CSV parsing failed", details=bad_lines)

    return [dict(zip(header, values)) for values in data.itertuples(index=False, name=None)]


def validate_rows(rows: List[Dict[str, str]]) -> Tuple[List[CsvBuyerRow], List[RowError]]:
    """Validate every row independently; a failing row never affects the others"""
    valid: List[CsvBuyerRow] = []
    errors: List[RowError] = []
    for index, row in enumerate(rows):
        result = validate_csv_row(row)
        if result.ok:
            valid.append(result.value)
        else:
            errors.append(
                RowError(row=index + ROW_NUMBER_OFFSET, errors=[str(error) for error in result.errors])
            )
    return valid, errors


def import_buyers_csv(
    raw: bytes,
    user: User,
    file_name: Optional[str] = None,
    content_type: Optional[str] = None,
) -> ImportResult:
    """
    Run the full import pipeline for one uploaded file.

    Raises:
        CsvImportRejected: the file was refused as a whole; nothing was written
    """
    if not is_csv_upload(file_name, content_type):
        raise CsvImportRejected("File must be a CSV")
    if len(raw) > max_bytes():
        raise CsvImportRejected(f"File too large. Maximum size is {max_bytes() // (1024 * 1024)}MB")

    rows = parse_csv(raw)
    if len(rows) > max_rows():
        raise CsvImportRejected(f"Maximum {max_rows()} rows allowed")

    valid, errors = validate_rows(rows)
    if not valid:
        logger.warning(f"CSV import by user {user.id}: no valid rows out of {len(rows)}")
        return ImportResult(imported=0, total=len(rows), errors=errors)

    created = []
    with transaction.atomic():
        for record in valid:
            buyer = Buyer.objects.create(owner=user, **record.model_values())
            record_history(buyer, user, BuyerHistory.ACTION_IMPORTED, fields=record.as_payload())
            created.append(buyer)

    logger.info(
        f"CSV import by user {user.id}: {len(created)} imported, {len(errors)} rows rejected"
    )
    return ImportResult(imported=len(created), total=len(rows), errors=errors, buyers=created)
