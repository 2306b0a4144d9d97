import logging
from datetime import date, datetime, timezone as dt_timezone
from typing import Iterable, List, Optional

import pandas as pd
from django.utils import timezone

from buyers.models import Buyer

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = [
    "fullName",
    "email",
    "phone",
    "city",
    "propertyType",
    "bhk",
    "purpose",
    "budgetMin",
    "budgetMax",
    "timeline",
    "source",
    "notes",
    "tags",
    "status",
    "createdAt",
    "updatedAt",
]


def format_timestamp(value: datetime) -> str:
    """ISO-8601 in UTC with microseconds, parseable back to the same instant"""
    return value.astimezone(dt_timezone.utc).isoformat(timespec="microseconds")


def _text(value) -> str:
    return "" if value is None else str(value)


def buyer_to_row(buyer: Buyer) -> List[str]:
    return [
        buyer.full_name,
        _text(buyer.email),
        buyer.phone,
        buyer.city,
        buyer.property_type,
        _text(buyer.bhk),
        buyer.purpose,
        _text(buyer.budget_min),
        _text(buyer.budget_max),
        buyer.timeline,
        buyer.source,
        buyer.notes,
        buyer.tags,
        buyer.status,
        format_timestamp(buyer.created_at),
        format_timestamp(buyer.updated_at),
    ]


def export_buyers_csv(buyers: Iterable[Buyer]) -> str:
    """
    Render buyers as CSV text with a fixed header.

    Values containing commas, quotes or newlines are quoted with inner quotes
    doubled; everything else is written as is.
    """
    rows = [buyer_to_row(buyer) for buyer in buyers]
    frame = pd.DataFrame(rows, columns=EXPORT_COLUMNS, dtype=object)
    content = frame.to_csv(index=False, lineterminator="\n")
    logger.info(f"Exported {len(rows)} buyers to CSV")
    return content


def export_filename(today: Optional[date] = None) -> str:
    today = today or timezone.now().date()
    return f"buyers-export-{today.isoformat()}.csv"
