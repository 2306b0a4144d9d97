"""
Optimistic concurrency control for buyer updates.

The token is the record's updated_at value as last seen by the client. An
update is accepted only when the token equals the stored value exactly.
"""
import logging
from datetime import datetime
from typing import Optional

from django.conf import settings
from django.utils import timezone

from buyers.exceptions import StaleBuyerRecord

logger = logging.getLogger(__name__)


def token_required() -> bool:
    return getattr(settings, "BUYER_REQUIRE_CONCURRENCY_TOKEN", False)


def normalize_token(token: datetime) -> datetime:
    """Naive tokens are read in the default timezone"""
    if timezone.is_naive(token):
        return timezone.make_aware(token)
    return token


def check_concurrency_token(current: datetime, supplied: Optional[datetime]) -> None:
    """
    Raise StaleBuyerRecord unless supplied matches current exactly.

    A missing token skips the check; callers decide beforehand whether a
    missing token is acceptable (see token_required).
    """
    if supplied is None:
        return
    if normalize_token(supplied) != current:
        logger.warning(f"Stale update rejected: stored {current.isoformat()}, supplied {supplied.isoformat()}")
        raise StaleBuyerRecord()
