"""
Buyer operations shared by the API, the CSV pipelines and management commands.

Every write happens in one transaction together with its history entry.
"""
import logging
import math
from typing import List, Tuple

from django.conf import settings
from django.contrib.auth.models import User
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Q, QuerySet

from buyers.audit import compute_changes, record_history
from buyers.concurrency import check_concurrency_token
from buyers.exceptions import BuyerNotFound, BuyerPermissionDenied
from buyers.models import Buyer, BuyerHistory
from buyers.schemas import BuyerQuerySchema
from buyers.validation import BuyerInput, BuyerUpdateInput

logger = logging.getLogger(__name__)


def filter_buyers(query: BuyerQuerySchema) -> QuerySet:
    """Apply search, equality filters and ordering. Pagination is left to the caller."""
    buyers = Buyer.objects.select_related("owner")

    if query.search:
        buyers = buyers.filter(
            Q(full_name__icontains=query.search)
            | Q(phone__contains=query.search)
            | Q(email__icontains=query.search)
        )
    if query.city:
        buyers = buyers.filter(city=query.city)
    if query.property_type:
        buyers = buyers.filter(property_type=query.property_type)
    if query.status:
        buyers = buyers.filter(status=query.status)
    if query.timeline:
        buyers = buyers.filter(timeline=query.timeline)

    return buyers.order_by(*query.ordering)


def list_buyers(query: BuyerQuerySchema) -> Tuple[List[Buyer], dict]:
    buyers = filter_buyers(query)
    total = buyers.count()
    offset = (query.page - 1) * query.limit
    page = list(buyers[offset:offset + query.limit])

    pagination = {
        "page": query.page,
        "limit": query.limit,
        "total": total,
        "totalPages": math.ceil(total / query.limit),
    }
    return page, pagination


def get_buyer(buyer_id) -> Buyer:
    try:
        return Buyer.objects.select_related("owner").get(pk=buyer_id)
    except (Buyer.DoesNotExist, DjangoValidationError, ValueError):
        raise BuyerNotFound()


def _get_owned_buyer(user: User, buyer_id) -> Buyer:
    buyer = get_buyer(buyer_id)
    if buyer.owner_id != user.id:
        logger.warning(f"User {user.id} tried to modify buyer {buyer.pk} owned by {buyer.owner_id}")
        raise BuyerPermissionDenied()
    return buyer


def create_buyer(user: User, data: BuyerInput) -> Buyer:
    with transaction.atomic():
        buyer = Buyer.objects.create(owner=user, **data.model_values())
        record_history(buyer, user, BuyerHistory.ACTION_CREATED, fields=data.as_payload())

    logger.info(f"Buyer {buyer.pk} created by user {user.id}")
    return buyer


def update_buyer(user: User, buyer_id, data: BuyerUpdateInput) -> Buyer:
    """
    Apply a validated update using optimistic concurrency.

    Checks run in order: existence, ownership, concurrency token. The token is
    checked again under a row lock inside the transaction so two writers that
    observed the same version cannot both succeed.

    Raises:
        BuyerNotFound, BuyerPermissionDenied, StaleBuyerRecord
    """
    current = _get_owned_buyer(user, buyer_id)
    check_concurrency_token(current.updated_at, data.updated_at)

    values = data.model_values()
    with transaction.atomic():
        buyer = Buyer.objects.select_for_update().get(pk=current.pk)
        check_concurrency_token(buyer.updated_at, data.updated_at)

        changes = compute_changes(buyer, values)
        for attr, value in values.items():
            setattr(buyer, attr, value)
        buyer.save()

        if changes:
            record_history(buyer, user, BuyerHistory.ACTION_UPDATED, changes=changes)

    buyer.owner = current.owner
    logger.info(f"Buyer {buyer.pk} updated by user {user.id}: {sorted(changes) or 'no changes'}")
    return buyer


def delete_buyer(user: User, buyer_id) -> None:
    buyer = _get_owned_buyer(user, buyer_id)
    with transaction.atomic():
        # history rows go with the buyer through the cascade
        buyer.delete()
    logger.info(f"Buyer {buyer_id} deleted by user {user.id}")


def recent_history(buyer_id, limit: int = None) -> List[BuyerHistory]:
    """Newest entries first; empty for unknown buyers"""
    if limit is None:
        limit = getattr(settings, "BUYER_HISTORY_LIMIT", 5)
    try:
        return list(BuyerHistory.objects.filter(buyer_id=buyer_id).order_by("-changed_at", "-id")[:limit])
    except (DjangoValidationError, ValueError):
        return []
