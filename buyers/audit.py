import logging
from typing import Any, Dict, Optional

from django.contrib.auth.models import User

from buyers.models import Buyer, BuyerHistory

logger = logging.getLogger(__name__)

# Buyer attributes covered by the audit trail, with their API names
TRACKED_FIELDS = (
    ("full_name", "fullName"),
    ("email", "email"),
    ("phone", "phone"),
    ("city", "city"),
    ("property_type", "propertyType"),
    ("bhk", "bhk"),
    ("purpose", "purpose"),
    ("budget_min", "budgetMin"),
    ("budget_max", "budgetMax"),
    ("timeline", "timeline"),
    ("source", "source"),
    ("status", "status"),
    ("notes", "notes"),
    ("tags", "tags"),
)


def compute_changes(buyer: Buyer, values: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """
    Compare stored values against an update.

    Args:
        buyer: the record as currently persisted
        values: model attribute -> new value, in stored representation
            (tags already joined)

    Returns:
        API field name -> {"from": old, "to": new} for every field that changes
    """
    changes = {}
    for attr, name in TRACKED_FIELDS:
        if attr not in values:
            continue
        before = getattr(buyer, attr)
        after = values[attr]
        if before != after:
            changes[name] = {"from": before, "to": after}
    return changes


def record_history(
    buyer: Buyer,
    user: User,
    action: str,
    changes: Optional[Dict[str, Dict[str, Any]]] = None,
    fields: Optional[Dict[str, Any]] = None,
) -> BuyerHistory:
    """Append one audit entry. Must run inside the transaction that wrote the buyer."""
    diff: Dict[str, Any] = {"action": action}
    if changes is not None:
        diff["changes"] = changes
    if fields is not None:
        diff["fields"] = fields

    entry = BuyerHistory.objects.create(buyer=buyer, changed_by=user, diff=diff)
    logger.debug(f"Recorded {action} history for buyer {buyer.pk}")
    return entry
