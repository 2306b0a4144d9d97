import uuid
from datetime import timedelta
from typing import List

from django.contrib.auth.models import User
from django.db import models
from django.utils import timezone


class City(models.TextChoices):
    CHANDIGARH = "Chandigarh", "Chandigarh"
    MOHALI = "Mohali", "Mohali"
    ZIRAKPUR = "Zirakpur", "Zirakpur"
    PANCHKULA = "Panchkula", "Panchkula"
    OTHER = "Other", "Other"


class PropertyType(models.TextChoices):
    APARTMENT = "Apartment", "Apartment"
    VILLA = "Villa", "Villa"
    PLOT = "Plot", "Plot"
    OFFICE = "Office", "Office"
    RETAIL = "Retail", "Retail"


class Bhk(models.TextChoices):
    STUDIO = "Studio", "Studio"
    ONE = "1", "1 BHK"
    TWO = "2", "2 BHK"
    THREE = "3", "3 BHK"
    FOUR = "4", "4 BHK"


class Purpose(models.TextChoices):
    BUY = "Buy", "Buy"
    RENT = "Rent", "Rent"


class Timeline(models.TextChoices):
    ZERO_TO_THREE_MONTHS = "0-3m", "0-3 months"
    THREE_TO_SIX_MONTHS = "3-6m", "3-6 months"
    MORE_THAN_SIX_MONTHS = ">6m", "More than 6 months"
    EXPLORING = "Exploring", "Exploring"


class Source(models.TextChoices):
    WEBSITE = "Website", "Website"
    REFERRAL = "Referral", "Referral"
    WALK_IN = "Walk-in", "Walk-in"
    CALL = "Call", "Call"
    OTHER = "Other", "Other"


class Status(models.TextChoices):
    NEW = "New", "New"
    QUALIFIED = "Qualified", "Qualified"
    CONTACTED = "Contacted", "Contacted"
    VISITED = "Visited", "Visited"
    NEGOTIATION = "Negotiation", "Negotiation"
    CONVERTED = "Converted", "Converted"
    DROPPED = "Dropped", "Dropped"


# Property types that must carry a bedroom count
BHK_PROPERTY_TYPES = frozenset({PropertyType.APARTMENT.value, PropertyType.VILLA.value})

TAG_SEPARATOR = ","


def join_tags(tags: List[str]) -> str:
    return TAG_SEPARATOR.join(tags)


def split_tags(value: str) -> List[str]:
    if not value:
        return []
    return [tag.strip() for tag in value.split(TAG_SEPARATOR) if tag.strip()]


class Buyer(models.Model):
    """A prospective property buyer tracked through the sales pipeline."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    full_name = models.CharField(max_length=80)
    email = models.EmailField(null=True, blank=True)
    phone = models.CharField(max_length=15)
    city = models.CharField(max_length=20, choices=City.choices)
    property_type = models.CharField(max_length=20, choices=PropertyType.choices)
    bhk = models.CharField(max_length=10, choices=Bhk.choices, null=True, blank=True)
    purpose = models.CharField(max_length=10, choices=Purpose.choices)
    budget_min = models.PositiveBigIntegerField(null=True, blank=True)
    budget_max = models.PositiveBigIntegerField(null=True, blank=True)
    timeline = models.CharField(max_length=20, choices=Timeline.choices)
    source = models.CharField(max_length=20, choices=Source.choices)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.NEW)
    notes = models.TextField(blank=True, default="")
    tags = models.TextField(blank=True, default="")
    owner = models.ForeignKey(User, on_delete=models.CASCADE, related_name="buyers")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        ordering = ["-updated_at"]
        indexes = [
            models.Index(fields=["city", "property_type"], name="buyer_city_type_idx"),
            models.Index(fields=["status"], name="buyer_status_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.full_name} ({self.phone})"

    @property
    def tag_list(self) -> List[str]:
        return split_tags(self.tags)

    def save(self, *args, **kwargs):
        # updated_at is the optimistic concurrency token: it must move forward
        # on every write, even when the clock has not
        now = timezone.now()
        if not self._state.adding and self.updated_at is not None and now <= self.updated_at:
            now = self.updated_at + timedelta(microseconds=1)
        self.updated_at = now
        super().save(*args, **kwargs)


class BuyerHistory(models.Model):
    """Immutable audit entry describing one change to a Buyer."""

    ACTION_CREATED = "created"
    ACTION_UPDATED = "updated"
    ACTION_IMPORTED = "imported"

    buyer = models.ForeignKey(Buyer, on_delete=models.CASCADE, related_name="history")
    changed_by = models.ForeignKey(User, on_delete=models.CASCADE, related_name="buyer_changes")
    changed_at = models.DateTimeField(default=timezone.now, db_index=True)
    diff = models.JSONField()

    class Meta:
        ordering = ["-changed_at", "-id"]
        verbose_name_plural = "buyer history"

    def __str__(self) -> str:
        return f"{self.buyer_id} - {self.diff.get('action')} - {self.changed_at}"
