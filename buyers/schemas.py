from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from ninja import Field, Schema
from pydantic import ConfigDict, ValidationInfo, field_serializer, field_validator

from buyers.csv_export import format_timestamp
from buyers.models import Buyer, BuyerHistory, City, PropertyType, Status, Timeline
from buyers.validation import require_choice

SORT_FIELDS = {
    "updatedAt": "updated_at",
    "createdAt": "created_at",
    "fullName": "full_name",
}

FILTER_CHOICES = {
    "city": City,
    "property_type": PropertyType,
    "status": Status,
    "timeline": Timeline,
}


class BuyerQuerySchema(Schema):
    """Filter, sort and pagination parameters for listing and exporting buyers"""

    model_config = ConfigDict(populate_by_name=True)

    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    search: Optional[str] = None
    city: Optional[str] = None
    property_type: Optional[str] = Field(None, alias="propertyType")
    status: Optional[str] = None
    timeline: Optional[str] = None
    sort_by: str = Field("updatedAt", alias="sortBy")
    sort_order: str = Field("desc", alias="sortOrder")

    @field_validator("page", "limit", mode="before")
    @classmethod
    def _parse_number(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None or value == "":
            return cls.model_fields[info.field_name].default
        if isinstance(value, str):
            try:
                return int(value)
            except ValueError:
                return cls.model_fields[info.field_name].default
        return value

    @field_validator("search", mode="before")
    @classmethod
    def _blank_search(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
        return value or None

    @field_validator("city", "property_type", "status", "timeline", mode="before")
    @classmethod
    def _check_filter(cls, value: Any, info: ValidationInfo) -> Optional[str]:
        if value is None or value == "":
            return None
        return require_choice(value, FILTER_CHOICES[info.field_name])

    @field_validator("sort_by")
    @classmethod
    def _check_sort_by(cls, value: str) -> str:
        if value not in SORT_FIELDS:
            raise ValueError(f"sortBy must be one of: {', '.join(SORT_FIELDS)}")
        return value

    @field_validator("sort_order")
    @classmethod
    def _check_sort_order(cls, value: str) -> str:
        if value not in ("asc", "desc"):
            raise ValueError("sortOrder must be 'asc' or 'desc'")
        return value

    @property
    def ordering(self) -> List[str]:
        prefix = "-" if self.sort_order == "desc" else ""
        return [f"{prefix}{SORT_FIELDS[self.sort_by]}", f"{prefix}pk"]


class OwnerSchema(Schema):
    id: int
    name: str
    email: str


class BuyerResponseSchema(Schema):
    """Buyer as returned by the API, tags as a list"""
    id: UUID
    fullName: str
    email: Optional[str] = None
    phone: str
    city: str
    propertyType: str
    bhk: Optional[str] = None
    purpose: str
    budgetMin: Optional[int] = None
    budgetMax: Optional[int] = None
    timeline: str
    source: str
    status: str
    notes: str
    tags: List[str]
    ownerId: int
    owner: Optional[OwnerSchema] = None
    createdAt: datetime
    updatedAt: datetime

    # updatedAt comes back as the concurrency token: keep microseconds
    @field_serializer("createdAt", "updatedAt")
    def _serialize_timestamp(self, value: datetime) -> str:
        return format_timestamp(value)


class PaginationSchema(Schema):
    page: int
    limit: int
    total: int
    totalPages: int


class BuyerListResponseSchema(Schema):
    data: List[BuyerResponseSchema]
    pagination: PaginationSchema


class BuyerHistorySchema(Schema):
    id: int
    buyerId: UUID
    changedBy: int
    changedAt: datetime
    diff: Dict[str, Any]

    @field_serializer("changedAt")
    def _serialize_timestamp(self, value: datetime) -> str:
        return format_timestamp(value)


class RowErrorSchema(Schema):
    row: int
    errors: List[str]


class ImportResponseSchema(Schema):
    message: str
    imported: int
    total: int
    errors: Optional[List[RowErrorSchema]] = None


class MessageSchema(Schema):
    message: str


def serialize_owner(user) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.get_full_name() or user.username,
        "email": user.email,
    }


def serialize_buyer(buyer: Buyer, include_owner: bool = True) -> Dict[str, Any]:
    data = {
        "id": buyer.id,
        "fullName": buyer.full_name,
        "email": buyer.email,
        "phone": buyer.phone,
        "city": buyer.city,
        "propertyType": buyer.property_type,
        "bhk": buyer.bhk,
        "purpose": buyer.purpose,
        "budgetMin": buyer.budget_min,
        "budgetMax": buyer.budget_max,
        "timeline": buyer.timeline,
        "source": buyer.source,
        "status": buyer.status,
        "notes": buyer.notes,
        "tags": buyer.tag_list,
        "ownerId": buyer.owner_id,
        "createdAt": buyer.created_at,
        "updatedAt": buyer.updated_at,
    }
    if include_owner:
        data["owner"] = serialize_owner(buyer.owner)
    return data


def serialize_history(entry: BuyerHistory) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "buyerId": entry.buyer_id,
        "changedBy": entry.changed_by_id,
        "changedAt": entry.changed_at,
        "diff": entry.diff,
    }
