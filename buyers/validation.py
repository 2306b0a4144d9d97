"""
Validation engine for buyer payloads.

The same rules serve the create, update and CSV import paths. Callers get a
ValidationResult back instead of an exception: either a normalized input
object or a list of field-scoped errors.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Type

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from ninja import Field, Schema
from pydantic import ConfigDict, ValidationError, ValidationInfo, field_validator

from buyers.concurrency import token_required
from buyers.models import (
    BHK_PROPERTY_TYPES,
    TAG_SEPARATOR,
    Bhk,
    City,
    PropertyType,
    Purpose,
    Source,
    Status,
    Timeline,
    join_tags,
)

PHONE_PATTERN = re.compile(r"[0-9]{10,15}")

# column limits of Buyer.budget_* (PositiveBigIntegerField) and Buyer.email
MAX_BUDGET = 9223372036854775807
MAX_EMAIL_LENGTH = 254

BHK_POLICY_REJECT = "reject"
BHK_POLICY_IGNORE = "ignore"

CHOICE_FIELDS = {
    "city": City,
    "property_type": PropertyType,
    "purpose": Purpose,
    "timeline": Timeline,
    "source": Source,
}


def require_choice(value: Any, choices) -> str:
    if value not in choices.values:
        raise ValueError(f"Invalid value. Expected one of: {', '.join(choices.values)}")
    return value


def normalize_tags(values: List[Any]) -> List[str]:
    """Split on commas, trim, drop blanks and duplicates, keep first-seen order"""
    tags: List[str] = []
    for value in values:
        if not isinstance(value, str):
            raise ValueError("Tags must be strings")
        for tag in value.split(TAG_SEPARATOR):
            tag = tag.strip()
            if tag and tag not in tags:
                tags.append(tag)
    return tags


@dataclass
class FieldError:
    field: str
    message: str

    def as_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message}

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


@dataclass
class ValidationResult:
    value: Optional["BuyerInput"] = None
    errors: List[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @classmethod
    def success(cls, value: "BuyerInput") -> "ValidationResult":
        return cls(value=value)

    @classmethod
    def failure(cls, errors: List[FieldError]) -> "ValidationResult":
        return cls(errors=errors)


class BuyerInput(Schema):
    """Fields accepted when creating a buyer"""

    model_config = ConfigDict(populate_by_name=True)

    full_name: str = Field(..., alias="fullName", min_length=2, max_length=80)
    email: Optional[str] = None
    phone: str
    city: str
    property_type: str = Field(..., alias="propertyType")
    bhk: Optional[str] = None
    purpose: str
    budget_min: Optional[int] = Field(None, alias="budgetMin", ge=0, le=MAX_BUDGET)
    budget_max: Optional[int] = Field(None, alias="budgetMax", ge=0, le=MAX_BUDGET)
    timeline: str
    source: str
    notes: str = Field("", max_length=1000)
    tags: List[str] = Field(default_factory=list)

    @field_validator("full_name", "phone", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("phone")
    @classmethod
    def _check_phone(cls, value: str) -> str:
        if not PHONE_PATTERN.fullmatch(value):
            raise ValueError("Phone must be 10-15 digits")
        return value

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError("Email must be a string")
        value = value.strip()
        if not value:
            return None
        if len(value) > MAX_EMAIL_LENGTH:
            raise ValueError(f"Email must be at most {MAX_EMAIL_LENGTH} characters")
        try:
            validate_email(value)
        except DjangoValidationError:
            raise ValueError("Invalid email address")
        return value

    @field_validator("city", "property_type", "purpose", "timeline", "source")
    @classmethod
    def _check_choice(cls, value: str, info: ValidationInfo) -> str:
        return require_choice(value, CHOICE_FIELDS[info.field_name])

    @field_validator("bhk", mode="before")
    @classmethod
    def _check_bhk(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return require_choice(value, Bhk)

    @field_validator("budget_min", "budget_max", mode="before")
    @classmethod
    def _normalize_budget(cls, value: Any) -> Any:
        return cls.coerce_budget(value)

    @field_validator("notes", mode="before")
    @classmethod
    def _normalize_notes(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("tags", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> List[str]:
        value = cls.coerce_tags(value)
        if not isinstance(value, (list, tuple)):
            raise ValueError("Tags must be a list of strings")
        return normalize_tags(value)

    @classmethod
    def coerce_budget(cls, value: Any) -> Any:
        return value

    @classmethod
    def coerce_tags(cls, value: Any) -> Any:
        return [] if value is None else value

    def as_payload(self) -> Dict[str, Any]:
        """API-facing (camelCase) form, as echoed in history entries"""
        return self.model_dump(by_alias=True, exclude={"updated_at"})

    def model_values(self) -> Dict[str, Any]:
        """Buyer model attributes in their stored representation"""
        values = self.model_dump(exclude={"updated_at"})
        values["tags"] = join_tags(values["tags"])
        return values


class BuyerUpdateInput(BuyerInput):
    """Fields accepted when updating a buyer, including the concurrency token"""

    status: Optional[str] = None
    updated_at: Optional[datetime] = Field(None, alias="updatedAt")

    @field_validator("status", mode="before")
    @classmethod
    def _check_status(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return require_choice(value, Status)

    @field_validator("updated_at", mode="before")
    @classmethod
    def _blank_token(cls, value: Any) -> Any:
        return None if value == "" else value

    def as_payload(self) -> Dict[str, Any]:
        payload = super().as_payload()
        if payload["status"] is None:
            del payload["status"]
        return payload

    def model_values(self) -> Dict[str, Any]:
        # an absent status leaves the stored one untouched
        values = super().model_values()
        if values["status"] is None:
            del values["status"]
        return values


class CsvBuyerRow(BuyerInput):
    """One CSV data row: every cell arrives as a string"""

    status: str = Status.NEW.value

    @field_validator("status", mode="before")
    @classmethod
    def _check_status(cls, value: Any) -> str:
        if value is None or value == "":
            return Status.NEW.value
        return require_choice(value, Status)

    @classmethod
    def coerce_budget(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        value = value.strip()
        if not value:
            return None
        try:
            return int(value)
        except ValueError:
            raise ValueError("Budget must be a whole number")

    @classmethod
    def coerce_tags(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value


def _field_errors(exc: ValidationError) -> List[FieldError]:
    errors = []
    for error in exc.errors():
        path = ".".join(str(part) for part in error["loc"]) or "__all__"
        message = error["msg"]
        if error["type"] == "value_error":
            message = str(error.get("ctx", {}).get("error", message))
        errors.append(FieldError(path, message))
    return errors


def _cross_field_errors(record: BuyerInput, bhk_policy: str) -> List[FieldError]:
    errors = []
    if record.property_type in BHK_PROPERTY_TYPES:
        if not record.bhk:
            errors.append(FieldError("bhk", "BHK is required for Apartment and Villa properties"))
    elif record.bhk is not None:
        if bhk_policy == BHK_POLICY_IGNORE:
            record.bhk = None
        else:
            errors.append(
                FieldError("bhk", f"BHK is not applicable to {record.property_type} properties")
            )

    if (
        record.budget_min is not None
        and record.budget_max is not None
        and record.budget_max < record.budget_min
    ):
        errors.append(
            FieldError("budgetMax", "Budget max must be greater than or equal to budget min")
        )
    return errors


def _validate(schema: Type[BuyerInput], raw: Mapping, bhk_policy: Optional[str]) -> ValidationResult:
    if not isinstance(raw, Mapping):
        raise TypeError(f"Buyer payload must be a mapping, got {type(raw).__name__}")
    if bhk_policy is None:
        bhk_policy = getattr(settings, "BUYER_BHK_POLICY", BHK_POLICY_REJECT)

    try:
        record = schema.model_validate(dict(raw))
    except ValidationError as e:
        return ValidationResult.failure(_field_errors(e))

    errors = _cross_field_errors(record, bhk_policy)
    if errors:
        return ValidationResult.failure(errors)
    return ValidationResult.success(record)


def validate_buyer(raw: Mapping, mode: str = "create", *, bhk_policy: Optional[str] = None) -> ValidationResult:
    """
    Validate a create or update payload.

    Args:
        raw: loosely typed field map, camelCase keys
        mode: "create" or "update"
        bhk_policy: overrides the BUYER_BHK_POLICY setting

    Returns:
        ValidationResult holding a BuyerInput/BuyerUpdateInput or field errors
    """
    schemas = {"create": BuyerInput, "update": BuyerUpdateInput}
    if mode not in schemas:
        raise ValueError(f"Unknown validation mode: {mode}")

    result = _validate(schemas[mode], raw, bhk_policy)
    if result.ok and mode == "update" and result.value.updated_at is None and token_required():
        return ValidationResult.failure([FieldError("updatedAt", "Field required")])
    return result


def validate_csv_row(raw: Mapping, *, bhk_policy: Optional[str] = None) -> ValidationResult:
    """Validate one CSV row whose cells are all strings"""
    return _validate(CsvBuyerRow, raw, bhk_policy)
