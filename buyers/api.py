import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from django.http import HttpRequest, HttpResponse, JsonResponse
from ninja import File, Router
from ninja.files import UploadedFile
from pydantic import ValidationError

from authentication.session_auth import get_user_from_request
from buyers import services
from buyers.csv_export import export_buyers_csv, export_filename
from buyers.csv_import import import_buyers_csv
from buyers.exceptions import BuyerError, CsvImportRejected
from buyers.models import Bhk, City, PropertyType, Purpose, Source, Status, Timeline
from buyers.schemas import (
    BuyerHistorySchema,
    BuyerListResponseSchema,
    BuyerQuerySchema,
    BuyerResponseSchema,
    ImportResponseSchema,
    MessageSchema,
    serialize_buyer,
    serialize_history,
)
from buyers.validation import validate_buyer
from services.rate_limit import RateLimitDecision, check_action_limit

logger = logging.getLogger(__name__)

router = Router()

AUTH_REQUIRED = {"error": "Authentication required"}

PAGINATION_PARAMS = ("page", "limit")


def _rate_limited_response(decision: RateLimitDecision) -> JsonResponse:
    response = JsonResponse({"error": "Rate limit exceeded. Try again later."}, status=429)
    response["X-RateLimit-Remaining"] = str(decision.remaining)
    response["X-RateLimit-Reset"] = datetime.fromtimestamp(
        decision.reset_time / 1000, tz=timezone.utc
    ).isoformat()
    return response


def _read_json(request: HttpRequest) -> Optional[dict]:
    try:
        body = json.loads(request.body or b"{}")
    except (ValueError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


def _parse_query(params: Dict[str, str]) -> Tuple[Optional[BuyerQuerySchema], List[Dict]]:
    try:
        return BuyerQuerySchema.model_validate(params), []
    except ValidationError as e:
        details = [
            {"field": ".".join(str(part) for part in error["loc"]), "message": error["msg"]}
            for error in e.errors()
        ]
        return None, details


def _error(exc: BuyerError) -> Tuple[int, dict]:
    return exc.status_code, {"error": exc.message}


@router.get(
    "",
    response={200: BuyerListResponseSchema, 400: dict, 401: dict},
    auth=None,
)
def list_buyers(request):
    """
    List buyers with search, filters, sorting and pagination

    Query parameters: page, limit, search, city, propertyType, status,
    timeline, sortBy (updatedAt|createdAt|fullName), sortOrder (asc|desc)
    """
    user = get_user_from_request(request)
    if not user:
        return 401, AUTH_REQUIRED

    query, errors = _parse_query(request.GET.dict())
    if errors:
        return 400, {"error": "Invalid query parameters", "details": errors}

    buyers, pagination = services.list_buyers(query)
    return {
        "data": [serialize_buyer(buyer) for buyer in buyers],
        "pagination": pagination,
    }


@router.post(
    "",
    response={201: BuyerResponseSchema, 400: dict, 401: dict},
    auth=None,
)
def create_buyer(request):
    """Create a buyer lead owned by the current user (status starts as New)"""
    user = get_user_from_request(request)
    if not user:
        return 401, AUTH_REQUIRED

    decision = check_action_limit("create", user.id)
    if not decision.success:
        return _rate_limited_response(decision)

    body = _read_json(request)
    if body is None:
        return 400, {"error": "Request body must be a JSON object"}

    result = validate_buyer(body, "create")
    if not result.ok:
        return 400, {"error": "Validation failed", "details": [e.as_dict() for e in result.errors]}

    buyer = services.create_buyer(user, result.value)
    return 201, serialize_buyer(buyer)


@router.get("/choices", response={200: dict, 401: dict}, auth=None)
def get_choices(request):
    """Allowed values for every choice field"""
    user = get_user_from_request(request)
    if not user:
        return 401, AUTH_REQUIRED

    return {
        "city": City.values,
        "propertyType": PropertyType.values,
        "bhk": Bhk.values,
        "purpose": Purpose.values,
        "timeline": Timeline.values,
        "source": Source.values,
        "status": Status.values,
    }


@router.get("/export", response={400: dict, 401: dict}, auth=None)
def export_buyers(request):
    """
    Export every buyer matching the list filters as a CSV attachment

    Pagination parameters are ignored.
    """
    user = get_user_from_request(request)
    if not user:
        return 401, AUTH_REQUIRED

    params = {k: v for k, v in request.GET.dict().items() if k not in PAGINATION_PARAMS}
    query, errors = _parse_query(params)
    if errors:
        return 400, {"error": "Invalid query parameters", "details": errors}

    content = export_buyers_csv(services.filter_buyers(query))
    response = HttpResponse(content, content_type="text/csv")
    response["Content-Disposition"] = f'attachment; filename="{export_filename()}"'
    return response


@router.post(
    "/import",
    response={200: ImportResponseSchema, 400: dict, 401: dict},
    auth=None,
    exclude_none=True,
)
def import_buyers(request, file: UploadedFile = File(...)):
    """
    Import buyers from an uploaded CSV file (max 200 rows, 5MB)

    Valid rows are imported together; invalid rows are reported by row
    number and skipped.
    """
    user = get_user_from_request(request)
    if not user:
        return 401, AUTH_REQUIRED

    decision = check_action_limit("import", user.id)
    if not decision.success:
        return _rate_limited_response(decision)

    try:
        result = import_buyers_csv(
            file.read(),
            user,
            file_name=file.name,
            content_type=file.content_type,
        )
    except CsvImportRejected as e:
        logger.warning(f"CSV import rejected for user {user.id}: {e.message}")
        body = {"error": e.message}
        if e.details:
            body["details"] = e.details
        return 400, body

    if not result.imported:
        return 400, result.as_dict()
    return result.as_dict()


@router.get(
    "/{buyer_id}",
    response={200: BuyerResponseSchema, 401: dict, 404: dict},
    auth=None,
)
def get_buyer(request, buyer_id: str):
    """Get a buyer by id"""
    user = get_user_from_request(request)
    if not user:
        return 401, AUTH_REQUIRED

    try:
        buyer = services.get_buyer(buyer_id)
    except BuyerError as e:
        return _error(e)

    return serialize_buyer(buyer)


@router.put(
    "/{buyer_id}",
    response={200: BuyerResponseSchema, 400: dict, 401: dict, 403: dict, 404: dict, 409: dict},
    auth=None,
)
def update_buyer(request, buyer_id: str):
    """
    Update a buyer owned by the current user

    The body carries the last seen updatedAt; a mismatch with the stored
    value returns 409 and nothing is written.
    """
    user = get_user_from_request(request)
    if not user:
        return 401, AUTH_REQUIRED

    decision = check_action_limit("update", user.id)
    if not decision.success:
        return _rate_limited_response(decision)

    body = _read_json(request)
    if body is None:
        return 400, {"error": "Request body must be a JSON object"}

    result = validate_buyer(body, "update")
    if not result.ok:
        return 400, {"error": "Validation failed", "details": [e.as_dict() for e in result.errors]}

    try:
        buyer = services.update_buyer(user, buyer_id, result.value)
    except BuyerError as e:
        return _error(e)

    return serialize_buyer(buyer)


@router.delete(
    "/{buyer_id}",
    response={200: MessageSchema, 401: dict, 403: dict, 404: dict},
    auth=None,
)
def delete_buyer(request, buyer_id: str):
    """Delete a buyer owned by the current user, together with its history"""
    user = get_user_from_request(request)
    if not user:
        return 401, AUTH_REQUIRED

    decision = check_action_limit("delete", user.id)
    if not decision.success:
        return _rate_limited_response(decision)

    try:
        services.delete_buyer(user, buyer_id)
    except BuyerError as e:
        return _error(e)

    return {"message": "Buyer deleted successfully"}


@router.get(
    "/{buyer_id}/history",
    response={200: List[BuyerHistorySchema], 401: dict, 404: dict},
    auth=None,
)
def get_buyer_history(request, buyer_id: str):
    """Most recent history entries for a buyer, newest first"""
    user = get_user_from_request(request)
    if not user:
        return 401, AUTH_REQUIRED

    try:
        buyer = services.get_buyer(buyer_id)
    except BuyerError as e:
        return _error(e)

    return [serialize_history(entry) for entry in services.recent_history(buyer.pk)]
