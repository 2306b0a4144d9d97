from django.http import HttpRequest
from django.contrib.auth.models import User
from typing import Optional

from .jwt_auth import decode_access_token


def get_user_from_request(request: HttpRequest) -> Optional[User]:
    """
    Resolve the current user, supporting both JWT and session authentication.

    A Bearer token is tried first; the Django session is the fallback.

    Returns:
        User object if authenticated, None otherwise
    """
    auth_header = request.META.get('HTTP_AUTHORIZATION', '')
    if auth_header.startswith('Bearer '):
        user = decode_access_token(auth_header.split(' ', 1)[1].strip())
        if user:
            return user

    if request.user.is_authenticated:
        return request.user

    return None
